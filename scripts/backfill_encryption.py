from __future__ import annotations

import argparse
import asyncio
import sys

from tipline.core.logging import configure_logging
from tipline.persistence.db import SessionLocal
from tipline.services.crypto import backfill_company


def _build_parser() -> argparse.ArgumentParser:
    # One company per run so an operator always knows whose data is being rewritten.
    parser = argparse.ArgumentParser(description="Seal plaintext report data under a company's current key")
    parser.add_argument("--company-id", required=True, help="Company identifier")
    parser.add_argument("--batch-size", type=int, default=None, help="Reports per committed batch")
    return parser


async def _backfill(company_id: str, batch_size: int | None) -> int:
    async with SessionLocal() as session:
        result = await backfill_company(session, company_id, batch_size=batch_size)
    print("Encryption backfill complete:")
    print(f"  company_id: {result.company_id}")
    print(f"  reports_sealed: {result.reports_sealed}")
    print(f"  comments_sealed: {result.comments_sealed}")
    print(f"  history_sealed: {result.history_sealed}")
    return 0


def main() -> int:
    configure_logging()
    parser = _build_parser()
    args = parser.parse_args()
    try:
        return asyncio.run(_backfill(args.company_id, args.batch_size))
    except Exception as exc:  # noqa: BLE001 - surface operational failures in CLI output.
        print(f"backfill_encryption failed: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
