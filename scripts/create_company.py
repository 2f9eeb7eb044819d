from __future__ import annotations

import argparse
import asyncio
import sys

from sqlalchemy import select

from tipline.domain.models import Company, ReportStatus
from tipline.persistence.db import SessionLocal
from tipline.services.audit import record_event, system_actor


# Reports enter the first status; only the last one is terminal.
DEFAULT_STATUSES = ("New", "In Progress", "Resolved")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Provision a company reporting channel")
    parser.add_argument("--code", required=True, help="Public channel code used by reporters")
    parser.add_argument("--name", required=True, help="Company display name")
    return parser


async def _create_company(args: argparse.Namespace) -> int:
    async with SessionLocal() as session:
        existing = (await session.execute(select(Company).where(Company.code == args.code))).scalar_one_or_none()
        if existing is not None:
            raise ValueError(f"company code {args.code} is already taken")
        company = Company(code=args.code, name=args.name, is_active=True)
        session.add(company)
        # Flush the company row before statuses to satisfy FK constraints.
        await session.flush()
        for order, status_name in enumerate(DEFAULT_STATUSES):
            session.add(
                ReportStatus(
                    company_id=company.id,
                    name=status_name,
                    is_default=order == 0,
                    is_terminal=order == len(DEFAULT_STATUSES) - 1,
                    sort_order=order,
                )
            )
        await session.commit()

        await record_event(
            session,
            company_id=company.id,
            actor=system_actor("create_company"),
            event_type="company.created",
            resource_type="company",
            resource_id=company.id,
            metadata={"code": args.code},
            best_effort=False,
        )

    print("Company created:")
    print(f"  company_id: {company.id}")
    print(f"  code: {args.code}")
    return 0


def main() -> int:
    parser = _build_parser()
    args = parser.parse_args()
    try:
        return asyncio.run(_create_company(args))
    except Exception as exc:  # noqa: BLE001 - surface provisioning failures clearly
        print(f"create_company failed: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
