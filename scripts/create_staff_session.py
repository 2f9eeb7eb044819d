from __future__ import annotations

import argparse
import asyncio
import sys

from tipline.core.config import get_settings
from tipline.domain.models import Company
from tipline.persistence.db import SessionLocal
from tipline.services.audit import record_event, system_actor
from tipline.services.auth.staff_sessions import create_staff_session, normalize_staff_role


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Mint a staff session token")
    parser.add_argument("--role", required=True, help="Role: company_admin|super_admin")
    parser.add_argument("--subject-id", required=True, help="Staff member identifier for auditing")
    parser.add_argument("--company-id", default=None, help="Company identifier (company_admin only)")
    parser.add_argument("--ttl-hours", type=int, default=None, help="Session lifetime in hours")
    return parser


async def _create_session(args: argparse.Namespace) -> int:
    settings = get_settings()
    role = normalize_staff_role(args.role)
    ttl_hours = args.ttl_hours if args.ttl_hours is not None else settings.staff_session_ttl_hours

    async with SessionLocal() as session:
        if role == "company_admin":
            company = await session.get(Company, args.company_id) if args.company_id else None
            if company is None:
                raise ValueError("company_admin sessions need an existing --company-id")
        raw_token, row = await create_staff_session(
            session=session,
            role=role,
            subject_id=args.subject_id,
            company_id=args.company_id,
            ttl_hours=ttl_hours,
        )
        await session.commit()

        await record_event(
            session,
            company_id=row.company_id,
            actor=system_actor("create_staff_session"),
            event_type="auth.staff_session.created",
            resource_type="staff_session",
            resource_id=row.id,
            metadata={"subject_id": args.subject_id, "prefix": row.token_prefix},
            best_effort=False,
        )

    print("Staff session created:")
    print(f"  session_id: {row.id}")
    print(f"  role: {role}")
    print(f"  expires_at: {row.expires_at.isoformat() if row.expires_at else ''}")
    print(f"  cookie ({settings.staff_session_cookie}):")
    print(f"    {raw_token}")
    return 0


def main() -> int:
    parser = _build_parser()
    args = parser.parse_args()
    try:
        return asyncio.run(_create_session(args))
    except Exception as exc:  # noqa: BLE001 - surface provisioning failures clearly
        print(f"create_staff_session failed: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
