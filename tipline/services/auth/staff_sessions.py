from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
import hashlib
import secrets
from typing import Literal
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tipline.domain.models import StaffSession


TOKEN_PREFIX = "tlss_"
StaffRole = Literal["company_admin", "super_admin"]
STAFF_ROLES: frozenset[str] = frozenset({"company_admin", "super_admin"})


@dataclass(frozen=True)
class StaffPrincipal:
    subject_id: str
    role: StaffRole
    company_id: str | None
    session_id: str


def _utc_now() -> datetime:
    # Keep session timestamps in UTC for consistent expiry checks.
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; treat them as UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def normalize_staff_role(role: str) -> str:
    normalized = role.strip().lower()
    if normalized not in STAFF_ROLES:
        raise ValueError(f"Unsupported staff role: {role}")
    return normalized


def hash_session_token(raw_token: str) -> str:
    # Use SHA-256 for deterministic, non-reversible token storage.
    return hashlib.sha256(raw_token.encode("utf-8")).hexdigest()


def generate_session_token() -> tuple[str, str, str, str]:
    token_id = uuid4().hex
    raw_token = f"{TOKEN_PREFIX}{token_id}_{secrets.token_urlsafe(32)}"
    return token_id, raw_token, raw_token[:12], hash_session_token(raw_token)


async def create_staff_session(
    *,
    session: AsyncSession,
    role: str,
    subject_id: str,
    company_id: str | None,
    ttl_hours: int | None,
) -> tuple[str, StaffSession]:
    normalized_role = normalize_staff_role(role)
    if normalized_role == "company_admin" and not company_id:
        raise ValueError("company_admin sessions must be bound to a company")
    if normalized_role == "super_admin":
        company_id = None
    token_id, raw_token, token_prefix, token_hash = generate_session_token()
    now = _utc_now()
    row = StaffSession(
        id=token_id,
        token_prefix=token_prefix,
        token_hash=token_hash,
        role=normalized_role,
        company_id=company_id,
        subject_id=subject_id,
        created_at=now,
        expires_at=None if ttl_hours is None else now + timedelta(hours=ttl_hours),
        revoked_at=None,
    )
    session.add(row)
    await session.flush()
    return raw_token, row


async def resolve_staff_session(*, session: AsyncSession, raw_token: str | None) -> StaffPrincipal | None:
    # A missing or stale session simply means "no staff principal"; callers decide how to deny.
    if not raw_token or not raw_token.startswith(TOKEN_PREFIX):
        return None
    row = (
        await session.execute(
            select(StaffSession).where(StaffSession.token_hash == hash_session_token(raw_token))
        )
    ).scalar_one_or_none()
    if row is None or row.revoked_at is not None:
        return None
    if row.expires_at is not None and _as_utc(row.expires_at) <= _utc_now():
        return None
    if row.role not in STAFF_ROLES:
        return None
    if row.role == "company_admin" and not row.company_id:
        return None
    return StaffPrincipal(
        subject_id=row.subject_id,
        role=row.role,  # type: ignore[arg-type]
        company_id=row.company_id,
        session_id=row.id,
    )
