"""Per-company data keys, wrapped under the platform master key.

A company opts into report encryption by generating a data key once. The raw
key is returned to the caller a single time; only the wrapped form and its IV
are persisted. Losing the master key or the wrapped key makes every sealed
report of that company unrecoverable.
"""

from __future__ import annotations

import binascii
from datetime import datetime, timezone
import hmac
import logging

from cryptography.exceptions import InvalidTag
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from tipline.core.errors import (
    CompanyNotFoundError,
    DataKeyExistsError,
    InvalidKeyError,
    KeyUnwrapError,
)
from tipline.domain.models import Company
from tipline.services.audit import record_event, staff_actor, system_actor
from tipline.services.crypto.cipher import generate_key, parse_key
from tipline.services.crypto.kms import WrappedKey, get_kms_provider
from tipline.services.telemetry import increment_counter


logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def is_encryption_configured(company: Company) -> bool:
    return bool(company.data_encryption_key) and bool(company.data_encryption_iv)


async def _load_company(session: AsyncSession, company_id: str) -> Company:
    company = await session.get(Company, company_id)
    if company is None:
        raise CompanyNotFoundError(f"company {company_id} not found")
    return company


async def generate_data_key(
    session: AsyncSession,
    company_id: str,
    *,
    confirm_replace: bool = False,
    actor_id: str | None = None,
    actor_role: str | None = None,
    request_id: str | None = None,
) -> str:
    company = await _load_company(session, company_id)
    had_key = is_encryption_configured(company)
    raw_key = generate_key()
    wrapped = get_kms_provider().wrap_key(company_id=company_id, dek=parse_key(raw_key))

    stmt = update(Company).where(Company.id == company_id)
    if not confirm_replace:
        # Conditional write: at most one key-establishing update wins per company.
        stmt = stmt.where(Company.data_encryption_key.is_(None))
    stmt = stmt.values(
        data_encryption_key=wrapped.cipher_text,
        data_encryption_iv=wrapped.iv,
        data_key_created_at=_utc_now(),
    ).execution_options(synchronize_session=False)
    result = await session.execute(stmt)
    if result.rowcount != 1:
        await session.rollback()
        increment_counter("crypto_data_key_conflicts_total")
        raise DataKeyExistsError("company already has a data key; pass confirm_replace to replace it")
    await session.commit()
    session.expire_all()

    replaced = confirm_replace and had_key
    event_type = "crypto.data_key.replaced" if replaced else "crypto.data_key.generated"
    if replaced:
        logger.warning(
            "data_key_replaced company_id=%s actor_id=%s previously_sealed_content_unreadable=true",
            company_id,
            actor_id,
        )
    else:
        logger.info("data_key_generated company_id=%s actor_id=%s", company_id, actor_id)
    increment_counter("crypto_data_keys_generated_total")
    await record_event(
        session,
        company_id=company_id,
        actor=staff_actor(actor_id, actor_role or "company_admin") if actor_id else system_actor(),
        event_type=event_type,
        resource_type="company",
        resource_id=company_id,
        request_id=request_id,
        metadata={"confirm_replace": confirm_replace, "replaced": replaced},
    )
    return raw_key


async def get_data_key(session: AsyncSession, company_id: str) -> str | None:
    company = await _load_company(session, company_id)
    wrapped_key = company.data_encryption_key
    iv = company.data_encryption_iv
    if not wrapped_key and not iv:
        return None
    if not wrapped_key or not iv:
        logger.error("data_key_partial_state company_id=%s", company_id)
        increment_counter("crypto_unwrap_failures_total")
        raise KeyUnwrapError(f"company {company_id} has a partial data key record")
    try:
        dek = get_kms_provider().unwrap_key(
            company_id=company_id,
            wrapped=WrappedKey(cipher_text=wrapped_key, iv=iv),
        )
        parse_key(dek)
    except (InvalidTag, InvalidKeyError, binascii.Error, ValueError) as exc:
        logger.error("data_key_unwrap_failed company_id=%s", company_id, exc_info=exc)
        increment_counter("crypto_unwrap_failures_total")
        raise KeyUnwrapError(f"company {company_id} data key cannot be unwrapped") from exc
    return dek.hex()


async def verify_data_key(session: AsyncSession, company_id: str, candidate: str) -> bool:
    # Compare without exposing the stored key; malformed candidates simply do not match.
    stored = await get_data_key(session, company_id)
    if stored is None:
        return False
    try:
        candidate_bytes = parse_key(candidate)
    except InvalidKeyError:
        return False
    return hmac.compare_digest(candidate_bytes, bytes.fromhex(stored))


async def company_encryption_status(session: AsyncSession, company_id: str) -> bool:
    return is_encryption_configured(await _load_company(session, company_id))
