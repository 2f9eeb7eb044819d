"""Per-field decryption decisions for resolved report access.

Key lookup deliberately differs by role. Reporters get transparent access to
their own submission: a supplied key is tried first, otherwise the company key
is unwrapped for them. Staff never get an automatic key; they must send the
key with each request to unlock sealed fields.

Outcome per stored value::

    not an envelope              -> value unchanged
    envelope, key decrypts       -> plaintext
    envelope, key does not       -> "[DECRYPTION_FAILED]"
    envelope, no key             -> "[ENCRYPTED]"
"""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from tipline.core.errors import DecryptionError
from tipline.services.access import AccessDenied, ReporterAccess, ReportAccess, StaffAccess
from tipline.services.crypto.cipher import decrypt_field, encrypt_field, looks_encrypted
from tipline.services.crypto.data_keys import get_data_key
from tipline.services.telemetry import increment_counter


logger = logging.getLogger(__name__)

ENCRYPTED_MARKER = "[ENCRYPTED]"
DECRYPTION_FAILED_MARKER = "[DECRYPTION_FAILED]"


def clean_supplied_key(supplied_key: str | None) -> str | None:
    if supplied_key is None:
        return None
    stripped = supplied_key.strip()
    return stripped or None


async def _reporter_read_key(
    session: AsyncSession,
    access: ReporterAccess,
    supplied_key: str | None,
) -> str | None:
    supplied = clean_supplied_key(supplied_key)
    if supplied is not None:
        return supplied
    return await get_data_key(session, access.company_id)


def _staff_read_key(access: StaffAccess, supplied_key: str | None) -> str | None:
    # Never fetch the company key for staff: viewing sealed content is an explicit unlock.
    return clean_supplied_key(supplied_key)


async def resolve_read_key(
    session: AsyncSession,
    access: ReportAccess,
    supplied_key: str | None,
) -> str | None:
    if isinstance(access, AccessDenied):
        raise PermissionError("read key requested for denied access")
    if isinstance(access, ReporterAccess):
        return await _reporter_read_key(session, access, supplied_key)
    return _staff_read_key(access, supplied_key)


def open_field(value: str | None, key: str | None) -> str | None:
    if value is None or not looks_encrypted(value):
        return value
    if key is None:
        increment_counter("crypto_fields_redacted_total")
        return ENCRYPTED_MARKER
    try:
        plaintext = decrypt_field(value, key)
    except DecryptionError:
        increment_counter("crypto_decrypt_failures_total")
        return DECRYPTION_FAILED_MARKER
    increment_counter("crypto_decrypt_ops_total")
    return plaintext


async def write_key(session: AsyncSession, company_id: str) -> str | None:
    # Writes always use the company's current key, whatever the caller's role.
    return await get_data_key(session, company_id)


def seal_field(value: str, key: str | None) -> str:
    if key is None:
        return value
    increment_counter("crypto_encrypt_ops_total")
    return encrypt_field(value, key)

