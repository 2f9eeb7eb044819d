from tipline.services.crypto.backfill import BackfillResult, backfill_company
from tipline.services.crypto.cipher import (
    ENVELOPE_PREFIX,
    decrypt_field,
    encrypt_field,
    generate_key,
    looks_encrypted,
    parse_key,
)
from tipline.services.crypto.data_keys import (
    company_encryption_status,
    generate_data_key,
    get_data_key,
    is_encryption_configured,
    verify_data_key,
)

__all__ = [
    "BackfillResult",
    "ENVELOPE_PREFIX",
    "backfill_company",
    "company_encryption_status",
    "decrypt_field",
    "encrypt_field",
    "generate_data_key",
    "generate_key",
    "get_data_key",
    "is_encryption_configured",
    "looks_encrypted",
    "parse_key",
    "verify_data_key",
]
