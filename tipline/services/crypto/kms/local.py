from __future__ import annotations

import hashlib
import hmac
import logging
import os
from typing import Final

from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from tipline.core.config import get_settings
from tipline.services.crypto.kms.base import WrappedKey
from tipline.services.crypto.utils import b64decode_str, b64encode_bytes, decode_key_material


logger = logging.getLogger(__name__)

_IV_BYTES = 12


class LocalKmsProvider:
    provider: Final[str] = "local_kms"

    def __init__(self) -> None:
        self._master_key = load_master_key()

    def wrap_key(self, *, company_id: str, dek: bytes) -> WrappedKey:
        kek = _derive_kek(self._master_key, company_id=company_id)
        iv = os.urandom(_IV_BYTES)
        cipher_text = AESGCM(kek).encrypt(iv, dek, _aad(company_id))
        return WrappedKey(cipher_text=b64encode_bytes(cipher_text), iv=b64encode_bytes(iv))

    def unwrap_key(self, *, company_id: str, wrapped: WrappedKey) -> bytes:
        # Raises InvalidTag/ValueError on tampered material; callers classify the failure.
        kek = _derive_kek(self._master_key, company_id=company_id)
        iv = b64decode_str(wrapped.iv)
        cipher_text = b64decode_str(wrapped.cipher_text)
        return AESGCM(kek).decrypt(iv, cipher_text, _aad(company_id))


def load_master_key() -> bytes:
    settings = get_settings()
    if settings.crypto_master_key:
        return _ensure_32_bytes(decode_key_material(settings.crypto_master_key))
    # Deterministic fallback for dev/test to avoid breaking local workflows.
    logger.warning("crypto_master_key_missing using_dev_fallback=true")
    seed = f"{settings.app_name}-local-kms".encode("utf-8")
    return hashlib.sha256(seed).digest()


def derive_purpose_key(master_key: bytes, purpose: str) -> bytes:
    # Separate HMAC labels keep signing secrets distinct from wrapping keys.
    return hmac.new(master_key, f"purpose:{purpose}".encode("utf-8"), hashlib.sha256).digest()


def _derive_kek(master_key: bytes, *, company_id: str) -> bytes:
    # HMAC-based derivation keeps KEKs per company without persisting key material.
    return hmac.new(master_key, f"company:{company_id}".encode("utf-8"), hashlib.sha256).digest()


def _aad(company_id: str) -> bytes:
    # Bind the wrapped key to its company so rows cannot be swapped between tenants.
    return f"tipline-data-key:{company_id}".encode("utf-8")


def _ensure_32_bytes(value: bytes) -> bytes:
    if len(value) == 32:
        return value
    return hashlib.sha256(value).digest()
