from __future__ import annotations

from tipline.core.config import get_settings
from tipline.services.crypto.kms.base import KmsProvider, WrappedKey
from tipline.services.crypto.kms.local import LocalKmsProvider


# Providers that can wrap company data keys. Only the local HMAC-derived KEK ships today.
_PROVIDERS: dict[str, type[KmsProvider]] = {"local_kms": LocalKmsProvider}


def get_kms_provider() -> KmsProvider:
    """Return the configured key-wrapping provider, failing fast on unknown names."""
    name = get_settings().crypto_provider
    try:
        return _PROVIDERS[name]()
    except KeyError:
        raise ValueError(f"Unsupported KMS provider: {name}") from None


__all__ = ["KmsProvider", "LocalKmsProvider", "WrappedKey", "get_kms_provider"]
