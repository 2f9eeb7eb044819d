from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class WrappedKey:
    # Base64 ciphertext (with tag) and base64 IV, persisted as a pair.
    cipher_text: str
    iv: str


class KmsProvider(Protocol):
    provider: str

    def wrap_key(self, *, company_id: str, dek: bytes) -> WrappedKey:
        ...

    def unwrap_key(self, *, company_id: str, wrapped: WrappedKey) -> bytes:
        ...
