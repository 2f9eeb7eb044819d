"""Authenticated field encryption for report titles, contents and comments.

Envelopes are plain text so they fit the existing text columns::

    enc1$<urlsafe base64 of nonce || ciphertext || tag>

The ``enc1$`` prefix plus the base64 body shape is what ``looks_encrypted``
checks, so tenants without a key never pay for a decrypt attempt and ordinary
prose is never mistaken for ciphertext.
"""

from __future__ import annotations

import binascii
import os
import re

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from tipline.core.errors import DecryptionError, InvalidKeyError
from tipline.services.crypto.utils import (
    decode_key_material,
    urlsafe_b64decode_nopad,
    urlsafe_b64encode_nopad,
)


ENVELOPE_PREFIX = "enc1$"
KEY_BYTES = 32
NONCE_BYTES = 12
TAG_BYTES = 16

_BODY_RE = re.compile(r"^[A-Za-z0-9_-]+$")
# Shortest body is an empty plaintext: nonce + tag, base64 without padding.
_MIN_BODY_CHARS = -(-(NONCE_BYTES + TAG_BYTES) * 4 // 3)


def generate_key() -> str:
    # Hex is the display format handed to company admins exactly once.
    return os.urandom(KEY_BYTES).hex()


def parse_key(key: str | bytes) -> bytes:
    if isinstance(key, (bytes, bytearray)):
        raw = bytes(key)
    else:
        try:
            raw = decode_key_material(key)
        except ValueError as exc:
            raise InvalidKeyError("key must be 32 bytes of hex or base64") from exc
    if len(raw) != KEY_BYTES:
        raise InvalidKeyError(f"key must be {KEY_BYTES} bytes, got {len(raw)}")
    return raw


def encrypt_field(plaintext: str, key: str | bytes) -> str:
    aesgcm = AESGCM(parse_key(key))
    nonce = os.urandom(NONCE_BYTES)
    sealed = aesgcm.encrypt(nonce, plaintext.encode("utf-8"), None)
    return ENVELOPE_PREFIX + urlsafe_b64encode_nopad(nonce + sealed)


def decrypt_field(envelope: str, key: str | bytes) -> str:
    try:
        raw_key = parse_key(key)
    except InvalidKeyError as exc:
        raise DecryptionError("invalid key") from exc
    if not looks_encrypted(envelope):
        raise DecryptionError("value is not an envelope")
    try:
        payload = urlsafe_b64decode_nopad(envelope[len(ENVELOPE_PREFIX):])
    except (binascii.Error, ValueError) as exc:
        raise DecryptionError("envelope body is not base64") from exc
    if len(payload) < NONCE_BYTES + TAG_BYTES:
        raise DecryptionError("envelope is truncated")
    nonce, sealed = payload[:NONCE_BYTES], payload[NONCE_BYTES:]
    try:
        plaintext = AESGCM(raw_key).decrypt(nonce, sealed, None)
    except InvalidTag as exc:
        raise DecryptionError("authentication failed") from exc
    try:
        return plaintext.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise DecryptionError("plaintext is not utf-8") from exc


def looks_encrypted(value: str | None) -> bool:
    if not value or not value.startswith(ENVELOPE_PREFIX):
        return False
    body = value[len(ENVELOPE_PREFIX):]
    if len(body) < _MIN_BODY_CHARS or len(body) % 4 == 1:
        return False
    return bool(_BODY_RE.match(body))
