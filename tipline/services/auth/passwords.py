from __future__ import annotations

import asyncio

import bcrypt

from tipline.core.config import get_settings


_dummy_hash: str | None = None


def _hash_sync(password: str, rounds: int) -> str:
    # bcrypt truncates at 72 bytes; reporters rarely exceed it and the salt stays per-row.
    return bcrypt.hashpw(password.encode("utf-8")[:72], bcrypt.gensalt(rounds=rounds)).decode("ascii")


def _check_sync(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8")[:72], password_hash.encode("ascii"))
    except ValueError:
        return False


async def hash_password(password: str) -> str:
    # bcrypt is CPU-bound; run it off the event loop.
    rounds = get_settings().reporter_password_bcrypt_rounds
    return await asyncio.to_thread(_hash_sync, password, rounds)


async def verify_password(password: str, password_hash: str) -> bool:
    return await asyncio.to_thread(_check_sync, password, password_hash)


async def burn_password_check(password: str) -> None:
    """Spend one bcrypt check against a throwaway hash.

    Used when no stored hash exists so a miss costs the same as a wrong password.
    """
    global _dummy_hash
    if _dummy_hash is None:
        _dummy_hash = await hash_password("tipline-unknown-report")
    await verify_password(password, _dummy_hash)
