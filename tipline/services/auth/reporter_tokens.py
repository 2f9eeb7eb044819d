"""Stateless reporter capability tokens.

A token binds its holder to exactly one report of one company until it
expires. Verification needs only the signing secret, so there is no way to
revoke a single token early; keep the TTL short. The ``jti`` claim is there
for a future denylist.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from uuid import uuid4

import jwt

from tipline.core.config import get_settings
from tipline.services.crypto.kms.local import derive_purpose_key, load_master_key


TOKEN_TYPE = "reporter"
_ALGORITHM = "HS256"
_REQUIRED_CLAIMS = ["exp", "iat", "typ", "rid", "cid"]


@dataclass(frozen=True)
class ReporterClaims:
    report_id: str
    company_id: str
    token_id: str | None
    expires_at: datetime


def _signing_key() -> bytes:
    settings = get_settings()
    if settings.reporter_token_secret:
        return settings.reporter_token_secret.encode("utf-8")
    return derive_purpose_key(load_master_key(), "reporter-token")


def issue_reporter_token(
    report_id: str,
    company_id: str,
    *,
    ttl_seconds: int | None = None,
    now: datetime | None = None,
) -> str:
    settings = get_settings()
    ttl = settings.reporter_token_ttl_seconds if ttl_seconds is None else ttl_seconds
    # Whole seconds: a zero TTL yields exp <= now, which never verifies.
    issued_at = int((now or datetime.now(timezone.utc)).timestamp())
    claims = {
        "typ": TOKEN_TYPE,
        "rid": report_id,
        "cid": company_id,
        "jti": uuid4().hex,
        "iat": issued_at,
        "exp": issued_at + int(ttl),
    }
    return jwt.encode(claims, _signing_key(), algorithm=_ALGORITHM)


def verify_reporter_token(token: str | None) -> ReporterClaims | None:
    # Invalid and expired tokens are routine; report them as None, never raise or log.
    if not token:
        return None
    try:
        claims = jwt.decode(
            token,
            _signing_key(),
            algorithms=[_ALGORITHM],
            options={"require": _REQUIRED_CLAIMS},
        )
    except jwt.PyJWTError:
        return None
    report_id = claims.get("rid")
    company_id = claims.get("cid")
    if claims.get("typ") != TOKEN_TYPE:
        return None
    if not isinstance(report_id, str) or not isinstance(company_id, str):
        return None
    if not report_id or not company_id:
        return None
    token_id = claims.get("jti")
    return ReporterClaims(
        report_id=report_id,
        company_id=company_id,
        token_id=token_id if isinstance(token_id, str) else None,
        expires_at=datetime.fromtimestamp(int(claims["exp"]), tz=timezone.utc),
    )

