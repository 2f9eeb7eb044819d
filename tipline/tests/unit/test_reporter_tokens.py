from __future__ import annotations

from datetime import datetime, timedelta, timezone

import jwt

from tipline.core.config import get_settings
from tipline.services.auth.reporter_tokens import issue_reporter_token, verify_reporter_token


def test_issued_token_verifies_with_scope() -> None:
    token = issue_reporter_token("r1", "c1")
    claims = verify_reporter_token(token)
    assert claims is not None
    assert claims.report_id == "r1"
    assert claims.company_id == "c1"
    assert claims.token_id
    remaining = claims.expires_at - datetime.now(timezone.utc)
    assert timedelta(minutes=55) < remaining <= timedelta(hours=1)


def test_zero_ttl_token_is_already_expired() -> None:
    assert verify_reporter_token(issue_reporter_token("r1", "c1", ttl_seconds=0)) is None


def test_token_issued_in_the_past_expires() -> None:
    issued = datetime.now(timezone.utc) - timedelta(hours=2)
    assert verify_reporter_token(issue_reporter_token("r1", "c1", now=issued)) is None


def test_tampered_signature_is_rejected() -> None:
    token = issue_reporter_token("r1", "c1")
    header, payload, signature = token.split(".")
    flipped = ("A" if signature[0] != "A" else "B") + signature[1:]
    assert verify_reporter_token(f"{header}.{payload}.{flipped}") is None


def test_token_signed_with_other_secret_is_rejected() -> None:
    now = int(datetime.now(timezone.utc).timestamp())
    forged = jwt.encode(
        {"typ": "reporter", "rid": "r1", "cid": "c1", "iat": now, "exp": now + 600},
        "some-other-secret-that-is-long-enough-to-sign",
        algorithm="HS256",
    )
    assert verify_reporter_token(forged) is None


def test_wrong_token_type_is_rejected() -> None:
    now = int(datetime.now(timezone.utc).timestamp())
    token = jwt.encode(
        {"typ": "staff", "rid": "r1", "cid": "c1", "iat": now, "exp": now + 600},
        get_settings().reporter_token_secret,
        algorithm="HS256",
    )
    assert verify_reporter_token(token) is None


def test_missing_scope_claim_is_rejected() -> None:
    now = int(datetime.now(timezone.utc).timestamp())
    token = jwt.encode(
        {"typ": "reporter", "rid": "r1", "iat": now, "exp": now + 600},
        get_settings().reporter_token_secret,
        algorithm="HS256",
    )
    assert verify_reporter_token(token) is None


def test_garbage_and_empty_tokens_are_rejected() -> None:
    assert verify_reporter_token(None) is None
    assert verify_reporter_token("") is None
    assert verify_reporter_token("not.a.token") is None
