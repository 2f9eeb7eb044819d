"""Append-only audit trail for report and key-management actions.

Rows never carry report text or key material: metadata is scrubbed by key
name and, as a second line, any value shaped like a field envelope or a raw
data key is replaced before it is written.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
import logging
import re
from typing import TYPE_CHECKING, Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.requests import Request

from tipline.core.config import get_settings
from tipline.domain.models import AuditEvent

if TYPE_CHECKING:
    from tipline.services.access import GrantedAccess


logger = logging.getLogger(__name__)

_SENSITIVE_KEY_FRAGMENTS = (
    "authorization",
    "token",
    "secret",
    "password",
    "key",
    "title",
    "content",
)
_RAW_KEY_RE = re.compile(r"^[0-9a-fA-F]{64}$")
_ENVELOPE_RE = re.compile(r"^enc1\$[A-Za-z0-9_-]+$")
_REDACTED_VALUE = "[REDACTED]"


@dataclass(frozen=True)
class AuditActor:
    actor_type: str
    actor_id: str | None = None
    actor_role: str | None = None


REPORTER_ACTOR = AuditActor(actor_type="reporter", actor_role="reporter")


def system_actor(name: str | None = None) -> AuditActor:
    return AuditActor(actor_type="system", actor_id=name)


def staff_actor(subject_id: str, role: str) -> AuditActor:
    return AuditActor(actor_type="staff", actor_id=subject_id, actor_role=role)


def actor_for_access(access: GrantedAccess) -> AuditActor:
    # Reporters stay anonymous in the trail; staff are recorded by subject.
    if access.kind == "reporter":
        return REPORTER_ACTOR
    return staff_actor(access.subject_id, access.kind)  # type: ignore[union-attr]


def _is_sensitive_key(key: str) -> bool:
    lowered = key.lower()
    return any(fragment in lowered for fragment in _SENSITIVE_KEY_FRAGMENTS)


def _is_sensitive_value(value: str) -> bool:
    stripped = value.strip()
    return bool(_ENVELOPE_RE.match(stripped) or _RAW_KEY_RE.match(stripped))


def sanitize_metadata(value: Any) -> Any:
    if isinstance(value, dict):
        return {
            str(key): _REDACTED_VALUE if _is_sensitive_key(str(key)) else sanitize_metadata(item)
            for key, item in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [sanitize_metadata(item) for item in value]
    if isinstance(value, str) and _is_sensitive_value(value):
        return _REDACTED_VALUE
    return value


def get_request_context(request: Request | None) -> dict[str, str | None]:
    # Client address feeds the reporter IP hash only; it is never stored in clear.
    if request is None:
        return {"request_id": None, "ip_address": None}
    request_id = getattr(request.state, "request_id", None) or request.headers.get("X-Request-Id")
    ip_address = request.client.host if request.client else None
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded and ip_address in get_settings().trusted_proxy_ip_set():
        # Only a known proxy may speak for the client; anyone else could forge the header.
        ip_address = forwarded.split(",")[0].strip() or ip_address
    return {"request_id": request_id, "ip_address": ip_address}


async def record_event(
    session: AsyncSession,
    *,
    company_id: str | None,
    actor: AuditActor,
    event_type: str,
    outcome: str = "success",
    resource_type: str | None = None,
    resource_id: str | None = None,
    request_id: str | None = None,
    metadata: dict[str, Any] | None = None,
    error_code: str | None = None,
    best_effort: bool = True,
) -> None:
    """Write and commit one audit row.

    Callers invoke this after their own commit so the audited action is
    durable even when the audit write fails. With ``best_effort`` a failed
    write is logged and swallowed; otherwise it propagates.
    """
    session.add(
        AuditEvent(
            occurred_at=datetime.now(timezone.utc),
            company_id=company_id,
            actor_type=actor.actor_type,
            actor_id=actor.actor_id,
            actor_role=actor.actor_role,
            event_type=event_type,
            outcome=outcome,
            resource_type=resource_type,
            resource_id=resource_id,
            request_id=request_id,
            metadata_json=sanitize_metadata(metadata or {}),
            error_code=error_code,
        )
    )
    try:
        await session.commit()
    except SQLAlchemyError as exc:
        await session.rollback()
        if not best_effort:
            raise
        logger.warning("audit_event_write_failed event_type=%s request_id=%s", event_type, request_id, exc_info=exc)
