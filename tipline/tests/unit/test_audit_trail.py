from __future__ import annotations

import pytest
from sqlalchemy import select

from tipline.domain.models import AuditEvent
from tipline.persistence.db import SessionLocal
from tipline.services.access import CompanyAdminAccess, ReporterAccess, SuperAdminAccess
from tipline.services.audit import REPORTER_ACTOR, actor_for_access, record_event, sanitize_metadata, staff_actor
from tipline.services.crypto import encrypt_field, generate_key


def test_sensitive_keys_are_redacted_recursively() -> None:
    payload = {
        "reporter_token": "abc",
        "Authorization": "Bearer abc",
        "nested": {"title": "Fraud", "password_hash": "x", "count": 3},
        "items": [{"content": "body"}, {"status": "New"}],
    }
    sanitized = sanitize_metadata(payload)
    assert sanitized["reporter_token"] == "[REDACTED]"
    assert sanitized["Authorization"] == "[REDACTED]"
    assert sanitized["nested"] == {"title": "[REDACTED]", "password_hash": "[REDACTED]", "count": 3}
    assert sanitized["items"] == [{"content": "[REDACTED]"}, {"status": "New"}]


def test_key_material_and_envelopes_are_redacted_by_shape() -> None:
    raw_key = generate_key()
    sanitized = sanitize_metadata(
        {
            "note": raw_key,
            "value": encrypt_field("hidden", raw_key),
            "report_number": "AB12CD34",
        }
    )
    assert sanitized == {"note": "[REDACTED]", "value": "[REDACTED]", "report_number": "AB12CD34"}


def test_actor_for_access_keeps_reporters_anonymous() -> None:
    assert actor_for_access(ReporterAccess(report_id="r1", company_id="c1")) == REPORTER_ACTOR
    assert REPORTER_ACTOR.actor_id is None
    admin = actor_for_access(CompanyAdminAccess(report_id="r1", company_id="c1", subject_id="a1"))
    assert admin == staff_actor("a1", "company_admin")
    platform = actor_for_access(SuperAdminAccess(report_id="r1", company_id="c1", subject_id="p1"))
    assert platform.actor_role == "super_admin"


@pytest.mark.asyncio
@pytest.mark.usefixtures("db_schema")
async def test_record_event_persists_sanitized_row() -> None:
    async with SessionLocal() as session:
        await record_event(
            session,
            company_id="c1",
            actor=staff_actor("a1", "company_admin"),
            event_type="crypto.data_key.verified",
            outcome="failure",
            resource_type="company",
            resource_id="c1",
            metadata={"candidate_key": "abc", "attempt": 1},
        )
    async with SessionLocal() as session:
        row = (await session.execute(select(AuditEvent))).scalar_one()
    assert row.actor_type == "staff"
    assert row.actor_id == "a1"
    assert row.outcome == "failure"
    assert row.metadata_json == {"candidate_key": "[REDACTED]", "attempt": 1}
