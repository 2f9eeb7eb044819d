from __future__ import annotations

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select

from tipline.apps.api.main import create_app
from tipline.domain.models import AuditEvent, Company, Report
from tipline.persistence.db import SessionLocal
from tipline.services.crypto import looks_encrypted
from tipline.tests.utils.seed import company_code, create_company, create_staff_cookies, report_form


pytestmark = pytest.mark.usefixtures("db_schema")


def _client(cookies: dict[str, str] | None = None) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=create_app()), base_url="http://test", cookies=cookies)


def _bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


async def _submit(client: AsyncClient, company_id: str, **overrides: str) -> dict:
    resp = await client.post("/v1/reports", data=report_form(await company_code(company_id), **overrides))
    assert resp.status_code == 200, resp.text
    return resp.json()["data"]


def _assert_unauthorized(resp) -> None:
    assert resp.status_code == 401
    body = resp.json()
    assert body["error"]["code"] == "AUTH_UNAUTHORIZED"
    assert body["error"]["message"] == "Unauthorized"
    assert "details" not in body["error"]


@pytest.mark.asyncio
async def test_reporter_submits_and_reads_plaintext_report() -> None:
    company_id = await create_company()
    async with _client() as client:
        receipt = await _submit(client, company_id)
        assert len(receipt["report_number"]) == 8
        assert receipt["expires_in"] == 3600

        resp = await client.get(f"/v1/reports/{receipt['report_id']}", headers=_bearer(receipt["reporter_token"]))
        assert resp.status_code == 200
        assert resp.headers["X-Request-Id"]
        data = resp.json()["data"]
        assert data["title"] == "Expense fraud in purchasing"
        assert data["access_role"] == "reporter"
        assert data["encryption_configured"] is False
        assert data["status"]["name"] == "New"

        by_number = await client.get(
            f"/v1/reports/{receipt['report_number'].lower()}",
            headers=_bearer(receipt["reporter_token"]),
        )
        assert by_number.status_code == 200
        assert by_number.json()["data"]["id"] == receipt["report_id"]

    async with SessionLocal() as session:
        stored = await session.get(Report, receipt["report_id"])
        assert stored is not None
        assert stored.title == "Expense fraud in purchasing"
        assert stored.content == report_form("X")["content"]
        assert looks_encrypted(stored.title) is False
        assert looks_encrypted(stored.content) is False
        events = (
            await session.execute(select(AuditEvent).where(AuditEvent.event_type == "report.submitted"))
        ).scalars().all()
    assert len(events) == 1
    assert events[0].resource_id == receipt["report_id"]


@pytest.mark.asyncio
async def test_submission_validation_and_unknown_company() -> None:
    company_id = await create_company()
    async with _client() as client:
        short = await client.post("/v1/reports", data=report_form(await company_code(company_id), title="Hi"))
        assert short.status_code == 400
        assert short.json()["error"]["code"] == "REPORT_INVALID"

        unknown = await client.post("/v1/reports", data=report_form("no-such-company"))
        assert unknown.status_code == 404
        assert unknown.json()["error"]["code"] == "COMPANY_NOT_FOUND"

        missing = await client.post("/v1/reports", data={"company_code": "x"})
        assert missing.status_code == 422


@pytest.mark.asyncio
async def test_encrypted_company_reporter_sees_plaintext_staff_needs_key() -> None:
    company_id = await create_company()
    admin_cookies = await create_staff_cookies(role="company_admin", company_id=company_id)
    async with _client(admin_cookies) as admin:
        key_resp = await admin.post("/v1/company/encryption-key/generate", json={})
        assert key_resp.status_code == 200
        raw_key = key_resp.json()["data"]["key"]

    async with _client() as reporter:
        receipt = await _submit(reporter, company_id, title="Sealed title here")
        resp = await reporter.get(f"/v1/reports/{receipt['report_id']}", headers=_bearer(receipt["reporter_token"]))
        assert resp.status_code == 200
        assert resp.json()["data"]["title"] == "Sealed title here"
        assert resp.json()["data"]["encryption_configured"] is True

    async with SessionLocal() as session:
        stored = await session.get(Report, receipt["report_id"])
        assert stored is not None
        assert looks_encrypted(stored.title)
        assert looks_encrypted(stored.content)
        assert "Sealed" not in stored.title

    async with _client(admin_cookies) as admin:
        locked = await admin.get(f"/v1/reports/{receipt['report_id']}")
        assert locked.status_code == 200
        assert locked.json()["data"]["title"] == "[ENCRYPTED]"
        assert locked.json()["data"]["access_role"] == "company_admin"

        unlocked = await admin.get(f"/v1/reports/{receipt['report_id']}", headers={"x-encryption-key": raw_key})
        assert unlocked.json()["data"]["title"] == "Sealed title here"

        wrong = await admin.get(
            f"/v1/reports/{receipt['report_id']}",
            headers={"x-encryption-key": "ab" * 32},
        )
        assert wrong.json()["data"]["title"] == "[DECRYPTION_FAILED]"


@pytest.mark.asyncio
async def test_every_denial_is_the_same_401() -> None:
    company_a = await create_company()
    company_b = await create_company()
    foreign_admin = await create_staff_cookies(role="company_admin", company_id=company_b)
    async with _client() as client:
        first = await _submit(client, company_a)
        second = await _submit(client, company_a)

        _assert_unauthorized(await client.get(f"/v1/reports/{first['report_id']}"))
        _assert_unauthorized(
            await client.get("/v1/reports/00000000-0000-0000-0000-000000000000", headers=_bearer(first["reporter_token"]))
        )
        _assert_unauthorized(
            await client.get(f"/v1/reports/{second['report_id']}", headers=_bearer(first["reporter_token"]))
        )
        _assert_unauthorized(await client.get(f"/v1/reports/{first['report_id']}", headers=_bearer("garbage")))
        _assert_unauthorized(
            await client.get(f"/v1/reports/{first['report_id']}", headers={"Authorization": "Basic abc"})
        )

    async with _client(foreign_admin) as admin:
        _assert_unauthorized(await admin.get(f"/v1/reports/{first['report_id']}"))
        _assert_unauthorized(
            await admin.get(f"/v1/reports/{first['report_id']}", headers=_bearer(second["reporter_token"]))
        )


@pytest.mark.asyncio
async def test_super_admin_reads_any_company_report() -> None:
    company_id = await create_company()
    platform_cookies = await create_staff_cookies(role="super_admin")
    async with _client() as client:
        receipt = await _submit(client, company_id)
    async with _client(platform_cookies) as platform:
        resp = await platform.get(f"/v1/reports/{receipt['report_number']}")
        assert resp.status_code == 200
        assert resp.json()["data"]["access_role"] == "super_admin"


@pytest.mark.asyncio
async def test_expired_staff_session_is_rejected() -> None:
    company_id = await create_company()
    stale_cookies = await create_staff_cookies(role="company_admin", company_id=company_id, ttl_hours=-1)
    async with _client() as client:
        receipt = await _submit(client, company_id)
    async with _client(stale_cookies) as admin:
        _assert_unauthorized(await admin.get(f"/v1/reports/{receipt['report_id']}"))


@pytest.mark.asyncio
async def test_reporter_edits_are_recorded_and_status_is_staff_only() -> None:
    company_id = await create_company()
    admin_cookies = await create_staff_cookies(role="company_admin", company_id=company_id)
    async with _client(admin_cookies) as admin:
        raw_key = (await admin.post("/v1/company/encryption-key/generate")).json()["data"]["key"]

    async with _client() as reporter:
        receipt = await _submit(reporter, company_id)
        headers = _bearer(receipt["reporter_token"])
        edit = await reporter.patch(
            f"/v1/reports/{receipt['report_id']}",
            headers=headers,
            json={"title": "Expense fraud in purchasing dept"},
        )
        assert edit.status_code == 200
        assert edit.json()["data"]["changed"] == ["title"]

        unchanged = await reporter.patch(
            f"/v1/reports/{receipt['report_id']}",
            headers=headers,
            json={"title": "Expense fraud in purchasing dept"},
        )
        assert unchanged.json()["data"]["changed"] == []

        status_attempt = await reporter.patch(
            f"/v1/reports/{receipt['report_id']}",
            headers=headers,
            json={"status_name": "Closed"},
        )
        assert status_attempt.status_code == 403
        assert status_attempt.json()["error"]["code"] == "AUTH_FORBIDDEN"

        history_attempt = await reporter.get(f"/v1/reports/{receipt['report_id']}/edit-history", headers=headers)
        assert history_attempt.status_code == 403

    async with _client(admin_cookies) as admin:
        history = await admin.get(
            f"/v1/reports/{receipt['report_id']}/edit-history",
            headers={"x-encryption-key": raw_key},
        )
        assert history.status_code == 200
        entries = history.json()["data"]
        assert len(entries) == 1
        assert entries[0]["field_name"] == "title"
        assert entries[0]["old_value"] == "Expense fraud in purchasing"
        assert entries[0]["new_value"] == "Expense fraud in purchasing dept"
        assert entries[0]["edited_by"] == "reporter"

        sealed_history = await admin.get(f"/v1/reports/{receipt['report_id']}/edit-history")
        assert sealed_history.json()["data"][0]["old_value"] == "[ENCRYPTED]"

        bad_status = await admin.patch(f"/v1/reports/{receipt['report_id']}", json={"status_name": "Nope"})
        assert bad_status.status_code == 400

        moved = await admin.patch(f"/v1/reports/{receipt['report_id']}", json={"status_name": "In Progress"})
        assert moved.status_code == 200
        assert moved.json()["data"]["changed"] == ["status_id"]

    async with _client() as reporter:
        view = await reporter.get(f"/v1/reports/{receipt['report_id']}", headers=_bearer(receipt["reporter_token"]))
        assert view.json()["data"]["title"] == "Expense fraud in purchasing dept"
        assert view.json()["data"]["status"]["name"] == "In Progress"

        locked = await reporter.delete(
            f"/v1/reports/{receipt['report_id']}",
            headers=_bearer(receipt["reporter_token"]),
        )
        assert locked.status_code == 409
        assert locked.json()["error"]["code"] == "REPORT_LOCKED"


@pytest.mark.asyncio
async def test_reporter_can_delete_report_in_initial_status() -> None:
    company_id = await create_company()
    async with _client() as reporter:
        receipt = await _submit(reporter, company_id)
        headers = _bearer(receipt["reporter_token"])
        await reporter.post(f"/v1/reports/{receipt['report_id']}/comments", headers=headers, json={"content": "hi"})

        deleted = await reporter.delete(f"/v1/reports/{receipt['report_id']}", headers=headers)
        assert deleted.status_code == 200
        assert deleted.json()["data"] == {"deleted": True}

        _assert_unauthorized(await reporter.get(f"/v1/reports/{receipt['report_id']}", headers=headers))

    async with SessionLocal() as session:
        assert await session.get(Report, receipt["report_id"]) is None


@pytest.mark.asyncio
async def test_corrupt_company_key_surfaces_as_server_error() -> None:
    company_id = await create_company()
    admin_cookies = await create_staff_cookies(role="company_admin", company_id=company_id)
    async with _client(admin_cookies) as admin:
        assert (await admin.post("/v1/company/encryption-key/generate")).status_code == 200
    async with _client() as reporter:
        receipt = await _submit(reporter, company_id)

    async with SessionLocal() as session:
        company = await session.get(Company, company_id)
        assert company is not None
        company.data_encryption_iv = None
        await session.commit()

    async with _client() as reporter:
        resp = await reporter.get(f"/v1/reports/{receipt['report_id']}", headers=_bearer(receipt["reporter_token"]))
        assert resp.status_code == 500
        assert resp.json()["error"]["code"] == "DATA_KEY_CORRUPTED"
