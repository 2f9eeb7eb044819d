from __future__ import annotations

import pytest
from sqlalchemy import select

from tipline.core.errors import DataKeyError
from tipline.domain.models import Comment, Report, ReportEditHistory
from tipline.persistence.db import SessionLocal
from tipline.services.crypto import backfill_company, decrypt_field, generate_data_key, looks_encrypted
from tipline.services.reports import submit_report
from tipline.tests.utils.seed import company_code, create_company


pytestmark = pytest.mark.usefixtures("db_schema")


async def _seed_plaintext_report(company_id: str) -> str:
    async with SessionLocal() as session:
        receipt = await submit_report(
            session,
            company_code=await company_code(company_id),
            title="Old plaintext report",
            content="Submitted before the company generated a key.",
            password="legacy-password",
            ip_address=None,
            locale=None,
        )
    async with SessionLocal() as session:
        session.add(Comment(report_id=receipt.report_id, content="plaintext reply", author_type="company_admin"))
        session.add(
            ReportEditHistory(
                report_id=receipt.report_id,
                field_name="title",
                old_value="Older title",
                new_value="Old plaintext report",
                edited_by="reporter",
            )
        )
        await session.commit()
    return receipt.report_id


@pytest.mark.asyncio
async def test_backfill_requires_a_key() -> None:
    company_id = await create_company()
    async with SessionLocal() as session:
        with pytest.raises(DataKeyError):
            await backfill_company(session, company_id)


@pytest.mark.asyncio
async def test_backfill_seals_plaintext_and_is_idempotent() -> None:
    company_id = await create_company()
    report_id = await _seed_plaintext_report(company_id)
    async with SessionLocal() as session:
        raw_key = await generate_data_key(session, company_id)

    async with SessionLocal() as session:
        result = await backfill_company(session, company_id, batch_size=1)
    assert result.reports_sealed == 1
    assert result.comments_sealed == 1
    assert result.history_sealed == 1
    assert result.total == 3

    async with SessionLocal() as session:
        report = await session.get(Report, report_id)
        assert report is not None
        assert looks_encrypted(report.title)
        assert decrypt_field(report.content, raw_key) == "Submitted before the company generated a key."
        comment = (await session.execute(select(Comment).where(Comment.report_id == report_id))).scalar_one()
        assert decrypt_field(comment.content, raw_key) == "plaintext reply"
        history = (
            await session.execute(select(ReportEditHistory).where(ReportEditHistory.report_id == report_id))
        ).scalar_one()
        assert decrypt_field(history.old_value, raw_key) == "Older title"
        sealed_title = report.title

    async with SessionLocal() as session:
        again = await backfill_company(session, company_id)
    assert again.total == 0
    async with SessionLocal() as session:
        report = await session.get(Report, report_id)
        assert report is not None
        assert report.title == sealed_title
