"""Seal plaintext history under a company's current data key.

Key generation never touches existing rows; reports submitted before a
company opted in stay plaintext until an operator runs this job. Values that
already look like envelopes are skipped, so the job is safe to re-run. It
does not re-encrypt content sealed under an older, replaced key.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tipline.core.config import get_settings
from tipline.core.errors import DataKeyError
from tipline.domain.models import Comment, Report, ReportEditHistory
from tipline.services.audit import record_event, system_actor
from tipline.services.crypto.cipher import encrypt_field, looks_encrypted
from tipline.services.crypto.data_keys import get_data_key
from tipline.services.telemetry import increment_counter


logger = logging.getLogger(__name__)

_SEALED_HISTORY_FIELDS = ("title", "content")


@dataclass
class BackfillResult:
    company_id: str
    reports_sealed: int = 0
    comments_sealed: int = 0
    history_sealed: int = 0

    @property
    def total(self) -> int:
        return self.reports_sealed + self.comments_sealed + self.history_sealed


def _seal_attrs(row: Any, attrs: tuple[str, ...], key: str) -> bool:
    touched = False
    for attr in attrs:
        value = getattr(row, attr)
        if value is None or looks_encrypted(value):
            continue
        setattr(row, attr, encrypt_field(value, key))
        touched = True
    return touched


async def backfill_company(
    session: AsyncSession,
    company_id: str,
    *,
    batch_size: int | None = None,
) -> BackfillResult:
    settings = get_settings()
    batch_size = batch_size or settings.crypto_backfill_batch_size
    key = await get_data_key(session, company_id)
    if key is None:
        raise DataKeyError(f"company {company_id} has no data key to backfill with")
    result = BackfillResult(company_id=company_id)

    report_ids = list(
        (await session.execute(select(Report.id).where(Report.company_id == company_id))).scalars().all()
    )
    for start in range(0, len(report_ids), batch_size):
        batch_ids = report_ids[start:start + batch_size]
        reports = (await session.execute(select(Report).where(Report.id.in_(batch_ids)))).scalars().all()
        for report in reports:
            if _seal_attrs(report, ("title", "content"), key):
                result.reports_sealed += 1
        comments = (
            await session.execute(select(Comment).where(Comment.report_id.in_(batch_ids)))
        ).scalars().all()
        for comment in comments:
            if _seal_attrs(comment, ("content",), key):
                result.comments_sealed += 1
        history = (
            await session.execute(
                select(ReportEditHistory).where(
                    ReportEditHistory.report_id.in_(batch_ids),
                    ReportEditHistory.field_name.in_(_SEALED_HISTORY_FIELDS),
                )
            )
        ).scalars().all()
        for row in history:
            if _seal_attrs(row, ("old_value", "new_value"), key):
                result.history_sealed += 1
        # Commit per batch so a long backfill makes durable progress.
        await session.commit()
        logger.info(
            "encryption_backfill_progress company_id=%s processed_reports=%s total_reports=%s",
            company_id,
            min(start + batch_size, len(report_ids)),
            len(report_ids),
        )

    increment_counter("crypto_backfill_sealed_total", result.total)
    await record_event(
        session,
        company_id=company_id,
        actor=system_actor("encryption_backfill"),
        event_type="crypto.backfill.completed",
        resource_type="company",
        resource_id=company_id,
        metadata={
            "reports_sealed": result.reports_sealed,
            "comments_sealed": result.comments_sealed,
            "history_sealed": result.history_sealed,
        },
    )
    return result
