from __future__ import annotations

from dataclasses import dataclass
import re
import secrets

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from tipline.domain.models import Comment, Report, ReportEditHistory, ReporterAccessLog, ReportStatus


REPORT_NUMBER_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"
_CANONICAL_ID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class ReportRef:
    report_id: str
    company_id: str


def is_canonical_id(identifier: str) -> bool:
    return bool(_CANONICAL_ID_RE.match(identifier))


def generate_report_number(length: int = 8) -> str:
    return "".join(secrets.choice(REPORT_NUMBER_ALPHABET) for _ in range(length))


async def resolve_report_ref(session: AsyncSession, identifier: str) -> ReportRef | None:
    # Canonical ids win; anything else is treated as a report number.
    identifier = (identifier or "").strip()
    if not identifier:
        return None
    if is_canonical_id(identifier):
        condition = Report.id == identifier.lower()
    else:
        condition = Report.report_number == identifier.upper()
    row = (await session.execute(select(Report.id, Report.company_id).where(condition))).first()
    if row is None:
        return None
    return ReportRef(report_id=row.id, company_id=row.company_id)


async def report_number_exists(session: AsyncSession, report_number: str) -> bool:
    found = await session.scalar(select(Report.id).where(Report.report_number == report_number))
    return found is not None


async def get_report_by_number(session: AsyncSession, report_number: str) -> Report | None:
    return (
        await session.execute(select(Report).where(Report.report_number == report_number.strip().upper()))
    ).scalar_one_or_none()


async def get_default_status(session: AsyncSession, company_id: str) -> ReportStatus | None:
    return (
        await session.execute(
            select(ReportStatus)
            .where(ReportStatus.company_id == company_id, ReportStatus.is_default.is_(True))
            .order_by(ReportStatus.sort_order.asc())
            .limit(1)
        )
    ).scalar_one_or_none()


async def get_status_by_name(session: AsyncSession, company_id: str, name: str) -> ReportStatus | None:
    return (
        await session.execute(
            select(ReportStatus).where(ReportStatus.company_id == company_id, ReportStatus.name == name)
        )
    ).scalar_one_or_none()


async def list_comments(session: AsyncSession, report_id: str, *, include_internal: bool) -> list[Comment]:
    query = select(Comment).where(Comment.report_id == report_id)
    if not include_internal:
        query = query.where(Comment.is_internal.is_(False))
    query = query.order_by(Comment.created_at.asc(), Comment.id.asc())
    return list((await session.execute(query)).scalars().all())


async def list_edit_history(session: AsyncSession, report_id: str) -> list[ReportEditHistory]:
    return list(
        (
            await session.execute(
                select(ReportEditHistory)
                .where(ReportEditHistory.report_id == report_id)
                .order_by(ReportEditHistory.edited_at.desc(), ReportEditHistory.id.desc())
            )
        ).scalars().all()
    )


async def list_access_logs(session: AsyncSession, report_id: str, *, limit: int) -> list[ReporterAccessLog]:
    return list(
        (
            await session.execute(
                select(ReporterAccessLog)
                .where(ReporterAccessLog.report_id == report_id)
                .order_by(ReporterAccessLog.accessed_at.desc(), ReporterAccessLog.id.desc())
                .limit(limit)
            )
        ).scalars().all()
    )


async def list_company_reports(
    session: AsyncSession,
    company_id: str,
    *,
    offset: int,
    limit: int,
) -> tuple[list[tuple[Report, ReportStatus | None]], int]:
    total = await session.scalar(select(func.count()).select_from(Report).where(Report.company_id == company_id))
    rows = (
        await session.execute(
            select(Report, ReportStatus)
            .outerjoin(ReportStatus, ReportStatus.id == Report.status_id)
            .where(Report.company_id == company_id)
            .order_by(Report.created_at.desc(), Report.id.asc())
            .offset(offset)
            .limit(limit)
        )
    ).all()
    return [(row[0], row[1]) for row in rows], int(total or 0)


async def increment_view_count(session: AsyncSession, report_id: str) -> None:
    await session.execute(
        update(Report)
        .where(Report.id == report_id)
        .values(view_count=Report.view_count + 1)
        .execution_options(synchronize_session=False)
    )
