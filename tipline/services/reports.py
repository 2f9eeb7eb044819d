from __future__ import annotations

from dataclasses import dataclass
import hashlib
import hmac
import logging
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from tipline.core.config import get_settings
from tipline.core.errors import CompanyNotFoundError, ReportLockedError, ReportValidationError
from tipline.domain.models import (
    Comment,
    Company,
    Report,
    ReportEditHistory,
    ReporterAccessLog,
    ReportStatus,
)
from tipline.persistence.repos import reports as reports_repo
from tipline.services.access import GrantedAccess, ReporterAccess, is_staff
from tipline.services.audit import REPORTER_ACTOR, actor_for_access, record_event
from tipline.services.auth.passwords import burn_password_check, hash_password, verify_password
from tipline.services.auth.reporter_tokens import issue_reporter_token
from tipline.services.crypto.data_keys import is_encryption_configured
from tipline.services.crypto.kms.local import derive_purpose_key, load_master_key
from tipline.services.field_gate import clean_supplied_key, open_field, resolve_read_key, seal_field, write_key


logger = logging.getLogger(__name__)

_REPORT_NUMBER_ATTEMPTS = 20


@dataclass(frozen=True)
class ReporterReceipt:
    report_id: str
    report_number: str
    company_id: str
    reporter_token: str
    expires_in: int


def hash_ip(ip_address: str | None) -> str:
    # Keyed hash: the IPv4 space is small enough to brute-force a plain digest.
    key = derive_purpose_key(load_master_key(), "reporter-ip")
    client = (ip_address or "unknown").split(",")[0].strip()
    return hmac.new(key, client.encode("utf-8"), hashlib.sha256).hexdigest()


def _receipt(report: Report) -> ReporterReceipt:
    settings = get_settings()
    return ReporterReceipt(
        report_id=report.id,
        report_number=report.report_number,
        company_id=report.company_id,
        reporter_token=issue_reporter_token(report.id, report.company_id),
        expires_in=settings.reporter_token_ttl_seconds,
    )


def _status_payload(status: ReportStatus | None) -> dict[str, Any] | None:
    if status is None:
        return None
    return {
        "id": status.id,
        "name": status.name,
        "is_default": status.is_default,
        "is_terminal": status.is_terminal,
    }


def _validate_submission(*, title: str, content: str, password: str) -> None:
    settings = get_settings()
    if not title or not content or not password:
        raise ReportValidationError("title, content and password are required")
    if len(title.strip()) < settings.report_title_min_length:
        raise ReportValidationError(f"title must be at least {settings.report_title_min_length} characters")
    if len(content.strip()) < settings.report_content_min_length:
        raise ReportValidationError(f"content must be at least {settings.report_content_min_length} characters")
    if len(password) < settings.reporter_password_min_length:
        raise ReportValidationError(
            f"password must be at least {settings.reporter_password_min_length} characters"
        )


async def _unique_report_number(session: AsyncSession) -> str:
    settings = get_settings()
    for _ in range(_REPORT_NUMBER_ATTEMPTS):
        candidate = reports_repo.generate_report_number(settings.report_number_length)
        if not await reports_repo.report_number_exists(session, candidate):
            return candidate
    raise RuntimeError("could not allocate a unique report number")


async def submit_report(
    session: AsyncSession,
    *,
    company_code: str,
    title: str,
    content: str,
    password: str,
    ip_address: str | None,
    locale: str | None,
    request_id: str | None = None,
) -> ReporterReceipt:
    _validate_submission(title=title, content=content, password=password)
    company = (
        await session.execute(
            select(Company).where(Company.code == company_code, Company.is_active.is_(True))
        )
    ).scalar_one_or_none()
    if company is None:
        raise CompanyNotFoundError(f"no active company for code {company_code}")

    key = await write_key(session, company.id)
    default_status = await reports_repo.get_default_status(session, company.id)
    report = Report(
        company_id=company.id,
        status_id=default_status.id if default_status else None,
        report_number=await _unique_report_number(session),
        title=seal_field(title, key),
        content=seal_field(content, key),
        password_hash=await hash_password(password),
        reporter_ip_hash=hash_ip(ip_address),
        reporter_locale=locale,
    )
    session.add(report)
    await session.commit()
    logger.info(
        "report_submitted company_id=%s report_id=%s sealed=%s",
        company.id,
        report.id,
        key is not None,
    )
    await record_event(
        session,
        company_id=company.id,
        actor=REPORTER_ACTOR,
        event_type="report.submitted",
        resource_type="report",
        resource_id=report.id,
        request_id=request_id,
        metadata={"sealed": key is not None},
    )
    return _receipt(report)


async def check_report(
    session: AsyncSession,
    *,
    report_number: str,
    password: str,
    ip_address: str | None,
    request_id: str | None = None,
) -> ReporterReceipt | None:
    # Unknown numbers and wrong passwords are indistinguishable to the caller.
    report = await reports_repo.get_report_by_number(session, report_number)
    if report is None:
        await burn_password_check(password)
        return None
    if not await verify_password(password, report.password_hash):
        return None
    session.add(ReporterAccessLog(report_id=report.id, ip_hash=hash_ip(ip_address)))
    await reports_repo.increment_view_count(session, report.id)
    await session.commit()
    await record_event(
        session,
        company_id=report.company_id,
        actor=REPORTER_ACTOR,
        event_type="report.checked",
        resource_type="report",
        resource_id=report.id,
        request_id=request_id,
    )
    return _receipt(report)


async def _load(session: AsyncSession, access: GrantedAccess) -> tuple[Report, Company]:
    report = await session.get(Report, access.report_id)
    company = await session.get(Company, access.company_id)
    if report is None or company is None:
        # The resolver just saw this row; a vanished report is a concurrent delete.
        raise LookupError(f"report {access.report_id} disappeared")
    return report, company


async def load_report_view(
    session: AsyncSession,
    access: GrantedAccess,
    supplied_key: str | None,
) -> dict[str, Any]:
    report, company = await _load(session, access)
    key = await resolve_read_key(session, access, supplied_key)
    status = await session.get(ReportStatus, report.status_id) if report.status_id else None
    return {
        "id": report.id,
        "report_number": report.report_number,
        "company_id": report.company_id,
        "title": open_field(report.title, key),
        "content": open_field(report.content, key),
        "status": _status_payload(status),
        "view_count": report.view_count,
        "created_at": report.created_at,
        "updated_at": report.updated_at,
        "access_role": access.kind,
        "encryption_configured": is_encryption_configured(company),
    }


async def update_report(
    session: AsyncSession,
    access: GrantedAccess,
    *,
    title: str | None = None,
    content: str | None = None,
    status_name: str | None = None,
) -> list[str]:
    if status_name is not None and not is_staff(access):
        raise PermissionError("only staff can change report status")
    report, _company = await _load(session, access)
    key = await write_key(session, report.company_id)
    changed: list[str] = []

    for field_name, new_value in (("title", title), ("content", content)):
        if not new_value:
            continue
        current_value = getattr(report, field_name)
        if open_field(current_value, key) == new_value:
            continue
        sealed = seal_field(new_value, key)
        session.add(
            ReportEditHistory(
                report_id=report.id,
                field_name=field_name,
                old_value=current_value,
                new_value=sealed,
                edited_by=access.kind,
            )
        )
        setattr(report, field_name, sealed)
        changed.append(field_name)

    if status_name:
        status = await reports_repo.get_status_by_name(session, report.company_id, status_name)
        if status is None:
            raise ReportValidationError(f"unknown status {status_name}")
        if status.id != report.status_id:
            session.add(
                ReportEditHistory(
                    report_id=report.id,
                    field_name="status_id",
                    old_value=report.status_id,
                    new_value=status.id,
                    edited_by=access.kind,
                )
            )
            report.status_id = status.id
            changed.append("status_id")

    if changed:
        await session.commit()
    return changed


async def delete_report(session: AsyncSession, access: GrantedAccess, *, request_id: str | None = None) -> None:
    report, _company = await _load(session, access)
    status = await session.get(ReportStatus, report.status_id) if report.status_id else None
    if status is None or not status.is_default:
        raise ReportLockedError("only reports still in the initial status can be deleted")
    report_id = report.id
    await session.execute(delete(Comment).where(Comment.report_id == report_id))
    await session.execute(delete(ReportEditHistory).where(ReportEditHistory.report_id == report_id))
    await session.execute(delete(ReporterAccessLog).where(ReporterAccessLog.report_id == report_id))
    await session.delete(report)
    await session.commit()
    await record_event(
        session,
        company_id=access.company_id,
        actor=actor_for_access(access),
        event_type="report.deleted",
        resource_type="report",
        resource_id=report_id,
        request_id=request_id,
    )


def _comment_payload(comment: Comment, key: str | None) -> dict[str, Any]:
    return {
        "id": comment.id,
        "content": open_field(comment.content, key),
        "author_type": comment.author_type,
        "is_internal": comment.is_internal,
        "created_at": comment.created_at,
    }


async def load_comments(
    session: AsyncSession,
    access: GrantedAccess,
    supplied_key: str | None,
) -> list[dict[str, Any]]:
    key = await resolve_read_key(session, access, supplied_key)
    comments = await reports_repo.list_comments(
        session,
        access.report_id,
        include_internal=not isinstance(access, ReporterAccess),
    )
    return [_comment_payload(comment, key) for comment in comments]


async def add_comment(
    session: AsyncSession,
    access: GrantedAccess,
    *,
    content: str,
    is_internal: bool,
    supplied_key: str | None,
) -> dict[str, Any]:
    if not content or not content.strip():
        raise ReportValidationError("comment content is required")
    key = await write_key(session, access.company_id)
    comment = Comment(
        report_id=access.report_id,
        content=seal_field(content, key),
        author_type=access.kind,
        author_id=getattr(access, "subject_id", None),
        # Reporters cannot hide comments from themselves.
        is_internal=bool(is_internal) and is_staff(access),
    )
    session.add(comment)
    await session.commit()
    await session.refresh(comment)
    read_key = await resolve_read_key(session, access, supplied_key)
    return _comment_payload(comment, read_key)


async def load_edit_history(
    session: AsyncSession,
    access: GrantedAccess,
    supplied_key: str | None,
) -> list[dict[str, Any]]:
    key = await resolve_read_key(session, access, supplied_key)
    rows = await reports_repo.list_edit_history(session, access.report_id)
    return [
        {
            "id": row.id,
            "field_name": row.field_name,
            "old_value": open_field(row.old_value, key),
            "new_value": open_field(row.new_value, key),
            "edited_by": row.edited_by,
            "edited_at": row.edited_at,
        }
        for row in rows
    ]


async def load_access_logs(session: AsyncSession, access: GrantedAccess) -> list[dict[str, Any]]:
    settings = get_settings()
    rows = await reports_repo.list_access_logs(session, access.report_id, limit=settings.access_log_limit)
    return [{"id": row.id, "accessed_at": row.accessed_at, "ip_hash": row.ip_hash} for row in rows]


async def list_reports_for_company(
    session: AsyncSession,
    company_id: str,
    *,
    supplied_key: str | None,
    page: int,
    limit: int,
) -> dict[str, Any]:
    page = max(1, page)
    limit = max(1, min(limit, 100))
    rows, total = await reports_repo.list_company_reports(
        session,
        company_id,
        offset=(page - 1) * limit,
        limit=limit,
    )
    # Listing is a staff view: only an explicitly supplied key unlocks titles.
    key = clean_supplied_key(supplied_key)
    items: list[dict[str, Any]] = []
    for report, status in rows:
        items.append(
            {
                "id": report.id,
                "report_number": report.report_number,
                "title": open_field(report.title, key),
                "status": _status_payload(status),
                "created_at": report.created_at,
            }
        )
    return {
        "reports": items,
        "total": total,
        "page": page,
        "total_pages": (total + limit - 1) // limit,
    }

