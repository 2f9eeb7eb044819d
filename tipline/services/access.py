"""Single authorization choke point for report and comment operations.

The decision chain is strict and ordered:

1. Resolve the report (canonical id or report number). Unknown -> denied.
2. A presented reporter token commits the request to the reporter path:
   it must verify and match both the report and its company, else denied.
   It never falls through to session checks.
3. Without a token, a super-admin session is authorized for any company.
4. A company-admin session is authorized only for its own company.
5. Everything else is denied.

Results form a closed union tagged by ``kind`` so callers must handle each
branch; denial reasons stay internal and are never shown to clients.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Literal, Union

from sqlalchemy.ext.asyncio import AsyncSession

from tipline.persistence.repos.reports import resolve_report_ref
from tipline.services.auth.reporter_tokens import verify_reporter_token
from tipline.services.auth.staff_sessions import StaffPrincipal
from tipline.services.telemetry import increment_counter


logger = logging.getLogger(__name__)

DenialReason = Literal[
    "report_not_found",
    "invalid_reporter_token",
    "reporter_token_scope_mismatch",
    "cross_company_session",
    "no_credentials",
]


@dataclass(frozen=True)
class ReporterAccess:
    report_id: str
    company_id: str
    kind: Literal["reporter"] = field(default="reporter", init=False)


@dataclass(frozen=True)
class CompanyAdminAccess:
    report_id: str
    company_id: str
    subject_id: str
    kind: Literal["company_admin"] = field(default="company_admin", init=False)


@dataclass(frozen=True)
class SuperAdminAccess:
    report_id: str
    company_id: str
    subject_id: str
    kind: Literal["super_admin"] = field(default="super_admin", init=False)


@dataclass(frozen=True)
class AccessDenied:
    reason: DenialReason
    kind: Literal["denied"] = field(default="denied", init=False)


StaffAccess = Union[CompanyAdminAccess, SuperAdminAccess]
GrantedAccess = Union[ReporterAccess, CompanyAdminAccess, SuperAdminAccess]
ReportAccess = Union[ReporterAccess, CompanyAdminAccess, SuperAdminAccess, AccessDenied]


def _deny(reason: DenialReason, report_identifier: str) -> AccessDenied:
    increment_counter("auth_denied_total")
    increment_counter(f"auth_denied_total.{reason}")
    logger.debug("report_access_denied reason=%s identifier=%s", reason, report_identifier)
    return AccessDenied(reason=reason)


async def resolve_report_access(
    session: AsyncSession,
    *,
    report_identifier: str,
    reporter_token: str | None,
    staff: StaffPrincipal | None,
) -> ReportAccess:
    ref = await resolve_report_ref(session, report_identifier)
    if ref is None:
        return _deny("report_not_found", report_identifier)

    if reporter_token:
        claims = verify_reporter_token(reporter_token)
        if claims is None:
            return _deny("invalid_reporter_token", report_identifier)
        if claims.report_id != ref.report_id or claims.company_id != ref.company_id:
            return _deny("reporter_token_scope_mismatch", report_identifier)
        return ReporterAccess(report_id=ref.report_id, company_id=ref.company_id)

    if staff is not None and staff.role == "super_admin":
        return SuperAdminAccess(report_id=ref.report_id, company_id=ref.company_id, subject_id=staff.subject_id)

    if staff is not None and staff.role == "company_admin":
        if staff.company_id is not None and staff.company_id == ref.company_id:
            return CompanyAdminAccess(
                report_id=ref.report_id,
                company_id=ref.company_id,
                subject_id=staff.subject_id,
            )
        return _deny("cross_company_session", report_identifier)

    return _deny("no_credentials", report_identifier)


def is_staff(access: ReportAccess) -> bool:
    return isinstance(access, (CompanyAdminAccess, SuperAdminAccess))
