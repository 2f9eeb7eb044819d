from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Form, Request
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from tipline.apps.api.deps import (
    authorize_report,
    ensure_staff,
    forbidden_error,
    get_db,
    get_staff_principal,
    supplied_encryption_key,
)
from tipline.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from tipline.apps.api.response import SuccessEnvelope, success_response
from tipline.services import reports as report_service
from tipline.services.audit import get_request_context
from tipline.services.auth.staff_sessions import StaffPrincipal


router = APIRouter(prefix="/reports", tags=["reports"], responses=DEFAULT_ERROR_RESPONSES)


class ReporterReceiptResponse(BaseModel):
    report_id: str
    report_number: str
    reporter_token: str
    expires_in: int


class StatusResponse(BaseModel):
    id: str
    name: str
    is_default: bool
    is_terminal: bool


class ReportResponse(BaseModel):
    id: str
    report_number: str
    company_id: str
    title: str
    content: str
    status: StatusResponse | None
    view_count: int
    created_at: datetime | None
    updated_at: datetime | None
    access_role: str
    encryption_configured: bool


class ReportUpdateRequest(BaseModel):
    title: str | None = Field(default=None, min_length=1)
    content: str | None = Field(default=None, min_length=1)
    status_name: str | None = Field(default=None, min_length=1, max_length=100)


class ReportUpdateResponse(BaseModel):
    changed: list[str]


class DeletedResponse(BaseModel):
    deleted: bool


class EditHistoryEntry(BaseModel):
    id: int
    field_name: str
    old_value: str | None
    new_value: str | None
    edited_by: str
    edited_at: datetime | None


class AccessLogEntry(BaseModel):
    id: int
    accessed_at: datetime | None
    ip_hash: str | None


def _receipt_payload(receipt: report_service.ReporterReceipt) -> ReporterReceiptResponse:
    return ReporterReceiptResponse(
        report_id=receipt.report_id,
        report_number=receipt.report_number,
        reporter_token=receipt.reporter_token,
        expires_in=receipt.expires_in,
    )


@router.post("", response_model=SuccessEnvelope[ReporterReceiptResponse])
async def submit_report(
    request: Request,
    company_code: str = Form(...),
    title: str = Form(...),
    content: str = Form(...),
    password: str = Form(...),
    db: AsyncSession = Depends(get_db),
) -> dict:
    # Anonymous intake: the receipt's token is the reporter's only credential besides the password.
    request_ctx = get_request_context(request)
    locale = (request.headers.get("accept-language") or "").split(",")[0].split("-")[0] or None
    receipt = await report_service.submit_report(
        db,
        company_code=company_code,
        title=title,
        content=content,
        password=password,
        ip_address=request_ctx["ip_address"],
        locale=locale,
        request_id=request_ctx["request_id"],
    )
    return success_response(request=request, data=_receipt_payload(receipt))


@router.get("/{report_ref}", response_model=SuccessEnvelope[ReportResponse])
async def get_report(
    request: Request,
    report_ref: str,
    staff: StaffPrincipal | None = Depends(get_staff_principal),
    db: AsyncSession = Depends(get_db),
) -> dict:
    access = await authorize_report(request, db, report_ref, staff=staff)
    view = await report_service.load_report_view(db, access, supplied_encryption_key(request))
    return success_response(request=request, data=ReportResponse(**view))


@router.patch("/{report_ref}", response_model=SuccessEnvelope[ReportUpdateResponse])
async def update_report(
    request: Request,
    report_ref: str,
    payload: ReportUpdateRequest,
    staff: StaffPrincipal | None = Depends(get_staff_principal),
    db: AsyncSession = Depends(get_db),
) -> dict:
    access = await authorize_report(request, db, report_ref, staff=staff)
    try:
        changed = await report_service.update_report(
            db,
            access,
            title=payload.title,
            content=payload.content,
            status_name=payload.status_name,
        )
    except PermissionError as exc:
        raise forbidden_error("Only staff can change report status") from exc
    return success_response(request=request, data=ReportUpdateResponse(changed=changed))


@router.delete("/{report_ref}", response_model=SuccessEnvelope[DeletedResponse])
async def delete_report(
    request: Request,
    report_ref: str,
    staff: StaffPrincipal | None = Depends(get_staff_principal),
    db: AsyncSession = Depends(get_db),
) -> dict:
    access = await authorize_report(request, db, report_ref, staff=staff)
    await report_service.delete_report(db, access, request_id=get_request_context(request)["request_id"])
    return success_response(request=request, data=DeletedResponse(deleted=True))


@router.get("/{report_ref}/edit-history", response_model=SuccessEnvelope[list[EditHistoryEntry]])
async def get_edit_history(
    request: Request,
    report_ref: str,
    staff: StaffPrincipal | None = Depends(get_staff_principal),
    db: AsyncSession = Depends(get_db),
) -> dict:
    access = await authorize_report(request, db, report_ref, staff=staff)
    ensure_staff(access)
    history = await report_service.load_edit_history(db, access, supplied_encryption_key(request))
    return success_response(request=request, data=[EditHistoryEntry(**row) for row in history])


@router.get("/{report_ref}/access-logs", response_model=SuccessEnvelope[list[AccessLogEntry]])
async def get_access_logs(
    request: Request,
    report_ref: str,
    staff: StaffPrincipal | None = Depends(get_staff_principal),
    db: AsyncSession = Depends(get_db),
) -> dict:
    access = await authorize_report(request, db, report_ref, staff=staff)
    ensure_staff(access)
    logs = await report_service.load_access_logs(db, access)
    return success_response(request=request, data=[AccessLogEntry(**row) for row in logs])
