from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from tipline.apps.api.deps import get_db, require_company_admin, supplied_encryption_key
from tipline.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from tipline.apps.api.response import SuccessEnvelope, success_response
from tipline.services import reports as report_service
from tipline.services.audit import get_request_context, record_event, staff_actor
from tipline.services.auth.staff_sessions import StaffPrincipal
from tipline.services.crypto import (
    company_encryption_status,
    generate_data_key,
    verify_data_key,
)


router = APIRouter(prefix="/company", tags=["company"], responses=DEFAULT_ERROR_RESPONSES)


class StatusSummary(BaseModel):
    id: str
    name: str
    is_default: bool
    is_terminal: bool


class CompanyReportItem(BaseModel):
    id: str
    report_number: str
    title: str
    status: StatusSummary | None
    created_at: datetime | None


class CompanyReportPage(BaseModel):
    reports: list[CompanyReportItem]
    total: int
    page: int
    total_pages: int


class EncryptionStatusResponse(BaseModel):
    encryption_enabled: bool


class GenerateKeyRequest(BaseModel):
    confirm_replace: bool = False


class GeneratedKeyResponse(BaseModel):
    key: str
    replaced: bool


class VerifyKeyRequest(BaseModel):
    key: str = Field(min_length=1)


class VerifyKeyResponse(BaseModel):
    valid: bool


@router.get("/reports", response_model=SuccessEnvelope[CompanyReportPage])
async def list_reports(
    request: Request,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    principal: StaffPrincipal = Depends(require_company_admin),
    db: AsyncSession = Depends(get_db),
) -> dict:
    listing = await report_service.list_reports_for_company(
        db,
        principal.company_id,
        supplied_key=supplied_encryption_key(request),
        page=page,
        limit=limit,
    )
    return success_response(request=request, data=CompanyReportPage(**listing))


@router.get("/encryption-key", response_model=SuccessEnvelope[EncryptionStatusResponse])
async def get_encryption_status(
    request: Request,
    principal: StaffPrincipal = Depends(require_company_admin),
    db: AsyncSession = Depends(get_db),
) -> dict:
    # Only the status is exposed; the raw key is shown once at generation time.
    enabled = await company_encryption_status(db, principal.company_id)
    return success_response(request=request, data=EncryptionStatusResponse(encryption_enabled=enabled))


@router.post("/encryption-key/generate", response_model=SuccessEnvelope[GeneratedKeyResponse])
async def generate_encryption_key(
    request: Request,
    payload: GenerateKeyRequest | None = None,
    principal: StaffPrincipal = Depends(require_company_admin),
    db: AsyncSession = Depends(get_db),
) -> dict:
    confirm_replace = bool(payload and payload.confirm_replace)
    had_key = await company_encryption_status(db, principal.company_id)
    key = await generate_data_key(
        db,
        principal.company_id,
        confirm_replace=confirm_replace,
        actor_id=principal.subject_id,
        actor_role=principal.role,
        request_id=get_request_context(request)["request_id"],
    )
    return success_response(
        request=request,
        data=GeneratedKeyResponse(key=key, replaced=had_key),
    )


@router.post("/encryption-key/verify", response_model=SuccessEnvelope[VerifyKeyResponse])
async def verify_encryption_key(
    request: Request,
    payload: VerifyKeyRequest,
    principal: StaffPrincipal = Depends(require_company_admin),
    db: AsyncSession = Depends(get_db),
) -> dict:
    if not await company_encryption_status(db, principal.company_id):
        raise HTTPException(
            status_code=400,
            detail={"code": "DATA_KEY_NOT_CONFIGURED", "message": "No encryption key is configured"},
        )
    valid = await verify_data_key(db, principal.company_id, payload.key.strip())
    await record_event(
        db,
        company_id=principal.company_id,
        actor=staff_actor(principal.subject_id, principal.role),
        event_type="crypto.data_key.verified",
        outcome="success" if valid else "failure",
        resource_type="company",
        resource_id=principal.company_id,
        request_id=get_request_context(request)["request_id"],
    )
    return success_response(request=request, data=VerifyKeyResponse(valid=valid))
