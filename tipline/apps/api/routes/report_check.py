from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from tipline.apps.api.deps import auth_error, get_db
from tipline.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from tipline.apps.api.response import SuccessEnvelope, success_response
from tipline.apps.api.routes.reports import ReporterReceiptResponse
from tipline.services import reports as report_service
from tipline.services.audit import get_request_context


router = APIRouter(tags=["reports"], responses=DEFAULT_ERROR_RESPONSES)


class ReportCheckRequest(BaseModel):
    report_number: str = Field(min_length=1, max_length=32)
    password: str = Field(min_length=1)


@router.post("/report-check", response_model=SuccessEnvelope[ReporterReceiptResponse])
async def check_report(
    request: Request,
    payload: ReportCheckRequest,
    db: AsyncSession = Depends(get_db),
) -> dict:
    # Exchange report number and password for a fresh reporter token.
    request_ctx = get_request_context(request)
    receipt = await report_service.check_report(
        db,
        report_number=payload.report_number.strip().upper(),
        password=payload.password,
        ip_address=request_ctx["ip_address"],
        request_id=request_ctx["request_id"],
    )
    if receipt is None:
        raise auth_error()
    return success_response(
        request=request,
        data=ReporterReceiptResponse(
            report_id=receipt.report_id,
            report_number=receipt.report_number,
            reporter_token=receipt.reporter_token,
            expires_in=receipt.expires_in,
        ),
    )
