from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field, ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from tipline.apps.api.deps import authorize_report, get_db, get_staff_principal, supplied_encryption_key
from tipline.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from tipline.apps.api.response import SuccessEnvelope, success_response
from tipline.core.config import get_settings
from tipline.core.errors import ReportValidationError
from tipline.services import reports as report_service
from tipline.services.auth.staff_sessions import StaffPrincipal


router = APIRouter(prefix="/reports", tags=["comments"], responses=DEFAULT_ERROR_RESPONSES)


class CommentCreateRequest(BaseModel):
    content: str = Field(min_length=1)
    is_internal: bool = False


class CommentResponse(BaseModel):
    id: str
    content: str
    author_type: str
    is_internal: bool
    created_at: datetime | None


def _form_bool(value: object) -> bool:
    return str(value or "").strip().lower() in {"1", "true", "yes", "on"}


async def _read_comment_body(request: Request) -> tuple[CommentCreateRequest, str | None]:
    # Accept JSON and multipart alike; multipart carries the reporter token as a form field.
    content_type = (request.headers.get("content-type") or "").lower()
    form_token: str | None = None
    try:
        if content_type.startswith("multipart/form-data") or content_type.startswith(
            "application/x-www-form-urlencoded"
        ):
            form = await request.form()
            token_value = form.get(get_settings().reporter_token_form_field)
            form_token = token_value if isinstance(token_value, str) else None
            content_value = form.get("content")
            body = CommentCreateRequest(
                content=content_value if isinstance(content_value, str) else "",
                is_internal=_form_bool(form.get("is_internal")),
            )
        else:
            body = CommentCreateRequest.model_validate(await request.json())
    except (ValidationError, ValueError) as exc:
        raise HTTPException(
            status_code=400,
            detail={"code": "COMMENT_INVALID", "message": "Comment content is required"},
        ) from exc
    return body, form_token


@router.get("/{report_ref}/comments", response_model=SuccessEnvelope[list[CommentResponse]])
async def list_comments(
    request: Request,
    report_ref: str,
    staff: StaffPrincipal | None = Depends(get_staff_principal),
    db: AsyncSession = Depends(get_db),
) -> dict:
    access = await authorize_report(request, db, report_ref, staff=staff)
    comments = await report_service.load_comments(db, access, supplied_encryption_key(request))
    return success_response(request=request, data=[CommentResponse(**row) for row in comments])


@router.post("/{report_ref}/comments", response_model=SuccessEnvelope[CommentResponse])
async def create_comment(
    request: Request,
    report_ref: str,
    staff: StaffPrincipal | None = Depends(get_staff_principal),
    db: AsyncSession = Depends(get_db),
) -> dict:
    body, form_token = await _read_comment_body(request)
    access = await authorize_report(request, db, report_ref, staff=staff, form_token=form_token)
    try:
        comment = await report_service.add_comment(
            db,
            access,
            content=body.content,
            is_internal=body.is_internal,
            supplied_key=supplied_encryption_key(request),
        )
    except ReportValidationError as exc:
        raise HTTPException(status_code=400, detail={"code": "COMMENT_INVALID", "message": str(exc)}) from exc
    return success_response(request=request, data=CommentResponse(**comment))
