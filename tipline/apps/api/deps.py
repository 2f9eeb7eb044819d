from __future__ import annotations

from typing import AsyncGenerator

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from tipline.core.config import get_settings
from tipline.persistence.db import get_session
from tipline.services.access import AccessDenied, GrantedAccess, ReporterAccess, resolve_report_access
from tipline.services.auth.staff_sessions import StaffPrincipal, resolve_staff_session


UNAUTHORIZED_MESSAGE = "Unauthorized"


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    # One AsyncSession per request; context manager ensures close on success/error.
    async with get_session() as session:
        yield session


def auth_error() -> HTTPException:
    # Every denial looks the same so report existence and tenant boundaries never leak.
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"code": "AUTH_UNAUTHORIZED", "message": UNAUTHORIZED_MESSAGE},
        headers={"WWW-Authenticate": "Bearer"},
    )


def forbidden_error(message: str) -> HTTPException:
    # Use 403 for authorized callers whose role cannot perform the operation.
    return HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail={"code": "AUTH_FORBIDDEN", "message": message},
    )


def parse_bearer_token(header_value: str | None) -> str | None:
    if not header_value:
        return None
    parts = header_value.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    return parts[1]


def reporter_token_from_request(request: Request, form_token: str | None = None) -> str | None:
    # Header wins; the form field covers multipart uploads.
    header_token = parse_bearer_token(request.headers.get("Authorization"))
    if header_token:
        return header_token
    if form_token and form_token.strip():
        return form_token.strip()
    return None


def supplied_encryption_key(request: Request) -> str | None:
    settings = get_settings()
    return request.headers.get(settings.encryption_key_header)


async def get_staff_principal(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> StaffPrincipal | None:
    settings = get_settings()
    raw_token = request.cookies.get(settings.staff_session_cookie)
    return await resolve_staff_session(session=db, raw_token=raw_token)


async def require_company_admin(
    principal: StaffPrincipal | None = Depends(get_staff_principal),
) -> StaffPrincipal:
    if principal is None:
        raise auth_error()
    if principal.role != "company_admin" or not principal.company_id:
        raise forbidden_error("Company admin session required")
    return principal


async def authorize_report(
    request: Request,
    db: AsyncSession,
    report_ref: str,
    *,
    staff: StaffPrincipal | None,
    form_token: str | None = None,
) -> GrantedAccess:
    access = await resolve_report_access(
        db,
        report_identifier=report_ref,
        reporter_token=reporter_token_from_request(request, form_token),
        staff=staff,
    )
    if isinstance(access, AccessDenied):
        raise auth_error()
    return access


def ensure_staff(access: GrantedAccess) -> None:
    if isinstance(access, ReporterAccess):
        raise forbidden_error("Staff access required")
