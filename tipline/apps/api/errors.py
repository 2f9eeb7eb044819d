"""Translate exceptions into the shared ``{error, meta}`` envelope.

Domain errors raised below the route layer map to a fixed status, code and
client message here, so handlers only catch what they need to reshape.
Messages are static: exception text can name internal ids and is logged,
never returned.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from tipline.apps.api.response import error_response
from tipline.core.errors import (
    CompanyNotFoundError,
    DataKeyExistsError,
    KeyUnwrapError,
    ReportLockedError,
    ReportValidationError,
    TiplineError,
)


logger = logging.getLogger(__name__)

_STATUS_CODES: dict[int, str] = {
    400: "BAD_REQUEST",
    401: "AUTH_UNAUTHORIZED",
    403: "AUTH_FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
    422: "VALIDATION_ERROR",
    500: "INTERNAL_ERROR",
}

_DOMAIN_ERRORS: dict[type[TiplineError], tuple[int, str, str]] = {
    KeyUnwrapError: (500, "DATA_KEY_CORRUPTED", "Company encryption key could not be loaded"),
    DataKeyExistsError: (
        409,
        "DATA_KEY_EXISTS",
        "An encryption key already exists; replacing it makes existing data unreadable",
    ),
    CompanyNotFoundError: (404, "COMPANY_NOT_FOUND", "Company not found"),
    ReportLockedError: (409, "REPORT_LOCKED", "Reports already in progress cannot be deleted"),
}


def _json_error(
    request: Request,
    status_code: int,
    code: str,
    message: str,
    *,
    details: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    payload = error_response(request=request, code=code, message=message, details=details)
    return JSONResponse(content=payload, status_code=status_code, headers=headers)


def _domain_mapping(exc: TiplineError) -> tuple[int, str, str] | None:
    for cls in type(exc).__mro__:
        mapping = _DOMAIN_ERRORS.get(cls)  # type: ignore[arg-type]
        if mapping is not None:
            return mapping
    return None


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    # Routes raise HTTPException(detail={"code", "message"}); plain string details get a status code.
    detail = exc.detail
    if isinstance(detail, dict):
        code = str(detail.get("code") or _STATUS_CODES.get(exc.status_code, "UNKNOWN_ERROR"))
        message = str(detail.get("message") or "Request failed")
        extra = {key: value for key, value in detail.items() if key not in {"code", "message"}}
    else:
        code = _STATUS_CODES.get(exc.status_code, "UNKNOWN_ERROR")
        message = detail if isinstance(detail, str) else "Request failed"
        extra = {}
    return _json_error(
        request,
        exc.status_code,
        code,
        message,
        details=extra or None,
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    # Drop raw input echoes; request bodies may carry report text or passwords.
    errors = [{k: v for k, v in err.items() if k not in {"input", "ctx"}} for err in exc.errors()]
    return _json_error(
        request,
        422,
        "REQUEST_VALIDATION_ERROR",
        "Validation error",
        details={"errors": errors},
    )


async def domain_exception_handler(request: Request, exc: TiplineError) -> JSONResponse:
    mapping = _domain_mapping(exc)
    if isinstance(exc, ReportValidationError):
        return _json_error(request, 400, "REPORT_INVALID", str(exc))
    if mapping is None:
        return await unhandled_exception_handler(request, exc)
    status_code, code, message = mapping
    if status_code >= 500:
        # Corrupt key material is an integrity incident, not a client error.
        logger.error("domain_error code=%s path=%s", code, request.url.path, exc_info=exc)
    else:
        logger.info("domain_error code=%s path=%s", code, request.url.path)
    return _json_error(request, status_code, code, message)


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    # Avoid leaking stack traces; return a stable internal error envelope.
    logger.error("unhandled_exception path=%s", request.url.path, exc_info=exc)
    return _json_error(request, 500, "INTERNAL_ERROR", "Internal server error")
