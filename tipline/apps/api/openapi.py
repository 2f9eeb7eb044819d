from __future__ import annotations

from typing import Any

from tipline.apps.api.response import ErrorEnvelope


def _error_example(*, code: str, message: str) -> dict[str, Any]:
    return {
        "error": {"code": code, "message": message},
        "meta": {"request_id": "req_example", "api_version": "v1"},
    }


def _error_response(description: str, code: str, message: str) -> dict[str, Any]:
    return {
        "model": ErrorEnvelope,
        "description": description,
        "content": {"application/json": {"example": _error_example(code=code, message=message)}},
    }


DEFAULT_ERROR_RESPONSES: dict[int, dict[str, Any]] = {
    400: _error_response("Bad request", "BAD_REQUEST", "Bad request"),
    401: _error_response("Unauthorized", "AUTH_UNAUTHORIZED", "Unauthorized"),
    403: _error_response("Forbidden", "AUTH_FORBIDDEN", "Operation not permitted for this role"),
    409: _error_response("Conflict", "DATA_KEY_EXISTS", "Company already has a data key"),
    422: _error_response("Validation error", "REQUEST_VALIDATION_ERROR", "Validation error"),
    500: _error_response("Internal error", "INTERNAL_ERROR", "Internal server error"),
}
