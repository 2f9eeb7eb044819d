from __future__ import annotations

import time
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.openapi.utils import get_openapi
from starlette.exceptions import HTTPException as StarletteHTTPException

from tipline.apps.api.errors import (
    domain_exception_handler,
    http_exception_handler,
    unhandled_exception_handler,
    validation_exception_handler,
)
from tipline.apps.api.response import API_VERSION
from tipline.apps.api.routes.comments import router as comments_router
from tipline.apps.api.routes.company import router as company_router
from tipline.apps.api.routes.health import router as health_router
from tipline.apps.api.routes.report_check import router as report_check_router
from tipline.apps.api.routes.reports import router as reports_router
from tipline.core.config import get_settings
from tipline.core.errors import TiplineError
from tipline.core.logging import configure_logging
from tipline.services.telemetry import record_request


def create_app() -> FastAPI:
    configure_logging()
    settings = get_settings()
    app = FastAPI(title=settings.app_name)

    @app.middleware("http")
    async def request_context_middleware(request: Request, call_next):  # type: ignore[override]
        # Preserve incoming request IDs or assign a new one for traceability.
        request_id = request.headers.get("X-Request-Id") or str(uuid4())
        request.state.request_id = request_id
        start = time.monotonic()
        response = await call_next(request)
        latency_ms = (time.monotonic() - start) * 1000.0
        record_request(path=request.url.path, status_code=response.status_code, latency_ms=latency_ms)
        response.headers.setdefault("X-Request-Id", request_id)
        # Report payloads must never land in shared caches.
        response.headers.setdefault("Cache-Control", "no-store")
        return response

    app.add_exception_handler(StarletteHTTPException, http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, validation_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(TiplineError, domain_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # Mount versioned v1 API routes.
    app.include_router(health_router, prefix=f"/{API_VERSION}")
    # Reporter intake and token exchange are the only anonymous entry points.
    app.include_router(report_check_router, prefix=f"/{API_VERSION}")
    app.include_router(reports_router, prefix=f"/{API_VERSION}")
    app.include_router(comments_router, prefix=f"/{API_VERSION}")
    app.include_router(company_router, prefix=f"/{API_VERSION}")

    def custom_openapi() -> dict:
        # Document both credential transports accepted by report routes.
        if app.openapi_schema:
            return app.openapi_schema
        schema = get_openapi(title=settings.app_name, version=API_VERSION, routes=app.routes)
        components = schema.setdefault("components", {})
        security_schemes = components.setdefault("securitySchemes", {})
        security_schemes["ReporterToken"] = {"type": "http", "scheme": "bearer"}
        security_schemes["StaffSession"] = {
            "type": "apiKey",
            "in": "cookie",
            "name": settings.staff_session_cookie,
        }
        public_paths = {"/v1/health", "/v1/report-check"}
        for path, operations in schema.get("paths", {}).items():
            if path in public_paths:
                continue
            for operation in operations.values():
                operation.setdefault("security", [{"ReporterToken": []}, {"StaffSession": []}])
        app.openapi_schema = schema
        return app.openapi_schema

    app.openapi = custom_openapi

    return app


app = create_app()
