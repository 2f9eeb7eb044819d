from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from tipline.apps.api.deps import get_db
from tipline.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from tipline.apps.api.response import SuccessEnvelope, success_response
from tipline.services.telemetry import request_stats


logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"], responses=DEFAULT_ERROR_RESPONSES)


class HealthResponse(BaseModel):
    status: str
    database: str
    requests_5m: int
    server_errors_5m: int


@router.get("/health", response_model=SuccessEnvelope[HealthResponse])
async def health(request: Request, db: AsyncSession = Depends(get_db)) -> dict:
    database = "ok"
    try:
        await db.execute(text("SELECT 1"))
    except SQLAlchemyError:
        logger.warning("health_database_unreachable", exc_info=True)
        database = "unavailable"
    stats = request_stats(300)
    payload = HealthResponse(
        status="ok" if database == "ok" else "degraded",
        database=database,
        requests_5m=stats["count"],
        server_errors_5m=stats["server_errors"],
    )
    return success_response(request=request, data=payload)
