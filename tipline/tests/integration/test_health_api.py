from __future__ import annotations

import pytest
from httpx import ASGITransport, AsyncClient

from tipline.apps.api.main import create_app


pytestmark = pytest.mark.usefixtures("db_schema")


@pytest.mark.asyncio
async def test_health_reports_database_and_envelope_headers() -> None:
    async with AsyncClient(transport=ASGITransport(app=create_app()), base_url="http://test") as client:
        response = await client.get("/v1/health", headers={"X-Request-Id": "req-health-1"})

    assert response.status_code == 200
    body = response.json()
    assert body["data"]["status"] == "ok"
    assert body["data"]["database"] == "ok"
    assert body["meta"]["request_id"] == "req-health-1"
    assert response.headers["X-Request-Id"] == "req-health-1"
    assert response.headers["Cache-Control"] == "no-store"
