# tests/unit/libs/portools-common/test_health.py
from unittest.mock import AsyncMock, patch

import httpx
import pytest
from fastapi import FastAPI

from portools_common.health import create_health_router

pytestmark = pytest.mark.asyncio


async def get_ready(app: FastAPI) -> httpx.Response:
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        return await client.get("/health/ready")


async def test_ready_reports_each_named_dependency():
    """
    GIVEN healthy database and Kafka checks
    WHEN readiness is requested from a router built for 'db' and 'kafka'
    THEN both dependencies are reported ok.
    """
    # ARRANGE
    with patch("portools_common.health.check_db_health", AsyncMock(return_value=True)), \
         patch("portools_common.health.check_kafka_health", AsyncMock(return_value=True)):
        app = FastAPI()
        app.include_router(create_health_router('db', 'kafka'))

        # ACT
        response = await get_ready(app)

    # ASSERT
    assert response.status_code == 200
    assert response.json() == {"status": "ready", "dependencies": {"database": "ok", "kafka": "ok"}}


async def test_unavailable_dependency_is_503():
    with patch("portools_common.health.check_db_health", AsyncMock(return_value=False)):
        app = FastAPI()
        app.include_router(create_health_router('db'))

        response = await get_ready(app)

    assert response.status_code == 503
    assert response.json()["detail"]["dependencies"] == {"database": "unavailable"}


async def test_only_known_dependencies_are_checked():
    with patch("portools_common.health.check_db_health", AsyncMock(return_value=True)):
        app = FastAPI()
        app.include_router(create_health_router('db', 'cache'))

        response = await get_ready(app)

    assert response.json()["dependencies"] == {"database": "ok"}
