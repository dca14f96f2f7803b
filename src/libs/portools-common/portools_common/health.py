# src/libs/portools-common/portools_common/health.py
import logging
import asyncio
from typing import Awaitable, Callable, Dict, Tuple

from fastapi import APIRouter, status, HTTPException
from sqlalchemy import text
from confluent_kafka.admin import AdminClient

from .db import AsyncSessionLocal
from .config import KAFKA_BOOTSTRAP_SERVERS

logger = logging.getLogger(__name__)

DependencyCheck = Callable[[], Awaitable[bool]]

async def check_db_health() -> bool:
    """Checks if a valid async connection can be established with the database."""
    try:
        async with AsyncSessionLocal() as session:
            async with session.begin():
                await session.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error(f"Health Check: Database connection failed: {e}", exc_info=False)
        return False

async def check_kafka_health() -> bool:
    """Checks if a connection can be established with Kafka."""
    try:
        admin_client = AdminClient({'bootstrap.servers': KAFKA_BOOTSTRAP_SERVERS})
        await asyncio.to_thread(admin_client.list_topics, timeout=5)
        return True
    except Exception as e:
        logger.error(f"Health Check: Kafka connection failed: {e}", exc_info=False)
        return False

def create_health_router(*dependencies: str) -> APIRouter:
    """
    Creates the /health/live and /health/ready router.

    Args:
        *dependencies: 'db' and/or 'kafka', checked by the readiness probe.
    """
    router = APIRouter(tags=["Health"])

    dep_map: Dict[str, Tuple[str, DependencyCheck]] = {
        'db': ('database', check_db_health),
        'kafka': ('kafka', check_kafka_health)
    }
    checks = [dep_map[dep] for dep in dependencies if dep in dep_map]

    @router.get("/health/live", status_code=status.HTTP_200_OK)
    async def liveness_probe():
        return {"status": "alive"}

    @router.get("/health/ready", status_code=status.HTTP_200_OK)
    async def readiness_probe():
        results = await asyncio.gather(*[check() for _, check in checks])
        dep_status = {
            name: "ok" if ok else "unavailable"
            for (name, _), ok in zip(checks, results)
        }

        if all(results):
            return {"status": "ready", "dependencies": dep_status}

        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"status": "not_ready", "dependencies": dep_status},
        )

    return router
