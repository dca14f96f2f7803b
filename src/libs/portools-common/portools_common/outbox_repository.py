# src/libs/portools-common/portools_common/outbox_repository.py
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from .database_models import OutboxEvent

logger = logging.getLogger(__name__)


class OutboxRepository:
    """
    Stages OutboxEvent rows in the caller's transaction, so an event is
    published only if the change it describes commits.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_outbox_event(
        self,
        *,
        aggregate_type: str,
        aggregate_id: str,
        event_type: str,
        payload: Dict[str, Any],
        topic: str,
        correlation_id: Optional[str] = None,
    ) -> OutboxEvent:
        """
        Create a new outbox event in PENDING status.
        - aggregate_id becomes the Kafka key (portfolio id for per-portfolio ordering).
        - payload MUST be a dict; it is stored directly in the JSON column.
        """
        if aggregate_id is None or aggregate_id == "":
            raise ValueError("aggregate_id (portfolio id) is required for outbox events")

        if not isinstance(payload, dict):
            raise TypeError("payload must be a dict (will be serialized by SQLAlchemy JSON type)")

        event = OutboxEvent(
            aggregate_type=aggregate_type,
            aggregate_id=str(aggregate_id),
            status="PENDING",
            event_type=event_type,
            payload=payload,
            topic=topic,
            correlation_id=correlation_id,
            retry_count=0,
            created_at=datetime.now(timezone.utc),
        )
        self.db.add(event)
        await self.db.flush()  # populates event.id for callers in the same tx
        logger.info(
            "Outbox event created",
            extra={
                "aggregate_type": aggregate_type,
                "aggregate_id": aggregate_id,
                "event_type": event_type,
                "topic": topic,
                "outbox_id": event.id,
            },
        )
        return event
