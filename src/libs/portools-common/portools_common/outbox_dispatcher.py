# src/libs/portools-common/portools_common/outbox_dispatcher.py
import logging
import asyncio
import json
from datetime import datetime, timezone
from typing import Dict, List, Optional

from sqlalchemy import update, func
from sqlalchemy.orm import Session, sessionmaker

from .kafka_utils import KafkaProducer
from .database_models import OutboxEvent
from .db import SessionLocal
from .monitoring import (
    observe_outbox_published,
    observe_outbox_failed,
    set_outbox_pending,
    outbox_batch_timer,
)

logger = logging.getLogger(__name__)


class OutboxDispatcher:
    """
    Polls the outbox_events table and publishes PENDING events to Kafka in
    creation order. Only events the broker acknowledged are marked PROCESSED;
    failed deliveries stay PENDING with retry_count incremented.
    """

    def __init__(self, kafka_producer: KafkaProducer, poll_interval: float = 1, batch_size: int = 50, db_session_factory: Optional[sessionmaker] = None):
        self._producer = kafka_producer
        self._poll_interval = poll_interval
        self._batch_size = batch_size
        self._running = True
        self._session_factory = db_session_factory or SessionLocal

    def stop(self):
        logger.info("Outbox dispatcher shutdown signal received.")
        self._running = False

    def _process_batch_sync(self) -> int:
        """
        One batch in one transaction: lock a slice of PENDING rows with
        FOR UPDATE SKIP LOCKED, publish them, wait for delivery reports and
        record the outcome. Returns the number of events published.
        """
        with self._session_factory() as db:  # type: Session
            with outbox_batch_timer():
                with db.begin():
                    pending_total = db.query(func.count(OutboxEvent.id)).filter(OutboxEvent.status == "PENDING").scalar() or 0
                    set_outbox_pending(int(pending_total))

                    events_to_process: List[OutboxEvent] = (
                        db.query(OutboxEvent)
                        .filter(OutboxEvent.status == "PENDING")
                        .order_by(OutboxEvent.id.asc())
                        .with_for_update(skip_locked=True, of=OutboxEvent)
                        .limit(self._batch_size)
                        .all()
                    )

                    if not events_to_process:
                        return 0

                    delivery_ack: Dict[int, bool] = {}
                    delivery_errs: Dict[int, str] = {}

                    def _make_on_delivery(outbox_id: int):
                        def _cb(success: bool, error_message: Optional[str]):
                            delivery_ack[outbox_id] = success
                            if not success:
                                delivery_errs[outbox_id] = str(error_message)
                        return _cb

                    for event in events_to_process:
                        headers = []
                        if event.correlation_id:
                            headers.append(("correlation_id", event.correlation_id.encode("utf-8")))

                        payload_obj = event.payload if isinstance(event.payload, dict) else json.loads(event.payload)

                        self._producer.publish_message(
                            topic=event.topic,
                            key=event.aggregate_id,
                            value=payload_obj,
                            headers=headers,
                            on_delivery=_make_on_delivery(event.id),
                        )

                    try:
                        self._producer.flush(timeout=10)
                    except Exception as e:
                        logger.error("OutboxDispatcher: Kafka flush failed.", exc_info=True)
                        for event in events_to_process:
                            if event.id not in delivery_ack:
                                delivery_ack[event.id] = False
                                delivery_errs[event.id] = str(e)

                    # no delivery report within the flush timeout counts as a failure
                    for event in events_to_process:
                        if event.id not in delivery_ack:
                            delivery_ack[event.id] = False
                            delivery_errs[event.id] = "delivery not confirmed before flush timeout"

                    success_ids = [oid for oid, ok in delivery_ack.items() if ok]
                    failure_ids = [oid for oid, ok in delivery_ack.items() if not ok]
                    now = datetime.now(timezone.utc)

                    if success_ids:
                        db.execute(
                            update(OutboxEvent)
                            .where(OutboxEvent.id.in_(success_ids))
                            .values(status="PROCESSED", processed_at=now, last_attempted_at=now)
                        )
                        for e in events_to_process:
                            if e.id in success_ids:
                                observe_outbox_published(e.aggregate_type, e.topic)
                        logger.info(f"OutboxDispatcher: Marked {len(success_ids)} events as PROCESSED.")

                    if failure_ids:
                        db.execute(
                            update(OutboxEvent)
                            .where(OutboxEvent.id.in_(failure_ids))
                            .values(
                                retry_count=func.coalesce(OutboxEvent.retry_count, 0) + 1,
                                last_attempted_at=now,
                            )
                        )
                        for e in events_to_process:
                            if e.id in failure_ids:
                                observe_outbox_failed(e.aggregate_type, e.topic)
                                logger.warning(
                                    "OutboxDispatcher: Kafka delivery failed; will retry later.",
                                    extra={"outbox_id": e.id, "reason": delivery_errs.get(e.id, "unknown error")},
                                )

                    return len(success_ids)

    async def run(self):
        logger.info(f"Outbox dispatcher started. Polling every {self._poll_interval} seconds.")

        while self._running:
            try:
                await asyncio.to_thread(self._process_batch_sync)
            except Exception:
                logger.error("Failed to process outbox batch.", exc_info=True)

            try:
                await asyncio.sleep(self._poll_interval)
            except asyncio.CancelledError:
                break

        logger.info("Outbox dispatcher has stopped.")
