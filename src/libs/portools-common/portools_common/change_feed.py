# src/libs/portools-common/portools_common/change_feed.py
import asyncio
import functools
import json
import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Dict, Iterable, List, Optional

from confluent_kafka import (
    Consumer, KafkaError, KafkaException, Message,
    OFFSET_BEGINNING, OFFSET_END, TopicPartition,
)
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .config import (
    CHANGE_FEED_POLL_TIMEOUT_SECONDS,
    CHANGE_FEED_START_FROM,
    KAFKA_BOOTSTRAP_SERVERS,
    KAFKA_PORTFOLIO_CHANGES_TOPIC,
    SUMMARY_STREAM_CONSUMER_ID,
)
from .events import PortfolioChangeEvent
from .exceptions import ChangeFeedError
from .models import Portfolio
from .monitoring import observe_kafka_consume_error

logger = logging.getLogger(__name__)


class OperationType(str, Enum):
    INSERT = "insert"
    REPLACE = "replace"
    UPDATE = "update"
    DELETE = "delete"
    OTHER = "other"

    @classmethod
    def parse(cls, value: Optional[str]) -> "OperationType":
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            return cls.OTHER


class ResumeToken(BaseModel):
    """
    Position in the change feed: for every partition, the next offset to read.

    Resuming from a token never redelivers an event it already covers.
    """
    model_config = ConfigDict(frozen=True)

    offsets: Dict[int, int] = Field(default_factory=dict)

    def advanced_past(self, partition: int, offset: int) -> "ResumeToken":
        offsets = dict(self.offsets)
        offsets[partition] = offset + 1
        return ResumeToken(offsets=offsets)

    def to_document(self) -> dict:
        return {"offsets": {str(p): o for p, o in sorted(self.offsets.items())}}

    @classmethod
    def from_document(cls, document: Optional[dict]) -> Optional["ResumeToken"]:
        if document is None:
            return None
        return cls.model_validate(document)


class ChangeEvent(BaseModel):
    """One decoded portfolio mutation plus the feed position just after it."""
    model_config = ConfigDict(frozen=True)

    operation: OperationType
    portfolio_id: Optional[int] = None
    full_document: Optional[Portfolio] = None
    position: ResumeToken


class ChangeFeed(ABC):
    """
    An ordered, resumable, at-least-once stream of portfolio change events.

    `next_event` returns None when nothing arrived within the poll window; this
    is a liveness signal, not the end of the feed. Once the feed can no longer
    deliver events, `is_alive` is False or `next_event` raises ChangeFeedError.
    """

    @abstractmethod
    async def open(self, resume_after: Optional[ResumeToken] = None) -> None:
        pass

    @abstractmethod
    async def next_event(self) -> Optional[ChangeEvent]:
        pass

    @property
    @abstractmethod
    def resume_token(self) -> Optional[ResumeToken]:
        pass

    @property
    @abstractmethod
    def is_alive(self) -> bool:
        pass

    @abstractmethod
    async def close(self) -> None:
        pass


def decode_change_event(raw: Optional[bytes], position: ResumeToken) -> ChangeEvent:
    """
    Decodes a message value into a ChangeEvent. A message that cannot be
    decoded, or whose document is not a valid Portfolio, still yields an event
    (without a document) so the feed position moves past it.
    """
    try:
        wire = PortfolioChangeEvent.model_validate(json.loads(raw or b""))
    except (ValueError, ValidationError):
        logger.error("Undecodable change event; it will be skipped.", extra={"position": position.to_document()}, exc_info=True)
        return ChangeEvent(operation=OperationType.OTHER, position=position)

    operation = OperationType.parse(wire.operation)
    document = None
    if wire.full_document is not None:
        try:
            document = Portfolio.model_validate(wire.full_document)
        except ValidationError:
            logger.error(
                "Change event carries an invalid portfolio document; it will be skipped.",
                extra={"portfolio_id": wire.portfolio_id, "operation": operation.value},
                exc_info=True,
            )
    return ChangeEvent(
        operation=operation,
        portfolio_id=wire.portfolio_id,
        full_document=document,
        position=position,
    )


class KafkaChangeFeed(ChangeFeed):
    """
    Reads the portfolio changes topic with manually assigned partitions.

    No consumer group offsets are committed: the position lives only in the
    ResumeToken, which the caller checkpoints in its own store.
    """
    def __init__(
        self,
        bootstrap_servers: str = KAFKA_BOOTSTRAP_SERVERS,
        topic: str = KAFKA_PORTFOLIO_CHANGES_TOPIC,
        client_id: str = SUMMARY_STREAM_CONSUMER_ID,
        poll_timeout: float = CHANGE_FEED_POLL_TIMEOUT_SECONDS,
        start_from: str = CHANGE_FEED_START_FROM,
        consumer_factory=Consumer,
    ):
        if start_from not in ("earliest", "latest"):
            raise ValueError(f"start_from must be 'earliest' or 'latest', got '{start_from}'")
        self.topic = topic
        self._poll_timeout = poll_timeout
        self._default_offset = OFFSET_BEGINNING if start_from == "earliest" else OFFSET_END
        self._consumer_factory = consumer_factory
        self._consumer_config = {
            'bootstrap.servers': bootstrap_servers,
            # Required by the client even though partitions are assigned manually.
            'group.id': client_id,
            'client.id': client_id,
            'enable.auto.commit': False,
            'enable.auto.offset.store': False,
            'auto.offset.reset': start_from,
            'isolation.level': 'read_committed',
        }
        self._consumer = None
        self._token: Optional[ResumeToken] = None
        self._alive = False

    async def open(self, resume_after: Optional[ResumeToken] = None) -> None:
        loop = asyncio.get_running_loop()
        token = resume_after or ResumeToken()
        try:
            self._consumer = self._consumer_factory(self._consumer_config)
            metadata = await loop.run_in_executor(
                None, functools.partial(self._consumer.list_topics, self.topic, timeout=10)
            )
            topic_metadata = metadata.topics.get(self.topic)
            if topic_metadata is None or topic_metadata.error is not None:
                raise ChangeFeedError(f"Topic '{self.topic}' is not available: {getattr(topic_metadata, 'error', None)}")

            assignments: List[TopicPartition] = [
                TopicPartition(self.topic, partition, token.offsets.get(partition, self._default_offset))
                for partition in sorted(topic_metadata.partitions)
            ]
            self._consumer.assign(assignments)
        except KafkaException as e:
            raise ChangeFeedError(f"Could not open change feed on topic '{self.topic}': {e}") from e

        self._token = resume_after
        self._alive = True
        logger.info(
            f"Change feed opened on topic '{self.topic}'.",
            extra={"assignments": {tp.partition: tp.offset for tp in assignments}},
        )

    async def next_event(self) -> Optional[ChangeEvent]:
        if not self._alive:
            raise ChangeFeedError("Change feed is not open.")

        loop = asyncio.get_running_loop()
        msg: Optional[Message] = await loop.run_in_executor(None, self._consumer.poll, self._poll_timeout)
        if msg is None:
            return None

        error = msg.error()
        if error:
            if error.fatal():
                self._alive = False
                observe_kafka_consume_error(self.topic, error.name())
                raise ChangeFeedError(f"Fatal consumer error on topic {self.topic}: {error}")
            if error.code() != KafkaError._PARTITION_EOF:
                observe_kafka_consume_error(self.topic, error.name())
                logger.warning(f"Non-fatal consumer error on topic {self.topic}: {error}.")
            return None

        self._token = (self._token or ResumeToken()).advanced_past(msg.partition(), msg.offset())
        return decode_change_event(msg.value(), self._token)

    @property
    def resume_token(self) -> Optional[ResumeToken]:
        return self._token

    @property
    def is_alive(self) -> bool:
        return self._alive

    async def close(self) -> None:
        self._alive = False
        if self._consumer is not None:
            logger.info(f"Closing change feed on topic '{self.topic}'...")
            self._consumer.close()
            self._consumer = None


class InMemoryChangeFeed(ChangeFeed):
    """
    A single-partition feed over an in-process log, for tests and local runs.

    With `stop_when_exhausted` the feed stops once every appended event has been
    read; otherwise it keeps returning None (liveness) until more are appended.
    """
    PARTITION = 0

    def __init__(self, events: Iterable[tuple] = (), stop_when_exhausted: bool = True):
        self._log: List[ChangeEvent] = []
        self._stop_when_exhausted = stop_when_exhausted
        self._next_offset = 0
        self._token: Optional[ResumeToken] = None
        self._alive = False
        self.opened_with: Optional[ResumeToken] = None
        for operation, document in events:
            self.append(operation, document)

    def append(self, operation: OperationType, full_document: Optional[Portfolio] = None, portfolio_id: Optional[int] = None) -> ResumeToken:
        """Appends an event and returns the position just after it."""
        offset = len(self._log)
        position = ResumeToken(offsets={self.PARTITION: offset + 1})
        if portfolio_id is None and full_document is not None:
            portfolio_id = full_document.id
        self._log.append(ChangeEvent(
            operation=OperationType.parse(operation) if isinstance(operation, str) else operation,
            portfolio_id=portfolio_id,
            full_document=full_document,
            position=position,
        ))
        return position

    async def open(self, resume_after: Optional[ResumeToken] = None) -> None:
        self.opened_with = resume_after
        self._token = resume_after
        self._next_offset = resume_after.offsets.get(self.PARTITION, 0) if resume_after else 0
        self._alive = True

    async def next_event(self) -> Optional[ChangeEvent]:
        if not self._alive:
            raise ChangeFeedError("Change feed is not open.")
        # yield to the loop as a real poll would
        await asyncio.sleep(0)
        if self._next_offset >= len(self._log):
            if self._stop_when_exhausted:
                self._alive = False
            return None
        event = self._log[self._next_offset]
        self._next_offset += 1
        self._token = event.position
        return event

    @property
    def resume_token(self) -> Optional[ResumeToken]:
        return self._token

    @property
    def is_alive(self) -> bool:
        return self._alive

    async def close(self) -> None:
        self._alive = False
