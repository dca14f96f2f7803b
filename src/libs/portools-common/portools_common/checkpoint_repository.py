# src/libs/portools-common/portools_common/checkpoint_repository.py
import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Dict, Optional

from sqlalchemy import func, select, text
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import OperationalError
from tenacity import retry, stop_after_attempt, wait_fixed, before_log, retry_if_exception_type

from .change_feed import ResumeToken
from .config import CHECKPOINT_SYNCHRONOUS_COMMIT
from .database_models import ChangeFeedCheckpoint
from .db import AsyncSessionLocal
from .utils import async_timed

logger = logging.getLogger(__name__)

SYNCHRONOUS_COMMIT_LEVELS = ("remote_apply", "on", "remote_write", "local", "off")


class CheckpointStore(ABC):
    """Durable record of how far each consumer has read the change feed."""

    @abstractmethod
    async def get_checkpoint(self, consumer_id: str) -> Optional[ResumeToken]:
        pass

    @abstractmethod
    async def put_checkpoint(self, consumer_id: str, position: Optional[ResumeToken]) -> None:
        pass


class CheckpointRepository(CheckpointStore):
    """
    Stores checkpoints in the change_feed_checkpoints table.

    Writes commit with the configured synchronous_commit level so a checkpoint
    is acknowledged only once it would survive a failover. Reads run in a
    SERIALIZABLE read-only transaction on the primary.
    """
    def __init__(self, session_factory=AsyncSessionLocal, synchronous_commit: str = CHECKPOINT_SYNCHRONOUS_COMMIT):
        if synchronous_commit not in SYNCHRONOUS_COMMIT_LEVELS:
            raise ValueError(
                f"synchronous_commit must be one of {SYNCHRONOUS_COMMIT_LEVELS}, got '{synchronous_commit}'"
            )
        self._session_factory = session_factory
        self._synchronous_commit = synchronous_commit

    @staticmethod
    def build_upsert(consumer_id: str, position: Optional[ResumeToken]):
        document = position.to_document() if position is not None else None
        stmt = pg_insert(ChangeFeedCheckpoint).values(consumer_id=consumer_id, position=document)
        return stmt.on_conflict_do_update(
            index_elements=['consumer_id'],
            set_={"position": stmt.excluded.position, "updated_at": func.now()},
        )

    @async_timed(repository="CheckpointRepository", method="get_checkpoint")
    async def get_checkpoint(self, consumer_id: str) -> Optional[ResumeToken]:
        async with self._session_factory() as session:
            async with session.begin():
                await session.connection(
                    execution_options={"isolation_level": "SERIALIZABLE", "postgresql_readonly": True}
                )
                result = await session.execute(
                    select(ChangeFeedCheckpoint.position).where(ChangeFeedCheckpoint.consumer_id == consumer_id)
                )
                document = result.scalar_one_or_none()

        token = ResumeToken.from_document(document)
        logger.info(
            "Loaded change feed checkpoint",
            extra={"consumer_id": consumer_id, "position": document},
        )
        return token

    @retry(
        wait=wait_fixed(0.5),
        stop=stop_after_attempt(3),
        before=before_log(logger, logging.INFO),
        retry=retry_if_exception_type(OperationalError),
        reraise=True
    )
    @async_timed(repository="CheckpointRepository", method="put_checkpoint")
    async def put_checkpoint(self, consumer_id: str, position: Optional[ResumeToken]) -> None:
        async with self._session_factory() as session:
            async with session.begin():
                # SET LOCAL does not accept bind parameters; the level is validated in __init__.
                await session.execute(text(f"SET LOCAL synchronous_commit = {self._synchronous_commit}"))
                await session.execute(self.build_upsert(consumer_id, position))
        logger.debug(
            "Stored change feed checkpoint",
            extra={"consumer_id": consumer_id, "position": position.to_document() if position else None},
        )


class InMemoryCheckpointStore(CheckpointStore):
    def __init__(self, checkpoints: Optional[Dict[str, ResumeToken]] = None):
        self._checkpoints: Dict[str, Optional[ResumeToken]] = dict(checkpoints or {})
        self._lock = asyncio.Lock()

    async def get_checkpoint(self, consumer_id: str) -> Optional[ResumeToken]:
        async with self._lock:
            return self._checkpoints.get(consumer_id)

    async def put_checkpoint(self, consumer_id: str, position: Optional[ResumeToken]) -> None:
        async with self._lock:
            self._checkpoints[consumer_id] = position
