# src/libs/portools-common/portools_common/summary_repository.py
import asyncio
import copy
import logging
from abc import ABC, abstractmethod
from typing import Dict, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert

from .database_models import PortfolioSummary as DBPortfolioSummary
from .db import AsyncSessionLocal
from .models import PortfolioSummary
from .utils import async_timed

logger = logging.getLogger(__name__)


class SummaryStore(ABC):
    """Derived summary documents keyed by (portfolio id, view kind). Last writer wins."""

    @abstractmethod
    async def put_summary(self, view_kind: str, summary: PortfolioSummary) -> None:
        pass

    @abstractmethod
    async def get_summary(self, portfolio_id: int, view_kind: str) -> Optional[dict]:
        pass


class SummaryRepository(SummaryStore):
    """
    Persists summaries in the portfolio_summaries table. Each put is a single
    INSERT ... ON CONFLICT DO UPDATE that replaces the whole document.
    """
    def __init__(self, session_factory=AsyncSessionLocal):
        self._session_factory = session_factory

    @staticmethod
    def build_upsert(view_kind: str, summary: PortfolioSummary):
        stmt = pg_insert(DBPortfolioSummary).values(
            portfolio_id=summary.id,
            view_kind=view_kind,
            document=summary.to_document(),
        )
        return stmt.on_conflict_do_update(
            index_elements=['portfolio_id', 'view_kind'],
            set_={"document": stmt.excluded.document, "updated_at": func.now()},
        )

    @async_timed(repository="SummaryRepository", method="put_summary")
    async def put_summary(self, view_kind: str, summary: PortfolioSummary) -> None:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    await session.execute(self.build_upsert(view_kind, summary))
            logger.debug(
                "Upserted portfolio summary",
                extra={"portfolio_id": summary.id, "view_kind": view_kind},
            )
        except Exception:
            logger.error(
                "Failed to upsert portfolio summary",
                extra={"portfolio_id": summary.id, "view_kind": view_kind},
                exc_info=True,
            )
            raise

    @async_timed(repository="SummaryRepository", method="get_summary")
    async def get_summary(self, portfolio_id: int, view_kind: str) -> Optional[dict]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(DBPortfolioSummary.document).where(
                    DBPortfolioSummary.portfolio_id == portfolio_id,
                    DBPortfolioSummary.view_kind == view_kind,
                )
            )
            return result.scalar_one_or_none()


class InMemorySummaryStore(SummaryStore):
    def __init__(self):
        self._documents: Dict[Tuple[int, str], dict] = {}
        self._lock = asyncio.Lock()

    async def put_summary(self, view_kind: str, summary: PortfolioSummary) -> None:
        async with self._lock:
            self._documents[(summary.id, view_kind)] = summary.to_document()

    async def get_summary(self, portfolio_id: int, view_kind: str) -> Optional[dict]:
        async with self._lock:
            document = self._documents.get((portfolio_id, view_kind))
            return copy.deepcopy(document) if document is not None else None

    def __len__(self) -> int:
        return len(self._documents)
