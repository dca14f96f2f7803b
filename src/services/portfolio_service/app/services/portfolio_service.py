# src/services/portfolio_service/app/services/portfolio_service.py
import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from portools_common.change_feed import OperationType
from portools_common.config import KAFKA_PORTFOLIO_CHANGES_TOPIC
from portools_common.events import PortfolioChangeEvent
from portools_common.models import Portfolio
from portools_common.outbox_repository import OutboxRepository
from portools_common.summary_repository import SummaryRepository, SummaryStore
from ..repositories.portfolio_repository import PortfolioRepository

logger = logging.getLogger(__name__)


class PortfolioService:
    """
    Saves uploaded portfolios and serves them with their derived summaries.
    """

    def __init__(self, db: AsyncSession, summary_store: Optional[SummaryStore] = None):
        self.db = db
        self.repo = PortfolioRepository(db)
        self.outbox_repo = OutboxRepository(db)
        self.summary_store = summary_store or SummaryRepository()

    async def save_portfolio(self, portfolio: Portfolio, correlation_id: Optional[str] = None) -> bool:
        """
        Upserts the portfolio and stages its change event in one transaction,
        so the summary stream sees exactly the committed versions.
        Returns True if the portfolio was created.
        """
        async with self.db.begin():
            inserted = await self.repo.upsert_portfolio(portfolio, correlation_id)
            operation = OperationType.INSERT if inserted else OperationType.REPLACE
            event = PortfolioChangeEvent(
                operation=operation.value,
                portfolio_id=portfolio.id,
                full_document=portfolio.model_dump(mode="json"),
            )
            await self.outbox_repo.create_outbox_event(
                aggregate_type="Portfolio",
                aggregate_id=str(portfolio.id),
                event_type=f"Portfolio{operation.value.capitalize()}",
                payload=event.model_dump(mode="json"),
                topic=KAFKA_PORTFOLIO_CHANGES_TOPIC,
                correlation_id=correlation_id,
            )
        logger.info(
            "Portfolio saved",
            extra={"portfolio_id": portfolio.id, "operation": operation.value, "num_lots": len(portfolio.lots)},
        )
        return inserted

    async def get_portfolio(self, portfolio_id: int) -> Optional[Portfolio]:
        return await self.repo.get_portfolio(portfolio_id)

    async def get_summary(self, portfolio_id: int, view_kind: str) -> Optional[dict]:
        return await self.summary_store.get_summary(portfolio_id, view_kind)
