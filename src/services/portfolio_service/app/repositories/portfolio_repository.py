# src/services/portfolio_service/app/repositories/portfolio_repository.py
import logging
from typing import Optional

from sqlalchemy import func, literal_column, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from portools_common.database_models import Portfolio as DBPortfolio
from portools_common.models import Portfolio
from portools_common.utils import async_timed

logger = logging.getLogger(__name__)


class PortfolioRepository:
    """
    Handles database operations for portfolios.
    """
    def __init__(self, db: AsyncSession):
        self.db = db

    @staticmethod
    def build_upsert(portfolio: Portfolio, correlation_id: Optional[str] = None):
        document = portfolio.model_dump(mode="json")
        stmt = pg_insert(DBPortfolio).values(
            id=portfolio.id,
            lots=document["lots"],
            correlation_id=correlation_id,
        )
        # xmax is 0 only for a row version created by an insert, not by the update branch
        return stmt.on_conflict_do_update(
            index_elements=['id'],
            set_={
                "lots": stmt.excluded.lots,
                "correlation_id": stmt.excluded.correlation_id,
                "updated_at": func.now(),
            },
        ).returning(literal_column("(xmax = 0)").label("inserted"))

    @async_timed(repository="PortfolioRepository", method="upsert_portfolio")
    async def upsert_portfolio(self, portfolio: Portfolio, correlation_id: Optional[str] = None) -> bool:
        """
        Inserts or fully replaces the portfolio. Returns True if it was new.
        Runs in the caller's transaction.
        """
        try:
            result = await self.db.execute(self.build_upsert(portfolio, correlation_id))
            inserted = bool(result.scalar_one())
            logger.info(
                "Staged portfolio upsert",
                extra={"portfolio_id": portfolio.id, "num_lots": len(portfolio.lots), "inserted": inserted},
            )
            return inserted
        except Exception:
            logger.error(
                "Failed to stage portfolio upsert",
                extra={"portfolio_id": portfolio.id},
                exc_info=True,
            )
            raise

    @async_timed(repository="PortfolioRepository", method="get_portfolio")
    async def get_portfolio(self, portfolio_id: int) -> Optional[Portfolio]:
        result = await self.db.execute(select(DBPortfolio).where(DBPortfolio.id == portfolio_id))
        row = result.scalars().first()
        if row is None:
            return None
        return Portfolio.model_validate({"id": row.id, "lots": row.lots})
