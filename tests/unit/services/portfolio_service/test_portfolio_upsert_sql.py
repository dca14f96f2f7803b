# tests/unit/services/portfolio_service/test_portfolio_upsert_sql.py
from datetime import date
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.dialects import postgresql

from portools_common.currency import Currency
from portools_common.models import Lot, Portfolio
from src.services.portfolio_service.app.repositories.portfolio_repository import PortfolioRepository


def make_portfolio() -> Portfolio:
    return Portfolio(id=3, lots=[
        Lot.new("IRA", "BND", date(2022, 1, 3), Decimal("4.5"), Currency.new(Decimal("70.10"), "USD")),
    ])


def test_upsert_replaces_lots_and_reports_insert():
    stmt = PortfolioRepository.build_upsert(make_portfolio(), "PRT:1")

    sql = str(stmt.compile(dialect=postgresql.dialect()))

    assert "ON CONFLICT (id) DO UPDATE SET" in sql
    assert "lots = excluded.lots" in sql
    assert "RETURNING (xmax = 0) AS inserted" in sql


def test_upsert_binds_the_json_document():
    stmt = PortfolioRepository.build_upsert(make_portfolio(), "PRT:1")

    params = stmt.compile(dialect=postgresql.dialect()).params

    assert params["id"] == 3
    assert params["correlation_id"] == "PRT:1"
    assert params["lots"][0]["quantity"] == "4.5"
    assert params["lots"][0]["cost_basis"] == {"amount": "70.10", "unit": "USD"}


@pytest.mark.asyncio
async def test_upsert_portfolio_returns_inserted_flag():
    db = MagicMock()
    result = MagicMock()
    result.scalar_one.return_value = False
    db.execute = AsyncMock(return_value=result)

    inserted = await PortfolioRepository(db).upsert_portfolio(make_portfolio())

    assert inserted is False
    db.execute.assert_awaited_once()


@pytest.mark.asyncio
async def test_get_portfolio_rebuilds_the_model():
    db = MagicMock()
    row = MagicMock(id=3, lots=make_portfolio().model_dump(mode="json")["lots"])
    result = MagicMock()
    result.scalars.return_value.first.return_value = row
    db.execute = AsyncMock(return_value=result)

    portfolio = await PortfolioRepository(db).get_portfolio(3)

    assert portfolio == make_portfolio()
