# tests/unit/services/portfolio_service/test_portfolio_service_logic.py
from datetime import date
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from portools_common.currency import Currency
from portools_common.models import Lot, Portfolio
from src.services.portfolio_service.app.services.portfolio_service import PortfolioService

pytestmark = pytest.mark.asyncio


@pytest.fixture
def portfolio() -> Portfolio:
    return Portfolio(id=9, lots=[
        Lot.new("Taxable", "VOO", date(2023, 3, 27), Decimal("2"), Currency.new(Decimal("350.00"), "USD")),
    ])


@pytest.fixture
def service() -> PortfolioService:
    db = MagicMock()
    summary_store = AsyncMock()
    svc = PortfolioService(db, summary_store=summary_store)
    svc.repo = AsyncMock()
    svc.outbox_repo = AsyncMock()
    return svc


@pytest.mark.parametrize("inserted, operation, event_type", [
    (True, "insert", "PortfolioInsert"),
    (False, "replace", "PortfolioReplace"),
])
async def test_save_portfolio_stages_matching_change_event(service, portfolio, inserted, operation, event_type):
    """
    GIVEN the upsert reports whether the row was new
    WHEN a portfolio is saved
    THEN an outbox event with the matching operation and the full document is staged.
    """
    # ARRANGE
    service.repo.upsert_portfolio.return_value = inserted

    # ACT
    result = await service.save_portfolio(portfolio, "PRT:abc")

    # ASSERT
    assert result is inserted
    service.repo.upsert_portfolio.assert_awaited_once_with(portfolio, "PRT:abc")
    kwargs = service.outbox_repo.create_outbox_event.await_args.kwargs
    assert kwargs["aggregate_type"] == "Portfolio"
    assert kwargs["aggregate_id"] == "9"
    assert kwargs["event_type"] == event_type
    assert kwargs["correlation_id"] == "PRT:abc"
    assert kwargs["payload"]["operation"] == operation
    assert kwargs["payload"]["portfolio_id"] == 9
    assert kwargs["payload"]["full_document"]["lots"][0]["symbol"] == "VOO"
    service.db.begin.assert_called_once()


async def test_outbox_failure_propagates(service, portfolio):
    service.repo.upsert_portfolio.return_value = True
    service.outbox_repo.create_outbox_event.side_effect = RuntimeError("flush failed")

    with pytest.raises(RuntimeError):
        await service.save_portfolio(portfolio)


async def test_get_summary_reads_the_summary_store(service):
    service.summary_store.get_summary.return_value = {"id": 9, "group_to_summary": {}}

    document = await service.get_summary(9, "symbol")

    assert document == {"id": 9, "group_to_summary": {}}
    service.summary_store.get_summary.assert_awaited_once_with(9, "symbol")
