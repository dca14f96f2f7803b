# tests/unit/libs/portools-common/test_summary_repository.py
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.dialects import postgresql

from portools_common.currency import Currency, USD
from portools_common.models import GroupSummary, PortfolioSummary
from portools_common.summary_repository import InMemorySummaryStore, SummaryRepository

pytestmark = pytest.mark.asyncio


def summary(portfolio_id: int, amount: str) -> PortfolioSummary:
    return PortfolioSummary(
        id=portfolio_id,
        group_to_summary={"VOO": GroupSummary.new(Currency.new(Decimal(amount), USD))},
    )


@pytest.fixture
def mock_db_session() -> MagicMock:
    session = MagicMock()
    session.execute = AsyncMock()
    return session


@pytest.fixture
def repository(mock_db_session: MagicMock) -> SummaryRepository:
    factory = MagicMock()
    factory.return_value.__aenter__.return_value = mock_db_session
    return SummaryRepository(session_factory=factory)


async def test_put_summary_executes_upsert(repository, mock_db_session):
    """
    GIVEN a symbol summary
    WHEN put_summary is called
    THEN one INSERT ... ON CONFLICT DO UPDATE keyed by portfolio and view kind is executed.
    """
    await repository.put_summary("symbol", summary(5, "10.00"))

    mock_db_session.execute.assert_awaited_once()
    statement = mock_db_session.execute.await_args[0][0]
    sql = str(statement.compile(dialect=postgresql.dialect()))
    assert "INSERT INTO portfolio_summaries" in sql
    assert "ON CONFLICT (portfolio_id, view_kind) DO UPDATE SET" in sql
    assert "document = excluded.document" in sql


async def test_upsert_carries_full_document():
    statement = SummaryRepository.build_upsert("symbol", summary(5, "10.00"))

    params = statement.compile(dialect=postgresql.dialect()).params

    assert params["portfolio_id"] == 5
    assert params["view_kind"] == "symbol"
    assert params["document"] == {
        "id": 5,
        "group_to_summary": {"VOO": {"cost": {"amount": "10.00", "unit": "USD"}}},
    }


async def test_put_summary_propagates_failure(repository, mock_db_session):
    mock_db_session.execute.side_effect = RuntimeError("db down")

    with pytest.raises(RuntimeError):
        await repository.put_summary("symbol", summary(5, "10.00"))


async def test_in_memory_store_is_last_writer_wins():
    store = InMemorySummaryStore()

    await store.put_summary("symbol", summary(1, "1"))
    await store.put_summary("symbol", summary(1, "2"))
    await store.put_summary("asset_class", summary(1, "3"))

    assert len(store) == 2
    document = await store.get_summary(1, "symbol")
    assert document["group_to_summary"]["VOO"]["cost"]["amount"] == "2"
    assert await store.get_summary(2, "symbol") is None
