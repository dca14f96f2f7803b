# tests/integration/services/portfolio_service/test_portfolios_router.py
from datetime import date
from decimal import Decimal
from unittest.mock import AsyncMock

import httpx
import pytest
import pytest_asyncio

from portools_common.currency import Currency
from portools_common.models import Lot, Portfolio
from src.services.portfolio_service.app.DTOs.portfolio_dto import UploadLimits
from src.services.portfolio_service.app.main import app
from src.services.portfolio_service.app.routers.portfolios import get_portfolio_service, get_upload_limits

pytestmark = pytest.mark.asyncio

HEADER = "account,symbol,date_acquired,quantity,cost_per_share\n"
VALID_CSV = HEADER + "Taxable,VOO,2023/03/27,10,350.00\nTaxable,BND,2023/03/27,5,70.00\n"


@pytest_asyncio.fixture
async def async_test_client():
    mock_service = AsyncMock()
    app.dependency_overrides[get_portfolio_service] = lambda: mock_service
    app.dependency_overrides[get_upload_limits] = lambda: UploadLimits(max_file_size=1024, max_num_lots=3)
    transport = httpx.ASGITransport(app=app, raise_app_exceptions=False)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client, mock_service
    app.dependency_overrides.pop(get_portfolio_service, None)
    app.dependency_overrides.pop(get_upload_limits, None)


async def test_put_portfolio_creates(async_test_client):
    """
    GIVEN a valid CSV upload for a new portfolio
    WHEN it is PUT
    THEN the portfolio is saved with every lot and the response reports it as created.
    """
    # ARRANGE
    client, mock_service = async_test_client
    mock_service.save_portfolio.return_value = True

    # ACT
    response = await client.put("/portfolios/42", content=VALID_CSV, headers={"X-Correlation-Id": "PRT:test"})

    # ASSERT
    assert response.status_code == 200
    assert response.json() == {"id": 42, "num_lots": 2, "created": True}
    assert response.headers["X-Correlation-Id"] == "PRT:test"
    saved, correlation_id = mock_service.save_portfolio.await_args.args
    assert saved.id == 42
    assert [lot.symbol for lot in saved.lots] == ["VOO", "BND"]
    assert correlation_id == "PRT:test"


async def test_put_portfolio_replaces(async_test_client):
    client, mock_service = async_test_client
    mock_service.save_portfolio.return_value = False

    response = await client.put("/portfolios/42", content=VALID_CSV)

    assert response.status_code == 200
    assert response.json()["created"] is False


async def test_put_without_content_length_is_411(async_test_client):
    client, mock_service = async_test_client

    async def chunks():
        yield VALID_CSV.encode("utf-8")

    response = await client.put("/portfolios/42", content=chunks())

    assert response.status_code == 411
    mock_service.save_portfolio.assert_not_awaited()


async def test_put_too_large_is_413(async_test_client):
    client, mock_service = async_test_client
    content = HEADER + "Taxable,VOO,2023/03/27,10,350.00\n" * 40

    response = await client.put("/portfolios/42", content=content)

    assert response.status_code == 413
    mock_service.save_portfolio.assert_not_awaited()


async def test_put_too_many_lots_is_413(async_test_client):
    client, mock_service = async_test_client
    content = HEADER + "Taxable,VOO,2023/03/27,10,350.00\n" * 4

    response = await client.put("/portfolios/42", content=content)

    assert response.status_code == 413
    mock_service.save_portfolio.assert_not_awaited()


async def test_put_invalid_record_is_400_with_row_and_field(async_test_client):
    client, mock_service = async_test_client
    content = HEADER + "Taxable,VOO,2023/03/27,10,350.00\nTaxable,VOO,2023/03/27,-1,350.00\n"

    response = await client.put("/portfolios/42", content=content)

    assert response.status_code == 400
    detail = response.json()["detail"]
    assert detail["row"] == 1
    assert detail["field"] == "quantity"
    assert detail["reason"] == "MUST_BE_POSITIVE"
    mock_service.save_portfolio.assert_not_awaited()


async def test_put_missing_column_is_400(async_test_client):
    client, _ = async_test_client

    response = await client.put("/portfolios/42", content="account,symbol\nA,VOO\n")

    assert response.status_code == 400
    assert response.json()["detail"]["missing_header"] == "date_acquired"


async def test_put_invalid_portfolio_id_is_422(async_test_client):
    client, _ = async_test_client

    response = await client.put(f"/portfolios/{2 ** 32}", content=VALID_CSV)

    assert response.status_code == 422


async def test_save_failure_maps_to_500(async_test_client):
    client, mock_service = async_test_client
    mock_service.save_portfolio.side_effect = RuntimeError("db down")

    response = await client.put("/portfolios/42", content=VALID_CSV)

    assert response.status_code == 500
    assert response.json()["error"] == "Internal Server Error"


async def test_get_portfolio(async_test_client):
    client, mock_service = async_test_client
    mock_service.get_portfolio.return_value = Portfolio(id=7, lots=[
        Lot.new("Taxable", "VOO", date(2023, 3, 27), Decimal("2"), Currency.new(Decimal("350.00"), "USD")),
    ])

    response = await client.get("/portfolios/7")

    assert response.status_code == 200
    body = response.json()
    assert body["id"] == 7
    assert body["lots"][0]["symbol"] == "VOO"
    assert body["lots"][0]["date_acquired"] == "2023-03-27"
    mock_service.get_portfolio.assert_awaited_once_with(7)


async def test_get_missing_portfolio_is_404(async_test_client):
    client, mock_service = async_test_client
    mock_service.get_portfolio.return_value = None

    response = await client.get("/portfolios/7")

    assert response.status_code == 404


async def test_get_summary(async_test_client):
    client, mock_service = async_test_client
    document = {"id": 7, "group_to_summary": {"UsStocks": {"cost": {"amount": "700.00", "unit": "USD"}}}}
    mock_service.get_summary.return_value = document

    response = await client.get("/portfolios/7/summaries/asset_class")

    assert response.status_code == 200
    assert response.json() == document
    mock_service.get_summary.assert_awaited_once_with(7, "asset_class")


async def test_get_summary_for_unknown_view_is_404(async_test_client):
    client, mock_service = async_test_client

    response = await client.get("/portfolios/7/summaries/by_colour")

    assert response.status_code == 404
    mock_service.get_summary.assert_not_awaited()


async def test_get_summary_not_yet_computed_is_404(async_test_client):
    client, mock_service = async_test_client
    mock_service.get_summary.return_value = None

    response = await client.get("/portfolios/7/summaries/symbol")

    assert response.status_code == 404
