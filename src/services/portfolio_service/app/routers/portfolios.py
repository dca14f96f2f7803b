# src/services/portfolio_service/app/routers/portfolios.py
import logging

from fastapi import APIRouter, Depends, HTTPException, Path, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from portools_common.config import PORTFOLIO_MAX_FILE_SIZE, PORTFOLIO_MAX_NUM_LOTS
from portools_common.db import get_async_db_session
from portools_common.logging_utils import correlation_id_var
from portools_common.models import MAX_PORTFOLIO_ID, Portfolio
from portools_common.summary_views import VIEWS_BY_KIND
from ..DTOs.portfolio_dto import PortfolioSaveResponse, UploadLimits
from ..services.csv_digester import CsvError, CsvRecordInvalidError, MissingHeaderError, digest_lots
from ..services.portfolio_service import PortfolioService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/portfolios", tags=["Portfolios"])


def get_portfolio_service(
    db: AsyncSession = Depends(get_async_db_session),
) -> PortfolioService:
    return PortfolioService(db)


def get_upload_limits() -> UploadLimits:
    return UploadLimits(max_file_size=PORTFOLIO_MAX_FILE_SIZE, max_num_lots=PORTFOLIO_MAX_NUM_LOTS)


def _csv_error_detail(error: CsvError) -> dict:
    if isinstance(error, CsvRecordInvalidError):
        return {
            "row": error.row,
            "field": error.invalid.field,
            "reason": error.invalid.reason.value,
            "message": str(error),
        }
    if isinstance(error, MissingHeaderError):
        return {"missing_header": error.name, "message": str(error)}
    return {"message": str(error)}


@router.put(
    "/{portfolio_id}",
    response_model=PortfolioSaveResponse,
    status_code=status.HTTP_200_OK,
    summary="Create or replace a portfolio from a CSV of lots",
    description=(
        "The request body is CSV with the columns account, symbol, date_acquired (YYYY/MM/DD), "
        "quantity and cost_per_share. The stored portfolio is fully replaced and its summaries "
        "are recomputed asynchronously."
    ),
    responses={
        status.HTTP_400_BAD_REQUEST: {"description": "Malformed request or invalid CSV content."},
        status.HTTP_411_LENGTH_REQUIRED: {"description": "Content-Length header is missing."},
        status.HTTP_413_REQUEST_ENTITY_TOO_LARGE: {"description": "Upload exceeds the size or lot limits."},
    },
)
async def put_portfolio(
    request: Request,
    portfolio_id: int = Path(..., ge=0, le=MAX_PORTFOLIO_ID),
    limits: UploadLimits = Depends(get_upload_limits),
    service: PortfolioService = Depends(get_portfolio_service),
):
    content_length = request.headers.get("content-length")
    if content_length is None:
        raise HTTPException(status_code=status.HTTP_411_LENGTH_REQUIRED, detail="Content-Length header is required.")
    try:
        declared_size = int(content_length)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Content-Length header is not a number.")
    if declared_size < 0:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Content-Length header is negative.")
    if declared_size > limits.max_file_size:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"Upload is larger than {limits.max_file_size} bytes.",
        )

    body = await request.body()
    if len(body) > limits.max_file_size:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"Upload is larger than {limits.max_file_size} bytes.",
        )

    try:
        lots = digest_lots(body)
    except CsvError as e:
        logger.warning("Rejected portfolio upload", extra={"portfolio_id": portfolio_id, "error": str(e)})
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=_csv_error_detail(e))

    if len(lots) > limits.max_num_lots:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"Upload has {len(lots)} lots; at most {limits.max_num_lots} are allowed.",
        )

    portfolio = Portfolio(id=portfolio_id, lots=lots)
    created = await service.save_portfolio(portfolio, correlation_id_var.get())
    return PortfolioSaveResponse(id=portfolio_id, num_lots=len(lots), created=created)


@router.get(
    "/{portfolio_id}",
    response_model=Portfolio,
    summary="Get a portfolio by ID",
)
async def get_portfolio(
    portfolio_id: int = Path(..., ge=0, le=MAX_PORTFOLIO_ID),
    service: PortfolioService = Depends(get_portfolio_service),
):
    portfolio = await service.get_portfolio(portfolio_id)
    if portfolio is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Portfolio {portfolio_id} not found.")
    return portfolio


@router.get(
    "/{portfolio_id}/summaries/{view_kind}",
    summary="Get a derived summary of a portfolio",
    description="view_kind is 'asset_class' or 'symbol'. Summaries lag uploads by the time the summary stream takes to catch up.",
)
async def get_portfolio_summary(
    view_kind: str,
    portfolio_id: int = Path(..., ge=0, le=MAX_PORTFOLIO_ID),
    service: PortfolioService = Depends(get_portfolio_service),
):
    if view_kind not in VIEWS_BY_KIND:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Unknown summary view '{view_kind}'.")
    document = await service.get_summary(portfolio_id, view_kind)
    if document is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No '{view_kind}' summary for portfolio {portfolio_id}.",
        )
    return document
