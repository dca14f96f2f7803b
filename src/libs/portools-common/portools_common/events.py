# src/libs/portools-common/portools_common/events.py
from typing import Any, Dict, Optional
from pydantic import BaseModel, ConfigDict, Field

from .models import MAX_PORTFOLIO_ID


class PortfolioChangeEvent(BaseModel):
    """
    Wire model of one message on the portfolio changes topic.

    `full_document` is the post-image of the portfolio for insert/replace and
    is kept as raw JSON here; the change feed validates it into a Portfolio.
    """
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    operation: str
    portfolio_id: int = Field(..., ge=0, le=MAX_PORTFOLIO_ID)
    full_document: Optional[Dict[str, Any]] = None
