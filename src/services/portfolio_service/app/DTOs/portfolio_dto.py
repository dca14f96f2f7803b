# src/services/portfolio_service/app/DTOs/portfolio_dto.py
from pydantic import BaseModel, ConfigDict, Field


class PortfolioSaveResponse(BaseModel):
    model_config = ConfigDict(
        json_schema_extra={"example": {"id": 1, "num_lots": 3, "created": True}}
    )

    id: int
    num_lots: int
    created: bool = Field(..., description="True if the portfolio did not exist before this upload.")


class UploadLimits(BaseModel):
    """Size limits applied to a portfolio upload."""
    max_file_size: int = Field(..., gt=0, description="Largest accepted request body, in bytes.")
    max_num_lots: int = Field(..., gt=0, description="Largest accepted number of lots.")
