"""Market price update model."""

from datetime import datetime

from pydantic import BaseModel, Field


class PriceUpdate(BaseModel):
    """A mark price pushed by the market-data feed."""

    token: str = Field(..., min_length=1, description="Feed token")
    mark_price: float = Field(..., gt=0, description="Current reference price")
    timestamp: datetime = Field(..., description="When the feed produced the price")

    model_config = {"frozen": True}
