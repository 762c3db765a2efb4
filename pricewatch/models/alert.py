"""Alert data models."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class PriceAlert(BaseModel):
    """A price alert that fires when the mark price is within band of its target."""

    id: int = Field(..., description="Database ID")
    owner_key: str = Field(..., description="Opaque key of whoever created the alert")
    destination: str = Field(..., min_length=1, description="Notification target")
    symbol: str = Field(..., min_length=1, description="User-facing asset symbol")
    token: str = Field(..., min_length=1, description="Resolved feed token")
    target_price: float = Field(..., gt=0, description="Watched price")
    suppressed: bool = Field(default=False, description="Whether the alert is cooling down")
    cooldown_until: Optional[datetime] = Field(
        default=None, description="End of the current suppression window"
    )
    created_at: datetime = Field(..., description="Alert creation timestamp")
    updated_at: datetime = Field(..., description="Last mutation timestamp")

    model_config = {"frozen": True}


class CronAlert(BaseModel):
    """A recurring alert driven by a 5-field cron expression."""

    id: int = Field(..., description="Database ID")
    destination: str = Field(..., min_length=1, description="Notification target")
    symbol: str = Field(..., min_length=1, description="User-facing asset symbol")
    token: str = Field(..., min_length=1, description="Resolved feed token")
    cron_expression: str = Field(..., min_length=1, description="Cron schedule")
    active: bool = Field(default=True, description="Whether the alert is still scheduled")
    created_at: datetime = Field(..., description="Alert creation timestamp")
    updated_at: datetime = Field(..., description="Last mutation timestamp")
    last_triggered_at: Optional[datetime] = Field(
        default=None, description="When the alert last fired"
    )
    next_trigger_at: datetime = Field(..., description="Next scheduled fire time")

    model_config = {"frozen": True}
