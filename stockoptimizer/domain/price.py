"""Price domain models."""

from __future__ import annotations

from datetime import date as DateType

from pydantic import BaseModel, Field


class PriceBar(BaseModel):
    """Single daily OHLCV bar for one instrument.

    Only ``close`` feeds the analytics; the other columns are carried for
    providers that store full bars.
    """

    symbol: str = Field(..., description="Ticker symbol")
    date: DateType = Field(..., description="Trading date")
    open: float = Field(default=0.0, ge=0, description="Opening price")
    high: float = Field(default=0.0, ge=0, description="High price")
    low: float = Field(default=0.0, ge=0, description="Low price")
    close: float = Field(..., gt=0, description="Closing price")
    adj_close: float | None = Field(default=None, gt=0, description="Adjusted close")
    volume: int = Field(default=0, ge=0, description="Trading volume")

    model_config = {
        "from_attributes": True,
    }
