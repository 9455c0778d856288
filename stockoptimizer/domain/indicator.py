"""Technical indicator frame model."""

from __future__ import annotations

import math
from datetime import date as DateType

from pydantic import BaseModel, Field, field_validator


class IndicatorFrame(BaseModel):
    """Indicator values for one (symbol, date).

    Frames are derived data: they are regenerated for a date range, never
    edited in place. Every numeric field is finite.
    """

    symbol: str
    date: DateType
    price: float = Field(..., gt=0)
    sma20: float
    sma50: float
    sma200: float
    rsi14: float = Field(..., ge=0, le=100)
    macd_line: float
    macd_signal: float
    macd_histogram: float
    bollinger_upper: float
    bollinger_middle: float
    bollinger_lower: float

    model_config = {
        "from_attributes": True,
        "frozen": True,
    }

    @field_validator(
        "price",
        "sma20",
        "sma50",
        "sma200",
        "rsi14",
        "macd_line",
        "macd_signal",
        "macd_histogram",
        "bollinger_upper",
        "bollinger_middle",
        "bollinger_lower",
    )
    @classmethod
    def require_finite(cls, v: float) -> float:
        if not math.isfinite(v):
            raise ValueError("indicator values must be finite")
        return float(v)
