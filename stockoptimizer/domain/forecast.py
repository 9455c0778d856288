"""Forecast domain model returned by external prediction models."""

from __future__ import annotations

from datetime import date as DateType

from pydantic import BaseModel, Field, computed_field


class Forecast(BaseModel):
    """Point forecast for one instrument over the prediction horizon."""

    symbol: str = Field(..., description="Ticker symbol")
    as_of_date: DateType | None = Field(None, description="Date the forecast was made")
    current_price: float = Field(..., gt=0, description="Price at forecast time")
    predicted_price: float = Field(..., gt=0, description="Predicted price at target date")
    predicted_change_percent: float = Field(
        ..., ge=-20, le=20, description="Predicted change in percent"
    )
    confidence_score: float = Field(
        ..., ge=0, le=100, description="Model confidence (0-100)"
    )
    target_date: DateType | None = Field(None, description="Forecast target date")

    model_config = {
        "from_attributes": True,
    }

    @computed_field
    @property
    def predicted_return(self) -> float:
        """Predicted change as a fraction."""
        return self.predicted_change_percent / 100

    @computed_field
    @property
    def confidence(self) -> float:
        """Confidence as a fraction in [0, 1]."""
        return self.confidence_score / 100
