"""Portfolio request and response schemas."""

from __future__ import annotations

from datetime import date
from typing import Dict, List

from pydantic import BaseModel, Field, field_validator

from stockoptimizer.core.config import settings
from stockoptimizer.domain.portfolio import Holding
from stockoptimizer.quant_engine.types import AllocationStrategy


def _normalize_symbol(v: str) -> str:
    return v.upper().strip()


class HoldingInput(BaseModel):
    """Holding input."""

    symbol: str = Field(..., min_length=1, max_length=20)
    shares: float = Field(..., ge=0)
    entry_price: float = Field(default=0.0, ge=0)
    entry_date: date | None = None
    current_price: float = Field(..., ge=0)
    company_name: str | None = Field(default=None, max_length=200)

    @field_validator("symbol", mode="before")
    @classmethod
    def normalize_symbol(cls, v: str) -> str:
        return _normalize_symbol(v)

    def to_holding(self) -> Holding:
        return Holding(
            symbol=self.symbol,
            company_name=self.company_name,
            shares=self.shares,
            entry_price=self.entry_price,
            entry_date=self.entry_date,
            current_price=self.current_price,
        )


class HoldingsUpdateRequest(BaseModel):
    """Replace all holdings of a portfolio."""

    holdings: List[HoldingInput] = Field(default_factory=list)


class OptimizeRequest(BaseModel):
    """Start a background optimization."""

    risk_tolerance: float = Field(default=settings.default_risk_tolerance, ge=0, le=1)
    strategy: AllocationStrategy = AllocationStrategy.MEAN_VARIANCE


class ApplyRecommendationsRequest(BaseModel):
    """Apply recommended target weights."""

    allocations: Dict[str, float] = Field(..., min_length=1)
    risk_tolerance: float = Field(default=settings.default_risk_tolerance, ge=0, le=1)

    @field_validator("allocations")
    @classmethod
    def normalize_symbols(cls, v: Dict[str, float]) -> Dict[str, float]:
        return {_normalize_symbol(symbol): weight for symbol, weight in v.items()}


class PortfolioScoresResponse(BaseModel):
    """Diversification and risk scores of current holdings."""

    portfolio_id: str
    diversification_score: float = Field(..., ge=0, le=100)
    risk_score: float = Field(..., ge=0, le=100)
