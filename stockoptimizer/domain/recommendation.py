"""Recommendation result returned to callers and memoised in the cache."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field

from .portfolio import RecommendationType


class Recommendation(BaseModel):
    """Target allocation for a portfolio with the trades needed to reach it."""

    portfolio_id: str
    risk_tolerance: float = Field(..., ge=0, le=1)
    expand_universe: bool = False
    recommendation_type: RecommendationType
    strategy: str
    allocations: dict[str, float] = Field(default_factory=dict)
    scores: dict[str, float] = Field(default_factory=dict)
    actions: list[dict[str, Any]] = Field(default_factory=list)
    current_performance: dict[str, Any] = Field(default_factory=dict)
    expected_performance: dict[str, Any] = Field(default_factory=dict)
    improvement: dict[str, Any] = Field(default_factory=dict)
    confidence_score: float = Field(0.0, ge=0, le=100)
    diversification_score: float = Field(0.0, ge=0, le=100)
    risk_score: float = Field(50.0, ge=0, le=100)
    fallback_used: bool = False
    cap_relaxed: bool = False
    failed_symbols: list[str] = Field(default_factory=list)
    insufficient_symbols: list[str] = Field(default_factory=list)
    generated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
