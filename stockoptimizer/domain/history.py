"""Portfolio change history."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field


class ChangeType(str, Enum):
    AI_RECOMMENDATION = "AI_RECOMMENDATION"
    OPTIMIZATION = "OPTIMIZATION"
    UPDATE = "UPDATE"


class PortfolioHistoryEntry(BaseModel):
    """Snapshot of an allocation change and why it happened."""

    portfolio_id: str
    change_type: ChangeType
    change_source: str = "SYSTEM"
    previous_allocations: dict[str, float] = Field(default_factory=dict)
    new_allocations: dict[str, float] = Field(default_factory=dict)
    previous_value: float = 0.0
    new_value: float = 0.0
    risk_tolerance: float | None = Field(None, ge=0, le=1)
    change_reason: str = ""
    changed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


def recommendation_reason(risk_tolerance: float) -> str:
    """Human readable reason for an applied recommendation."""
    if risk_tolerance < 0.33:
        profile = "Conservative"
    elif risk_tolerance < 0.67:
        profile = "Balanced"
    else:
        profile = "Aggressive"
    return f"{profile} portfolio optimization (risk tolerance {risk_tolerance:.2f})"
