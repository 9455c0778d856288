"""Portfolio domain models and the optimization status state machine."""

from __future__ import annotations

from datetime import date as DateType
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field, computed_field, model_validator

from stockoptimizer.core.exceptions import PortfolioStateError


class OptimizationStatus(str, Enum):
    """Lifecycle of a portfolio with respect to optimization runs."""

    NOT_OPTIMIZED = "NOT_OPTIMIZED"
    OPTIMIZING = "OPTIMIZING"
    OPTIMIZED = "OPTIMIZED"
    OPTIMIZATION_FAILED = "OPTIMIZATION_FAILED"
    UPGRADED_WITH_AI = "UPGRADED_WITH_AI"


class RecommendationType(str, Enum):
    """Flavour of an applied recommendation, derived from risk tolerance."""

    RISK_OPTIMIZED = "RISK_OPTIMIZED"
    BALANCED = "BALANCED"
    RETURN_OPTIMIZED = "RETURN_OPTIMIZED"

    @classmethod
    def from_risk_tolerance(cls, risk_tolerance: float) -> RecommendationType:
        if risk_tolerance < 0.33:
            return cls.RISK_OPTIMIZED
        if risk_tolerance < 0.67:
            return cls.BALANCED
        return cls.RETURN_OPTIMIZED


_S = OptimizationStatus

# Holdings edits (-> NOT_OPTIMIZED) are accepted from every state.
ALLOWED_TRANSITIONS: dict[OptimizationStatus, frozenset[OptimizationStatus]] = {
    _S.NOT_OPTIMIZED: frozenset({_S.OPTIMIZING, _S.UPGRADED_WITH_AI, _S.NOT_OPTIMIZED}),
    _S.OPTIMIZING: frozenset({_S.OPTIMIZED, _S.OPTIMIZATION_FAILED, _S.NOT_OPTIMIZED}),
    _S.OPTIMIZED: frozenset({_S.OPTIMIZING, _S.UPGRADED_WITH_AI, _S.NOT_OPTIMIZED}),
    _S.OPTIMIZATION_FAILED: frozenset({_S.OPTIMIZING, _S.UPGRADED_WITH_AI, _S.NOT_OPTIMIZED}),
    _S.UPGRADED_WITH_AI: frozenset({_S.OPTIMIZING, _S.UPGRADED_WITH_AI, _S.NOT_OPTIMIZED}),
}


def can_transition(current: OptimizationStatus, target: OptimizationStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


class Holding(BaseModel):
    """Position in one instrument.

    ``weight`` is owned by the enclosing portfolio and recomputed from
    values whenever the portfolio is built.
    """

    symbol: str = Field(..., min_length=1, description="Ticker symbol")
    company_name: str | None = None
    shares: float = Field(..., ge=0)
    entry_price: float = Field(default=0.0, ge=0)
    entry_date: DateType | None = None
    current_price: float = Field(default=0.0, ge=0)
    weight: float = Field(default=0.0, ge=0, le=1)

    @computed_field
    @property
    def value(self) -> float:
        return self.shares * self.current_price

    @computed_field
    @property
    def cost(self) -> float:
        return self.shares * self.entry_price

    @computed_field
    @property
    def return_value(self) -> float:
        return self.value - self.cost

    @computed_field
    @property
    def return_percentage(self) -> float:
        cost = self.cost
        return (self.return_value / cost) * 100 if cost > 0 else 0.0


class Portfolio(BaseModel):
    """A user portfolio with its optimization state."""

    id: str
    owner: str = ""
    name: str = ""
    holdings: list[Holding] = Field(default_factory=list)
    risk_score: float = Field(default=50.0, ge=0, le=100)
    optimization_status: OptimizationStatus = OptimizationStatus.NOT_OPTIMIZED
    last_optimized_at: datetime | None = None
    ai_recommendation_type: RecommendationType | None = None
    updated_at: datetime | None = None

    @model_validator(mode="after")
    def _recompute_weights(self) -> Portfolio:
        total = sum(h.value for h in self.holdings)
        for holding in self.holdings:
            holding.weight = holding.value / total if total > 0 else 0.0
        return self

    @computed_field
    @property
    def total_value(self) -> float:
        return sum(h.value for h in self.holdings)

    @computed_field
    @property
    def total_cost(self) -> float:
        return sum(h.cost for h in self.holdings)

    @computed_field
    @property
    def total_return(self) -> float:
        return self.total_value - self.total_cost

    @computed_field
    @property
    def total_return_percentage(self) -> float:
        cost = self.total_cost
        return (self.total_return / cost) * 100 if cost > 0 else 0.0

    @property
    def symbols(self) -> list[str]:
        return [h.symbol for h in self.holdings]

    def weights(self) -> dict[str, float]:
        """Current weight per symbol."""
        return {h.symbol: h.weight for h in self.holdings}

    def holding(self, symbol: str) -> Holding | None:
        for h in self.holdings:
            if h.symbol == symbol:
                return h
        return None

    def with_status(
        self,
        status: OptimizationStatus,
        *,
        at: datetime | None = None,
    ) -> Portfolio:
        """Return a copy moved to ``status``.

        Raises:
            PortfolioStateError: The transition is not allowed.
        """
        if not can_transition(self.optimization_status, status):
            raise PortfolioStateError(
                f"Cannot move portfolio {self.id} from "
                f"{self.optimization_status.value} to {status.value}",
                details={"portfolio_id": self.id, "from": self.optimization_status.value, "to": status.value},
            )
        now = at or datetime.now(timezone.utc)
        update: dict = {"optimization_status": status, "updated_at": now}
        if status == OptimizationStatus.OPTIMIZED:
            update["last_optimized_at"] = now
        return self.model_copy(update=update)

    def with_holdings(self, holdings: list[Holding], **changes) -> Portfolio:
        """Return a copy holding ``holdings`` with weights recomputed.

        A plain holdings edit resets the status to NOT_OPTIMIZED; callers
        applying a recommendation pass the resulting status explicitly.
        """
        data = self.model_dump(
            exclude={"holdings", "total_value", "total_cost", "total_return", "total_return_percentage"}
        )
        data.update(
            {
                "optimization_status": OptimizationStatus.NOT_OPTIMIZED,
                "updated_at": datetime.now(timezone.utc),
            }
        )
        data.update(changes)
        data["holdings"] = [
            h.model_dump(include={"symbol", "company_name", "shares", "entry_price", "entry_date", "current_price"})
            for h in holdings
        ]
        return Portfolio.model_validate(data)
