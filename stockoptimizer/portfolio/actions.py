"""Translate target weights into whole-share BUY / SELL / HOLD actions."""

from __future__ import annotations

import math
from typing import Mapping

from stockoptimizer.core.exceptions import PortfolioStateError
from stockoptimizer.core.logging import get_logger
from stockoptimizer.domain.portfolio import Portfolio
from stockoptimizer.quant_engine.types import (
    ActionType,
    AnalysisProfile,
    StockAction,
    TrendDirection,
)


logger = get_logger("portfolio.actions")

# Target share counts within +/-10% of the current position are held
BUY_THRESHOLD = 1.1
SELL_THRESHOLD = 0.9

HOLD_REASON = "Current position is close to optimal allocation"


def _buy_reasons(profile: AnalysisProfile | None) -> list[str]:
    reasons: list[str] = []
    if profile is not None:
        if profile.trend.trend == TrendDirection.BULLISH and profile.momentum_score > 0:
            reasons.append("Bullish trend with positive momentum")
        if profile.predicted_return > 0.1:
            reasons.append("High expected return in the near term")
        if profile.sharpe_ratio > 1:
            reasons.append("Strong risk-adjusted return profile")
    return reasons or ["Portfolio diversification benefits"]


def _sell_reasons(profile: AnalysisProfile | None) -> list[str]:
    reasons: list[str] = []
    if profile is not None:
        if profile.trend.trend == TrendDirection.BEARISH and profile.momentum_score < 0:
            reasons.append("Bearish trend with negative momentum")
        if profile.predicted_return < -0.05:
            reasons.append("Negative expected return in the near term")
        if profile.sharpe_ratio < 0:
            reasons.append("Poor risk-adjusted return profile")
    return reasons or ["Better opportunities elsewhere in portfolio"]


def build_reason(
    action: ActionType,
    profile: AnalysisProfile | None,
    new_position: bool = False,
    removed: bool = False,
) -> str:
    """Explanation of an action derived from the instrument's analysis profile."""
    if action == ActionType.HOLD:
        return HOLD_REASON
    if action == ActionType.BUY:
        text = "; ".join(_buy_reasons(profile))
        return f"New position: {text}" if new_position else text
    text = "; ".join(_sell_reasons(profile))
    return f"Exit position: {text}" if removed else text


def classify_action(current_shares: float, target_shares: int) -> ActionType:
    """Hysteresis band around the current position."""
    if target_shares > current_shares * BUY_THRESHOLD:
        return ActionType.BUY
    if target_shares < current_shares * SELL_THRESHOLD:
        return ActionType.SELL
    return ActionType.HOLD


def _sort_key(action: StockAction) -> tuple:
    return (
        action.action == ActionType.HOLD,
        -action.target_shares,
        -abs(action.share_difference),
        action.symbol,
    )


def generate_action_plan(
    portfolio: Portfolio,
    target_weights: Mapping[str, float],
    profiles: Mapping[str, AnalysisProfile] | None = None,
) -> list[StockAction]:
    """
    Compare target weights against current holdings.

    Args:
        portfolio: Current portfolio (prices and share counts)
        target_weights: Symbol -> target weight
        profiles: Analysis profiles for reasons, confidence and the prices
            of symbols not yet held

    Returns:
        Actions with BUY/SELL before HOLD, then by target shares descending.

    Raises:
        PortfolioStateError: Portfolio value is zero or unknown.
    """
    profiles = profiles or {}
    total_value = portfolio.total_value
    if not total_value or total_value <= 0 or not math.isfinite(total_value):
        raise PortfolioStateError(
            f"Portfolio {portfolio.id} has no value to allocate",
            details={"portfolio_id": portfolio.id, "total_value": total_value},
        )

    actions: list[StockAction] = []

    for symbol, weight in target_weights.items():
        holding = portfolio.holding(symbol)
        profile = profiles.get(symbol)

        price = holding.current_price if holding is not None else 0.0
        if price <= 0 and profile is not None:
            price = profile.current_price
        if price <= 0:
            logger.warning(f"{symbol}: no price available, skipped in action plan")
            continue

        target_shares = int(math.floor(total_value * weight / price))
        current_shares = holding.shares if holding is not None else 0.0
        held = current_shares > 0

        if held:
            action = classify_action(current_shares, target_shares)
        elif target_shares >= 1:
            action = ActionType.BUY
        else:
            logger.debug(f"{symbol}: target weight {weight:.4f} rounds to zero shares")
            continue

        difference = target_shares - current_shares
        actions.append(
            StockAction(
                symbol=symbol,
                action=action,
                current_shares=current_shares,
                target_shares=target_shares,
                share_difference=difference,
                current_price=price,
                current_allocation=holding.weight if holding is not None else 0.0,
                target_allocation=weight,
                estimated_impact=difference * price,
                confidence_score=profile.confidence_score if profile is not None else 0.0,
                reason=build_reason(action, profile, new_position=not held),
            )
        )

    for holding in portfolio.holdings:
        if holding.symbol in target_weights or holding.shares <= 0:
            continue
        profile = profiles.get(holding.symbol)
        actions.append(
            StockAction(
                symbol=holding.symbol,
                action=ActionType.SELL,
                current_shares=holding.shares,
                target_shares=0,
                share_difference=-holding.shares,
                current_price=holding.current_price,
                current_allocation=holding.weight,
                target_allocation=0.0,
                estimated_impact=-holding.shares * holding.current_price,
                confidence_score=profile.confidence_score if profile is not None else 0.0,
                reason=build_reason(ActionType.SELL, profile, removed=True),
            )
        )

    actions.sort(key=_sort_key)
    return actions
