"""Technical indicator repository - SQLAlchemy ORM async."""

from __future__ import annotations

from datetime import date
from typing import Sequence

from sqlalchemy import delete, select

from stockoptimizer.database.connection import get_session
from stockoptimizer.database.orm import TechnicalIndicatorRow
from stockoptimizer.domain.indicator import IndicatorFrame


_FRAME_FIELDS = (
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


def _frame_to_row(frame: IndicatorFrame) -> TechnicalIndicatorRow:
    return TechnicalIndicatorRow(
        symbol=frame.symbol,
        date=frame.date,
        **{field: getattr(frame, field) for field in _FRAME_FIELDS},
    )


async def replace_indicator_range(
    symbol: str,
    start: date,
    end: date,
    frames: Sequence[IndicatorFrame],
) -> int:
    """Delete stored frames of ``symbol`` in [start, end] and insert ``frames``.

    Runs in one transaction. Frames outside the range are rejected so a
    recompute never leaves overlapping rows behind.
    """
    outside = [f.date for f in frames if f.symbol != symbol or not start <= f.date <= end]
    if outside:
        raise ValueError(f"{len(outside)} frames fall outside {symbol} {start}..{end}")

    async with get_session() as session:
        await session.execute(
            delete(TechnicalIndicatorRow).where(
                TechnicalIndicatorRow.symbol == symbol,
                TechnicalIndicatorRow.date >= start,
                TechnicalIndicatorRow.date <= end,
            )
        )
        session.add_all([_frame_to_row(f) for f in frames])
        await session.commit()
    return len(frames)


async def list_indicator_range(
    symbol: str,
    start: date,
    end: date,
) -> list[IndicatorFrame]:
    """Stored frames of ``symbol`` in [start, end], oldest first."""
    async with get_session() as session:
        result = await session.execute(
            select(TechnicalIndicatorRow)
            .where(
                TechnicalIndicatorRow.symbol == symbol,
                TechnicalIndicatorRow.date >= start,
                TechnicalIndicatorRow.date <= end,
            )
            .order_by(TechnicalIndicatorRow.date)
        )
        return [IndicatorFrame.model_validate(row) for row in result.scalars().all()]


async def delete_symbol_indicators(symbol: str) -> int:
    """Remove every stored frame of ``symbol``."""
    async with get_session() as session:
        result = await session.execute(
            delete(TechnicalIndicatorRow).where(TechnicalIndicatorRow.symbol == symbol)
        )
        await session.commit()
        return result.rowcount or 0
