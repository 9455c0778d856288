"""SQLAlchemy ORM models.

Indicator frames are derived data regenerated per (symbol, date range), so
the table carries no history of edits.
"""

from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import (
    Date,
    DateTime,
    Float,
    Index,
    MetaData,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# Naming convention for constraints and indexes (deterministic names)
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class Base(DeclarativeBase):
    """Base class for all ORM models with naming convention."""
    metadata = MetaData(naming_convention=NAMING_CONVENTION)


class TechnicalIndicatorRow(Base):
    """Technical indicator frame for one symbol and trading date."""
    __tablename__ = "technical_indicators"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    symbol: Mapped[str] = mapped_column(String(20), nullable=False)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    price: Mapped[float] = mapped_column(Float, nullable=False)
    sma20: Mapped[float] = mapped_column(Float, nullable=False)
    sma50: Mapped[float] = mapped_column(Float, nullable=False)
    sma200: Mapped[float] = mapped_column(Float, nullable=False)
    rsi14: Mapped[float] = mapped_column(Float, nullable=False)
    macd_line: Mapped[float] = mapped_column(Float, nullable=False)
    macd_signal: Mapped[float] = mapped_column(Float, nullable=False)
    macd_histogram: Mapped[float] = mapped_column(Float, nullable=False)
    bollinger_upper: Mapped[float] = mapped_column(Float, nullable=False)
    bollinger_middle: Mapped[float] = mapped_column(Float, nullable=False)
    bollinger_lower: Mapped[float] = mapped_column(Float, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint("symbol", "date", name="uq_technical_indicators_symbol_date"),
        Index("idx_technical_indicators_symbol_date", "symbol", "date"),
    )
