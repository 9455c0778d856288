"""Database engine, sessions and ORM models."""

from .connection import (
    close_sqlalchemy_engine,
    create_schema,
    get_session,
    init_sqlalchemy_engine,
)
from .orm import Base, TechnicalIndicatorRow

__all__ = [
    "Base",
    "TechnicalIndicatorRow",
    "close_sqlalchemy_engine",
    "create_schema",
    "get_session",
    "init_sqlalchemy_engine",
]
