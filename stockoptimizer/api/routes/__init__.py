"""API routes package."""

from . import health, portfolios


__all__ = [
    "health",
    "portfolios",
]
