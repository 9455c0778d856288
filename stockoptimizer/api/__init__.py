"""API module with routers and dependencies."""

from .app import create_app
from .dependencies import configure_engine, get_engine, get_runner


__all__ = [
    "configure_engine",
    "create_app",
    "get_engine",
    "get_runner",
]
