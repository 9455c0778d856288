"""Valkey-backed caching."""

from .cache import Cache
from .client import close_valkey_client, get_valkey_client, valkey_healthcheck

__all__ = [
    "Cache",
    "close_valkey_client",
    "get_valkey_client",
    "valkey_healthcheck",
]
