"""Utility modules."""

from sharpscan.utils.cache import CacheEntry, TTLCache
from sharpscan.utils.logging import setup_logging
from sharpscan.utils.retry import RetryPolicy
from sharpscan.utils.state_store import AlertStore, InMemoryAlertStore, JsonFileAlertStore

__all__ = [
    "setup_logging",
    "CacheEntry",
    "TTLCache",
    "RetryPolicy",
    "AlertStore",
    "InMemoryAlertStore",
    "JsonFileAlertStore",
]
