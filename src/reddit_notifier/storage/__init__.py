"""
Persistence layer for the Reddit Notifier.

This package owns the SQLite schema, the deduplication ledger and the
subscription lookups used by the polling core.
"""

from .database import connect_with_retry, create_engine, init_schema
from .ledger import Ledger
from .subscriptions import SubscriptionRepository, SubscriptionResolver

__all__ = [
    "Ledger",
    "SubscriptionRepository",
    "SubscriptionResolver",
    "connect_with_retry",
    "create_engine",
    "init_schema",
]
