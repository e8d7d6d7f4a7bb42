"""Storage for delivery records and rate-limit state."""

from .database import Database
from .delivery_store import DeliveryStore, InMemoryDeliveryStore, SQLiteDeliveryStore
from .rate_limit_store import RateLimitStore, InMemoryRateLimitStore, SQLiteRateLimitStore
from .roster import load_roster

__all__ = [
    "Database",
    "DeliveryStore",
    "InMemoryDeliveryStore",
    "SQLiteDeliveryStore",
    "RateLimitStore",
    "InMemoryRateLimitStore",
    "SQLiteRateLimitStore",
    "load_roster",
]
