"""Event and order stores."""

from .base import EventStore, OrderStore, StoreUnavailableError
from .memory import InMemoryEventStore, InMemoryOrderStore, Order
from .sqlite_store import SQLiteEventStore, SQLiteOrderStore

__all__ = [
    "EventStore",
    "InMemoryEventStore",
    "InMemoryOrderStore",
    "Order",
    "OrderStore",
    "SQLiteEventStore",
    "SQLiteOrderStore",
    "StoreUnavailableError",
]
