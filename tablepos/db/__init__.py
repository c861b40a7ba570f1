"""Local persistent store and per-entity repositories."""

from .repositories import (
    CounterRepository,
    InventoryRepository,
    MenuRepository,
    OrderRepository,
    TableRepository,
    TokenRepository,
)
from .schema import ensure_schema
from .store import LocalStore, MemoryStore, SQLiteStore

__all__ = [
    "LocalStore",
    "SQLiteStore",
    "MemoryStore",
    "OrderRepository",
    "InventoryRepository",
    "MenuRepository",
    "TableRepository",
    "CounterRepository",
    "TokenRepository",
    "ensure_schema",
]
