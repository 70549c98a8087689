"""Store contract and implementations."""

from .base import Store
from .memory import InMemoryStore
from .mongo import MongoStore

__all__ = [
    "Store",
    "InMemoryStore",
    "MongoStore",
]
