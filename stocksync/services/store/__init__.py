from .base import SyncStore
from .memory import InMemorySyncStore
from .sql import SqlAlchemySyncStore

__all__ = ["SyncStore", "InMemorySyncStore", "SqlAlchemySyncStore"]
