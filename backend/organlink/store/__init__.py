from .base import RecordStore
from .memory import InMemoryRecordStore

__all__ = ["InMemoryRecordStore", "RecordStore"]
