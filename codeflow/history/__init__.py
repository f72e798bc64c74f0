"""Run history: snippets saved on every successful run."""

from .record import HistoryRecord, RecordOrigin, is_local_id
from .remote import HttpRemoteHistoryStore, NullRemoteHistoryStore, RemoteHistoryStore
from .store import (
    DeleteResult,
    HistoryTier,
    HybridHistoryStore,
    LoadResult,
    SaveOutcome,
    SaveResult,
)

__all__ = [
    "DeleteResult",
    "HistoryRecord",
    "HistoryTier",
    "HttpRemoteHistoryStore",
    "HybridHistoryStore",
    "LoadResult",
    "NullRemoteHistoryStore",
    "RecordOrigin",
    "RemoteHistoryStore",
    "SaveOutcome",
    "SaveResult",
    "is_local_id",
]
