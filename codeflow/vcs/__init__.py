"""Version control for code snippets.

A linear, offline-first commit log plus the engine that pushes it to and
pulls it from a remote commit store.
"""

from .commit_log import Commit, LocalCommitLog, SyncState
from .remote import HttpRemoteCommitStore, NullRemoteCommitStore, RemoteCommitStore
from .sync_engine import SyncEngine, SyncResult, SyncStatus

__all__ = [
    "Commit",
    "HttpRemoteCommitStore",
    "LocalCommitLog",
    "NullRemoteCommitStore",
    "RemoteCommitStore",
    "SyncEngine",
    "SyncResult",
    "SyncState",
    "SyncStatus",
]
