"""Shared fixtures: in-memory local tier and in-memory remote stores."""

import uuid
from dataclasses import replace
from datetime import datetime, timedelta

import pytest

from codeflow.errors import ConnectivityError
from codeflow.history import HistoryRecord, RecordOrigin, RemoteHistoryStore
from codeflow.identity import Authenticated, Guest
from codeflow.storage import LocalTier
from codeflow.vcs import Commit, RemoteCommitStore, SyncState


class FakeRemoteCommitStore(RemoteCommitStore):
    """In-memory remote commit store that counts calls and can fail on demand."""

    def __init__(self):
        self.commits: dict[str, list[Commit]] = {}
        self.exists_calls = 0
        self.write_calls = 0
        self.query_calls = 0
        self.fail_with: Exception | None = None
        self.fail_on_write_number: int | None = None
        self._clock = datetime(2026, 1, 1, 12, 0, 0)

    def _maybe_fail(self) -> None:
        if self.fail_with is not None:
            raise self.fail_with

    async def exists(self, commit_id: str, user_id: str) -> bool:
        self.exists_calls += 1
        self._maybe_fail()
        return any(c.id == commit_id for c in self.commits.get(user_id, []))

    async def write_commit(
        self, commit: Commit, user_id: str, server_timestamp: bool = True
    ) -> None:
        self.write_calls += 1
        self._maybe_fail()
        if self.fail_on_write_number == self.write_calls:
            raise ConnectivityError("connection dropped")

        self._clock += timedelta(minutes=1)
        stored = replace(
            commit,
            timestamp=self._clock if server_timestamp else commit.timestamp,
            sync_status=SyncState.SYNCED,
        )
        self.commits.setdefault(user_id, []).append(stored)

    async def query_all(self, user_id: str) -> list[Commit]:
        self.query_calls += 1
        self._maybe_fail()
        return sorted(
            self.commits.get(user_id, []), key=lambda c: c.timestamp, reverse=True
        )

    def count(self, user_id: str, commit_id: str) -> int:
        return sum(1 for c in self.commits.get(user_id, []) if c.id == commit_id)


class FakeRemoteHistoryStore(RemoteHistoryStore):
    """In-memory remote history store."""

    def __init__(self):
        self.records: dict[str, list[HistoryRecord]] = {}
        self.calls = 0
        self.fail_with: Exception | None = None

    def _maybe_fail(self) -> None:
        self.calls += 1
        if self.fail_with is not None:
            raise self.fail_with

    async def write_record(self, record: HistoryRecord, user_id: str) -> HistoryRecord:
        self._maybe_fail()
        stored = replace(
            record,
            id=uuid.uuid4().hex,
            timestamp=datetime.now(),
            origin=RecordOrigin.CLOUD_CONFIRMED,
        )
        self.records.setdefault(user_id, []).insert(0, stored)
        return stored

    async def query_all(self, user_id: str) -> list[HistoryRecord]:
        self._maybe_fail()
        return list(self.records.get(user_id, []))

    async def delete(self, record_id: str, user_id: str) -> bool:
        self._maybe_fail()
        records = self.records.get(user_id, [])
        remaining = [r for r in records if r.id != record_id]
        self.records[user_id] = remaining
        return len(remaining) != len(records)


@pytest.fixture
def tier():
    """Create an in-memory local tier."""
    tier = LocalTier(":memory:")
    tier.connect()
    yield tier
    tier.close()


@pytest.fixture
def remote_commits():
    return FakeRemoteCommitStore()


@pytest.fixture
def remote_history():
    return FakeRemoteHistoryStore()


@pytest.fixture
def alice():
    return Authenticated("alice-uid", "Alice")


@pytest.fixture
def guest():
    return Guest()
