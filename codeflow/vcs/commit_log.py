"""Linear, on-device commit log for code snippets.

The log is persisted as one snapshot per user in the local tier. Every
mutation rewrites the whole snapshot, which is only suitable while the
per-user commit count stays small (hundreds, not millions).
"""

import logging
import uuid
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Any

from ..errors import ValidationError
from ..languages import Language
from ..storage import LocalTier

logger = logging.getLogger(__name__)

COMMITS_STORE = "commits"


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO timestamp into naive local time."""
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


class SyncState(Enum):
    """Whether a remote copy of a commit is known to exist."""

    LOCAL_ONLY = "local_only"
    SYNCED = "synced"


@dataclass(frozen=True)
class Commit:
    """An immutable snapshot of code plus metadata."""

    id: str
    message: str
    timestamp: datetime
    code: str
    language: Language
    author: str = "Guest"
    sync_status: SyncState = SyncState.LOCAL_ONLY

    @classmethod
    def create(
        cls,
        message: str,
        code: str,
        language: str | Language,
        author: str = "",
    ) -> "Commit":
        """Build a new local commit with a fresh id and the client time.

        Raises:
            ValidationError: If the message is blank or the language unknown.
        """
        message = message.strip()
        if not message:
            raise ValidationError("Commit message cannot be empty")

        return cls(
            id=str(uuid.uuid4()),
            message=message,
            timestamp=datetime.now(),
            code=code,
            language=Language.parse(language),
            author=author or "Guest",
        )

    @property
    def is_synced(self) -> bool:
        return self.sync_status is SyncState.SYNCED

    def as_synced(self) -> "Commit":
        """Return a copy marked SYNCED."""
        if self.is_synced:
            return self
        return replace(self, sync_status=SyncState.SYNCED)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
            "code": self.code,
            "language": self.language.value,
            "author": self.author,
            "sync_status": self.sync_status.value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Commit":
        """Create from dictionary."""
        return cls(
            id=data["id"],
            message=data["message"],
            timestamp=parse_timestamp(data["timestamp"]),
            code=data["code"],
            language=Language.parse(data["language"]),
            author=data.get("author") or "Guest",
            sync_status=SyncState(data.get("sync_status", SyncState.LOCAL_ONLY.value)),
        )


class LocalCommitLog:
    """Durable commit log for one user on this device."""

    def __init__(self, tier: LocalTier, user_key: str):
        """Initialize the commit log.

        Args:
            tier: Local tier holding the snapshot.
            user_key: Storage key of the user owning this log.
        """
        self.tier = tier
        self.user_key = user_key

    def _load(self) -> list[Commit]:
        data = self.tier.read(COMMITS_STORE, self.user_key) or []
        return [Commit.from_dict(item) for item in data]

    def _save(self, commits: list[Commit]) -> None:
        self.tier.write(
            COMMITS_STORE, self.user_key, [c.to_dict() for c in commits]
        )

    def append(self, commit: Commit) -> Commit:
        """Add a commit and persist the log.

        Raises:
            ValidationError: If a commit with the same id already exists.
            LocalStorageError: If the storage medium fails.
        """
        commits = self._load()
        if any(c.id == commit.id for c in commits):
            raise ValidationError(f"Commit id already used: {commit.id}")

        commits.insert(0, commit)
        self._save(commits)

        logger.debug(f"Appended commit {commit.id} for {self.user_key}")
        return commit

    def commit(
        self,
        message: str,
        code: str,
        language: str | Language,
        author: str = "",
    ) -> Commit:
        """Validate, create and append a new commit."""
        return self.append(Commit.create(message, code, language, author))

    def get(self, commit_id: str) -> Commit | None:
        for commit in self._load():
            if commit.id == commit_id:
                return commit
        return None

    def get_unsynced(self) -> list[Commit]:
        """Commits without a known remote copy, most recent first."""
        return [c for c in self.list() if not c.is_synced]

    def delete(self, commit_id: str) -> bool:
        """Remove a single commit from this device. Remote copies are untouched.

        Returns:
            True if a commit was removed.
        """
        commits = self._load()
        remaining = [c for c in commits if c.id != commit_id]
        if len(remaining) == len(commits):
            return False

        self._save(remaining)
        logger.info(f"Deleted local commit {commit_id}")
        return True

    def mark_synced(self, commit_ids: list[str]) -> int:
        """Flip commits to SYNCED. Already-synced commits are left as they are.

        Returns:
            Number of commits that changed state.
        """
        if not commit_ids:
            return 0

        wanted = set(commit_ids)
        changed = 0
        commits = []
        for commit in self._load():
            if commit.id in wanted and not commit.is_synced:
                commit = commit.as_synced()
                changed += 1
            commits.append(commit)

        if changed:
            self._save(commits)

        logger.debug(f"Marked {changed} commits as synced")
        return changed

    def replace_all(self, commits: list[Commit]) -> None:
        """Replace the whole local view, keeping the given order."""
        self._save(commits)

    def is_modified(self, code: str) -> bool:
        """True if the working code differs from the latest commit."""
        commits = self.list()
        return not commits or commits[0].code != code

    def checkout(self, commit_id: str) -> tuple[str, Language]:
        """Return the code and language recorded by a commit.

        Raises:
            ValidationError: If no such commit exists locally.
        """
        commit = self.get(commit_id)
        if commit is None:
            raise ValidationError(f"Unknown commit: {commit_id}")
        return commit.code, commit.language

    def get_stats(self) -> dict[str, Any]:
        commits = self._load()
        unsynced = sum(1 for c in commits if not c.is_synced)
        return {
            "user_key": self.user_key,
            "total_commits": len(commits),
            "unsynced_commits": unsynced,
            "synced_commits": len(commits) - unsynced,
        }

    # Keep last: shadows the builtin `list` in later class-level annotations
    def list(self) -> list[Commit]:
        """All local commits, most recent first."""
        return sorted(self._load(), key=lambda c: c.timestamp, reverse=True)
