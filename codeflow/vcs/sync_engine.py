"""Push/pull synchronization between the local commit log and a remote store.

Push is idempotent: every candidate is existence-checked before it is
written, so a retried push never duplicates a remote commit. Pull is a set
union keyed by commit id and never drops a commit that has not been pushed.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from ..errors import FailureClass, classify_error
from ..identity import Authenticated, Guest, Identity
from ..storage import LocalTier
from .commit_log import Commit, LocalCommitLog
from .remote import RemoteCommitStore

logger = logging.getLogger(__name__)


class SyncStatus(Enum):
    """Status of a sync operation."""

    SUCCESS = "success"
    PARTIAL = "partial"  # Some commits synced before an error
    FAILED = "failed"
    OFFLINE = "offline"  # Remote unavailable or refused
    SKIPPED = "skipped"  # Guest identity, nothing attempted


@dataclass
class SyncResult:
    """Result of a sync operation."""

    status: SyncStatus
    entries_pushed: int = 0  # Remote writes performed
    entries_confirmed: int = 0  # Already present remotely, no write needed
    entries_pulled: int = 0  # Remote commits new to this device
    commits: list[Commit] = field(default_factory=list)
    error: str | None = None
    failure: FailureClass | None = None
    timestamp: datetime | None = None

    @property
    def ok(self) -> bool:
        return self.status in (SyncStatus.SUCCESS, SyncStatus.SKIPPED)


def merge_commits(local: list[Commit], remote: list[Commit]) -> list[Commit]:
    """Union of remote commits and local commits not yet pushed.

    Remote copies win on id collisions and are marked synced. Local commits
    that were synced but are no longer present remotely are dropped.

    Returns:
        The merged commits, most recent first.
    """
    merged = {commit.id: commit.as_synced() for commit in remote}
    for commit in local:
        if commit.id not in merged and not commit.is_synced:
            merged[commit.id] = commit

    return sorted(merged.values(), key=lambda c: c.timestamp, reverse=True)


class SyncEngine:
    """Orchestrates push and pull of commit logs.

    At most one push or pull runs per user at a time; later calls for the
    same user wait for the running one.
    """

    def __init__(self, tier: LocalTier, remote: RemoteCommitStore):
        """Initialize the engine.

        Args:
            tier: Local tier holding every user's commit log.
            remote: Remote commit store (a null store when unconfigured).
        """
        self.tier = tier
        self.remote = remote
        self._locks: dict[str, asyncio.Lock] = {}
        self._last_sync: dict[str, datetime] = {}

    def log_for(self, identity: Identity) -> LocalCommitLog:
        """The local commit log of an identity."""
        return LocalCommitLog(self.tier, identity.storage_key)

    def _lock_for(self, user_id: str) -> asyncio.Lock:
        if user_id not in self._locks:
            self._locks[user_id] = asyncio.Lock()
        return self._locks[user_id]

    def _precheck(self, identity: Identity) -> SyncResult | None:
        if isinstance(identity, Guest):
            return SyncResult(
                status=SyncStatus.SKIPPED,
                error="Guest sessions are not synchronized",
            )
        if not self.remote.configured:
            return SyncResult(
                status=SyncStatus.FAILED,
                error="No remote store configured",
            )
        return None

    @staticmethod
    def _failure_result(
        error: Exception, done: int, **counts: Any
    ) -> SyncResult:
        failure = classify_error(error)
        if done:
            status = SyncStatus.PARTIAL
        elif failure is FailureClass.RETRYABLE_LOCAL_FALLBACK:
            status = SyncStatus.OFFLINE
        else:
            status = SyncStatus.FAILED

        return SyncResult(
            status=status,
            error=str(error) or type(error).__name__,
            failure=failure,
            timestamp=datetime.now(),
            **counts,
        )

    async def push(
        self,
        identity: Identity,
        candidates: list[Commit] | None = None,
    ) -> SyncResult:
        """Push local-only commits to the remote store.

        Args:
            identity: User to push as.
            candidates: Commits to push. Defaults to the unsynced commits of
                the user's local log. Already-synced candidates are ignored.

        Returns:
            SyncResult with push statistics.
        """
        skipped = self._precheck(identity)
        if skipped:
            return skipped

        async with self._lock_for(identity.user_id):
            return await self._push(identity, candidates)

    async def _push(
        self, identity: Authenticated, candidates: list[Commit] | None
    ) -> SyncResult:
        log = self.log_for(identity)
        user_id = identity.user_id

        try:
            if candidates is None:
                candidates = log.get_unsynced()
        except Exception as e:
            logger.error(f"Push aborted, cannot read local log: {e}")
            return self._failure_result(e, 0)

        pending = [c for c in candidates if not c.is_synced]
        if not pending:
            return SyncResult(status=SyncStatus.SUCCESS, timestamp=datetime.now())

        accepted: list[str] = []
        written = 0
        error: Exception | None = None

        for commit in pending:
            try:
                if await self.remote.exists(commit.id, user_id):
                    logger.debug(f"Commit {commit.id} already on remote")
                else:
                    await self.remote.write_commit(
                        commit, user_id, server_timestamp=True
                    )
                    written += 1
            except Exception as e:
                logger.warning(f"Push stopped at commit {commit.id}: {e}")
                error = e
                break
            accepted.append(commit.id)

        # Writes already performed are never rolled back
        try:
            log.mark_synced(accepted)
        except Exception as e:
            logger.error(f"Pushed {len(accepted)} commits but cannot mark them: {e}")
            error = error or e

        counts = {
            "entries_pushed": written,
            "entries_confirmed": len(accepted) - written,
        }
        if error is not None:
            return self._failure_result(error, len(accepted), **counts)

        self._last_sync[user_id] = datetime.now()
        logger.info(
            f"Pushed {written} commits for {user_id} "
            f"({len(accepted) - written} already present)"
        )
        return SyncResult(
            status=SyncStatus.SUCCESS, timestamp=self._last_sync[user_id], **counts
        )

    async def pull(self, identity: Identity) -> SyncResult:
        """Merge the user's remote commits into the local log.

        Returns:
            SyncResult whose ``commits`` is the merged local view. Guests get
            an empty result without any remote call.
        """
        skipped = self._precheck(identity)
        if skipped:
            return skipped

        async with self._lock_for(identity.user_id):
            return await self._pull(identity)

    async def _pull(self, identity: Authenticated) -> SyncResult:
        log = self.log_for(identity)

        try:
            remote_commits = await self.remote.query_all(identity.user_id)
        except Exception as e:
            logger.warning(f"Pull failed for {identity.user_id}: {e}")
            return self._failure_result(e, 0)

        try:
            local_commits = log.list()
            merged = merge_commits(local_commits, remote_commits)
            log.replace_all(merged)
        except Exception as e:
            logger.error(f"Pull fetched remote commits but cannot store them: {e}")
            return self._failure_result(e, 0)

        known = {c.id for c in local_commits}
        pulled = sum(1 for c in remote_commits if c.id not in known)
        self._last_sync[identity.user_id] = datetime.now()

        logger.info(
            f"Pulled {len(remote_commits)} remote commits for {identity.user_id}, "
            f"{pulled} new"
        )
        return SyncResult(
            status=SyncStatus.SUCCESS,
            entries_pulled=pulled,
            commits=merged,
            timestamp=self._last_sync[identity.user_id],
        )

    async def full_sync(self, identity: Identity) -> SyncResult:
        """Push then pull.

        Returns:
            Combined SyncResult.
        """
        push_result = await self.push(identity)
        if push_result.status in (SyncStatus.OFFLINE, SyncStatus.SKIPPED):
            return push_result

        pull_result = await self.pull(identity)

        return SyncResult(
            status=(
                push_result.status
                if pull_result.status == SyncStatus.SUCCESS
                else pull_result.status
            ),
            entries_pushed=push_result.entries_pushed,
            entries_confirmed=push_result.entries_confirmed,
            entries_pulled=pull_result.entries_pulled,
            commits=pull_result.commits,
            error=pull_result.error or push_result.error,
            failure=pull_result.failure or push_result.failure,
            timestamp=datetime.now(),
        )

    def last_sync(self, identity: Identity) -> datetime | None:
        """Get timestamp of the last successful sync of a user."""
        if isinstance(identity, Guest):
            return None
        return self._last_sync.get(identity.user_id)

    def get_sync_status(self, identity: Identity) -> dict[str, Any]:
        """Get current sync status.

        Returns:
            Dictionary with sync statistics.
        """
        log_stats = self.log_for(identity).get_stats()
        last_sync = self.last_sync(identity)

        return {
            "remote_configured": self.remote.configured,
            "guest": isinstance(identity, Guest),
            "last_sync": last_sync.isoformat() if last_sync else None,
            "pending_commits": log_stats["unsynced_commits"],
            "total_commits": log_stats["total_commits"],
        }
