"""Run history backed by a remote store with a local fallback tier.

Records go to the remote store when one is configured and the identity is
authenticated. Permission-denied and service-unavailable failures degrade to
the local tier without bothering the caller; every other failure is reported
in the returned result.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum

from ..errors import FailureClass, classify_error
from ..identity import Authenticated, Identity
from ..storage import LocalTier
from .record import HistoryRecord, is_local_id
from .remote import RemoteHistoryStore

logger = logging.getLogger(__name__)

HISTORY_STORE = "history"


class HistoryTier(Enum):
    """Where a result was served from."""

    REMOTE = "remote"
    LOCAL = "local"
    NONE = "none"


class SaveOutcome(Enum):
    REMOTE = "remote"
    LOCAL = "local"
    DUPLICATE = "duplicate"  # Same run as the latest record, not stored again
    DROPPED = "dropped"  # Fatal remote error


@dataclass
class SaveResult:
    """Result of saving one record."""

    outcome: SaveOutcome
    record: HistoryRecord | None = None
    error: str | None = None
    failure: FailureClass | None = None

    @property
    def saved(self) -> bool:
        return self.outcome in (SaveOutcome.REMOTE, SaveOutcome.LOCAL)


@dataclass
class LoadResult:
    """Result of loading a user's history."""

    records: list[HistoryRecord] = field(default_factory=list)
    tier: HistoryTier = HistoryTier.NONE
    error: str | None = None
    failure: FailureClass | None = None

    @property
    def fell_back(self) -> bool:
        """True if the remote failed and the local tier answered instead."""
        return self.tier is HistoryTier.LOCAL and self.error is not None


@dataclass
class DeleteResult:
    removed_remote: bool = False
    removed_local: bool = False
    error: str | None = None
    failure: FailureClass | None = None

    @property
    def removed(self) -> bool:
        return self.removed_remote or self.removed_local


class HybridHistoryStore:
    """Remote-preferred run history with transparent local fallback."""

    def __init__(self, tier: LocalTier, remote: RemoteHistoryStore):
        """Initialize the store.

        Args:
            tier: Local tier used offline and as fallback.
            remote: Remote history store (a null store when unconfigured).
        """
        self.tier = tier
        self.remote = remote
        # Latest record seen per user, used to skip repeated identical runs
        self._latest: dict[str, HistoryRecord] = {}

    def _uses_remote(self, identity: Identity) -> bool:
        return isinstance(identity, Authenticated) and self.remote.configured

    def _read_local(self, user_key: str) -> list[HistoryRecord]:
        data = self.tier.read(HISTORY_STORE, user_key) or []
        records = [HistoryRecord.from_dict(item) for item in data]
        return sorted(records, key=lambda r: r.timestamp, reverse=True)

    def _save_local(self, user_key: str, record: HistoryRecord) -> HistoryRecord:
        local = record.as_local()
        records = [local] + self._read_local(user_key)
        self.tier.write(HISTORY_STORE, user_key, [r.to_dict() for r in records])
        logger.debug(f"Saved history record {local.id} locally for {user_key}")
        return local

    def _delete_local(self, user_key: str, record_id: str) -> bool:
        records = self._read_local(user_key)
        remaining = [r for r in records if r.id != record_id]
        if len(remaining) == len(records):
            return False
        self.tier.write(HISTORY_STORE, user_key, [r.to_dict() for r in remaining])
        return True

    async def save(self, identity: Identity, record: HistoryRecord) -> SaveResult:
        """Save a run to the history.

        Local tier failures raise ``LocalStorageError``.

        Args:
            identity: Owner of the record.
            record: The record to save. Its id and timestamp are replaced by
                whichever tier stores it.

        Returns:
            SaveResult naming the tier that stored the record.
        """
        user_key = identity.storage_key

        latest = self._latest.get(user_key)
        if latest is not None and latest.same_content(record):
            logger.debug(f"Skipping duplicate history record for {user_key}")
            return SaveResult(outcome=SaveOutcome.DUPLICATE, record=latest)

        if not self._uses_remote(identity):
            stored = self._save_local(user_key, record)
            self._latest[user_key] = stored
            return SaveResult(outcome=SaveOutcome.LOCAL, record=stored)

        try:
            stored = await self.remote.write_record(record, identity.user_id)
        except Exception as e:
            failure = classify_error(e)
            if failure is FailureClass.FATAL:
                logger.error(f"Dropping history record for {user_key}: {e}")
                return SaveResult(
                    outcome=SaveOutcome.DROPPED, error=str(e), failure=failure
                )

            logger.warning(f"Remote history unavailable, saving locally: {e}")
            stored = self._save_local(user_key, record)
            self._latest[user_key] = stored
            return SaveResult(
                outcome=SaveOutcome.LOCAL, record=stored, error=str(e), failure=failure
            )

        self._latest[user_key] = stored
        return SaveResult(outcome=SaveOutcome.REMOTE, record=stored)

    async def load(self, identity: Identity) -> LoadResult:
        """Load a user's history, most recent first."""
        user_key = identity.storage_key

        if not self._uses_remote(identity):
            result = LoadResult(records=self._read_local(user_key), tier=HistoryTier.LOCAL)
        else:
            try:
                records = await self.remote.query_all(identity.user_id)
                result = LoadResult(records=records, tier=HistoryTier.REMOTE)
            except Exception as e:
                failure = classify_error(e)
                if failure is FailureClass.FATAL:
                    logger.error(f"Cannot load history for {user_key}: {e}")
                    return LoadResult(error=str(e), failure=failure)

                logger.warning(f"Remote history unavailable, reading locally: {e}")
                result = LoadResult(
                    records=self._read_local(user_key),
                    tier=HistoryTier.LOCAL,
                    error=str(e),
                    failure=failure,
                )

        if result.records:
            self._latest[user_key] = result.records[0]
        else:
            self._latest.pop(user_key, None)
        return result

    async def delete(self, identity: Identity, record_id: str) -> DeleteResult:
        """Delete one record from whichever tier its id belongs to.

        When a remote delete fails, the local tier is cleaned as well so no
        copy the caller believes gone stays reachable.
        """
        user_key = identity.storage_key

        if is_local_id(record_id):
            result = DeleteResult(removed_local=self._delete_local(user_key, record_id))
        elif not self._uses_remote(identity):
            result = DeleteResult(
                removed_local=self._delete_local(user_key, record_id),
                error="Remote history is not available for this identity",
            )
        else:
            try:
                removed = await self.remote.delete(record_id, identity.user_id)
                result = DeleteResult(removed_remote=removed)
            except Exception as e:
                logger.warning(f"Remote delete of {record_id} failed: {e}")
                result = DeleteResult(
                    removed_local=self._delete_local(user_key, record_id),
                    error=str(e),
                    failure=classify_error(e),
                )

        # A record that survived the delete still counts for duplicate detection
        latest = self._latest.get(user_key)
        if result.removed and latest is not None and latest.id == record_id:
            del self._latest[user_key]
        return result

    def clear(self, identity: Identity) -> int:
        """Drop every locally stored record of a user.

        Returns:
            Number of records removed.
        """
        user_key = identity.storage_key
        count = len(self._read_local(user_key))
        self.tier.delete(HISTORY_STORE, user_key)
        self._latest.pop(user_key, None)
        logger.info(f"Cleared {count} local history records for {user_key}")
        return count
