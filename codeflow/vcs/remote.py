"""Remote commit store contract and its implementations."""

import logging
from abc import ABC, abstractmethod
from urllib.parse import quote

from ..errors import ConnectivityError, RemoteRequestError, ValidationError
from ..remote import RemoteClient
from .commit_log import Commit, SyncState

logger = logging.getLogger(__name__)


class RemoteCommitStore(ABC):
    """Cloud-persisted commits for a user."""

    @property
    def configured(self) -> bool:
        """False for stand-ins used when no remote is configured."""
        return True

    @abstractmethod
    async def exists(self, commit_id: str, user_id: str) -> bool:
        """Check whether the user already has a commit with this id remotely."""
        pass

    @abstractmethod
    async def write_commit(
        self, commit: Commit, user_id: str, server_timestamp: bool = True
    ) -> None:
        """Store a commit for a user.

        Args:
            commit: The commit to store.
            user_id: Owner of the commit.
            server_timestamp: Let the remote replace the timestamp with its own
                clock on acceptance.
        """
        pass

    @abstractmethod
    async def query_all(self, user_id: str) -> list[Commit]:
        """All commits of a user, most recent first, marked SYNCED."""
        pass

    async def close(self) -> None:
        pass


class NullRemoteCommitStore(RemoteCommitStore):
    """Stand-in used when no remote is configured.

    Every call fails as unavailable, so nothing is ever marked synced.
    """

    @property
    def configured(self) -> bool:
        return False

    async def exists(self, commit_id: str, user_id: str) -> bool:
        raise ConnectivityError("No remote store configured")

    async def write_commit(
        self, commit: Commit, user_id: str, server_timestamp: bool = True
    ) -> None:
        raise ConnectivityError("No remote store configured")

    async def query_all(self, user_id: str) -> list[Commit]:
        raise ConnectivityError("No remote store configured")


class HttpRemoteCommitStore(RemoteCommitStore):
    """Remote commit store backed by a codeflow server over HTTP."""

    def __init__(self, client: RemoteClient):
        self.client = client

    @staticmethod
    def _commit_path(user_id: str, commit_id: str = "") -> str:
        path = f"/api/users/{quote(user_id, safe='')}/commits"
        if commit_id:
            path += f"/{quote(commit_id, safe='')}"
        return path

    async def exists(self, commit_id: str, user_id: str) -> bool:
        response = await self.client.request(
            "GET", self._commit_path(user_id, commit_id), allow_not_found=True
        )
        return response.status_code != 404

    async def write_commit(
        self, commit: Commit, user_id: str, server_timestamp: bool = True
    ) -> None:
        payload = {
            "commit": commit.to_dict(),
            "server_timestamp": server_timestamp,
        }
        await self.client.request(
            "PUT", self._commit_path(user_id, commit.id), payload
        )
        logger.debug(f"Wrote commit {commit.id} for user {user_id}")

    async def query_all(self, user_id: str) -> list[Commit]:
        response = await self.client.request("GET", self._commit_path(user_id))

        try:
            data = response.json()
            commits = [
                Commit.from_dict({**item, "sync_status": SyncState.SYNCED.value})
                for item in data.get("commits", [])
            ]
        except (ValueError, KeyError, TypeError, ValidationError) as e:
            raise RemoteRequestError(f"Malformed commit listing: {e}") from e

        return sorted(commits, key=lambda c: c.timestamp, reverse=True)

    async def close(self) -> None:
        await self.client.close()
