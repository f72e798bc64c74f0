"""Remote run-history store contract and its implementations."""

import logging
from abc import ABC, abstractmethod
from dataclasses import replace
from urllib.parse import quote

from ..errors import ConnectivityError, RemoteRequestError, ValidationError
from ..remote import RemoteClient
from .record import DEFAULT_TITLE, HistoryRecord, RecordOrigin, is_local_id

logger = logging.getLogger(__name__)


class RemoteHistoryStore(ABC):
    """Cloud-persisted run history."""

    @property
    def configured(self) -> bool:
        """False for stand-ins used when no remote is configured."""
        return True

    @abstractmethod
    async def write_record(self, record: HistoryRecord, user_id: str) -> HistoryRecord:
        """Store a record and return it with its remote id and server time."""
        pass

    @abstractmethod
    async def query_all(self, user_id: str) -> list[HistoryRecord]:
        """All records of a user, most recent first."""
        pass

    @abstractmethod
    async def delete(self, record_id: str, user_id: str) -> bool:
        """Delete one of a user's records. Returns False if it did not exist."""
        pass

    async def close(self) -> None:
        pass


class NullRemoteHistoryStore(RemoteHistoryStore):
    """Stand-in used when no remote is configured."""

    @property
    def configured(self) -> bool:
        return False

    async def write_record(self, record: HistoryRecord, user_id: str) -> HistoryRecord:
        raise ConnectivityError("No remote store configured")

    async def query_all(self, user_id: str) -> list[HistoryRecord]:
        raise ConnectivityError("No remote store configured")

    async def delete(self, record_id: str, user_id: str) -> bool:
        raise ConnectivityError("No remote store configured")


def _confirmed(data: dict) -> HistoryRecord:
    record = HistoryRecord.from_dict(
        {**data, "origin": RecordOrigin.CLOUD_CONFIRMED.value}
    )
    if is_local_id(record.id):
        raise RemoteRequestError(f"Remote returned a local id: {record.id}")
    if not record.title:
        record = replace(record, title=DEFAULT_TITLE)
    return record


class HttpRemoteHistoryStore(RemoteHistoryStore):
    """Remote history store backed by a codeflow server over HTTP."""

    def __init__(self, client: RemoteClient):
        self.client = client

    @staticmethod
    def _user_path(user_id: str) -> str:
        return f"/api/users/{quote(user_id, safe='')}/history"

    async def write_record(self, record: HistoryRecord, user_id: str) -> HistoryRecord:
        response = await self.client.request(
            "POST", self._user_path(user_id), {"record": record.to_dict()}
        )

        try:
            stored = _confirmed(response.json())
        except (ValueError, KeyError, TypeError, ValidationError) as e:
            raise RemoteRequestError(f"Malformed history record: {e}") from e

        logger.debug(f"Saved history record {stored.id} for user {user_id}")
        return stored

    async def query_all(self, user_id: str) -> list[HistoryRecord]:
        response = await self.client.request("GET", self._user_path(user_id))

        try:
            records = [_confirmed(item) for item in response.json().get("records", [])]
        except (ValueError, KeyError, TypeError, ValidationError) as e:
            raise RemoteRequestError(f"Malformed history listing: {e}") from e

        return sorted(records, key=lambda r: r.timestamp, reverse=True)

    async def delete(self, record_id: str, user_id: str) -> bool:
        response = await self.client.request(
            "DELETE",
            f"{self._user_path(user_id)}/{quote(record_id, safe='')}",
            allow_not_found=True,
        )
        return response.status_code != 404

    async def close(self) -> None:
        await self.client.close()
