"""Run-history records."""

import uuid
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Any

from ..languages import Language
from ..vcs.commit_log import parse_timestamp

# Ids minted on this device start with this prefix; remote ids never do
LOCAL_ID_PREFIX = "local-"

DEFAULT_TITLE = "Untitled Snippet"


class RecordOrigin(Enum):
    """Which tier a history record lives in."""

    LOCAL_PENDING = "local_pending"
    CLOUD_CONFIRMED = "cloud_confirmed"


def is_local_id(record_id: str) -> bool:
    return record_id.startswith(LOCAL_ID_PREFIX)


def new_local_id() -> str:
    return f"{LOCAL_ID_PREFIX}{uuid.uuid4()}"


@dataclass(frozen=True)
class HistoryRecord:
    """One snippet from the run history."""

    id: str
    timestamp: datetime
    language: Language
    code: str
    title: str | None = None
    comment: str | None = None
    origin: RecordOrigin = RecordOrigin.LOCAL_PENDING

    @classmethod
    def draft(
        cls,
        code: str,
        language: str | Language,
        title: str | None = None,
        comment: str | None = None,
    ) -> "HistoryRecord":
        """A record not yet stored anywhere. Its id is assigned on save."""
        return cls(
            id="",
            timestamp=datetime.now(),
            language=Language.parse(language),
            code=code,
            title=title,
            comment=comment,
        )

    def as_local(self) -> "HistoryRecord":
        """Copy with a fresh local id, the client time and local origin."""
        return replace(
            self,
            id=new_local_id(),
            timestamp=datetime.now(),
            origin=RecordOrigin.LOCAL_PENDING,
        )

    def same_content(self, other: "HistoryRecord") -> bool:
        """True if both records hold the same run (code, language, comment)."""
        return (
            self.code == other.code
            and self.language == other.language
            and (self.comment or "") == (other.comment or "")
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "language": self.language.value,
            "code": self.code,
            "title": self.title,
            "comment": self.comment,
            "origin": self.origin.value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "HistoryRecord":
        return cls(
            id=data["id"],
            timestamp=parse_timestamp(data["timestamp"]),
            language=Language.parse(data["language"]),
            code=data["code"],
            title=data.get("title"),
            comment=data.get("comment"),
            origin=RecordOrigin(data.get("origin", RecordOrigin.LOCAL_PENDING.value)),
        )
