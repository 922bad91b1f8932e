# Subsync Sync Operations
# Queued mutations awaiting transmission to the remote store

import uuid
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Optional

from subsync.sync.entity import SUBSCRIPTION
from subsync.utils.timestamps import now_ms


class OperationType(str, Enum):
    """Kinds of remote mutation."""

    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


@dataclass(frozen=True)
class SyncOperation:
    """
    One pending mutation of a remote entity.

    ``data`` carries the full or partial entity for CREATE/UPDATE and is
    None for DELETE. ``attempts`` counts failed transmissions.
    """

    type: OperationType
    entity_id: str
    entity_type: str = SUBSCRIPTION
    data: Optional[dict[str, Any]] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: int = field(default_factory=now_ms)
    attempts: int = 0
    error: Optional[str] = None

    def with_attempt(self, error: Optional[str] = None) -> "SyncOperation":
        """Copy with the attempt counter incremented and error recorded."""
        return replace(self, attempts=self.attempts + 1, error=error)

    def to_dict(self) -> dict[str, Any]:
        """Convert to the persisted (camelCase) representation."""
        result: dict[str, Any] = {
            "id": self.id,
            "type": self.type.value,
            "entityId": self.entity_id,
            "entityType": self.entity_type,
            "timestamp": self.timestamp,
            "attempts": self.attempts,
        }
        if self.data is not None:
            result["data"] = self.data
        if self.error is not None:
            result["error"] = self.error
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SyncOperation":
        """
        Create from the persisted representation.

        Raises:
            KeyError: If a required field is missing.
            ValueError: If the operation type is unknown.
        """
        return cls(
            id=str(data["id"]),
            type=OperationType(data["type"]),
            entity_id=str(data["entityId"]),
            entity_type=data.get("entityType", SUBSCRIPTION),
            data=data.get("data"),
            timestamp=int(data.get("timestamp", 0)),
            attempts=int(data.get("attempts", 0)),
            error=data.get("error"),
        )
