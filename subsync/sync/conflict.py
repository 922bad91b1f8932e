# Subsync Conflict Policy
# Decides which side wins when local and remote versions diverge

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from subsync.config.schema import ConflictStrategy
from subsync.sync.entity import Entity, entity_timestamp


class ConflictAction(str, Enum):
    """Outcome of a conflict decision."""

    ADOPT_REMOTE = "adopt_remote"  # overwrite local with the remote version
    PUSH_LOCAL = "push_local"  # queue an UPDATE carrying the local version


@dataclass
class ConflictRecord:
    """A detected conflict and how it was resolved."""

    entity_id: str
    entity_type: str
    client_data: dict[str, Any]
    server_data: dict[str, Any]
    resolution: Optional[ConflictAction] = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "entityId": self.entity_id,
            "entityType": self.entity_type,
            "clientData": self.client_data,
            "serverData": self.server_data,
            "resolution": self.resolution.value if self.resolution else None,
        }


def resolve_conflict(local: Entity, remote: Entity, strategy: ConflictStrategy) -> ConflictAction:
    """
    Pick the winning side of a conflict.

    Timestamps come from each side's ``updatedAt``; a side without one
    counts as epoch 0 and loses any timestamp comparison.

    Args:
        local: Local version of the entity.
        remote: Remote version of the entity.
        strategy: Configured conflict strategy.

    Returns:
        ConflictAction to apply.
    """
    if strategy == ConflictStrategy.SERVER_WINS:
        return ConflictAction.ADOPT_REMOTE

    if strategy == ConflictStrategy.CLIENT_WINS:
        return ConflictAction.PUSH_LOCAL

    # LAST_WRITE_WINS: ties go to the server
    if entity_timestamp(local) > entity_timestamp(remote):
        return ConflictAction.PUSH_LOCAL
    return ConflictAction.ADOPT_REMOTE
