# Subsync Operation Log
# Durable FIFO of pending sync operations

import logging
from dataclasses import replace
from typing import Any, Optional

from subsync.store.kv import KeyValueStore
from subsync.sync.entity import SUBSCRIPTION
from subsync.sync.operation import OperationType, SyncOperation

logger = logging.getLogger(__name__)

QUEUE_STORAGE_KEY = "subscription_sync_queue"
DEAD_LETTER_STORAGE_KEY = "subscription_sync_dead_letters"


class OperationLog:
    """
    Ordered list of pending operations persisted as a JSON array.

    Every mutation is written through to the key-value store. A failed
    write is logged and never raised: the in-memory list stays the source
    of truth until the next successful write.
    """

    def __init__(self, storage: KeyValueStore, storage_key: str = QUEUE_STORAGE_KEY):
        """
        Initialize the log and load any persisted operations.

        Args:
            storage: Key-value store holding the JSON array.
            storage_key: Fixed key the array is stored under.
        """
        self.storage = storage
        self.storage_key = storage_key
        self._operations: list[SyncOperation] = self._load()

    def _load(self) -> list[SyncOperation]:
        raw = self.storage.get_json(self.storage_key, default=[])
        if not isinstance(raw, list):
            logger.error("Stored operation log %r is not a list, starting empty", self.storage_key)
            return []

        operations: list[SyncOperation] = []
        for entry in raw:
            try:
                operations.append(SyncOperation.from_dict(entry))
            except (KeyError, TypeError, ValueError) as e:
                logger.error("Skipping unreadable operation in %r: %s", self.storage_key, e)
        return operations

    def _save(self) -> None:
        try:
            self.storage.set_json(self.storage_key, [op.to_dict() for op in self._operations])
        except (OSError, TypeError, ValueError) as e:
            logger.error("Failed to persist operation log %r: %s", self.storage_key, e)

    def enqueue(
        self,
        op_type: OperationType,
        entity_id: str,
        entity_type: str = SUBSCRIPTION,
        data: Optional[dict[str, Any]] = None,
    ) -> SyncOperation:
        """
        Append a new operation.

        Args:
            op_type: Operation kind.
            entity_id: Target entity id.
            entity_type: Entity type tag.
            data: Payload for CREATE/UPDATE.

        Returns:
            The stored operation with its generated id and timestamp.
        """
        operation = SyncOperation(
            type=OperationType(op_type),
            entity_id=entity_id,
            entity_type=entity_type,
            data=dict(data) if data is not None else None,
        )
        self.append(operation)
        return operation

    def append(self, operation: SyncOperation) -> None:
        """Append an already-built operation (used to re-queue dead letters)."""
        self._operations.append(operation)
        self._save()
        logger.debug("Queued %s %s (%d pending)", operation.type.value, operation.entity_id, len(self))

    def all(self) -> tuple[SyncOperation, ...]:
        """Snapshot of pending operations in processing order."""
        return tuple(self._operations)

    def get(self, operation_id: str) -> Optional[SyncOperation]:
        """Return the operation with the given id, if queued."""
        for operation in self._operations:
            if operation.id == operation_id:
                return operation
        return None

    def remove(self, operation_id: str) -> None:
        """Remove an operation. Unknown ids are ignored."""
        remaining = [op for op in self._operations if op.id != operation_id]
        if len(remaining) != len(self._operations):
            self._operations = remaining
            self._save()

    def record_attempt(self, operation_id: str, error: Optional[str] = None) -> Optional[SyncOperation]:
        """
        Count a failed transmission.

        Args:
            operation_id: Operation to update.
            error: Error message of the failed attempt.

        Returns:
            The updated operation, or None if the id is not queued.
        """
        for index, operation in enumerate(self._operations):
            if operation.id == operation_id:
                updated = operation.with_attempt(error)
                self._operations[index] = updated
                self._save()
                return updated
        return None

    def retarget(self, old_entity_id: str, new_entity_id: str) -> int:
        """
        Point queued operations at a new entity id.

        Returns:
            Number of operations rewritten.
        """
        count = 0
        for index, operation in enumerate(self._operations):
            if operation.entity_id == old_entity_id:
                self._operations[index] = replace(operation, entity_id=new_entity_id)
                count += 1
        if count:
            self._save()
        return count

    def has_pending(self, entity_id: str, op_type: Optional[OperationType] = None) -> bool:
        """Check whether an operation (optionally of one kind) targets entity_id."""
        return any(
            op.entity_id == entity_id and (op_type is None or op.type == op_type) for op in self._operations
        )

    def clear(self) -> None:
        """Remove all operations."""
        self._operations = []
        self._save()

    def size(self) -> int:
        """Number of pending operations."""
        return len(self._operations)

    def __len__(self) -> int:
        return len(self._operations)
