# Subsync Sync Module
# Reconciliation engine and its components

from subsync.sync.conflict import ConflictAction, ConflictRecord, resolve_conflict
from subsync.sync.engine import SyncEngine, SyncResult, SyncStatus
from subsync.sync.entity import SUBSCRIPTION, SUBSCRIPTIONS_TABLE, Entity, touch
from subsync.sync.operation import OperationType, SyncOperation
from subsync.sync.queue import DEAD_LETTER_STORAGE_KEY, QUEUE_STORAGE_KEY, OperationLog
from subsync.sync.replica import LocalReplica

__all__ = [
    # Entity
    "Entity",
    "SUBSCRIPTION",
    "SUBSCRIPTIONS_TABLE",
    "touch",
    # Operations
    "OperationType",
    "SyncOperation",
    "OperationLog",
    "QUEUE_STORAGE_KEY",
    "DEAD_LETTER_STORAGE_KEY",
    # Replica
    "LocalReplica",
    # Conflict
    "ConflictAction",
    "ConflictRecord",
    "resolve_conflict",
    # Engine
    "SyncEngine",
    "SyncResult",
    "SyncStatus",
]
