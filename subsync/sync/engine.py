# Subsync Sync Engine
# Reconciliation of the local replica with the remote store

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional

from subsync.config.schema import SyncSettings
from subsync.sync.conflict import ConflictAction, ConflictRecord, resolve_conflict
from subsync.sync.entity import SUBSCRIPTION, Entity, same_content, same_version, without_id
from subsync.sync.operation import OperationType, SyncOperation
from subsync.sync.queue import OperationLog
from subsync.sync.replica import LocalReplica

if TYPE_CHECKING:
    from subsync.config.schema import SubsyncConfig
    from subsync.remote.gateway import RemoteGateway

logger = logging.getLogger(__name__)

REPLICA_FILENAME = "replica.json"

ALREADY_SYNCING = "Sync already in progress"
OFFLINE = "Offline"


class SyncStatus(str, Enum):
    """Engine status, broadcast to subscribers on every transition."""

    IDLE = "IDLE"
    SYNCING = "SYNCING"
    OFFLINE = "OFFLINE"
    ERROR = "ERROR"


StatusListener = Callable[[SyncStatus], None]


@dataclass
class SyncResult:
    """Result of one sync pass."""

    success: bool
    error: Optional[str] = None
    pushed: int = 0
    retained: int = 0
    dropped: list[SyncOperation] = field(default_factory=list)
    inserted: int = 0
    updated: int = 0
    deleted: int = 0
    conflicts: list[ConflictRecord] = field(default_factory=list)

    @property
    def has_issues(self) -> bool:
        """Check if any operation was dropped or left queued after a failure."""
        return bool(self.dropped) or self.retained > 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to the ``{success, error?}`` shape plus diagnostics."""
        result: dict[str, Any] = {"success": self.success}
        if self.error is not None:
            result["error"] = self.error
        if self.conflicts:
            result["conflicts"] = [c.to_dict() for c in self.conflicts]
        return result


class SyncEngine:
    """
    Two-way reconciliation between the local replica and the remote store.

    One pass drains the operation log against the gateway, then pulls the
    remote collection and reconciles it entity by entity. Only one pass
    runs at a time; a pass requested while another is in flight is
    rejected rather than queued. Failures are reported through
    ``SyncResult`` and the status, never raised.
    """

    def __init__(
        self,
        replica: LocalReplica,
        queue: OperationLog,
        gateway: RemoteGateway,
        settings: Optional[SyncSettings] = None,
        dead_letters: Optional[OperationLog] = None,
    ):
        """
        Initialize sync engine.

        Args:
            replica: Local replica accessor.
            queue: Operation log of pending mutations.
            gateway: Remote store gateway.
            settings: Engine settings (defaults used if not provided).
            dead_letters: Optional log receiving operations dropped after
                          exceeding the retry bound.
        """
        self.replica = replica
        self.queue = queue
        self.gateway = gateway
        self.settings = settings or SyncSettings()
        self.dead_letters = dead_letters
        self._status = SyncStatus.IDLE
        self._listeners: list[StatusListener] = []
        self._running = False
        self._auto_task: Optional[asyncio.Task[None]] = None
        self._background: set[asyncio.Task[Any]] = set()

    @classmethod
    def from_config(cls, config: SubsyncConfig, *, gateway: Optional[RemoteGateway] = None) -> SyncEngine:
        """
        Build an engine with file-backed storage and the HTTP gateway.

        Args:
            config: Loaded configuration.
            gateway: Optional gateway override.

        Returns:
            Configured SyncEngine.
        """
        from subsync.remote.gateway import HttpRemoteGateway
        from subsync.store.json_store import JsonRowStore
        from subsync.store.kv import FileKeyValueStore
        from subsync.sync.queue import DEAD_LETTER_STORAGE_KEY

        data_dir = config.data_path
        storage = FileKeyValueStore(data_dir)

        if gateway is None:
            gateway = HttpRemoteGateway(
                config.remote.base_url,
                config.remote.token,
                timeout=config.remote.timeout,
            )

        return cls(
            replica=LocalReplica(JsonRowStore(data_dir / REPLICA_FILENAME)),
            queue=OperationLog(storage),
            gateway=gateway,
            settings=config.sync,
            dead_letters=OperationLog(storage, DEAD_LETTER_STORAGE_KEY),
        )

    # Status

    @property
    def status(self) -> SyncStatus:
        """Current sync status."""
        return self._status

    @property
    def pending_count(self) -> int:
        """Number of operations waiting to be pushed."""
        return self.queue.size()

    def on_status_change(self, listener: StatusListener) -> Callable[[], None]:
        """
        Subscribe to status transitions.

        Args:
            listener: Called synchronously with the new status.

        Returns:
            Callable that removes this listener only.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            for index, registered in enumerate(self._listeners):
                if registered is listener:
                    del self._listeners[index]
                    return

        return unsubscribe

    def _set_status(self, status: SyncStatus) -> None:
        if status == self._status:
            return

        self._status = status
        logger.debug("Sync status -> %s", status.value)
        for listener in list(self._listeners):
            try:
                listener(status)
            except Exception:
                logger.exception("Sync status listener failed")

    # Local mutations

    def queue_operation(
        self,
        op_type: OperationType,
        entity_id: str,
        data: Optional[dict[str, Any]] = None,
        entity_type: str = SUBSCRIPTION,
    ) -> SyncOperation:
        """
        Queue a local mutation for transmission.

        When auto-sync is running and the engine is not offline, a pass is
        scheduled right away.

        Returns:
            The queued operation.
        """
        operation = self.queue.enqueue(op_type, entity_id, entity_type, data)
        if self.is_auto_syncing and self._status != SyncStatus.OFFLINE and not self._running:
            self._schedule_sync()
        return operation

    def requeue_dead_letters(self) -> int:
        """
        Move dropped operations back onto the queue with a fresh retry budget.

        Returns:
            Number of operations re-queued.
        """
        if self.dead_letters is None:
            return 0

        operations = self.dead_letters.all()
        for operation in operations:
            self.queue.append(replace(operation, attempts=0, error=None))
        self.dead_letters.clear()
        return len(operations)

    # Sync pass

    async def sync(self) -> SyncResult:
        """
        Run one sync pass: drain the operation log, then pull.

        Returns:
            SyncResult; ``success`` is False with ``error`` set when the
            pass was rejected, the remote was unreachable or a step failed.
        """
        if self._running or self._status == SyncStatus.SYNCING:
            return SyncResult(success=False, error=ALREADY_SYNCING)

        self._running = True
        try:
            if not await self.gateway.check_reachable():
                self._set_status(SyncStatus.OFFLINE)
                logger.info("Remote unreachable, %d operations kept queued", self.queue.size())
                return SyncResult(success=False, error=OFFLINE)

            self._set_status(SyncStatus.SYNCING)
            result = SyncResult(success=True)
            try:
                await self._drain(result)
                await self._pull(result)
            except Exception as e:
                logger.error("Sync pass failed: %s", e)
                self._set_status(SyncStatus.ERROR)
                result.success = False
                result.error = str(e) or type(e).__name__
                return result

            self._set_status(SyncStatus.IDLE)
            logger.info(
                "Sync pass done: %d pushed, %d dropped, %d inserted, %d updated, %d deleted, %d conflicts",
                result.pushed,
                len(result.dropped),
                result.inserted,
                result.updated,
                result.deleted,
                len(result.conflicts),
            )
            return result
        finally:
            self._running = False

    async def _drain(self, result: SyncResult) -> None:
        """Apply every queued operation in order; failures never block later items."""
        for queued in self.queue.all():
            # Re-read: earlier items may have retargeted or removed it
            operation = self.queue.get(queued.id)
            if operation is None:
                continue

            try:
                entity = await self.gateway.apply(operation)
            except Exception as e:
                self._record_failure(operation, str(e) or type(e).__name__, result)
                continue

            self.queue.remove(operation.id)
            result.pushed += 1

            if operation.type == OperationType.CREATE and entity and entity.get("id"):
                server_id = str(entity["id"])
                if server_id != operation.entity_id:
                    self._adopt_server_id(operation.entity_id, server_id)

    def _record_failure(self, operation: SyncOperation, message: str, result: SyncResult) -> None:
        updated = self.queue.record_attempt(operation.id, message)
        if updated is None:
            # Removed from the log while the request was in flight
            return

        if updated.attempts < self.settings.max_retry_attempts:
            result.retained += 1
            logger.warning(
                "Operation %s (%s %s) failed, attempt %d/%d: %s",
                operation.id,
                operation.type.value,
                operation.entity_id,
                updated.attempts,
                self.settings.max_retry_attempts,
                message,
            )
            return

        self.queue.remove(operation.id)
        result.dropped.append(updated)
        if self.dead_letters is not None:
            self.dead_letters.append(updated)
        logger.error(
            "Operation %s (%s %s) dropped after %d attempts: %s",
            operation.id,
            operation.type.value,
            operation.entity_id,
            updated.attempts,
            message,
        )

    def _adopt_server_id(self, local_id: str, server_id: str) -> None:
        """Re-key a created entity when the remote store assigned its own id."""
        if self.replica.exists(local_id):
            self.replica.rekey(local_id, server_id)
        retargeted = self.queue.retarget(local_id, server_id)
        logger.info("Entity %s created remotely as %s (%d queued operations retargeted)", local_id, server_id, retargeted)

    async def _pull(self, result: SyncResult) -> None:
        """Fetch the remote collection and reconcile it against the replica."""
        remote_entities = await self.gateway.fetch_all()
        local_by_id = {entity["id"]: entity for entity in self.replica.all()}

        for remote in remote_entities:
            entity_id = remote.get("id")
            if not entity_id:
                logger.warning("Ignoring remote entity without id")
                continue

            local = local_by_id.pop(entity_id, None)
            if local is None:
                self.replica.put(remote)
                result.inserted += 1
            else:
                self._reconcile(local, remote, result)

        # Remote is authoritative for existence, except for creations not yet pushed
        for entity_id in local_by_id:
            if self.queue.has_pending(entity_id, OperationType.CREATE):
                continue
            if self.replica.delete(entity_id):
                result.deleted += 1

    def _reconcile(self, local: Entity, remote: Entity, result: SyncResult) -> None:
        if same_version(local, remote):
            return

        if same_content(local, remote):
            # Only sync metadata differs; mirror the remote timestamps
            self.replica.put(remote)
            result.updated += 1
            return

        action = resolve_conflict(local, remote, self.settings.conflict_resolution)
        result.conflicts.append(
            ConflictRecord(
                entity_id=local["id"],
                entity_type=SUBSCRIPTION,
                client_data=without_id(local),
                server_data=without_id(remote),
                resolution=action,
            )
        )

        if action == ConflictAction.ADOPT_REMOTE:
            self.replica.put(remote)
            result.updated += 1
        else:
            self.queue.enqueue(OperationType.UPDATE, local["id"], SUBSCRIPTION, without_id(local))

    # Auto-sync

    @property
    def is_auto_syncing(self) -> bool:
        """Check whether the periodic sync task is running."""
        return self._auto_task is not None and not self._auto_task.done()

    def start_auto_sync(self) -> None:
        """
        Start periodic sync passes every ``sync_interval`` milliseconds.

        Must be called from a running event loop. Calling it again while
        running is a no-op.
        """
        if self.is_auto_syncing:
            return
        self._auto_task = asyncio.get_running_loop().create_task(self._auto_sync_loop())
        logger.debug("Auto-sync started (every %d ms)", self.settings.sync_interval)

    def stop_auto_sync(self) -> None:
        """Cancel periodic sync passes. No-op if not running."""
        if self._auto_task is not None:
            self._auto_task.cancel()
            self._auto_task = None
            logger.debug("Auto-sync stopped")

    async def _auto_sync_loop(self) -> None:
        interval = self.settings.sync_interval / 1000
        while True:
            await asyncio.sleep(interval)
            result = await self.sync()
            if not result.success:
                logger.warning("Auto sync failed: %s", result.error)

    def _schedule_sync(self) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        task = loop.create_task(self.sync())
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def aclose(self) -> None:
        """Stop auto-sync, wait for scheduled passes and close the gateway."""
        task = self._auto_task
        self.stop_auto_sync()
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)
        await self.gateway.aclose()

    async def __aenter__(self) -> SyncEngine:
        if self.settings.auto_sync:
            self.start_auto_sync()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()
