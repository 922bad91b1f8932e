# Subsync Engine Tests
# Tests for the reconciliation engine

import asyncio
from pathlib import Path

import pytest

from subsync.config.schema import ConflictStrategy, SubsyncConfig, SyncSettings
from subsync.store.json_store import JsonRowStore
from subsync.store.kv import MemoryKeyValueStore
from subsync.subscriptions import SubscriptionService
from subsync.sync.conflict import ConflictAction
from subsync.sync.engine import SyncEngine, SyncResult, SyncStatus
from subsync.sync.entity import same_content, without_id
from subsync.sync.operation import OperationType
from subsync.sync.queue import OperationLog
from subsync.sync.replica import LocalReplica

JAN = "2024-01-01T00:00:00.000Z"
FEB = "2024-02-01T00:00:00.000Z"


def _sub(entity_id: str, updated_at: str = JAN, **fields):
    return {"id": entity_id, "name": entity_id.title(), "price": 10.0, "updatedAt": updated_at, **fields}


def _engine(gateway, replica: LocalReplica = None, **settings) -> SyncEngine:
    settings.setdefault("auto_sync", False)
    return SyncEngine(
        replica=replica or LocalReplica(JsonRowStore()),
        queue=OperationLog(MemoryKeyValueStore()),
        gateway=gateway,
        settings=SyncSettings(**settings),
        dead_letters=OperationLog(MemoryKeyValueStore(), "dead"),
    )


def _fast_settings(interval_ms: int, auto_sync: bool = True) -> SyncSettings:
    # Bypasses the 1s minimum so auto-sync can be observed quickly
    return SyncSettings.model_construct(
        sync_interval=interval_ms,
        max_retry_attempts=3,
        conflict_resolution=ConflictStrategy.LAST_WRITE_WINS,
        auto_sync=auto_sync,
    )


class TestSyncPass:
    """Tests for a single sync pass."""

    def test_offline_create_then_online(self, engine: SyncEngine, gateway, replica: LocalReplica):
        service = SubscriptionService(replica, engine)
        gateway.reachable = False
        entity = service.add(name="Netflix", price=15.99)

        result = asyncio.run(engine.sync())
        assert result.success is False
        assert result.error == "Offline"
        assert engine.status == SyncStatus.OFFLINE
        assert gateway.applied == []
        assert gateway.fetch_count == 0
        assert engine.pending_count == 1

        gateway.reachable = True
        result = asyncio.run(engine.sync())

        assert result.success is True
        assert result.error is None
        assert result.pushed == 1
        assert len(gateway.applied) == 1
        assert gateway.applied[0].type == OperationType.CREATE
        assert engine.pending_count == 0
        assert engine.status == SyncStatus.IDLE
        assert gateway.entities[entity["id"]]["name"] == "Netflix"
        assert replica.get(entity["id"])["name"] == "Netflix"

    def test_two_passes_without_changes(self, engine: SyncEngine, gateway, replica: LocalReplica):
        gateway.entities["a"] = _sub("a")
        replica.put(_sub("b"))
        engine.queue_operation(OperationType.CREATE, "b", without_id(_sub("b")))

        first = asyncio.run(engine.sync())
        assert first.success
        assert engine.pending_count == 0
        assert engine.status == SyncStatus.IDLE

        second = asyncio.run(engine.sync())
        assert second.success
        assert engine.pending_count == 0
        assert engine.status == SyncStatus.IDLE
        assert (second.pushed, second.inserted, second.deleted, second.conflicts) == (0, 0, 0, [])

    def test_remote_only_inserted(self, engine: SyncEngine, gateway, replica: LocalReplica):
        remote = _sub("a", plan="Premium", lastModified=1704067200000)
        gateway.entities["a"] = remote

        result = asyncio.run(engine.sync())

        assert result.inserted == 1
        assert replica.get("a") == remote

    def test_local_only_deleted(self, engine: SyncEngine, replica: LocalReplica):
        replica.put(_sub("stale"))

        result = asyncio.run(engine.sync())

        assert result.deleted == 1
        assert replica.get("stale") is None

    def test_local_only_with_pending_create_kept(self, engine: SyncEngine, gateway, replica: LocalReplica):
        replica.put(_sub("new"))
        engine.queue_operation(OperationType.CREATE, "new", {"name": "New"})
        gateway.failures["new"] = 1

        result = asyncio.run(engine.sync())

        assert result.success
        assert result.retained == 1
        assert replica.get("new") is not None
        assert engine.queue.has_pending("new", OperationType.CREATE)

    def test_local_only_with_pending_update_deleted(self, engine: SyncEngine, gateway, replica: LocalReplica):
        replica.put(_sub("gone"))
        engine.queue_operation(OperationType.UPDATE, "gone", {"price": 1})

        result = asyncio.run(engine.sync())

        assert result.success
        assert replica.get("gone") is None
        assert engine.queue.all()[0].attempts == 1

    def test_identical_versions_untouched(self, engine: SyncEngine, gateway, replica: LocalReplica):
        replica.put(_sub("a", lastModified=1))
        gateway.entities["a"] = _sub("a")
        events = []
        replica.on_change(lambda entity_id, entity: events.append(entity_id))

        result = asyncio.run(engine.sync())

        assert result.updated == 0
        assert result.conflicts == []
        assert events == []

    def test_metadata_only_difference_adopted_silently(self, engine: SyncEngine, gateway, replica: LocalReplica):
        replica.put(_sub("a", FEB))
        gateway.entities["a"] = _sub("a", JAN, createdAt=JAN)

        result = asyncio.run(engine.sync())

        assert result.conflicts == []
        assert result.updated == 1
        assert replica.get("a")["updatedAt"] == JAN
        assert engine.pending_count == 0

    def test_probe_failure_leaves_log_untouched(self, engine: SyncEngine, gateway):
        gateway.reachable = False
        engine.queue_operation(OperationType.DELETE, "a")
        before = engine.queue.all()

        result = asyncio.run(engine.sync())

        assert result == SyncResult(success=False, error="Offline")
        assert engine.queue.all() == before
        assert gateway.applied == []
        assert gateway.fetch_count == 0

    def test_pull_failure_sets_error(self, engine: SyncEngine, gateway):
        engine.queue_operation(OperationType.CREATE, "a", {"name": "A"})
        gateway.fetch_error = RuntimeError("connection reset")

        result = asyncio.run(engine.sync())

        assert result.success is False
        assert result.error == "connection reset"
        assert engine.status == SyncStatus.ERROR
        # Drain progress is kept
        assert result.pushed == 1
        assert engine.pending_count == 0

    def test_recovers_from_error(self, engine: SyncEngine, gateway):
        gateway.fetch_error = RuntimeError("boom")
        asyncio.run(engine.sync())
        assert engine.status == SyncStatus.ERROR

        gateway.fetch_error = None
        assert asyncio.run(engine.sync()).success
        assert engine.status == SyncStatus.IDLE

    def test_server_assigned_id(self, engine: SyncEngine, gateway, replica: LocalReplica):
        replica.put(_sub("local-1", price=12.0))
        engine.queue_operation(OperationType.CREATE, "local-1", without_id(_sub("local-1")))
        engine.queue_operation(OperationType.UPDATE, "local-1", {"price": 12.0})
        gateway.assigned_ids["local-1"] = "srv-1"

        result = asyncio.run(engine.sync())

        assert result.success
        assert result.pushed == 2
        assert [op.entity_id for op in gateway.applied] == ["local-1", "srv-1"]
        assert replica.get("local-1") is None
        assert replica.get("srv-1")["price"] == 12.0
        assert engine.pending_count == 0


class TestConflicts:
    """Tests for conflict resolution during pull."""

    def test_last_write_wins_remote_newer(self, engine: SyncEngine, gateway, replica: LocalReplica):
        replica.put(_sub("b", JAN, price=10.0))
        gateway.entities["b"] = _sub("b", FEB, price=12.0)

        result = asyncio.run(engine.sync())

        assert replica.get("b")["price"] == 12.0
        assert replica.get("b")["updatedAt"] == FEB
        assert engine.pending_count == 0
        assert len(result.conflicts) == 1
        assert result.conflicts[0].resolution == ConflictAction.ADOPT_REMOTE
        assert result.conflicts[0].client_data["price"] == 10.0
        assert result.conflicts[0].server_data["price"] == 12.0

    def test_last_write_wins_local_newer(self, engine: SyncEngine, gateway, replica: LocalReplica):
        local = _sub("b", FEB, price=10.0)
        replica.put(local)
        gateway.entities["b"] = _sub("b", JAN, price=12.0)

        result = asyncio.run(engine.sync())

        assert replica.get("b") == local
        (op,) = engine.queue.all()
        assert op.type == OperationType.UPDATE
        assert op.entity_id == "b"
        assert op.data == {k: v for k, v in local.items() if k != "id"}
        assert result.conflicts[0].resolution == ConflictAction.PUSH_LOCAL

        # Pushed on the next pass, after which both sides agree
        asyncio.run(engine.sync())
        assert gateway.entities["b"]["price"] == 10.0
        assert engine.pending_count == 0

    def test_server_wins(self, gateway):
        engine = _engine(gateway, conflict_resolution=ConflictStrategy.SERVER_WINS)
        engine.replica.put(_sub("b", FEB, price=10.0))
        gateway.entities["b"] = _sub("b", JAN, price=12.0)

        asyncio.run(engine.sync())

        assert engine.replica.get("b")["price"] == 12.0
        assert engine.pending_count == 0

    def test_client_wins(self, gateway):
        engine = _engine(gateway, conflict_resolution=ConflictStrategy.CLIENT_WINS)
        engine.replica.put(_sub("b", JAN, price=10.0))
        gateway.entities["b"] = _sub("b", FEB, price=12.0)

        asyncio.run(engine.sync())

        assert engine.replica.get("b")["price"] == 10.0
        assert engine.queue.all()[0].type == OperationType.UPDATE

    def test_client_wins_converges(self, gateway):
        engine = _engine(gateway, conflict_resolution=ConflictStrategy.CLIENT_WINS)
        engine.replica.put(_sub("b", JAN, price=10.0))
        gateway.entities["b"] = _sub("b", FEB, price=12.0)

        for _ in range(3):
            asyncio.run(engine.sync())

        result = asyncio.run(engine.sync())
        assert result.conflicts == []
        assert engine.pending_count == 0
        assert gateway.entities["b"]["price"] == 10.0


class TestRetries:
    """Tests for per-operation failure handling."""

    def test_dropped_after_exactly_max_attempts(self, engine: SyncEngine, gateway):
        engine.queue_operation(OperationType.DELETE, "a")
        gateway.failures["a"] = 100

        first = asyncio.run(engine.sync())
        second = asyncio.run(engine.sync())
        assert first.retained == 1 and second.retained == 1
        assert engine.queue.all()[0].attempts == 2

        third = asyncio.run(engine.sync())

        assert third.success
        assert len(gateway.applied) == 3
        assert engine.pending_count == 0
        assert [op.entity_id for op in third.dropped] == ["a"]
        assert third.dropped[0].attempts == 3
        assert "simulated failure" in third.dropped[0].error

        (dead,) = engine.dead_letters.all()
        assert dead.entity_id == "a"

        asyncio.run(engine.sync())
        assert len(gateway.applied) == 3

    def test_failure_does_not_block_later_items(self, engine: SyncEngine, gateway, replica: LocalReplica):
        replica.put(_sub("ok"))
        engine.queue_operation(OperationType.DELETE, "bad")
        engine.queue_operation(OperationType.CREATE, "ok", without_id(_sub("ok")))
        gateway.failures["bad"] = 1

        result = asyncio.run(engine.sync())

        assert result.pushed == 1
        assert result.retained == 1
        assert "ok" in gateway.entities
        (remaining,) = engine.queue.all()
        assert remaining.entity_id == "bad"
        assert remaining.attempts == 1

    def test_single_attempt_bound(self, gateway):
        engine = _engine(gateway, max_retry_attempts=1)
        engine.queue_operation(OperationType.DELETE, "a")
        gateway.failures["a"] = 1

        result = asyncio.run(engine.sync())

        assert len(result.dropped) == 1
        assert engine.pending_count == 0

    def test_requeue_dead_letters(self, engine: SyncEngine, gateway):
        engine.queue_operation(OperationType.DELETE, "a")
        gateway.failures["a"] = 3
        for _ in range(3):
            asyncio.run(engine.sync())
        assert engine.pending_count == 0

        assert engine.requeue_dead_letters() == 1
        assert engine.dead_letters.size() == 0
        (op,) = engine.queue.all()
        assert op.attempts == 0
        assert op.error is None

        assert asyncio.run(engine.sync()).pushed == 1

    def test_requeue_without_dead_letter_log(self, gateway):
        engine = SyncEngine(LocalReplica(JsonRowStore()), OperationLog(MemoryKeyValueStore()), gateway)
        assert engine.requeue_dead_letters() == 0


class TestConcurrency:
    """Tests for overlapping passes and edits during a pass."""

    def test_overlapping_pass_rejected(self, gateway):
        engine = _engine(gateway)

        async def scenario():
            gateway.fetch_started = asyncio.Event()
            gateway.release = asyncio.Event()
            first = asyncio.create_task(engine.sync())
            await gateway.fetch_started.wait()

            assert engine.status == SyncStatus.SYNCING
            rejected = await engine.sync()

            gateway.release.set()
            return rejected, await first

        rejected, completed = asyncio.run(scenario())

        assert rejected.success is False
        assert rejected.error == "Sync already in progress"
        assert completed.success is True
        assert gateway.probe_count == 1

    def test_create_during_pass_survives_pull(self, gateway):
        engine = _engine(gateway)
        service = SubscriptionService(engine.replica, engine)

        async def scenario():
            gateway.fetch_started = asyncio.Event()
            gateway.release = asyncio.Event()
            task = asyncio.create_task(engine.sync())
            await gateway.fetch_started.wait()

            entity = service.add(name="Mid-pass", price=3.0)
            gateway.release.set()
            await task
            return entity

        entity = asyncio.run(scenario())

        assert engine.replica.get(entity["id"]) is not None
        assert engine.queue.has_pending(entity["id"], OperationType.CREATE)

    def test_offline_sequence_matches_reference(self, gateway):
        gateway.reachable = False
        engine = _engine(gateway)
        service = SubscriptionService(engine.replica, engine)

        a = service.add(name="A", price=1.0)
        b = service.add(name="B", price=2.0, billingCycle="yearly")
        service.update(a["id"], price=1.5, plan="Family")
        service.delete(b["id"])
        c = service.add(name="C", price=3.0)
        service.update(c["id"], notes="shared")
        assert asyncio.run(engine.sync()).error == "Offline"

        reference = {e["id"]: e for e in engine.replica.all()}

        gateway.reachable = True
        assert asyncio.run(engine.sync()).success

        assert set(gateway.entities) == set(reference) == {a["id"], c["id"]}
        for entity_id, expected in reference.items():
            assert same_content(gateway.entities[entity_id], expected)
            assert same_content(engine.replica.get(entity_id), expected)


class TestStatusListeners:
    """Tests for status subscriptions."""

    def test_transitions_broadcast(self, engine: SyncEngine, gateway):
        seen = []
        engine.on_status_change(seen.append)

        asyncio.run(engine.sync())
        gateway.reachable = False
        asyncio.run(engine.sync())
        asyncio.run(engine.sync())

        assert seen == [SyncStatus.SYNCING, SyncStatus.IDLE, SyncStatus.OFFLINE]

    def test_unsubscribe(self, engine: SyncEngine):
        seen = []
        unsubscribe = engine.on_status_change(seen.append)
        unsubscribe()
        unsubscribe()

        asyncio.run(engine.sync())
        assert seen == []

    def test_unsubscribe_removes_only_own_listener(self, engine: SyncEngine):
        first, second = [], []
        unsubscribe = engine.on_status_change(first.append)
        engine.on_status_change(second.append)
        unsubscribe()

        asyncio.run(engine.sync())
        assert first == []
        assert second == [SyncStatus.SYNCING, SyncStatus.IDLE]

    def test_failing_listener_isolated(self, engine: SyncEngine):
        seen = []

        def broken(status):
            raise ValueError("listener bug")

        engine.on_status_change(broken)
        engine.on_status_change(seen.append)

        result = asyncio.run(engine.sync())

        assert result.success
        assert seen == [SyncStatus.SYNCING, SyncStatus.IDLE]


class TestAutoSync:
    """Tests for periodic sync and the async context manager."""

    def test_periodic_passes(self, replica: LocalReplica, gateway):
        engine = SyncEngine(replica, OperationLog(MemoryKeyValueStore()), gateway, _fast_settings(10))

        async def scenario():
            async with engine:
                assert engine.is_auto_syncing
                await asyncio.sleep(0.1)
            return engine.is_auto_syncing

        still_running = asyncio.run(scenario())

        assert gateway.probe_count >= 2
        assert still_running is False
        assert gateway.closed is True

    def test_context_manager_respects_auto_sync_flag(self, engine: SyncEngine, gateway):
        async def scenario():
            async with engine:
                return engine.is_auto_syncing

        assert asyncio.run(scenario()) is False
        assert gateway.closed is True

    def test_start_is_idempotent(self, engine: SyncEngine):
        async def scenario():
            engine.start_auto_sync()
            task = engine._auto_task
            engine.start_auto_sync()
            same = engine._auto_task is task
            engine.stop_auto_sync()
            engine.stop_auto_sync()
            return same

        assert asyncio.run(scenario()) is True
        assert engine.is_auto_syncing is False

    def test_queue_operation_triggers_pass(self, replica: LocalReplica, gateway):
        engine = SyncEngine(replica, OperationLog(MemoryKeyValueStore()), gateway, _fast_settings(60000))

        async def scenario():
            engine.start_auto_sync()
            engine.queue_operation(OperationType.CREATE, "a", {"name": "A"})
            await asyncio.sleep(0.05)
            await engine.aclose()

        asyncio.run(scenario())

        assert [op.entity_id for op in gateway.applied] == ["a"]
        assert engine.pending_count == 0

    def test_queue_operation_offline_does_not_trigger(self, replica: LocalReplica, gateway):
        gateway.reachable = False
        engine = SyncEngine(replica, OperationLog(MemoryKeyValueStore()), gateway, _fast_settings(60000))

        async def scenario():
            await engine.sync()
            engine.start_auto_sync()
            engine.queue_operation(OperationType.DELETE, "a")
            await asyncio.sleep(0.05)
            await engine.aclose()

        asyncio.run(scenario())

        assert gateway.probe_count == 1
        assert engine.pending_count == 1

    def test_queue_operation_without_auto_sync(self, engine: SyncEngine, gateway):
        async def scenario():
            engine.queue_operation(OperationType.DELETE, "a")
            await asyncio.sleep(0.01)

        asyncio.run(scenario())
        assert gateway.probe_count == 0


class TestFromConfig:
    def test_builds_file_backed_engine(self, sample_config: dict, gateway):
        config = SubsyncConfig.model_validate(sample_config)
        engine = SyncEngine.from_config(config, gateway=gateway)
        engine.replica.put(_sub("a"))
        engine.queue_operation(OperationType.CREATE, "a", {"name": "A"})

        data_dir = Path(sample_config["storage"]["data_dir"])
        assert (data_dir / "subscription_sync_queue.json").exists()
        assert (data_dir / "replica.json").exists()
        assert engine.settings.auto_sync is False

        reopened = SyncEngine.from_config(config, gateway=gateway)
        assert reopened.pending_count == 1
        assert reopened.replica.get("a")["name"] == "A"

    def test_default_gateway_is_http(self, sample_config: dict):
        from subsync.remote.gateway import HttpRemoteGateway

        engine = SyncEngine.from_config(SubsyncConfig.model_validate(sample_config))
        assert isinstance(engine.gateway, HttpRemoteGateway)
        assert engine.gateway.base_url == "http://api.test/api"
        assert engine.gateway.token == "secret-token"
