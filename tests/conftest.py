# Subsync Test Fixtures
# Pytest fixtures for subsync tests

import asyncio
import tempfile
from collections.abc import Generator
from pathlib import Path
from typing import Any, Optional

import pytest
import yaml

from subsync.config.schema import SyncSettings
from subsync.errors import NetworkError, RemoteHTTPError
from subsync.remote.gateway import RemoteGateway
from subsync.store.json_store import JsonRowStore
from subsync.store.kv import MemoryKeyValueStore
from subsync.sync.engine import SyncEngine
from subsync.sync.operation import OperationType, SyncOperation
from subsync.sync.queue import DEAD_LETTER_STORAGE_KEY, OperationLog
from subsync.sync.replica import LocalReplica


class FakeGateway(RemoteGateway):
    """In-memory remote store recording every call."""

    def __init__(self, entities: Optional[list[dict[str, Any]]] = None, *, reachable: bool = True):
        self.entities: dict[str, dict[str, Any]] = {e["id"]: dict(e) for e in entities or []}
        self.reachable = reachable
        self.applied: list[SyncOperation] = []
        self.fetch_count = 0
        self.probe_count = 0
        self.closed = False
        # entity_id -> number of upcoming apply calls that fail
        self.failures: dict[str, int] = {}
        self.fetch_error: Optional[Exception] = None
        # Server-assigned ids for CREATE, keyed by client id
        self.assigned_ids: dict[str, str] = {}
        # When release is set, fetch_all signals fetch_started and waits for it
        self.fetch_started: Optional[asyncio.Event] = None
        self.release: Optional[asyncio.Event] = None

    async def check_reachable(self) -> bool:
        self.probe_count += 1
        return self.reachable

    async def fetch_all(self) -> list[dict[str, Any]]:
        self.fetch_count += 1
        if self.release is not None:
            self.fetch_started.set()
            await self.release.wait()
        if self.fetch_error is not None:
            raise self.fetch_error
        return [dict(e) for e in self.entities.values()]

    async def fetch_one(self, entity_id: str) -> dict[str, Any]:
        if entity_id not in self.entities:
            raise RemoteHTTPError(f"GET /subscriptions/{entity_id} failed: 404", status_code=404)
        return dict(self.entities[entity_id])

    async def apply(self, operation: SyncOperation) -> Optional[dict[str, Any]]:
        self.applied.append(operation)

        remaining = self.failures.get(operation.entity_id, 0)
        if remaining:
            self.failures[operation.entity_id] = remaining - 1
            raise NetworkError(f"simulated failure for {operation.entity_id}")

        if operation.type == OperationType.CREATE:
            entity_id = self.assigned_ids.get(operation.entity_id, operation.entity_id)
            self.entities[entity_id] = {**(operation.data or {}), "id": entity_id}
            return dict(self.entities[entity_id])
        if operation.type == OperationType.UPDATE:
            if operation.entity_id not in self.entities:
                raise RemoteHTTPError("PATCH failed: 404", status_code=404)
            self.entities[operation.entity_id].update(operation.data or {})
            return dict(self.entities[operation.entity_id])
        self.entities.pop(operation.entity_id, None)
        return None

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def temp_home(temp_dir: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Create a temporary home directory."""
    home = temp_dir / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.delenv("SUBSYNC_CONFIG", raising=False)
    monkeypatch.delenv("SUBSYNC_TOKEN", raising=False)
    return home


@pytest.fixture
def sample_config(temp_home: Path) -> dict:
    """Create sample configuration dict."""
    return {
        "remote": {
            "base_url": "http://api.test/api",
            "token": "secret-token",
            "timeout": 5,
        },
        "sync": {
            "sync_interval": 60000,
            "max_retry_attempts": 3,
            "conflict_resolution": "LAST_WRITE_WINS",
            "auto_sync": False,
        },
        "storage": {"data_dir": str(temp_home / "data")},
        "output": {"verbose": False, "colored": False},
    }


@pytest.fixture
def config_file(temp_home: Path, sample_config: dict) -> Path:
    """Create a configuration file."""
    config_dir = temp_home / ".config" / "subsync"
    config_dir.mkdir(parents=True)
    config_path = config_dir / "config.yaml"

    with open(config_path, "w", encoding="utf-8") as f:
        yaml.dump(sample_config, f, default_flow_style=False)

    return config_path


@pytest.fixture
def kv_store() -> MemoryKeyValueStore:
    return MemoryKeyValueStore()


@pytest.fixture
def replica() -> LocalReplica:
    return LocalReplica(JsonRowStore())


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def settings() -> SyncSettings:
    return SyncSettings(auto_sync=False)


@pytest.fixture
def engine(replica: LocalReplica, kv_store: MemoryKeyValueStore, gateway: FakeGateway, settings: SyncSettings) -> SyncEngine:
    """Engine over in-memory storage and the fake gateway."""
    return SyncEngine(
        replica=replica,
        queue=OperationLog(kv_store),
        gateway=gateway,
        settings=settings,
        dead_letters=OperationLog(kv_store, DEAD_LETTER_STORAGE_KEY),
    )
