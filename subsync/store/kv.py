# Subsync Key-Value Store
# Small string-keyed storage for JSON documents such as the operation queue

import json
import logging
import re
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Optional

from subsync.utils.paths import atomic_write

logger = logging.getLogger(__name__)

_KEY_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+$")


class KeyValueStore(ABC):
    """Durable mapping from a fixed key to a JSON-compatible value."""

    @abstractmethod
    def get_item(self, key: str) -> Optional[str]:
        """Return the raw stored text, or None if the key is absent."""

    @abstractmethod
    def set_item(self, key: str, value: str) -> None:
        """Store raw text under key. May raise OSError."""

    @abstractmethod
    def remove_item(self, key: str) -> None:
        """Delete key if present."""

    def get_json(self, key: str, default: Any = None) -> Any:
        """
        Read and decode a JSON value.

        Args:
            key: Storage key.
            default: Returned when the key is absent or holds invalid JSON.

        Returns:
            The decoded value or default.
        """
        raw = self.get_item(key)
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            logger.error("Failed to parse stored value for %r: %s", key, e)
            return default

    def set_json(self, key: str, value: Any) -> None:
        """
        Encode value as JSON and store it. May raise OSError.

        Values JSON has no type for (dates, decimals) are stored as strings.
        """
        self.set_item(key, json.dumps(value, ensure_ascii=False, default=str))


class MemoryKeyValueStore(KeyValueStore):
    """Process-local store, used for tests and ephemeral sessions."""

    def __init__(self, initial: Optional[dict[str, str]] = None):
        self._items: dict[str, str] = dict(initial or {})

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)


class FileKeyValueStore(KeyValueStore):
    """Stores each key as ``<directory>/<key>.json``, written atomically."""

    def __init__(self, directory: Path):
        self.directory = directory

    def _path_for(self, key: str) -> Path:
        if not _KEY_PATTERN.match(key):
            raise ValueError(f"Invalid storage key: {key!r}")
        return self.directory / f"{key}.json"

    def get_item(self, key: str) -> Optional[str]:
        path = self._path_for(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.error("Failed to read %s: %s", path, e)
            return None

    def set_item(self, key: str, value: str) -> None:
        atomic_write(self._path_for(key), value)

    def remove_item(self, key: str) -> None:
        self._path_for(key).unlink(missing_ok=True)
