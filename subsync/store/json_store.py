# Subsync JSON Row Store
# In-memory table store with optional atomic JSON file persistence

import json
import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Optional

from subsync.store.base import Row, RowListener, RowStore
from subsync.utils.paths import atomic_write

logger = logging.getLogger(__name__)

_MISSING = object()


class JsonRowStore(RowStore):
    """
    Row store kept in memory and mirrored to a JSON file.

    The file is rewritten once per outermost transaction. Write failures
    are logged and the in-memory tables stay authoritative, so a local
    edit is never lost just because the disk was momentarily unavailable.
    """

    def __init__(self, path: Optional[Path] = None):
        """
        Initialize the store.

        Args:
            path: JSON file to load from and persist to. None keeps the
                  store purely in memory.
        """
        self.path = path
        self._tables: dict[str, dict[str, Row]] = {}
        self._listeners: dict[str, list[RowListener]] = {}
        self._depth = 0
        # Original value of each row touched in the open transaction
        self._undo: dict[tuple[str, str], object] = {}
        self._load()

    def _load(self) -> None:
        if self.path is None or not self.path.exists():
            return

        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error("Failed to load row store from %s: %s", self.path, e)
            return

        tables = data.get("tables", {}) if isinstance(data, dict) else {}
        for table, rows in tables.items():
            if isinstance(rows, dict):
                self._tables[table] = {str(k): dict(v) for k, v in rows.items() if isinstance(v, dict)}

    def _save(self) -> None:
        if self.path is None:
            return

        try:
            content = json.dumps({"tables": self._tables}, indent=2, ensure_ascii=False, default=str)
            atomic_write(self.path, content + "\n")
        except (OSError, TypeError, ValueError) as e:
            logger.error("Failed to persist row store to %s: %s", self.path, e)

    def get_row(self, table: str, row_id: str) -> Optional[Row]:
        row = self._tables.get(table, {}).get(row_id)
        return dict(row) if row is not None else None

    def set_row(self, table: str, row_id: str, row: Row) -> None:
        with self.transaction():
            self._remember(table, row_id)
            self._tables.setdefault(table, {})[row_id] = dict(row)

    def del_row(self, table: str, row_id: str) -> bool:
        if row_id not in self._tables.get(table, {}):
            return False

        with self.transaction():
            self._remember(table, row_id)
            del self._tables[table][row_id]
        return True

    def get_row_ids(self, table: str) -> list[str]:
        return list(self._tables.get(table, {}).keys())

    def add_listener(self, table: str, listener: RowListener) -> Callable[[], None]:
        self._listeners.setdefault(table, []).append(listener)

        def unsubscribe() -> None:
            listeners = self._listeners.get(table, [])
            if listener in listeners:
                listeners.remove(listener)

        return unsubscribe

    @contextmanager
    def transaction(self) -> Iterator[None]:
        self._depth += 1
        try:
            yield
        except BaseException:
            self._depth -= 1
            if self._depth == 0:
                self._rollback()
            raise
        else:
            self._depth -= 1
            if self._depth == 0:
                self._commit()

    def _remember(self, table: str, row_id: str) -> None:
        key = (table, row_id)
        if key not in self._undo:
            original = self._tables.get(table, {}).get(row_id, _MISSING)
            self._undo[key] = dict(original) if isinstance(original, dict) else original

    def _rollback(self) -> None:
        for (table, row_id), original in self._undo.items():
            rows = self._tables.setdefault(table, {})
            if original is _MISSING:
                rows.pop(row_id, None)
            else:
                rows[row_id] = original  # type: ignore[assignment]
        self._undo = {}

    def _commit(self) -> None:
        touched, self._undo = self._undo, {}
        changed = [
            (table, row_id)
            for (table, row_id), original in touched.items()
            if self._tables.get(table, {}).get(row_id, _MISSING) != original
        ]
        if not changed:
            return

        self._save()

        for table, row_id in changed:
            row = self.get_row(table, row_id)
            for listener in list(self._listeners.get(table, [])):
                try:
                    listener(table, row_id, row)
                except Exception:
                    logger.exception("Row listener failed for %s/%s", table, row_id)
