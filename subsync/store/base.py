# Subsync Row Store Interface
# Narrow row-level storage contract used by the local replica

from abc import ABC, abstractmethod
from collections.abc import Callable, Iterator
from contextlib import AbstractContextManager
from typing import Any, Optional

Row = dict[str, Any]

# Called with (table, row_id, row); row is None when the row was deleted.
RowListener = Callable[[str, str, Optional[Row]], None]


class RowStore(ABC):
    """
    Table/row storage substrate.

    Rows are flat mappings keyed by an opaque string id. Implementations
    must make a grouped mutation (``transaction``) appear atomic: listeners
    fire only after the outermost group completes and never see a
    half-applied group.
    """

    @abstractmethod
    def get_row(self, table: str, row_id: str) -> Optional[Row]:
        """Return a copy of the row, or None if it does not exist."""

    @abstractmethod
    def set_row(self, table: str, row_id: str, row: Row) -> None:
        """Insert or replace a row."""

    @abstractmethod
    def del_row(self, table: str, row_id: str) -> bool:
        """Delete a row. Returns False if it did not exist."""

    @abstractmethod
    def get_row_ids(self, table: str) -> list[str]:
        """Return row ids of a table in insertion order."""

    @abstractmethod
    def add_listener(self, table: str, listener: RowListener) -> Callable[[], None]:
        """Register a change listener. Returns a callable that removes it."""

    @abstractmethod
    def transaction(self) -> AbstractContextManager[None]:
        """Group several mutations into one atomic change."""

    def iter_rows(self, table: str) -> Iterator[tuple[str, Row]]:
        """Iterate over (row_id, row) pairs of a table."""
        for row_id in self.get_row_ids(table):
            row = self.get_row(table, row_id)
            if row is not None:
                yield row_id, row
