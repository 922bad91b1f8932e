# Subsync Local Replica
# Read/write facade over the row store for subscription entities

from collections.abc import Callable
from typing import Any, Optional

from subsync.store.base import RowStore
from subsync.sync.entity import SUBSCRIPTIONS_TABLE, Entity, without_id


class LocalReplica:
    """
    Local copy of the subscription set.

    Entities are returned as plain dicts in local shape with their ``id``
    included; rows are stored without it.
    """

    def __init__(self, store: RowStore, table: str = SUBSCRIPTIONS_TABLE):
        self.store = store
        self.table = table

    def all(self) -> list[Entity]:
        """Return every local entity."""
        return [{"id": row_id, **row} for row_id, row in self.store.iter_rows(self.table)]

    def ids(self) -> list[str]:
        """Return ids of all local entities."""
        return self.store.get_row_ids(self.table)

    def get(self, entity_id: str) -> Optional[Entity]:
        """Return one entity, or None if absent."""
        row = self.store.get_row(self.table, entity_id)
        if row is None:
            return None
        return {"id": entity_id, **row}

    def exists(self, entity_id: str) -> bool:
        """Check whether an entity is present locally."""
        return self.store.get_row(self.table, entity_id) is not None

    def put(self, entity: Entity) -> None:
        """Insert or replace an entity verbatim."""
        self.store.set_row(self.table, str(entity["id"]), without_id(entity))

    def update(self, entity_id: str, changes: dict[str, Any]) -> Optional[Entity]:
        """
        Apply a partial update as one grouped mutation.

        Keys whose value is None are left unchanged.

        Returns:
            The updated entity, or None if it does not exist.
        """
        with self.store.transaction():
            row = self.store.get_row(self.table, entity_id)
            if row is None:
                return None
            for key, value in changes.items():
                if key != "id" and value is not None:
                    row[key] = value
            self.store.set_row(self.table, entity_id, row)
        return {"id": entity_id, **row}

    def delete(self, entity_id: str) -> bool:
        """Delete an entity. Returns False if it was absent."""
        return self.store.del_row(self.table, entity_id)

    def rekey(self, old_id: str, new_id: str, entity: Optional[Entity] = None) -> None:
        """
        Move an entity to a new id in one grouped mutation.

        Args:
            old_id: Current id.
            new_id: Id assigned by the remote store.
            entity: Replacement content; defaults to the current row.
        """
        with self.store.transaction():
            row = self.store.get_row(self.table, old_id)
            source = without_id(entity) if entity is not None else row
            if source is None:
                return
            self.store.del_row(self.table, old_id)
            self.store.set_row(self.table, new_id, source)

    def on_change(self, listener: Callable[[str, Optional[Entity]], None]) -> Callable[[], None]:
        """
        Listen for changes to local entities.

        Args:
            listener: Called with (entity_id, entity); entity is None on delete.

        Returns:
            Callable that removes the listener.
        """

        def forward(table: str, row_id: str, row: Optional[dict[str, Any]]) -> None:
            listener(row_id, {"id": row_id, **row} if row is not None else None)

        return self.store.add_listener(self.table, forward)

    def __len__(self) -> int:
        return len(self.store.get_row_ids(self.table))
