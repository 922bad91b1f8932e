# Subsync Subscriptions
# Local subscription operations that feed the sync engine

from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import TYPE_CHECKING, Any, Optional
from uuid import uuid4

from subsync.sync.entity import Entity, touch, without_id
from subsync.sync.operation import OperationType
from subsync.sync.replica import LocalReplica

if TYPE_CHECKING:
    from subsync.sync.engine import SyncEngine

logger = logging.getLogger(__name__)

DEFAULT_CURRENCY = "USD"
ACTIVE = "active"

# Multipliers converting a price per billing cycle into a monthly price
MONTHLY_FACTORS = {
    "monthly": 1.0,
    "yearly": 1 / 12,
    "annual": 1 / 12,
    "quarterly": 1 / 3,
    "weekly": 4.33,
    "daily": 30.44,
}


def parse_date(value: Any) -> Optional[date]:
    """Parse the date part of an ISO date or datetime string, None if invalid."""
    if not value or not isinstance(value, str):
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        return None


def monthly_price(entity: Entity) -> float:
    """Monthly equivalent of an entity's price. Unknown cycles count as monthly."""
    try:
        price = float(entity.get("price") or 0)
    except (TypeError, ValueError):
        return 0.0
    cycle = str(entity.get("billingCycle") or "monthly").lower()
    return price * MONTHLY_FACTORS.get(cycle, 1.0)


class SubscriptionService:
    """
    Local CRUD over the replica.

    Every mutation is written to the replica first and then queued on the
    engine, so it is visible immediately and pushed on the next sync pass.
    """

    def __init__(self, replica: LocalReplica, engine: SyncEngine):
        self.replica = replica
        self.engine = engine

    def get(self, entity_id: str) -> Optional[Entity]:
        return self.replica.get(entity_id)

    def all(self) -> list[Entity]:
        return self.replica.all()

    def add(self, **fields: Any) -> Entity:
        """
        Add a subscription.

        Args:
            **fields: Domain fields in local shape. An ``id`` is generated
                      unless one is given.

        Returns:
            The stored entity.
        """
        entity_id = str(fields.pop("id", None) or uuid4())
        data: Entity = {"currency": DEFAULT_CURRENCY, "status": ACTIVE}
        data.update({k: v for k, v in fields.items() if v is not None})
        entity = touch({"id": entity_id, **data})

        self.replica.put(entity)
        self.engine.queue_operation(OperationType.CREATE, entity_id, without_id(entity))
        logger.debug("Added subscription %s", entity_id)
        return entity

    def update(self, entity_id: str, **changes: Any) -> bool:
        """
        Update fields of a subscription. None values are ignored.

        Returns:
            False if the subscription does not exist.
        """
        if not self.replica.exists(entity_id):
            return False

        stamped = touch({k: v for k, v in changes.items() if v is not None and k != "id"})
        self.replica.update(entity_id, stamped)
        self.engine.queue_operation(OperationType.UPDATE, entity_id, stamped)
        logger.debug("Updated subscription %s", entity_id)
        return True

    def delete(self, entity_id: str) -> bool:
        """
        Delete a subscription.

        Returns:
            False if the subscription does not exist.
        """
        if not self.replica.delete(entity_id):
            return False

        self.engine.queue_operation(OperationType.DELETE, entity_id)
        logger.debug("Deleted subscription %s", entity_id)
        return True

    def upcoming_renewals(self, days_ahead: int = 30, today: Optional[date] = None) -> list[Entity]:
        """
        Active subscriptions renewing within the next ``days_ahead`` days.

        Overdue renewals are included. Entities without a parseable renewal
        date are skipped.

        Args:
            days_ahead: Window size in days.
            today: Reference date (defaults to the current date).

        Returns:
            Matching subscriptions sorted by renewal date.
        """
        limit = (today or date.today()) + timedelta(days=days_ahead)
        due = []
        for entity in self.replica.all():
            if entity.get("status") != ACTIVE:
                continue
            renewal = parse_date(entity.get("renewalDate"))
            if renewal is not None and renewal <= limit:
                due.append((renewal, entity))
        due.sort(key=lambda item: item[0])
        return [entity for _, entity in due]

    def monthly_cost(self) -> float:
        """Total monthly equivalent cost of all active subscriptions."""
        return sum(monthly_price(e) for e in self.replica.all() if e.get("status") == ACTIVE)
