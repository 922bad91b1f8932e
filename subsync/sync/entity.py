# Subsync Entity Helpers
# Local-shape subscription records and their sync metadata

from typing import Any

from subsync.utils.hashing import quick_compare
from subsync.utils.timestamps import iso_to_ms, ms_to_iso, now_ms

Entity = dict[str, Any]

SUBSCRIPTION = "subscription"
SUBSCRIPTIONS_TABLE = "subscriptions"

# Domain fields of a subscription in local (camelCase) shape
SUBSCRIPTION_FIELDS = (
    "name",
    "plan",
    "price",
    "currency",
    "billingCycle",
    "startDate",
    "renewalDate",
    "paymentMethod",
    "accountEmail",
    "category",
    "status",
    "cancellationInfo",
    "notes",
)

LAST_MODIFIED = "lastModified"
UPDATED_AT = "updatedAt"

# Fields maintained by the sync layer rather than the user
SYNC_FIELDS = (LAST_MODIFIED, UPDATED_AT, "createdAt", "syncedAt")


def entity_timestamp(entity: Entity | None) -> int:
    """Millisecond timestamp of an entity's last write, 0 when unknown."""
    if not entity:
        return 0
    return iso_to_ms(entity.get(UPDATED_AT))


def touch(entity: Entity) -> Entity:
    """Return a copy of entity with fresh lastModified/updatedAt."""
    stamped = dict(entity)
    stamped[LAST_MODIFIED] = now_ms()
    stamped[UPDATED_AT] = ms_to_iso(stamped[LAST_MODIFIED])
    return stamped


def without_id(entity: Entity) -> Entity:
    """Copy of entity without its id, as sent in operation payloads."""
    return {k: v for k, v in entity.items() if k != "id"}


def same_content(local: Entity, remote: Entity) -> bool:
    """True when both versions carry the same domain fields."""
    return quick_compare(local, remote, exclude=("id",) + SYNC_FIELDS)


def same_version(local: Entity, remote: Entity) -> bool:
    """True when both versions carry the same content and write timestamp."""
    return same_content(local, remote) and entity_timestamp(local) == entity_timestamp(remote)
