"""Subsync - offline-capable subscription tracker.

Keeps a local replica of subscriptions usable without network access,
queues local edits durably and reconciles them with a remote API.
"""

__version__ = "1.0.0"

__all__ = [
    "__version__",
    "SyncEngine",
    "SyncResult",
    "SyncStatus",
    "OperationLog",
    "OperationType",
    "SyncOperation",
    "LocalReplica",
    "SubscriptionService",
    "HttpRemoteGateway",
    "load_config",
]


def __getattr__(name: str):
    """Lazy import to avoid loading dependencies during setup."""
    if name in ("SyncEngine", "SyncResult", "SyncStatus", "OperationLog", "OperationType", "SyncOperation", "LocalReplica"):
        from subsync import sync

        return getattr(sync, name)
    if name == "SubscriptionService":
        from subsync.subscriptions import SubscriptionService

        return SubscriptionService
    if name == "HttpRemoteGateway":
        from subsync.remote.gateway import HttpRemoteGateway

        return HttpRemoteGateway
    if name == "load_config":
        from subsync.config import load_config

        return load_config
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
