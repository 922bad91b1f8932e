# Subsync Storage Module
# Row store and key-value store used for local persistence

from subsync.store.base import Row, RowListener, RowStore
from subsync.store.json_store import JsonRowStore
from subsync.store.kv import FileKeyValueStore, KeyValueStore, MemoryKeyValueStore

__all__ = [
    "Row",
    "RowListener",
    "RowStore",
    "JsonRowStore",
    "KeyValueStore",
    "FileKeyValueStore",
    "MemoryKeyValueStore",
]
