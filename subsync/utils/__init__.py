# Subsync Utilities Module
# Helper functions for paths, hashing and timestamps

from subsync.utils.hashing import (
    content_hash,
    quick_compare,
    record_hash,
)
from subsync.utils.paths import (
    atomic_write,
    ensure_dir,
    expand_path,
)
from subsync.utils.timestamps import (
    iso_to_ms,
    ms_to_iso,
    now_iso,
    now_ms,
)

__all__ = [
    # Paths
    "expand_path",
    "ensure_dir",
    "atomic_write",
    # Hashing
    "content_hash",
    "record_hash",
    "quick_compare",
    # Timestamps
    "now_ms",
    "now_iso",
    "ms_to_iso",
    "iso_to_ms",
]
