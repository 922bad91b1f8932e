# Subsync Hashing Utilities
# Content hashing for change detection between entity versions

import hashlib
import json
from collections.abc import Iterable
from typing import Any


def content_hash(content: str | bytes, *, algorithm: str = "sha256") -> str:
    """
    Calculate hash of content.

    Args:
        content: String or bytes content.
        algorithm: Hash algorithm (default sha256).

    Returns:
        Hex digest of hash.
    """
    if isinstance(content, str):
        content = content.encode("utf-8")

    hasher = hashlib.new(algorithm)
    hasher.update(content)
    return hasher.hexdigest()


def record_hash(
    record: dict[str, Any],
    *,
    exclude: Iterable[str] = (),
    algorithm: str = "sha256",
) -> str:
    """
    Calculate a stable hash of a record's fields.

    Keys are sorted and None values are dropped, so a missing optional
    field and an explicit null hash the same.

    Args:
        record: Mapping of field name to JSON-compatible value.
        exclude: Field names left out of the hash.
        algorithm: Hash algorithm (default sha256).

    Returns:
        Hex digest of hash.
    """
    skipped = set(exclude)
    fields = {k: v for k, v in record.items() if k not in skipped and v is not None}
    canonical = json.dumps(fields, sort_keys=True, separators=(",", ":"), default=str)
    return content_hash(canonical, algorithm=algorithm)


def quick_compare(left: dict[str, Any], right: dict[str, Any], *, exclude: Iterable[str] = ()) -> bool:
    """
    Compare two records by content.

    Args:
        left: First record.
        right: Second record.
        exclude: Field names ignored by the comparison.

    Returns:
        True if both records hash the same.
    """
    exclude = tuple(exclude)
    return record_hash(left, exclude=exclude) == record_hash(right, exclude=exclude)
