# Subsync Timestamp Utilities
# Millisecond epoch and ISO-8601 conversions used by the sync layer

import re
import time
from datetime import datetime, timezone
from typing import Any

# Fractional seconds of any length, normalised to microseconds before parsing
_FRACTION = re.compile(r"\.(\d+)")
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def now_ms() -> int:
    """Current time as integer milliseconds since the epoch."""
    return int(time.time() * 1000)


def now_iso() -> str:
    """Current UTC time as an ISO-8601 string with millisecond precision."""
    return ms_to_iso(now_ms())


def ms_to_iso(value: int) -> str:
    """Format epoch milliseconds as ``YYYY-MM-DDTHH:MM:SS.mmmZ``."""
    dt = datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


def iso_to_ms(value: Any) -> int:
    """
    Parse an ISO-8601 timestamp into epoch milliseconds.

    Missing or unparseable values map to 0 so they compare as the oldest
    possible time. Naive timestamps are read as UTC.

    Args:
        value: ISO string (``Z`` suffix accepted), or None.

    Returns:
        Milliseconds since the epoch.
    """
    if not value or not isinstance(value, str):
        return 0

    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    text = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)

    try:
        dt = datetime.fromisoformat(text)
    except ValueError:
        return 0

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    delta = dt - _EPOCH
    return (delta.days * 86400 + delta.seconds) * 1000 + delta.microseconds // 1000
