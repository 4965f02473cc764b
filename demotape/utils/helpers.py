"""
Utility functions and helpers for Demotape
Common functionality used across the application
"""

import json
import re
from datetime import datetime, timezone
from typing import Any, Optional, Union


# Code units the Dropbox content endpoints refuse inside header values
_HEADER_UNSAFE = re.compile('[\u007f-\U0010ffff]')


def _escape_code_unit(char: str) -> str:
    code = ord(char)
    if code > 0xFFFF:
        # Astral characters are escaped as a UTF-16 surrogate pair
        code -= 0x10000
        high = 0xD800 + (code >> 10)
        low = 0xDC00 + (code & 0x3FF)
        return f"\\u{high:04x}\\u{low:04x}"
    return f"\\u{code:04x}"


def encode_header_value(value: Any) -> str:
    """
    Encode a value as JSON that is safe to send in an HTTP header

    The value is serialized as compact JSON and every character from U+007F
    upwards is replaced by its \\uXXXX escape.

    Args:
        value: JSON-serializable value (typically {"path": ...})

    Returns:
        Header-safe JSON string

    >>> encode_header_value({"path": "/É"})
    '{"path":"/\\\\u00c9"}'
    """
    encoded = json.dumps(value, ensure_ascii=False, separators=(',', ':'))
    return _HEADER_UNSAFE.sub(lambda m: _escape_code_unit(m.group(0)), encoded)


def check_timeout(timestamp: Optional[datetime], timeout: int = 5) -> bool:
    """
    Ensure timestamp is less than timeout minutes old

    Args:
        timestamp: Time to check (None is never fresh)
        timeout: Number of minutes

    Returns:
        True if timestamp is less than timeout minutes old
    """
    if timestamp is None:
        return False
    now = datetime.now(timestamp.tzinfo) if timestamp.tzinfo else datetime.now()
    return (now - timestamp).total_seconds() / 60 < timeout


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 timestamp as returned by Dropbox ("2019-03-01T10:00:00Z")

    Returns:
        Timezone-aware datetime or None when the value is missing or invalid
    """
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_relative_time(timestamp: Union[str, datetime, None], now: Optional[datetime] = None) -> str:
    """
    Describe how long ago a timestamp was ("3 hours ago")

    Args:
        timestamp: ISO string or datetime
        now: Reference time, defaults to the current time

    Returns:
        Human-readable relative time
    """
    if isinstance(timestamp, str):
        timestamp = parse_timestamp(timestamp)
    if timestamp is None:
        return "never"

    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    seconds = (now - timestamp).total_seconds()

    if seconds < 0:
        return "in the future"
    if seconds < 45:
        return "a few seconds ago"

    units = [
        (365 * 24 * 3600, "year"),
        (30 * 24 * 3600, "month"),
        (24 * 3600, "day"),
        (3600, "hour"),
        (60, "minute"),
    ]
    for size, unit in units:
        count = int(round(seconds / size))
        if count >= 1 and seconds >= size * 0.75:
            if count == 1:
                return f"an {unit} ago" if unit == "hour" else f"a {unit} ago"
            return f"{count} {unit}s ago"
    return "a minute ago"


def format_file_size(size_bytes: int) -> str:
    """
    Format file size in bytes to human-readable string

    Args:
        size_bytes: Size in bytes

    Returns:
        Formatted size string
    """
    if size_bytes < 0:
        return "0 B"

    units = ['B', 'KB', 'MB', 'GB', 'TB']
    size = float(size_bytes)
    unit_index = 0

    while size >= 1024 and unit_index < len(units) - 1:
        size /= 1024
        unit_index += 1

    if unit_index == 0:
        return f"{int(size)} {units[unit_index]}"
    return f"{size:.1f} {units[unit_index]}"


def format_timestamp(timestamp: Union[str, datetime]) -> str:
    """
    Format timestamp for display

    Args:
        timestamp: Timestamp string or datetime object

    Returns:
        Formatted timestamp string
    """
    if isinstance(timestamp, str):
        dt = parse_timestamp(timestamp)
        if dt is None:
            return timestamp
    else:
        dt = timestamp

    return dt.strftime('%Y-%m-%d %H:%M:%S')
