"""
Helper Utilities Module
Common utility functions used across the sync engine.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

import pytz
from dateutil import parser as date_parser


GITHUB_TIMESTAMP_FORMAT = '%Y-%m-%dT%H:%M:%SZ'


def utc_now() -> datetime:
    """Current wall-clock time as a naive UTC datetime (the storage convention)."""
    return datetime.now(pytz.UTC).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    """Convert an aware datetime to naive UTC; naive values are assumed UTC already."""
    if value.tzinfo is None:
        return value
    return value.astimezone(pytz.UTC).replace(tzinfo=None)


def parse_github_datetime(dt_string: Optional[str]) -> Optional[datetime]:
    """
    Parse a GitHub ISO 8601 timestamp to a naive UTC datetime.

    Args:
        dt_string: Timestamp such as '2024-01-05T10:00:00Z'

    Returns:
        datetime object or None if parsing fails
    """
    if not dt_string:
        return None

    try:
        return to_naive_utc(date_parser.isoparse(dt_string))
    except (ValueError, TypeError):
        return None


def format_github_datetime(value: datetime) -> str:
    """Format a datetime for the GitHub `since` query parameter."""
    return to_naive_utc(value).strftime(GITHUB_TIMESTAMP_FORMAT)


def parse_repository(full_name: str) -> tuple:
    """
    Split 'owner/name' into its parts.

    Raises:
        ValueError: If the value is not of the form owner/name
    """
    parts = (full_name or '').strip().split('/')
    if len(parts) != 2 or not all(parts):
        raise ValueError(f"Repository must look like 'owner/name', got {full_name!r}")
    return parts[0], parts[1]


def chunk_list(lst: List[Any], chunk_size: int) -> List[List[Any]]:
    """
    Split a list into chunks of specified size.

    Args:
        lst: List to chunk
        chunk_size: Size of each chunk

    Returns:
        List of chunks
    """
    return [lst[i:i + chunk_size] for i in range(0, len(lst), chunk_size)]


def safe_get(data: Dict, *keys, default=None) -> Any:
    """
    Safely get nested dictionary value.

    Args:
        data: Dictionary to traverse
        *keys: Keys to follow
        default: Default value if key not found

    Returns:
        Value at path or default
    """
    result = data
    for key in keys:
        if isinstance(result, dict):
            result = result.get(key)
        else:
            return default
        if result is None:
            return default
    return result


def sanitize_string(text: Optional[str]) -> Optional[str]:
    """
    Sanitize string for database storage.

    Args:
        text: Text to sanitize

    Returns:
        Sanitized string
    """
    if text is None:
        return None

    # Remove null bytes
    text = text.replace('\x00', '')

    return text


def escape_like(text: str, escape_char: str = '\\') -> str:
    """Escape LIKE wildcards so the text matches literally."""
    return (
        text.replace(escape_char, escape_char * 2)
        .replace('%', escape_char + '%')
        .replace('_', escape_char + '_')
    )
