"""Shared utilities for dev-hud.

This module contains small text and JSON helpers used across the
parser, the session aggregator and the API layer.
"""

import json
import time
from typing import Any


def truncate_str(text: str, max_chars: int) -> str:
    """Truncate text to at most max_chars characters.

    Appends "..." when the text is cut. When max_chars is 3 or less there
    is no room for the ellipsis, so the text is hard-truncated instead.

    Example:
        truncate_str("hello world", 4) -> "h..."
        truncate_str("hello", 2) -> "he"
    """
    if len(text) <= max_chars:
        return text
    if max_chars <= 3:
        return text[:max(max_chars, 0)]
    return text[:max_chars - 3] + "..."


def shorten_path(path: str) -> str:
    """Show a path as its last two components, e.g. '.../src/main.py'."""
    parts = [p for p in path.split('/') if p]
    if len(parts) <= 2:
        return path
    return ".../" + "/".join(parts[-2:])


def shorten_project(slug: str) -> str:
    """Shorten a project slug to its last two dash-separated components.

    Claude project dirs look like '-home-user-projects-my-app'.
    """
    parts = [p for p in slug.split('-') if p]
    if len(parts) <= 2:
        return slug
    return "-".join(parts[-2:])


def shorten_project_short(slug: str) -> str:
    """Shorten a project slug to its last dash-separated component."""
    parts = [p for p in slug.split('-') if p]
    if not parts:
        return slug
    return parts[-1]


def format_time_hms(epoch_seconds: float | None = None) -> str:
    """Format a UNIX timestamp (default: now) as HH:MM:SS in UTC."""
    if epoch_seconds is None:
        epoch_seconds = time.time()
    total = int(epoch_seconds)
    if total < 0:
        return "00:00:00"
    hours = (total // 3600) % 24
    minutes = (total // 60) % 60
    seconds = total % 60
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"


def parse_jsonl_line(line: str | bytes) -> dict[str, Any] | None:
    """Safely parse a single JSONL line.

    Args:
        line: A line from a JSONL file (string or bytes)

    Returns:
        Parsed JSON object, or None if parsing failed or the line is not
        a JSON object
    """
    try:
        if isinstance(line, bytes):
            line = line.decode('utf-8')
        data = json.loads(line.strip())
    except (ValueError, RecursionError):
        return None
    if not isinstance(data, dict):
        return None
    return data


def safe_get_nested(data: dict, *keys: str, default: Any = None) -> Any:
    """Safely get a nested value from a dictionary.

    Args:
        data: The dictionary to search
        *keys: The nested keys to follow
        default: Default value if key path not found

    Returns:
        The nested value or default

    Example:
        safe_get_nested({'a': {'b': 1}}, 'a', 'b') -> 1
        safe_get_nested({'a': {}}, 'a', 'b', default=0) -> 0
    """
    result = data
    for key in keys:
        if isinstance(result, dict):
            result = result.get(key, default)
        else:
            return default
    return result
