"""Helpers for loosely typed response documents.

Responses arrive as nested dicts whose shape depends on the declared
response type. Fields are addressed by dotted paths with optional list
indexes, e.g. ``pricing.total`` or ``images[0].url``.
"""

import re
from collections.abc import Iterator
from datetime import date, datetime, timezone
from typing import Any

_TOKEN = re.compile(r"([^.\[\]]+)|\[(\d+)\]")
_MISSING = object()


def split_path(path: str) -> list[str | int]:
    """Split a dotted path into dict keys and list indexes."""
    parts: list[str | int] = []
    for key, index in _TOKEN.findall(path):
        parts.append(int(index) if index else key)
    return parts


def _lookup(document: Any, path: str) -> Any:
    current = document
    for part in split_path(path):
        if isinstance(part, int):
            if not isinstance(current, list) or part >= len(current):
                return _MISSING
            current = current[part]
        else:
            if not isinstance(current, dict) or part not in current:
                return _MISSING
            current = current[part]
    return current


def get_path(document: Any, path: str, default: Any = None) -> Any:
    """Return the value at ``path`` or ``default`` when any step is missing."""
    value = _lookup(document, path)
    return default if value is _MISSING else value


def has_path(document: Any, path: str) -> bool:
    """Whether ``path`` resolves to a present, non-null value."""
    value = _lookup(document, path)
    return value is not _MISSING and value is not None


def set_path(document: dict[str, Any], path: str, value: Any) -> None:
    """Write ``value`` at ``path``, creating intermediate dicts as needed.

    Raises:
        KeyError: If a list index along the path does not exist.
    """
    parts = split_path(path)
    if not parts:
        raise KeyError(path)
    current: Any = document
    for part, nxt in zip(parts, parts[1:]):
        if isinstance(part, int):
            if not isinstance(current, list) or part >= len(current):
                raise KeyError(path)
            current = current[part]
        else:
            if not isinstance(current.get(part), (dict, list)):
                current[part] = [] if isinstance(nxt, int) else {}
            current = current[part]
    last = parts[-1]
    if isinstance(last, int):
        if not isinstance(current, list) or last >= len(current):
            raise KeyError(path)
    current[last] = value


def iter_leaves(document: Any, prefix: str = "") -> Iterator[tuple[str, str, Any]]:
    """Yield ``(path, key, value)`` for every scalar leaf in the document."""
    if isinstance(document, dict):
        for key, value in document.items():
            path = f"{prefix}.{key}" if prefix else str(key)
            if isinstance(value, (dict, list)):
                yield from iter_leaves(value, path)
            else:
                yield path, str(key), value
    elif isinstance(document, list):
        for i, value in enumerate(document):
            path = f"{prefix}[{i}]"
            if isinstance(value, (dict, list)):
                yield from iter_leaves(value, path)
            else:
                key = prefix.rsplit(".", 1)[-1]
                yield path, key, value


def first_present(document: Any, *paths: str) -> tuple[str | None, Any]:
    """Return the first path that holds a value, with that value."""
    for path in paths:
        value = _lookup(document, path)
        if value is not _MISSING and value is not None:
            return path, value
    return None, None


def is_number(value: Any) -> bool:
    """True for ints and floats, but not for bools."""
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def to_number(value: Any) -> float | None:
    """Numeric value of ``value``, parsing numeric strings."""
    if is_number(value):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


def parse_datetime(value: Any) -> datetime | None:
    """Parse an ISO date or datetime. Returns None when not parseable."""
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def now_like(moment: datetime) -> datetime:
    """Current time, timezone-aware only when ``moment`` is."""
    if moment.tzinfo is not None:
        return datetime.now(timezone.utc)
    return datetime.now()


def coerce_like(original: Any, replacement: Any) -> Any:
    """Convert a string replacement to the numeric type of the original value."""
    if not isinstance(replacement, str) or not is_number(original):
        return replacement
    number = to_number(replacement)
    if number is None:
        return replacement
    if isinstance(original, int) and number.is_integer():
        return int(number)
    return number
