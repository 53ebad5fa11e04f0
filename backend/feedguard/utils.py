"""
Shared utility functions for the analysis pipeline.
"""
from __future__ import annotations

import re
import time
from datetime import datetime, timezone
from typing import Any, Dict


def now_utc() -> datetime:
    """
    Get current UTC datetime with timezone information.

    Returns:
        Current UTC datetime
    """
    return datetime.now(timezone.utc)


def now_ms() -> int:
    """Wall-clock time in integer milliseconds."""
    return int(time.time() * 1000)


def normalize_text(text: str | None) -> str:
    """
    Normalize whitespace in text content.

    Args:
        text: Input text string (can be None)

    Returns:
        Normalized text with single spaces and trimmed edges
    """
    if not text:
        return ""
    return re.sub(r"\s+", " ", text).strip()


def clamp(value: float, low: float, high: float) -> float:
    """Clamp ``value`` into ``[low, high]``."""
    return max(low, min(high, value))


def clamp_number(value: Any, low: float, high: float, fallback: float) -> float:
    """
    Coerce loosely typed input to a number inside a range.

    Args:
        value: Raw input (number, numeric string, None, ...)
        low: Lower bound
        high: Upper bound
        fallback: Returned when the input is not a finite number

    Returns:
        The clamped number, or ``fallback``
    """
    if isinstance(value, bool):
        return fallback
    try:
        number = float(value)
    except (TypeError, ValueError):
        return fallback
    if number != number or number in (float("inf"), float("-inf")):
        return fallback
    return clamp(number, low, high)


_NON_PRINTABLE_ASCII = re.compile(r"[^\x20-\x7e]")


def sanitize_credential(value: str | None) -> str:
    """
    Strip every character outside printable ASCII from a secret.

    Pasted keys often carry zero-width spaces, newlines or full-width
    characters that would otherwise break the Authorization header.
    """
    if not value:
        return ""
    return _NON_PRINTABLE_ASCII.sub("", value).strip()


def mask_credential(value: str | None) -> str:
    """Return a display-safe form of a secret, keeping the last four characters."""
    clean = sanitize_credential(value)
    if not clean:
        return ""
    if len(clean) <= 8:
        return "…" + clean[-2:]
    return f"{clean[:3]}…{clean[-4:]}"


def deep_merge(base: Dict[str, Any], patch: Dict[str, Any]) -> Dict[str, Any]:
    """
    Recursively merge ``patch`` into a copy of ``base``.

    Nested dicts are merged key by key; any other value in ``patch``
    replaces the one in ``base``.
    """
    merged = dict(base)
    for key, value in patch.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged
