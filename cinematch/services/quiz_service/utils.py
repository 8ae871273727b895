"""
Shared helpers for the quiz pipeline: time windows and timestamp parsing.
Keeps the scoring, submission and aggregation modules small and testable.
"""

from __future__ import annotations
import math
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

# Epoch numbers above this are read as milliseconds.
_MILLIS_CUTOFF = 1e11


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_yyyy_mm_dd(dt: datetime) -> str:
    """Standardize date strings for keys and UI consistency."""
    return dt.astimezone(timezone.utc).strftime("%Y-%m-%d")


def to_short_date(dt: datetime) -> str:
    """Day/month label used on chart columns, e.g. "07/03"."""
    return dt.astimezone(timezone.utc).strftime("%d/%m")


def time_bucket(now: datetime, window_seconds: int) -> str:
    """
    Label of the fixed-width window containing `now`.

    Windows are aligned to the Unix epoch in UTC, so the default one-day
    window is exactly the UTC calendar day and is labelled "YYYY-MM-DD".
    Sub-day windows append the window start time.
    """
    if window_seconds <= 0:
        raise ValueError("window_seconds must be positive")
    now = now.astimezone(timezone.utc) if now.tzinfo else now.replace(tzinfo=timezone.utc)
    epoch = int(now.timestamp())
    start = datetime.fromtimestamp(epoch - epoch % window_seconds, tz=timezone.utc)
    if window_seconds % 86400 == 0:
        return to_yyyy_mm_dd(start)
    return start.strftime("%Y-%m-%dT%H:%M:%SZ")


def normalize_timestamp(value: Any) -> Optional[datetime]:
    """
    Convert any timestamp shape found in stored documents to an aware UTC datetime.

    Accepts:
      - datetime (Firestore returns DatetimeWithNanoseconds); naive values are UTC
      - ISO-8601 strings, including a trailing "Z"
      - {"seconds": ..., "nanoseconds": ...} (also "_seconds"/"_nanoseconds")
      - epoch numbers, seconds or milliseconds
      - objects with to_datetime() or timestamp()
    Returns None for anything unparsable.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    # Timestamp-like objects (pandas, arrow): to_datetime() first, then epoch seconds.
    to_datetime = getattr(value, "to_datetime", None)
    if callable(to_datetime):
        try:
            converted = to_datetime()
        except (TypeError, ValueError, OverflowError, OSError):
            return None
        return normalize_timestamp(converted) if isinstance(converted, datetime) else None
    to_epoch = getattr(value, "timestamp", None)
    if callable(to_epoch):
        try:
            seconds = float(to_epoch())
            return datetime.fromtimestamp(seconds, tz=timezone.utc) if math.isfinite(seconds) else None
        except (TypeError, ValueError, OverflowError, OSError):
            return None

    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith("Z") or text.endswith("z"):
            text = text[:-1] + "+00:00"
        try:
            return normalize_timestamp(datetime.fromisoformat(text))
        except ValueError:
            return None

    if isinstance(value, dict):
        seconds = value.get("seconds", value.get("_seconds"))
        nanos = value.get("nanoseconds", value.get("_nanoseconds", 0)) or 0
        if isinstance(seconds, bool) or not isinstance(seconds, (int, float)):
            return None
        if isinstance(nanos, bool) or not isinstance(nanos, (int, float)):
            nanos = 0
        try:
            base = datetime.fromtimestamp(float(seconds), tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
        return base + timedelta(microseconds=int(nanos) // 1000)

    if isinstance(value, (int, float)):
        if not math.isfinite(value):
            return None
        seconds = value / 1000.0 if abs(value) > _MILLIS_CUTOFF else float(value)
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None

    return None
