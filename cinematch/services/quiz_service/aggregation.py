# services/quiz_service/aggregation.py
"""
Aggregates stored quiz results into personal and population statistics.

Everything here is a pure function over already-fetched records: no store
access, no clock. Malformed records are skipped, never raised.

Top category resolution, per record:
  1) explicit `topCategoryId`
  2) breakdown entry with the highest percentage
  3) unresolved (excluded from charts that need a top category)
"""

from __future__ import annotations
import logging
import math
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Iterable, List, Optional, Tuple

from . import catalog
from .models import StoredResult
from .utils import normalize_timestamp, to_short_date

logger = logging.getLogger(__name__)

MIN_COLUMN_HEIGHT = 6
FALLBACK_COLOR = "var(--color-primary)"
UNKNOWN_LABEL = "N/A"

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)

__all__ = [
    "TopEntry",
    "normalize_timestamp",
    "decode_records",
    "resolve_top_category",
    "latest_per_identity",
    "fold_duplicates",
    "population_pie",
    "guest_split",
    "latest_results_list",
    "personal_series",
    "personal_history",
    "build_statistics",
]


@dataclass(frozen=True)
class TopEntry:
    id: str
    label: str
    color: str
    percentage: float


# ============================================================================
# Record helpers
# ============================================================================

def _ensure_number(value: Any) -> float:
    if isinstance(value, bool):
        return 0.0
    try:
        numeric = float(value)
    except (TypeError, ValueError):
        return 0.0
    return numeric if math.isfinite(numeric) else 0.0


def _round1(value: float) -> float:
    return float(Decimal(str(value)).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def _entry_id(entry: Dict[str, Any]) -> Optional[str]:
    if isinstance(entry.get("id"), str) and entry["id"].strip():
        return entry["id"]
    genre = entry.get("genre") or entry.get("category")
    if isinstance(genre, dict) and isinstance(genre.get("id"), str):
        return genre["id"]
    return None


def _entry_text(entry: Dict[str, Any], key: str) -> Optional[str]:
    value = entry.get(key)
    if isinstance(value, str) and value.strip():
        return value
    nested = entry.get("genre") or entry.get("category")
    if isinstance(nested, dict):
        value = nested.get(key)
        if isinstance(value, str) and value.strip():
            return value
    return None


def _describe(category_id: str, entry: Optional[Dict[str, Any]]) -> Tuple[str, str]:
    """Label and color: catalog first, then whatever the stored entry carries."""
    if catalog.is_category(category_id):
        cat = catalog.get_category(category_id)
        return cat.label, cat.color
    entry = entry or {}
    return (_entry_text(entry, "label") or category_id,
            _entry_text(entry, "color") or FALLBACK_COLOR)


def decode_records(raw: Iterable[Any]) -> List[StoredResult]:
    """
    Decode raw store rows into StoredResult, dropping the ones that do not decode.
    Rows may be StoredResult already, (doc_id, dict) pairs, or dicts carrying "id".
    """
    out: List[StoredResult] = []
    for i, row in enumerate(raw):
        if isinstance(row, StoredResult):
            out.append(row)
            continue
        try:
            if isinstance(row, tuple) and len(row) == 2:
                doc_id, data = row
            elif isinstance(row, dict):
                doc_id, data = str(row.get("id") or f"row-{i}"), row
            else:
                raise ValueError(f"row {i}: unsupported shape {type(row).__name__}")
            out.append(StoredResult.from_document(str(doc_id), data))
        except ValueError as e:
            logger.debug("[aggregation] skipping malformed record: %s", e)
    return out


def resolve_top_category(record: StoredResult) -> Optional[TopEntry]:
    """Resolve the record's top category using the fallback chain above."""
    breakdown = [e for e in record.breakdown if isinstance(e, dict)]

    if record.top_category_id:
        top_id = record.top_category_id
        entry = next((e for e in breakdown if _entry_id(e) == top_id), None)
        label, color = _describe(top_id, entry)
        pct = _ensure_number(entry.get("percentage")) if entry else 0.0
        return TopEntry(top_id, label, color, pct)

    if not breakdown:
        return None
    ordered = sorted(breakdown, key=lambda e: _ensure_number(e.get("percentage")), reverse=True)
    entry = ordered[0]
    top_id = _entry_id(entry) or _entry_text(entry, "label")
    if not top_id:
        return None
    label, color = _describe(top_id, entry)
    return TopEntry(top_id, label, color, _ensure_number(entry.get("percentage")))


# ============================================================================
# Deduplication
# ============================================================================

def _recency_key(record: StoredResult) -> Tuple[bool, datetime, str]:
    ts = record.server_timestamp
    return (ts is not None, ts or _EPOCH, record.id)


def latest_per_identity(records: Iterable[StoredResult]) -> List[StoredResult]:
    """
    Keep only the newest record per identity, by store-assigned timestamp.
    Equal timestamps fall back to the larger document id. Records without a
    timestamp only win when the identity has nothing else.
    Output is newest first.
    """
    latest: Dict[str, StoredResult] = {}
    for rec in records:
        current = latest.get(rec.identity_id)
        if current is None or _recency_key(rec) > _recency_key(current):
            latest[rec.identity_id] = rec
    return sorted(latest.values(), key=_recency_key, reverse=True)


def fold_duplicates(records: Iterable[StoredResult]) -> List[StoredResult]:
    """
    Fold rows sharing (identity, timestamp, top category). First one wins, order kept.
    Rows without a timestamp are never folded.
    """
    seen: "OrderedDict[Tuple[Any, ...], StoredResult]" = OrderedDict()
    for rec in records:
        top = resolve_top_category(rec)
        when = rec.server_timestamp if rec.server_timestamp is not None else ("undated", rec.id)
        key = (rec.identity_id, when, top.id if top else None)
        if key not in seen:
            seen[key] = rec
    return list(seen.values())


# ============================================================================
# Population views
# ============================================================================

def _apportion_tenths(counts: List[int]) -> List[float]:
    """
    Percentages with one decimal that always sum to exactly 100.0
    (largest remainder over tenths of a percent, ties in input order).
    """
    total = sum(counts)
    if total <= 0:
        return [0.0 for _ in counts]
    floors = [c * 1000 // total for c in counts]
    remainders = [c * 1000 % total for c in counts]
    leftover = 1000 - sum(floors)
    order = sorted(range(len(counts)), key=lambda i: remainders[i], reverse=True)
    for i in order[:leftover]:
        floors[i] += 1
    return [f / 10 for f in floors]


def population_pie(records: Iterable[StoredResult]) -> List[Dict[str, Any]]:
    """
    Share of each top category across the population, one vote per identity.

    Returns slices sorted by raw count descending (catalog order on ties):
    [{"id": "action", "label": "Action", "color": "#ef4444", "count": 3, "percentage": 60.0}, ...]
    """
    totals: Dict[str, Dict[str, Any]] = {}
    for rec in latest_per_identity(records):
        top = resolve_top_category(rec)
        if top is None:
            continue
        slot = totals.setdefault(top.id, {"id": top.id, "label": top.label, "color": top.color, "count": 0})
        slot["count"] += 1

    slices = sorted(totals.values(), key=lambda s: (-s["count"], catalog.catalog_position(s["id"]), s["label"]))
    for s, pct in zip(slices, _apportion_tenths([s["count"] for s in slices])):
        s["percentage"] = pct
    return slices


def guest_split(records: Iterable[StoredResult]) -> Dict[str, int]:
    """Guest vs registered identities in the deduplicated population."""
    population = latest_per_identity(records)
    guests = sum(1 for r in population if r.is_guest)
    return {"guests": guests, "registered": len(population) - guests, "total": len(population)}


def latest_results_list(records: Iterable[StoredResult]) -> List[Dict[str, Any]]:
    return [_list_item(r) for r in latest_per_identity(records)]


# ============================================================================
# Personal views
# ============================================================================

def _list_item(rec: StoredResult) -> Dict[str, Any]:
    top = resolve_top_category(rec)
    ts = rec.server_timestamp
    return {
        "id": rec.id,
        "date": ts.isoformat() if ts else None,
        "name": rec.display_name,
        "isGuest": rec.is_guest,
        "categoryId": top.id if top else None,
        "label": top.label if top else UNKNOWN_LABEL,
        "percentage": _round1(top.percentage) if top else 0.0,
        "color": top.color if top else FALLBACK_COLOR,
    }


def personal_history(records: Iterable[StoredResult]) -> List[Dict[str, Any]]:
    """A user's own results, newest first. Not deduplicated by identity."""
    folded = fold_duplicates(records)
    folded.sort(key=_recency_key, reverse=True)
    return [_list_item(r) for r in folded]


def personal_series(records: Iterable[StoredResult]) -> List[Dict[str, Any]]:
    """
    Column-chart points, oldest first.

    height = percentage / max(percentage) * 100, rounded, floored at
    MIN_COLUMN_HEIGHT and capped at 100. Records without a timestamp or a
    top category are skipped.
    """
    points = []
    for rec in fold_duplicates(records):
        ts = rec.server_timestamp
        top = resolve_top_category(rec)
        if ts is None or top is None:
            continue
        points.append((ts, rec.id, top, max(0.0, min(top.percentage, 100.0))))

    if not points:
        return []
    points.sort(key=lambda p: (p[0], p[1]))

    max_value = max(p[3] for p in points) or 100.0
    series = []
    for ts, doc_id, top, value in points:
        scaled = Decimal(str(value / max_value * 100)).quantize(Decimal(1), rounding=ROUND_HALF_UP)
        height = min(100, max(MIN_COLUMN_HEIGHT, int(scaled)))
        display = _round1(value)
        series.append({
            "id": f"{int(ts.timestamp() * 1000)}-{doc_id}",
            "date": ts.isoformat(),
            "shortDate": to_short_date(ts),
            "categoryId": top.id,
            "label": top.label,
            "color": top.color,
            "percentage": display,
            "height": height,
        })
    return series


# ============================================================================
# Combined
# ============================================================================

def build_statistics(mine: Iterable[Any], everyone: Iterable[Any]) -> Dict[str, Any]:
    """
    Everything the statistics page shows, from two independently fetched windows.
    Inputs may be raw rows; they are decoded here.
    """
    mine_records = decode_records(mine)
    global_records = decode_records(everyone)
    return {
        "personal": {
            "history": personal_history(mine_records),
            "series": personal_series(mine_records),
        },
        "population": {
            "pie": population_pie(global_records),
            "split": guest_split(global_records),
            "latest": latest_results_list(global_records),
        },
    }
