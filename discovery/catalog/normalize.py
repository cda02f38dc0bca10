"""
Boundary normalization for business rows.

Rows coming out of the store are loosely shaped: stats may be nested as a
list or a single object, price ranges arrive as ``"$$"`` or as
``{"level": 2}``, timestamps as strings, datetimes or blanks. Everything is
folded into a single typed ``Candidate`` here so the scoring and selection
code never has to inspect types at runtime.
"""
from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any

import pandas as pd

from .models import MISCELLANEOUS, Candidate

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

PRICE_ORDER = ["$", "$$", "$$$", "$$$$"]
_PRICE_WORDS = {
    "inexpensive": "$",
    "budget": "$",
    "moderate": "$$",
    "expensive": "$$$",
    "very expensive": "$$$$",
    "luxury": "$$$$",
}


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    return bool(pd.api.types.is_scalar(value) and pd.isna(value))


def _clean_text(value: Any) -> str:
    if _is_missing(value):
        return ""
    return str(value).strip()


def normalize_bucket(sub_interest_id: Any, category: Any) -> str:
    """Subcategory slug, else category, else ``miscellaneous``; lower-cased."""
    for value in (sub_interest_id, category):
        text = _clean_text(value).lower()
        if text:
            return text
    return MISCELLANEOUS


def normalize_rating(rating: Any) -> float:
    if _is_missing(rating):
        return 0.0
    raw = str(rating).strip()
    # Handle "X/5" format (e.g. "4.1/5")
    if "/" in raw:
        raw = raw.split("/")[0].strip()
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return 0.0
    if value != value:
        return 0.0
    return max(0.0, min(5.0, value))


def normalize_count(count: Any) -> int:
    if _is_missing(count):
        return 0
    try:
        value = int(float(count))
    except (TypeError, ValueError):
        return 0
    return max(0, value)


def normalize_flag(flag: Any) -> bool:
    if _is_missing(flag):
        return False
    if isinstance(flag, str):
        return flag.strip().lower() in ("1", "true", "t", "yes", "y")
    return bool(flag)


def normalize_price_range(price: Any) -> str | None:
    """Map ``"$$"``, ``2``, ``"moderate"`` or ``{"level": 2}`` to a ``$`` bucket."""
    if _is_missing(price):
        return None
    if isinstance(price, Mapping):
        for key in ("label", "range", "value", "level"):
            if key in price and not _is_missing(price[key]):
                return normalize_price_range(price[key])
        return None
    if isinstance(price, bool):
        return None
    if isinstance(price, (int, float)):
        level = int(price)
        if 1 <= level <= len(PRICE_ORDER):
            return PRICE_ORDER[level - 1]
        return None

    text = str(price).strip().lower()
    if not text:
        return None
    if text in PRICE_ORDER:
        return text
    if text.isdigit():
        return normalize_price_range(int(text))
    return _PRICE_WORDS.get(text)


def parse_timestamp(value: Any) -> datetime | None:
    """Return a timezone-aware UTC datetime, or ``None`` when absent or invalid."""
    if _is_missing(value):
        return None
    if isinstance(value, str) and not value.strip():
        return None
    try:
        ts = pd.Timestamp(value)
    except (TypeError, ValueError):
        return None
    if ts is pd.NaT:
        return None
    if ts.tzinfo is None:
        ts = ts.tz_localize("UTC")
    else:
        ts = ts.tz_convert("UTC")
    return ts.to_pydatetime()


def extract_stats(record: Mapping[str, Any]) -> Mapping[str, Any]:
    """Return the aggregate stats for a row whether nested or flattened."""
    nested = record.get("business_stats")
    if isinstance(nested, (list, tuple)):
        nested = nested[0] if nested else None
    if isinstance(nested, Mapping):
        return nested
    return record


def to_candidate(record: Mapping[str, Any]) -> Candidate:
    """Normalize one store row into a ``Candidate``."""
    stats = extract_stats(record)

    created_at = parse_timestamp(record.get("created_at")) or EPOCH
    last_activity = (
        parse_timestamp(stats.get("last_review_at"))
        or parse_timestamp(record.get("last_activity_at"))
        or parse_timestamp(record.get("updated_at"))
        or created_at
    )

    rank_score = record.get("rank_score")
    return Candidate(
        id=_clean_text(record.get("id")),
        name=_clean_text(record.get("name")),
        bucket=normalize_bucket(record.get("sub_interest_id"), record.get("category")),
        average_rating=normalize_rating(stats.get("average_rating")),
        total_reviews=normalize_count(stats.get("total_reviews")),
        recent_reviews_7d=normalize_count(record.get("recent_reviews_7d")),
        recent_reviews_30d=normalize_count(record.get("recent_reviews_30d")),
        last_activity=last_activity,
        created_at=created_at,
        verified=normalize_flag(record.get("verified")),
        locality=_clean_text(record.get("location")),
        category=_clean_text(record.get("category")) or None,
        slug=_clean_text(record.get("slug")) or None,
        image_url=_clean_text(record.get("image_url")) or None,
        badge=_clean_text(record.get("badge")) or None,
        price_range=normalize_price_range(record.get("price_range")),
        rank_score=None if _is_missing(rank_score) else float(rank_score),
    )
