from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

MISCELLANEOUS = "miscellaneous"


@dataclass(frozen=True)
class Candidate:
    """A business eligible for ranking, already normalized at the store boundary."""

    id: str
    name: str
    bucket: str
    average_rating: float
    total_reviews: int
    last_activity: datetime
    created_at: datetime
    recent_reviews_7d: int = 0
    recent_reviews_30d: int = 0
    verified: bool = False
    locality: str = ""
    category: str | None = None
    slug: str | None = None
    image_url: str | None = None
    badge: str | None = None
    price_range: str | None = None
    rank_score: float | None = None


@dataclass(frozen=True)
class Image:
    business_id: str
    url: str
    alt_text: str | None = None
    is_primary: bool = False


@dataclass(frozen=True)
class PoolFilters:
    """Filters applied to the raw candidate pool before scoring."""

    category: str | None = None
    city: str | None = None
