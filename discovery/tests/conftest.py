from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from discovery.analytics.store import clear_events
from discovery.catalog.models import Candidate, Image, PoolFilters
from discovery.catalog.source import CatalogSource
from discovery.ranking.cache import clear_cache_stats

NOW = datetime(2026, 10, 16, 12, 0, tzinfo=timezone.utc)
SAMPLE_DIR = Path(__file__).resolve().parent.parent / "data" / "sample"


def build_candidate(
    cid: str,
    bucket: str = "cafes",
    rating: float = 4.8,
    reviews: int = 20,
    recent_30d: int = 0,
    recent_7d: int = 0,
    active_days_ago: int = 3,
    created_days_ago: int = 400,
    locality: str = "Gardens, Cape Town",
    **extra,
) -> Candidate:
    return Candidate(
        id=cid,
        name=extra.pop("name", f"Business {cid}"),
        bucket=bucket,
        average_rating=rating,
        total_reviews=reviews,
        recent_reviews_7d=recent_7d,
        recent_reviews_30d=recent_30d,
        last_activity=NOW - timedelta(days=active_days_ago),
        created_at=NOW - timedelta(days=created_days_ago),
        locality=locality,
        **extra,
    )


class StubCatalog(CatalogSource):
    """In-memory catalog whose reads can be made to fail per operation."""

    def __init__(
        self,
        primary: Sequence[Candidate] = (),
        pool: Sequence[Candidate] = (),
        quality: Sequence[Candidate] = (),
        newest: Sequence[Candidate] = (),
        recent: dict[str, list[datetime]] | None = None,
        images: dict[str, list[Image]] | None = None,
        failures: dict[str, Exception] | None = None,
    ) -> None:
        self.primary = list(primary)
        self.pool = list(pool)
        self.quality = list(quality)
        self.newest = list(newest)
        self.recent = recent or {}
        self.images = images or {}
        self.failures = failures or {}
        self.calls: list[tuple[str, tuple]] = []

    def _enter(self, name: str, *args) -> None:
        self.calls.append((name, args))
        if name in self.failures:
            raise self.failures[name]

    def fetch_primary_ranked(self, surface, region, limit, seed, category=None):
        self._enter("fetch_primary_ranked", surface, region, limit, seed, category)
        return self.primary[:limit]

    def fetch_raw_candidate_pool(self, filters: PoolFilters, pool_size: int):
        self._enter("fetch_raw_candidate_pool", filters, pool_size)
        pool = [c for c in self.pool if not filters.category or c.bucket == filters.category]
        return pool[:pool_size]

    def fetch_recent_review_counts(self, candidate_ids, since):
        self._enter("fetch_recent_review_counts", tuple(candidate_ids), since)
        return {
            cid: sum(1 for ts in self.recent.get(cid, []) if ts >= since)
            for cid in candidate_ids
            if cid in self.recent
        }

    def fetch_quality_fallback(self, limit):
        self._enter("fetch_quality_fallback", limit)
        return self.quality[:limit]

    def fetch_newest(self, limit, category=None):
        self._enter("fetch_newest", limit, category)
        return [c for c in self.newest if not category or c.bucket == category][:limit]

    def fetch_images(self, candidate_ids):
        self._enter("fetch_images", tuple(candidate_ids))
        return {cid: self.images[cid] for cid in candidate_ids if cid in self.images}

    def called(self, name: str) -> int:
        return sum(1 for call, _ in self.calls if call == name)


@pytest.fixture(autouse=True)
def _reset_request_state():
    clear_events()
    clear_cache_stats()
    yield


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def make_candidate():
    """Factory for normalized candidates; keyword arguments override defaults."""
    return build_candidate


@pytest.fixture
def make_catalog():
    """Factory for ``StubCatalog`` instances."""
    return StubCatalog


@pytest.fixture
def sample_dir():
    return SAMPLE_DIR
