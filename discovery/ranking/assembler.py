from __future__ import annotations

import logging
from collections.abc import Sequence

from ..catalog.models import Image
from ..catalog.source import CatalogSource
from .cascade import timed_read
from .config import DEFAULT_RANKING_CONFIG, RankingConfig, SurfaceConfig
from .labels import category_label
from .models import BusinessCard, Reason
from .scoring import ScoredCandidate

logger = logging.getLogger(__name__)

RISING_MIN_RECENT_REVIEWS = 5
FAVORITE_MIN_REVIEWS = 50
TOP_RATED_MIN_RATING = 4.7


def derive_reason(item: ScoredCandidate) -> Reason:
    """Pick the first matching "why featured" tag in fixed priority order."""
    c = item.candidate
    if c.recent_reviews_30d >= RISING_MIN_RECENT_REVIEWS:
        return Reason(label="Rising this month", metric="reviews_30d", value=c.recent_reviews_30d)
    if c.total_reviews >= FAVORITE_MIN_REVIEWS:
        return Reason(label="Community favorite", metric="total_reviews", value=c.total_reviews)
    if c.average_rating >= TOP_RATED_MIN_RATING:
        return Reason(label="Top rated", metric="average_rating", value=round(c.average_rating, 2))
    return Reason(label="Featured pick", metric="score", value=round(item.score, 4))


def _badge(item: ScoredCandidate, surface: SurfaceConfig) -> str | None:
    if surface.badge:
        return surface.badge
    c = item.candidate
    return c.badge if c.verified and c.badge else None


def build_card(
    item: ScoredCandidate,
    rank: int,
    images: Sequence[Image],
    surface: SurfaceConfig,
) -> BusinessCard:
    c = item.candidate
    primary = next((img for img in images if img.is_primary), None) or (images[0] if images else None)
    # A missing image is left as None; the client resolves a category placeholder.
    image = primary.url if primary else c.image_url
    return BusinessCard(
        id=c.id,
        name=c.name,
        image=image,
        image_url=image,
        uploaded_images=[img.url for img in images],
        alt=(primary.alt_text if primary and primary.alt_text else c.name),
        category=category_label(c.bucket),
        sub_interest_id=c.bucket,
        location=c.locality or None,
        rating=round(c.average_rating, 1) if c.average_rating > 0 else None,
        review_count=c.total_reviews,
        badge=_badge(item, surface),
        reason=derive_reason(item),
        rank=rank,
        href=f"/business/{c.slug or c.id}",
        verified=c.verified,
        price_range=c.price_range,
    )


class ResponseAssembler:
    def __init__(
        self,
        source: CatalogSource,
        config: RankingConfig = DEFAULT_RANKING_CONFIG,
    ) -> None:
        self.source = source
        self.config = config

    def fetch_images(self, ids: Sequence[str]) -> dict[str, list[Image]]:
        if not ids:
            return {}
        try:
            return timed_read(self.source.fetch_images, self.config.read_timeout_seconds, list(ids))
        except Exception:
            logger.warning("Image lookup failed, serving cards without uploads", exc_info=True)
            return {}

    def assemble(
        self, selected: Sequence[ScoredCandidate], surface: SurfaceConfig,
    ) -> list[BusinessCard]:
        """Enrich *selected* for display without changing its order."""
        images = self.fetch_images([item.id for item in selected])
        return [
            build_card(item, rank, images.get(item.id, []), surface)
            for rank, item in enumerate(selected, start=1)
        ]
