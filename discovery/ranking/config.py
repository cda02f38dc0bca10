from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from .seed import PeriodMode

# Load .env from project root
load_dotenv(Path(__file__).resolve().parent.parent.parent / ".env")


@dataclass(frozen=True)
class RankingConfig:
    prior_mean: float = 4.0
    prior_weight: int = 5
    rating_weight: float = 0.6
    volume_weight: float = 0.2
    recency_weight: float = 0.2
    min_rating: float = 4.0
    min_reviews: int = 5
    max_inactive_days: int = 180
    recent_window_days: int = 30
    pool_multiplier: int = 10
    max_pool_size: int = 250
    review_count_batch_size: int = 250
    read_timeout_seconds: float = float(os.getenv("DISCOVERY_READ_TIMEOUT", "1.5"))
    max_limit: int = 50


@dataclass(frozen=True)
class SurfaceConfig:
    name: str
    default_limit: int
    period_mode: PeriodMode
    bucket_minutes: int
    max_age: int
    s_maxage: int
    stale_while_revalidate: int
    period_header: str
    badge: str | None = None


DEFAULT_RANKING_CONFIG = RankingConfig()

FEATURED = SurfaceConfig(
    name="featured",
    default_limit=12,
    period_mode=PeriodMode(os.getenv("FEATURED_PERIOD_MODE", "month")),
    bucket_minutes=int(os.getenv("FEATURED_BUCKET_MINUTES", "60")),
    max_age=300,
    s_maxage=300,
    stale_while_revalidate=3600,
    period_header="X-Featured-Period",
    badge="featured",
)

TRENDING = SurfaceConfig(
    name="trending",
    default_limit=20,
    period_mode=PeriodMode.BUCKET,
    bucket_minutes=int(os.getenv("TRENDING_BUCKET_MINUTES", "15")),
    max_age=60,
    s_maxage=900,
    stale_while_revalidate=1800,
    period_header="X-Trending-Period",
)
