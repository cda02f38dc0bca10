from __future__ import annotations

import math
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta

from ..catalog.models import Candidate
from .config import DEFAULT_RANKING_CONFIG, RankingConfig
from .seed import GLOBAL_REGION, normalize_region, tie_break_hash


@dataclass(frozen=True)
class ScoredCandidate:
    candidate: Candidate
    score: float
    is_local: bool
    tie_break_hash: str
    tier: str = "primary"

    @property
    def id(self) -> str:
        return self.candidate.id

    @property
    def bucket(self) -> str:
        return self.candidate.bucket


def bayesian_rating(
    rating: float, reviews: int, config: RankingConfig = DEFAULT_RANKING_CONFIG,
) -> float:
    """Shrink *rating* toward the prior mean by ``prior_weight`` virtual reviews."""
    return (rating * reviews + config.prior_mean * config.prior_weight) / (
        reviews + config.prior_weight
    )


def compute_score(candidate: Candidate, config: RankingConfig = DEFAULT_RANKING_CONFIG) -> float:
    smoothed = bayesian_rating(candidate.average_rating, candidate.total_reviews, config)
    return (
        config.rating_weight * smoothed
        + config.volume_weight * math.log1p(candidate.total_reviews)
        + config.recency_weight * math.log1p(candidate.recent_reviews_30d)
    )


def passes_quality_floor(
    candidate: Candidate,
    now: datetime,
    config: RankingConfig = DEFAULT_RANKING_CONFIG,
) -> bool:
    if candidate.average_rating < config.min_rating:
        return False
    if candidate.total_reviews < config.min_reviews:
        return False
    return candidate.last_activity >= now - timedelta(days=config.max_inactive_days)


def is_local(candidate: Candidate, region: str | None) -> bool:
    """True when the request region appears inside the candidate's locality."""
    normalized = normalize_region(region)
    if normalized == GLOBAL_REGION:
        return False
    return normalized in " ".join(candidate.locality.split()).lower()


def score_candidate(
    candidate: Candidate,
    seed: str,
    region: str | None,
    tier: str = "primary",
    score: float | None = None,
    config: RankingConfig = DEFAULT_RANKING_CONFIG,
) -> ScoredCandidate:
    """Attach score, locality and tie-break hash. *score* overrides the formula."""
    return ScoredCandidate(
        candidate=candidate,
        score=compute_score(candidate, config) if score is None else score,
        is_local=is_local(candidate, region),
        tie_break_hash=tie_break_hash(seed, candidate.id),
        tier=tier,
    )


def ranking_key(item: ScoredCandidate) -> tuple:
    return (
        not item.is_local,
        -item.score,
        -item.candidate.total_reviews,
        -item.candidate.last_activity.timestamp(),
        item.tie_break_hash,
    )


def rank_candidates(items: Iterable[ScoredCandidate]) -> list[ScoredCandidate]:
    """Sort local first, then score, review volume, recency and seeded hash."""
    return sorted(items, key=ranking_key)
