"""
Three-tier fallback cascade.

The cascade walks ``PRIMARY -> QUALITY -> NEWEST -> DONE``, appending each
tier's diverse selection to the accumulated result and moving on only while
the result is still short of the requested limit. Every catalog read runs
under a time budget; a failing or slow tier contributes nothing and the
cascade carries on with the next one.
"""
from __future__ import annotations

import enum
import logging
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeout
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Any, TypeVar

from ..catalog.models import Candidate, PoolFilters
from ..catalog.source import CatalogSource, SourceTimeout
from .config import DEFAULT_RANKING_CONFIG, RankingConfig
from .diversity import select_diverse
from .scoring import (
    ScoredCandidate,
    passes_quality_floor,
    rank_candidates,
    score_candidate,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

def timed_read(fn: Callable[..., T], timeout: float, *args: Any, **kwargs: Any) -> T:
    """Run one catalog read on its own thread, raising ``SourceTimeout`` past *timeout* seconds.

    Each read gets a dedicated worker; the budget covers the read alone,
    never time spent behind other requests.
    """
    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="catalog-read")
    try:
        future = executor.submit(fn, *args, **kwargs)
        return future.result(timeout=timeout)
    except FuturesTimeout as exc:
        name = getattr(fn, "__name__", "catalog read")
        raise SourceTimeout(f"{name} exceeded {timeout}s") from exc
    finally:
        # Abandoned reads are not cancelled; they finish on their own thread.
        executor.shutdown(wait=False)


class Tier(str, enum.Enum):
    PRIMARY = "primary"
    QUALITY = "quality"
    NEWEST = "newest"
    DONE = "done"


_TIER_ORDER = (Tier.PRIMARY, Tier.QUALITY, Tier.NEWEST, Tier.DONE)

# Label used when the primary tier is served by scoring raw stats.
SCORED = "scored"


def next_tier(state: Tier, accepted: int, limit: int) -> Tier:
    """Advance only while the accumulated result is below *limit*."""
    if state is Tier.DONE or accepted >= limit:
        return Tier.DONE
    return _TIER_ORDER[_TIER_ORDER.index(state) + 1]


@dataclass(frozen=True)
class RankingRequest:
    surface: str
    limit: int
    seed: str
    region: str | None = None
    category: str | None = None
    city: str | None = None


@dataclass
class CascadeResult:
    selected: list[ScoredCandidate] = field(default_factory=list)
    contributions: dict[str, int] = field(default_factory=dict)
    failures: list[str] = field(default_factory=list)

    @property
    def ids(self) -> list[str]:
        return [item.id for item in self.selected]

    @property
    def source(self) -> str:
        used = [label for label, count in self.contributions.items() if count > 0]
        return "+".join(used) if used else "none"


def newest_key(item: ScoredCandidate) -> tuple:
    return (
        not item.is_local,
        -item.candidate.created_at.timestamp(),
        item.tie_break_hash,
    )


class FallbackCascade:
    def __init__(
        self,
        source: CatalogSource,
        config: RankingConfig = DEFAULT_RANKING_CONFIG,
    ) -> None:
        self.source = source
        self.config = config

    # ── reads ───────────────────────────────────────────────────────────

    def _read(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        return timed_read(fn, self.config.read_timeout_seconds, *args, **kwargs)

    def _pool_size(self, limit: int) -> int:
        return min(limit * self.config.pool_multiplier, self.config.max_pool_size)

    def _recent_counts(self, ids: Sequence[str], since: datetime) -> dict[str, int]:
        counts: dict[str, int] = {}
        size = max(1, self.config.review_count_batch_size)
        for start in range(0, len(ids), size):
            batch = list(ids[start:start + size])
            counts.update(self._read(self.source.fetch_recent_review_counts, batch, since))
        return counts

    def _with_recent_activity(self, pool: list[Candidate], now: datetime) -> list[Candidate]:
        ids = [c.id for c in pool]
        since = now - timedelta(days=self.config.recent_window_days)
        try:
            counts = self._recent_counts(ids, since)
        except Exception:
            logger.warning(
                "Recent review counts unavailable, scoring on stored counts", exc_info=True,
            )
            return pool
        return [
            replace(c, recent_reviews_30d=counts.get(c.id, 0))
            for c in pool
        ]

    # ── tiers ───────────────────────────────────────────────────────────

    def _primary_ranked(self, request: RankingRequest) -> list[ScoredCandidate]:
        rows = self._read(
            self.source.fetch_primary_ranked,
            request.surface,
            request.region,
            self._pool_size(request.limit),
            request.seed,
            category=request.category,
        )
        scored = [
            score_candidate(
                c, request.seed, request.region,
                tier=Tier.PRIMARY.value, score=c.rank_score, config=self.config,
            )
            for c in rows
        ]
        return select_diverse(rank_candidates(scored), request.limit)

    def _scored_fallback(self, request: RankingRequest, now: datetime) -> list[ScoredCandidate]:
        filters = PoolFilters(category=request.category, city=request.city)
        pool = self._read(
            self.source.fetch_raw_candidate_pool, filters, self._pool_size(request.limit),
        )
        pool = self._with_recent_activity(pool, now)
        eligible = [c for c in pool if passes_quality_floor(c, now, self.config)]
        logger.info(
            "Scored fallback for %s: pool=%d eligible=%d",
            request.surface, len(pool), len(eligible),
        )
        scored = [
            score_candidate(c, request.seed, request.region, tier=SCORED, config=self.config)
            for c in eligible
        ]
        return select_diverse(rank_candidates(scored), request.limit)

    def _run_primary(self, request: RankingRequest, now: datetime, result: CascadeResult) -> None:
        try:
            selected = self._primary_ranked(request)
        except Exception:
            logger.warning(
                "Primary ranking for %s unavailable, scoring raw stats",
                request.surface, exc_info=True,
            )
            result.failures.append(Tier.PRIMARY.value)
            selected = []

        if selected:
            self._append(result, Tier.PRIMARY.value, selected)
            return

        try:
            selected = self._scored_fallback(request, now)
        except Exception:
            logger.warning(
                "Scored fallback for %s failed", request.surface, exc_info=True,
            )
            result.failures.append(SCORED)
            return
        self._append(result, SCORED, selected)

    def _run_fill(self, tier: Tier, request: RankingRequest, result: CascadeResult) -> None:
        shortfall = request.limit - len(result.selected)
        used_ids = set(result.ids)
        # Over-fetch by the excluded count so exclusions never starve the tier
        fetch_limit = shortfall + len(used_ids)
        try:
            if tier is Tier.QUALITY:
                rows = self._read(self.source.fetch_quality_fallback, fetch_limit)
            else:
                rows = self._read(
                    self.source.fetch_newest, fetch_limit, category=request.category,
                )
        except Exception:
            logger.warning(
                "%s tier for %s failed", tier.value, request.surface, exc_info=True,
            )
            result.failures.append(tier.value)
            return

        fresh: dict[str, Candidate] = {}
        for c in rows:
            if c.id and c.id not in used_ids and c.id not in fresh:
                fresh[c.id] = c
        scored = [
            score_candidate(c, request.seed, request.region, tier=tier.value, config=self.config)
            for c in fresh.values()
        ]
        ordered = (
            rank_candidates(scored) if tier is Tier.QUALITY
            else sorted(scored, key=newest_key)
        )
        used_buckets = {item.bucket for item in result.selected}
        self._append(result, tier.value, select_diverse(ordered, shortfall, used_buckets))

    @staticmethod
    def _append(result: CascadeResult, label: str, selected: list[ScoredCandidate]) -> None:
        result.selected.extend(selected)
        result.contributions[label] = result.contributions.get(label, 0) + len(selected)

    # ── state machine ───────────────────────────────────────────────────

    def run(self, request: RankingRequest, now: datetime) -> CascadeResult:
        result = CascadeResult()
        if request.limit <= 0:
            return result

        state = Tier.PRIMARY
        while state is not Tier.DONE:
            if state is Tier.PRIMARY:
                self._run_primary(request, now, result)
            else:
                self._run_fill(state, request, result)
            previous = state
            state = next_tier(state, len(result.selected), request.limit)
            logger.debug(
                "Cascade %s: %s -> %s with %d/%d",
                request.surface, previous.value, state.value,
                len(result.selected), request.limit,
            )

        logger.info(
            "Cascade for %s finished: count=%d source=%s buckets=%d failures=%s",
            request.surface,
            len(result.selected),
            result.source,
            len({item.bucket for item in result.selected}),
            result.failures or "none",
        )
        return result
