from __future__ import annotations

from collections import Counter, defaultdict
from collections.abc import Iterable
from typing import Any

from .store import RankingEvent


def _rate(part: int, total: int) -> float:
    return round(part / total * 100, 1) if total else 0.0


def _surface_stats(items: list[RankingEvent]) -> dict[str, Any]:
    total = len(items)
    not_modified = sum(1 for e in items if e.not_modified)

    # Tier usage: how often each tier contributed to a response
    tier_counter: Counter[str] = Counter(tier for e in items for tier in e.tiers)
    failure_counter: Counter[str] = Counter(tier for e in items for tier in e.failures)
    region_counter: Counter[str] = Counter(e.region or "global" for e in items)

    return {
        "requests": total,
        "avg_response_time_ms": round(sum(e.response_time_ms for e in items) / total, 1),
        "tier_usage": dict(tier_counter),
        "tier_failures": dict(failure_counter),
        "top_regions": [{"name": n, "count": c} for n, c in region_counter.most_common(10)],
        "not_modified_rate": _rate(not_modified, total),
        "empty_responses": sum(1 for e in items if e.count == 0),
        "short_responses": sum(1 for e in items if e.short),
    }


def compute_ranking_stats(events: Iterable[RankingEvent]) -> dict[str, Any]:
    by_surface: dict[str, list[RankingEvent]] = defaultdict(list)
    total = 0
    for e in events:
        by_surface[e.surface].append(e)
        total += 1

    return {
        "total_requests": total,
        "surfaces": {name: _surface_stats(items) for name, items in sorted(by_surface.items())},
    }
