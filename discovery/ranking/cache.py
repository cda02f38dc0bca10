"""
HTTP cache validation for ranked responses.

The ETag covers the seed and the selection itself (id, score, review count,
last activity), never the generation timestamp, so an unchanged selection
within a period always validates. Freshness is short with a longer
stale-while-revalidate window so shared caches absorb recomputation.
"""
from __future__ import annotations

import hashlib
from collections.abc import Sequence

from .config import SurfaceConfig
from .scoring import ScoredCandidate

_hits: int = 0
_misses: int = 0


def _fingerprint(item: ScoredCandidate) -> str:
    c = item.candidate
    return f"{c.id}:{item.score:.6f}:{c.total_reviews}:{c.last_activity.isoformat()}"


def compute_etag(seed: str, selected: Sequence[ScoredCandidate]) -> str:
    payload = seed + "|" + ",".join(_fingerprint(item) for item in selected)
    digest = hashlib.sha256(payload.encode()).hexdigest()[:32]
    return f'W/"{digest}"'


def _opaque(tag: str) -> str:
    tag = tag.strip()
    if tag.startswith("W/"):
        tag = tag[2:]
    return tag.strip()


def etag_matches(if_none_match: str | None, etag: str) -> bool:
    """Weak comparison of *etag* against an ``If-None-Match`` header value."""
    if not if_none_match:
        return False
    target = _opaque(etag)
    for candidate in if_none_match.split(","):
        candidate = candidate.strip()
        if candidate == "*" or (candidate and _opaque(candidate) == target):
            return True
    return False


def cache_control(surface: SurfaceConfig, expires_in: float | None = None) -> str:
    """Build ``Cache-Control``; browser freshness never outlives the current period."""
    max_age = surface.max_age
    if expires_in is not None:
        max_age = max(0, min(max_age, int(expires_in)))
    return (
        f"public, max-age={max_age}, s-maxage={surface.s_maxage}, "
        f"stale-while-revalidate={surface.stale_while_revalidate}"
    )


def cache_headers(
    surface: SurfaceConfig,
    etag: str,
    period: str,
    source: str,
    expires_in: float | None = None,
) -> dict[str, str]:
    return {
        "Cache-Control": cache_control(surface, expires_in),
        "ETag": etag,
        surface.period_header: period,
        "X-Ranking-Source": source,
    }


def check_not_modified(if_none_match: str | None, etag: str) -> bool:
    """Return True when the caller already holds *etag*, recording the outcome."""
    global _hits, _misses
    if etag_matches(if_none_match, etag):
        _hits += 1
        return True
    _misses += 1
    return False


def get_cache_stats() -> dict:
    total = _hits + _misses
    return {
        "not_modified": _hits,
        "full_responses": _misses,
        "hit_rate": round(_hits / total * 100, 1) if total > 0 else 0.0,
    }


def clear_cache_stats() -> None:
    global _hits, _misses
    _hits = 0
    _misses = 0
