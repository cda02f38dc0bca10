from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone

from ..analytics.store import RankingEvent, record_event
from ..catalog.source import CatalogSource
from .assembler import ResponseAssembler
from .cache import cache_headers, check_not_modified, compute_etag
from .cascade import FallbackCascade, RankingRequest
from .config import DEFAULT_RANKING_CONFIG, RankingConfig, SurfaceConfig
from .models import RankingMeta, RankingResponse
from .seed import build_seed


@dataclass
class RankingOutcome:
    headers: dict[str, str] = field(default_factory=dict)
    payload: RankingResponse | None = None

    @property
    def not_modified(self) -> bool:
        return self.payload is None


def parse_limit(raw: str | int | None, default: int, maximum: int) -> int:
    """Parse the ``limit`` query value, clamping to ``[1, maximum]``."""
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return min(default, maximum)
    try:
        value = int(str(raw).strip())
    except ValueError:
        return min(default, maximum)
    return max(1, min(value, maximum))


def clean_param(raw: str | None) -> str | None:
    if raw is None:
        return None
    text = raw.strip()
    return text or None


def _iso_utc(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def get_ranked(
    surface: SurfaceConfig,
    source: CatalogSource,
    now: datetime,
    limit: str | int | None = None,
    region: str | None = None,
    category: str | None = None,
    city: str | None = None,
    if_none_match: str | None = None,
    config: RankingConfig = DEFAULT_RANKING_CONFIG,
) -> RankingOutcome:
    start_time = time.time()
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    limit_value = parse_limit(limit, surface.default_limit, config.max_limit)
    region = clean_param(region)
    category = clean_param(category)
    city = clean_param(city)

    # One seed per request so every tie-break and the ETag agree.
    period_seed = build_seed(now, region, surface.period_mode, surface.bucket_minutes)
    request = RankingRequest(
        surface=surface.name,
        limit=limit_value,
        seed=period_seed.seed,
        region=region,
        category=category.lower() if category else None,
        city=city,
    )

    result = FallbackCascade(source, config).run(request, now)
    etag = compute_etag(period_seed.seed, result.selected)
    expires_in = (period_seed.expires_at - now).total_seconds()
    headers = cache_headers(surface, etag, period_seed.period, result.source, expires_in)

    def record(not_modified: bool) -> None:
        record_event(RankingEvent(
            surface=surface.name,
            limit=limit_value,
            source=result.source,
            count=len(result.selected),
            response_time_ms=round((time.time() - start_time) * 1000, 1),
            not_modified=not_modified,
            region=region,
            category=category,
            failures=tuple(result.failures),
        ))

    if check_not_modified(if_none_match, etag):
        record(not_modified=True)
        return RankingOutcome(headers=headers)

    cards = ResponseAssembler(source, config).assemble(result.selected, surface)
    payload = RankingResponse(
        data=cards,
        meta=RankingMeta(
            period=period_seed.period,
            generated_at=_iso_utc(now),
            seed=period_seed.seed,
            source=result.source,
            count=len(cards),
        ),
    )

    record(not_modified=False)
    return RankingOutcome(headers=headers, payload=payload)
