from __future__ import annotations

import logging
import time
from collections.abc import Callable
from datetime import datetime, timezone

from fastapi import Depends, FastAPI, Query, Request
from fastapi.responses import JSONResponse, Response

from .analytics.aggregator import compute_ranking_stats
from .analytics.store import get_events
from .catalog.data_store import get_catalog
from .catalog.source import CatalogSource, SourceTimeout
from .ranking.cache import get_cache_stats
from .ranking.config import FEATURED, TRENDING, SurfaceConfig
from .ranking.models import ErrorResponse
from .ranking.service import get_ranked

logger = logging.getLogger(__name__)

app = FastAPI(title="Business Discovery Ranking API", version="1.0.0")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def catalog_provider() -> Callable[[], CatalogSource]:
    """Return the catalog loader; resolved inside the handler so load errors become 500s."""
    return get_catalog


def get_clock() -> Callable[[], datetime]:
    return _utcnow


def _serve(
    surface: SurfaceConfig,
    request: Request,
    limit: str | None,
    region: str | None,
    category: str | None,
    city: str | None,
    catalog: Callable[[], CatalogSource],
    clock: Callable[[], datetime],
) -> Response:
    start_time = time.time()
    try:
        outcome = get_ranked(
            surface,
            catalog(),
            clock(),
            limit=limit,
            region=region,
            category=category,
            city=city,
            if_none_match=request.headers.get("if-none-match"),
        )
    except Exception as exc:
        elapsed_ms = round((time.time() - start_time) * 1000, 1)
        if isinstance(exc, (SourceTimeout, TimeoutError)):
            logger.warning(
                "%s request timed out after %.1f ms", surface.name, elapsed_ms, exc_info=True,
            )
        else:
            logger.exception("Unexpected error in %s ranking after %.1f ms", surface.name, elapsed_ms)
        error = ErrorResponse(error="Internal server error")
        return JSONResponse(error.model_dump(), status_code=500)

    if outcome.not_modified:
        return Response(status_code=304, headers=outcome.headers)
    return JSONResponse(outcome.payload.model_dump(), headers=outcome.headers)


# ── Public endpoints ─────────────────────────────────────────────────────


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/featured")
def featured(
    request: Request,
    limit: str | None = Query(default=None),
    region: str | None = Query(default=None),
    category: str | None = Query(default=None),
    city: str | None = Query(default=None),
    catalog: Callable[[], CatalogSource] = Depends(catalog_provider),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> Response:
    return _serve(FEATURED, request, limit, region, category, city, catalog, clock)


@app.get("/trending")
def trending(
    request: Request,
    limit: str | None = Query(default=None),
    region: str | None = Query(default=None),
    category: str | None = Query(default=None),
    city: str | None = Query(default=None),
    catalog: Callable[[], CatalogSource] = Depends(catalog_provider),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> Response:
    return _serve(TRENDING, request, limit, region, category, city, catalog, clock)


# ── Observability ────────────────────────────────────────────────────────


@app.get("/ranking/stats")
def ranking_stats(surface: str | None = Query(default=None)) -> dict:
    return compute_ranking_stats(get_events(surface=surface))


@app.get("/cache/stats")
def cache_stats() -> dict:
    return get_cache_stats()
