from __future__ import annotations

import logging
from dataclasses import replace
from datetime import timedelta
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from discovery.app import app, catalog_provider, get_clock
from discovery.catalog.source import SourceTimeout

client = TestClient(app)


@pytest.fixture
def serve(now):
    def _serve(catalog, at=None):
        app.dependency_overrides[catalog_provider] = lambda: (lambda: catalog)
        app.dependency_overrides[get_clock] = lambda: (lambda: at or now)
        return client

    yield _serve
    app.dependency_overrides.clear()


def _ranked_pool(make_candidate, count, buckets):
    return [
        replace(make_candidate(f"c{i:02d}", bucket=f"bucket{i % buckets}"), rank_score=100.0 - i)
        for i in range(count)
    ]


def test_health():
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


def test_featured_returns_payload_and_headers(serve, make_candidate, make_catalog):
    c = serve(make_catalog(primary=_ranked_pool(make_candidate, 8, 8)))
    resp = c.get("/featured", params={"limit": 4})
    assert resp.status_code == 200
    body = resp.json()
    assert [card["id"] for card in body["data"]] == ["c00", "c01", "c02", "c03"]
    assert body["meta"]["period"] == "2026-10"
    assert body["meta"]["seed"] == "2026-10:global"
    assert body["meta"]["source"] == "primary"
    assert body["meta"]["count"] == 4
    assert body["meta"]["generated_at"] == "2026-10-16T12:00:00Z"
    assert resp.headers["X-Featured-Period"] == "2026-10"
    assert resp.headers["ETag"].startswith('W/"')
    assert "stale-while-revalidate" in resp.headers["Cache-Control"]
    assert resp.headers["Cache-Control"].startswith("public")


def test_card_shape(serve, make_candidate, make_catalog):
    c = serve(make_catalog(primary=_ranked_pool(make_candidate, 1, 1)))
    card = c.get("/featured").json()["data"][0]
    assert set(card["reason"]) == {"label", "metric", "value"}
    assert card["badge"] == "featured"
    assert card["category"] == "Bucket0"
    assert card["rating"] == 4.8
    assert card["review_count"] == 20


def test_conditional_request_returns_304(serve, make_candidate, make_catalog):
    c = serve(make_catalog(primary=_ranked_pool(make_candidate, 5, 5)))
    first = c.get("/featured", params={"limit": 3})
    etag = first.headers["ETag"]

    second = c.get("/featured", params={"limit": 3}, headers={"If-None-Match": etag})
    assert second.status_code == 304
    assert second.content == b""
    assert second.headers["ETag"] == etag
    assert second.headers["Cache-Control"] == first.headers["Cache-Control"]

    stale = c.get("/featured", params={"limit": 3}, headers={"If-None-Match": 'W/"old"'})
    assert stale.status_code == 200


def test_etag_stable_across_identical_requests(serve, make_candidate, make_catalog):
    c = serve(make_catalog(primary=_ranked_pool(make_candidate, 6, 3)))
    a = c.get("/featured", params={"limit": 5})
    b = c.get("/featured", params={"limit": 5})
    assert a.headers["ETag"] == b.headers["ETag"]
    assert [x["id"] for x in a.json()["data"]] == [x["id"] for x in b.json()["data"]]


def test_limit_is_clamped(serve, make_candidate, make_catalog):
    c = serve(make_catalog(primary=_ranked_pool(make_candidate, 80, 80)))
    assert len(c.get("/featured", params={"limit": 500}).json()["data"]) == 50
    assert len(c.get("/featured", params={"limit": 0}).json()["data"]) == 1
    assert len(c.get("/featured", params={"limit": "abc"}).json()["data"]) == 12
    assert len(c.get("/featured").json()["data"]) == 12


def test_diversity_when_enough_buckets(serve, make_candidate, make_catalog):
    c = serve(make_catalog(primary=_ranked_pool(make_candidate, 30, 10)))
    data = c.get("/featured", params={"limit": 10}).json()["data"]
    buckets = [card["sub_interest_id"] for card in data]
    assert len(buckets) == len(set(buckets)) == 10


def test_empty_catalog_is_200(serve, make_catalog):
    resp = serve(make_catalog()).get("/featured")
    assert resp.status_code == 200
    body = resp.json()
    assert body["data"] == []
    assert body["meta"]["count"] == 0
    assert body["meta"]["source"] == "none"
    assert body["meta"]["seed"] == "2026-10:global"


def test_quality_fallback_when_nothing_passes_floor(serve, make_candidate, make_catalog):
    quality = [make_candidate(f"q{i}", bucket=f"b{i}", rating=3.8, reviews=4) for i in range(5)]
    catalog = make_catalog(pool=[make_candidate("weak", rating=3.0)], quality=quality)
    body = serve(catalog).get("/featured", params={"limit": 5}).json()
    assert len(body["data"]) == 5
    assert body["meta"]["source"] == "quality"


def test_region_prefers_local_and_changes_seed(serve, make_candidate, make_catalog):
    pool = [
        make_candidate("far", bucket="cafes", rating=4.9, reviews=300, locality="Durban"),
        make_candidate("near", bucket="bars", rating=4.1, reviews=6, locality="Woodstock, Cape Town"),
    ]
    body = serve(make_catalog(pool=pool)).get(
        "/featured", params={"limit": 2, "region": "Woodstock"},
    ).json()
    assert [card["id"] for card in body["data"]] == ["near", "far"]
    assert body["meta"]["seed"] == "2026-10:woodstock"


def test_next_month_changes_seed_but_keeps_bounds(serve, make_candidate, make_catalog, now):
    catalog = make_catalog(primary=_ranked_pool(make_candidate, 12, 4))
    this_month = serve(catalog).get("/featured", params={"limit": 4})
    next_month = serve(catalog, at=now + timedelta(days=20)).get("/featured", params={"limit": 4})
    assert this_month.json()["meta"]["seed"] != next_month.json()["meta"]["seed"]
    assert this_month.headers["ETag"] != next_month.headers["ETag"]
    data = next_month.json()["data"]
    assert len(data) == 4
    assert len({card["sub_interest_id"] for card in data}) == 4


def test_catalog_load_failure_is_generic_500(now):
    def broken():
        raise RuntimeError("credentials for db-primary.internal rejected")

    app.dependency_overrides[catalog_provider] = lambda: broken
    app.dependency_overrides[get_clock] = lambda: (lambda: now)
    try:
        resp = client.get("/featured")
    finally:
        app.dependency_overrides.clear()
    assert resp.status_code == 500
    assert resp.json() == {"error": "Internal server error"}


def test_unexpected_pipeline_error_is_500(serve, make_candidate, make_catalog):
    c = serve(make_catalog(primary=_ranked_pool(make_candidate, 3, 3)))
    with patch("discovery.ranking.service.compute_etag", side_effect=ValueError("bad")):
        resp = c.get("/featured")
    assert resp.status_code == 500
    assert resp.json() == {"error": "Internal server error"}


def test_tier_failures_never_surface(serve, make_candidate, make_catalog):
    catalog = make_catalog(
        newest=[make_candidate("n1")],
        failures={
            "fetch_primary_ranked": RuntimeError("rpc missing"),
            "fetch_raw_candidate_pool": TimeoutError("timed out"),
            "fetch_quality_fallback": RuntimeError("boom"),
            "fetch_images": RuntimeError("storage"),
        },
    )
    resp = serve(catalog).get("/featured", params={"limit": 3})
    assert resp.status_code == 200
    body = resp.json()
    assert [card["id"] for card in body["data"]] == ["n1"]
    assert body["meta"]["source"] == "newest"


def test_request_timeout_is_logged_once_as_warning(serve, make_catalog, caplog):
    c = serve(make_catalog())
    with patch("discovery.app.get_ranked", side_effect=SourceTimeout("fetch_images exceeded 1.5s")):
        with caplog.at_level(logging.WARNING, logger="discovery.app"):
            resp = c.get("/featured")
    assert resp.status_code == 500
    records = [r for r in caplog.records if r.name == "discovery.app"]
    assert [r.levelname for r in records] == ["WARNING"]
    assert "timed out" in records[0].getMessage()


def test_unexpected_error_is_logged_once_as_error(serve, make_catalog, caplog):
    c = serve(make_catalog())
    with patch("discovery.app.get_ranked", side_effect=KeyError("timeout")):
        with caplog.at_level(logging.WARNING, logger="discovery.app"):
            resp = c.get("/featured")
    assert resp.status_code == 500
    records = [r for r in caplog.records if r.name == "discovery.app"]
    assert [r.levelname for r in records] == ["ERROR"]
