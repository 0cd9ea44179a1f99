from __future__ import annotations

import pytest

pytest.importorskip("httpx")

from fastapi.testclient import TestClient

from cinecache.movie_store import StoreUnavailableError
from cinecache.omdb_client import ProviderFailure
from cinecache_server.api.app import create_app
from cinecache_server.api.settings import Settings
from conftest import make_movie

ADMIN_HEADERS = {"X-Subject-Id": "u-admin", "X-Subject-Role": "admin"}
USER_HEADERS = {"X-Subject-Id": "u-1", "X-Subject-Role": "user"}


def _settings() -> Settings:
    return Settings(log_level="INFO", cors_origins_raw="*", cors_allow_credentials=False, gzip_min_size=0)


@pytest.fixture()
def app(store, provider):
    application = create_app(settings=_settings(), store=store, client=provider, scheduler_enabled=False)
    application.state.cache_service._sleep = lambda s: None
    return application


@pytest.fixture()
def client(app) -> TestClient:
    return TestClient(app)


# ============================================================
# Health / ready / metrics
# ============================================================


def test_health_ready_and_metrics(client, store, monkeypatch):
    monkeypatch.setattr(store, "ping", lambda: True)

    res = client.get("/health")
    assert res.status_code == 200
    assert res.json()["ok"] is True

    ready = client.get("/ready")
    assert ready.status_code == 200
    assert ready.json()["ready"] is True

    metrics = client.get("/metrics")
    assert metrics.status_code == 200
    assert "text/plain" in metrics.headers.get("content-type", "")
    assert "http_requests_total" in metrics.text
    assert "cache_cache_hits_total" in metrics.text
    assert "omdb_detail_calls_total" in metrics.text


def test_ready_fails_when_store_unreachable(client, store, monkeypatch):
    monkeypatch.setattr(store, "ping", lambda: False)

    res = client.get("/ready")

    assert res.status_code == 503


def test_provider_probe(client):
    res = client.get("/ready/provider")
    assert res.status_code == 200
    assert res.json()["ok"] is True


# ============================================================
# Search / detail
# ============================================================


def test_search_miss_then_hit(client, provider):
    provider.add_search("batman", [make_movie("tt0000001", "Batman", rating=7.5), make_movie("tt0000002", "Batman Begins", rating=8.2)])

    first = client.get("/api/movies/search", params={"search": "batman"})
    second = client.get("/api/movies/search", params={"search": "batman"})

    assert first.status_code == 200
    assert first.json()["source"] == "api"
    assert first.json()["totalCount"] == 2
    assert second.json()["source"] == "cache"
    assert [m["external_id"] for m in second.json()["items"]] == ["tt0000002", "tt0000001"]
    assert all("_id" not in m for m in second.json()["items"])
    assert "X-Request-ID" in second.headers


def test_search_applies_repeated_filter_params(client, provider):
    provider.add_search(
        "batman",
        [make_movie("tt0000001", "Batman", rating=7.5, genres=("Action",)), make_movie("tt0000002", "Batman Begins", rating=8.2, genres=("Drama",))],
    )

    res = client.get("/api/movies/search", params=[("search", "batman"), ("filter", "rating:>=8"), ("filter", "genre:drama")])

    body = res.json()
    assert [m["external_id"] for m in body["items"]] == ["tt0000002"]
    assert body["appliedFilters"]["minRating"] == 8.0
    assert body["appliedFilters"]["genres"] == ["drama"]


def test_search_no_results_is_200_with_message(client):
    res = client.get("/api/movies/search", params={"search": "qwertyuiop"})

    assert res.status_code == 200
    assert res.json()["items"] == []
    assert res.json()["message"] == "Movie not found!"


def test_search_provider_unavailable_is_503(client, provider):
    provider.pages["batman"] = ProviderFailure("provider_unavailable", "Failed to reach OMDb")

    res = client.get("/api/movies/search", params={"search": "batman"})

    assert res.status_code == 503
    assert res.json()["detail"]["kind"] == "provider_unavailable"


def test_browse_without_term_paginates(client, store):
    for i in range(3):
        store.upsert_from_search(make_movie(f"tt{i:07d}", f"M{i}", rating=5.0 + i), "x")

    res = client.get("/api/movies/search", params={"limit": 2, "sort": "rating"})

    body = res.json()
    assert body["source"] == "cache"
    assert body["pagination"]["pages"] == 2
    assert [m["rating_value"] for m in body["items"]] == [7.0, 6.0]


def test_detail_endpoint(client, provider):
    provider.details["tt0111161"] = make_movie("tt0111161", "The Shawshank Redemption")

    first = client.get("/api/movies/tt0111161")
    second = client.get("/api/movies/tt0111161")

    assert first.status_code == 200
    assert first.json()["source"] == "api"
    assert second.json()["source"] == "cache"
    assert second.json()["item"]["total_search_count"] == 2


def test_detail_invalid_id_is_400(client):
    assert client.get("/api/movies/abc").status_code == 400


def test_detail_not_found_is_404(client):
    assert client.get("/api/movies/tt9999999").status_code == 404


def test_store_unavailable_is_503(client, app, monkeypatch):
    def down(*args, **kwargs):
        raise StoreUnavailableError("connection refused")

    monkeypatch.setattr(app.state.store, "touch_fresh", down)

    res = client.get("/api/movies/tt0111161")

    assert res.status_code == 503


def test_recent_and_cache_status(client, store):
    store.upsert_from_search(make_movie("tt0000001", "A"), "batman")

    recent = client.get("/api/movies/recent")
    status = client.get("/api/movies/cache-status/Batman")

    assert recent.status_code == 200
    assert recent.json()["totalRecent"] == 1
    assert recent.json()["popularSearchTerms"][0]["term"] == "batman"
    assert status.json() == {"term": "Batman", "cachedCount": 1, "needsFetch": False}


def test_analytics_endpoints(client, store):
    store.upsert_from_search(make_movie("tt0000001", "A", rating=8.0, genres=("Drama",)), "x")

    genres = client.get("/api/movies/analytics/genres").json()
    ratings = client.get("/api/movies/analytics/ratings").json()
    runtime = client.get("/api/movies/analytics/runtime").json()
    dashboard = client.get("/api/movies/analytics/dashboard").json()

    assert genres["totalGenres"] == 1
    assert ratings["data"]["totalMovies"] == 1
    assert runtime["totalYears"] == 1
    assert dashboard["summary"]["totalMovies"] == 1


def test_favorites_resolve_skips_failed_lookups(client, provider):
    provider.details["tt0000001"] = make_movie("tt0000001", "Kept")

    res = client.post("/api/favorites/resolve", json={"ids": ["tt0000001", "tt0000404", "tt0000001"]}, headers=USER_HEADERS)

    body = res.json()
    assert res.status_code == 200
    assert [m["external_id"] for m in body["favorites"]] == ["tt0000001"]
    assert body["count"] == 1
    assert body["totalFavorites"] == 2


def test_favorites_resolve_rejects_oversized_list(client):
    ids = [f"tt{i:07d}" for i in range(101)]

    res = client.post("/api/favorites/resolve", json={"ids": ids})

    assert res.status_code == 400


# ============================================================
# Admin
# ============================================================


@pytest.mark.parametrize(
    "method,path",
    [
        ("post", "/api/movies/cache/optimize"),
        ("delete", "/api/movies/cache/cleanup"),
        ("get", "/api/movies/cache/stats"),
        ("get", "/api/movies/cache/health"),
        ("post", "/api/movies/cache/preload"),
        ("delete", "/api/movies/tt0000001"),
    ],
)
def test_admin_routes_reject_non_admin(client, method, path):
    assert getattr(client, method)(path, headers=USER_HEADERS).status_code == 403
    assert getattr(client, method)(path).status_code == 403


def test_admin_refresh(client, provider):
    provider.add_search("batman", [make_movie("tt0000001", "Batman")])

    denied = client.post("/api/movies/cache/refresh", json={"search": "batman"}, headers=USER_HEADERS)
    missing = client.post("/api/movies/cache/refresh", json={"search": ""}, headers=ADMIN_HEADERS)
    ok = client.post("/api/movies/cache/refresh", json={"search": "batman"}, headers=ADMIN_HEADERS)

    assert denied.status_code == 403
    assert missing.status_code == 400
    assert ok.status_code == 200
    assert ok.json()["moviesCount"] == 1
    assert ok.json()["source"] == "api"


def test_admin_cleanup_optimize_stats_health(client, store, clock):
    store.upsert_from_search(make_movie("tt0000001"), "x")
    clock.advance(hours=25)
    store.upsert_from_search(make_movie("tt0000002"), "y")

    stats = client.get("/api/movies/cache/stats", headers=ADMIN_HEADERS).json()
    assert stats["cacheStats"]["expiredMovies"] == 1

    health = client.get("/api/movies/cache/health", headers=ADMIN_HEADERS).json()
    assert health["status"] == "warning"

    cleanup = client.delete("/api/movies/cache/cleanup", headers=ADMIN_HEADERS).json()
    assert cleanup == {"deletedCount": 1}

    optimize = client.post("/api/movies/cache/optimize", headers=ADMIN_HEADERS).json()
    assert optimize["expiredRemoved"] == 0
    assert optimize["staleUnusedRemoved"] == 0


def test_admin_delete_movie(client, store):
    store.upsert_from_search(make_movie("tt0000001"), "x")

    res = client.delete("/api/movies/tt0000001", headers=ADMIN_HEADERS)
    again = client.delete("/api/movies/tt0000001", headers=ADMIN_HEADERS)

    assert res.status_code == 200
    assert res.json()["deleted"] is True
    assert again.status_code == 404
    assert store.count() == 0


def test_admin_preload_runs_in_background(client, app, monkeypatch):
    called = []
    monkeypatch.setattr(app.state.lifecycle, "preload_popular", lambda: called.append(True))

    res = client.post("/api/movies/cache/preload", headers=ADMIN_HEADERS)

    assert res.status_code == 202
    assert called == [True]


def test_lifespan_starts_and_stops_scheduler(store, provider):
    application = create_app(settings=_settings(), store=store, client=provider, scheduler_enabled=True)
    lifecycle = application.state.lifecycle

    with TestClient(application) as client:
        assert client.get("/health").status_code == 200
        assert lifecycle.state == "RUNNING"

    assert lifecycle.state == "STOPPED"
