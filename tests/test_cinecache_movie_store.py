from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import pytest
from pymongo.errors import ServerSelectionTimeoutError

import cinecache.movie_store as ms
from conftest import make_movie


def test_upsert_from_search_inserts_new_record(store, clock):
    record = store.upsert_from_search(make_movie("tt0000001", "Batman"), "batman")

    assert record["external_id"] == "tt0000001"
    assert record["search_terms"] == ["batman"]
    assert record["total_search_count"] == 1
    assert record["last_fetched_at"] == clock()
    assert record["cache_expires_at"] - record["last_fetched_at"] == timedelta(hours=24)


def test_upsert_from_search_on_fresh_record_unions_terms(store, clock):
    store.upsert_from_search(make_movie("tt0000001", "Batman"), "batman")
    clock.advance(hours=1)

    record = store.upsert_from_search(make_movie("tt0000001", "Batman Returns"), "dark knight")

    assert sorted(record["search_terms"]) == ["batman", "dark knight"]
    assert record["total_search_count"] == 2
    # La ficha de un registro fresco no se reescribe en el search path.
    assert record["title"] == "Batman"
    assert record["cache_expires_at"] == clock() + timedelta(hours=24)
    assert store.count() == 1


def test_upsert_from_search_on_stale_record_refreshes_but_keeps_terms(store, clock):
    first = store.upsert_from_search(make_movie("tt0000001", "Old title"), "batman")
    store.upsert_from_search(make_movie("tt0000001", "Old title"), "bat")
    clock.advance(hours=25)

    record = store.upsert_from_search(make_movie("tt0000001", "New title"), "robin")

    assert record["title"] == "New title"
    assert sorted(record["search_terms"]) == ["bat", "batman", "robin"]
    assert record["created_at"] == first["created_at"]
    assert record["cache_expires_at"] == clock() + timedelta(hours=24)
    assert record["total_search_count"] == 1
    assert store.count() == 1


def test_ttl_is_fixed_width_across_refreshes(store, clock):
    for hours in (0, 3, 7, 30, 31):
        clock.advance(hours=hours)
        record = store.upsert_from_search(make_movie("tt0000001"), "term")
        assert record["cache_expires_at"] - record["last_fetched_at"] == timedelta(hours=24)

        detail = store.upsert_from_detail(make_movie("tt0000001"))
        assert detail["cache_expires_at"] - detail["last_fetched_at"] == timedelta(hours=24)


def test_upsert_from_detail_insert_and_overwrite(store, clock):
    inserted = store.upsert_from_detail(make_movie("tt0000002", "First", runtime_text=None))
    assert inserted["total_search_count"] == 1
    assert inserted["search_terms"] == []
    assert inserted["created_at"] == clock()

    store.upsert_from_search(make_movie("tt0000003"), "x")
    clock.advance(hours=30)
    overwritten = store.upsert_from_detail(make_movie("tt0000002", "Second", runtime_text="99 min"))

    assert overwritten["title"] == "Second"
    assert overwritten["runtime_minutes"] == 99
    assert overwritten["total_search_count"] == 2
    assert overwritten["created_at"] == inserted["created_at"]


def test_concurrent_upserts_never_duplicate(store):
    movie = make_movie("tt0000009", "Race")

    with ThreadPoolExecutor(max_workers=5) as executor:
        results = list(executor.map(lambda i: store.upsert_from_search(dict(movie), f"term{i}"), range(5)))

    assert all(r["external_id"] == "tt0000009" for r in results)
    assert store.count({"external_id": "tt0000009"}) == 1


def test_repeated_detail_upserts_never_duplicate(store):
    for _ in range(3):
        store.upsert_from_detail(make_movie("tt0000010"))
    assert store.count() == 1


def test_fresh_reads_hide_stale_records_but_iter_all_sees_them(store, clock):
    store.upsert_from_search(make_movie("tt0000001"), "batman")
    clock.advance(hours=24)

    assert store.find_fresh({"search_terms": "batman"}) == []
    assert store.count_fresh() == 0
    assert store.find_fresh_one("tt0000001") is None
    assert store.touch_fresh("tt0000001") is None
    assert [r["external_id"] for r in store.iter_all()] == ["tt0000001"]
    assert store.find_any("tt0000001") is not None


def test_touch_fresh_bumps_counters_and_expiry(store, clock):
    store.upsert_from_detail(make_movie("tt0000001"))
    clock.advance(hours=2)

    touched = store.touch_fresh("tt0000001")

    assert touched is not None
    assert touched["total_search_count"] == 2
    assert touched["last_searched_at"] == clock()
    assert touched["cache_expires_at"] == clock() + timedelta(hours=24)


def test_delete_expired_is_idempotent(store, clock):
    store.upsert_from_search(make_movie("tt0000001"), "a")
    clock.advance(hours=12)
    store.upsert_from_search(make_movie("tt0000002"), "b")
    clock.advance(hours=13)

    assert store.delete_expired() == 1
    assert store.delete_expired() == 0
    assert [r["external_id"] for r in store.iter_all()] == ["tt0000002"]


def test_delete_cold_respects_age_and_search_count(store, clock):
    store.upsert_from_search(make_movie("tt0000001"), "once")
    store.upsert_from_search(make_movie("tt0000002"), "twice")
    store.upsert_from_search(make_movie("tt0000002"), "twice again")
    clock.advance(days=31)
    store.upsert_from_search(make_movie("tt0000003"), "recent")

    deleted = store.delete_cold(older_than=timedelta(days=30), max_searches=1)

    assert deleted == 1
    assert sorted(r["external_id"] for r in store.iter_all()) == ["tt0000002", "tt0000003"]


def test_recent_requires_poster_and_sorts_newest_first(store, clock):
    store.upsert_from_search(make_movie("tt0000001"), "a")
    clock.advance(minutes=1)
    store.upsert_from_search(make_movie("tt0000002", poster_url=None), "a")
    clock.advance(minutes=1)
    store.upsert_from_search(make_movie("tt0000003"), "a")

    assert [r["external_id"] for r in store.recent(10)] == ["tt0000003", "tt0000001"]


def test_top_searched_projection(store):
    store.upsert_from_detail(make_movie("tt0000001", "One"))
    for _ in range(3):
        store.upsert_from_detail(make_movie("tt0000002", "Two"))

    top = store.top_searched(10)

    assert top[0] == {
        "external_id": "tt0000002",
        "title": "Two",
        "total_search_count": 3,
        "last_searched_at": top[0]["last_searched_at"],
    }
    assert "_id" not in top[0]


def test_ensure_indexes_creates_unique_external_id(store, collection):
    info = collection.index_information()
    unique = [v for v in info.values() if v.get("key") == [("external_id", 1)]]
    assert unique and unique[0].get("unique") is True


def test_connect_store_fails_fast_when_unreachable(monkeypatch):
    class DownAdmin:
        def command(self, name):
            raise ServerSelectionTimeoutError("no servers")

    class DownClient:
        closed = False

        def __init__(self, uri, serverSelectionTimeoutMS=None):
            self.admin = DownAdmin()

        def close(self):
            DownClient.closed = True

    monkeypatch.setattr(ms, "MongoClient", DownClient)

    with pytest.raises(ms.StoreUnavailableError):
        ms.connect_store("mongodb://nowhere:1", server_selection_timeout_ms=100)
    assert DownClient.closed is True
