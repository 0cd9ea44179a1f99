import pytest

import cinecache.analytics as an
from conftest import make_movie


@pytest.fixture()
def populated(store, clock):
    store.upsert_from_search(make_movie("tt0000001", "A", year=2000, rating=8.0, genres=("Drama", "Crime"), runtime_text="120 min"), "x")
    store.upsert_from_search(make_movie("tt0000002", "B", year=2000, rating=6.0, genres=("Drama",), runtime_text="100 min"), "x")
    store.upsert_from_search(make_movie("tt0000003", "C", year=2010, rating=7.0, genres=("Comedy",), runtime_text="90 min"), "x")
    store.upsert_from_search(make_movie("tt0000099", "Stale", year=1990, rating=1.0, genres=("Horror",)), "x")
    store.collection.update_one({"external_id": "tt0000099"}, {"$set": {"cache_expires_at": clock()}})
    return store


def test_genre_stats_only_counts_fresh_records(populated):
    stats = an.genre_stats(populated)

    assert [g["genre"] for g in stats][0] == "Drama"
    by_genre = {g["genre"]: g for g in stats}
    assert set(by_genre) == {"Drama", "Crime", "Comedy"}
    assert by_genre["Drama"]["count"] == 2
    assert by_genre["Drama"]["avgRating"] == pytest.approx(7.0)
    assert {m["title"] for m in by_genre["Drama"]["movies"]} == {"A", "B"}


def test_rating_stats(populated):
    assert an.rating_stats(populated) == {
        "avgRating": pytest.approx(7.0),
        "minRating": 6.0,
        "maxRating": 8.0,
        "totalMovies": 3,
    }


def test_rating_stats_empty_store_is_zeros(store):
    assert an.rating_stats(store) == {"avgRating": 0, "minRating": 0, "maxRating": 0, "totalMovies": 0}


def test_runtime_by_year_sorted_desc(populated):
    rows = an.runtime_by_year(populated)

    assert [r["year"] for r in rows] == [2010, 2000]
    assert rows[1]["avgRuntime"] == pytest.approx(110.0)
    assert rows[1]["movieCount"] == 2


def test_dashboard_summary(populated):
    data = an.dashboard(populated)

    assert data["summary"] == {
        "totalMovies": 3,
        "totalGenres": 3,
        "avgRating": pytest.approx(7.0),
        "totalYears": 2,
    }
    assert len(data["recentMovies"]) == 3
    assert all("_id" not in r for r in data["recentMovies"])
    assert data["ratingDistribution"]["totalMovies"] == 3
