from __future__ import annotations

"""
cinecache/analytics.py

Agregaciones de analítica sobre la caché fresca (los expirados no cuentan).

- genre_stats:     unwind de géneros -> {genre, count, avgRating, movies[]}
- rating_stats:    {avgRating, minRating, maxRating, totalMovies} (ceros si no hay datos)
- runtime_by_year: {year, avgRuntime, movieCount, movies[]} por año desc
- dashboard:       resumen + top 10 géneros + ratings + top 10 años + 5 más recientes
"""

from typing import Any, Final

from pymongo import DESCENDING

from cinecache.movie_record import fresh_clause, public_view
from cinecache.movie_store import MovieStore

DASHBOARD_TOP_GENRES: Final[int] = 10
DASHBOARD_TOP_YEARS: Final[int] = 10
DASHBOARD_RECENT: Final[int] = 5

_EMPTY_RATING_STATS: Final[dict[str, Any]] = {
    "avgRating": 0,
    "minRating": 0,
    "maxRating": 0,
    "totalMovies": 0,
}


def _round_or_none(value: Any, ndigits: int = 2) -> float | None:
    if value is None:
        return None
    return round(float(value), ndigits)


def genre_stats(store: MovieStore) -> list[dict[str, Any]]:
    rows = store.aggregate(
        [
            {"$match": fresh_clause(store.now())},
            {"$unwind": "$genres"},
            {
                "$group": {
                    "_id": "$genres",
                    "count": {"$sum": 1},
                    "avgRating": {"$avg": "$rating_value"},
                    "movies": {"$push": {"title": "$title", "year": "$year", "rating": "$rating_value"}},
                }
            },
            {"$sort": {"count": DESCENDING}},
        ]
    )
    return [
        {
            "genre": row["_id"],
            "count": row["count"],
            "avgRating": _round_or_none(row.get("avgRating")),
            "movies": row.get("movies", []),
        }
        for row in rows
    ]


def rating_stats(store: MovieStore) -> dict[str, Any]:
    rows = store.aggregate(
        [
            {"$match": {**fresh_clause(store.now()), "rating_value": {"$ne": None}}},
            {
                "$group": {
                    "_id": None,
                    "avgRating": {"$avg": "$rating_value"},
                    "minRating": {"$min": "$rating_value"},
                    "maxRating": {"$max": "$rating_value"},
                    "totalMovies": {"$sum": 1},
                }
            },
        ]
    )
    if not rows:
        return dict(_EMPTY_RATING_STATS)
    row = rows[0]
    return {
        "avgRating": _round_or_none(row.get("avgRating")) or 0,
        "minRating": row.get("minRating") or 0,
        "maxRating": row.get("maxRating") or 0,
        "totalMovies": row.get("totalMovies", 0),
    }


def runtime_by_year(store: MovieStore) -> list[dict[str, Any]]:
    rows = store.aggregate(
        [
            {"$match": {**fresh_clause(store.now()), "runtime_minutes": {"$gt": 0}}},
            {
                "$group": {
                    "_id": "$year",
                    "avgRuntime": {"$avg": "$runtime_minutes"},
                    "movieCount": {"$sum": 1},
                    "movies": {"$push": {"title": "$title", "runtime": "$runtime_minutes"}},
                }
            },
            {"$sort": {"_id": DESCENDING}},
        ]
    )
    return [
        {
            "year": row["_id"],
            "avgRuntime": _round_or_none(row.get("avgRuntime"), 1),
            "movieCount": row["movieCount"],
            "movies": row.get("movies", []),
        }
        for row in rows
    ]


def dashboard(store: MovieStore) -> dict[str, Any]:
    genres = genre_stats(store)
    ratings = rating_stats(store)
    runtimes = runtime_by_year(store)
    recent = store.find_fresh(
        sort=[("last_fetched_at", DESCENDING)],
        limit=DASHBOARD_RECENT,
        projection={"_id": 0, "external_id": 1, "title": 1, "year": 1, "rating_value": 1, "poster_url": 1, "last_fetched_at": 1},
    )
    return {
        "summary": {
            "totalMovies": store.count_fresh(),
            "totalGenres": len(genres),
            "avgRating": ratings["avgRating"],
            "totalYears": len(runtimes),
        },
        "topGenres": genres[:DASHBOARD_TOP_GENRES],
        "ratingDistribution": ratings,
        "runtimeByYear": runtimes[:DASHBOARD_TOP_YEARS],
        "recentMovies": [public_view(r) for r in recent],
    }
