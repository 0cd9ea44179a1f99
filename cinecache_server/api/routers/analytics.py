from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends

from cinecache import analytics
from cinecache.movie_store import MovieStore
from cinecache_server.api.deps import get_store

router = APIRouter(prefix="/api/movies/analytics")


def _ts() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.get("/genres")
def genres(store: MovieStore = Depends(get_store)) -> dict[str, Any]:
    data = analytics.genre_stats(store)
    return {"type": "genres", "data": data, "totalGenres": len(data), "generatedAt": _ts()}


@router.get("/ratings")
def ratings(store: MovieStore = Depends(get_store)) -> dict[str, Any]:
    return {"type": "ratings", "data": analytics.rating_stats(store), "generatedAt": _ts()}


@router.get("/runtime")
def runtime(store: MovieStore = Depends(get_store)) -> dict[str, Any]:
    data = analytics.runtime_by_year(store)
    return {"type": "runtime", "data": data, "totalYears": len(data), "generatedAt": _ts()}


@router.get("/dashboard")
def dashboard(store: MovieStore = Depends(get_store)) -> dict[str, Any]:
    return {**analytics.dashboard(store), "generatedAt": _ts()}
