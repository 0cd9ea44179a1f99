from __future__ import annotations

"""Rutas admin de caché (/api/movies/cache/*). Sin rol admin => 403."""

from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, BackgroundTasks, Body, Depends, HTTPException

from cinecache.cache_fetch import MovieCacheService
from cinecache.cache_lifecycle import CacheLifecycleManager
from cinecache.identity import CallerIdentity, require_admin
from cinecache.movie_record import public_view
from cinecache_server.api.deps import get_cache_service, get_identity, get_lifecycle

router = APIRouter(prefix="/api/movies/cache")


@router.post("/refresh")
def refresh(
    search: str = Body("", embed=True),
    service: MovieCacheService = Depends(get_cache_service),
    identity: CallerIdentity | None = Depends(get_identity),
) -> dict[str, Any]:
    require_admin(identity, operation="cache refresh")
    if not search.strip():
        raise HTTPException(status_code=400, detail="Search term is required")

    outcome = service.refresh_search(search, identity)
    if outcome.failure is not None and outcome.failure.kind == "provider_unavailable":
        raise HTTPException(status_code=503, detail={"kind": outcome.failure.kind, "message": outcome.failure.message})
    return {
        "searchTerm": search,
        "moviesCount": outcome.total_count,
        "source": outcome.source,
        "message": outcome.failure.message if outcome.failure else None,
        "items": [public_view(r) for r in outcome.items],
    }


@router.delete("/cleanup")
def cleanup(
    lifecycle: CacheLifecycleManager = Depends(get_lifecycle),
    identity: CallerIdentity | None = Depends(get_identity),
) -> dict[str, Any]:
    require_admin(identity, operation="cache cleanup")
    return {"deletedCount": lifecycle.sweep_expired()}


@router.post("/optimize")
def optimize(
    lifecycle: CacheLifecycleManager = Depends(get_lifecycle),
    identity: CallerIdentity | None = Depends(get_identity),
) -> dict[str, Any]:
    require_admin(identity, operation="cache optimization")
    return lifecycle.optimize()


@router.get("/stats")
def stats(
    lifecycle: CacheLifecycleManager = Depends(get_lifecycle),
    identity: CallerIdentity | None = Depends(get_identity),
) -> dict[str, Any]:
    require_admin(identity, operation="cache statistics")
    return {"cacheStats": lifecycle.compute_statistics().as_dict(), "generatedAt": datetime.now(timezone.utc).isoformat()}


@router.get("/health")
def health_report(
    lifecycle: CacheLifecycleManager = Depends(get_lifecycle),
    identity: CallerIdentity | None = Depends(get_identity),
) -> dict[str, Any]:
    require_admin(identity, operation="cache health report")
    return lifecycle.health_report()


@router.post("/preload", status_code=202)
def preload(
    background: BackgroundTasks,
    lifecycle: CacheLifecycleManager = Depends(get_lifecycle),
    identity: CallerIdentity | None = Depends(get_identity),
) -> dict[str, Any]:
    require_admin(identity, operation="cache preload")
    background.add_task(lifecycle.preload_popular)
    return {"scheduled": True}
