from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Response

from cinecache.cache_fetch import MovieCacheService
from cinecache.movie_store import MovieStore
from cinecache.omdb_client import OmdbClient
from cinecache_server.api.deps import get_cache_service, get_client, get_store
from cinecache_server.api.services import metrics

router = APIRouter()


@router.get("/health")
def health() -> dict[str, Any]:
    return {"ok": True, "ts": datetime.now(timezone.utc).isoformat()}


@router.get("/ready")
def ready(store: MovieStore = Depends(get_store)) -> dict[str, Any]:
    """Readiness: MongoDB responde a ping."""
    if not store.ping():
        raise HTTPException(status_code=503, detail={"ready": False, "issues": {"mongodb": "ping failed"}})
    return {"ready": True, "ts": datetime.now(timezone.utc).isoformat()}


@router.get("/ready/provider")
def ready_provider(client: OmdbClient = Depends(get_client)) -> dict[str, Any]:
    """Diagnóstico OMDb: una búsqueda fija (no cuenta como readiness del proceso)."""
    return {**client.probe(), "ts": datetime.now(timezone.utc).isoformat()}


@router.get("/metrics")
def metrics_endpoint(
    service: MovieCacheService = Depends(get_cache_service),
) -> Response:
    body = metrics.render_prometheus(
        {
            "cache": service.metrics_snapshot(),
            "omdb": service.client.metrics_snapshot(),
        }
    )
    return Response(content=body, media_type="text/plain; version=0.0.4")
