from __future__ import annotations

"""
Rutas públicas de películas (/api/movies).

Mapeo de resultados etiquetados:
- no_results           -> 200 con items=[] y message
- provider_unavailable -> 503
- not_found (detalle)  -> 404
El id mal formado (400) y StoreUnavailableError (503) los resuelven los handlers de la app.
"""

from typing import Any, NoReturn

from fastapi import APIRouter, Depends, HTTPException, Query

from cinecache.cache_fetch import MovieCacheService
from cinecache.identity import CallerIdentity
from cinecache.movie_record import public_view
from cinecache.omdb_client import ProviderFailure
from cinecache_server.api.deps import get_cache_service, get_identity
from cinecache_server.api.services import metrics

router = APIRouter(prefix="/api/movies")


def _raise_for_failure(failure: ProviderFailure) -> NoReturn:
    metrics.inc("provider_failures_total", 1)
    status = 404 if failure.kind == "not_found" else 503
    raise HTTPException(status_code=status, detail={"kind": failure.kind, "message": failure.message})


@router.get("/search")
def search_movies(
    search: str = Query("", description="Término de búsqueda (vacío = navegar la caché)"),
    sort: str = Query("rating", description="rating | year | title | popularity"),
    filters: list[str] = Query([], alias="filter", description="genre:<name> | year:<int> | rating:>=<float>"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1),
    force_refresh: bool = Query(False, alias="forceRefresh"),
    service: MovieCacheService = Depends(get_cache_service),
    identity: CallerIdentity | None = Depends(get_identity),
) -> dict[str, Any]:
    metrics.inc("search_requests_total", 1)
    result = service.search(
        search,
        sort=sort,
        filters=filters,
        page=page,
        limit=limit,
        force_refresh=force_refresh,
        identity=identity,
    )

    if result.failure is not None:
        if result.failure.kind != "no_results":
            _raise_for_failure(result.failure)
        return {
            "items": [],
            "totalCount": 0,
            "source": None,
            "searchTerm": search,
            "appliedFilters": result.applied_filters,
            "message": result.failure.message,
        }

    payload: dict[str, Any] = {
        "items": [public_view(r) for r in result.items],
        "totalCount": result.total_count,
        "source": result.source,
        "searchTerm": search,
        "appliedFilters": result.applied_filters,
    }
    if result.pagination is not None:
        payload["pagination"] = result.pagination
    return payload


@router.get("/recent")
def recent_movies(
    limit: int = Query(12, ge=1, le=50),
    service: MovieCacheService = Depends(get_cache_service),
) -> dict[str, Any]:
    data = service.recent(limit)
    data["recentMovies"] = [public_view(r) for r in data["recentMovies"]]
    return data


@router.get("/cache-status/{term}")
def cache_status(term: str, service: MovieCacheService = Depends(get_cache_service)) -> dict[str, Any]:
    return service.cache_status(term)


@router.get("/{external_id}")
def movie_detail(
    external_id: str,
    service: MovieCacheService = Depends(get_cache_service),
    identity: CallerIdentity | None = Depends(get_identity),
) -> dict[str, Any]:
    metrics.inc("detail_requests_total", 1)
    outcome = service.get_by_id(external_id, identity)
    if outcome.failure is not None or outcome.item is None:
        _raise_for_failure(outcome.failure or ProviderFailure("not_found", "Movie not found"))
    return {"item": public_view(outcome.item), "source": outcome.source}


@router.delete("/{external_id}")
def delete_movie(
    external_id: str,
    service: MovieCacheService = Depends(get_cache_service),
    identity: CallerIdentity | None = Depends(get_identity),
) -> dict[str, Any]:
    deleted = service.delete_cached(external_id, identity)
    if deleted is None:
        raise HTTPException(status_code=404, detail="Movie not found in cache")
    return {"deleted": True, "item": public_view(deleted)}
