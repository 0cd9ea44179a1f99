from __future__ import annotations

"""
Vista de detalle de favoritos (/api/favorites).

La lista la guarda el servicio de usuarios (fuera de este repo) y la envía aquí;
solo se resuelve contra la caché/OMDb. Ids cuyo lookup falla se omiten.
"""

from typing import Any

from fastapi import APIRouter, Body, Depends

from cinecache.cache_fetch import MovieCacheService
from cinecache.favorites import FavoriteList
from cinecache.identity import CallerIdentity
from cinecache.movie_record import public_view
from cinecache_server.api.deps import get_cache_service, get_identity

router = APIRouter(prefix="/api/favorites")


@router.post("/resolve")
def resolve_favorites(
    ids: list[str] = Body(..., embed=True),
    service: MovieCacheService = Depends(get_cache_service),
    identity: CallerIdentity | None = Depends(get_identity),
) -> dict[str, Any]:
    favorites = FavoriteList(identity.subject_id if identity else "anonymous", ids)
    resolved = service.resolve_favorites(favorites)
    return {
        "favorites": [public_view(r) for r in resolved],
        "count": len(resolved),
        "totalFavorites": len(favorites),
    }
