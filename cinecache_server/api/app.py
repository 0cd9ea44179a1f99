from __future__ import annotations

"""
cinecache_server/api/app.py

Construcción de la app FastAPI.

- store / cliente OMDb / orquestador / lifecycle se cablean explícitamente en
  `app.state` (sin singletons de módulo).
- Si no se inyecta un store, el lifespan conecta a MongoDB al arrancar y falla
  rápido si no es alcanzable (sin modo degradado).
- El scheduler del lifecycle arranca y para con el lifespan de la app
  (solo si CACHE_SCHEDULER_ENABLED).
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware

from cinecache import logger as core_logger
from cinecache.cache_fetch import InvalidExternalIdError, MovieCacheService
from cinecache.cache_lifecycle import CacheLifecycleManager
from cinecache.config import CACHE_SCHEDULER_ENABLED
from cinecache.favorites import FavoritesFullError
from cinecache.identity import AdminRequiredError
from cinecache.movie_store import MovieStore, StoreUnavailableError, connect_store
from cinecache.omdb_client import OmdbClient
from cinecache_server.api.deps import get_settings
from cinecache_server.api.middleware import (
    build_exception_handler,
    build_request_id_middleware,
    build_status_handler,
)
from cinecache_server.api.routers.analytics import router as analytics_router
from cinecache_server.api.routers.cache_admin import router as cache_admin_router
from cinecache_server.api.routers.favorites import router as favorites_router
from cinecache_server.api.routers.health import router as health_router
from cinecache_server.api.routers.movies import router as movies_router
from cinecache_server.api.settings import Settings


def wire_services(app: FastAPI, store: MovieStore, client: OmdbClient | None = None) -> None:
    omdb_client = client if client is not None else OmdbClient()
    service = MovieCacheService(store, omdb_client)

    app.state.store = store
    app.state.omdb_client = omdb_client
    app.state.cache_service = service
    app.state.lifecycle = CacheLifecycleManager(store, service)


def create_app(
    *,
    settings: Settings | None = None,
    store: MovieStore | None = None,
    client: OmdbClient | None = None,
    scheduler_enabled: bool = CACHE_SCHEDULER_ENABLED,
) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if getattr(app.state, "store", None) is None:
            wire_services(app, connect_store(), client)

        lifecycle: CacheLifecycleManager = app.state.lifecycle
        if scheduler_enabled:
            lifecycle.start()
        else:
            core_logger.info("[LIFECYCLE] scheduler disabled in this process (CACHE_SCHEDULER_ENABLED=false)")
        try:
            yield
        finally:
            lifecycle.stop()

    app = FastAPI(title="CineCache API", version="1.0.0", lifespan=lifespan)
    if store is not None:
        wire_services(app, store, client)

    app.add_middleware(GZipMiddleware, minimum_size=max(0, settings.gzip_min_size))

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins(),
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.middleware("http")(build_request_id_middleware(settings))
    app.add_exception_handler(
        StoreUnavailableError, build_status_handler(settings, 503, metric="store_unavailable_total")
    )
    app.add_exception_handler(AdminRequiredError, build_status_handler(settings, 403, metric="admin_denied_total"))
    app.add_exception_handler(InvalidExternalIdError, build_status_handler(settings, 400))
    app.add_exception_handler(FavoritesFullError, build_status_handler(settings, 400))
    app.add_exception_handler(Exception, build_exception_handler(settings))

    app.include_router(health_router)
    app.include_router(analytics_router)
    app.include_router(cache_admin_router)
    app.include_router(favorites_router)
    app.include_router(movies_router)

    return app


app = create_app()
