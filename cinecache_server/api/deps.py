from __future__ import annotations

from fastapi import Header, Request

from cinecache.cache_fetch import MovieCacheService
from cinecache.cache_lifecycle import CacheLifecycleManager
from cinecache.identity import CallerIdentity
from cinecache.movie_store import MovieStore
from cinecache.omdb_client import OmdbClient
from cinecache_server.api.settings import Settings

_SETTINGS = Settings.from_env()


def get_settings() -> Settings:
    return _SETTINGS


# Los servicios viven en app.state (los cablea create_app / lifespan), no en globals.


def get_store(request: Request) -> MovieStore:
    return request.app.state.store


def get_client(request: Request) -> OmdbClient:
    return request.app.state.omdb_client


def get_cache_service(request: Request) -> MovieCacheService:
    return request.app.state.cache_service


def get_lifecycle(request: Request) -> CacheLifecycleManager:
    return request.app.state.lifecycle


def get_identity(
    x_subject_id: str | None = Header(None),
    x_subject_role: str | None = Header(None),
) -> CallerIdentity | None:
    """
    Identidad opaca emitida por la capa de auth upstream (gateway / proxy).
    Sin X-Subject-Id => anónimo.
    """
    subject = (x_subject_id or "").strip()
    if not subject:
        return None
    role = (x_subject_role or "").strip() or "user"
    return CallerIdentity(subject_id=subject, role=role)
