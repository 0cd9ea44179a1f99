from __future__ import annotations

"""
cinecache/cache_fetch.py

Cache-Fetch Orchestrator: decide cache-hit vs miss, hace el fetch batched contra
OMDb aplicando filtros DURANTE el fetch, persiste con TTL y devuelve resultados.

Máquina de estados (por request)
--------------------------------
  CHECK_CACHE -> HIT: RETURN
              -> MISS: FETCH_PAGE -> FETCH_DETAILS_BATCHED -> FILTER_AND_UPSERT -> RETURN

🧠 Decisiones
-------------
1) Cache-hit:
   - search_terms contiene lower(term) + frescura + filtros (year/min_rating/genres).
   - Ordenado por (rating desc, year desc).
   - Es el ÚNICO path que aplica min_rating/genres sobre datos ya cacheados.

2) Miss (o force_refresh):
   - search_by_title; fallo o 0 items => resultado fallido etiquetado, sin fallback.
   - Candidatos en batches de 5 (ThreadPoolExecutor de 5 por batch).
   - Dentro del batch, el fetch i-ésimo arranca tras i * 200ms (rate limit OMDb).
   - El batch N+1 no arranca hasta que el batch N se ha resuelto entero.

3) Candidato:
   - fetch_detail falla => se descarta (sin retry, sin error al caller).
   - no pasa genre/min_rating => se descarta y NO se persiste.
   - pasa => upsert (union de término si fresco, overwrite si stale/nuevo).

4) Orden del miss-path = orden de finalización de los fetch (NO se reordena).
   Quien necesite determinismo debe ordenar explícitamente (como hace el cache-hit).

Errores
-------
- ProviderFailure(no_results | provider_unavailable): página fallida, se propaga etiquetado.
- Candidato descartado: solo métrica `detail_dropped` + debug.
- StoreUnavailableError: se propaga (fatal para la request).
"""

import math
import re
import threading
import time
from collections.abc import Callable, Iterable, Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Any, Final, Literal

from pymongo import ASCENDING, DESCENDING

from cinecache import logger as logger
from cinecache.config_omdb import DETAIL_FETCH_BATCH_SIZE, DETAIL_FETCH_STAGGER_SECONDS
from cinecache.favorites import FavoriteList
from cinecache.identity import CallerIdentity, require_admin
from cinecache.movie_record import MovieRecord, NormalizedMovie, normalize_term
from cinecache.movie_store import MovieStore
from cinecache.omdb_client import OmdbClient, ProviderFailure, SearchCandidate

Source = Literal["cache", "api"]

BROWSE_LIMIT_MAX: Final[int] = 50
POPULAR_TERMS_LIMIT: Final[int] = 5

SORT_OPTIONS: Final[dict[str, list[tuple[str, int]]]] = {
    "rating": [("rating_value", DESCENDING), ("year", DESCENDING)],
    "year": [("year", DESCENDING), ("rating_value", DESCENDING)],
    "title": [("title", ASCENDING)],
    "popularity": [("total_search_count", DESCENDING), ("rating_value", DESCENDING)],
}
_CACHE_HIT_SORT: Final[list[tuple[str, int]]] = SORT_OPTIONS["rating"]

# Ids IMDb: "tt" + dígitos (mínimo 9 chars en total)
_EXTERNAL_ID_MIN_LEN: Final[int] = 9


# ============================================================
# Tipos de resultado
# ============================================================


@dataclass(frozen=True)
class SearchFilters:
    year: int | None = None
    min_rating: float | None = None
    genres: tuple[str, ...] = ()

    def as_dict(self) -> dict[str, Any]:
        return {"year": self.year, "minRating": self.min_rating, "genres": list(self.genres)}


@dataclass
class SearchOutcome:
    """Resultado etiquetado de search_and_cache (sin datos parciales si falla)."""

    ok: bool
    items: list[MovieRecord] = field(default_factory=list)
    source: Source | None = None
    failure: ProviderFailure | None = None

    @property
    def total_count(self) -> int:
        return len(self.items)


@dataclass
class DetailOutcome:
    ok: bool
    item: MovieRecord | None = None
    source: Source | None = None
    failure: ProviderFailure | None = None


@dataclass
class SearchResponse:
    """Contrato inbound de `search()` para la capa de presentación."""

    ok: bool
    items: list[MovieRecord]
    total_count: int
    source: Source | None
    applied_filters: dict[str, Any]
    pagination: dict[str, Any] | None = None
    failure: ProviderFailure | None = None


class InvalidExternalIdError(ValueError):
    """Id externo mal formado (no parece un imdbID)."""


# ============================================================
# Helpers puros
# ============================================================


def is_valid_external_id(external_id: str) -> bool:
    value = (external_id or "").strip()
    return value.startswith("tt") and len(value) >= _EXTERNAL_ID_MIN_LEN


def parse_filters(raw_filters: Iterable[str] | None) -> SearchFilters:
    """
    "genre:Action" (repetible), "year:1999", "rating:>=7.5".
    Entradas no parseables se ignoran.
    """
    year: int | None = None
    min_rating: float | None = None
    genres: list[str] = []

    for raw in raw_filters or ():
        parts = str(raw).split(":")
        if len(parts) != 2:
            continue
        name, value = parts[0].strip().lower(), parts[1].strip()
        if not value:
            continue
        if name == "genre":
            genres.append(value)
        elif name == "year":
            try:
                year = int(value)
            except ValueError:
                continue
        elif name == "rating" and value.startswith(">="):
            try:
                min_rating = float(value[2:])
            except ValueError:
                continue

    return SearchFilters(year=year, min_rating=min_rating, genres=tuple(genres))


def _genre_clause(genres: Sequence[str]) -> dict[str, Any]:
    return {"$or": [{"genres": {"$regex": re.escape(g), "$options": "i"}} for g in genres]}


def build_filter_query(filters: SearchFilters) -> dict[str, Any]:
    query: dict[str, Any] = {}
    if filters.year is not None:
        query["year"] = int(filters.year)
    if filters.min_rating is not None:
        query["rating_value"] = {"$gte": float(filters.min_rating)}
    if filters.genres:
        query.update(_genre_clause(filters.genres))
    return query


def build_cache_query(term: str, filters: SearchFilters) -> dict[str, Any]:
    """Query del cache-hit (la frescura la añade el store)."""
    return {"search_terms": normalize_term(term), **build_filter_query(filters)}


def passes_filters(movie: Mapping[str, Any], filters: SearchFilters) -> bool:
    """
    Filtro aplicado durante el fetch:
    - genres: substring case-insensitive contra cualquier género pedido.
    - min_rating: numérico >=. Sin rating no hay forma de cumplirlo => descarta.
    """
    if filters.genres:
        movie_genres = [str(g).lower() for g in (movie.get("genres") or [])]
        wanted = [g.lower() for g in filters.genres]
        if not any(w in g for g in movie_genres for w in wanted):
            return False

    if filters.min_rating is not None:
        rating = movie.get("rating_value")
        if rating is None or float(rating) < float(filters.min_rating):
            return False

    return True


# ============================================================
# Orquestador
# ============================================================


class MovieCacheService:
    """
    Servicio explícito (sin singleton de módulo): se construye con su store y su
    cliente y se inyecta donde haga falta.
    """

    def __init__(
        self,
        store: MovieStore,
        client: OmdbClient,
        *,
        batch_size: int = DETAIL_FETCH_BATCH_SIZE,
        stagger_seconds: float = DETAIL_FETCH_STAGGER_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._store = store
        self._client = client
        self._batch_size = max(1, int(batch_size))
        self._stagger_seconds = max(0.0, float(stagger_seconds))
        self._sleep = sleep

        self._metrics_lock = threading.Lock()
        self._metrics: dict[str, int] = {
            "cache_hits": 0,
            "cache_misses": 0,
            "detail_dropped": 0,
            "filtered_out": 0,
            "upserts": 0,
        }

    @property
    def store(self) -> MovieStore:
        return self._store

    @property
    def client(self) -> OmdbClient:
        return self._client

    def _m_inc(self, key: str, delta: int = 1) -> None:
        with self._metrics_lock:
            self._metrics[key] = int(self._metrics.get(key, 0)) + int(delta)

    def metrics_snapshot(self) -> dict[str, int]:
        with self._metrics_lock:
            return dict(self._metrics)

    # ------------------------------------------------------------
    # searchAndCache
    # ------------------------------------------------------------

    def search_and_cache(
        self,
        term: str,
        *,
        force_refresh: bool = False,
        year: int | None = None,
        min_rating: float | None = None,
        genres: Sequence[str] = (),
        page: int = 1,
    ) -> SearchOutcome:
        filters = SearchFilters(year=year, min_rating=min_rating, genres=tuple(genres))
        norm_term = normalize_term(term)

        if not force_refresh:
            cached = self._store.find_fresh(build_cache_query(norm_term, filters), sort=_CACHE_HIT_SORT)
            if cached:
                self._m_inc("cache_hits")
                logger.debug_ctx("CACHE", f"hit term={norm_term!r} items={len(cached)}")
                return SearchOutcome(ok=True, items=cached, source="cache")

        self._m_inc("cache_misses")
        logger.debug_ctx("CACHE", f"miss term={norm_term!r} force_refresh={force_refresh}")

        page_result = self._client.search_by_title(term.strip(), page, year)
        if isinstance(page_result, ProviderFailure):
            return SearchOutcome(ok=False, failure=page_result)
        if not page_result.items:
            failure = ProviderFailure("no_results", page_result.message or "No movies found")
            return SearchOutcome(ok=False, failure=failure)

        items = self._fetch_batched(page_result.items, norm_term, filters)
        logger.debug_ctx(
            "CACHE",
            f"api term={norm_term!r} candidates={len(page_result.items)} kept={len(items)}",
        )
        return SearchOutcome(ok=True, items=items, source="api")

    def _fetch_batched(
        self,
        candidates: Sequence[SearchCandidate],
        term: str,
        filters: SearchFilters,
    ) -> list[MovieRecord]:
        out: list[MovieRecord] = []
        for start in range(0, len(candidates), self._batch_size):
            batch = candidates[start : start + self._batch_size]
            with ThreadPoolExecutor(max_workers=len(batch)) as executor:
                futures = [
                    executor.submit(self._process_candidate, candidate, position, term, filters)
                    for position, candidate in enumerate(batch)
                ]
                for fut in as_completed(futures):
                    record = fut.result()
                    if record is not None:
                        out.append(record)
        return out

    def _process_candidate(
        self,
        candidate: SearchCandidate,
        position: int,
        term: str,
        filters: SearchFilters,
    ) -> MovieRecord | None:
        if position > 0 and self._stagger_seconds > 0:
            self._sleep(position * self._stagger_seconds)

        detail = self._client.fetch_detail(candidate.external_id)
        if isinstance(detail, ProviderFailure):
            self._m_inc("detail_dropped")
            logger.debug_ctx("CACHE", f"dropped {candidate.external_id}: {detail.kind} ({detail.message})")
            return None

        if not passes_filters(detail, filters):
            self._m_inc("filtered_out")
            return None

        self._m_inc("upserts")
        return self._store.upsert_from_search(detail, term)

    # ------------------------------------------------------------
    # getDetailWithCache
    # ------------------------------------------------------------

    def get_detail_with_cache(self, external_id: str) -> DetailOutcome:
        external_id = external_id.strip()

        touched = self._store.touch_fresh(external_id)
        if touched is not None:
            self._m_inc("cache_hits")
            return DetailOutcome(ok=True, item=touched, source="cache")

        self._m_inc("cache_misses")
        detail = self._client.fetch_detail(external_id)
        if isinstance(detail, ProviderFailure):
            return DetailOutcome(ok=False, failure=detail)

        record = self._store.upsert_from_detail(self._with_requested_id(detail, external_id))
        self._m_inc("upserts")
        return DetailOutcome(ok=True, item=record, source="api")

    @staticmethod
    def _with_requested_id(detail: NormalizedMovie, external_id: str) -> NormalizedMovie:
        # OMDb devuelve el imdbID canónico; si difiere del pedido se respeta el suyo.
        if not detail.get("external_id"):
            detail["external_id"] = external_id
        return detail

    # ------------------------------------------------------------
    # Inbound (presentación)
    # ------------------------------------------------------------

    def search(
        self,
        term: str,
        *,
        sort: str = "rating",
        filters: Iterable[str] | None = None,
        page: int = 1,
        limit: int = 10,
        force_refresh: bool = False,
        identity: CallerIdentity | None = None,
    ) -> SearchResponse:
        """
        - term no vacío: search_and_cache (fallo => respuesta etiquetada, sin fallback).
        - term vacío: navegación de la caché fresca con filtros, sort y paginación.
        """
        parsed = parse_filters(filters)
        applied = {**parsed.as_dict(), "forceRefresh": bool(force_refresh)}
        page = max(1, int(page))

        if term and term.strip():
            outcome = self.search_and_cache(
                term,
                force_refresh=force_refresh,
                year=parsed.year,
                min_rating=parsed.min_rating,
                genres=parsed.genres,
                page=page,
            )
            return SearchResponse(
                ok=outcome.ok,
                items=outcome.items,
                total_count=outcome.total_count,
                source=outcome.source,
                applied_filters=applied,
                failure=outcome.failure,
            )

        return self._browse(parsed, applied, sort=sort, page=page, limit=limit)

    def _browse(
        self,
        filters: SearchFilters,
        applied: dict[str, Any],
        *,
        sort: str,
        page: int,
        limit: int,
    ) -> SearchResponse:
        limit = max(1, min(int(limit), BROWSE_LIMIT_MAX))
        sort_spec = SORT_OPTIONS.get((sort or "").strip().lower(), _CACHE_HIT_SORT)
        query = build_filter_query(filters)

        total = self._store.count_fresh(query)
        items = self._store.find_fresh(query, sort=sort_spec, skip=(page - 1) * limit, limit=limit)

        pages = math.ceil(total / limit) if total else 0
        pagination = {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": pages,
            "hasNextPage": page < pages,
            "hasPrevPage": page > 1,
        }
        return SearchResponse(
            ok=True,
            items=items,
            total_count=total,
            source="cache",
            applied_filters=applied,
            pagination=pagination,
        )

    def get_by_id(self, external_id: str, identity: CallerIdentity | None = None) -> DetailOutcome:
        if not is_valid_external_id(external_id):
            raise InvalidExternalIdError(f"Invalid IMDb ID format: {external_id!r}")
        return self.get_detail_with_cache(external_id)

    def cache_status(self, term: str) -> dict[str, Any]:
        cached = self._store.count_fresh({"search_terms": normalize_term(term)})
        return {"term": term, "cachedCount": cached, "needsFetch": cached == 0}

    def recent(self, limit: int = 12) -> dict[str, Any]:
        movies = self._store.recent(limit)
        popular = self._store.aggregate(
            [
                {"$match": {"cache_expires_at": {"$gt": self._store.now()}}},
                {"$unwind": "$search_terms"},
                {
                    "$group": {
                        "_id": "$search_terms",
                        "count": {"$sum": 1},
                        "movies": {"$push": {"title": "$title", "rating": "$rating_value", "year": "$year"}},
                    }
                },
                {"$sort": {"count": -1}},
                {"$limit": POPULAR_TERMS_LIMIT},
            ]
        )
        return {
            "recentMovies": movies,
            "totalRecent": len(movies),
            "popularSearchTerms": [
                {"term": row["_id"], "count": row["count"], "movies": row.get("movies", [])} for row in popular
            ],
        }

    def resolve_favorites(self, favorites: FavoriteList | Iterable[str]) -> list[MovieRecord]:
        """Vista de detalle de favoritos; ids cuyo lookup falla se omiten."""
        out: list[MovieRecord] = []
        for external_id in favorites:
            outcome = self.get_detail_with_cache(external_id)
            if outcome.ok and outcome.item is not None:
                out.append(outcome.item)
            else:
                logger.debug_ctx("FAVORITES", f"skip {external_id}: {outcome.failure}")
        return out

    # ------------------------------------------------------------
    # Admin
    # ------------------------------------------------------------

    def refresh_search(self, term: str, identity: CallerIdentity | None) -> SearchOutcome:
        require_admin(identity, operation="cache refresh")
        outcome = self.search_and_cache(term, force_refresh=True)
        logger.info(
            f"[CACHE] forced refresh term={normalize_term(term)!r} ok={outcome.ok} items={outcome.total_count}"
        )
        return outcome

    def delete_cached(self, external_id: str, identity: CallerIdentity | None) -> MovieRecord | None:
        require_admin(identity, operation="cache deletion")
        deleted = self._store.delete_one(external_id.strip())
        if deleted is not None:
            logger.info(f"[CACHE] deleted {external_id} by {identity.subject_id if identity else '?'}")
        return deleted
