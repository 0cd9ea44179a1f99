from __future__ import annotations

"""
cinecache/movie_store.py

Record Store: colección MongoDB de MovieRecord indexada por external_id.

Política
--------
- Upsert atómico por external_id (find_one_and_update con upsert=True).
  Sin locks ni control optimista: last-writer-wins.
- Carrera de inserts concurrentes (dos upserts del mismo id sin documento previo):
  el índice único rechaza uno con DuplicateKeyError y se reintenta UNA vez, ya como
  update sobre el documento que ganó.
- Todo read path de caché aplica `fresh_clause(now)`. La única lectura que ve registros
  stale es `iter_all()` (enumeración cruda).
- El borrado es exclusivo del lifecycle manager (y del admin): el read path nunca borra.

Errores
-------
- StoreUnavailableError: Mongo inalcanzable. En arranque es fatal (fail fast);
  en mitad de una request se propaga al caller (la API lo mapea a 503).
"""

from collections.abc import Callable, Iterator, Mapping, Sequence
from datetime import datetime, timedelta
from typing import Any

from pymongo import ASCENDING, DESCENDING, MongoClient, ReturnDocument
from pymongo.collection import Collection
from pymongo.errors import ConnectionFailure, DuplicateKeyError, PyMongoError

from cinecache import logger as logger
from cinecache.config_store import (
    MONGODB_DB_NAME,
    MONGODB_MOVIES_COLLECTION,
    MONGODB_SERVER_SELECTION_TIMEOUT_MS,
    MONGODB_URI,
)
from cinecache.movie_record import (
    MovieRecord,
    NormalizedMovie,
    cache_metadata,
    expired_clause,
    fresh_clause,
    refreshed_fields,
    utc_now,
)

Clock = Callable[[], datetime]
SortSpec = Sequence[tuple[str, int]]


class StoreUnavailableError(RuntimeError):
    """La persistencia no es alcanzable."""


def connect_store(
    uri: str = MONGODB_URI,
    *,
    db_name: str = MONGODB_DB_NAME,
    collection_name: str = MONGODB_MOVIES_COLLECTION,
    server_selection_timeout_ms: int = MONGODB_SERVER_SELECTION_TIMEOUT_MS,
    clock: Clock = utc_now,
) -> "MovieStore":
    """
    Conecta y verifica (ping) el servidor. Sin modo degradado: si no hay Mongo,
    StoreUnavailableError y el proceso no debería arrancar.
    """
    client: MongoClient[dict[str, Any]] = MongoClient(
        uri, serverSelectionTimeoutMS=server_selection_timeout_ms
    )
    try:
        client.admin.command("ping")
    except PyMongoError as exc:
        client.close()
        raise StoreUnavailableError(f"MongoDB unreachable at startup: {exc}") from exc

    logger.info(f"[STORE] connected to MongoDB db={db_name!r} collection={collection_name!r}")
    store = MovieStore(client[db_name][collection_name], clock=clock)
    store.ensure_indexes()
    return store


class MovieStore:
    """Acceso a la colección `movies` (CRUD + agregaciones)."""

    def __init__(self, collection: Collection, *, clock: Clock = utc_now) -> None:
        self._col = collection
        self._clock = clock

    @property
    def collection(self) -> Collection:
        return self._col

    def now(self) -> datetime:
        return self._clock()

    def ping(self) -> bool:
        try:
            self._col.database.command("ping")
            return True
        except PyMongoError:
            return False

    def ensure_indexes(self) -> None:
        """Índices que mantienen sub-lineal el cache-query path."""
        try:
            self._col.create_index([("external_id", ASCENDING)], unique=True)
            self._col.create_index([("title", ASCENDING), ("year", DESCENDING)])
            self._col.create_index([("genres", ASCENDING), ("year", DESCENDING)])
            self._col.create_index([("rating_value", DESCENDING)])
            self._col.create_index([("cache_expires_at", ASCENDING)])
            self._col.create_index([("search_terms", ASCENDING)])
            self._col.create_index([("last_fetched_at", DESCENDING)])
        except ConnectionFailure as exc:
            raise StoreUnavailableError(str(exc)) from exc

    # ============================================================
    # READ PATHS (siempre con frescura)
    # ============================================================

    def find_fresh(
        self,
        query: Mapping[str, Any] | None = None,
        *,
        sort: SortSpec | None = None,
        skip: int = 0,
        limit: int = 0,
        projection: Mapping[str, Any] | None = None,
    ) -> list[MovieRecord]:
        filt = {**dict(query or {}), **fresh_clause(self.now())}
        try:
            cursor = self._col.find(filt, projection)
            if sort:
                cursor = cursor.sort(list(sort))
            if skip > 0:
                cursor = cursor.skip(skip)
            if limit > 0:
                cursor = cursor.limit(limit)
            return list(cursor)
        except ConnectionFailure as exc:
            raise StoreUnavailableError(str(exc)) from exc

    def count_fresh(self, query: Mapping[str, Any] | None = None) -> int:
        filt = {**dict(query or {}), **fresh_clause(self.now())}
        try:
            return int(self._col.count_documents(filt))
        except ConnectionFailure as exc:
            raise StoreUnavailableError(str(exc)) from exc

    def find_fresh_one(self, external_id: str) -> MovieRecord | None:
        try:
            return self._col.find_one({"external_id": external_id, **fresh_clause(self.now())})
        except ConnectionFailure as exc:
            raise StoreUnavailableError(str(exc)) from exc

    def find_any(self, external_id: str) -> MovieRecord | None:
        """Lookup crudo (incluye stale). Solo para decisiones de overwrite/admin."""
        try:
            return self._col.find_one({"external_id": external_id})
        except ConnectionFailure as exc:
            raise StoreUnavailableError(str(exc)) from exc

    def iter_all(self) -> Iterator[MovieRecord]:
        """Enumeración cruda, incluidos registros expirados aún no barridos."""
        try:
            yield from self._col.find({})
        except ConnectionFailure as exc:
            raise StoreUnavailableError(str(exc)) from exc

    def recent(self, limit: int) -> list[MovieRecord]:
        """Frescos con póster, más recientes primero."""
        return self.find_fresh(
            {"poster_url": {"$ne": None}},
            sort=[("last_fetched_at", DESCENDING)],
            limit=max(1, int(limit)),
        )

    # ============================================================
    # WRITE PATHS (upsert atómico, last-writer-wins)
    # ============================================================

    def upsert_from_search(self, movie: NormalizedMovie, term: str) -> MovieRecord:
        """
        Upsert de un candidato que pasó filtros en el miss-path.

        - Registro fresco existente: union del término + refresh de metadatos/contadores.
          Los campos de la ficha NO se reescriben.
        - Stale: se reescribe la ficha, se refresca el TTL y el contador vuelve a 1;
          los términos acumulados y created_at se conservan.
        - Inexistente: insert con search_terms=[term] y contador 1.
        """
        external_id = movie["external_id"]
        for attempt in range(2):
            now = self.now()
            try:
                updated = self._col.find_one_and_update(
                    {"external_id": external_id, **fresh_clause(now)},
                    {
                        "$addToSet": {"search_terms": term},
                        "$set": cache_metadata(now),
                        "$inc": {"total_search_count": 1},
                    },
                    return_document=ReturnDocument.AFTER,
                )
                if updated is not None:
                    return updated

                return self._col.find_one_and_update(
                    {"external_id": external_id},
                    {
                        "$set": {**refreshed_fields(movie, now), "total_search_count": 1},
                        "$addToSet": {"search_terms": term},
                        "$setOnInsert": {"created_at": now},
                    },
                    upsert=True,
                    return_document=ReturnDocument.AFTER,
                )
            except DuplicateKeyError:
                if attempt:
                    raise
                logger.debug_ctx("STORE", f"concurrent insert race on {external_id}; retrying as update")
            except ConnectionFailure as exc:
                raise StoreUnavailableError(str(exc)) from exc
        raise RuntimeError("upsert retries: unreachable")

    def upsert_from_detail(self, movie: NormalizedMovie) -> MovieRecord:
        """
        Overwrite tras un fetch por id: todos los campos de la ficha se reemplazan
        (runtime_minutes incluido), se refresca el TTL y se suma 1 al contador.
        Un insert nuevo arranca con contador 1 y sin términos de búsqueda.
        """
        now = self.now()
        update = {
            "$set": refreshed_fields(movie, now),
            "$inc": {"total_search_count": 1},
            "$setOnInsert": {"search_terms": [], "created_at": now},
        }
        for attempt in range(2):
            try:
                return self._col.find_one_and_update(
                    {"external_id": movie["external_id"]},
                    update,
                    upsert=True,
                    return_document=ReturnDocument.AFTER,
                )
            except DuplicateKeyError:
                if attempt:
                    raise
            except ConnectionFailure as exc:
                raise StoreUnavailableError(str(exc)) from exc
        raise RuntimeError("upsert retries: unreachable")

    def touch_fresh(self, external_id: str) -> MovieRecord | None:
        """
        Cache-hit por id: +1 al contador y refresh de fetched/expiry/searched, solo si
        sigue fresco en el momento del update (si expiró entre medias => None).
        """
        now = self.now()
        try:
            return self._col.find_one_and_update(
                {"external_id": external_id, **fresh_clause(now)},
                {"$set": cache_metadata(now), "$inc": {"total_search_count": 1}},
                return_document=ReturnDocument.AFTER,
            )
        except ConnectionFailure as exc:
            raise StoreUnavailableError(str(exc)) from exc

    # ============================================================
    # DELETES (lifecycle / admin)
    # ============================================================

    def delete_expired(self) -> int:
        """Idempotente. Mismo predicado que excluye los stale de las lecturas."""
        try:
            return int(self._col.delete_many(expired_clause(self.now())).deleted_count)
        except ConnectionFailure as exc:
            raise StoreUnavailableError(str(exc)) from exc

    def delete_cold(self, *, older_than: timedelta, max_searches: int) -> int:
        """Buscados <= max_searches veces y sin búsquedas desde hace > older_than (fresco o no)."""
        cutoff = self.now() - older_than
        try:
            res = self._col.delete_many(
                {"last_searched_at": {"$lte": cutoff}, "total_search_count": {"$lte": max_searches}}
            )
            return int(res.deleted_count)
        except ConnectionFailure as exc:
            raise StoreUnavailableError(str(exc)) from exc

    def delete_one(self, external_id: str) -> MovieRecord | None:
        try:
            return self._col.find_one_and_delete({"external_id": external_id})
        except ConnectionFailure as exc:
            raise StoreUnavailableError(str(exc)) from exc

    # ============================================================
    # CONTEOS / AGREGACIONES
    # ============================================================

    def count(self, query: Mapping[str, Any] | None = None) -> int:
        try:
            return int(self._col.count_documents(dict(query or {})))
        except ConnectionFailure as exc:
            raise StoreUnavailableError(str(exc)) from exc

    def aggregate(self, pipeline: Sequence[Mapping[str, Any]]) -> list[dict[str, Any]]:
        try:
            return list(self._col.aggregate(list(pipeline)))
        except ConnectionFailure as exc:
            raise StoreUnavailableError(str(exc)) from exc

    def top_searched(self, limit: int) -> list[MovieRecord]:
        """Sin filtro de frescura: es telemetría de uso, no un read path de caché."""
        try:
            cursor = (
                self._col.find(
                    {},
                    {"_id": 0, "external_id": 1, "title": 1, "total_search_count": 1, "last_searched_at": 1},
                )
                .sort([("total_search_count", DESCENDING)])
                .limit(max(1, int(limit)))
            )
            return list(cursor)
        except ConnectionFailure as exc:
            raise StoreUnavailableError(str(exc)) from exc
