from __future__ import annotations

"""
cinecache/movie_record.py

Forma del documento MovieRecord + reglas de frescura/TTL.

Campos (colección `movies`)
---------------------------
- external_id        : imdbID (único, inmutable)
- title, year, released_date, runtime_text, runtime_minutes
- genres             : list[str] (orden del proveedor)
- director, writer, actors (list[str]), plot, language, country
- rating_value       : float 0-10 | None (clave principal de sort/filtro)
- metascore          : int 0-100 | None
- external_votes     : str | None (display, passthrough)
- external_ratings   : list[{source, value}] (passthrough)
- poster_url         : str | None ("N/A" del proveedor => None)
- kind               : movie | series | episode
- search_terms       : list[str] en minúscula (semántica de conjunto)
- last_fetched_at, cache_expires_at (= last_fetched_at + 24h)
- total_search_count, last_searched_at, created_at

Fechas
------
Siempre naive UTC truncadas a milisegundos (precisión de BSON). Así la invariante
`cache_expires_at - last_fetched_at == 24h` sobrevive al round-trip por Mongo.
"""

import re
from collections.abc import Mapping
from datetime import datetime, timedelta, timezone
from typing import Any, Final, Literal, TypedDict

from cinecache.config_store import CACHE_TTL_SECONDS

MovieKind = Literal["movie", "series", "episode"]

MOVIE_KINDS: Final[frozenset[str]] = frozenset({"movie", "series", "episode"})
CACHE_TTL: Final[timedelta] = timedelta(seconds=CACHE_TTL_SECONDS)

_RUNTIME_RE: Final[re.Pattern[str]] = re.compile(r"(\d+)")


class ExternalRating(TypedDict):
    source: str
    value: str


class NormalizedMovie(TypedDict, total=False):
    """Ficha normalizada que devuelve el cliente OMDb (sin metadatos de caché)."""

    external_id: str
    title: str
    year: int | None
    released_date: str | None
    runtime_text: str | None
    runtime_minutes: int | None
    genres: list[str]
    director: str | None
    writer: str | None
    actors: list[str]
    plot: str | None
    language: str | None
    country: str | None
    rating_value: float | None
    metascore: int | None
    external_votes: str | None
    external_ratings: list[ExternalRating]
    poster_url: str | None
    kind: MovieKind


class MovieRecord(NormalizedMovie, total=False):
    """Documento persistido: ficha + metadatos de caché/uso."""

    search_terms: list[str]
    last_fetched_at: datetime
    cache_expires_at: datetime
    total_search_count: int
    last_searched_at: datetime
    created_at: datetime


def utc_now() -> datetime:
    """Reloj por defecto: naive UTC con precisión de milisegundos."""
    return truncate_to_millis(datetime.now(timezone.utc).replace(tzinfo=None))


def truncate_to_millis(value: datetime) -> datetime:
    return value.replace(microsecond=(value.microsecond // 1000) * 1000)


def expiry_for(fetched_at: datetime) -> datetime:
    """TTL fijo: nunca deslizante ni variable."""
    return fetched_at + CACHE_TTL


def is_fresh(record: Mapping[str, Any], now: datetime) -> bool:
    """Fresco sii now < cache_expires_at. Sin expiry => no fresco."""
    expires = record.get("cache_expires_at")
    if not isinstance(expires, datetime):
        return False
    return now < expires


def fresh_clause(now: datetime) -> dict[str, Any]:
    """Predicado de frescura compartido por TODOS los read paths de caché."""
    return {"cache_expires_at": {"$gt": now}}


def expired_clause(now: datetime) -> dict[str, Any]:
    return {"cache_expires_at": {"$lte": now}}


def normalize_term(term: str) -> str:
    return term.strip().lower()


def parse_runtime_minutes(runtime_text: object) -> int | None:
    """"148 min" -> 148. "N/A"/vacío/sin dígitos -> None."""
    if not isinstance(runtime_text, str) or runtime_text.strip() in ("", "N/A"):
        return None
    match = _RUNTIME_RE.search(runtime_text)
    if match is None:
        return None
    return int(match.group(1))


def derive_runtime_minutes(doc: dict[str, Any]) -> dict[str, Any]:
    """
    Deriva runtime_minutes UNA vez: solo si falta y hay runtime_text.
    Si ya existe no se recalcula (solo un overwrite completo lo reemplaza).
    """
    if doc.get("runtime_minutes") is None and doc.get("runtime_text"):
        minutes = parse_runtime_minutes(doc.get("runtime_text"))
        if minutes is not None:
            doc["runtime_minutes"] = minutes
    return doc


def cache_metadata(now: datetime) -> dict[str, Any]:
    """Bloque `$set` de refresh: fetched/expiry/searched siempre juntos."""
    return {
        "last_fetched_at": now,
        "cache_expires_at": expiry_for(now),
        "last_searched_at": now,
    }


# Campos que gestiona el store (contadores, términos, alta), nunca la ficha.
_CACHE_OWNED_KEYS: Final[tuple[str, ...]] = ("_id", "search_terms", "total_search_count", "created_at")


def refreshed_fields(movie: Mapping[str, Any], now: datetime) -> dict[str, Any]:
    """Bloque `$set` de un fetch: ficha completa (runtime derivado) + metadatos de caché."""
    doc: dict[str, Any] = dict(movie)
    for key in _CACHE_OWNED_KEYS:
        doc.pop(key, None)
    doc.setdefault("kind", "movie")
    derive_runtime_minutes(doc)
    doc.update(cache_metadata(now))
    return doc


def public_view(record: Mapping[str, Any]) -> dict[str, Any]:
    """Vista para la capa de presentación (sin `_id` interno)."""
    return {k: v for k, v in record.items() if k != "_id"}
