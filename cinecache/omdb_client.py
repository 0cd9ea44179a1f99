from __future__ import annotations

"""
cinecache/omdb_client.py

Cliente OMDb (External Provider Client): búsqueda por título + ficha por imdbID.

🧠 Principios
-------------
1) Stateless (salvo métricas):
   - Una llamada = una request HTTP. Sin caché, sin persistencia.

2) Sin retries:
   - Un fallo se devuelve como ProviderFailure etiquetado. Si alguien quiere reintentar,
     es decisión del orquestador (hoy no lo hace: el candidato se descarta).

3) Discriminación por payload, no por HTTP status:
   - OMDb indica éxito/fallo con el campo `Response` ("True"/"False") del body.
   - "Movie not found!" en búsqueda NO es un fallo: página vacía con total=0.

4) Timeout fijo (10s) por request.

5) ThreadPool safe:
   - requests.Session compartida (pooling).
   - Métricas con lock.

Normalización (payload OMDb -> NormalizedMovie)
-----------------------------------------------
- Genre / Actors: "A, B, C" -> ["A", "B", "C"] (trim, orden del proveedor)
- imdbRating: "8.6" -> 8.6 ; "N/A" -> None
- Metascore: "74" -> 74 ; "N/A" -> None
- Runtime: "148 min" -> runtime_minutes=148 (runtime_text se conserva)
- Poster: "N/A" -> None
- Year: "1994" / "1994–1996" -> 1994
- Ratings: [{Source, Value}] -> [{source, value}] (passthrough)
"""

import threading
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Final, Literal

import requests  # type: ignore[import-not-found]
from requests.adapters import HTTPAdapter  # type: ignore[import-not-found]
from requests.exceptions import RequestException  # type: ignore[import-not-found]

from cinecache import logger as logger
from cinecache.config_omdb import (
    OMDB_API_KEY,
    OMDB_BASE_URL,
    OMDB_HTTP_TIMEOUT_SECONDS,
    OMDB_HTTP_USER_AGENT,
)
from cinecache.movie_record import MOVIE_KINDS, ExternalRating, NormalizedMovie, parse_runtime_minutes

FailureKind = Literal["no_results", "provider_unavailable", "not_found"]

_NA: Final[str] = "N/A"

# Errores OMDb que significan "no hay resultados" (no son fallos de transporte).
_NO_RESULTS_ERRORS: Final[tuple[str, ...]] = ("movie not found", "too many results", "series not found")

_PROBE_TERM: Final[str] = "batman"


@dataclass(frozen=True)
class ProviderFailure:
    """Fallo etiquetado del proveedor (nunca se lanza como excepción)."""

    kind: FailureKind
    message: str


@dataclass(frozen=True)
class SearchCandidate:
    external_id: str
    title_hint: str


@dataclass(frozen=True)
class SearchPage:
    """
    Página de búsqueda.

    items vacío + total_count=0 cuando OMDb dice "no results"; `message`
    conserva el texto original del proveedor para explicarlo al caller.
    """

    items: list[SearchCandidate] = field(default_factory=list)
    total_count: int = 0
    page: int = 1
    message: str | None = None


# ============================================================
# AUX: safe parsing
# ============================================================


def _text_or_none(value: object) -> str | None:
    if not isinstance(value, str):
        return None
    v = value.strip()
    if not v or v == _NA:
        return None
    return v


def _safe_int(value: object) -> int | None:
    try:
        if value is None:
            return None
        return int(str(value).strip().replace(",", ""))
    except (ValueError, TypeError):
        return None


def _safe_float(value: object) -> float | None:
    try:
        if value is None:
            return None
        return float(value)  # type: ignore[arg-type]
    except (ValueError, TypeError):
        return None


def split_csv_field(value: object) -> list[str]:
    """"Action, Crime, Drama" -> ["Action", "Crime", "Drama"]."""
    text = _text_or_none(value)
    if text is None:
        return []
    return [part.strip() for part in text.split(",") if part.strip()]


def parse_rating(value: object) -> float | None:
    text = _text_or_none(value)
    if text is None:
        return None
    return _safe_float(text)


def parse_year(value: object) -> int | None:
    """Año principal ("1994" o "1994–1996")."""
    text = _text_or_none(value)
    if text is None:
        return None
    if len(text) >= 4 and text[:4].isdigit():
        return int(text[:4])
    return None


def parse_ratings_breakdown(value: object) -> list[ExternalRating]:
    if not isinstance(value, list):
        return []
    out: list[ExternalRating] = []
    for r in value:
        if not isinstance(r, Mapping):
            continue
        source = r.get("Source")
        rating_value = r.get("Value")
        if isinstance(source, str) and isinstance(rating_value, str):
            out.append({"source": source, "value": rating_value})
    return out


def normalize_detail(data: Mapping[str, Any]) -> NormalizedMovie:
    """Transforma una ficha OMDb (Response=True) al esquema interno."""
    runtime_text = _text_or_none(data.get("Runtime"))

    kind_raw = str(data.get("Type") or "movie").strip().lower()
    kind = kind_raw if kind_raw in MOVIE_KINDS else "movie"

    return {
        "external_id": str(data.get("imdbID") or "").strip(),
        "title": str(data.get("Title") or "").strip(),
        "year": parse_year(data.get("Year")),
        "released_date": _text_or_none(data.get("Released")),
        "runtime_text": runtime_text,
        "runtime_minutes": parse_runtime_minutes(runtime_text),
        "genres": split_csv_field(data.get("Genre")),
        "director": _text_or_none(data.get("Director")),
        "writer": _text_or_none(data.get("Writer")),
        "actors": split_csv_field(data.get("Actors")),
        "plot": _text_or_none(data.get("Plot")),
        "language": _text_or_none(data.get("Language")),
        "country": _text_or_none(data.get("Country")),
        "rating_value": parse_rating(data.get("imdbRating")),
        "metascore": _safe_int(_text_or_none(data.get("Metascore"))),
        "external_votes": _text_or_none(data.get("imdbVotes")),
        "external_ratings": parse_ratings_breakdown(data.get("Ratings")),
        "poster_url": _text_or_none(data.get("Poster")),
        "kind": kind,  # type: ignore[typeddict-item]
    }


def _is_no_results_error(error: str) -> bool:
    e = error.strip().lower()
    return any(token in e for token in _NO_RESULTS_ERRORS)


def _is_transport_like_error(error: str) -> bool:
    """API key inválida / límite diario: el proveedor no está utilizable."""
    e = error.strip().lower()
    return "api key" in e or "limit" in e


# ============================================================
# CLIENTE
# ============================================================


def build_session(user_agent: str = OMDB_HTTP_USER_AGENT) -> requests.Session:
    """
    requests.Session con pooling ajustado al ancho de batch.

    Sin Retry adapter: cualquier fallo se devuelve tal cual al orquestador.
    """
    session = requests.Session()
    adapter = HTTPAdapter(max_retries=0, pool_connections=8, pool_maxsize=8)
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    session.headers.update(
        {
            "User-Agent": user_agent.strip() or "CineCache/1.0 (+omdb)",
            "Accept": "application/json,text/plain,*/*",
        }
    )
    return session


class OmdbClient:
    """
    Wrapper stateless sobre la API de OMDb.

    `session` es inyectable (tests); por defecto se crea una propia con pooling.
    """

    def __init__(
        self,
        *,
        api_key: str | None = OMDB_API_KEY,
        base_url: str = OMDB_BASE_URL,
        session: requests.Session | None = None,
        timeout_seconds: float = OMDB_HTTP_TIMEOUT_SECONDS,
    ) -> None:
        self._api_key = (api_key or "").strip()
        self._base_url = base_url
        self._session = session if session is not None else build_session()
        self._timeout_seconds = timeout_seconds

        self._metrics_lock = threading.Lock()
        self._metrics: dict[str, int] = {
            "http_requests": 0,
            "http_failures": 0,
            "search_calls": 0,
            "detail_calls": 0,
            "no_results": 0,
            "not_found": 0,
        }

        if not self._api_key:
            logger.warning(
                "OMDB_API_KEY is not set: every OMDb request will be rejected by the provider.",
                always=True,
            )

    @property
    def has_api_key(self) -> bool:
        return bool(self._api_key)

    # ------------------------------------------------------------
    # Métricas
    # ------------------------------------------------------------

    def _m_inc(self, key: str, delta: int = 1) -> None:
        with self._metrics_lock:
            self._metrics[key] = int(self._metrics.get(key, 0)) + int(delta)

    def metrics_snapshot(self) -> dict[str, int]:
        with self._metrics_lock:
            return dict(self._metrics)

    # ------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------

    def _get_json(self, params: Mapping[str, str]) -> Mapping[str, Any] | ProviderFailure:
        """
        GET a OMDb y parseo del body.

        Devuelve el dict del body (con Response True o False) o un
        ProviderFailure(provider_unavailable) si el transporte o el JSON fallan.
        """
        query = {"apikey": self._api_key, **params}
        self._m_inc("http_requests")
        try:
            resp = self._session.get(self._base_url, params=query, timeout=self._timeout_seconds)
        except RequestException as exc:
            self._m_inc("http_failures")
            logger.debug_ctx("OMDB", f"HTTP error calling OMDb: {exc!r}")
            return ProviderFailure("provider_unavailable", f"Failed to reach OMDb: {exc}")

        # requests.JSONDecodeError es a la vez RequestException y ValueError.
        try:
            data = resp.json()
        except ValueError as exc:
            self._m_inc("http_failures")
            logger.debug_ctx("OMDB", f"Non-JSON OMDb response: {exc!r}")
            return ProviderFailure("provider_unavailable", "OMDb returned a non-JSON response")

        if not isinstance(data, Mapping):
            self._m_inc("http_failures")
            return ProviderFailure("provider_unavailable", "OMDb returned an unexpected payload")
        return data

    # ------------------------------------------------------------
    # API pública
    # ------------------------------------------------------------

    def search_by_title(self, term: str, page: int = 1, year: int | None = None) -> SearchPage | ProviderFailure:
        """
        Búsqueda por título (type=movie).

        - "no results" del proveedor -> SearchPage vacía (éxito).
        - red / timeout / key inválida -> ProviderFailure(provider_unavailable).
        """
        self._m_inc("search_calls")
        params: dict[str, str] = {"s": term, "page": str(max(1, int(page))), "type": "movie"}
        if year is not None:
            params["y"] = str(year)

        data = self._get_json(params)
        if isinstance(data, ProviderFailure):
            return data

        if data.get("Response") != "True":
            error = str(data.get("Error") or "Unknown OMDb error")
            if _is_no_results_error(error):
                self._m_inc("no_results")
                return SearchPage(items=[], total_count=0, page=page, message=error)
            logger.warning(f"[OMDB] search rejected: {error}", always=True)
            return ProviderFailure("provider_unavailable", error)

        raw_items = data.get("Search")
        if not isinstance(raw_items, list):
            return ProviderFailure("provider_unavailable", "OMDb search payload without 'Search' list")

        items: list[SearchCandidate] = []
        for raw in raw_items:
            if not isinstance(raw, Mapping):
                continue
            imdb_id = str(raw.get("imdbID") or "").strip()
            if not imdb_id:
                continue
            items.append(SearchCandidate(external_id=imdb_id, title_hint=str(raw.get("Title") or "")))

        total = _safe_int(data.get("totalResults")) or 0
        return SearchPage(items=items, total_count=total, page=page)

    def fetch_detail(self, external_id: str) -> NormalizedMovie | ProviderFailure:
        """Ficha completa (plot=full) normalizada, o ProviderFailure."""
        self._m_inc("detail_calls")
        data = self._get_json({"i": external_id, "plot": "full"})
        if isinstance(data, ProviderFailure):
            return data

        if data.get("Response") != "True":
            error = str(data.get("Error") or "Movie not found")
            if _is_transport_like_error(error):
                logger.warning(f"[OMDB] detail rejected: {error}", always=True)
                return ProviderFailure("provider_unavailable", error)
            self._m_inc("not_found")
            return ProviderFailure("not_found", error)

        movie = normalize_detail(data)
        if not movie.get("external_id"):
            return ProviderFailure("provider_unavailable", "OMDb detail payload without imdbID")
        return movie

    def probe(self) -> dict[str, Any]:
        """Diagnóstico: una búsqueda fija para validar conectividad y API key."""
        result = self.search_by_title(_PROBE_TERM, 1)
        out: dict[str, Any] = {"api_key_configured": self.has_api_key}
        if isinstance(result, ProviderFailure):
            out.update({"ok": False, "error": result.message, "results": 0, "total_results": 0})
            return out

        first = result.items[0] if result.items else None
        out.update(
            {
                "ok": True,
                "error": result.message,
                "results": len(result.items),
                "total_results": result.total_count,
                "first_result": (
                    {"external_id": first.external_id, "title": first.title_hint} if first else None
                ),
            }
        )
        return out
