from __future__ import annotations

import threading
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

import mongomock
import pytest

from cinecache.movie_store import MovieStore
from cinecache.omdb_client import ProviderFailure, SearchCandidate, SearchPage


class FakeClock:
    """Reloj mutable (naive UTC, milisegundos) para tests de frescura."""

    def __init__(self, start: datetime | None = None) -> None:
        self.current = start or datetime(2024, 5, 1, 12, 0, 0)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs: float) -> datetime:
        self.current = self.current + timedelta(**kwargs)
        return self.current


def make_movie(
    external_id: str,
    title: str = "Some Movie",
    *,
    year: int | None = 2000,
    rating: float | None = 7.0,
    genres: tuple[str, ...] = ("Drama",),
    runtime_text: str | None = "120 min",
    poster_url: str | None = "http://img/poster.jpg",
) -> dict[str, Any]:
    movie: dict[str, Any] = {
        "external_id": external_id,
        "title": title,
        "year": year,
        "genres": list(genres),
        "rating_value": rating,
        "runtime_text": runtime_text,
        "poster_url": poster_url,
        "kind": "movie",
    }
    if runtime_text:
        movie["runtime_minutes"] = int(runtime_text.split()[0])
    return movie


@dataclass
class FakeProvider:
    """
    Proveedor en memoria con la misma interfaz que OmdbClient.

    - `pages[term_lower]`: SearchPage o ProviderFailure
    - `details[external_id]`: dict normalizado o ProviderFailure
    """

    pages: dict[str, SearchPage | ProviderFailure] = field(default_factory=dict)
    details: dict[str, dict[str, Any] | ProviderFailure] = field(default_factory=dict)
    search_calls: list[tuple[str, int, int | None]] = field(default_factory=list)
    detail_calls: list[str] = field(default_factory=list)
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def add_search(self, term: str, movies: list[Mapping[str, Any]]) -> None:
        self.pages[term.lower()] = SearchPage(
            items=[SearchCandidate(external_id=m["external_id"], title_hint=m.get("title") or "") for m in movies],
            total_count=len(movies),
            page=1,
        )
        for m in movies:
            self.details[m["external_id"]] = dict(m)

    def search_by_title(self, term: str, page: int = 1, year: int | None = None) -> SearchPage | ProviderFailure:
        with self._lock:
            self.search_calls.append((term, page, year))
        return self.pages.get(term.lower(), SearchPage(items=[], total_count=0, page=page, message="Movie not found!"))

    def fetch_detail(self, external_id: str) -> dict[str, Any] | ProviderFailure:
        with self._lock:
            self.detail_calls.append(external_id)
        detail = self.details.get(external_id)
        if detail is None:
            return ProviderFailure("not_found", "Incorrect IMDb ID.")
        if isinstance(detail, ProviderFailure):
            return detail
        return dict(detail)

    def metrics_snapshot(self) -> dict[str, int]:
        return {"search_calls": len(self.search_calls), "detail_calls": len(self.detail_calls)}

    def probe(self) -> dict[str, Any]:
        return {"ok": True, "api_key_configured": True}

    @property
    def provider_calls(self) -> int:
        return len(self.search_calls) + len(self.detail_calls)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def collection():
    return mongomock.MongoClient()["cinecache_test"]["movies"]


@pytest.fixture()
def store(collection, clock) -> MovieStore:
    s = MovieStore(collection, clock=clock)
    s.ensure_indexes()
    return s


@pytest.fixture()
def provider() -> FakeProvider:
    return FakeProvider()
