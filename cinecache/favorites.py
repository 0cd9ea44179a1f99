from __future__ import annotations

"""
cinecache/favorites.py

FavoriteList: conjunto ordenado y acotado (100) de external_id por usuario.

La lista pertenece al colaborador de usuarios (fuera del core); aquí solo se
modela su invariante para que el orquestador pueda resolver la vista de detalle.
"""

from collections.abc import Iterable, Iterator
from typing import Final

FAVORITES_MAX: Final[int] = 100


class FavoritesFullError(ValueError):
    """La lista ya tiene FAVORITES_MAX elementos."""


class FavoriteList:
    """Orden de inserción; pertenencia por igualdad de valor."""

    def __init__(self, owner_id: str, external_ids: Iterable[str] = ()) -> None:
        self.owner_id = owner_id
        self._ids: list[str] = []
        for external_id in external_ids:
            self.add(external_id)

    def add(self, external_id: str) -> bool:
        """True si se añadió; False si ya estaba."""
        value = external_id.strip()
        if value in self._ids:
            return False
        if len(self._ids) >= FAVORITES_MAX:
            raise FavoritesFullError(f"Favorites list is full ({FAVORITES_MAX} items)")
        self._ids.append(value)
        return True

    def remove(self, external_id: str) -> bool:
        value = external_id.strip()
        if value not in self._ids:
            return False
        self._ids.remove(value)
        return True

    def __contains__(self, external_id: object) -> bool:
        return isinstance(external_id, str) and external_id.strip() in self._ids

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._ids))

    def __len__(self) -> int:
        return len(self._ids)

    def as_list(self) -> list[str]:
        return list(self._ids)
