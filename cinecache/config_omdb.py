from __future__ import annotations

from typing import Final

from cinecache.config_base import _get_env_str

# ============================================================
# OMDb (API)
# ============================================================

OMDB_API_KEY: str | None = _get_env_str("OMDB_API_KEY", None)

OMDB_BASE_URL: str = _get_env_str("OMDB_BASE_URL", "http://www.omdbapi.com/") or "http://www.omdbapi.com/"

OMDB_HTTP_USER_AGENT: str = (
    _get_env_str("OMDB_HTTP_USER_AGENT", "CineCache/1.0 (+omdb)") or "CineCache/1.0 (+omdb)"
)

# Fijos: no configurables.
OMDB_HTTP_TIMEOUT_SECONDS: Final[float] = 10.0

# Miss-path: ancho de batch + escalonado por posición dentro del batch.
DETAIL_FETCH_BATCH_SIZE: Final[int] = 5
DETAIL_FETCH_STAGGER_SECONDS: Final[float] = 0.2
