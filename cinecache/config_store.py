from __future__ import annotations

from typing import Final

from cinecache.config_base import _cap_int, _get_env_int, _get_env_str

# ============================================================
# MongoDB (Record Store)
# ============================================================

MONGODB_URI: str = _get_env_str("MONGODB_URI", "mongodb://localhost:27017") or "mongodb://localhost:27017"
MONGODB_DB_NAME: str = _get_env_str("MONGODB_DB_NAME", "cinecache") or "cinecache"
MONGODB_MOVIES_COLLECTION: str = _get_env_str("MONGODB_MOVIES_COLLECTION", "movies") or "movies"

MONGODB_SERVER_SELECTION_TIMEOUT_MS: int = _cap_int(
    "MONGODB_SERVER_SELECTION_TIMEOUT_MS",
    _get_env_int("MONGODB_SERVER_SELECTION_TIMEOUT_MS", 5000),
    min_v=100,
    max_v=120_000,
)

# ============================================================
# TTL (fijo)
# ============================================================

CACHE_TTL_SECONDS: Final[int] = 24 * 60 * 60
