from __future__ import annotations

from typing import Final

from cinecache.config_base import _cap_float_min, _cap_int, _get_env_bool, _get_env_float, _get_env_int

# ============================================================
# Lifecycle (scheduler ownership + arranque)
# ============================================================

# Sin coordinación entre réplicas: solo un proceso debería tenerlo activo.
CACHE_SCHEDULER_ENABLED: bool = _get_env_bool("CACHE_SCHEDULER_ENABLED", True)

CACHE_INITIAL_SWEEP_DELAY_SECONDS: float = _cap_float_min(
    "CACHE_INITIAL_SWEEP_DELAY_SECONDS",
    _get_env_float("CACHE_INITIAL_SWEEP_DELAY_SECONDS", 5.0),
    min_v=0.0,
)

CACHE_DAILY_SWEEP_HOUR: int = _cap_int(
    "CACHE_DAILY_SWEEP_HOUR",
    _get_env_int("CACHE_DAILY_SWEEP_HOUR", 2),
    min_v=0,
    max_v=23,
)

# ============================================================
# Constantes fijas (no configurables)
# ============================================================

CACHE_STATS_INTERVAL_SECONDS: Final[int] = 6 * 60 * 60

RECENT_WINDOW_SECONDS: Final[int] = 24 * 60 * 60
STALE_UNUSED_AGE_SECONDS: Final[int] = 7 * 24 * 60 * 60
OPTIMIZE_COLD_AGE_SECONDS: Final[int] = 30 * 24 * 60 * 60
OPTIMIZE_COLD_MAX_SEARCHES: Final[int] = 1

HEALTH_MIN_EFFICIENCY_PCT: Final[float] = 70.0
HEALTH_MAX_EXPIRED_RATIO: Final[float] = 0.3
HEALTH_MAX_STALE_RATIO: Final[float] = 0.2

TOP_SEARCHED_LIMIT: Final[int] = 10
GENRE_DISTRIBUTION_LIMIT: Final[int] = 10

PRELOAD_POPULAR_TERMS: Final[tuple[str, ...]] = (
    "batman",
    "spider-man",
    "avengers",
    "star wars",
    "harry potter",
    "lord of the rings",
    "marvel",
    "disney",
    "pixar",
    "james bond",
)
PRELOAD_DELAY_SECONDS: Final[float] = 2.0
