from __future__ import annotations

"""
cinecache/config.py

Punto único de configuración del proyecto (re-export de config_*.py).

🎯 Principios
-------------
1) "Config as data":
   - Solo parsea, valida y expone constantes. Sin lógica de negocio.

2) Robusto ante entornos “sucios”:
   - Una env var inválida no rompe: warning always=True y default.

3) Logging coherente con cinecache/logger.py:
   - cinecache/logger.py lee DEBUG_MODE/SILENT_MODE/LOG_LEVEL/LOGGER_FILE_* desde
     `sys.modules["cinecache.config"]` (sin import directo, evita ciclos).
   - Dump de config solo si DEBUG_MODE y NO SILENT_MODE.

Constantes fijas
----------------
TTL (24h), timeout OMDb (10s), ancho de batch (5), umbrales de health y edades de
evicción NO son configurables: viven en config_*.py como Final y se re-exportan aquí
solo para lectura.
"""

from cinecache.config_base import (  # noqa: F401
    BASE_DIR,
    DEBUG_MODE,
    HTTP_DEBUG,
    LOG_LEVEL,
    LOGGER_FILE_ENABLED,
    LOGGER_FILE_PATH,
    PROJECT_DIR,
    SILENT_MODE,
)
from cinecache.config_lifecycle import (  # noqa: F401
    CACHE_DAILY_SWEEP_HOUR,
    CACHE_INITIAL_SWEEP_DELAY_SECONDS,
    CACHE_SCHEDULER_ENABLED,
    CACHE_STATS_INTERVAL_SECONDS,
)
from cinecache.config_omdb import (  # noqa: F401
    DETAIL_FETCH_BATCH_SIZE,
    OMDB_API_KEY,
    OMDB_BASE_URL,
    OMDB_HTTP_TIMEOUT_SECONDS,
)
from cinecache.config_store import (  # noqa: F401
    CACHE_TTL_SECONDS,
    MONGODB_DB_NAME,
    MONGODB_MOVIES_COLLECTION,
    MONGODB_URI,
)
from cinecache import logger as _logger


def _log_config_debug(label: str, value: object) -> None:
    if not DEBUG_MODE or SILENT_MODE:
        return
    _logger.info(f"{label}: {value}")


_log_config_debug("DEBUG_MODE", DEBUG_MODE)
_log_config_debug("OMDB_BASE_URL", OMDB_BASE_URL)
_log_config_debug("OMDB_API_KEY set", bool(OMDB_API_KEY))
_log_config_debug("MONGODB_DB_NAME", MONGODB_DB_NAME)
_log_config_debug("MONGODB_MOVIES_COLLECTION", MONGODB_MOVIES_COLLECTION)
_log_config_debug("CACHE_SCHEDULER_ENABLED", CACHE_SCHEDULER_ENABLED)
_log_config_debug("CACHE_DAILY_SWEEP_HOUR", CACHE_DAILY_SWEEP_HOUR)
