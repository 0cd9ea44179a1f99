# settings del servidor HTTP (env vars + defaults)
from __future__ import annotations

from dataclasses import dataclass

from cinecache.config_base import _get_env_bool, _get_env_int, _get_env_str


def _split_origins(raw: str) -> list[str]:
    if raw.strip() == "*":
        return ["*"]
    return [p.strip() for p in raw.split(",") if p.strip()]


@dataclass(frozen=True)
class Settings:
    """
    Settings del servidor HTTP. La configuración del core (OMDb, MongoDB,
    scheduler) vive en `cinecache.config*` y se lee con los mismos helpers.

    - CORS_ORIGINS="*" implica allow_credentials=False (regla de los navegadores).
    - API_RELOAD por defecto desactivado.
    """

    log_level: str
    cors_origins_raw: str
    cors_allow_credentials: bool
    gzip_min_size: int

    api_host: str = "127.0.0.1"
    api_port: int = 8000
    api_reload: bool = False

    def cors_allow_origins(self) -> list[str]:
        return _split_origins(self.cors_origins_raw)

    @staticmethod
    def from_env() -> "Settings":
        cors_raw = _get_env_str("CORS_ORIGINS", "*") or "*"

        return Settings(
            log_level=(_get_env_str("LOG_LEVEL", "INFO") or "INFO").upper(),
            cors_origins_raw=cors_raw,
            cors_allow_credentials=_split_origins(cors_raw) != ["*"],
            gzip_min_size=max(0, _get_env_int("GZIP_MIN_SIZE", 800)),
            api_host=_get_env_str("API_HOST", "127.0.0.1") or "127.0.0.1",
            api_port=_get_env_int("API_PORT", 8000),
            api_reload=_get_env_bool("API_RELOAD", False),
        )
