"""
cinecache/config_base.py

Base de configuración del core:

- `.env` se carga una sola vez, al importar este módulo.
- Lectores tolerantes de env vars: un valor inválido se avisa y se usa el default.
- Flags de ejecución (DEBUG_MODE / SILENT_MODE / LOG_LEVEL / HTTP_DEBUG).
- Fichero de log opcional (LOGGER_FILE_ENABLED / LOGGER_FILE_PATH).

No importa ningún otro config_*.py (evita ciclos).
"""

from __future__ import annotations

import os
from collections.abc import Callable
from pathlib import Path
from typing import Final, TypeVar

from dotenv import load_dotenv

# Las env vars del proceso ganan a las del fichero .env.
load_dotenv(override=False)

from cinecache import logger as _logger  # noqa: E402

_T = TypeVar("_T")

BASE_DIR: Final[Path] = Path(__file__).resolve().parent
PROJECT_DIR: Final[Path] = BASE_DIR.parent


# ============================================================
# Lectura de env vars
# ============================================================

_TRUE_SET: Final[frozenset[str]] = frozenset({"1", "true", "t", "yes", "y", "on"})
_FALSE_SET: Final[frozenset[str]] = frozenset({"0", "false", "f", "no", "n", "off"})


def _clean_env_raw(raw: object | None) -> str | None:
    """Normaliza el valor crudo: None / vacío => None; quita comillas envolventes."""
    if raw is None:
        return None
    text = str(raw).strip()
    if len(text) >= 2 and text[0] in ("'", '"') and text[-1] == text[0]:
        text = text[1:-1].strip()
    return text or None


def _read_env(name: str, default: _T, parse: Callable[[str], _T], kind: str) -> _T:
    text = _clean_env_raw(os.getenv(name))
    if text is None:
        return default
    try:
        return parse(text)
    except ValueError:
        _logger.warning(f"Invalid {kind} for {name!r}: {text!r}, using default {default!r}", always=True)
        return default


def _parse_bool(text: str) -> bool:
    lowered = text.lower()
    if lowered in _TRUE_SET:
        return True
    if lowered in _FALSE_SET:
        return False
    raise ValueError(text)


def _get_env_str(name: str, default: str | None = None) -> str | None:
    text = _clean_env_raw(os.getenv(name))
    return default if text is None else text


def _get_env_int(name: str, default: int) -> int:
    return _read_env(name, default, int, "int")


def _get_env_float(name: str, default: float) -> float:
    return _read_env(name, default, float, "float")


def _get_env_bool(name: str, default: bool) -> bool:
    return _read_env(name, default, _parse_bool, "bool")


def _cap_int(name: str, value: int, *, min_v: int, max_v: int) -> int:
    capped = min(max(value, min_v), max_v)
    if capped != value:
        _logger.warning(f"{name}={value} out of range [{min_v}, {max_v}]; using {capped}", always=True)
    return capped


def _cap_float_min(name: str, value: float, *, min_v: float) -> float:
    if value >= min_v:
        return value
    _logger.warning(f"{name}={value} below {min_v}; using {min_v}", always=True)
    return min_v


# ============================================================
# Modo de ejecución
# ============================================================

DEBUG_MODE: bool = _get_env_bool("DEBUG_MODE", False)
SILENT_MODE: bool = _get_env_bool("SILENT_MODE", False)
HTTP_DEBUG: bool = _get_env_bool("HTTP_DEBUG", False)
LOG_LEVEL: str | None = _get_env_str("LOG_LEVEL", None)


# ============================================================
# Fichero de log (compartido por core y servidor)
# ============================================================

LOGGER_FILE_ENABLED: bool = _get_env_bool("LOGGER_FILE_ENABLED", False)

_DEFAULT_LOG_FILE: Final[str] = "logs/cinecache.log"


def _resolve_logger_file_path() -> Path | None:
    """
    LOGGER_FILE_PATH relativo se resuelve contra la raíz del proyecto.
    Se exporta al entorno para que los subprocesos escriban en el mismo fichero.
    """
    if not LOGGER_FILE_ENABLED:
        return None

    raw = _get_env_str("LOGGER_FILE_PATH", _DEFAULT_LOG_FILE) or _DEFAULT_LOG_FILE
    path = Path(raw)
    if not path.is_absolute():
        path = PROJECT_DIR / path
    path = path.resolve()
    os.environ["LOGGER_FILE_PATH"] = str(path)
    return path


LOGGER_FILE_PATH: Path | None = _resolve_logger_file_path()
