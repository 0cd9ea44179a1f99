from __future__ import annotations

"""
cinecache/logger.py

Fachada de logging del core (store, cliente OMDb, orquestador, lifecycle).

Niveles y flags
---------------
- SILENT_MODE: calla debug/info/warning salvo `always=True`; `error()` sale siempre.
- DEBUG_MODE: activa `debug_ctx(tag, msg)`. Con SILENT_MODE a la vez, esas trazas
  salen por `progress()` (stdout directo).
- LOG_LEVEL explícito gana a DEBUG_MODE.

Los flags se leen de `cinecache.config` SOLO si ya está en `sys.modules`
(importarlo aquí crearía un ciclo con config_base). Sin config cargada: INFO,
sin silent ni debug.

Fichero opcional: si LOGGER_FILE_ENABLED, se añade (una vez) un FileHandler al
root logger en LOGGER_FILE_PATH. Si el fichero no se puede abrir se sigue solo
con consola: loguear nunca rompe una búsqueda ni un job del scheduler.
"""

import logging
import os
import sys
from types import ModuleType, TracebackType
from typing import Final, Mapping, TypedDict

from typing_extensions import TypeAlias, Unpack

_ExcInfoTuple: TypeAlias = tuple[type[BaseException], BaseException, TracebackType | None]
ExcInfo: TypeAlias = bool | _ExcInfoTuple | BaseException | None


class LogKwargs(TypedDict, total=False):
    exc_info: ExcInfo
    stack_info: bool
    stacklevel: int
    extra: Mapping[str, object] | None


LOGGER_NAME: Final[str] = "cinecache"
FILE_HANDLER_TAG: Final[str] = "_cinecache_file_handler"
LOG_FORMAT: Final[str] = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

# Loggers de terceros que inundan DEBUG (pool HTTP, heartbeats de MongoDB).
_NOISY_LOGGERS: Final[tuple[str, ...]] = ("urllib3", "urllib3.connectionpool", "requests", "pymongo")

_LEVELS: Final[dict[str, int]] = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARN": logging.WARNING,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}

_state: dict[str, logging.Logger] = {}


# ============================================================
# Lectura de flags
# ============================================================


def _config_module() -> ModuleType | None:
    mod = sys.modules.get("cinecache.config")
    return mod if isinstance(mod, ModuleType) else None


def _flag(name: str) -> bool:
    mod = _config_module()
    return bool(getattr(mod, name, False)) if mod is not None else False


def _setting(name: str) -> str | None:
    mod = _config_module()
    value = getattr(mod, name, None) if mod is not None else None
    if value is None:
        return None
    return str(value).strip() or None


def is_silent_mode() -> bool:
    return _flag("SILENT_MODE")


def is_debug_mode() -> bool:
    return _flag("DEBUG_MODE")


def _resolve_level_from_config() -> int:
    explicit = _setting("LOG_LEVEL")
    if explicit is not None and explicit.upper() in _LEVELS:
        return _LEVELS[explicit.upper()]
    return logging.DEBUG if is_debug_mode() else logging.INFO


def _configure_external_loggers() -> None:
    """HTTP_DEBUG=True deja a urllib3/requests/pymongo en el nivel del root."""
    if _flag("HTTP_DEBUG"):
        return
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


# ============================================================
# Fichero
# ============================================================


def _log_file_path() -> str | None:
    if not _flag("LOGGER_FILE_ENABLED"):
        return None
    return (os.getenv("LOGGER_FILE_PATH") or "").strip() or _setting("LOGGER_FILE_PATH")


def _tagged_file_handler(root: logging.Logger) -> logging.Handler | None:
    for handler in root.handlers:
        if getattr(handler, FILE_HANDLER_TAG, False):
            return handler
    return None


def _attach_file_handler(root: logging.Logger, level: int) -> None:
    path = _log_file_path()
    if not path or _tagged_file_handler(root) is not None:
        return
    try:
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        handler = logging.FileHandler(path, mode="a", encoding="utf-8", delay=True)
    except OSError:
        return
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    setattr(handler, FILE_HANDLER_TAG, True)
    root.addHandler(handler)


def _ensure_configured() -> logging.Logger:
    cached = _state.get("logger")
    if cached is not None:
        return cached

    level = _resolve_level_from_config()
    root = logging.getLogger()
    if root.handlers:
        root.setLevel(level)
    else:
        logging.basicConfig(level=level, format=LOG_FORMAT)

    _configure_external_loggers()
    _attach_file_handler(root, level)

    logger = logging.getLogger(LOGGER_NAME)
    _state["logger"] = logger
    return logger


def get_logger() -> logging.Logger:
    return _ensure_configured()


# ============================================================
# API
# ============================================================


def progress(message: str) -> None:
    """Línea siempre visible por stdout (ignora SILENT_MODE); también va al fichero si lo hay."""
    try:
        sys.stdout.write(f"{message}\n")
        sys.stdout.flush()
    except (OSError, ValueError):
        pass

    handler = _tagged_file_handler(logging.getLogger())
    if handler is not None:
        record = logging.makeLogRecord(
            {"name": LOGGER_NAME, "msg": message, "levelno": logging.INFO, "levelname": "INFO"}
        )
        handler.handle(record)


def _emit(level: int, msg: str, args: tuple[object, ...], always: bool, kwargs: LogKwargs) -> None:
    if level < logging.ERROR and not always and is_silent_mode():
        return
    _ensure_configured().log(level, msg, *args, **kwargs)


def debug(msg: str, *args: object, always: bool = False, **kwargs: Unpack[LogKwargs]) -> None:
    _emit(logging.DEBUG, msg, args, always, kwargs)


def info(msg: str, *args: object, always: bool = False, **kwargs: Unpack[LogKwargs]) -> None:
    _emit(logging.INFO, msg, args, always, kwargs)


def warning(msg: str, *args: object, always: bool = False, **kwargs: Unpack[LogKwargs]) -> None:
    _emit(logging.WARNING, msg, args, always, kwargs)


def error(msg: str, *args: object, always: bool = False, **kwargs: Unpack[LogKwargs]) -> None:
    _emit(logging.ERROR, msg, args, always, kwargs)


def debug_ctx(tag: str, msg: object) -> None:
    """`[TAG][DEBUG] msg` solo con DEBUG_MODE; por progress() si además SILENT_MODE."""
    if not is_debug_mode():
        return

    line = f"[{(tag or 'DEBUG').strip().upper()}][DEBUG] {msg}"
    if is_silent_mode():
        progress(line)
    else:
        info(line)
