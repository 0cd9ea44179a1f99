# logger y utilidades de logging del servidor
from __future__ import annotations

import logging
from pathlib import Path

from cinecache import logger as core_logger
from cinecache.config_base import LOGGER_FILE_PATH
from cinecache_server.api.settings import Settings

API_LOGGER_NAME = "cinecache_api"

# Mismo tag que el core: un único FileHandler en el root aunque ambos lo pidan.
_FILE_HANDLER_TAG = core_logger.FILE_HANDLER_TAG


def _log_file_path() -> Path | None:
    return LOGGER_FILE_PATH


def _has_our_file_handler(root: logging.Logger) -> bool:
    return any(getattr(h, _FILE_HANDLER_TAG, False) for h in root.handlers)


def _ensure_file_handler(root: logging.Logger, *, level: str) -> None:
    """Añade el fichero de log al root, o solo reajusta su nivel si ya existe."""
    path = _log_file_path()
    if path is None:
        return

    existing = [h for h in root.handlers if getattr(h, _FILE_HANDLER_TAG, False)]
    if existing:
        for handler in existing:
            handler.setLevel(level)
        return

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(path, mode="a", encoding="utf-8", delay=True)
    except OSError as exc:
        logging.getLogger(API_LOGGER_NAME).warning("log file unavailable (%s): %r", path, exc)
        return

    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(core_logger.LOG_FORMAT))
    setattr(handler, _FILE_HANDLER_TAG, True)
    root.addHandler(handler)


def configure_logging(settings: Settings) -> logging.Logger:
    """
    - Se respetan los handlers de quien ejecute (uvicorn, gunicorn...).
    - Nivel global y del logger de la API según LOG_LEVEL.
    """
    root = logging.getLogger()
    root.setLevel(settings.log_level)
    _ensure_file_handler(root, level=settings.log_level)

    logger = logging.getLogger(API_LOGGER_NAME)
    logger.setLevel(settings.log_level)
    return logger
