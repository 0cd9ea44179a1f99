import logging

from cinecache_server.api import logging_config
from cinecache_server.api.settings import Settings


def _settings(level: str = "INFO") -> Settings:
    return Settings(log_level=level, cors_origins_raw="*", cors_allow_credentials=False, gzip_min_size=0)


def _drop_our_handlers(root: logging.Logger) -> None:
    for handler in list(root.handlers):
        if getattr(handler, logging_config._FILE_HANDLER_TAG, False):
            root.removeHandler(handler)
            handler.close()


def test_configure_logging_without_file(monkeypatch):
    monkeypatch.setattr(logging_config, "_log_file_path", lambda: None)
    root = logging.getLogger()
    _drop_our_handlers(root)

    logger = logging_config.configure_logging(_settings("WARNING"))

    assert logger.name == logging_config.API_LOGGER_NAME
    assert logger.level == logging.WARNING
    assert logging_config._has_our_file_handler(root) is False


def test_configure_logging_adds_file_handler_once(monkeypatch, tmp_path):
    target = tmp_path / "logs" / "api.log"
    monkeypatch.setattr(logging_config, "_log_file_path", lambda: target)
    root = logging.getLogger()
    _drop_our_handlers(root)

    try:
        logger = logging_config.configure_logging(_settings(level="DEBUG"))
        logging_config.configure_logging(_settings(level="INFO"))

        ours = [h for h in root.handlers if getattr(h, logging_config._FILE_HANDLER_TAG, False)]
        assert logger.level == logging.INFO
        assert len(ours) == 1
        assert ours[0].level == logging.INFO
        assert target.parent.is_dir()
    finally:
        _drop_our_handlers(root)
