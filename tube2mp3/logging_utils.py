from __future__ import annotations

import logging
from typing import Optional


_DEFAULT_LEVEL = logging.INFO


def configure_logging(level: str | int) -> None:
    """Set the level used by loggers created through ``get_logger``.

    Loggers that already exist are updated in place so that a level read
    from configuration at startup also applies to module-level loggers.
    """
    global _DEFAULT_LEVEL

    resolved = logging.getLevelName(level) if isinstance(level, str) else level
    if not isinstance(resolved, int):
        resolved = logging.INFO
    _DEFAULT_LEVEL = resolved

    for name in list(logging.root.manager.loggerDict):
        if name == "tube2mp3" or name.startswith("tube2mp3."):
            logging.getLogger(name).setLevel(resolved)


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return a module-scoped logger configured for console output.

    This provides a simple, reusable logger setup for services and other
    components without forcing the rest of the app to manage handlers.
    """

    logger_name = name or "tube2mp3"
    logger = logging.getLogger(logger_name)

    if not logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter(
            "%(asctime)s %(levelname)s [%(name)s] %(message)s"
        )
        handler.setFormatter(formatter)
        logger.addHandler(handler)
        logger.setLevel(_DEFAULT_LEVEL)

    return logger
