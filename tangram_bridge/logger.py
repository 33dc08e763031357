"""
Logging for tangram_bridge (tangram_bridge namespace only).

- Single logger hierarchy rooted at `tangram_bridge`.
- configure_logging() only touches loggers under that namespace; the root
  logger and third-party loggers (werkzeug, flask) are left alone.
"""

import logging
from typing import Optional

BASE_LOGGER_NAME = "tangram_bridge"

_LOG_FORMAT = "[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# State
_LOGGING_CONFIGURED: bool = False


def _base_logger() -> logging.Logger:
    return logging.getLogger(BASE_LOGGER_NAME)


def _ensure_base_logger() -> None:
    """Install handler/formatter on the tangram_bridge logger once."""
    global _LOGGING_CONFIGURED
    if _LOGGING_CONFIGURED:
        return

    base = _base_logger()
    if not base.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(_LOG_FORMAT, datefmt=_DATE_FORMAT))
        base.addHandler(handler)
    if base.level == logging.NOTSET:
        base.setLevel(logging.INFO)
    base.propagate = False  # contain logs within tangram_bridge namespace
    _LOGGING_CONFIGURED = True


def _logger_name(name: Optional[str]) -> str:
    if name in (None, "", BASE_LOGGER_NAME):
        return BASE_LOGGER_NAME
    if name.startswith(f"{BASE_LOGGER_NAME}."):
        return name
    return f"{BASE_LOGGER_NAME}.{name}"


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    Return a child logger under the `tangram_bridge` namespace.

    Example:
        >>> logger = get_logger(__name__)   # tangram_bridge.bridge.processor
    """
    _ensure_base_logger()
    return logging.getLogger(_logger_name(name))


def configure_logging(*, level: int = logging.INFO, debug: bool = False) -> None:
    """
    Configure the tangram_bridge logging hierarchy.

    Args:
        level: Log level for the namespace
        debug: If True, elevates to DEBUG (overrides level)
    """
    resolved_level = logging.DEBUG if debug else int(level)

    _ensure_base_logger()
    base = _base_logger()
    base.setLevel(resolved_level)
    base.propagate = False

    # Child loggers inherit the level from base
    for name, logger_obj in logging.Logger.manager.loggerDict.items():
        if not isinstance(logger_obj, logging.Logger):
            continue
        if name.startswith(f"{BASE_LOGGER_NAME}."):
            logger_obj.setLevel(logging.NOTSET)
            logger_obj.propagate = True

    for handler in base.handlers:
        handler.setLevel(resolved_level)
