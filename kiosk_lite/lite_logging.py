"""
Central logging configuration for kiosk_lite.

Quiets verbose third-party loggers on the kiosk while keeping INFO and above
from kiosk_lite itself, and stamps every record with the request correlation
ID.
"""

import logging
import os
from typing import Optional


class CorrelationIdFilter(logging.Filter):
    """Add the current request correlation ID to every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        from .api.middleware import get_request_id

        record.request_id = get_request_id()
        return True


# Third-party loggers that are too chatty at DEBUG/INFO on a kiosk
QUIET_LOGGERS: dict[str, int] = {
    "aiohttp.access": logging.WARNING,
    "aiohttp.server": logging.WARNING,
    "aiohttp.web": logging.INFO,
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "asyncio": logging.WARNING,
    "icalendar": logging.INFO,
}


def configure_lite_logging(debug_mode: bool = False, force_debug: Optional[bool] = None) -> None:
    """
    Configure logging levels for kiosk_lite.

    Args:
        debug_mode: Whether to enable debug logging for kiosk_lite modules
        force_debug: Override debug mode setting (None to use env var detection)

    Environment Variables:
        KIOSK_DEBUG: Set to '1', 'true', 'yes' to force debug logging
        KIOSK_LOG_LEVEL: Override root log level (DEBUG, INFO, WARNING, ERROR)
    """
    env_debug = os.getenv("KIOSK_DEBUG", "").lower() in ("1", "true", "yes")
    env_log_level = os.getenv("KIOSK_LOG_LEVEL", "").upper()

    if force_debug is not None:
        final_debug = force_debug
    elif env_debug:
        final_debug = True
    else:
        final_debug = debug_mode

    root_level = logging.DEBUG if final_debug else logging.INFO
    if env_log_level in ("DEBUG", "INFO", "WARNING", "ERROR"):
        root_level = getattr(logging, env_log_level)

    # Leave existing handlers alone so the colorized console setup survives
    root_logger = logging.getLogger()
    root_logger.setLevel(root_level)

    correlation_filter = CorrelationIdFilter()

    if not root_logger.handlers:
        handler = logging.StreamHandler()
        handler.setLevel(root_level)
        handler.setFormatter(
            logging.Formatter("[%(asctime)s] [%(request_id)s] %(levelname)s - %(name)s - %(message)s")
        )
        handler.addFilter(correlation_filter)
        root_logger.addHandler(handler)
    else:
        for existing_handler in root_logger.handlers:
            if not any(isinstance(f, CorrelationIdFilter) for f in existing_handler.filters):
                existing_handler.addFilter(correlation_filter)

    logger_config = dict(QUIET_LOGGERS)
    logger_config["kiosk_lite"] = logging.DEBUG if final_debug else logging.INFO

    for logger_name, level in logger_config.items():
        logging.getLogger(logger_name).setLevel(level)

    if final_debug:
        root_logger.info("Debug logging enabled for kiosk_lite modules")
    else:
        root_logger.debug("Production logging configuration applied")


def get_logging_status() -> dict[str, str]:
    """Map of key logger names to their current level names."""
    status = {"root": logging.getLevelName(logging.getLogger().level)}
    for logger_name in ("kiosk_lite", "aiohttp.access", "httpx", "asyncio"):
        status[logger_name] = logging.getLevelName(logging.getLogger(logger_name).level)
    return status
