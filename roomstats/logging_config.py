"""
Central logging configuration for roomstats.

Suppresses verbose debug logs from third-party libraries while keeping the
package's own diagnostics, and stamps every record with the request
correlation id.
"""

import logging
import os
from typing import Optional


class CorrelationIdFilter(logging.Filter):
    """Add correlation ID to all log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        # Import here to avoid circular dependency
        from .middleware import get_request_id

        record.request_id = get_request_id()
        return True


ROOMSTATS_MODULES = (
    "roomstats",
    "roomstats.server",
    "roomstats.ics_fetcher",
    "roomstats.ics_parser",
    "roomstats.rrule_expander",
    "roomstats.pipeline",
    "roomstats.analytics",
    "roomstats.refresher",
)

NOISY_LOGGERS: dict[str, int] = {
    "aiohttp.access": logging.WARNING,
    "aiohttp.server": logging.WARNING,
    "aiohttp.web": logging.INFO,
    "aiohttp.web_log": logging.WARNING,
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "asyncio": logging.WARNING,
    "icalendar": logging.INFO,
}


def configure_logging(debug_mode: bool = False, force_debug: Optional[bool] = None) -> None:
    """
    Configure logging levels for roomstats.

    Args:
        debug_mode: Whether to enable debug logging for roomstats modules
        force_debug: Override debug mode setting (None to use env var detection)

    Environment Variables:
        ROOMSTATS_DEBUG: Set to '1', 'true', 'yes' to force debug logging
        ROOMSTATS_LOG_LEVEL: Override root log level (DEBUG, INFO, WARNING, ERROR)
    """
    env_debug = os.getenv("ROOMSTATS_DEBUG", "").lower() in ("1", "true", "yes")
    env_log_level = os.getenv("ROOMSTATS_LOG_LEVEL", "").upper()

    if force_debug is not None:
        final_debug = force_debug
    elif env_debug:
        final_debug = True
    else:
        final_debug = debug_mode

    root_level = logging.DEBUG if final_debug else logging.INFO
    if env_log_level in ("DEBUG", "INFO", "WARNING", "ERROR"):
        root_level = getattr(logging, env_log_level)

    # Don't use force=True so the colorlog handler from _init_logging survives
    root_logger = logging.getLogger()
    root_logger.setLevel(root_level)

    correlation_filter = CorrelationIdFilter()
    if not root_logger.handlers:
        handler = logging.StreamHandler()
        handler.setLevel(root_level)
        handler.setFormatter(
            logging.Formatter(
                "[%(asctime)s] [%(request_id)s] %(levelname)s - %(name)s - %(message)s"
            )
        )
        handler.addFilter(correlation_filter)
        root_logger.addHandler(handler)
    else:
        for existing_handler in root_logger.handlers:
            if not any(isinstance(f, CorrelationIdFilter) for f in existing_handler.filters):
                existing_handler.addFilter(correlation_filter)

    logger_config = dict(NOISY_LOGGERS)
    package_level = logging.DEBUG if final_debug else logging.INFO
    for module in ROOMSTATS_MODULES:
        logger_config[module] = package_level

    for logger_name, level in logger_config.items():
        logging.getLogger(logger_name).setLevel(level)

    if final_debug:
        root_logger.info("Debug logging enabled for roomstats modules")
    else:
        root_logger.info("Production logging configuration applied")


def get_logging_status() -> dict[str, str]:
    """
    Get current logging configuration status.

    Returns:
        Dictionary mapping logger names to their current levels
    """
    status = {"root": logging.getLevelName(logging.getLogger().level)}
    for logger_name in ("roomstats", "aiohttp.access", "httpx", "asyncio"):
        status[logger_name] = logging.getLevelName(logging.getLogger(logger_name).level)
    return status
