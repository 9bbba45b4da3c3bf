"""roomstats - room calendar usage analytics.

Fetches per-room calendar feeds, expands weekly recurrences, deduplicates the
result and aggregates it into usage, capacity and occupancy statistics served
over a small JSON API. Imports are kept light so the package can be inspected
without pulling in the aiohttp runtime.
"""

__version__ = "0.1.0"

from typing import Optional


def _init_logging(level_name: Optional[str]) -> None:
    """Initialize root logging to stream to console.

    Honors ROOMSTATS_DEBUG (truthy values: "1", "true", "yes", "on") which forces
    DEBUG verbosity so parser and fetcher debug logs surface during troubleshooting.
    """
    import logging
    import os
    import sys

    from colorlog import ColoredFormatter

    debug_env = os.environ.get("ROOMSTATS_DEBUG", "")
    if debug_env.strip().lower() in ("1", "true", "yes", "on"):
        level_name = "DEBUG"

    root = logging.getLogger()
    # Only configure a handler if none is present to avoid duplicate output.
    if not root.handlers:
        handler = logging.StreamHandler(stream=sys.stderr)
        # HH:MM:SS  LEVEL   logger.name: message, with only the level colorized
        fmt = "%(asctime)s %(log_color)s%(levelname)-7s%(reset)s %(name)s: %(message)s"
        log_colors = {
            "DEBUG": "cyan",
            "INFO": "green",
            "WARNING": "yellow",
            "ERROR": "red",
            "CRITICAL": "bold_red",
        }
        handler.setFormatter(ColoredFormatter(fmt, datefmt="%H:%M:%S", log_colors=log_colors))
        root.addHandler(handler)

    level = logging.INFO
    if isinstance(level_name, str):
        level = getattr(logging, level_name.upper(), logging.INFO)
    root.setLevel(level)
    logging.getLogger(__name__).debug(
        "Logging initialized at level %s", logging.getLevelName(level)
    )


def _load_config(args: Optional[object]) -> dict:
    """Load .env defaults and ROOMSTATS_* variables, then apply CLI overrides."""
    import logging

    from .config_manager import ConfigManager

    logger = logging.getLogger(__name__)
    cfg = ConfigManager().load_full_config()

    if args is not None:
        port = getattr(args, "port", None)
        if port is not None:
            try:
                cfg["server_port"] = int(port)
                logger.debug("Applied command line port override: %d", cfg["server_port"])
            except (ValueError, TypeError) as e:
                logger.warning("Invalid port value from command line '%s': %s", port, e)

    cfg_level = cfg.get("log_level")
    if isinstance(cfg_level, str):
        logger.info("Applying configured log_level=%s", cfg_level)
        logging.getLogger().setLevel(getattr(logging, cfg_level.upper(), logging.INFO))

    return cfg


def run_server(args: Optional[object] = None) -> None:
    """Start the roomstats API server and block until it is signalled to stop.

    Args:
        args: Optional command line arguments namespace (uses ``port``)
    """
    import logging
    import os

    _init_logging(os.environ.get("ROOMSTATS_LOG_LEVEL"))
    cfg = _load_config(args)

    from .server import start_server

    logger = logging.getLogger(__name__)
    logger.debug(
        "Resolved configuration (diagnostic): %s",
        {k: cfg.get(k) for k in ("reference_timezone", "server_bind", "server_port", "rooms_file")},
    )
    start_server(cfg)


def run_report(args: object) -> str:
    """Fetch the requested rooms once and render a usage report.

    Args:
        args: Namespace with ``report`` (room selector), ``range`` and ``format``

    Returns:
        Rendered report text (CSV or JSON)
    """
    import asyncio
    import os

    _init_logging(os.environ.get("ROOMSTATS_LOG_LEVEL", "WARNING"))
    cfg = _load_config(args)

    from .analytics import RoomAnalyticsService
    from .config_manager import AnalyticsSettings
    from .exporter import render_report
    from .models import TimeRange
    from .rooms import load_registry

    settings = AnalyticsSettings.from_config(cfg)
    registry = load_registry(cfg)
    time_range = TimeRange.parse(getattr(args, "range", "week"))
    selector = getattr(args, "report", "all")

    async def _build() -> str:
        async with RoomAnalyticsService(settings, registry) as service:
            feeds = await service.load_rooms(selector)
            report = service.usage_report(feeds, time_range, selector)
        return render_report(report, getattr(args, "format", "json"))

    return asyncio.run(_build())
