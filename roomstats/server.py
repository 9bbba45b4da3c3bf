"""aiohttp server for roomstats.

Starts one refresh loop per configured room and serves the analytics API from
their latest snapshots until SIGINT/SIGTERM.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
import contextlib
from datetime import datetime
import logging
import signal
from typing import Any

from aiohttp import web

from .analytics import RoomAnalyticsService
from .config_manager import AnalyticsSettings, get_config_value
from .http_client import close_all_clients, get_shared_client
from .ics_fetcher import ICSFetcher
from .logging_config import configure_logging
from .middleware import correlation_id_middleware
from .refresher import RefreshCoordinator
from .rooms import RoomRegistry, load_registry
from .routes import register_api_routes
from .timezone_utils import now_utc

logger = logging.getLogger(__name__)

# Upper bound on waiting for in-flight refresh ticks at shutdown
SHUTDOWN_GRACE_SECONDS = 10.0

SETTINGS_KEY = web.AppKey("settings", AnalyticsSettings)
REGISTRY_KEY = web.AppKey("registry", RoomRegistry)
COORDINATOR_KEY = web.AppKey("coordinator", RefreshCoordinator)


def _make_app(
    settings: AnalyticsSettings,
    registry: RoomRegistry,
    service: RoomAnalyticsService,
    coordinator: RefreshCoordinator,
    time_provider: Callable[[], datetime] = now_utc,
) -> web.Application:
    """Create the aiohttp application with the API routes wired to the coordinator."""
    app = web.Application(middlewares=[correlation_id_middleware])
    app[SETTINGS_KEY] = settings
    app[REGISTRY_KEY] = registry
    app[COORDINATOR_KEY] = coordinator

    register_api_routes(
        app,
        settings=settings,
        registry=registry,
        service=service,
        feed_provider=coordinator.feeds,
        time_provider=time_provider,
    )
    logger.debug("Registered API routes for %d rooms", len(registry))
    return app


async def _serve(config: Any) -> None:
    """Run the server and refresh loops until signalled to stop."""
    stop_event = asyncio.Event()
    settings = AnalyticsSettings.from_config(config)
    registry = load_registry(config)

    shared_client = await get_shared_client("roomstats_server")
    fetcher = ICSFetcher(settings, client=shared_client)
    service = RoomAnalyticsService(settings, registry, fetcher=fetcher)
    coordinator = RefreshCoordinator(service, registry, settings.refresh_interval_seconds)

    app = _make_app(settings, registry, service, coordinator)
    runner = web.AppRunner(app)
    await runner.setup()

    host = get_config_value(config, "server_bind", settings.server_bind)
    port = int(get_config_value(config, "server_port", settings.server_port))
    site = web.TCPSite(runner, host=host, port=port)
    try:
        await site.start()
    except OSError:
        logger.exception("Failed to start server on %s:%d", host, port)
        await runner.cleanup()
        await close_all_clients()
        raise
    logger.info(
        "Server started on %s:%d (%d rooms, reference timezone %s)",
        host,
        port,
        len(registry),
        settings.reference_timezone,
    )

    coordinator.start()

    loop = asyncio.get_running_loop()

    def _on_signal() -> None:
        logger.info("Shutdown signal received")
        stop_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, _on_signal)

    await stop_event.wait()
    logger.info("Stop event received, shutting down")

    # Loops finish their in-flight tick; they are never cancelled
    coordinator.stop()
    await coordinator.wait_stopped(SHUTDOWN_GRACE_SECONDS)

    await runner.cleanup()
    await service.close()

    try:
        await close_all_clients()
        logger.debug("Shared HTTP clients cleaned up")
    except Exception as e:
        logger.warning("Error cleaning up shared HTTP clients: %s", e)

    logger.info("Server shutdown complete")


def start_server(config: Any) -> None:
    """Start the asyncio event loop and HTTP server.

    Args:
        config: dict or settings-like object with keys such as ``server_bind``,
            ``server_port``, ``refresh_interval_seconds``, ``reference_timezone``,
            ``rooms_file`` and ``debug_logging``

    Blocks the calling thread until SIGINT/SIGTERM is received.
    """
    configure_logging(debug_mode=bool(get_config_value(config, "debug_logging", False)))

    try:
        logger.debug("Running asyncio event loop for server")
        asyncio.run(_serve(config))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    except Exception:
        logger.exception("Server terminated unexpectedly")
