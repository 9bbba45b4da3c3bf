"""Unit tests for roomstats.logging_config."""

import logging

import pytest

from roomstats.logging_config import configure_logging, get_logging_status

pytestmark = pytest.mark.unit


@pytest.fixture(autouse=True)
def restore_levels():
    names = ("", "roomstats", "roomstats.ics_fetcher", "httpx", "aiohttp.access")
    saved = {name: logging.getLogger(name).level for name in names}
    yield
    for name, level in saved.items():
        logging.getLogger(name).setLevel(level)


def test_configure_logging_when_debug_then_package_loggers_debug() -> None:
    configure_logging(debug_mode=True)

    assert logging.getLogger("roomstats").level == logging.DEBUG
    assert logging.getLogger("roomstats.ics_fetcher").level == logging.DEBUG
    assert logging.getLogger("httpx").level == logging.WARNING


def test_configure_logging_when_env_debug_then_debug(monkeypatch) -> None:
    monkeypatch.setenv("ROOMSTATS_DEBUG", "true")

    configure_logging(debug_mode=False)

    assert logging.getLogger("roomstats").level == logging.DEBUG


def test_configure_logging_when_forced_off_then_env_ignored(monkeypatch) -> None:
    monkeypatch.setenv("ROOMSTATS_DEBUG", "1")

    configure_logging(force_debug=False)

    assert logging.getLogger("roomstats").level == logging.INFO


def test_configure_logging_when_log_level_env_then_root_level(monkeypatch) -> None:
    monkeypatch.setenv("ROOMSTATS_LOG_LEVEL", "warning")

    configure_logging()

    assert logging.getLogger().level == logging.WARNING


def test_get_logging_status_reports_levels() -> None:
    configure_logging(debug_mode=False)

    status = get_logging_status()

    assert status["roomstats"] == "INFO"
    assert status["aiohttp.access"] == "WARNING"
