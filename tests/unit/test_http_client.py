"""Unit tests for roomstats.http_client."""

import pytest

from roomstats.http_client import DEFAULT_HEADERS, close_all_clients, get_shared_client

pytestmark = pytest.mark.unit


class TestSharedHTTPClient:
    """Shared pooled client management."""

    async def test_get_shared_client_reuses_existing_client(self) -> None:
        first = await get_shared_client("test")
        second = await get_shared_client("test")

        assert first is second
        assert first.headers["User-Agent"] == DEFAULT_HEADERS["User-Agent"]

    async def test_get_shared_client_different_ids(self) -> None:
        first = await get_shared_client("one")
        second = await get_shared_client("two")

        assert first is not second

    async def test_close_all_clients_closes_all(self) -> None:
        first = await get_shared_client("one")
        second = await get_shared_client("two")

        await close_all_clients()

        assert first.is_closed
        assert second.is_closed

    async def test_get_shared_client_after_close_creates_new_client(self) -> None:
        first = await get_shared_client("test")
        await close_all_clients()

        second = await get_shared_client("test")

        assert second is not first
        assert not second.is_closed
