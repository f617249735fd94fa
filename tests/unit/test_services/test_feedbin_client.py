"""Tests for the Feedbin HTTP client"""

import pytest
from unittest.mock import AsyncMock, patch

from starindex.models.config import FeedbinSettings
from starindex.services.feedbin_client import FeedbinClient
from starindex.utils.exceptions import FeedbinAPIError, FeedbinRateLimitError


@pytest.fixture
def settings():
    return FeedbinSettings(api_key="dGVzdDp0ZXN0", per_page=2)


def mock_response(status=200, json_data=None, headers=None, text=""):
    resp = AsyncMock()
    resp.status = status
    resp.headers = headers or {}
    resp.json.return_value = json_data
    resp.text.return_value = text
    return resp


@pytest.mark.asyncio
async def test_get_entries_page_success(settings):
    entries = [{"id": 1, "published": "2024-03-10T12:00:00Z"}]

    with patch("aiohttp.ClientSession.get") as mock_get:
        mock_get.return_value.__aenter__.return_value = mock_response(json_data=entries)

        async with FeedbinClient(settings) as client:
            result = await client.get_entries_page(3)

        assert result == entries
        args, kwargs = mock_get.call_args
        assert args[0] == "https://api.feedbin.com/v2/entries.json"
        assert kwargs["params"] == {
            "starred": "true",
            "per_page": 2,
            "page": 3,
            "order": "desc",
        }
        assert kwargs["headers"]["Authorization"] == "Basic dGVzdDp0ZXN0"
        assert kwargs["auth"] is None


@pytest.mark.asyncio
async def test_username_password_uses_basic_auth():
    settings = FeedbinSettings(username="me@example.com", password="secret")

    with patch("aiohttp.ClientSession.get") as mock_get:
        mock_get.return_value.__aenter__.return_value = mock_response(json_data=[])

        async with FeedbinClient(settings) as client:
            await client.get_entries_page(1)

        kwargs = mock_get.call_args.kwargs
        assert "Authorization" not in kwargs["headers"]
        assert kwargs["auth"].login == "me@example.com"


@pytest.mark.asyncio
async def test_rate_limit_carries_retry_after(settings):
    with patch("aiohttp.ClientSession.get") as mock_get:
        mock_get.return_value.__aenter__.return_value = mock_response(
            status=429, headers={"Retry-After": "7"}
        )

        async with FeedbinClient(settings) as client:
            with pytest.raises(FeedbinRateLimitError) as exc_info:
                await client.get_entries_page(1)

        assert exc_info.value.retry_after == 7.0
        assert exc_info.value.status == 429


@pytest.mark.asyncio
async def test_rate_limit_without_retry_after(settings):
    with patch("aiohttp.ClientSession.get") as mock_get:
        mock_get.return_value.__aenter__.return_value = mock_response(status=429)

        async with FeedbinClient(settings) as client:
            with pytest.raises(FeedbinRateLimitError) as exc_info:
                await client.get_entries_page(1)

        assert exc_info.value.retry_after is None


@pytest.mark.asyncio
async def test_server_error(settings):
    with patch("aiohttp.ClientSession.get") as mock_get:
        mock_get.return_value.__aenter__.return_value = mock_response(
            status=503, text="unavailable"
        )

        async with FeedbinClient(settings) as client:
            with pytest.raises(FeedbinAPIError) as exc_info:
                await client.get_entries_page(1)

        assert exc_info.value.status == 503


@pytest.mark.asyncio
async def test_non_list_payload_is_empty_page(settings):
    with patch("aiohttp.ClientSession.get") as mock_get:
        mock_get.return_value.__aenter__.return_value = mock_response(
            json_data={"error": "unexpected"}
        )

        async with FeedbinClient(settings) as client:
            assert await client.get_entries_page(1) == []


@pytest.mark.asyncio
async def test_get_starred_count(settings):
    with patch("aiohttp.ClientSession.get") as mock_get:
        mock_get.return_value.__aenter__.return_value = mock_response(
            json_data=[11, 12, 13, 14, 15]
        )

        async with FeedbinClient(settings) as client:
            assert await client.get_starred_count() == 5

        assert mock_get.call_args.args[0].endswith("/starred_entries.json")
