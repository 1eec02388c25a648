#!/usr/bin/env python3
"""Unit tests for the Graph HTTP client.

Tests cover:
    - URL building and nextLink passthrough
    - Retry on transient read failures
    - Single-attempt writes
    - @odata.nextLink pagination
    - Graph error message extraction
"""

import sys
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

sys.path.insert(0, str(__file__).rsplit("/tests", 1)[0])
from src.primary_user.api.client import (
    DEFAULT_GRAPH_BASE_URL,
    GraphClient,
    PaginationConfig,
    graph_error_message,
)
from src.primary_user.api.exceptions import (
    ConfigurationError,
    NotFoundError,
    RateLimitError,
    ServerError,
    TokenExpiredError,
    ValidationError,
)


@pytest.fixture
def token_manager():
    manager = MagicMock()
    manager.get_token = AsyncMock(return_value="token")
    return manager


@pytest.fixture
def client(token_manager, monkeypatch):
    monkeypatch.delenv("GRAPH_BASE_URL", raising=False)
    return GraphClient(token_manager)


@pytest.fixture
def no_sleep():
    with patch("src.primary_user.api.client.asyncio.sleep", new=AsyncMock()) as sleep:
        yield sleep


# ============================================
# Construction
# ============================================

class TestGraphClientInit:

    def test_defaults_to_beta(self, client):
        assert client.base_url == DEFAULT_GRAPH_BASE_URL

    def test_base_url_from_env(self, token_manager, monkeypatch):
        monkeypatch.setenv("GRAPH_BASE_URL", "https://graph.microsoft.com/v1.0/")
        assert GraphClient(token_manager).base_url == "https://graph.microsoft.com/v1.0"

    def test_invalid_base_url(self, token_manager):
        with pytest.raises(ConfigurationError):
            GraphClient(token_manager, base_url="graph.microsoft.com")

    def test_build_url(self, client):
        assert client._build_url("/users/a") == f"{DEFAULT_GRAPH_BASE_URL}/users/a"
        next_link = "https://graph.microsoft.com/beta/auditLogs/signIns?$skiptoken=x"
        assert client._build_url(next_link) == next_link

    @pytest.mark.asyncio
    async def test_request_outside_context_raises(self, client):
        with pytest.raises(RuntimeError):
            await client._request("GET", "/users")


# ============================================
# Retry behaviour
# ============================================

class TestRetry:

    @pytest.mark.asyncio
    async def test_get_retries_server_errors(self, client, no_sleep):
        client._request = AsyncMock(side_effect=[
            ServerError("boom", status_code=503),
            {"id": "1"},
        ])

        assert await client.get("/users/a") == {"id": "1"}
        assert client._request.call_count == 2
        no_sleep.assert_awaited_once_with(1.0)

    @pytest.mark.asyncio
    async def test_get_honours_retry_after(self, client, no_sleep):
        client._request = AsyncMock(side_effect=[
            RateLimitError(retry_after=7, endpoint="/users"),
            {"value": []},
        ])

        await client.get("/users")

        no_sleep.assert_awaited_once_with(7)

    @pytest.mark.asyncio
    async def test_get_refreshes_token_on_401(self, client, token_manager, no_sleep):
        client._request = AsyncMock(side_effect=[TokenExpiredError(), {"ok": True}])

        assert await client.get("/me") == {"ok": True}
        token_manager.invalidate.assert_called_once()

    @pytest.mark.asyncio
    async def test_not_found_is_not_retried(self, client, no_sleep):
        client._request = AsyncMock(side_effect=NotFoundError("Resource", "/users/x"))

        with pytest.raises(NotFoundError):
            await client.get("/users/x")

        assert client._request.call_count == 1

    @pytest.mark.asyncio
    async def test_server_error_raised_after_last_attempt(self, client, no_sleep):
        client._request = AsyncMock(side_effect=ServerError("down", status_code=500))

        with pytest.raises(ServerError):
            await client.get("/users")

        assert client._request.call_count == 3

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [
        ServerError("down", status_code=503),
        RateLimitError(retry_after=5),
        ValidationError("bad ref"),
    ])
    async def test_post_is_sent_once(self, client, no_sleep, error):
        client._request = AsyncMock(side_effect=error)

        with pytest.raises(type(error)):
            await client.post("/deviceManagement/managedDevices('m1')/users/$ref", json_body={})

        assert client._request.call_count == 1
        no_sleep.assert_not_awaited()


# ============================================
# Pagination
# ============================================

class TestPagination:

    @pytest.mark.asyncio
    async def test_follows_next_link(self, client):
        next_link = "https://graph.microsoft.com/beta/groups?$skiptoken=abc"
        client.get = AsyncMock(side_effect=[
            {"value": [{"id": "1"}, {"id": "2"}], "@odata.nextLink": next_link},
            {"value": [{"id": "3"}]},
        ])

        items = await client.fetch_all("/groups", params={"$filter": "x"})

        assert [i["id"] for i in items] == ["1", "2", "3"]
        first, second = client.get.call_args_list
        assert first.args == ("/groups",)
        assert first.kwargs["params"] == {"$filter": "x", "$top": 100}
        # nextLink already carries the query
        assert second.args == (next_link,)
        assert second.kwargs["params"] is None

    @pytest.mark.asyncio
    async def test_max_pages(self, client):
        client.get = AsyncMock(return_value={"value": [{"id": "1"}], "@odata.nextLink": "https://x/next"})

        items = await client.fetch_all("/groups", config=PaginationConfig(max_pages=2))

        assert len(items) == 2
        assert client.get.call_count == 2

    @pytest.mark.asyncio
    async def test_delay_between_pages(self, client, no_sleep):
        client.get = AsyncMock(side_effect=[
            {"value": [{"id": "1"}], "@odata.nextLink": "https://x/next"},
            {"value": []},
        ])

        await client.fetch_all("/auditLogs/signIns", config=PaginationConfig(delay_between_pages=0.5))

        no_sleep.assert_awaited_once_with(0.5)


# ============================================
# Error mapping
# ============================================

class TestErrorMapping:

    def test_graph_error_message(self):
        body = '{"error": {"code": "Request_BadRequest", "message": "User is not licensed"}}'
        assert graph_error_message(body) == "User is not licensed"

    @pytest.mark.parametrize("body", [None, "", "<html>oops</html>", "[]", '{"error": "x"}'])
    def test_graph_error_message_absent(self, body):
        assert graph_error_message(body) is None

    def test_validation_error_carries_graph_message(self, client):
        error = client._create_api_error(
            status=400,
            method="POST",
            endpoint="/ref",
            response_body='{"error": {"message": "Device is not in a valid state"}}',
        )
        assert isinstance(error, ValidationError)
        assert error.message.endswith(": Device is not in a valid state")

    def test_status_mapping(self, client):
        assert isinstance(client._create_api_error(404, "GET", "/x", ""), NotFoundError)
        assert isinstance(client._create_api_error(401, "GET", "/x", ""), TokenExpiredError)
        assert isinstance(client._create_api_error(502, "GET", "/x", ""), ServerError)

        throttled = client._create_api_error(429, "GET", "/x", "", retry_after="12")
        assert isinstance(throttled, RateLimitError)
        assert throttled.retry_after == 12


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
