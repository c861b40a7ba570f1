"""Tests for the remote store HTTP client."""

import json

import httpx
import pytest

from tablepos.db import MemoryStore, TokenRepository
from tablepos.errors import (
    AuthenticationError,
    RemoteError,
    RemoteUnavailableError,
    SubscriptionExpiredError,
)
from tablepos.remote import RemoteClient

BASE_URL = "https://pos.example.com/api"


@pytest.fixture
def tokens():
    repo = TokenRepository(MemoryStore())
    repo.save("access-1", "refresh-1")
    return repo


def _client(tokens, handler):
    return RemoteClient(BASE_URL, tokens, transport=httpx.MockTransport(handler))


class TestRequests:
    @pytest.mark.asyncio
    async def test_bearer_token_and_order_envelope(self, tokens):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(201, json={"data": {"order": {"id": "remote-1"}}})

        async with _client(tokens, handler) as client:
            created = await client.create_order({"table_number": "4", "items": []})

        assert created == {"id": "remote-1"}
        assert seen[0].method == "POST"
        assert seen[0].url.path == "/api/orders"
        assert seen[0].headers["Authorization"] == "Bearer access-1"
        assert json.loads(seen[0].content) == {"table_number": "4", "items": []}

    @pytest.mark.asyncio
    async def test_list_orders_query(self, tokens):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"orders": [{"id": "a"}]})

        async with _client(tokens, handler) as client:
            orders = await client.list_orders("completed", 1000, 0)

        assert orders == [{"id": "a"}]
        params = seen[0].url.params
        assert params["status"] == "completed"
        assert params["limit"] == "1000"
        assert params["offset"] == "0"

    @pytest.mark.asyncio
    async def test_table_and_payment_endpoints(self, tokens):
        seen = []

        def handler(request):
            seen.append((request.method, request.url.path, json.loads(request.content or b"null")))
            return httpx.Response(200, json={"success": True})

        async with _client(tokens, handler) as client:
            await client.occupy_table("t1", "o1")
            await client.vacate_table("t1")
            await client.complete_payment("o1", {"payment_method": "cash"})
            await client.update_item_status("o1", "i1", "ready")

        assert seen == [
            ("PUT", "/api/tables/t1/occupy", {"order_id": "o1"}),
            ("PUT", "/api/tables/t1/vacant", {}),
            ("POST", "/api/orders/o1/complete-payment", {"payment_method": "cash"}),
            ("PUT", "/api/orders/o1/items/i1/status", {"status": "ready"}),
        ]

    @pytest.mark.asyncio
    async def test_login_stores_tokens(self):
        tokens = TokenRepository(MemoryStore())

        def handler(request):
            return httpx.Response(200, json={"access_token": "a", "refresh_token": "r"})

        async with _client(tokens, handler) as client:
            await client.login("owner@example.com", "secret")

        assert tokens.access_token() == "a"
        assert tokens.refresh_token() == "r"


class TestAuthRetry:
    @pytest.mark.asyncio
    async def test_refresh_once_then_retry(self, tokens):
        calls = []

        def handler(request):
            calls.append(request.url.path)
            if request.url.path == "/api/auth/refresh":
                assert json.loads(request.content) == {"refresh_token": "refresh-1"}
                return httpx.Response(200, json={"access_token": "access-2"})
            if request.headers["Authorization"] == "Bearer access-1":
                return httpx.Response(401, json={"error": "expired"})
            return httpx.Response(200, json={"tables": [{"id": "t1"}]})

        async with _client(tokens, handler) as client:
            tables = await client.list_tables()

        assert tables == [{"id": "t1"}]
        assert calls == ["/api/tables", "/api/auth/refresh", "/api/tables"]
        assert tokens.access_token() == "access-2"

    @pytest.mark.asyncio
    async def test_failed_refresh_logs_out(self, tokens):
        calls = []

        def handler(request):
            calls.append(request.url.path)
            return httpx.Response(401, json={"error": "expired"})

        async with _client(tokens, handler) as client:
            with pytest.raises(AuthenticationError):
                await client.get_menu()

        assert calls == ["/api/menu", "/api/auth/refresh"]
        assert tokens.access_token() is None

    @pytest.mark.asyncio
    async def test_still_unauthorized_after_refresh(self, tokens):
        calls = []

        def handler(request):
            calls.append(request.url.path)
            if request.url.path == "/api/auth/refresh":
                return httpx.Response(200, json={"access_token": "access-2"})
            return httpx.Response(401)

        async with _client(tokens, handler) as client:
            with pytest.raises(AuthenticationError):
                await client.get_menu()

        assert calls == ["/api/menu", "/api/auth/refresh", "/api/menu"]


class TestErrors:
    @pytest.mark.asyncio
    async def test_subscription_expired(self, tokens):
        def handler(request):
            return httpx.Response(402, json={"error": "Subscription expired"})

        async with _client(tokens, handler) as client:
            with pytest.raises(SubscriptionExpiredError) as exc_info:
                await client.get_menu()
        assert exc_info.value.status_code == 402

    @pytest.mark.asyncio
    async def test_server_error_message(self, tokens):
        def handler(request):
            return httpx.Response(500, json={"message": "database down"})

        async with _client(tokens, handler) as client:
            with pytest.raises(RemoteError, match="database down") as exc_info:
                await client.get_order("o1")
        assert exc_info.value.status_code == 500

    @pytest.mark.asyncio
    async def test_transport_failure(self, tokens):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with _client(tokens, handler) as client:
            with pytest.raises(RemoteUnavailableError):
                await client.list_orders()
