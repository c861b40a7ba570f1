"""Async HTTP client for the remote order, table and menu stores."""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import urlencode

import httpx

from ..db.repositories import TokenRepository
from ..errors import (
    AuthenticationError,
    RemoteError,
    RemoteUnavailableError,
    SubscriptionExpiredError,
)

logger = logging.getLogger(__name__)


class RemoteClient:
    """Thin request/response wrapper around the POS backend.

    Every request carries the stored bearer token. A 401 on a non-auth
    endpoint triggers exactly one token refresh and one retry; if that
    fails the stored tokens are cleared and AuthenticationError is raised.
    All other failures surface as RemoteError for the caller to fall back
    on local state.
    """

    def __init__(
        self,
        base_url: str,
        tokens: TokenRepository,
        *,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._tokens = tokens
        self._http = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> RemoteClient:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    # ── plumbing ──

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        token = self._tokens.access_token()
        if token:
            headers["Authorization"] = f"Bearer {token}"
        else:
            logger.warning("No access token; request will be unauthorized")
        return headers

    async def _send(self, method: str, path: str, body: Any = None) -> httpx.Response:
        try:
            return await self._http.request(
                method, path, json=body, headers=self._headers()
            )
        except httpx.TransportError as e:
            raise RemoteUnavailableError(f"{method} {path} failed: {e}") from e

    async def _request(
        self, method: str, path: str, body: Any = None, *, retry_auth: bool = True
    ) -> Any:
        logger.debug("%s %s", method, path)
        response = await self._send(method, path, body)

        if response.status_code == 401:
            if retry_auth and not path.startswith("/auth/"):
                logger.warning("401 from %s; refreshing access token", path)
                if await self.refresh_access_token():
                    response = await self._send(method, path, body)
            if response.status_code == 401:
                logger.error("Authentication failed; clearing stored session")
                await self.logout()
                raise AuthenticationError(
                    "Authentication failed. Please login again.", status_code=401
                )

        if response.status_code == 402:
            raise SubscriptionExpiredError(
                _error_message(response)
                or "Your subscription has expired. Please renew to continue.",
                status_code=402,
            )

        if response.is_error:
            raise RemoteError(
                _error_message(response)
                or f"Request failed with status {response.status_code}",
                status_code=response.status_code,
            )

        return _unwrap(response)

    # ── auth ──

    async def login(self, email: str, password: str) -> dict:
        data = await self._request(
            "POST", "/auth/login", {"email": email, "password": password}
        )
        self._tokens.save(data["access_token"], data.get("refresh_token"))
        return data

    async def refresh_access_token(self) -> bool:
        """Exchange the stored refresh token for a new access token."""
        refresh_token = self._tokens.refresh_token()
        if not refresh_token:
            logger.warning("No refresh token stored")
            return False
        try:
            data = await self._request(
                "POST",
                "/auth/refresh",
                {"refresh_token": refresh_token},
                retry_auth=False,
            )
        except RemoteError as e:
            logger.warning("Token refresh failed: %s", e)
            return False
        token = (data or {}).get("access_token")
        if not token:
            return False
        self._tokens.save(token, data.get("refresh_token"))
        return True

    async def logout(self) -> None:
        self._tokens.clear()

    # ── orders ──

    async def create_order(self, request: dict) -> dict:
        data = await self._request("POST", "/orders", request)
        return _unwrap_key(data, "order")

    async def get_order(self, order_id: str) -> dict:
        data = await self._request("GET", f"/orders/{order_id}")
        return _unwrap_key(data, "order")

    async def update_order(self, order_id: str, request: dict) -> dict:
        """Send an order update; ``request["items"]`` holds only the new items."""
        data = await self._request("PUT", f"/orders/{order_id}", request)
        return _unwrap_key(data, "order")

    async def list_orders(
        self, status: str | None = None, limit: int = 50, offset: int = 0
    ) -> list[dict]:
        params: dict[str, Any] = {}
        if status:
            params["status"] = status
        params["limit"] = limit
        params["offset"] = offset
        data = await self._request("GET", f"/orders?{urlencode(params)}")
        if isinstance(data, list):
            return data
        return (data or {}).get("orders") or []

    async def update_item_status(self, order_id: str, item_id: str, status: str) -> None:
        await self._request(
            "PUT", f"/orders/{order_id}/items/{item_id}/status", {"status": status}
        )

    async def complete_payment(self, order_id: str, payment: dict) -> dict:
        return await self._request(
            "POST", f"/orders/{order_id}/complete-payment", payment
        )

    # ── tables ──

    async def list_tables(self) -> list[dict]:
        data = await self._request("GET", "/tables")
        if isinstance(data, list):
            return data
        return (data or {}).get("tables") or []

    async def occupy_table(self, table_id: str, order_id: str) -> dict:
        return await self._request(
            "PUT", f"/tables/{table_id}/occupy", {"order_id": order_id}
        )

    async def vacate_table(self, table_id: str) -> dict:
        return await self._request("PUT", f"/tables/{table_id}/vacant", {})

    # ── menu ──

    async def get_menu(self) -> Any:
        return await self._request("GET", "/menu")


def _unwrap(response: httpx.Response) -> Any:
    """Decode a JSON body, unwrapping a top-level ``{"data": ...}`` envelope."""
    if not response.content:
        return None
    try:
        parsed = response.json()
    except ValueError:
        return None
    if isinstance(parsed, dict) and "data" in parsed:
        return parsed["data"]
    return parsed


def _unwrap_key(data: Any, key: str) -> Any:
    if isinstance(data, dict) and isinstance(data.get(key), dict):
        return data[key]
    return data


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return ""
    if isinstance(body, dict):
        return str(body.get("error") or body.get("message") or "")
    return ""
