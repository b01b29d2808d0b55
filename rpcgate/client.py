"""Async client for a running rpcgate server.

Wraps the gateway's HTTP routes so callers never talk to RPC nodes or the
storage backend directly.

Usage:
    async with GatewayClient("http://localhost:8788") as client:
        balance = await client.get_balance("9xQe...", segment="mainnet")
        url = await client.upload_image("logo.png", png_bytes, "image/png")
"""

from __future__ import annotations

import json
import logging
from typing import Any

import httpx

logger = logging.getLogger(__name__)


class GatewayClientError(Exception):
    """A gateway call failed. ``message`` is the server's ``error`` string."""

    def __init__(self, status_code: int, message: str, body: Any = None):
        super().__init__(f"{status_code}: {message}")
        self.status_code = status_code
        self.message = message
        self.body = body


class GatewayClient:
    """Thin async wrapper over the gateway HTTP surface.

    Requests always target ``base_url``, including through an injected ``http_client``.
    """

    def __init__(
        self,
        base_url: str = "http://127.0.0.1:8788",
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
        api_prefix: str = "/api",
    ):
        self.base_url = base_url.rstrip("/")
        self.api_prefix = api_prefix.rstrip("/")
        self._client = http_client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = http_client is None

    async def __aenter__(self) -> GatewayClient:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # -------------------------------------------------------------------------
    # RPC
    # -------------------------------------------------------------------------

    async def call(self, method: str, params: list | None = None, segment: str = "devnet") -> Any:
        """Call ``method`` through the fixed-network proxy for ``segment``."""
        payload = {"jsonrpc": "2.0", "id": 1, "method": method, "params": params or []}
        return await self._post_json(self._url(f"/rpc/{segment}"), payload)

    async def call_endpoint(self, endpoint: str, method: str, params: list | None = None) -> Any:
        """Call ``method`` on an explicit upstream through the generic proxy."""
        payload = {"endpoint": endpoint, "method": method, "params": params or []}
        return await self._post_json(self._url("/rpc/generic"), payload)

    async def get_latest_blockhash(self, segment: str = "devnet") -> Any:
        return await self.call("getLatestBlockhash", segment=segment)

    async def get_balance(self, public_key: str, segment: str = "devnet") -> Any:
        return await self.call("getBalance", [public_key], segment=segment)

    async def get_token_supply(self, mint_address: str, segment: str = "devnet") -> Any:
        return await self.call("getTokenSupply", [mint_address], segment=segment)

    async def send_transaction(
        self, encoded_transaction: str, segment: str = "devnet", encoding: str = "base64"
    ) -> Any:
        """Submit an already-signed, encoded transaction."""
        return await self.call(
            "sendTransaction", [encoded_transaction, {"encoding": encoding}], segment=segment
        )

    async def current_endpoint(self, segment: str = "devnet") -> dict:
        response = await self._client.get(self._url(f"/endpoints/{segment}"))
        return self._handle(response)

    # -------------------------------------------------------------------------
    # Uploads
    # -------------------------------------------------------------------------

    async def upload_image(
        self, name: str, data: bytes, content_type: str = "application/octet-stream"
    ) -> str:
        """Upload image bytes and return their public URL."""
        response = await self._client.post(
            self._url("/upload"),
            data={"type": "image", "name": name},
            files={"file": (name, data, content_type)},
        )
        return self._handle(response)["url"]

    async def upload_json(self, name: str, obj: Any) -> str:
        """Upload a JSON document (e.g. token metadata) and return its public URL."""
        encoded = json.dumps(obj)
        response = await self._client.post(
            self._url("/upload"),
            data={"type": "json", "name": name, "jsonData": encoded},
            files={"file": (name, encoded.encode("utf-8"), "application/json")},
        )
        return self._handle(response)["url"]

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _url(self, path: str) -> str:
        return f"{self.base_url}{self.api_prefix}{path}"

    async def _post_json(self, url: str, payload: dict) -> Any:
        response = await self._client.post(url, json=payload)
        return self._handle(response)

    @staticmethod
    def _handle(response: httpx.Response) -> Any:
        try:
            body = response.json()
        except ValueError:
            body = None
        if response.is_success:
            return body
        message = body.get("error") if isinstance(body, dict) else None
        message = message or f"Error {response.status_code}"
        logger.debug(f"Gateway call failed: {response.status_code} {message}")
        raise GatewayClientError(response.status_code, message, body)
