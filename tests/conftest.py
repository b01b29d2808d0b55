"""Shared pytest fixtures for rpcgate tests."""

import asyncio
import json
from collections.abc import Awaitable, Callable

import httpx
import pytest

from rpcgate.config import NetworkSegment
from rpcgate.endpoints import EndpointRegistry

Behavior = Callable[[httpx.Request, dict], Awaitable[httpx.Response]]

DEVNET_URLS = ["https://dev-a.test", "https://dev-b.test"]
MAINNET_URLS = ["https://main-a.test", "https://main-b.test", "https://main-c.test"]


class FakeRpcNetwork:
    """Simulated upstream RPC nodes behind an httpx.MockTransport.

    URLs without a registered behaviour refuse connections.
    """

    def __init__(self):
        self.nodes: dict[str, Behavior] = {}
        self.calls: list[tuple[str, str | None]] = []

    def node(
        self,
        url: str,
        results: dict | None = None,
        delay: float = 0.0,
        status_code: int = 200,
        health: str = "ok",
    ) -> None:
        """Register a node answering ``results[method]`` (getHealth -> ``health``)."""
        results = {"getHealth": health, **(results or {})}

        async def behave(request: httpx.Request, body: dict) -> httpx.Response:
            if delay:
                await asyncio.sleep(delay)
            method = body.get("method")
            if status_code != 200:
                return httpx.Response(status_code, json={"error": {"message": "node failure"}})
            return httpx.Response(
                200, json={"jsonrpc": "2.0", "id": body.get("id"), "result": results.get(method)}
            )

        self.nodes[url] = behave

    def raw(self, url: str, status_code: int = 200, **response_kwargs) -> None:
        """Register a node that always answers with the given status and body."""

        async def behave(request: httpx.Request, body: dict) -> httpx.Response:
            return httpx.Response(status_code, **response_kwargs)

        self.nodes[url] = behave

    def hang(self, url: str) -> None:
        """Register a node that never answers."""

        async def behave(request: httpx.Request, body: dict) -> httpx.Response:
            await asyncio.sleep(3600)
            return httpx.Response(200)

        self.nodes[url] = behave

    def calls_to(self, url: str, method: str | None = None) -> int:
        return sum(1 for u, m in self.calls if u == url and (method is None or m == method))

    def method_calls(self, method: str) -> int:
        return sum(1 for _, m in self.calls if m == method)

    async def handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url).rstrip("/")
        body = json.loads(request.content or b"{}")
        self.calls.append((url, body.get("method")))
        behave = self.nodes.get(url)
        if behave is None:
            raise httpx.ConnectError("Connection refused", request=request)
        return await behave(request, body)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


@pytest.fixture
def rpc_network():
    """Fake upstream network with no live nodes."""
    return FakeRpcNetwork()


@pytest.fixture
def registry():
    """Registry with test-only URLs."""
    return EndpointRegistry(
        defaults={
            NetworkSegment.DEVNET: DEVNET_URLS,
            NetworkSegment.MAINNET: MAINNET_URLS,
        }
    )


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()
