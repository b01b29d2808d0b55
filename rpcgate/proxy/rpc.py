"""JSON-RPC forwarding to upstream nodes.

Two entry points share one forwarding path:

- ``forward_segment``: the upstream is resolved through the endpoint
  selector for a fixed network segment.
- ``forward_generic``: the caller names the upstream URL explicitly.

Either way the result is the upstream body, unmodified, or one of the
rpcgate exceptions. The forwarder does not interpret RPC semantics.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlsplit

import httpx

from ..config import NetworkSegment
from ..endpoints import EndpointSelector
from ..exceptions import ClientError, InternalError, UpstreamError, UpstreamTimeoutError

logger = logging.getLogger(__name__)


@dataclass
class RpcResult:
    """Upstream response relayed to the client."""

    content: bytes
    endpoint: str
    latency_ms: float
    status_code: int = 200


def build_rpc_request(method: Any, params: Any = None, request_id: Any = 1) -> dict[str, Any]:
    """Build a JSON-RPC 2.0 envelope, validating only ``method``."""
    if not method or not isinstance(method, str):
        raise ClientError("method is required")
    return {
        "jsonrpc": "2.0",
        "id": request_id,
        "method": method,
        "params": params if params is not None else [],
    }


def normalize_envelope(body: Any) -> dict[str, Any]:
    """Fill in envelope defaults on a client-supplied request."""
    if not isinstance(body, dict):
        raise ClientError("Request body must be a JSON object")
    envelope = dict(body)
    envelope.setdefault("jsonrpc", "2.0")
    envelope.setdefault("id", 1)
    if envelope.get("params") is None:
        envelope["params"] = []
    if not envelope.get("method") or not isinstance(envelope["method"], str):
        raise ClientError("method is required")
    return envelope


class RpcForwarder:
    """Forwards JSON-RPC requests with a hard timeout."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        selector: EndpointSelector,
        timeout_seconds: float = 10.0,
        allowed_hosts: list[str] | None = None,
    ):
        self.http_client = http_client
        self.selector = selector
        self.timeout_seconds = timeout_seconds
        self.allowed_hosts = {h.lower() for h in allowed_hosts or []}

    async def forward_segment(self, segment: NetworkSegment, body: Any) -> RpcResult:
        """Forward a client envelope to the selected endpoint for ``segment``."""
        segment = NetworkSegment.parse(segment)
        envelope = normalize_envelope(body)
        endpoint = await self.selector.select(segment)
        try:
            return await self._post(endpoint.url, envelope)
        except (UpstreamTimeoutError, InternalError):
            self.selector.invalidate(segment, endpoint)
            raise

    async def forward_generic(
        self, endpoint_url: Any, method: Any, params: Any = None
    ) -> RpcResult:
        """Forward ``method`` to a caller-chosen endpoint."""
        if not endpoint_url or not method:
            raise ClientError("endpoint and method are required")
        url = self._check_url(endpoint_url)
        return await self._post(url, build_rpc_request(method, params))

    def _check_url(self, endpoint_url: Any) -> str:
        if not isinstance(endpoint_url, str):
            raise ClientError("endpoint must be a URL string")
        parts = urlsplit(endpoint_url)
        if parts.scheme not in ("http", "https") or not parts.hostname:
            raise ClientError("endpoint must be an http(s) URL")
        if self.allowed_hosts and parts.hostname.lower() not in self.allowed_hosts:
            raise ClientError("endpoint host is not allowed", details={"host": parts.hostname})
        return endpoint_url

    async def _post(self, url: str, envelope: dict[str, Any]) -> RpcResult:
        method = envelope.get("method")
        logger.debug(f"Forwarding {method} to {url}")
        loop = asyncio.get_running_loop()
        start = loop.time()

        try:
            response = await asyncio.wait_for(
                self.http_client.post(url, json=envelope, timeout=self.timeout_seconds),
                timeout=self.timeout_seconds,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            logger.warning(f"Upstream {url} timed out after {self.timeout_seconds}s ({method})")
            raise UpstreamTimeoutError(
                "Upstream RPC request timed out", details={"endpoint": url, "method": method}
            ) from e
        except httpx.HTTPError as e:
            logger.error(f"Upstream {url} unreachable: {e}")
            raise InternalError(
                "Upstream RPC endpoint unreachable", details={"endpoint": url, "error": str(e)}
            ) from e

        latency_ms = (loop.time() - start) * 1000

        if not response.is_success:
            logger.warning(f"Upstream {url} returned {response.status_code} for {method}")
            raise UpstreamError(
                f"RPC request failed: {response.status_code}",
                status_code=response.status_code,
                body=_error_body(response),
                details={"endpoint": url, "method": method},
            )

        try:
            data = response.json()
        except ValueError as e:
            raise InternalError(
                "Upstream returned an invalid JSON response", details={"endpoint": url}
            ) from e
        if not isinstance(data, (dict, list)):
            raise InternalError(
                "Upstream returned an invalid JSON-RPC envelope", details={"endpoint": url}
            )

        return RpcResult(content=response.content, endpoint=url, latency_ms=latency_ms)


def _error_body(response: httpx.Response) -> Any:
    """Upstream error payload, parsed when it is JSON."""
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text

