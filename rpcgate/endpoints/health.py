"""Liveness probing for upstream RPC endpoints."""

from __future__ import annotations

import asyncio
import logging
import math
import time

import httpx

from ..config import Endpoint, EndpointHealth

logger = logging.getLogger(__name__)

HEALTH_REQUEST = {"jsonrpc": "2.0", "id": 1, "method": "getHealth"}


class HealthProber:
    """Sends a getHealth call to one endpoint and times it.

    The prober holds no per-probe state, so any number of probes may run
    concurrently against the same instance.
    """

    def __init__(self, http_client: httpx.AsyncClient, timeout_seconds: float = 3.0):
        self.http_client = http_client
        self.timeout_seconds = timeout_seconds

    async def probe(self, endpoint: Endpoint) -> EndpointHealth:
        """Check one endpoint. Never raises; failures report is_alive=False."""
        start = time.perf_counter()
        try:
            response = await asyncio.wait_for(
                self.http_client.post(
                    endpoint.url, json=HEALTH_REQUEST, timeout=self.timeout_seconds
                ),
                timeout=self.timeout_seconds,
            )
            if not response.is_success:
                return self._dead(endpoint, f"HTTP {response.status_code}")
            data = response.json()
            if not isinstance(data, dict) or data.get("result") != "ok":
                return self._dead(endpoint, "unhealthy response")
        except asyncio.TimeoutError:
            return self._dead(endpoint, "timeout")
        except (httpx.HTTPError, ValueError) as e:
            return self._dead(endpoint, f"{type(e).__name__}: {e}")

        latency_ms = (time.perf_counter() - start) * 1000
        logger.debug(f"Endpoint {endpoint.url} alive ({latency_ms:.0f}ms)")
        return EndpointHealth(endpoint=endpoint, is_alive=True, latency_ms=latency_ms)

    @staticmethod
    def _dead(endpoint: Endpoint, reason: str) -> EndpointHealth:
        logger.warning(f"Endpoint {endpoint.url} check failed: {reason}")
        return EndpointHealth(endpoint=endpoint, is_alive=False, latency_ms=math.inf, error=reason)
