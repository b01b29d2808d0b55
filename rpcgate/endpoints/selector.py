"""Pick the fastest live endpoint per segment, with a TTL cache.

Selection runs one probe round against every registry candidate, keeps the
fastest live endpoint for ``ttl_seconds`` and answers from that cache until
it expires. Concurrent callers that find the cache empty share a single
in-flight probe round per segment instead of each starting their own.

Usage:
    selector = EndpointSelector(registry, prober)
    endpoint = await selector.select(NetworkSegment.MAINNET)
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

from ..config import Endpoint, EndpointHealth, NetworkSegment
from .registry import EndpointRegistry

logger = logging.getLogger(__name__)


class Prober(Protocol):
    async def probe(self, endpoint: Endpoint) -> EndpointHealth: ...


@dataclass
class CachedEndpoint:
    """The current selection for one segment."""

    endpoint: Endpoint
    latency_ms: float
    expires_at: float  # In selector clock time


class EndpointSelector:
    """Chooses an upstream endpoint per segment. Never raises."""

    def __init__(
        self,
        registry: EndpointRegistry,
        prober: Prober,
        ttl_seconds: float = 300.0,
        round_timeout_seconds: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.registry = registry
        self.prober = prober
        self.ttl_seconds = ttl_seconds
        self.round_timeout_seconds = round_timeout_seconds
        self._clock = clock

        self._cache: dict[NetworkSegment, CachedEndpoint] = {}
        self._inflight: dict[NetworkSegment, asyncio.Future[Endpoint]] = {}
        self._last_results: dict[NetworkSegment, list[EndpointHealth]] = {}
        self.probe_rounds = 0

    def cached(self, segment: NetworkSegment) -> CachedEndpoint | None:
        """Live cache entry for a segment, or None if absent or expired."""
        entry = self._cache.get(segment)
        if entry is None:
            return None
        if entry.expires_at <= self._clock():
            # Expired entries are never handed out
            self._cache.pop(segment, None)
            return None
        return entry

    async def select(self, segment: NetworkSegment) -> Endpoint:
        """Return the endpoint to use for ``segment``."""
        segment = NetworkSegment.parse(segment)
        entry = self.cached(segment)
        if entry is not None:
            return entry.endpoint

        future = self._inflight.get(segment)
        if future is None:
            future = asyncio.ensure_future(self._refresh(segment))
            self._inflight[segment] = future
            future.add_done_callback(lambda f, s=segment: self._clear_inflight(s, f))

        try:
            # Shielded so one caller going away does not cancel the shared round
            return await asyncio.shield(future)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Endpoint selection for {segment.value} failed: {e}")
            return self.registry.default(segment)

    def invalidate(self, segment: NetworkSegment, endpoint: Endpoint | None = None) -> None:
        """Drop the cached selection so the next call probes again.

        When ``endpoint`` is given, the entry is only dropped if it still
        points at that endpoint.
        """
        entry = self._cache.get(segment)
        if entry is None:
            return
        if endpoint is None or entry.endpoint == endpoint:
            logger.info(f"Invalidating cached endpoint for {segment.value}: {entry.endpoint.url}")
            self._cache.pop(segment, None)

    def last_results(self, segment: NetworkSegment) -> list[EndpointHealth]:
        return list(self._last_results.get(segment, []))

    async def probe_all(self, segment: NetworkSegment) -> list[EndpointHealth]:
        """Probe every candidate concurrently, bounded by the round timeout.

        Probes still running when the round times out are cancelled and
        reported as dead.
        """
        candidates = self.registry.candidates(segment)
        tasks = [asyncio.ensure_future(self.prober.probe(c)) for c in candidates]
        done, pending = await asyncio.wait(tasks, timeout=self.round_timeout_seconds)
        for task in pending:
            task.cancel()

        results = []
        for endpoint, task in zip(candidates, tasks):
            if task not in done or task.cancelled():
                error = "round timeout"
            elif task.exception() is not None:
                e = task.exception()
                logger.error(f"Probe of {endpoint.url} crashed: {type(e).__name__}: {e}")
                error = f"{type(e).__name__}: {e}"
            else:
                results.append(task.result())
                continue
            results.append(EndpointHealth(endpoint=endpoint, is_alive=False, error=error))
        return results

    def stats(self) -> dict:
        now = self._clock()
        segments = {}
        for segment in NetworkSegment:
            entry = self._cache.get(segment)
            live = entry is not None and entry.expires_at > now
            segments[segment.value] = {
                "endpoint": entry.endpoint.url if live else None,
                "latency_ms": round(entry.latency_ms, 1) if live else None,
                "expires_in": round(entry.expires_at - now, 1) if live else None,
                "refreshing": segment in self._inflight,
            }
        return {
            "ttl_seconds": self.ttl_seconds,
            "probe_rounds": self.probe_rounds,
            "segments": segments,
        }

    async def _refresh(self, segment: NetworkSegment) -> Endpoint:
        self.probe_rounds += 1
        results = await self.probe_all(segment)
        self._last_results[segment] = results

        # Ties go to the earlier registry entry
        alive = [(r.latency_ms, index, r) for index, r in enumerate(results) if r.is_alive]
        if not alive:
            default = self.registry.default(segment)
            logger.warning(
                f"No active endpoints found for {segment.value}, using default {default.url}"
            )
            return default

        latency_ms, _, best = min(alive, key=lambda item: (item[0], item[1]))
        self._cache[segment] = CachedEndpoint(
            endpoint=best.endpoint,
            latency_ms=latency_ms,
            expires_at=self._clock() + self.ttl_seconds,
        )
        logger.info(
            f"Using best endpoint for {segment.value}: {best.endpoint.url} ({latency_ms:.0f}ms)"
        )
        return best.endpoint

    def _clear_inflight(self, segment: NetworkSegment, future: asyncio.Future) -> None:
        if self._inflight.get(segment) is future:
            del self._inflight[segment]
