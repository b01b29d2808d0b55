"""Tests for endpoint selection, caching and refresh coalescing."""

import asyncio
import math

import pytest

from rpcgate.config import Endpoint, EndpointHealth, NetworkSegment
from rpcgate.endpoints import EndpointSelector, HealthProber

DEVNET = NetworkSegment.DEVNET
MAINNET = NetworkSegment.MAINNET


class ScriptedProber:
    """Prober returning preset latencies (None = dead) and counting calls."""

    def __init__(self, latencies: dict[str, float | None], delay: float = 0.01):
        self.latencies = latencies
        self.delay = delay
        self.calls: list[str] = []

    async def probe(self, endpoint: Endpoint) -> EndpointHealth:
        self.calls.append(endpoint.url)
        await asyncio.sleep(self.delay)
        latency = self.latencies.get(endpoint.url)
        if latency is None:
            return EndpointHealth(endpoint=endpoint, is_alive=False, latency_ms=math.inf)
        return EndpointHealth(endpoint=endpoint, is_alive=True, latency_ms=latency)


class TestSelection:
    @pytest.mark.asyncio
    async def test_picks_lowest_latency(self, registry):
        prober = ScriptedProber(
            {"https://main-a.test": 120.0, "https://main-b.test": 40.0, "https://main-c.test": 80.0}
        )
        selector = EndpointSelector(registry, prober)

        endpoint = await selector.select(MAINNET)

        assert endpoint.url == "https://main-b.test"

    @pytest.mark.asyncio
    async def test_ties_go_to_registry_order(self, registry):
        prober = ScriptedProber(
            {"https://main-a.test": None, "https://main-b.test": 50.0, "https://main-c.test": 50.0}
        )
        selector = EndpointSelector(registry, prober)

        assert (await selector.select(MAINNET)).url == "https://main-b.test"

    @pytest.mark.asyncio
    async def test_dead_endpoints_are_skipped(self, registry):
        prober = ScriptedProber({"https://dev-a.test": None, "https://dev-b.test": 900.0})
        selector = EndpointSelector(registry, prober)

        assert (await selector.select(DEVNET)).url == "https://dev-b.test"

    @pytest.mark.asyncio
    async def test_accepts_segment_name(self, registry):
        prober = ScriptedProber({"https://dev-a.test": 10.0})
        selector = EndpointSelector(registry, prober)

        assert (await selector.select("devnet")).url == "https://dev-a.test"


class TestTotalFailure:
    @pytest.mark.asyncio
    async def test_all_dead_returns_first_candidate(self, registry, caplog):
        prober = ScriptedProber({})
        selector = EndpointSelector(registry, prober)

        with caplog.at_level("WARNING"):
            endpoint = await selector.select(MAINNET)

        assert endpoint.url == "https://main-a.test"
        assert "No active endpoints found for mainnet" in caplog.text

    @pytest.mark.asyncio
    async def test_failure_is_not_cached(self, registry):
        prober = ScriptedProber({})
        selector = EndpointSelector(registry, prober)

        await selector.select(MAINNET)
        assert selector.cached(MAINNET) is None

        prober.latencies["https://main-c.test"] = 30.0
        assert (await selector.select(MAINNET)).url == "https://main-c.test"
        assert len(prober.calls) == 6

    @pytest.mark.asyncio
    async def test_real_prober_against_unreachable_nodes(self, registry, rpc_network):
        async with rpc_network.client() as client:
            selector = EndpointSelector(registry, HealthProber(client))
            endpoint = await selector.select(DEVNET)

        assert endpoint == registry.default(DEVNET)

    @pytest.mark.asyncio
    async def test_prober_crash_degrades_to_default(self, registry):
        class BrokenProber:
            async def probe(self, endpoint):
                raise RuntimeError("boom")

        selector = EndpointSelector(registry, BrokenProber())

        assert await selector.select(DEVNET) == registry.default(DEVNET)

    @pytest.mark.asyncio
    async def test_slow_probes_are_cut_off_by_round_timeout(self, registry):
        prober = ScriptedProber({"https://dev-a.test": 5.0, "https://dev-b.test": 1.0}, delay=10)
        selector = EndpointSelector(registry, prober, round_timeout_seconds=0.05)

        loop = asyncio.get_running_loop()
        start = loop.time()
        endpoint = await selector.select(DEVNET)

        assert loop.time() - start < 1.0
        assert endpoint.url == "https://dev-a.test"
        assert all(r.error == "round timeout" for r in selector.last_results(DEVNET))


class TestCache:
    @pytest.mark.asyncio
    async def test_cached_until_ttl(self, registry, clock):
        prober = ScriptedProber({"https://dev-a.test": 10.0, "https://dev-b.test": 20.0})
        selector = EndpointSelector(registry, prober, ttl_seconds=300, clock=clock)

        await selector.select(DEVNET)
        clock.advance(299)
        await selector.select(DEVNET)

        assert len(prober.calls) == 2  # one round of two probes

    @pytest.mark.asyncio
    async def test_expired_entry_triggers_refresh(self, registry, clock):
        prober = ScriptedProber({"https://dev-a.test": 10.0, "https://dev-b.test": 20.0})
        selector = EndpointSelector(registry, prober, ttl_seconds=300, clock=clock)

        await selector.select(DEVNET)
        prober.latencies["https://dev-a.test"] = None
        clock.advance(300)

        assert selector.cached(DEVNET) is None
        assert (await selector.select(DEVNET)).url == "https://dev-b.test"
        assert len(prober.calls) == 4

    @pytest.mark.asyncio
    async def test_segments_cached_independently(self, registry):
        prober = ScriptedProber({"https://dev-b.test": 5.0, "https://main-a.test": 5.0})
        selector = EndpointSelector(registry, prober)

        assert (await selector.select(DEVNET)).url == "https://dev-b.test"
        assert (await selector.select(MAINNET)).url == "https://main-a.test"
        assert selector.cached(DEVNET).endpoint.url == "https://dev-b.test"
        assert selector.cached(MAINNET).endpoint.url == "https://main-a.test"

    @pytest.mark.asyncio
    async def test_invalidate_forces_new_round(self, registry):
        prober = ScriptedProber({"https://dev-a.test": 10.0})
        selector = EndpointSelector(registry, prober)

        endpoint = await selector.select(DEVNET)
        selector.invalidate(DEVNET, endpoint)
        await selector.select(DEVNET)

        assert selector.probe_rounds == 2

    @pytest.mark.asyncio
    async def test_invalidate_ignores_other_endpoint(self, registry):
        prober = ScriptedProber({"https://dev-a.test": 10.0})
        selector = EndpointSelector(registry, prober)

        await selector.select(DEVNET)
        selector.invalidate(DEVNET, Endpoint(url="https://dev-b.test", segment=DEVNET))

        assert selector.cached(DEVNET) is not None

    @pytest.mark.asyncio
    async def test_stats(self, registry):
        prober = ScriptedProber({"https://dev-a.test": 12.0})
        selector = EndpointSelector(registry, prober)
        await selector.select(DEVNET)

        stats = selector.stats()

        assert stats["probe_rounds"] == 1
        assert stats["segments"]["devnet"]["endpoint"] == "https://dev-a.test"
        assert stats["segments"]["mainnet"]["endpoint"] is None


class TestRefreshCoalescing:
    @pytest.mark.asyncio
    async def test_concurrent_selects_share_one_round(self, registry):
        prober = ScriptedProber(
            {"https://main-a.test": 30.0, "https://main-b.test": 10.0, "https://main-c.test": 20.0},
            delay=0.05,
        )
        selector = EndpointSelector(registry, prober)

        results = await asyncio.gather(*(selector.select(MAINNET) for _ in range(50)))

        assert {e.url for e in results} == {"https://main-b.test"}
        assert len(prober.calls) <= len(registry.candidates(MAINNET))
        assert selector.probe_rounds == 1

    @pytest.mark.asyncio
    async def test_concurrent_selects_share_failed_round(self, registry):
        prober = ScriptedProber({}, delay=0.05)
        selector = EndpointSelector(registry, prober)

        results = await asyncio.gather(*(selector.select(DEVNET) for _ in range(20)))

        assert all(e == registry.default(DEVNET) for e in results)
        assert selector.probe_rounds == 1

    @pytest.mark.asyncio
    async def test_cancelled_caller_does_not_cancel_round(self, registry):
        prober = ScriptedProber({"https://dev-b.test": 10.0}, delay=0.05)
        selector = EndpointSelector(registry, prober)

        first = asyncio.ensure_future(selector.select(DEVNET))
        await asyncio.sleep(0.01)
        second = asyncio.ensure_future(selector.select(DEVNET))
        first.cancel()

        assert (await second).url == "https://dev-b.test"
        assert selector.probe_rounds == 1

    @pytest.mark.asyncio
    async def test_segments_refresh_in_parallel(self, registry):
        prober = ScriptedProber({"https://dev-a.test": 1.0, "https://main-a.test": 1.0}, delay=0.05)
        selector = EndpointSelector(registry, prober)

        await asyncio.gather(selector.select(DEVNET), selector.select(MAINNET))

        assert selector.probe_rounds == 2
