"""Tests for the endpoint registry."""

import pytest

from rpcgate.config import GatewayConfig, NetworkSegment
from rpcgate.endpoints import DEFAULT_ENDPOINTS, EndpointRegistry


class TestDefaults:
    def test_every_segment_has_candidates(self):
        registry = EndpointRegistry()
        for segment in NetworkSegment:
            candidates = registry.candidates(segment)
            assert len(candidates) > 0
            assert all(e.segment is segment for e in candidates)

    def test_order_follows_static_list(self):
        registry = EndpointRegistry()
        urls = [e.url for e in registry.candidates(NetworkSegment.MAINNET)]
        assert urls == list(DEFAULT_ENDPOINTS[NetworkSegment.MAINNET])

    def test_default_is_first_candidate(self, registry):
        assert registry.default(NetworkSegment.DEVNET).url == "https://dev-a.test"


class TestOverrides:
    def test_overrides_are_prepended(self):
        registry = EndpointRegistry(
            overrides={NetworkSegment.DEVNET: ["https://my-node.test"]},
            defaults={
                NetworkSegment.DEVNET: ["https://a.test"],
                NetworkSegment.MAINNET: ["https://b.test"],
            },
        )
        urls = [e.url for e in registry.candidates(NetworkSegment.DEVNET)]
        assert urls == ["https://my-node.test", "https://a.test"]

    def test_duplicates_keep_highest_priority(self):
        registry = EndpointRegistry(
            overrides={NetworkSegment.MAINNET: ["https://b.test/"]},
            defaults={
                NetworkSegment.DEVNET: ["https://a.test"],
                NetworkSegment.MAINNET: ["https://x.test", "https://b.test"],
            },
        )
        urls = [e.url for e in registry.candidates(NetworkSegment.MAINNET)]
        assert urls == ["https://b.test", "https://x.test"]

    def test_from_config(self):
        config = GatewayConfig(mainnet_endpoints=["https://helius.test"])
        registry = EndpointRegistry.from_config(config)
        assert registry.default(NetworkSegment.MAINNET).url == "https://helius.test"

    def test_empty_segment_rejected(self):
        with pytest.raises(ValueError):
            EndpointRegistry(defaults={NetworkSegment.DEVNET: ["https://a.test"]})


class TestLookup:
    def test_candidates_accepts_alias(self, registry):
        assert registry.candidates("test") == registry.candidates(NetworkSegment.DEVNET)

    def test_to_dict(self, registry):
        data = registry.to_dict()
        assert data["devnet"] == ["https://dev-a.test", "https://dev-b.test"]
        assert len(data["mainnet"]) == 3
