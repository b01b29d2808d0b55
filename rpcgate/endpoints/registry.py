"""Static registry of upstream RPC providers per network segment."""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from ..config import Endpoint, GatewayConfig, NetworkSegment

# Ordered by preference; the first entry is the default when nothing is alive.
DEFAULT_ENDPOINTS: dict[NetworkSegment, tuple[str, ...]] = {
    NetworkSegment.DEVNET: (
        "https://api.devnet.solana.com",
        "https://solana-devnet-rpc.allthatnode.com",
    ),
    NetworkSegment.MAINNET: (
        "https://rpc.ankr.com/solana",
        "https://solana-api.projectserum.com",
        "https://api.mainnet-beta.solana.com",
        "https://solana-mainnet-rpc.allthatnode.com",
    ),
}


class EndpointRegistry:
    """Ordered candidate endpoints for each segment.

    Overrides are prepended ahead of the static defaults. Duplicate URLs
    keep their first (highest priority) position.
    """

    def __init__(
        self,
        overrides: Mapping[NetworkSegment, Iterable[str]] | None = None,
        defaults: Mapping[NetworkSegment, Iterable[str]] | None = None,
    ):
        overrides = overrides or {}
        defaults = DEFAULT_ENDPOINTS if defaults is None else defaults
        self._candidates: dict[NetworkSegment, tuple[Endpoint, ...]] = {}

        for segment in NetworkSegment:
            urls = [*overrides.get(segment, ()), *defaults.get(segment, ())]
            seen: set[str] = set()
            endpoints = []
            for url in urls:
                url = url.strip().rstrip("/")
                if url and url not in seen:
                    seen.add(url)
                    endpoints.append(Endpoint(url=url, segment=segment))
            if not endpoints:
                raise ValueError(f"No endpoints registered for segment '{segment.value}'")
            self._candidates[segment] = tuple(endpoints)

    @classmethod
    def from_config(cls, config: GatewayConfig) -> EndpointRegistry:
        overrides = {segment: config.endpoint_overrides(segment) for segment in NetworkSegment}
        return cls(overrides=overrides)

    def candidates(self, segment: NetworkSegment) -> tuple[Endpoint, ...]:
        """Candidates for a segment, highest priority first. Never empty."""
        return self._candidates[NetworkSegment.parse(segment)]

    def default(self, segment: NetworkSegment) -> Endpoint:
        return self.candidates(segment)[0]

    def to_dict(self) -> dict[str, list[str]]:
        return {
            segment.value: [e.url for e in endpoints]
            for segment, endpoints in self._candidates.items()
        }
