"""
rpcgate - a rate-limited gateway between browsers and blockchain RPC nodes.

rpcgate keeps browser code away from direct chain-RPC calls:
- Fixed-network RPC proxy that picks the fastest live node per segment
- Generic RPC proxy for callers that already know their upstream
- Upload relay for token images and metadata to content-addressed storage
- Per-client fixed-window rate limiting on every /api/* route

Quick Start:

    rpcgate serve --port 8788

    # From Python
    import asyncio
    from rpcgate import GatewayClient

    async def main():
        async with GatewayClient("http://localhost:8788") as client:
            blockhash = await client.get_latest_blockhash(segment="devnet")
            url = await client.upload_json("meta.json", {"name": "Token"})

    asyncio.run(main())

Embedding the app:

    from rpcgate import GatewayConfig
    from rpcgate.proxy.server import create_app

    app = create_app(GatewayConfig.from_env())

Error Handling:

    from rpcgate import RpcGateError, ConfigurationError

    try:
        url = await relay.upload(artifact)
    except ConfigurationError as e:
        print(f"Config issue: {e.details}")
    except RpcGateError as e:
        print(f"Gateway error {e.status_code}: {e}")
"""

__version__ = "0.1.0"

from .client import GatewayClient, GatewayClientError
from .config import (
    Endpoint,
    EndpointHealth,
    GatewayConfig,
    NetworkSegment,
    QuotaDecision,
    RateLimitConfig,
    SelectorConfig,
    StorageConfig,
    UploadArtifact,
)
from .endpoints import EndpointRegistry, EndpointSelector, HealthProber
from .exceptions import (
    ClientError,
    ConfigurationError,
    InternalError,
    PayloadTooLarge,
    RateLimitExceeded,
    RpcGateError,
    UpstreamError,
    UpstreamTimeoutError,
)
from .ratelimit import FixedWindowRateLimiter
from .storage import UploadRelay

__all__ = [
    "__version__",
    # Client
    "GatewayClient",
    "GatewayClientError",
    # Config & models
    "Endpoint",
    "EndpointHealth",
    "GatewayConfig",
    "NetworkSegment",
    "QuotaDecision",
    "RateLimitConfig",
    "SelectorConfig",
    "StorageConfig",
    "UploadArtifact",
    # Components
    "EndpointRegistry",
    "EndpointSelector",
    "HealthProber",
    "FixedWindowRateLimiter",
    "UploadRelay",
    # Exceptions
    "RpcGateError",
    "ClientError",
    "RateLimitExceeded",
    "PayloadTooLarge",
    "ConfigurationError",
    "UpstreamError",
    "UpstreamTimeoutError",
    "InternalError",
]
