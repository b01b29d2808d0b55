"""Configuration and data models for rpcgate."""

from __future__ import annotations

import json
import math
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from .exceptions import ClientError, ConfigurationError


class NetworkSegment(str, Enum):
    """Deployment targets the gateway can route to."""

    DEVNET = "devnet"  # Test network
    MAINNET = "mainnet"  # Production network

    @classmethod
    def parse(cls, value: str | NetworkSegment) -> NetworkSegment:
        """Resolve a segment from its name or a common alias."""
        if isinstance(value, NetworkSegment):
            return value
        key = (value or "").strip().lower()
        segment = _SEGMENT_ALIASES.get(key)
        if segment is None:
            raise ClientError(
                f"Unknown network segment '{value}'",
                details={"valid_segments": [s.value for s in cls]},
            )
        return segment


_SEGMENT_ALIASES: dict[str, NetworkSegment] = {
    "devnet": NetworkSegment.DEVNET,
    "test": NetworkSegment.DEVNET,
    "testnet": NetworkSegment.DEVNET,
    "mainnet": NetworkSegment.MAINNET,
    "mainnet-beta": NetworkSegment.MAINNET,
    "production": NetworkSegment.MAINNET,
}


# =============================================================================
# Data Models
# =============================================================================


@dataclass(frozen=True)
class Endpoint:
    """An upstream RPC provider for one network segment."""

    url: str
    segment: NetworkSegment


@dataclass
class EndpointHealth:
    """Result of a single liveness probe."""

    endpoint: Endpoint
    is_alive: bool
    latency_ms: float = math.inf
    checked_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "url": self.endpoint.url,
            "segment": self.endpoint.segment.value,
            "alive": self.is_alive,
            "latency_ms": round(self.latency_ms, 1) if self.is_alive else None,
            "checked_at": self.checked_at.isoformat(),
            "error": self.error,
        }


@dataclass(frozen=True)
class UploadArtifact:
    """A payload on its way to the storage backend."""

    name: str
    content_type: str
    payload: bytes

    @classmethod
    def from_bytes(
        cls, name: str, payload: bytes, content_type: str | None = None
    ) -> UploadArtifact:
        return cls(
            name=name,
            content_type=content_type or "application/octet-stream",
            payload=payload,
        )

    @classmethod
    def from_json(cls, name: str, data: Any) -> UploadArtifact:
        body = json.dumps(data, separators=(",", ":"), ensure_ascii=False)
        return cls(name=name, content_type="application/json", payload=body.encode("utf-8"))

    @property
    def size(self) -> int:
        return len(self.payload)


@dataclass
class QuotaDecision:
    """Outcome of one admission check."""

    allowed: bool
    limit: int
    remaining: int
    reset_at: float  # Epoch seconds when the current window ends
    retry_after: int  # Whole seconds until reset_at

    def headers(self) -> dict[str, str]:
        """X-RateLimit-* headers describing this decision."""
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(math.ceil(self.reset_at)),
        }


# =============================================================================
# Configuration
# =============================================================================


@dataclass
class SelectorConfig:
    """Endpoint selection and health probing."""

    ttl_seconds: float = 300.0  # How long a chosen endpoint stays cached
    probe_timeout_seconds: float = 3.0  # Per-endpoint liveness check bound
    probe_round_timeout_seconds: float = 5.0  # Bound for a whole probe round


@dataclass
class RateLimitConfig:
    """Fixed-window admission control.

    GOTCHAS:
    - The window is fixed, not sliding. A client can send max_requests at
      the end of one window and max_requests again at the start of the next.
    - With trust_forwarded_for=False every client behind the same reverse
      proxy shares one bucket.
    """

    enabled: bool = True
    window_seconds: float = 900.0  # 15 minutes
    max_requests: int = 100
    path_prefix: str = "/api/"  # Only paths under this prefix are counted
    cleanup_interval_seconds: float = 60.0  # Minimum gap between stale-record sweeps
    trust_forwarded_for: bool = False  # Use first X-Forwarded-For hop as client key


@dataclass
class StorageConfig:
    """Content-addressed storage backend (S3-compatible write API)."""

    access_key: str | None = None
    secret_key: str | None = None
    bucket: str | None = None
    gateway_url: str | None = None  # Public base URL, content identifier is appended
    endpoint_url: str = "https://s3.filebase.com"
    region: str = "us-east-1"
    timeout_seconds: float = 30.0
    max_upload_bytes: int = 10 * 1024 * 1024

    def missing(self) -> list[str]:
        """Names of required settings that are absent."""
        required = {
            "FILEBASE_KEY": self.access_key,
            "FILEBASE_SECRET": self.secret_key,
            "FILEBASE_BUCKETNAME": self.bucket,
            "FILEBASE_GATEWAY": self.gateway_url,
        }
        return [name for name, value in required.items() if not value]

    @property
    def configured(self) -> bool:
        return not self.missing()


@dataclass
class GatewayConfig:
    """Gateway server configuration."""

    # Server
    host: str = "127.0.0.1"
    port: int = 8788

    # Upstream RPC
    request_timeout_seconds: float = 10.0
    connect_timeout_seconds: float = 5.0
    devnet_endpoints: list[str] = field(default_factory=list)  # Highest priority first
    mainnet_endpoints: list[str] = field(default_factory=list)
    generic_allowed_hosts: list[str] = field(default_factory=list)  # Empty = any host

    # Response hardening
    security_headers: bool = True
    csrf_cookie: bool = True
    production: bool = False  # Marks cookies Secure

    selector: SelectorConfig = field(default_factory=SelectorConfig)
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)

    def endpoint_overrides(self, segment: NetworkSegment) -> list[str]:
        if segment is NetworkSegment.DEVNET:
            return list(self.devnet_endpoints)
        return list(self.mainnet_endpoints)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> GatewayConfig:
        """Build a configuration from environment variables.

        Unset variables keep their defaults. Storage credentials have no
        default; their absence only surfaces when an upload is attempted.
        """
        env = os.environ if environ is None else environ

        storage = StorageConfig(
            access_key=_env_str(env, "FILEBASE_KEY"),
            secret_key=_env_str(env, "FILEBASE_SECRET"),
            bucket=_env_str(env, "FILEBASE_BUCKETNAME"),
            gateway_url=_env_str(env, "FILEBASE_GATEWAY"),
        )
        endpoint_url = _env_str(env, "FILEBASE_ENDPOINT")
        if endpoint_url:
            storage.endpoint_url = endpoint_url

        rate_limit = RateLimitConfig(
            trust_forwarded_for=_env_bool(env, "RPCGATE_TRUST_FORWARDED_FOR", False),
        )
        max_requests = _env_number(env, "RPCGATE_RATE_LIMIT_MAX", int)
        if max_requests is not None:
            rate_limit.max_requests = max_requests
        window = _env_number(env, "RPCGATE_RATE_LIMIT_WINDOW", float)
        if window is not None:
            rate_limit.window_seconds = window

        selector = SelectorConfig()
        ttl = _env_number(env, "RPCGATE_ENDPOINT_TTL", float)
        if ttl is not None:
            selector.ttl_seconds = ttl

        config = cls(
            devnet_endpoints=_env_list(env, "SOLANA_DEVNET_RPC"),
            mainnet_endpoints=_env_list(env, "SOLANA_MAINNET_RPC"),
            production=(_env_str(env, "RPCGATE_ENV") or "").lower() == "production",
            selector=selector,
            rate_limit=rate_limit,
            storage=storage,
        )
        timeout = _env_number(env, "RPCGATE_REQUEST_TIMEOUT", float)
        if timeout is not None:
            config.request_timeout_seconds = timeout
        return config


def _env_str(env: Mapping[str, str], name: str) -> str | None:
    value = env.get(name, "").strip()
    return value or None


def _env_list(env: Mapping[str, str], name: str) -> list[str]:
    raw = env.get(name, "")
    return [item.strip() for item in raw.split(",") if item.strip()]


def _env_bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(name, "").strip().lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "on")


def _env_number(env: Mapping[str, str], name: str, kind: type) -> Any:
    raw = env.get(name, "").strip()
    if not raw:
        return None
    try:
        value = kind(raw)
    except ValueError as e:
        raise ConfigurationError(
            f"Invalid value for {name}", details={"value": raw, "expected": kind.__name__}
        ) from e
    if value <= 0:
        raise ConfigurationError(f"{name} must be positive", details={"value": raw})
    return value
