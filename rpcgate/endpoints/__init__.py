"""Upstream endpoint registry, health probing and selection."""

from .health import HEALTH_REQUEST, HealthProber
from .registry import DEFAULT_ENDPOINTS, EndpointRegistry
from .selector import CachedEndpoint, EndpointSelector

__all__ = [
    "DEFAULT_ENDPOINTS",
    "EndpointRegistry",
    "HEALTH_REQUEST",
    "HealthProber",
    "CachedEndpoint",
    "EndpointSelector",
]
