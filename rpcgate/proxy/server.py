"""rpcgate Proxy Server.

Shields browsers from direct chain-RPC calls: requests are admitted by a
per-client quota, then forwarded to a healthy upstream node or relayed to
content-addressed storage.

Features:
- Fixed-network RPC proxy with fastest-live-endpoint selection
- Generic RPC proxy to a caller-chosen endpoint
- Image / JSON metadata upload relay
- Fixed-window rate limiting on /api/*
- Security headers and CSRF cookie issuance
- Prometheus metrics

Usage:
    rpcgate serve --port 8788

    curl -X POST http://localhost:8788/api/rpc/devnet \\
        -H 'Content-Type: application/json' \\
        -d '{"method": "getHealth"}'
"""

from __future__ import annotations

import json
import logging
import uuid
from collections.abc import Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any

import httpx
import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse, PlainTextResponse
from starlette.datastructures import UploadFile
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.formparsers import MultiPartException

from rpcgate import __version__
from rpcgate.config import GatewayConfig, NetworkSegment, StorageConfig, UploadArtifact
from rpcgate.endpoints import EndpointRegistry, EndpointSelector, HealthProber
from rpcgate.exceptions import ClientError, InternalError, PayloadTooLarge, RpcGateError
from rpcgate.proxy.metrics import GatewayMetrics
from rpcgate.proxy.middleware import AdmissionMiddleware, SecurityHeadersMiddleware
from rpcgate.proxy.rpc import RpcForwarder, RpcResult
from rpcgate.ratelimit import FixedWindowRateLimiter
from rpcgate.storage import StorageBackend, UploadRelay
from rpcgate.storage.relay import S3StorageBackend

logger = logging.getLogger("rpcgate.proxy")


# =============================================================================
# Main Proxy
# =============================================================================


class GatewayProxy:
    """Owns the shared state of one gateway process.

    The endpoint cache lives in the selector and the quota records in the
    rate limiter; request handlers reach both only through this object.
    """

    def __init__(
        self,
        config: GatewayConfig,
        http_client: httpx.AsyncClient | None = None,
        storage_backend_factory: Callable[[StorageConfig], StorageBackend] = S3StorageBackend,
    ):
        self.config = config
        self.registry = EndpointRegistry.from_config(config)
        self.metrics = GatewayMetrics()

        self.rate_limiter = (
            FixedWindowRateLimiter(
                max_requests=config.rate_limit.max_requests,
                window_seconds=config.rate_limit.window_seconds,
                cleanup_interval_seconds=config.rate_limit.cleanup_interval_seconds,
            )
            if config.rate_limit.enabled
            else None
        )

        self.relay = UploadRelay(config.storage, backend_factory=storage_backend_factory)

        # HTTP client (created on startup unless one is supplied)
        self.http_client = http_client
        self._owns_http_client = http_client is None
        self.selector: EndpointSelector | None = None
        self.forwarder: RpcForwarder | None = None

    async def startup(self):
        """Initialize async resources."""
        if self.http_client is None:
            self.http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(
                    connect=self.config.connect_timeout_seconds,
                    read=self.config.request_timeout_seconds,
                    write=self.config.request_timeout_seconds,
                    pool=self.config.connect_timeout_seconds,
                ),
                headers={"User-Agent": f"rpcgate/{__version__}"},
            )

        prober = HealthProber(
            self.http_client, timeout_seconds=self.config.selector.probe_timeout_seconds
        )
        self.selector = EndpointSelector(
            self.registry,
            prober,
            ttl_seconds=self.config.selector.ttl_seconds,
            round_timeout_seconds=self.config.selector.probe_round_timeout_seconds,
        )
        self.forwarder = RpcForwarder(
            self.http_client,
            self.selector,
            timeout_seconds=self.config.request_timeout_seconds,
            allowed_hosts=self.config.generic_allowed_hosts,
        )

        logger.info("rpcgate proxy started")
        logger.info(f"Rate Limiting: {'ENABLED' if self.rate_limiter else 'DISABLED'}")
        storage = "CONFIGURED" if self.config.storage.configured else "NOT CONFIGURED"
        logger.info(f"Storage: {storage}")

    async def shutdown(self):
        """Cleanup async resources."""
        if self.http_client and self._owns_http_client:
            await self.http_client.aclose()
        m = self.metrics
        logger.info(
            f"rpcgate proxy stopped: {m.requests_total} requests, "
            f"{m.requests_failed} failed, {m.requests_rate_limited} rate limited"
        )

    async def _guard(self, route: str, handler: Callable[[], Awaitable[Response]]) -> Response:
        """Run a handler, mapping every failure onto an RpcGateError."""
        try:
            return await handler()
        except RpcGateError as e:
            self.metrics.record_failed(route, e.status_code)
            raise
        except Exception as e:
            logger.exception(f"Unexpected error on {route}")
            self.metrics.record_failed(route, 500)
            raise InternalError("Internal server error") from e

    async def handle_segment_rpc(self, request: Request, segment: str) -> Response:
        """Handle POST /api/rpc/{segment}."""

        async def run() -> Response:
            network = NetworkSegment.parse(segment)
            body = await _read_json(request)
            result = await self.forwarder.forward_segment(network, body)
            return self._rpc_response(
                f"rpc/{network.value}", body.get("method"), result, result.endpoint
            )

        route = f"rpc/{segment}" if segment in _SEGMENT_NAMES else "rpc/other"
        return await self._guard(route, run)

    async def handle_generic_rpc(self, request: Request) -> Response:
        """Handle POST /api/rpc/generic."""

        async def run() -> Response:
            body = await _read_json(request)
            if not isinstance(body, dict):
                raise ClientError("Request body must be a JSON object")
            result = await self.forwarder.forward_generic(
                body.get("endpoint"), body.get("method"), body.get("params")
            )
            return self._rpc_response("rpc/generic", body.get("method"), result, endpoint=None)

        return await self._guard("rpc/generic", run)

    def _rpc_response(
        self, route: str, method: Any, result: RpcResult, endpoint: str | None
    ) -> Response:
        self.metrics.record_rpc(route, str(method), endpoint, result.latency_ms)
        return Response(
            content=result.content,
            status_code=result.status_code,
            media_type="application/json",
        )

    async def handle_upload(self, request: Request) -> Response:
        """Handle POST /api/upload (multipart form)."""

        async def run() -> Response:
            self.relay.check_configured()
            try:
                form = await request.form()
            except MultiPartException as e:
                raise ClientError(f"Malformed upload form: {e.message}") from e
            except StarletteHTTPException as e:
                if e.status_code >= 500:
                    raise
                raise ClientError(f"Malformed upload form: {e.detail}") from e
            try:
                artifact = await self._artifact_from_form(form)
            finally:
                await form.close()
            url = await self.relay.upload(artifact)
            self.metrics.record_upload(artifact.size)
            return JSONResponse({"success": True, "url": url})

        return await self._guard("upload", run)

    async def _artifact_from_form(self, form) -> UploadArtifact:
        kind = str(form.get("type") or "image").lower()
        name = str(form.get("name") or uuid.uuid4().hex)
        upload = form.get("file")
        limit = self.config.storage.max_upload_bytes

        if kind == "json":
            raw = form.get("jsonData")
            if raw is None:
                raw = upload
            if isinstance(raw, UploadFile):
                raw = await raw.read(limit + 1)
            if raw is None:
                raise ClientError("jsonData is required for json uploads")
            size = len(raw) if isinstance(raw, bytes) else len(raw.encode())
            if size > limit:
                raise PayloadTooLarge(
                    f"Upload exceeds {limit} bytes", details={"size": size}
                )
            try:
                data = json.loads(raw)
            except ValueError as e:
                raise ClientError("jsonData is not valid JSON") from e
            return UploadArtifact.from_json(name, data)

        if kind == "image":
            if not isinstance(upload, UploadFile):
                raise ClientError("No file provided")
            payload = await upload.read(limit + 1)
            return UploadArtifact.from_bytes(name, payload, upload.content_type)

        raise ClientError("type must be 'image' or 'json'", details={"type": kind})

    async def handle_endpoint_status(self, segment: str) -> dict:
        """Handle GET /api/endpoints/{segment}."""
        network = NetworkSegment.parse(segment)
        entry = self.selector.cached(network)
        if entry is None:
            endpoint = await self.selector.select(network)
            entry = self.selector.cached(network)
        else:
            endpoint = entry.endpoint
        return {
            "segment": network.value,
            "endpoint": endpoint.url,
            "cached": entry is not None,
            "latency_ms": round(entry.latency_ms, 1) if entry else None,
            "candidates": [e.url for e in self.registry.candidates(network)],
        }

    def stats(self) -> dict:
        return {
            "requests": self.metrics.to_dict(),
            "rate_limiter": self.rate_limiter.stats() if self.rate_limiter else None,
            "endpoints": self.selector.stats() if self.selector else None,
            "uploads": self.relay.stats(),
        }


_SEGMENT_NAMES = {s.value for s in NetworkSegment}


async def _read_json(request: Request) -> Any:
    try:
        return await request.json()
    except ValueError as e:
        raise ClientError("Request body must be valid JSON") from e


# =============================================================================
# FastAPI App
# =============================================================================


def create_app(
    config: GatewayConfig | None = None,
    proxy: GatewayProxy | None = None,
) -> FastAPI:
    """Create FastAPI application."""
    config = config or (proxy.config if proxy else GatewayConfig())
    proxy = proxy or GatewayProxy(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await proxy.startup()
        yield
        await proxy.shutdown()

    app = FastAPI(
        title="rpcgate",
        description="Rate-limited RPC and upload gateway",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.proxy = proxy

    if proxy.rate_limiter:
        app.add_middleware(
            AdmissionMiddleware,
            limiter=proxy.rate_limiter,
            path_prefix=config.rate_limit.path_prefix,
            trust_forwarded_for=config.rate_limit.trust_forwarded_for,
            on_reject=lambda key: proxy.metrics.record_rate_limited(),
        )
    if config.security_headers:
        app.add_middleware(
            SecurityHeadersMiddleware,
            production=config.production,
            csrf_cookie=config.csrf_cookie,
        )

    @app.exception_handler(RpcGateError)
    async def gateway_error(request: Request, exc: RpcGateError):
        return JSONResponse(exc.to_dict(), status_code=exc.status_code, headers=exc.headers())

    # Health & Metrics
    @app.get("/health")
    async def health():
        return {
            "status": "healthy",
            "version": __version__,
            "config": {
                "rate_limit": proxy.rate_limiter is not None,
                "storage": config.storage.configured,
                "segments": [s.value for s in NetworkSegment],
            },
        }

    @app.get("/stats")
    async def stats():
        return proxy.stats()

    @app.get("/metrics")
    async def metrics():
        """Prometheus metrics endpoint."""
        return PlainTextResponse(
            proxy.metrics.export(),
            media_type="text/plain; version=0.0.4",
        )

    # RPC
    @app.post("/api/rpc/generic")
    async def generic_rpc(request: Request):
        return await proxy.handle_generic_rpc(request)

    @app.post("/api/rpc/{segment}")
    async def segment_rpc(request: Request, segment: str):
        return await proxy.handle_segment_rpc(request, segment)

    @app.get("/api/endpoints/{segment}")
    async def endpoint_status(segment: str):
        return await proxy.handle_endpoint_status(segment)

    # Storage
    @app.post("/api/upload")
    async def upload(request: Request):
        return await proxy.handle_upload(request)

    return app


def run_server(config: GatewayConfig | None = None):
    """Run the proxy server."""
    logging.basicConfig(
        level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    config = config or GatewayConfig.from_env()
    app = create_app(config)
    uvicorn.run(app, host=config.host, port=config.port, log_level="warning")
