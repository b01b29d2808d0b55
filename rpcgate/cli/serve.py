"""Gateway server CLI command."""

import click

from rpcgate.exceptions import ConfigurationError

from ._utils import format_bytes, parse_duration, print_error, print_warning
from .main import main


@main.command()
@click.option("--host", default=None, help="Host to bind to (default: 127.0.0.1)")
@click.option("--port", "-p", default=None, type=int, help="Port to bind to (default: 8788)")
@click.option("--no-rate-limit", is_flag=True, help="Disable rate limiting on /api/*")
@click.option("--rate-limit", "rate_limit_max", type=int, default=None, help="Requests per window")
@click.option(
    "--rate-window",
    default=None,
    help="Rate limit window, e.g. 900s or 15m (default: 15m)",
)
@click.option(
    "--endpoint-ttl",
    default=None,
    help="How long a selected RPC endpoint is reused, e.g. 5m (default: 5m)",
)
@click.option("--timeout", type=float, default=None, help="Upstream RPC timeout in seconds")
@click.option(
    "--trust-forwarded-for",
    is_flag=True,
    help="Use the first X-Forwarded-For hop as the client address (behind a reverse proxy)",
)
@click.option("--production", is_flag=True, help="Mark cookies Secure")
@click.pass_context
def serve(
    ctx: click.Context,
    host: str | None,
    port: int | None,
    no_rate_limit: bool,
    rate_limit_max: int | None,
    rate_window: str | None,
    endpoint_ttl: str | None,
    timeout: float | None,
    trust_forwarded_for: bool,
    production: bool,
) -> None:
    """Start the gateway server.

    Configuration is read from the environment first (SOLANA_DEVNET_RPC,
    SOLANA_MAINNET_RPC, FILEBASE_*, RPCGATE_*); options override it.

    \b
    Examples:
        rpcgate serve                     Start gateway on port 8788
        rpcgate serve --port 8080         Start gateway on port 8080
        rpcgate serve --rate-limit 300 --rate-window 15m
    """
    from rpcgate.config import GatewayConfig
    from rpcgate.proxy.server import run_server

    try:
        config = GatewayConfig.from_env()
    except ConfigurationError as e:
        print_error(str(e))
        raise SystemExit(1) from None

    if host:
        config.host = host
    if port:
        config.port = port
    if no_rate_limit:
        config.rate_limit.enabled = False
    if rate_limit_max:
        config.rate_limit.max_requests = rate_limit_max
    if rate_window:
        config.rate_limit.window_seconds = parse_duration(rate_window).total_seconds()
    if endpoint_ttl:
        config.selector.ttl_seconds = parse_duration(endpoint_ttl).total_seconds()
    if timeout:
        config.request_timeout_seconds = timeout
    if trust_forwarded_for:
        config.rate_limit.trust_forwarded_for = True
    if production:
        config.production = True

    rl = config.rate_limit
    rate_status = (
        f"ENABLED ({rl.max_requests} req / {rl.window_seconds:.0f}s)" if rl.enabled else "DISABLED"
    )
    storage_status = (
        f"{config.storage.endpoint_url} (max {format_bytes(config.storage.max_upload_bytes)})"
        if config.storage.configured
        else "NOT CONFIGURED"
    )

    click.echo(f"""
rpcgate - rate-limited RPC and upload gateway

Starting gateway server...

  URL:          http://{config.host}:{config.port}
  Rate Limit:   {rate_status}
  Endpoint TTL: {config.selector.ttl_seconds:.0f}s
  RPC Timeout:  {config.request_timeout_seconds:.0f}s
  Storage:      {storage_status}

Endpoints:
  GET  /health                  Health check
  GET  /stats                   Detailed statistics
  GET  /metrics                 Prometheus metrics
  POST /api/rpc/{{segment}}       JSON-RPC to devnet / mainnet
  POST /api/rpc/generic         JSON-RPC to an explicit endpoint
  GET  /api/endpoints/{{segment}} Current endpoint selection
  POST /api/upload              Image / JSON upload

Press Ctrl+C to stop.
""")
    if not config.storage.configured:
        missing = ", ".join(config.storage.missing())
        print_warning(f"Uploads will fail until these are set: {missing}")

    try:
        run_server(config)
    except KeyboardInterrupt:
        click.echo("\nShutting down...")
