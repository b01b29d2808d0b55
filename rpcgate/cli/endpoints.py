"""Endpoint registry CLI commands."""

import asyncio

import click
import httpx

from rpcgate.config import EndpointHealth, GatewayConfig, NetworkSegment
from rpcgate.endpoints import EndpointRegistry, EndpointSelector, HealthProber

from ._utils import console, format_latency, print_table, print_warning
from .main import main

SEGMENT_CHOICE = click.Choice([s.value for s in NetworkSegment])


def _segments(segment: str | None) -> list[NetworkSegment]:
    if segment:
        return [NetworkSegment.parse(segment)]
    return list(NetworkSegment)


@main.group()
def endpoints() -> None:
    """Inspect and probe upstream RPC endpoints."""


@endpoints.command("list")
@click.option("--segment", "-s", type=SEGMENT_CHOICE, default=None, help="Only this segment")
def list_endpoints(segment: str | None) -> None:
    """List registered endpoints in priority order."""
    registry = EndpointRegistry.from_config(GatewayConfig.from_env())
    rows = []
    for seg in _segments(segment):
        for priority, endpoint in enumerate(registry.candidates(seg), start=1):
            rows.append([seg.value, str(priority), endpoint.url])
    print_table(["Segment", "Priority", "URL"], rows, title="Registered endpoints")


@endpoints.command("probe")
@click.option("--segment", "-s", type=SEGMENT_CHOICE, default=None, help="Only this segment")
@click.option("--timeout", type=float, default=3.0, help="Per-endpoint timeout in seconds")
def probe(segment: str | None, timeout: float) -> None:
    """Run one health check round and show the endpoint that would be selected."""
    config = GatewayConfig.from_env()
    registry = EndpointRegistry.from_config(config)
    results = asyncio.run(_probe(registry, _segments(segment), timeout))

    rows = []
    for health in results:
        status = "[green]alive[/green]" if health.is_alive else "[red]down[/red]"
        rows.append(
            [
                health.endpoint.segment.value,
                health.endpoint.url,
                status,
                format_latency(health.latency_ms),
                health.error or "",
            ]
        )
    print_table(["Segment", "URL", "Status", "Latency", "Error"], rows, title="Endpoint health")

    for seg in _segments(segment):
        alive = [r for r in results if r.endpoint.segment is seg and r.is_alive]
        if alive:
            best = min(alive, key=lambda r: r.latency_ms)
            console.print(f"[bold]{seg.value}[/bold] -> {best.endpoint.url}")
        else:
            print_warning(f"No live endpoint for {seg.value}, default {registry.default(seg).url}")


async def _probe(
    registry: EndpointRegistry, segments: list[NetworkSegment], timeout: float
) -> list[EndpointHealth]:
    async with httpx.AsyncClient() as client:
        selector = EndpointSelector(
            registry,
            HealthProber(client, timeout_seconds=timeout),
            round_timeout_seconds=timeout + 1,
        )
        results: list[EndpointHealth] = []
        for seg in segments:
            results.extend(await selector.probe_all(seg))
        return results
