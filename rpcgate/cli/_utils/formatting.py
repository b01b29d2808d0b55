"""Formatting utilities for CLI output using Rich."""

import math

from rich.console import Console
from rich.table import Table

# Shared console instance for consistent output
console = Console()


def print_table(
    headers: list[str],
    rows: list[list[str]],
    title: str | None = None,
) -> None:
    """Print a Rich table with headers and rows.

    Args:
        headers: Column headers for the table.
        rows: List of rows, where each row is a list of cell values.
        title: Optional title to display above the table.
    """
    table = Table(title=title)

    for header in headers:
        table.add_column(header)

    for row in rows:
        table.add_row(*row)

    console.print(table)


def print_error(msg: str) -> None:
    """Print an error message in red."""
    console.print(f"[bold red]Error:[/bold red] {msg}")


def print_success(msg: str) -> None:
    """Print a success message in green."""
    console.print(f"[bold green]Success:[/bold green] {msg}")


def print_warning(msg: str) -> None:
    """Print a warning message in yellow."""
    console.print(f"[bold yellow]Warning:[/bold yellow] {msg}")


def format_latency(latency_ms: float) -> str:
    """Format a probe latency, "-" for unreachable endpoints.

    Args:
        latency_ms: Latency in milliseconds, ``math.inf`` when dead.

    Returns:
        A string like "85 ms" or "1.2 s".
    """
    if latency_ms is None or math.isinf(latency_ms):
        return "-"
    if latency_ms >= 1000:
        return f"{latency_ms / 1000:.1f} s"
    return f"{latency_ms:.0f} ms"


def format_bytes(num_bytes: int) -> str:
    """Format a byte count as a human-readable string.

    Args:
        num_bytes: Number of bytes to format.

    Returns:
        A string like "1.2 MB", "500 KB", "256 B".
    """
    if num_bytes < 0:
        return "0 B"

    units = [("GB", 1024**3), ("MB", 1024**2), ("KB", 1024), ("B", 1)]

    for unit, threshold in units:
        if num_bytes >= threshold:
            value = num_bytes / threshold
            if value >= 10:
                return f"{value:.0f} {unit}"
            return f"{value:.1f} {unit}"

    return "0 B"
