"""Parsing utilities for CLI input."""

import re
from datetime import timedelta

import click


def parse_duration(duration_str: str) -> timedelta:
    """Parse a duration string into a timedelta.

    Supported formats:
        - "30s" - 30 seconds
        - "15m" - 15 minutes
        - "1h" - 1 hour
        - "900" - bare number of seconds

    Args:
        duration_str: Duration string to parse.

    Returns:
        A timedelta representing the duration.

    Raises:
        click.BadParameter: If the format is invalid.
    """
    pattern = r"^(\d+)([smh]?)$"
    match = re.match(pattern, duration_str.strip().lower())

    if not match:
        raise click.BadParameter(
            f"Invalid duration format: '{duration_str}'. "
            "Use format like '30s' (seconds), '15m' (minutes), '1h' (hours)."
        )

    value = int(match.group(1))
    unit = match.group(2) or "s"

    if value <= 0:
        raise click.BadParameter("Duration value must be positive.")

    unit_to_timedelta = {
        "s": timedelta(seconds=value),
        "m": timedelta(minutes=value),
        "h": timedelta(hours=value),
    }

    return unit_to_timedelta[unit]
