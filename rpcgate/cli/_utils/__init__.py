"""CLI utilities for formatting and parsing."""

from .formatting import (
    console,
    format_bytes,
    format_latency,
    print_error,
    print_success,
    print_table,
    print_warning,
)
from .parsers import parse_duration

__all__ = [
    "console",
    "print_table",
    "print_error",
    "print_success",
    "print_warning",
    "format_bytes",
    "format_latency",
    "parse_duration",
]
