"""Main CLI entry point for rpcgate."""

import click


def get_version() -> str:
    """Get the current version."""
    try:
        from rpcgate import __version__

        return __version__
    except ImportError:
        return "unknown"


@click.group()
@click.version_option(version=get_version(), prog_name="rpcgate")
@click.pass_context
def main(ctx: click.Context) -> None:
    """rpcgate - rate-limited gateway for blockchain RPC and uploads.

    \b
    Examples:
        rpcgate serve                     Start the gateway
        rpcgate endpoints list            Show registered RPC endpoints
        rpcgate endpoints probe           Check which endpoints are alive
    """
    ctx.ensure_object(dict)


# Import subcommands - these register themselves with the main group
def _register_commands() -> None:
    """Register all subcommand groups."""
    from . import (
        endpoints,  # noqa: F401
        serve,  # noqa: F401
    )


_register_commands()

if __name__ == "__main__":
    main()
