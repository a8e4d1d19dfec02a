"""Command-line interface for IPDashboard."""

import asyncio
import json
import logging
import sys

import click
import uvicorn

from ipdashboard import __version__
from ipdashboard.cache import CacheConfig, CacheService, CacheStats
from ipdashboard.core.config import settings
from ipdashboard.core.exceptions import PatternSyntaxError
from ipdashboard.observability.logging import configure_logging

logger = logging.getLogger(__name__)


def build_cache_service() -> CacheService:
    """Cache service for one-off CLI commands, from environment settings."""
    return CacheService(CacheConfig.from_settings(settings))


async def _fetch_stats(service: CacheService) -> CacheStats | None:
    try:
        if not await service.init():
            return None
        return await service.get_stats()
    finally:
        await service.shutdown()


async def _clear(service: CacheService, pattern: str) -> int | None:
    try:
        if not await service.init():
            return None
        return await service.invalidate(pattern)
    finally:
        await service.shutdown()


@click.group()
def cli() -> None:
    """IPDashboard - AEBF reporting backend."""
    pass


@cli.command()
@click.option(
    "--host",
    default=settings.api_host,
    help="Host to bind to",
    show_default=True,
)
@click.option(
    "--port",
    default=settings.api_port,
    type=int,
    help="Port to bind to",
    show_default=True,
)
@click.option(
    "--reload",
    is_flag=True,
    help="Enable auto-reload for development",
)
@click.option(
    "--log-level",
    default=settings.log_level.lower(),
    type=click.Choice(["debug", "info", "warning", "error"]),
    help="Logging level",
    show_default=True,
)
def serve(host: str, port: int, reload: bool, log_level: str) -> None:
    """Start the IPDashboard API server."""
    configure_logging(level=log_level)
    logger.info(f"Starting IPDashboard API server on {host}:{port}")

    uvicorn.run(
        "ipdashboard.api.app:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        log_level=log_level,
    )


@cli.command("cache-stats")
@click.option(
    "--json",
    "output_json",
    is_flag=True,
    help="Output statistics as JSON",
)
def cache_stats(output_json: bool) -> None:
    """Show cache store connectivity and key count."""
    configure_logging(level="warning")
    stats = asyncio.run(_fetch_stats(build_cache_service()))
    if stats is None:
        click.echo("Cache store unavailable", err=True)
        sys.exit(1)

    if output_json:
        click.echo(json.dumps(stats.model_dump(), indent=2))
        return

    click.echo(f"Backend:   {stats.backend}")
    click.echo(f"Connected: {stats.connected}")
    click.echo(f"Circuit:   {stats.circuit_state}")
    click.echo(f"Keys:      {stats.keys if stats.keys is not None else 'unknown'}")


@cli.command("cache-clear")
@click.option(
    "--pattern",
    "-p",
    default="*",
    help="Glob pattern of keys to delete",
    show_default=True,
)
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
def cache_clear(pattern: str, yes: bool) -> None:
    """Invalidate cached responses matching a pattern."""
    configure_logging(level="warning")
    if pattern == "*" and not yes:
        click.confirm("Delete every cached response?", abort=True)

    try:
        deleted = asyncio.run(_clear(build_cache_service(), pattern))
    except PatternSyntaxError as e:
        raise click.BadParameter(e.message, param_hint="--pattern") from e

    if deleted is None:
        click.echo("Cache store unavailable", err=True)
        sys.exit(1)
    click.echo(f"Deleted {deleted} cache entries matching {pattern!r}")


@cli.command()
def version() -> None:
    """Show version information."""
    click.echo(f"IPDashboard v{__version__}")


if __name__ == "__main__":
    cli()
