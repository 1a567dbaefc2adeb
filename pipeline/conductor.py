"""
Pipeline Conductor - CLI entry point for the calendar pipeline

Coordinates:
- One-off syncs and cached reads (via Aggregator)
- Event detail lookups
- Cache inspection and clearing
- Starting the API server

Each CLI command builds its own Conductor and closes vendor sessions on exit.
"""


import asyncio
import json
from typing import Any, Dict, Optional

import click

from config import Config, config, get_logger
from exceptions import MeetcalError
from pipeline.aggregator import Aggregator
from pipeline.click_types import SOURCE
from pipeline.models import EventDetail, EventsResponse
from pipeline.protocols import MetricsCollector
from vendors.session_manager_async import AsyncSessionManager

logger = get_logger(__name__).bind(component="meetcal")


class Conductor:
    """Owns one Aggregator for the lifetime of a CLI command"""

    def __init__(
        self,
        aggregator: Optional[Aggregator] = None,
        settings: Optional[Config] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        """Initialize the conductor

        Args:
            aggregator: Pre-built aggregator (tests inject one with fakes)
            settings: Configuration used when building the aggregator
            metrics: Optional metrics collector
        """
        self.aggregator = aggregator or Aggregator.from_config(settings or config, metrics=metrics)

    async def close(self):
        await AsyncSessionManager.close_all()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def events(self, force_refresh: bool = False) -> EventsResponse:
        return await self.aggregator.get_events(force_refresh=force_refresh)

    async def detail(self, client: str, event_id: str) -> EventDetail:
        return await self.aggregator.get_event_detail(client, event_id)

    def cache_status(self) -> Dict[str, Any]:
        return self.aggregator.cache_status()

    def clear_cache(self) -> bool:
        return self.aggregator.clear_cache()


def _format_event_line(event: Dict[str, Any]) -> str:
    start = event["startDateTime"][:16].replace("T", " ")
    return f"{start}  [{event['source']}] {event['title']} @ {event['location']}"


def _run(coro_factory):
    """Run one Conductor coroutine, turning pipeline errors into CLI errors"""
    async def run():
        async with Conductor() as conductor:
            return await coro_factory(conductor)

    try:
        return asyncio.run(run())
    except MeetcalError as e:
        logger.error("command failed", error=str(e), error_type=type(e).__name__)
        raise click.ClickException(e.message) from e


@click.group(invoke_without_command=True)
@click.pass_context
def cli(ctx):
    """Consolidated municipal meeting calendar"""
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@cli.command("events")
@click.option("--force-refresh", is_flag=True, help="Sync now even if the cache is fresh")
@click.option("--json", "as_json", is_flag=True, help="Print the full response as JSON")
def events(force_refresh, as_json):
    """List consolidated meetings"""
    async def fetch(conductor: Conductor):
        return await conductor.events(force_refresh=force_refresh)

    response = _run(fetch)
    body = response.to_dict()

    if as_json:
        click.echo(json.dumps(body, indent=2))
        return

    origin = "cache" if response.from_cache else "sources"
    if response.stale:
        origin = "stale cache"
    click.echo(f"{len(body['events'])} meetings from {origin} (fetched {body['fetchedAt']})")
    for event in body["events"]:
        click.echo(f"  {_format_event_line(event)}")


@cli.command("detail")
@click.argument("client", type=SOURCE)
@click.argument("event_id")
def detail(client, event_id):
    """Show video and minutes links for one event"""
    async def fetch(conductor: Conductor):
        return await conductor.detail(client, event_id)

    result = _run(fetch)
    click.echo(json.dumps(result.to_dict(), indent=2))


@cli.command("cache-status")
def cache_status():
    """Describe the cached snapshot without syncing"""
    async def inspect(conductor: Conductor):
        return conductor.cache_status()

    click.echo(json.dumps(_run(inspect), indent=2))


@cli.command("clear-cache")
def clear_cache():
    """Drop the cached snapshot"""
    async def clear(conductor: Conductor):
        return conductor.clear_cache()

    removed = _run(clear)
    click.echo("Cache cleared" if removed else "Cache was already empty")


@cli.command("serve")
def serve():
    """Start the API server"""
    from server.main import run

    run()


def main():
    """Entry point for the meetcal CLI"""
    cli()


if __name__ == "__main__":
    main()
