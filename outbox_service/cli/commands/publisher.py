"""Commands that run the outbox publisher outside the web server."""

from __future__ import annotations

import asyncio
import signal
import sys

import click

from outbox_service.cli.utils import abort, coro, section, status
from outbox_service.core.exceptions import OutboxConfigurationError
from outbox_service.core.settings import get_outbox_settings
from outbox_service.infra.database import close_database, get_session_factory, init_database
from outbox_service.infra.events.outbox import (
    OutboxScheduler,
    PublisherDisabled,
    PublisherMode,
    resolve_publisher_mode,
    start_outbox_publisher,
    stop_outbox_publisher,
)


def _resolve_mode_or_exit() -> PublisherMode:
    try:
        return resolve_publisher_mode(get_outbox_settings())
    except OutboxConfigurationError as e:
        abort(f"Invalid publisher configuration: {e}")


async def _wait_for_shutdown() -> None:
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)
    try:
        await stop.wait()
    finally:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(sig)


@click.command()
@coro
async def run() -> None:
    """Run the outbox publisher until SIGINT or SIGTERM.

    Examples:
        \b
        KAFKA_ENABLED=true KAFKA_BROKERS=localhost:9092 outbox-service run
    """
    mode = _resolve_mode_or_exit()
    if isinstance(mode, PublisherDisabled):
        abort(f"Outbox publisher disabled: {mode.reason}", disabled=True)

    await init_database()
    try:
        try:
            await start_outbox_publisher(get_outbox_settings())
        except ConnectionError as e:
            abort(f"Could not connect to Kafka: {e}")

        status(f"Publishing to {', '.join(mode.brokers)} every {mode.poll_interval:g}s. Press Ctrl+C to stop.", done=True)
        await _wait_for_shutdown()
        status("Shutting down publisher...")
    finally:
        await stop_outbox_publisher()
        await close_database()


@click.command(name="publish-once")
@click.option("--json", "as_json", is_flag=True, help="Print the cycle report as JSON")
@coro
async def publish_once(as_json: bool) -> None:
    """Run a single publish cycle and print what it did."""
    mode = _resolve_mode_or_exit()
    if isinstance(mode, PublisherDisabled):
        abort(f"Outbox publisher disabled: {mode.reason}", disabled=True)

    scheduler = OutboxScheduler(mode, session_factory=get_session_factory())
    try:
        try:
            await scheduler.start(schedule=False)
        except ConnectionError as e:
            abort(f"Could not connect to Kafka: {e}")

        report = await scheduler.run_cycle()
    finally:
        await scheduler.stop()
        await close_database()

    section("Publish cycle", report.as_dict(), as_json=as_json)
    if report.errored:
        sys.exit(1)
