"""Read-only inspection commands."""

from __future__ import annotations

import click

from outbox_service.cli.utils import abort, coro, section, status
from outbox_service.core.exceptions import OutboxConfigurationError
from outbox_service.core.settings import get_outbox_settings
from outbox_service.features.outbox.service import collect_outbox_stats
from outbox_service.infra.database import close_database, get_async_session
from outbox_service.infra.events.outbox import PublisherDisabled, resolve_publisher_mode


@click.command()
@click.option("--json", "as_json", is_flag=True, help="Print the statistics as JSON")
@coro
async def stats(as_json: bool) -> None:
    """Show outbox row counts per status and the oldest PENDING age."""
    try:
        async with get_async_session() as session:
            result = await collect_outbox_stats(session)
    finally:
        await close_database()

    if as_json:
        click.echo(result.model_dump_json())
        return

    section("Outbox", {**result.counts, "total": result.total})
    if result.oldest_pending_age_seconds is not None:
        status(f"Oldest pending event is {result.oldest_pending_age_seconds:.1f}s old")


@click.command()
@click.option("--show-secrets", is_flag=True, help="Print the Kafka password in clear text")
@click.option("--json", "as_json", is_flag=True, help="Print the configuration as JSON")
def config(show_secrets: bool, as_json: bool) -> None:
    """Show the publisher mode resolved from the environment."""
    try:
        mode = resolve_publisher_mode(get_outbox_settings())
    except OutboxConfigurationError as e:
        abort(f"Invalid publisher configuration: {e}")

    if isinstance(mode, PublisherDisabled):
        rows: dict[str, object] = {"mode": "disabled", "reason": mode.reason}
    else:
        credentials = mode.credentials
        rows = {
            "mode": "enabled",
            "brokers": ",".join(mode.brokers),
            "client_id": mode.client_id,
            "ssl": mode.ssl,
            "sasl_mechanism": credentials.mechanism if credentials else None,
            "username": credentials.username if credentials else None,
            "password": (credentials.password if show_secrets else "***") if credentials else None,
            "poll_interval_s": mode.poll_interval,
            "batch_size": mode.batch_size,
            "max_attempts": mode.max_attempts,
            "base_delay_s": mode.backoff.base_delay,
            "max_delay_s": mode.backoff.cap_delay,
            "backoff_jitter": mode.backoff.jitter,
            "lease_timeout_s": mode.lease_timeout.total_seconds(),
            "send_timeout_s": mode.send_timeout,
            "verify_topics": mode.verify_topics,
        }

    section("Outbox publisher", rows, as_json=as_json)
