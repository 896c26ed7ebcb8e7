"""Main CLI entry point for outbox-service."""

import click

from outbox_service import __version__
from outbox_service.cli.commands import publisher, server, status
from outbox_service.infra.logging.config import setup_logging


@click.group()
@click.version_option(version=__version__, prog_name="outbox-service")
@click.pass_context
def cli(ctx: click.Context) -> None:
    """Outbox Service CLI - relay committed outbox events to Kafka.

    \b
    Commands:
      run           Run the publisher until interrupted
      serve         Run the HTTP app with the publisher in its lifespan
      publish-once  Run one publish cycle
      stats         Show outbox row counts
      config        Show the resolved publisher configuration
    """
    ctx.ensure_object(dict)


cli.add_command(publisher.run)
cli.add_command(publisher.publish_once)
cli.add_command(server.serve)
cli.add_command(status.stats)
cli.add_command(status.config)


def main() -> None:
    """Entry point for CLI."""
    setup_logging()
    cli(obj={})


if __name__ == "__main__":
    main()
