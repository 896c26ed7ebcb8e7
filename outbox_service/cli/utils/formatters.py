"""Terminal output shared by the publisher and inspection commands."""

from __future__ import annotations

import json
import sys
from typing import NoReturn

import click


def abort(message: str, *, disabled: bool = False) -> NoReturn:
    """Print why a command cannot proceed and exit with status 1.

    A publisher that is merely switched off is reported in yellow;
    configuration and connection problems in red.
    """
    click.secho(f"{'-' if disabled else '!'} {message}", fg="yellow" if disabled else "red", err=True)
    sys.exit(1)


def status(message: str, *, done: bool = False) -> None:
    """Print a publisher lifecycle line."""
    click.secho(f"{'*' if done else '>'} {message}", fg="green" if done else "blue")


def section(title: str, rows: dict[str, object], *, as_json: bool = False) -> None:
    """Print ``rows`` as a titled, aligned block, or as one JSON object."""
    if as_json:
        click.echo(json.dumps(rows, default=str))
        return

    click.secho(f"\n{title}", fg="cyan", bold=True)
    if not rows:
        return
    width = max(len(key) for key in rows)
    for key, value in rows.items():
        click.echo(f"  {key.ljust(width)}  {value}")
