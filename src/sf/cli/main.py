"""Root Typer application for sis-feed."""

from __future__ import annotations

import logging

import typer

from sf import __version__
from sf.cli import config_cmd, db_cmd, sync_cmd
from sf.cli.output import configure_logging

app: typer.Typer = typer.Typer(
    name="sf",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)
app.add_typer(config_cmd.app, name="config")
app.add_typer(db_cmd.app, name="db")
app.add_typer(sync_cmd.app, name="sync")


def version_callback(value: bool) -> None:
    if value:
        typer.echo(f"sis-feed (sf) version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log at DEBUG level."),
) -> None:
    """sis-feed: load SIS extract files into a course and identity directory.

    Each run takes the batch of CSV extracts waiting in the intake directory,
    applies adds and updates in dependency order, and removes whatever the
    previous snapshot had that this one does not.
    \b
    Getting Started:
      1. sf config init          Choose database and intake locations
      2. sf db migrate           Initialize the local database
      3. sf sync upload *.csv    Drop extract files into the intake directory
      4. sf sync run             Process the waiting batch
    """
    if verbose:
        configure_logging(logging.DEBUG)
