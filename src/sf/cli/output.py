"""Message and logging helpers shared by the sis-feed commands."""

from __future__ import annotations

import logging
from typing import Never

import typer

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def configure_logging(level: int | str) -> None:
    """Send log records to stderr at ``level``.

    Only the first call takes effect, so ``--verbose`` outranks the
    configured ``log_level`` of a later ``sf sync`` command.
    """
    if isinstance(level, str):
        level = level.upper()
    logging.basicConfig(level=level, format=LOG_FORMAT, datefmt="%H:%M:%S")


def cli_error(message: str, exit_code: int = 1) -> Never:
    """Print an error to stderr and exit."""
    typer.secho(f"Error: {message}", fg=typer.colors.RED, err=True)
    raise typer.Exit(exit_code)


def cli_success(message: str) -> None:
    typer.secho(message, fg=typer.colors.GREEN)


def cli_warning(message: str) -> None:
    typer.secho(f"Warning: {message}", fg=typer.colors.YELLOW, err=True)
