"""Config commands.

Commands:
- sf config init: Write a config file
- sf config show: Display current configuration
- sf config set: Update one value
"""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any

import typer

from sf.cli.output import cli_error, cli_success
from sf.config.settings import (
    Settings,
    ensure_directories,
    get_default_config_path,
    get_default_db_path,
    get_default_intake_dir,
    load_settings,
    save_settings,
)

app = typer.Typer(
    name="config",
    help="""Manage sis-feed configuration.

Configuration is stored in ~/.config/sf/config.toml. Sync policy values
set here are installation defaults; 'sf sync run' options override them for
a single run.
""",
    no_args_is_help=True,
)


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in ("true", "yes", "1", "on"):
        return True
    if lowered in ("false", "no", "0", "off"):
        return False
    raise ValueError(f"'{value}' is not a boolean")


# key -> converter from the command-line string
SETTABLE_KEYS: dict[str, Callable[[str], Any]] = {
    "db_path": lambda v: Path(v).expanduser(),
    "intake_dir": lambda v: Path(v).expanduser(),
    "log_level": str.upper,
    "date_format": str,
    "has_header": _parse_bool,
    "page_size": int,
    "ignore_missing_sessions": _parse_bool,
    "ignore_membership_removals": _parse_bool,
    "user_removal_mode": str.lower,
    "suspended_type": str,
    "student_role": str,
    "instructor_role": str,
    "default_credits": str,
    "default_grading_scheme": str,
    "default_section_category": str,
    "default_enrollment_set_category": str,
}


def _require_config() -> Settings:
    config_path = get_default_config_path()
    if not config_path.exists():
        typer.secho(
            "No configuration found. Run 'sf config init' first.",
            fg=typer.colors.YELLOW,
        )
        raise typer.Exit(1)
    return load_settings(config_path)


def _validate_or_exit(settings: Settings) -> None:
    errors = settings.validate()
    if errors:
        for error in errors:
            typer.secho(f"Error: {error}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)


@app.command("init")
def config_init(
    db_path: Path | None = typer.Option(
        None,
        "--db-path",
        "-d",
        help="Path to the SQLite database file.",
    ),
    intake_dir: Path | None = typer.Option(
        None,
        "--intake-dir",
        "-i",
        help="Directory uploaded extract files are written to.",
    ),
    user_removal_mode: str = typer.Option(
        "disable",
        "--user-removal-mode",
        "-u",
        help="What to do with people missing from a snapshot: disable, delete or ignore.",
    ),
    force: bool = typer.Option(
        False,
        "--force",
        "-f",
        help="Overwrite existing configuration.",
    ),
) -> None:
    """Create the configuration file and its directories.
    \b
    Examples:
      sf config init
      sf config init --intake-dir /srv/sis/intake --user-removal-mode delete
    """
    config_path = get_default_config_path()

    if config_path.exists() and not force:
        typer.secho(f"Configuration already exists at {config_path}", fg=typer.colors.YELLOW)
        typer.echo("Use --force to overwrite.")
        raise typer.Exit(1)

    settings = Settings(
        db_path=db_path or get_default_db_path(),
        config_path=config_path,
        intake_dir=intake_dir or get_default_intake_dir(),
        user_removal_mode=user_removal_mode.lower(),
    )
    _validate_or_exit(settings)

    ensure_directories(settings)
    save_settings(settings)

    cli_success(f"Configuration saved to {config_path}")
    typer.echo()
    typer.echo("Next steps:")
    typer.echo("  1. Initialize the database: sf db migrate")
    typer.echo(f"  2. Upload extracts into {settings.intake_dir}: sf sync upload <files>")


@app.command("show")
def config_show() -> None:
    """Display the current configuration."""
    settings = _require_config()

    typer.echo("Current configuration:")
    typer.echo(f"  Config file: {settings.config_path}")
    typer.echo(f"  Database:    {settings.db_path}")
    typer.echo(f"  Intake dir:  {settings.intake_dir}")
    typer.echo(f"  Log level:   {settings.log_level}")
    typer.echo()
    typer.echo("Input:")
    typer.echo(f"  Date format: {settings.date_format}")
    typer.echo(f"  Has header:  {settings.has_header}")
    typer.echo(f"  Page size:   {settings.page_size}")
    typer.echo(f"  Person optional fields: {', '.join(settings.person_optional_fields)}")
    typer.echo()
    typer.echo("Sync policy defaults:")
    typer.echo(f"  Ignore missing sessions:    {settings.ignore_missing_sessions}")
    typer.echo(f"  Ignore membership removals: {settings.ignore_membership_removals}")
    typer.echo(f"  User removal mode:          {settings.user_removal_mode}")
    typer.echo(f"  Suspended type:             {settings.suspended_type}")


@app.command("set")
def config_set(
    key: str = typer.Argument(..., help="Configuration key to set."),
    value: str = typer.Argument(..., help="Value to set."),
) -> None:
    """Update one configuration value.

    Valid keys: db_path, intake_dir, log_level, date_format, has_header,
    page_size, ignore_missing_sessions, ignore_membership_removals,
    user_removal_mode, suspended_type, student_role, instructor_role,
    default_credits, default_grading_scheme, default_section_category,
    default_enrollment_set_category
    """
    settings = _require_config()

    if key not in SETTABLE_KEYS:
        typer.secho(f"Unknown configuration key: {key}", fg=typer.colors.RED, err=True)
        typer.echo(f"Valid keys: {', '.join(SETTABLE_KEYS)}")
        raise typer.Exit(1)

    try:
        converted = SETTABLE_KEYS[key](value)
    except ValueError as e:
        cli_error(f"Invalid value for {key}: {e}")

    setattr(settings, key, converted)
    _validate_or_exit(settings)

    save_settings(settings)
    cli_success(f"Updated {key} = {converted}")
