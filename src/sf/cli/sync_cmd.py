"""Sync commands.

Commands:
- sf sync run: Process the batch waiting in the intake directory
- sf sync upload: Copy extract files into the intake directory
- sf sync status: Show recent runs
- sf sync log: Show audit messages
"""

from __future__ import annotations

from contextlib import ExitStack
from pathlib import Path
from typing import Annotated

import typer

from sf.cli.output import cli_error, cli_success, cli_warning, configure_logging
from sf.config.settings import Settings, load_settings
from sf.intake import PART_NAMES, intake_batch
from sf.ledger.runlog import get_sync_logs, get_sync_runs
from sf.sync.errors import SyncInProgressError
from sf.sync.job import get_orchestrator
from sf.sync.state import SyncContext, SyncOverrides

app = typer.Typer(
    name="sync",
    help="""Synchronize SIS extracts into the directory.

Extract files (sessions.csv, courseOfferings.csv, people.csv, ...) are
uploaded into the intake directory, then 'sf sync run' moves them into a
private batch directory and processes every kind in dependency order.
Records missing from the new snapshot are removed, subject to policy.
""",
    no_args_is_help=True,
)


def _load_ready_settings() -> Settings:
    settings = load_settings()
    errors = settings.validate()
    if errors:
        cli_error("Configuration errors:\n" + "\n".join(f"  - {e}" for e in errors))
    if not settings.db_path.exists():
        cli_error(f"Database not found at {settings.db_path}. Run 'sf db migrate' first.")
    configure_logging(settings.log_level)
    return settings


def _overrides(
    ignore_missing_sessions: bool | None,
    ignore_membership_removals: bool | None,
    user_removal_mode: str | None,
) -> SyncOverrides:
    return SyncOverrides(
        ignore_missing_sessions=ignore_missing_sessions,
        ignore_membership_removals=ignore_membership_removals,
        user_removal_mode=user_removal_mode,
    )


IgnoreMissingSessions = Annotated[
    bool | None,
    typer.Option(
        "--ignore-missing-sessions/--process-missing-sessions",
        help="Skip children whose session (or other parent) is not in this batch.",
    ),
]
IgnoreMembershipRemovals = Annotated[
    bool | None,
    typer.Option(
        "--ignore-membership-removals/--process-membership-removals",
        help="Keep memberships and enrollments missing from this batch.",
    ),
]
UserRemovalModeOption = Annotated[
    str | None,
    typer.Option(
        "--user-removal-mode",
        "-u",
        help="disable, delete or ignore people missing from this batch.",
    ),
]


def _report(settings: Settings) -> None:
    state = get_orchestrator(settings).last_state
    if state is None:
        return
    typer.echo(state.summary or "")
    if state.success:
        cli_success(f"Sync {state.run_id} complete.")
    else:
        cli_error(f"Sync {state.run_id} failed. See 'sf sync log --run {state.run_id}'.")


@app.command("run")
def sync_run(
    ignore_missing_sessions: IgnoreMissingSessions = None,
    ignore_membership_removals: IgnoreMembershipRemovals = None,
    user_removal_mode: UserRemovalModeOption = None,
) -> None:
    """Process the batch waiting in the intake directory.

    Options override the configured policy for this run only.
    """
    settings = _load_ready_settings()
    overrides = _overrides(ignore_missing_sessions, ignore_membership_removals, user_removal_mode)
    context = SyncContext(overrides.to_properties())

    try:
        state = get_orchestrator(settings).sync(context)
    except SyncInProgressError as e:
        cli_error(str(e))

    if state is None:
        cli_warning(f"No batch waiting in {settings.intake_dir}.")
        return
    _report(settings)


@app.command("upload")
def sync_upload(
    files: Annotated[
        list[Path],
        typer.Argument(
            help="Extract files. Each file's name (without .csv) selects its kind.",
            exists=True,
            dir_okay=False,
            readable=True,
        ),
    ],
    run: Annotated[
        bool,
        typer.Option("--run", "-r", help="Start a sync once the files are stored."),
    ] = False,
    ignore_missing_sessions: IgnoreMissingSessions = None,
    ignore_membership_removals: IgnoreMembershipRemovals = None,
    user_removal_mode: UserRemovalModeOption = None,
) -> None:
    """Copy extract files into the intake directory.
    \b
    Recognized names: courseMemberships, courseOfferings, courseSets, courses,
    enrollmentSets, enrollments, people, sectionMeetings, sectionMemberships,
    sections, sessions
    """
    settings = _load_ready_settings()

    unknown = [f.name for f in files if f.stem not in PART_NAMES]
    for name in unknown:
        cli_warning(f"Skipping {name}: not a recognized extract name")

    overrides = _overrides(ignore_missing_sessions, ignore_membership_removals, user_removal_mode)
    with ExitStack() as stack:
        parts = {f.stem: stack.enter_context(open(f, "rb")) for f in files}
        try:
            written = intake_batch(parts, settings, overrides=overrides, run_job=run)
        except SyncInProgressError as e:
            cli_error(f"Files stored, but the sync was not started: {e}")

    if not written:
        cli_error("No recognized extract files were uploaded.")
    cli_success(f"Stored {len(written)} file(s) in {settings.intake_dir}.")

    if run:
        _report(settings)


@app.command("status")
def sync_status(
    limit: Annotated[int, typer.Option("--limit", "-n", help="Number of runs to show.")] = 5,
) -> None:
    """Show recent sync runs, newest first."""
    settings = _load_ready_settings()
    runs = get_sync_runs(settings.db_path, limit=limit)
    if not runs:
        typer.echo("No sync runs recorded.")
        return

    for run in runs:
        color = typer.colors.GREEN if run.status.value == "complete" else typer.colors.RED
        if run.status.value == "running":
            color = typer.colors.YELLOW
        started = run.started_at.strftime("%Y-%m-%d %H:%M:%S") if run.started_at else "?"
        typer.secho(
            f"{run.run_id:<16} {run.status.value:<9} batch_ok={run.batch_ok!s:<5} {started}",
            fg=color,
        )

    latest = runs[0]
    if latest.summary:
        typer.echo()
        typer.echo(latest.summary)


@app.command("log")
def sync_log(
    run_id: Annotated[
        str | None, typer.Option("--run", help="Only messages from this run id.")
    ] = None,
    limit: Annotated[int, typer.Option("--limit", "-n", help="Maximum messages.")] = 100,
) -> None:
    """Show audit messages recorded during syncs."""
    settings = _load_ready_settings()
    entries = get_sync_logs(settings.db_path, run_id=run_id, limit=limit)
    if not entries:
        typer.echo("No log entries.")
        return
    for entry in entries:
        created = entry.created_at.strftime("%Y-%m-%d %H:%M:%S") if entry.created_at else "?"
        typer.echo(f"{created} [{entry.run_id or '-'}] {entry.source}: {entry.message}")
