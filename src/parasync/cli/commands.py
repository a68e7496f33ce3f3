"""
Implements command-line commands and user interaction.
"""

import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

import click
from click.core import ParameterSource
from rich.console import Console
from rich.table import Table
from rich.progress import Progress, SpinnerColumn, TextColumn, BarColumn, TaskProgressColumn

from parasync.core.config import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_JOBS,
    DEFAULT_MAX_DEPTH,
    DEFAULT_MIN_SIZE,
    DEFAULT_RSYNC_OPTIONS,
    ConfigError,
    ConfigManager,
    SyncConfig,
    format_size,
    parse_size,
)
from parasync.core.log import setup_logging
from parasync.core.progress import ProgressSnapshot
from parasync.core.summary import SyncResult
from parasync.core.sync import NoFilesFoundError, SyncManager
from parasync.core.transfer_log import TransferLogger

# Rich console for pretty output
console = Console()

# Command-line parameter name -> SyncConfig field
OPTION_FIELDS = {
    "jobs": "jobs",
    "min_size": "min_size",
    "max_depth": "max_depth",
    "batch_size": "batch_size",
    "sort_by_size": "sort_by_size",
    "include": "include",
    "exclude": "exclude",
    "options": "rsync_options",
    "resume": "resume",
    "log_dir": "log_dir",
}


class SizeType(click.ParamType):
    """Size with an optional K/KB, M/MB or G/GB suffix"""

    name = "size"

    def convert(self, value, param, ctx):
        if isinstance(value, int):
            return value
        try:
            return parse_size(value)
        except ConfigError as e:
            self.fail(str(e), param, ctx)


SIZE = SizeType()


def transfer_options(f):
    """Options shared by sync and profiles save"""
    decorators = [
        click.option("-j", "--jobs", type=click.INT, default=DEFAULT_JOBS,
                     help=f"Number of parallel jobs (default: {DEFAULT_JOBS})"),
        click.option("-m", "--min-size", type=SIZE, default=DEFAULT_MIN_SIZE,
                     help=f"Minimum size for a file to get its own job, e.g. 500K, 10M, 1.5G (default: {DEFAULT_MIN_SIZE})"),
        click.option("--max-depth", type=click.INT, default=DEFAULT_MAX_DEPTH,
                     help=f"Maximum directory depth to scan (default: {DEFAULT_MAX_DEPTH})"),
        click.option("--batch-size", type=click.INT, default=DEFAULT_BATCH_SIZE,
                     help=f"Maximum small files per batch job (default: {DEFAULT_BATCH_SIZE})"),
        click.option("--sort-by-size", is_flag=True, help="Process largest files first"),
        click.option("--include", multiple=True,
                     help="Include only files matching pattern (repeatable)"),
        click.option("--exclude", multiple=True,
                     help="Exclude files matching pattern (repeatable)"),
        click.option("-o", "--options", type=str, default=DEFAULT_RSYNC_OPTIONS,
                     help=f'Rsync options (default: "{DEFAULT_RSYNC_OPTIONS}")'),
        click.option("--resume", is_flag=True, help="Resume interrupted transfers"),
        click.option("--log-dir", type=click.Path(file_okay=False, path_type=Path),
                     help="Directory to store individual job logs"),
    ]
    for decorator in reversed(decorators):
        f = decorator(f)
    return f


def _explicit_options(ctx: click.Context) -> set:
    """SyncConfig fields set on the command line"""
    explicit = set()
    for param, field_name in OPTION_FIELDS.items():
        source = ctx.get_parameter_source(param)
        if source not in (None, ParameterSource.DEFAULT, ParameterSource.DEFAULT_MAP):
            explicit.add(field_name)
    return explicit


def _build_config(params: dict, **extra) -> SyncConfig:
    values = {field_name: params[param] for param, field_name in OPTION_FIELDS.items()}
    values["include"] = list(values["include"])
    values["exclude"] = list(values["exclude"])
    return SyncConfig(**values, **extra)


def _print_configuration(config: SyncConfig, profile: Optional[str]):
    table = Table(title="Parallel Rsync Configuration", show_header=False)
    table.add_column("Option", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Source", str(config.source))
    table.add_row("Destination", str(config.destination))
    table.add_row("Parallel jobs", str(config.jobs))
    table.add_row("Min size for own job", format_size(config.min_size))
    table.add_row("Batch size", f"{config.batch_size} files")
    table.add_row("Max scan depth", str(config.max_depth))
    table.add_row("Rsync options", " ".join(config.rsync_args))
    if profile:
        table.add_row("Profile", profile)
    if config.sort_by_size:
        table.add_row("Order", "Largest files first")
    if config.include:
        table.add_row("Include", " ".join(config.include))
    if config.exclude:
        table.add_row("Exclude", " ".join(config.exclude))
    if config.log_dir:
        table.add_row("Job logs", str(config.log_dir))
    if config.dry_run:
        table.add_row("Mode", "DRY RUN (no changes will be made)")

    console.print(table)


def _print_summary(result: SyncResult):
    snapshot = result.snapshot
    table = Table(title="Sync Summary")
    table.add_column("Jobs", justify="right", style="cyan")
    table.add_column("Completed", justify="right", style="green")
    table.add_column("Failed", justify="right", style="red")
    table.add_column("Files", justify="right")
    table.add_column("Transferred", justify="right", style="magenta")
    table.add_column("Duration", justify="right")
    table.add_row(
        str(snapshot.total_units),
        str(snapshot.completed),
        str(snapshot.failed),
        f"{snapshot.files_completed}/{snapshot.total_files}",
        format_size(snapshot.bytes_transferred),
        f"{result.duration:.1f}s",
    )
    console.print(table)

    if result.success:
        console.print(f"[green]Successfully transferred {snapshot.total_files} files[/green]")
    else:
        console.print(f"[red]{snapshot.failed} of {snapshot.total_units} jobs failed[/red]")
        for outcome in result.failed_outcomes:
            console.print(f"  ✗ job {outcome.job_id}: {outcome.unit.describe()}")


@click.group()
def cli():
    """parasync - Sync a directory tree with parallel rsync jobs

    Large files are synced individually so each can use the full bandwidth,
    small files are synced together in batches.

    Common commands:
    \b
    - sync          Sync SOURCE to DESTINATION
    - profiles      Manage saved option profiles
    - logs          View the history of sync runs
    """
    pass


@cli.command()
@click.argument("source", type=click.Path(path_type=Path))
@click.argument("destination", type=click.Path(path_type=Path))
@transfer_options
@click.option("-n", "--dry-run", is_flag=True, help="Perform a trial run with no changes made")
@click.option("-v", "--verbose", is_flag=True, help="Verbose output")
@click.option("--profile", type=str, help="Apply a saved option profile")
@click.option("--no-progress", is_flag=True, help="Log progress lines instead of a progress bar")
@click.pass_context
def sync(ctx, source: Path, destination: Path, dry_run: bool, verbose: bool,
         profile: Optional[str], no_progress: bool, **params):
    """Sync SOURCE directory to DESTINATION

    Files of at least --min-size are synced one per job, smaller files are
    synced in batches of --batch-size. At most --jobs rsync processes run at
    the same time.

    Examples:
    \b
    - Sync all files >50MB with 12 parallel jobs:
      parasync sync /data/large_files /backup/large_files -j 12 -m 50M

    - Largest files first, skip temp files:
      parasync sync /media /backup/media --sort-by-size --exclude "*.tmp"

    - Only video files, with per-job logs:
      parasync sync /videos /backup/videos --include "*.mp4" --log-dir /tmp/rsync_logs

    - Preview what would be transferred:
      parasync sync /source /dest -n -v
    """
    setup_logging(verbose=verbose, console=console)

    config = _build_config(
        params,
        source=source,
        destination=destination,
        dry_run=dry_run,
        verbose=verbose,
    )

    try:
        if profile:
            ConfigManager().get_profile(profile).apply(config, _explicit_options(ctx))

        manager = SyncManager(config, history=TransferLogger())
        manager.check()
        _print_configuration(config, profile)

        with console.status("[blue]Building file list...[/blue]"):
            plan = manager.plan()

        if no_progress or verbose or plan.total_files == 0:
            result = manager.run(plan=plan)
        else:
            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                BarColumn(),
                TaskProgressColumn(),
                console=console
            ) as progress:
                task = progress.add_task("Syncing files...", total=plan.total_files)

                def update_progress(snapshot: ProgressSnapshot):
                    progress.update(
                        task,
                        completed=snapshot.files_done,
                        description=(
                            f"Syncing ({format_size(snapshot.bytes_transferred)}"
                            f"/{format_size(snapshot.total_bytes)})"
                        ),
                    )

                result = manager.run(progress_sink=update_progress, plan=plan)

    except ConfigError as e:
        console.print(f"[red]Error: {str(e)}[/red]")
        sys.exit(1)
    except NoFilesFoundError:
        sys.exit(1)

    _print_summary(result)
    sys.exit(result.exit_code)


@click.group()
def profiles():
    """Manage saved option profiles"""
    pass


@profiles.command(name="list")
def list_profiles():
    """List saved profiles"""
    saved = ConfigManager().list_profiles()
    if not saved:
        console.print("[yellow]No profiles saved[/yellow]")
        return

    table = Table(title="Saved Profiles")
    table.add_column("Name", style="cyan")
    table.add_column("Options", style="green")
    for profile in saved:
        options = ", ".join(f"{k}={v}" for k, v in sorted(profile.options.items()))
        table.add_row(profile.name, options or "-")
    console.print(table)


@profiles.command()
@click.argument("name")
def show(name: str):
    """Show the options stored in a profile"""
    try:
        profile = ConfigManager().get_profile(name)
    except ConfigError as e:
        console.print(f"[red]Error: {str(e)}[/red]")
        sys.exit(1)

    table = Table(title=f"Profile {name}")
    table.add_column("Option", style="cyan")
    table.add_column("Value", style="green")
    for key, value in sorted(profile.options.items()):
        if key == "min_size":
            value = format_size(value)
        table.add_row(key, str(value))
    console.print(table)


@profiles.command()
@click.argument("name")
@transfer_options
@click.pass_context
def save(ctx, name: str, **params):
    """Save the given options as profile NAME

    Only options given on the command line are stored.

    Examples:
    \b
    - Network storage preset:
      parasync profiles save nas -j 4 -o "-avz --progress --partial --bwlimit=10000"
    """
    explicit = _explicit_options(ctx)
    if not explicit:
        console.print("[red]Error: No options given to save[/red]")
        sys.exit(1)

    config = _build_config(params)
    ConfigManager().save_profile(name, config, keys=sorted(explicit))
    console.print(f"[green]Saved profile: {name}[/green]")


@profiles.command()
@click.argument("name")
def remove(name: str):
    """Remove a saved profile"""
    try:
        ConfigManager().remove_profile(name)
    except ConfigError as e:
        console.print(f"[red]Error: {str(e)}[/red]")
        sys.exit(1)
    console.print(f"[green]Removed profile: {name}[/green]")


@cli.command()
@click.option(
    "--date",
    type=str,
    help="Show logs for specific date (YYYY-MM-DD format)"
)
@click.option(
    "--show-failures",
    is_flag=True,
    help="Show the failed jobs of each run"
)
def logs(date: str = None, show_failures: bool = False):
    """View the history of sync runs

    Examples:
    \b
    - View the most recent day's runs:
      parasync logs

    - View runs for specific date:
      parasync logs --date 2025-03-22

    - View runs with failed jobs:
      parasync logs --show-failures
    """
    history = TransferLogger()

    if date is None:
        date = history.latest_date()
        if date is None:
            console.print("[yellow]No sync logs found[/yellow]")
            return

    entries = history.get_entries(date)
    if not entries:
        console.print(f"[yellow]No sync logs found for {date}[/yellow]")
        return

    table = Table(title=f"Sync Logs for {date}")
    table.add_column("Time", style="cyan")
    table.add_column("Source", style="green")
    table.add_column("Destination", style="blue")
    table.add_column("Status", style="yellow")
    table.add_column("Size", style="magenta")
    table.add_column("Duration", style="cyan")

    for entry in entries:
        time = datetime.fromisoformat(entry.timestamp).strftime("%H:%M:%S")

        total_units = entry.completed_units + entry.failed_units
        if total_units == 0:
            status = "No jobs"
        else:
            status = f"{entry.completed_units}/{total_units} jobs"
        if entry.dry_run:
            status += " (dry run)"

        table.add_row(
            time,
            entry.source_dir,
            entry.destination_dir,
            status,
            format_size(entry.total_size),
            f"{entry.duration:.1f}s"
        )

        if show_failures and entry.failed_jobs:
            console.print(f"\n[red]Failed jobs in run at {time}:[/red]")
            for job in entry.failed_jobs:
                console.print(f"  ✗ {job}")

    console.print(table)


# Register command groups
cli.add_command(profiles)

if __name__ == "__main__":
    cli()
