"""
CLI entry point for Recall.

This module provides the Typer-based command-line interface for browsing
and maintaining a request history file.

Commands:
    list        List stored requests, newest first
    show        Show one stored request in full
    stats       Summarize the history
    clear       Delete every stored request
    maintain    Evict the oldest requests beyond the entry limit
    repair      Drop corrupted lines from the history file
    tag         Add a tag to a stored request
    untag       Remove a tag from a stored request
    rerun       Send a stored request again and record the result
    export      Export the history as JSON

Architecture Note:
    The CLI is intentionally thin - it parses arguments and delegates to the
    History service. Record IDs may be abbreviated to any unique prefix, as
    shown in the ID column of `recall list`.
"""

import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Annotated, Optional

import typer
import yaml
from pydantic import ValidationError
from rich.console import Console

from recall import __version__
from recall.errors import RecallError, RecordNotFoundError
from recall.executor import DEFAULT_TIMEOUT_SECONDS, execute_request
from recall.history import History
from recall.report import (
    generate_json_export,
    print_history_table,
    print_record_details,
    print_stats,
)
from recall.schema import HistoryConfig, HistoryRecord, load_config
from recall.search import (
    compute_stats,
    filter_by_method,
    filter_by_status,
    filter_by_tag,
    filter_errors,
    get_recent_entries,
)

# Initialize Typer app with metadata
app = typer.Typer(
    name="recall",
    help="Browse and maintain a bounded HTTP request history.",
    add_completion=False,
    no_args_is_help=True,
)

# Rich console for formatted output
console = Console()


@dataclass
class CliState:
    """Options shared by every command."""

    history_file: Path | None = None
    config_file: Path | None = None


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold]recall[/bold] version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    history_file: Annotated[
        Optional[Path],
        typer.Option(
            "--file",
            "-f",
            help="History file. Defaults to the per-user history location.",
            resolve_path=True,
        ),
    ] = None,
    config_file: Annotated[
        Optional[Path],
        typer.Option(
            "--config",
            "-c",
            help="YAML file with history settings (historyLimit, saveFailedRequests, ...).",
            exists=True,
            readable=True,
            resolve_path=True,
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option(
            "--verbose",
            help="Log storage activity to stderr.",
        ),
    ] = False,
    version: Annotated[
        Optional[bool],
        typer.Option(
            "--version",
            "-v",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """
    Recall - Bounded, append-friendly history of HTTP requests.

    Every command works on one history file; pass --file to choose it.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
        force=True,
    )
    ctx.obj = CliState(history_file=history_file, config_file=config_file)


# =============================================================================
# Helpers
# =============================================================================


def _fail(error: RecallError) -> None:
    """Print an error with its suggestion and exit with code 1."""
    console.print(f"[red]{error.message}[/red]")
    if error.suggestion:
        console.print(f"[dim]Suggestion: {error.suggestion}[/dim]")
    raise typer.Exit(code=1)


def _load_settings(state: CliState) -> HistoryConfig:
    if state.config_file is None:
        return HistoryConfig()
    try:
        return load_config(state.config_file)
    except (OSError, yaml.YAMLError, ValidationError) as e:
        console.print(f"[red]Error loading config: {e}[/red]")
        raise typer.Exit(code=1)


def _open_history(ctx: typer.Context) -> History:
    state: CliState = ctx.obj or CliState()
    return History(state.history_file, _load_settings(state))


def _load_records(history: History) -> tuple[list[HistoryRecord], int]:
    outcome = history.load()
    if not outcome.success:
        _fail(outcome.error)
    corrupted = outcome.metadata.get("corrupted_lines", 0)
    if corrupted:
        console.print(
            f"[yellow]Skipped {corrupted} corrupted line(s). "
            "Run 'recall repair' to remove them.[/yellow]"
        )
    return outcome.records, corrupted


def _resolve_record(history: History, record_id: str) -> HistoryRecord:
    """Find a record by full ID or unique ID prefix."""
    records, _ = _load_records(history)
    matches = [r for r in records if r.id == record_id]
    if not matches:
        matches = [r for r in records if r.id.startswith(record_id)]

    if not matches:
        _fail(RecordNotFoundError(record_id=record_id))
    if len(matches) > 1:
        console.print(
            f"[red]ID prefix '{record_id}' matches {len(matches)} records[/red]"
        )
        console.print("[dim]Suggestion: Use more characters of the ID[/dim]")
        raise typer.Exit(code=1)
    return matches[0]


# =============================================================================
# Browsing
# =============================================================================


@app.command("list")
def list_records(
    ctx: typer.Context,
    tag: Annotated[
        Optional[str],
        typer.Option("--tag", "-t", help="Only requests carrying this tag."),
    ] = None,
    method: Annotated[
        Optional[str],
        typer.Option("--method", "-m", help="Only requests with this HTTP method."),
    ] = None,
    status: Annotated[
        Optional[int],
        typer.Option("--status", "-s", help="Only responses with this status code."),
    ] = None,
    errors_only: Annotated[
        bool,
        typer.Option("--errors", help="Only failed requests (4xx, 5xx or no response)."),
    ] = False,
    limit: Annotated[
        int,
        typer.Option("--limit", "-n", help="Maximum number of requests to show.", min=1),
    ] = 20,
    relative: Annotated[
        bool,
        typer.Option("--relative", help="Show times as '5 minutes ago'."),
    ] = False,
) -> None:
    """
    List stored requests, newest first.

    Example:
        $ recall list --tag api --limit 5
    """
    history = _open_history(ctx)
    records, _ = _load_records(history)

    if tag:
        records = filter_by_tag(tag, records)
    if method:
        records = filter_by_method(method, records)
    if status is not None:
        records = filter_by_status(status, records)
    if errors_only:
        records = filter_errors(records)

    if not records:
        console.print("[dim]No requests in history.[/dim]")
        raise typer.Exit(code=0)

    shown = get_recent_entries(limit, records)
    print_history_table(shown, console=console, relative=relative)
    if len(records) > len(shown):
        console.print(f"[dim]Showing {len(shown)} of {len(records)} requests[/dim]")


@app.command()
def show(
    ctx: typer.Context,
    record_id: Annotated[str, typer.Argument(help="Record ID or unique prefix.")],
) -> None:
    """Show one stored request and its response."""
    history = _open_history(ctx)
    record = _resolve_record(history, record_id)
    print_record_details(record, console=console)


@app.command()
def stats(ctx: typer.Context) -> None:
    """Summarize the history: totals, successes and errors."""
    history = _open_history(ctx)
    records, corrupted = _load_records(history)
    console.print(f"[bold]History[/bold] [dim]{history.path}[/dim]")
    print_stats(compute_stats(records), console=console, corrupted_lines=corrupted)


@app.command()
def export(
    ctx: typer.Context,
    output: Annotated[
        Optional[Path],
        typer.Option(
            "--output",
            "-o",
            help="Write the export to this file instead of stdout.",
            resolve_path=True,
        ),
    ] = None,
) -> None:
    """Export every stored request as JSON."""
    history = _open_history(ctx)
    outcome = history.load()
    if not outcome.success:
        _fail(outcome.error)

    document = generate_json_export(
        outcome.records,
        corrupted_lines=outcome.metadata.get("corrupted_lines", 0),
    )
    if output is None:
        print(document)
        return

    try:
        output.write_text(document + "\n", encoding="utf-8")
    except OSError as e:
        console.print(f"[red]Cannot write {output}: {e}[/red]")
        raise typer.Exit(code=1)
    console.print(f"Exported {len(outcome.records)} requests to {output}")


# =============================================================================
# Maintenance
# =============================================================================


@app.command()
def clear(
    ctx: typer.Context,
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Do not ask for confirmation."),
    ] = False,
) -> None:
    """Delete every stored request."""
    history = _open_history(ctx)
    if not yes:
        typer.confirm(f"Delete all history in {history.path}?", abort=True)

    outcome = history.clear()
    if not outcome.success:
        _fail(outcome.error)
    console.print("[green]History cleared[/green]")


@app.command()
def maintain(
    ctx: typer.Context,
    max_entries: Annotated[
        Optional[int],
        typer.Option(
            "--max-entries",
            help="Entry limit to enforce (overrides the configured historyLimit).",
            min=1,
        ),
    ] = None,
) -> None:
    """Evict the oldest requests beyond the entry limit."""
    history = _open_history(ctx)
    config = history.config
    if max_entries is not None:
        config = config.model_copy(update={"max_entries": max_entries})

    outcome = history.maintain(config)
    if not outcome.success:
        _fail(outcome.error)

    evicted = outcome.metadata["evicted"]
    if evicted:
        console.print(
            f"Evicted {evicted} oldest request(s); "
            f"keeping at most {outcome.metadata['max_entries']}"
        )
    else:
        console.print(f"[dim]Within limit ({outcome.metadata['max_entries']})[/dim]")


@app.command()
def repair(ctx: typer.Context) -> None:
    """Rewrite the history file without its corrupted lines."""
    history = _open_history(ctx)
    outcome = history.repair()
    if not outcome.success:
        _fail(outcome.error)

    corrupted = outcome.metadata["corrupted"]
    valid = outcome.metadata["valid"]
    if corrupted:
        console.print(f"[green]Removed {corrupted} corrupted line(s)[/green], kept {valid}")
    else:
        console.print(f"[dim]No corrupted lines found ({valid} records)[/dim]")


@app.command()
def tag(
    ctx: typer.Context,
    record_id: Annotated[str, typer.Argument(help="Record ID or unique prefix.")],
    name: Annotated[str, typer.Argument(help="Tag to add.")],
) -> None:
    """Add a tag to a stored request."""
    history = _open_history(ctx)
    record = _resolve_record(history, record_id)
    outcome = history.tag(record.id, name)
    if not outcome.success:
        _fail(outcome.error)
    console.print(f"Tagged {record.id[:8]}: {', '.join(outcome.record.tags)}")


@app.command()
def untag(
    ctx: typer.Context,
    record_id: Annotated[str, typer.Argument(help="Record ID or unique prefix.")],
    name: Annotated[str, typer.Argument(help="Tag to remove.")],
) -> None:
    """Remove a tag from a stored request."""
    history = _open_history(ctx)
    record = _resolve_record(history, record_id)
    outcome = history.untag(record.id, name)
    if not outcome.success:
        _fail(outcome.error)
    remaining = ", ".join(outcome.record.tags) or "no tags"
    console.print(f"Untagged {record.id[:8]}: {remaining}")


# =============================================================================
# Re-execution
# =============================================================================


@app.command()
def rerun(
    ctx: typer.Context,
    record_id: Annotated[str, typer.Argument(help="Record ID or unique prefix.")],
    timeout: Annotated[
        float,
        typer.Option("--timeout", help="Request timeout in seconds.", min=0.1),
    ] = DEFAULT_TIMEOUT_SECONDS,
) -> None:
    """
    Send a stored request again and record the new exchange.

    Credential headers stripped at storage time are not restored, so
    authenticated endpoints may answer 401.
    """
    history = _open_history(ctx)
    record = _resolve_record(history, record_id)

    console.print(f"[bold]{record.request.method.value}[/bold] {record.request.url}")
    result = execute_request(record.request, timeout=timeout)
    if result.error:
        console.print(f"[red]{result.error}[/red]")
    else:
        response = result.response
        console.print(
            f"{response.status_code} {response.status_text} "
            f"[dim]({result.duration_ms:.1f}ms)[/dim]"
        )

    outcome = history.record(result.request, result.response, tags=record.tags)
    if not outcome.success:
        _fail(outcome.error)
    if outcome.metadata.get("stored"):
        console.print(f"[dim]Recorded as {outcome.record.id[:8]}[/dim]")
    else:
        console.print("[dim]Not recorded (failed requests are not saved)[/dim]")

    if not result.success:
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
