"""
Console report generator for Recall.

Renders history in the terminal using the Rich library: a table of past
requests, a detailed view of one record, and summary statistics.

Design Principles:
    - Human-readable first: Optimize for quick scanning
    - Status at a glance: Use icons and colors for status
    - Progressive detail: List first, one record in full on request
    - Honest bodies: A truncated body is labelled as such, never shown as empty
"""

from datetime import UTC, datetime

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from recall.schema import BodyEncoding, HistoryRecord
from recall.search import HistoryStats

# Status icons
ICON_SUCCESS = "[green]✓[/green]"
ICON_REDIRECT = "[cyan]↪[/cyan]"
ICON_ERROR = "[red]✗[/red]"
ICON_NO_RESPONSE = "[dim]○[/dim]"

REQUEST_BODY_PREVIEW = 500
RESPONSE_BODY_PREVIEW = 1000


def format_timestamp(timestamp: datetime) -> str:
    """Local wall-clock time, to the second."""
    return timestamp.astimezone().strftime("%Y-%m-%d %H:%M:%S")


def format_relative_time(timestamp: datetime, now: datetime | None = None) -> str:
    """
    Describe how long ago a timestamp was.

    Args:
        timestamp: The instant to describe
        now: Reference time (defaults to the current UTC time)

    Returns:
        A phrase such as "just now", "5 minutes ago" or "yesterday"
    """
    now = now or datetime.now(UTC)
    seconds = int((now - timestamp).total_seconds())

    if seconds < 60:
        return "just now"
    minutes = seconds // 60
    if minutes < 60:
        return f"{minutes} minute{'' if minutes == 1 else 's'} ago"
    hours = minutes // 60
    if hours < 24:
        return f"{hours} hour{'' if hours == 1 else 's'} ago"
    days = hours // 24
    if days < 7:
        return "yesterday" if days == 1 else f"{days} days ago"
    weeks = days // 7
    if weeks < 4:
        return f"{weeks} week{'' if weeks == 1 else 's'} ago"
    if days < 365:
        months = days // 30
        return f"{months} month{'' if months == 1 else 's'} ago"
    years = days // 365
    return f"{years} year{'' if years == 1 else 's'} ago"


def format_record_line(record: HistoryRecord) -> str:
    """One-line summary: method, URL, status and time."""
    method = record.request.method.value
    if record.response is None:
        status = "no response"
    else:
        status = f"{record.response.status_code} {record.response.status_text}".rstrip()
    return f"{method} {record.request.url} - {status} ({format_timestamp(record.timestamp)})"


def _status_icon(record: HistoryRecord) -> str:
    if record.response is None:
        return ICON_NO_RESPONSE
    if record.response.is_success():
        return ICON_SUCCESS
    if record.response.is_redirect():
        return ICON_REDIRECT
    return ICON_ERROR


def _status_style(status_code: int) -> str:
    if status_code < 300:
        return "green"
    if status_code < 400:
        return "cyan"
    if status_code < 500:
        return "yellow"
    return "red"


def _truncate(s: str, max_len: int) -> str:
    """Truncate string with ellipsis."""
    if len(s) <= max_len:
        return s
    return s[: max_len - 3] + "..."


def _body_preview(body: str, max_length: int) -> str:
    trimmed = body.strip()
    if len(trimmed) <= max_length:
        return trimmed
    return f"{trimmed[:max_length]}...\n[Preview truncated - {len(trimmed)} total characters]"


def print_history_table(
    records: list[HistoryRecord],
    console: Console | None = None,
    relative: bool = False,
) -> None:
    """
    Print a table of history records in the order given.

    Args:
        records: Records to show
        console: Rich Console instance (creates one if not provided)
        relative: Show "5 minutes ago" instead of absolute times
    """
    if console is None:
        console = Console()

    table = Table(show_header=True, header_style="bold", expand=True)
    table.add_column("", width=2, justify="center")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("When", no_wrap=True)
    table.add_column("Method", width=7)
    table.add_column("URL", overflow="fold")
    table.add_column("Status", justify="right", width=6)
    table.add_column("Tags", style="magenta")

    for record in records:
        when = (
            format_relative_time(record.timestamp)
            if relative
            else format_timestamp(record.timestamp)
        )
        if record.response is None:
            status = "[dim]—[/dim]"
        else:
            code = record.response.status_code
            status = f"[{_status_style(code)}]{code}[/{_status_style(code)}]"

        table.add_row(
            _status_icon(record),
            record.id[:8],
            when,
            record.request.method.value,
            _truncate(record.request.url, 80),
            status,
            ", ".join(record.tags),
        )

    console.print(table)


def print_record_details(record: HistoryRecord, console: Console | None = None) -> None:
    """Print every stored field of one record."""
    if console is None:
        console = Console()

    header = Text()
    header.append(" Record ", style="bold")
    header.append(record.id, style="bold cyan")
    header.append(" │ ", style="dim")
    header.append(format_timestamp(record.timestamp))
    console.print(Panel(header, expand=False))
    console.print()

    # Request
    request = record.request
    console.print("[bold]Request[/bold]")
    console.print(f"  {request.method.value} {request.url}")
    if request.headers:
        console.print("  [dim]Headers:[/dim]")
        for name, value in request.headers:
            console.print(f"    {name}: {value}", markup=False)
    if request.body and request.body_encoding == BodyEncoding.BASE64:
        console.print(f"  [dim]Body: binary data ({len(request.body_bytes)} bytes)[/dim]")
    elif request.body:
        console.print("  [dim]Body:[/dim]")
        console.print(_body_preview(request.body, REQUEST_BODY_PREVIEW), markup=False)
    console.print()

    # Response
    response = record.response
    console.print("[bold]Response[/bold]")
    if response is None:
        console.print("  [dim]No response received[/dim]")
    else:
        style = _status_style(response.status_code)
        console.print(
            f"  [{style}]{response.status_code} {response.status_text}[/{style}]"
            f" [dim]({response.duration_ms:.1f}ms)[/dim]"
        )
        if response.headers:
            console.print("  [dim]Headers:[/dim]")
            for name, value in response.headers:
                console.print(f"    {name}: {value}", markup=False)

        if response.truncated:
            console.print(
                f"  [yellow]Body not stored: {response.original_size} bytes exceeded the history limit[/yellow]"
            )
        elif not response.body:
            console.print("  [dim]Body: empty[/dim]")
        elif response.body_encoding == BodyEncoding.BASE64:
            console.print(f"  [dim]Body: binary data ({response.body_size} bytes)[/dim]")
        else:
            console.print("  [dim]Body:[/dim]")
            console.print(_body_preview(response.body, RESPONSE_BODY_PREVIEW), markup=False)

    if record.tags:
        console.print()
        console.print(f"[dim]Tags:[/dim] {', '.join(record.tags)}")


def print_stats(
    stats: HistoryStats,
    console: Console | None = None,
    corrupted_lines: int = 0,
) -> None:
    """Print summary statistics for a history."""
    if console is None:
        console = Console()

    stats_table = Table(show_header=False, box=None, padding=(0, 2))
    stats_table.add_column("Metric", style="dim")
    stats_table.add_column("Value")

    stats_table.add_row("Total", str(stats.total))
    stats_table.add_row(
        "Successful",
        f"[green]{stats.successful}[/green] ({stats.success_rate:.1f}%)",
    )
    stats_table.add_row(
        "Errors",
        f"[red]{stats.errors}[/red] ({stats.error_rate:.1f}%)" if stats.errors else "0 (0.0%)",
    )
    if corrupted_lines:
        stats_table.add_row("Corrupted lines", f"[yellow]{corrupted_lines}[/yellow]")

    console.print(stats_table)
