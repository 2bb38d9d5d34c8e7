"""Command-line interface for storyreader.

Built with Typer for commands and Rich for beautiful output.
"""

from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .config import get_config
from .db import get_db

# Create the main app
app = typer.Typer(
    name="storyreader",
    help="Run and manage the Ilaw ng Bayan story reader backend.",
    no_args_is_help=True,
)

# Create sub-apps for command groups
maintenance_app = typer.Typer(help="Turn platform maintenance mode on or off.")
app.add_typer(maintenance_app, name="maintenance")

# Rich console for pretty output
console = Console()


# ============================================================================
# Helper Functions
# ============================================================================


def print_error(message: str) -> None:
    """Print an error message."""
    console.print(f"[bold red]Error:[/bold red] {message}")


def print_success(message: str) -> None:
    """Print a success message."""
    console.print(f"[bold green]Success:[/bold green] {message}")


def print_warning(message: str) -> None:
    """Print a warning message."""
    console.print(f"[bold yellow]Warning:[/bold yellow] {message}")


def print_info(message: str) -> None:
    """Print an info message."""
    console.print(f"[dim]{message}[/dim]")


def format_progress_table(rows: list, titles: dict[int, str], title: str = "Progress") -> Table:
    """Create a rich table for displaying progress rows."""
    from .reading import format_reading_time

    table = Table(title=title, show_header=True, header_style="bold magenta")
    table.add_column("Book", style="cyan", no_wrap=False, max_width=40)
    table.add_column("Complete", justify="right", style="green")
    table.add_column("Page", justify="right")
    table.add_column("Reading time", justify="right", style="yellow")
    table.add_column("Last read", style="dim")

    for row in rows:
        table.add_row(
            titles.get(row.book_id, f"#{row.book_id}"),
            f"{row.percent_complete}%",
            str(row.current_page) if row.current_page is not None else "-",
            format_reading_time(row.total_reading_time or 0),
            row.last_read_at.strftime("%Y-%m-%d %H:%M") if row.last_read_at else "-",
        )

    return table


# ============================================================================
# Database Commands
# ============================================================================


@app.command("init-db")
def init_db() -> None:
    """Create the database tables."""
    config = get_config()
    for problem in config.validate():
        print_warning(problem)

    get_db().create_tables()
    print_success(f"Database ready at {config.db_path}")


@app.command()
def seed() -> None:
    """Add the demo accounts and the "Sun and Moon" storybook."""
    from .seed import seed_database

    result = seed_database(get_db())

    table = Table(title="Demo accounts", show_header=True, header_style="bold magenta")
    table.add_column("ID", justify="right")
    table.add_column("Username", style="cyan")
    table.add_column("Role", style="green")
    for user in result.users:
        table.add_row(str(user.id), user.username, user.role)
    console.print(table)

    if result.created_book:
        print_success(f"Added storybook: {result.book.title} (id {result.book.id})")
    else:
        print_info(f"Storybook already present: {result.book.title} (id {result.book.id})")


@app.command()
def token(
    username: str = typer.Argument(..., help="Account to issue a token for"),
    minutes: Optional[int] = typer.Option(
        None, "--minutes", "-m", help="Lifetime in minutes (default from config)"
    ),
) -> None:
    """Issue a development access token for an account."""
    from datetime import timedelta

    from .server.auth import create_access_token

    user = get_db().get_user_by_username(username)
    if not user:
        print_error(f"User not found: {username}")
        raise typer.Exit(1)

    expires = timedelta(minutes=minutes) if minutes else None
    access_token = create_access_token(user.id, user.role, user.username, expires_delta=expires)
    console.print(access_token, soft_wrap=True)


# ============================================================================
# Server Commands
# ============================================================================


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", "-h", help="Bind address"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Port"),
) -> None:
    """Run the API server."""
    from .server import create_app, run_server

    config = get_config()
    bind_host = host or config.host
    bind_port = port or config.port

    console.print(
        Panel(
            f"Database: {config.db_path}\nListening on http://{bind_host}:{bind_port}",
            title="Story reader backend",
            border_style="cyan",
        )
    )
    run_server(
        create_app(get_db(), config),
        host=bind_host,
        port=bind_port,
        debug=config.debug,
        reap_interval=config.reap_interval_seconds,
    )


@app.command()
def reap() -> None:
    """Close reading sessions left open past the orphan TTL."""
    from .reading import SessionTracker

    config = get_config()
    tracker = SessionTracker(get_db(), max_session_seconds=config.session_max_seconds)
    count = tracker.reap_orphaned_sessions()

    if count:
        print_success(f"Closed {count} orphaned session(s)")
    else:
        print_info("No orphaned sessions")


# ============================================================================
# Reporting Commands
# ============================================================================


@app.command()
def stats() -> None:
    """Show platform reading statistics."""
    from .reading import ProgressTracker, format_reading_time

    reading_stats = ProgressTracker(get_db()).get_reading_stats()

    table = Table(title="Reading Statistics", show_header=False)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green", justify="right")

    table.add_row("Reading sessions", str(reading_stats.total_sessions))
    table.add_row("Total reading time", format_reading_time(reading_stats.total_reading_seconds))
    table.add_row("Average session", format_reading_time(reading_stats.avg_session_seconds))
    table.add_row("Books completed", str(reading_stats.books_completed))
    table.add_row("Reader completion rate", f"{reading_stats.completion_rate}%")
    table.add_row("Book completion rate", f"{reading_stats.book_completion_rate}%")

    console.print(table)


@app.command()
def progress(
    username: str = typer.Argument(..., help="Reader to show progress for"),
) -> None:
    """Show a reader's progress across books."""
    from .reading import ProgressTracker, format_reading_time

    db = get_db()
    user = db.get_user_by_username(username)
    if not user:
        print_error(f"User not found: {username}")
        raise typer.Exit(1)

    tracker = ProgressTracker(db)
    rows = tracker.list_progress(user)
    if not rows:
        console.print(f"[dim]{username} has not started any books.[/dim]")
        return

    titles = {book.id: book.title for book in db.get_all_books()}
    console.print(format_progress_table(rows, titles, title=f"Progress for {user.full_name}"))

    summary = tracker.get_user_summary(user.id)
    console.print(
        f"\n[bold]{summary['books_completed']}[/bold] of {summary['books_started']} completed "
        f"({summary['completion_rate']}%), "
        f"total reading time {format_reading_time(summary['total_reading_seconds'])}"
    )


# ============================================================================
# Maintenance Commands
# ============================================================================


def _settings_manager():
    from .settings import SystemSettingsManager

    return SystemSettingsManager(get_db(), cache_ttl=0)


@maintenance_app.command("on")
def maintenance_on() -> None:
    """Put the platform into maintenance mode."""
    _settings_manager().set_maintenance_mode(True)
    print_warning("Maintenance mode is ON; students and teachers cannot read")


@maintenance_app.command("off")
def maintenance_off() -> None:
    """Take the platform out of maintenance mode."""
    _settings_manager().set_maintenance_mode(False)
    print_success("Maintenance mode is OFF")


@maintenance_app.command("status")
def maintenance_status() -> None:
    """Show whether maintenance mode is on."""
    manager = _settings_manager()
    enabled = manager.is_maintenance_mode()
    changed = manager.last_updated("maintenance_mode")

    state = "[bold yellow]ON[/bold yellow]" if enabled else "[bold green]OFF[/bold green]"
    console.print(f"Maintenance mode: {state}")
    if changed:
        print_info(f"Last changed {changed.strftime('%Y-%m-%d %H:%M UTC')}")


@app.command()
def version() -> None:
    """Show version information."""
    from . import __version__

    console.print(f"storyreader version {__version__}")


# ============================================================================
# Main Entry Point
# ============================================================================


def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
