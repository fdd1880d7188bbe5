"""
Command-line interface for QuizScout.
Thin Rich-formatted surface over the enqueue and maintenance interfaces.
"""

import asyncio
import logging
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from quizscout import __app_name__, __version__
from quizscout.config import settings

# Create Typer app
app = typer.Typer(
    name="quizscout",
    help="QuizScout - pub quiz venue and event ingestion",
    add_completion=False,
)

db_app = typer.Typer(help="Database management")
app.add_typer(db_app, name="db")

console = Console()
logger = logging.getLogger(__name__)


# ============================================================================
# Utility Functions
# ============================================================================

def handle_error(e: Exception, message: str = "An error occurred"):
    """Handle errors with nice formatting."""
    console.print(f"\n[bold red]✗ {message}[/bold red]")
    console.print(f"[red]{type(e).__name__}: {str(e)}[/red]\n")
    if settings.debug:
        console.print_exception()
    raise typer.Exit(code=1)


def success(message: str):
    """Print success message."""
    console.print(f"[bold green]✓ {message}[/bold green]")


def info(message: str):
    """Print info message."""
    console.print(f"[blue]{message}[/blue]")


# ============================================================================
# Main Callback
# ============================================================================

@app.callback()
def main():
    """
    QuizScout CLI.

    Use 'quizscout COMMAND --help' for command-specific help.
    """
    from quizscout.utils.logging_config import setup_logging_from_settings

    setup_logging_from_settings()


@app.command()
def version():
    """Show the application version."""
    console.print(f"{__app_name__} {__version__}")


# ============================================================================
# Scraping
# ============================================================================

@app.command()
def index(
    source: str = typer.Argument(..., help="Registered source name, e.g. 'quizmeisters'"),
    limit: Optional[int] = typer.Option(None, help="Stop after this many candidates"),
    force_update: bool = typer.Option(
        False, "--force-update", help="Ignore freshness and overwrite populated fields"
    ),
    inline: bool = typer.Option(
        False, "--inline", help="Run the index and detail jobs in this process instead of Celery"
    ),
):
    """
    Run or enqueue an index job for a source.

    Examples:
        quizscout index quizmeisters
        quizscout index question_one --limit 10 --force-update --inline
    """
    console.print(Panel(f"[bold]Index: {source}[/bold]", border_style="green"))

    try:
        if inline:
            asyncio.run(_run_inline(source, limit, force_update))
        else:
            from quizscout.tasks.scraping_tasks import enqueue_index_job

            result = enqueue_index_job(source, limit=limit, force_update=force_update)
            success(f"Enqueued index job for {source} (task {result.id})")
    except Exception as e:
        handle_error(e, "Index job failed")


async def _run_inline(source: str, limit: Optional[int], force_update: bool):
    from quizscout.database import session_scope
    from quizscout.orchestration import (
        DetailProcessor,
        IndexProcessor,
        run_detail_job,
        summarize_index_run,
    )
    from quizscout.services.geocoder import get_geocoder
    from quizscout.storage import get_asset_store

    payloads = []

    with session_scope() as db:
        result = await IndexProcessor().run(
            db,
            source,
            limit=limit,
            force_update=force_update,
            enqueue=lambda payload, countdown: payloads.append(payload),
        )
        info(
            f"{result.venue_count} venues found, {result.enqueued_jobs} to process, "
            f"{result.skipped_venues} skipped as fresh"
        )

        processor = DetailProcessor(
            asset_store=get_asset_store(settings), geocoder=get_geocoder(settings)
        )
        try:
            with console.status("[bold yellow]Processing venues..."):
                for payload in payloads:
                    # One attempt per venue inline; failures are recorded on the job row
                    await run_detail_job(db, payload, attempt=1, max_attempts=1, processor=processor)
        finally:
            await processor.close()

        summary = summarize_index_run(db, result.job_id)

    table = Table(show_header=True, header_style="bold magenta")
    for column in ("Total", "Succeeded", "Failed", "Pending"):
        table.add_column(column, justify="right")
    table.add_row(
        str(summary["total"]),
        f"[green]{summary['succeeded']}[/green]",
        f"[red]{summary['failed_venues']}[/red]",
        str(summary["pending"]),
    )
    console.print(table)


@app.command()
def sources():
    """List registered sources."""
    from quizscout.scrapers.registry import list_sources

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Name", style="cyan")
    table.add_column("Display name")
    table.add_column("Base URL")
    table.add_column("Schedule (m h dow)")
    table.add_column("Skip window (days)", justify="right")

    for definition in list_sources():
        table.add_row(
            definition.name,
            definition.display_name,
            definition.base_url,
            " ".join(definition.index_schedule),
            str(definition.freshness_window()),
        )
    console.print(table)


# ============================================================================
# Maintenance
# ============================================================================

@app.command("cleanup-assets")
def cleanup_assets(
    dry_run: bool = typer.Option(False, "--dry-run", help="Report without deleting"),
):
    """Remove all but the newest original/thumb in each owner directory."""
    from quizscout.storage import get_asset_store

    try:
        stats = get_asset_store(settings).cleanup_duplicate_assets(dry_run=dry_run)
    except Exception as e:
        handle_error(e, "Asset cleanup failed")

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    for key, value in stats.items():
        table.add_row(key, str(value))
    console.print(table)
    if dry_run:
        info("Dry run: nothing was deleted")


@app.command()
def duplicates(
    city: Optional[int] = typer.Option(None, "--city", help="Restrict the report to a city id"),
    record: bool = typer.Option(False, "--record", help="Store candidates in the review queue"),
):
    """Show likely duplicate venues (advisory only, nothing is merged)."""
    from quizscout.database import session_scope
    from quizscout.services.duplicate_detector import find_candidates, record_candidates

    try:
        with session_scope() as db:
            candidates = find_candidates(db, city_id=city)
            if record:
                created = record_candidates(db, candidates)
                info(f"{created} new candidates recorded")
    except Exception as e:
        handle_error(e, "Duplicate report failed")

    if not candidates:
        success("No duplicate candidates found")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Venue", style="cyan")
    table.add_column("Duplicate of", style="cyan")
    table.add_column("Confidence", justify="right")
    table.add_column("Name", justify="right")
    table.add_column("Location", justify="right")
    table.add_column("Reason")
    for candidate in candidates:
        table.add_row(
            f"{candidate.venue_name} (#{candidate.venue_id})",
            f"{candidate.duplicate_name} (#{candidate.duplicate_of_id})",
            f"{candidate.confidence:.2f}",
            f"{candidate.name_similarity:.2f}",
            f"{candidate.location_similarity:.2f}",
            candidate.reason,
        )
    console.print(table)


# ============================================================================
# Database
# ============================================================================

@db_app.command("init")
def db_init(
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
):
    """
    Initialize database (create all tables).

    WARNING: Only use in development!
    """
    console.print(Panel(
        "[bold red]⚠ Database Initialization[/bold red]\n\n"
        "This will create all database tables.\n"
        "In production, use Alembic migrations instead.",
        border_style="red",
    ))

    if not yes and not typer.confirm("Are you sure you want to continue?"):
        info("Operation cancelled")
        raise typer.Exit()

    try:
        from quizscout.database import init_db

        with console.status("[bold yellow]Creating database tables..."):
            init_db()
    except Exception as e:
        handle_error(e, "Database initialization failed")

    success("Database initialized successfully")


@app.command()
def health():
    """Check database and configuration."""
    from quizscout.database import check_db_connection

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Component", style="cyan")
    table.add_column("Status", style="green")
    table.add_column("Details", style="white")

    db_status = check_db_connection()
    table.add_row(
        "Database",
        "[green]✓ Healthy[/green]" if db_status else "[red]✗ Unhealthy[/red]",
        settings.database_url.split("@")[-1],
    )
    table.add_row("Storage", "[green]✓[/green]", settings.storage_backend)
    geo_ok = bool(settings.google_maps_api_key)
    table.add_row(
        "Google Maps API",
        "[green]✓[/green]" if geo_ok else "[yellow]✗[/yellow]",
        "Geocoding" if geo_ok else "Not configured, venues keep source coordinates",
    )
    console.print(table)

    if not db_status:
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
