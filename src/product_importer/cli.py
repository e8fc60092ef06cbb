"""Command-line interface for the product importer."""

import asyncio
import json
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table
from sqlalchemy.engine import make_url

from .config import settings
from .errors import InputError, StoreConnectionError
from .fetchers.enrichment_api import EnrichmentClient
from .loader import load_records
from .logging_config import setup_logging, get_logger
from .pipeline.importer import RunSummary, run_import
from .pipeline.normalization import normalize_record
from .pipeline.rate_limiter import RateLimiter
from .pipeline.validation import validate_product
from .progress import LoggingProgressSink, RichProgressSink
from .storage.sql_store import SqlProductStore

# Initialize CLI app
app = typer.Typer(
    name="product-importer",
    help="Import products with validation, rate-limited enrichment & failure tracking",
    add_completion=False,
)
console = Console()
logger = get_logger(__name__)

PRODUCT_FIELDS = ("sku", "name", "price", "stock", "description")


@app.callback()
def main(
    log_level: str = typer.Option(
        "INFO",
        "--log-level",
        help="Set logging level",
        case_sensitive=False,
    ),
) -> None:
    """Product Importer CLI - Validate, enrich and store product data."""
    settings.log_level = log_level.upper()
    setup_logging(console)


def _connect_store(database_url: str) -> SqlProductStore:
    try:
        return SqlProductStore(database_url).connect()
    except StoreConnectionError as e:
        console.print(f"[red]Error: {e}")
        raise typer.Exit(1)


@app.command()
def run(
    input_file: str = typer.Argument(..., help="Input JSON or CSV file with product data"),
    enrichment_url: Optional[str] = typer.Option(
        settings.enrichment_url,
        "--enrichment-url", "-e",
        help="Enrichment endpoint; enrichment is skipped when not set",
    ),
    database_url: str = typer.Option(
        settings.database_url,
        "--database-url", "-d",
        help="SQLAlchemy database URL",
    ),
    rate_limit: int = typer.Option(
        settings.max_api_requests_per_minute,
        "--rate-limit",
        help="Enrichment requests allowed per rate window",
        min=1,
    ),
    rate_window: float = typer.Option(
        settings.rate_window_seconds,
        "--rate-window",
        help="Rate window in seconds",
        min=0.001,
    ),
    max_retries: int = typer.Option(
        settings.max_retries,
        "--max-retries",
        help="Attempts per enrichment call",
        min=1,
        max=10,
    ),
    concurrency: int = typer.Option(
        settings.concurrency,
        "--concurrency", "-c",
        help="Records processed concurrently (capped at the rate limit)",
        min=1,
        max=50,
    ),
    progress_bar: bool = typer.Option(
        True,
        "--progress-bar/--no-progress-bar",
        help="Live progress bar; otherwise progress is logged every --report-every records",
    ),
    report_every: int = typer.Option(
        100,
        "--report-every",
        help="Records between progress log lines without a progress bar",
        min=1,
    ),
    yes: bool = typer.Option(
        False,
        "--yes", "-y",
        help="Do not ask for confirmation",
    ),
) -> None:
    """
    Import products from a JSON or CSV file.

    Valid products are upserted by sku; invalid ones and failed API or
    database writes are stored in the invalid_products table with reasons.
    """
    try:
        records = load_records(input_file)
    except InputError as e:
        console.print(f"[red]Error: {e}")
        raise typer.Exit(1)

    store = _connect_store(database_url)
    try:
        # Display input summary
        table = Table(title="Import Summary")
        table.add_column("Setting", style="cyan")
        table.add_column("Value", style="green")

        table.add_row("Total products", str(len(records)))
        table.add_row("Input file", input_file)
        table.add_row("Enrichment", enrichment_url or "[yellow]disabled")
        if enrichment_url:
            table.add_row("Rate limit", f"{rate_limit} per {rate_window:g}s")
            table.add_row("Max retries", str(max_retries))
        table.add_row("Concurrency", str(concurrency))

        console.print(table)

        if not yes and not typer.confirm("\nProceed with import?"):
            console.print("Cancelled.")
            raise typer.Exit(0)

        # A live bar only renders on a terminal; log lines survive redirection
        if progress_bar and console.is_terminal:
            sink = RichProgressSink(console)
        else:
            sink = LoggingProgressSink(report_every)

        try:
            with sink as progress:
                summary = asyncio.run(
                    run_import(
                        records,
                        store,
                        progress,
                        enrichment_url=enrichment_url,
                        rate_limit=rate_limit,
                        rate_window=rate_window,
                        max_retries=max_retries,
                        concurrency=concurrency,
                        handle_interrupt=True,
                    )
                )
        except KeyboardInterrupt:
            console.print("\n[yellow]⚠️  Import interrupted by user")
            raise typer.Exit(130)
        except Exception as e:
            console.print(f"\n[red]❌ Import failed: {e}")
            logger.exception("Import failed")
            raise typer.Exit(1)
    finally:
        store.close()

    _print_summary(summary)


def _print_summary(summary: RunSummary) -> None:
    table = Table(title="Import Complete" if not summary.cancelled else "Import Stopped")
    table.add_column("Outcome", style="cyan")
    table.add_column("Count", style="green", justify="right")

    table.add_row("Total", str(summary.total))
    table.add_row("Succeeded", str(summary.succeeded))
    table.add_row("Invalid", str(summary.invalid))
    table.add_row("API failed", str(summary.api_failed))
    table.add_row("DB failed", str(summary.persist_failed))
    if summary.cancelled:
        table.add_row("Not processed", str(summary.total - summary.processed))
    table.add_row("Elapsed", f"{summary.elapsed_seconds}s")

    console.print(table)


@app.command()
def info(
    input_file: str = typer.Argument(..., help="Input file to analyze"),
) -> None:
    """Display information about an input file without importing it."""
    try:
        records = load_records(input_file)
    except InputError as e:
        console.print(f"[red]Error: {e}")
        raise typer.Exit(1)

    input_path = Path(input_file)
    invalid = sum(1 for record in records if validate_product(normalize_record(record)))

    table = Table(title=f"File Analysis: {input_path.name}")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("File size", f"{input_path.stat().st_size / 1024:.1f} KB")
    table.add_row("Records", str(len(records)))
    table.add_row("Valid", str(len(records) - invalid))
    table.add_row("Invalid", str(invalid))

    console.print(table)

    fields_table = Table(title="Fields")
    fields_table.add_column("Name", style="cyan")
    fields_table.add_column("Present", style="green")

    extra_fields = sorted({key for record in records for key in record} - set(PRODUCT_FIELDS))
    for name in (*PRODUCT_FIELDS, *extra_fields):
        present = sum(1 for record in records if record.get(name) not in (None, ""))
        fields_table.add_row(name, f"{present}/{len(records)}")

    console.print(fields_table)


@app.command()
def probe(
    sku: str = typer.Argument(..., help="SKU to look up"),
    enrichment_url: Optional[str] = typer.Option(
        settings.enrichment_url,
        "--enrichment-url", "-e",
        help="Enrichment endpoint",
    ),
    max_retries: int = typer.Option(
        settings.max_retries,
        "--max-retries",
        help="Attempts for this call",
        min=1,
        max=10,
    ),
) -> None:
    """Call the enrichment endpoint for a single SKU."""
    if not enrichment_url:
        console.print("[red]Error: no enrichment URL configured (set ENRICHMENT_URL or pass --enrichment-url)")
        raise typer.Exit(1)

    async def _probe():
        limiter = RateLimiter(
            capacity=settings.max_api_requests_per_minute,
            window_seconds=settings.rate_window_seconds,
        )
        async with EnrichmentClient(enrichment_url, limiter, max_retries=max_retries) as client:
            return await client.enrich({"sku": sku})

    outcome = asyncio.run(_probe())

    if outcome.ok:
        console.print(f"[green]✅ Enriched {sku} after {outcome.attempts} attempt(s)")
        console.print_json(json.dumps(outcome.data, ensure_ascii=False))
    else:
        console.print(f"[red]❌ Enrichment failed after {outcome.attempts} attempt(s): {outcome.error}")
        raise typer.Exit(1)


@app.command()
def failures(
    database_url: str = typer.Option(
        settings.database_url,
        "--database-url", "-d",
        help="SQLAlchemy database URL",
    ),
    limit: int = typer.Option(20, "--limit", "-n", help="Number of records to show", min=1),
) -> None:
    """Show the most recently recorded failures."""
    store = _connect_store(database_url)
    try:
        rows = store.list_failures(limit)
    finally:
        store.close()

    if not rows:
        console.print("[green]No failures recorded")
        return

    table = Table(title="Recent Failures")
    table.add_column("ID", style="cyan", justify="right")
    table.add_column("SKU", style="yellow")
    table.add_column("Reason", style="red")

    for row in rows:
        raw = row["raw_data"]
        sku = raw.get("sku", "") if isinstance(raw, dict) else ""
        table.add_row(str(row["id"]), str(sku), json.dumps(row["errors"], ensure_ascii=False))

    console.print(table)


@app.command()
def config() -> None:
    """Display current configuration."""
    table = Table(title="Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")
    table.add_column("Source", style="yellow")

    table.add_row(
        "Database URL",
        make_url(settings.database_url).render_as_string(hide_password=True),
        "Config"
    )
    table.add_row(
        "Enrichment URL",
        settings.enrichment_url or "[yellow]Not set (enrichment disabled)",
        "Environment"
    )
    table.add_row(
        "Rate Limit",
        f"{settings.max_api_requests_per_minute} per {settings.rate_window_seconds:g}s",
        "Config"
    )
    table.add_row("Max Retries", str(settings.max_retries), "Config")
    table.add_row("Backoff Base", f"{settings.backoff_base}s", "Config")
    table.add_row("Timeouts", f"{settings.connect_timeout}s connect / {settings.http_timeout}s total", "Config")
    table.add_row("Concurrency", str(settings.concurrency), "Config")
    table.add_row("Log Level", settings.log_level, "Config")

    console.print(table)


if __name__ == "__main__":
    app()
