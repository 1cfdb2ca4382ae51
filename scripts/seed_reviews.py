"""Seed the review collection and materialize property ratings.

Single entry point for a workflow run:
1. Bootstrap the replica set and wait for a writable primary
2. Seed reviews from a CSV export, bookings, or the built-in sample
3. Rebuild the property_ratings rollup collection
4. Verify the persisted review count

Exit status: 0 on success, 2 if no writable primary was reached, 1 if
``--strict`` is set and verification or a recompute failed.
"""

from __future__ import annotations

import logging
import sys
from datetime import datetime, timezone
from pathlib import Path

import click
from pymongo.errors import PyMongoError
from rich.console import Console
from rich.progress import Progress
from rich.table import Table

from review_seed.config import MongoSettings, get_mongo_client
from review_seed.errors import ReviewSeedError
from review_seed.seeder import BatchOutcome
from review_seed.topology import DEFAULT_TOPOLOGY, load_topology
from review_seed.workflow import SourceKind, WorkflowConfig, WorkflowMode, WorkflowReport, run_workflow

console = Console()
logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
MAX_TABLE_ROWS = 20  # Rows shown per table before truncating
DATETIME_FORMATS = ["%Y-%m-%d", "%Y-%m-%dT%H:%M:%S"]


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO, format=LOG_FORMAT)


def status_text(passed: bool, message: str = "", warn: bool = False) -> str:
    """Render a ✓/✗ cell with an optional message."""
    color = "green" if passed else ("yellow" if warn else "red")
    text = f"[{color}]{'✓' if passed else '✗'}[/{color}]"
    if message:
        text += f" {message}"
    return text


def print_bootstrap(report: WorkflowReport) -> None:
    table = Table(title="Bootstrap")
    table.add_column("Step", style="cyan")
    table.add_column("Result")

    if report.bootstrap_error is not None:
        table.add_row("Primary", status_text(False, str(report.bootstrap_error)))
    elif report.bootstrap is None:
        table.add_row("Primary", "[dim]skipped[/dim]")
    else:
        result = report.bootstrap
        table.add_row("Replica set", result.init_status.value.replace("_", " "))
        table.add_row("Primary", status_text(True, result.primary))
        table.add_row("Wait", f"{result.elapsed:.1f}s ({result.attempts} polls)")
    if report.collection_status is not None:
        table.add_row("Review collection", report.collection_status.value.replace("_", " "))

    console.print(table)
    console.print()


def print_seed(report: WorkflowReport) -> None:
    seed = report.seed
    if seed is None:
        return

    table = Table(title=f"Seeding ({seed.mode.value.replace('_', ' ')})")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Rows seen", str(seed.rows_seen))
    table.add_row("Rows skipped (parse errors)", str(len(seed.parse_failures)))
    if seed.rows_filtered:
        table.add_row("Bookings not yet completed", str(seed.rows_filtered))
    table.add_row("Existing reviews cleared", str(seed.cleared))
    table.add_row("Records written", str(seed.records_written))
    table.add_row("Records failed", str(seed.records_failed))
    table.add_row("Batches", str(seed.batch_count))
    table.add_row("Insert rate", f"{seed.insert_rate:,.0f} docs/sec")
    table.add_row("Total time", f"{seed.elapsed:.2f}s")
    if report.timestamp_policy is not None:
        table.add_row("Timestamps", report.timestamp_policy.value.replace("_", " "))
    if report.completed_before is not None:
        table.add_row("Completed before", report.completed_before.isoformat())
    if report.used_sample_fallback:
        table.add_row("Source", "[yellow]sample data (CSV unavailable)[/yellow]")
    console.print(table)
    console.print()

    if seed.batches:
        table = Table(title="Batches")
        table.add_column("#", justify="right")
        table.add_column("Size", justify="right")
        table.add_column("Written", justify="right")
        table.add_column("Time (ms)", justify="right")
        table.add_column("Status", justify="center")
        for batch in seed.batches[:MAX_TABLE_ROWS]:
            table.add_row(
                str(batch.index),
                str(batch.size),
                str(batch.written),
                f"{batch.elapsed * 1000:.0f}",
                status_text(batch.ok, batch.error or ""),
            )
        console.print(table)
        if seed.batch_count > MAX_TABLE_ROWS:
            console.print(f"[dim]... {seed.batch_count - MAX_TABLE_ROWS} more batches, "
                          f"{len(seed.failed_batches)} failed in total[/dim]")
        console.print()

    if seed.parse_failures:
        table = Table(title="Skipped rows")
        table.add_column("Line", justify="right")
        table.add_column("Reason", style="yellow")
        for failure in seed.parse_failures[:MAX_TABLE_ROWS]:
            table.add_row(str(failure.line_number), failure.reason)
        console.print(table)
        if len(seed.parse_failures) > MAX_TABLE_ROWS:
            console.print(f"[dim]... {len(seed.parse_failures) - MAX_TABLE_ROWS} more skipped rows[/dim]")
        console.print()


def print_aggregation(report: WorkflowReport) -> None:
    aggregation = report.aggregation
    if aggregation is None:
        return

    table = Table(title=f"Property ratings ({aggregation.scope})")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Ratings written", str(aggregation.properties_written))
    table.add_row("Ratings removed", str(aggregation.properties_deleted))
    table.add_row("Time", f"{aggregation.elapsed * 1000:.0f}ms")
    if aggregation.index_error:
        table.add_row("Indexes", status_text(False, aggregation.index_error, warn=True))
    for property_id, message in aggregation.failures.items():
        table.add_row(f"Property {property_id}", status_text(False, message))
    console.print(table)
    console.print()


def print_verification(report: WorkflowReport) -> None:
    result = report.verification
    if result is None:
        return

    table = Table(title="Verification")
    table.add_column("Check", style="cyan")
    table.add_column("Expected", justify="right")
    table.add_column("Actual", justify="right")
    table.add_column("Status", justify="center")
    table.add_row(
        result.name,
        str(result.expected),
        str(result.actual),
        status_text(result.passed, result.message, warn=True),
    )
    console.print(table)
    console.print()


def print_report(report: WorkflowReport) -> None:
    """Print the structured end-of-run report."""
    print_bootstrap(report)
    print_seed(report)
    print_aggregation(report)
    print_verification(report)

    if report.bootstrap_error is not None:
        console.print("[bold red]✗ Aborted: no writable primary - nothing was written[/bold red]\n")
    elif report.succeeded:
        console.print("[bold green]✓ Review seeding complete![/bold green]\n")
    else:
        console.print("[bold yellow]⚠ Completed with warnings[/bold yellow]\n")


@click.command()
@click.option(
    "--mode",
    type=click.Choice([m.value for m in WorkflowMode]),
    default=WorkflowMode.FULL_RESEED.value,
    show_default=True,
    help="Replace reviews, append to them, or only recompute given properties",
)
@click.option(
    "--source",
    type=click.Choice([s.value for s in SourceKind]),
    default=SourceKind.SAMPLE.value,
    show_default=True,
    help="Where review rows come from",
)
@click.option(
    "--csv-path",
    type=click.Path(path_type=Path),
    default=None,
    help="Cleaned listings CSV (with --source csv)",
)
@click.option(
    "--bookings-path",
    type=click.Path(path_type=Path),
    default=None,
    help="Bookings CSV (with --source bookings); built-in sample when omitted",
)
@click.option(
    "--property-id",
    "property_ids",
    type=int,
    multiple=True,
    help="Property to recompute (with --mode recompute_property); repeatable",
)
@click.option("--timeout", type=float, default=None, help="Seconds to wait for a primary [default: 60]")
@click.option("--batch-size", type=int, default=None, help="Reviews per insert batch [default: 1000]")
@click.option(
    "--topology",
    type=click.Path(path_type=Path),
    default=None,
    help="Replica set topology YAML (default: rs0 on mongo1-3)",
)
@click.option(
    "--completed-before",
    type=click.DateTime(formats=DATETIME_FORMATS),
    default=None,
    help="Bookings ending before this UTC time get a review [default: now]",
)
@click.option("--seed", "random_seed", type=int, default=None, help="Random seed for booking reviews")
@click.option("--fallback-to-sample", is_flag=True, help="Use sample rows if the CSV is missing")
@click.option("--skip-bootstrap", is_flag=True, help="Assume the replica set already has a primary")
@click.option("--strict", is_flag=True, help="Exit non-zero when verification fails")
@click.option("--verbose", "-v", is_flag=True, default=False, help="Enable verbose output")
def main(
    mode: str,
    source: str,
    csv_path: Path | None,
    bookings_path: Path | None,
    property_ids: tuple[int, ...],
    timeout: float | None,
    batch_size: int | None,
    topology: Path | None,
    completed_before: datetime | None,
    random_seed: int | None,
    fallback_to_sample: bool,
    skip_bootstrap: bool,
    strict: bool,
    verbose: bool,
) -> None:
    """Bootstrap, seed reviews, rebuild property ratings and verify."""
    configure_logging(verbose)
    settings = MongoSettings.from_env()

    if completed_before is not None and completed_before.tzinfo is None:
        completed_before = completed_before.replace(tzinfo=timezone.utc)

    try:
        config = WorkflowConfig(
            mode=WorkflowMode(mode),
            source=SourceKind(source),
            csv_path=csv_path,
            bookings_path=bookings_path,
            property_ids=list(property_ids),
            topology=load_topology(topology) if topology else DEFAULT_TOPOLOGY,
            timeout=timeout,
            batch_size=batch_size,
            completed_before=completed_before,
            random_seed=random_seed,
            fallback_to_sample=fallback_to_sample,
            skip_bootstrap=skip_bootstrap,
        )
        config.validate()
    except ValueError as e:
        raise click.UsageError(str(e)) from e
    except ReviewSeedError as e:
        console.print(f"[bold red]{e}[/bold red]")
        sys.exit(1)

    console.print(f"\n[bold blue]Seeding reviews into {settings.database}...[/bold blue]\n")

    client = get_mongo_client(settings)
    try:
        with Progress(console=console) as progress:
            task = progress.add_task("[green]Writing reviews...", total=None)

            def advance(outcome: BatchOutcome) -> None:
                progress.update(task, advance=outcome.size)

            config.on_batch = advance
            report = run_workflow(client, settings, config)
    except (ReviewSeedError, PyMongoError) as e:
        console.print(f"[bold red]Seeding failed:[/bold red] {e}")
        sys.exit(1)
    finally:
        client.close()

    print_report(report)
    sys.exit(report.exit_code(strict))


if __name__ == "__main__":
    main()
