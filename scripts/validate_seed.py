"""Validate review seed integrity.

This script validates:
1. Review count (against ``--expected`` when given)
2. Property ratings against the live reviews (stale totals, orphans, gaps)
3. Review and rating indexes (with ``--verbose``)

Mismatches are reported, never repaired.
"""

from __future__ import annotations

import sys

import click
from pymongo.errors import PyMongoError
from rich.console import Console
from rich.table import Table

from review_seed.config import MongoSettings, get_mongo_client
from review_seed.verifier import ValidationReport, VerificationResult, run_validation

console = Console()


def print_results(title: str, results: list[VerificationResult], show_counts: bool = True) -> None:
    table = Table(title=title)
    table.add_column("Check", style="cyan")
    if show_counts:
        table.add_column("Expected", justify="right")
        table.add_column("Actual", justify="right")
    table.add_column("Status", justify="center")

    for result in results:
        status = "✓" if result.passed else "✗"
        color = "green" if result.passed else "yellow"
        status_text = f"[{color}]{status}[/{color}]"
        if result.message:
            status_text += f" {result.message}"
        if show_counts:
            expected = "-" if result.expected is None else str(result.expected)
            table.add_row(result.name, expected, str(result.actual), status_text)
        else:
            table.add_row(result.name, status_text)

    console.print(table)
    console.print()


def print_report(report: ValidationReport) -> None:
    print_results("Reviews", report.reviews)
    print_results("Property Ratings", report.ratings)
    if report.indexes:
        print_results("Indexes", report.indexes, show_counts=False)

    if report.all_passed:
        console.print("[bold green]✓ All validations passed![/bold green]\n")
    else:
        console.print("[bold yellow]⚠ Some validations failed:[/bold yellow]")
        for failure in report.failures:
            console.print(f"  - {failure.name}: {failure.message or 'Failed'}")
        console.print()


@click.command()
@click.option("--expected", type=int, default=None, help="Expected number of reviews")
@click.option("--strict", is_flag=True, help="Exit non-zero when a validation fails")
@click.option(
    "--verbose", "-v",
    is_flag=True,
    default=False,
    help="Enable verbose output (includes index checks)",
)
def main(expected: int | None, strict: bool, verbose: bool) -> None:
    """Validate review seed integrity."""
    settings = MongoSettings.from_env()
    console.print("\n[bold blue]Validating seed integrity...[/bold blue]\n")

    client = get_mongo_client(settings)
    try:
        report = run_validation(
            client[settings.database],
            expected_reviews=expected,
            reviews_collection=settings.reviews_collection,
            ratings_collection=settings.ratings_collection,
            check_indexes=verbose,
        )
    except PyMongoError as e:
        console.print(f"[bold red]Validation failed:[/bold red] {e}")
        sys.exit(1)
    finally:
        client.close()

    print_report(report)
    if strict and not report.all_passed:
        sys.exit(1)


if __name__ == "__main__":
    main()
