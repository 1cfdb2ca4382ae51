"""Recompute materialized property ratings from the review collection.

Without ``--property-id`` the whole ratings collection is rebuilt. With
one or more ids only those properties are upserted, or removed when they
have no reviews left.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import click
from pymongo.errors import PyMongoError
from rich.console import Console
from rich.table import Table

from review_seed.aggregator import AggregationReport, rebuild_all, recompute_properties
from review_seed.bootstrap import ensure_writable_primary
from review_seed.config import MongoSettings, get_mongo_client
from review_seed.errors import BootstrapTimeoutError, ReviewSeedError
from review_seed.queries import RATING_TYPE_FIELDS, top_rated_properties
from review_seed.topology import DEFAULT_TOPOLOGY, load_topology
from review_seed.workflow import EXIT_BOOTSTRAP_TIMEOUT

console = Console()


def print_top_rated(db, limit: int, rating_type: str, ratings_collection: str) -> None:
    ratings = top_rated_properties(db, limit, rating_type, ratings_collection)

    table = Table(title=f"Top {limit} properties by {rating_type}")
    table.add_column("Property", style="cyan", justify="right")
    table.add_column("Cleanliness", justify="right")
    table.add_column("Satisfaction", justify="right")
    table.add_column("Reviews", justify="right")
    table.add_column("Last review")

    for rating in ratings:
        table.add_row(
            str(rating.property_id),
            f"{rating.avg_cleanliness_rating:.2f}",
            f"{rating.avg_satisfaction_rating:.2f}",
            str(rating.total_reviews),
            rating.last_review_at.date().isoformat(),
        )

    console.print(table)
    console.print()


def print_summary(report: AggregationReport) -> None:
    console.print(f"  ✓ Ratings written for {report.properties_written} properties ({report.scope})")
    if report.properties_deleted:
        console.print(f"  ✓ Removed {report.properties_deleted} ratings with no reviews left")
    if report.index_error:
        console.print(f"  [yellow]⚠ Rating indexes not created: {report.index_error}[/yellow]")
    for property_id, message in report.failures.items():
        console.print(f"  [red]✗ Property {property_id}: {message}[/red]")
    console.print()


@click.command()
@click.option(
    "--property-id",
    "property_ids",
    type=int,
    multiple=True,
    help="Recompute only this property; repeatable",
)
@click.option("--top", type=int, default=0, help="Print the N best rated properties afterwards")
@click.option(
    "--rating-type",
    type=click.Choice(sorted(RATING_TYPE_FIELDS)),
    default="satisfaction",
    show_default=True,
    help="Ranking used by --top",
)
@click.option(
    "--topology",
    type=click.Path(path_type=Path),
    default=None,
    help="Replica set topology YAML (default: rs0 on mongo1-3)",
)
@click.option("--timeout", type=float, default=None, help="Seconds to wait for a primary [default: 60]")
@click.option("--verbose", "-v", is_flag=True, default=False, help="Enable verbose output")
def main(
    property_ids: tuple[int, ...],
    top: int,
    rating_type: str,
    topology: Path | None,
    timeout: float | None,
    verbose: bool,
) -> None:
    """Recompute property ratings."""
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO)
    settings = MongoSettings.from_env()

    console.print("\n[bold blue]Recomputing property ratings...[/bold blue]\n")

    client = get_mongo_client(settings)
    try:
        replica_set = load_topology(topology) if topology else DEFAULT_TOPOLOGY
        ensure_writable_primary(client, replica_set, settings, timeout=timeout)

        db = client[settings.database]
        names = {
            "reviews_collection": settings.reviews_collection,
            "ratings_collection": settings.ratings_collection,
        }
        if property_ids:
            report = recompute_properties(db, property_ids, **names)
        else:
            report = rebuild_all(db, **names)
        print_summary(report)

        if top > 0:
            print_top_rated(db, top, rating_type, settings.ratings_collection)
    except BootstrapTimeoutError as e:
        console.print(f"[bold red]✗ {e}[/bold red]")
        sys.exit(EXIT_BOOTSTRAP_TIMEOUT)
    except (ReviewSeedError, PyMongoError) as e:
        console.print(f"[bold red]Recompute failed:[/bold red] {e}")
        sys.exit(1)
    finally:
        client.close()

    if not report.ok:
        sys.exit(1)
    console.print("[bold green]Property ratings up to date![/bold green]")


if __name__ == "__main__":
    main()
