"""Initiate the replica set and wait until a primary accepts writes.

Safe to re-run: an initialized replica set is reported, never reconfigured.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import click
from pymongo.errors import PyMongoError
from rich.console import Console
from rich.table import Table

from review_seed.bootstrap import describe_cluster, ensure_writable_primary
from review_seed.config import MongoSettings, get_mongo_client
from review_seed.errors import BootstrapTimeoutError, ReviewSeedError
from review_seed.topology import DEFAULT_TOPOLOGY, load_topology
from review_seed.workflow import EXIT_BOOTSTRAP_TIMEOUT

console = Console()

STATE_COLORS = {"PRIMARY": "green", "SECONDARY": "cyan"}


def print_cluster_status(client) -> None:
    """Print one row per replica-set member."""
    status = describe_cluster(client)

    table = Table(title=f"Replica set {status.set_name}")
    table.add_column("Member", style="cyan")
    table.add_column("State", justify="center")
    table.add_column("Health", justify="right")

    for member in status.members:
        color = STATE_COLORS.get(member.state, "yellow")
        table.add_row(member.name, f"[{color}]{member.state}[/{color}]", f"{member.health:g}")

    console.print(table)
    console.print()


@click.command()
@click.option(
    "--topology",
    type=click.Path(path_type=Path),
    default=None,
    help="Replica set topology YAML (default: rs0 on mongo1-3)",
)
@click.option("--timeout", type=float, default=None, help="Seconds to wait for a primary [default: 60]")
@click.option("--interval", type=float, default=None, help="Seconds between status polls [default: 2]")
@click.option("--status", "show_status", is_flag=True, help="Print member states when done")
@click.option("--verbose", "-v", is_flag=True, default=False, help="Enable verbose output")
def main(
    topology: Path | None,
    timeout: float | None,
    interval: float | None,
    show_status: bool,
    verbose: bool,
) -> None:
    """Bootstrap the replica set."""
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO)
    settings = MongoSettings.from_env()

    try:
        replica_set = load_topology(topology) if topology else DEFAULT_TOPOLOGY
    except ReviewSeedError as e:
        console.print(f"[bold red]{e}[/bold red]")
        sys.exit(1)

    console.print(f"\n[bold blue]Bootstrapping replica set {replica_set.name}...[/bold blue]\n")

    client = get_mongo_client(settings)
    try:
        result = ensure_writable_primary(
            client, replica_set, settings, timeout=timeout, interval=interval
        )
        console.print(f"  ✓ Replica set {result.init_status.value.replace('_', ' ')}")
        console.print(f"  ✓ Primary {result.primary} ready after {result.elapsed:.1f}s")
        console.print()

        if show_status:
            print_cluster_status(client)
    except BootstrapTimeoutError as e:
        console.print(f"[bold red]✗ {e}[/bold red]")
        sys.exit(EXIT_BOOTSTRAP_TIMEOUT)
    except PyMongoError as e:
        console.print(f"[bold red]Bootstrap failed:[/bold red] {e}")
        sys.exit(1)
    finally:
        client.close()

    console.print("[bold green]Replica set ready for writes![/bold green]")


if __name__ == "__main__":
    main()
