"""Command line entry points for running and inspecting StreamAudit."""
import asyncio
import json
from typing import Any

import click

from stream_audit.api.dependencies import StoreContainer, build_container
from stream_audit.lifecycle import (
    TRANSITIONS,
    Status,
    is_terminal,
    outcome_display,
    outcome_for,
    status_display,
)
from stream_audit.services.reconciliation import compute_queue_stats
from stream_audit.utils.config import SchedulerSettings, get_settings


def lifecycle_rows() -> list[dict[str, Any]]:
    """One row per status: its successors, terminality and badge attributes."""
    rows = []
    for status in Status:
        display = status_display(status)
        outcome = outcome_for(status)
        rows.append(
            {
                "status": status.value,
                "next": sorted(next_status.value for next_status in TRANSITIONS[status]),
                "terminal": is_terminal(status),
                "outcome": outcome.value if outcome else None,
                "label": display.label,
                "color": display.color,
                "icon": display.icon,
                "outcome_badge": outcome_display(outcome).label,
            }
        )
    return rows


def print_lifecycle_table(rows: list[dict[str, Any]]) -> None:
    """Print the transition table in a fixed-width layout."""
    click.echo("=" * 70)
    click.echo("STATUS LIFECYCLE")
    click.echo("=" * 70)
    click.echo(f"  {'STATUS':<12}{'NEXT':<24}{'OUTCOME':<10}{'COLOR':<9}ICON")
    click.echo("-" * 70)
    for row in rows:
        successors = ", ".join(row["next"]) or "(terminal)"
        click.echo(
            f"  {row['status']:<12}{successors:<24}{row['outcome_badge']:<10}"
            f"{row['color']:<9}{row['icon']}"
        )
    click.echo("=" * 70)


async def run_simulation(container: StoreContainer, duration: float) -> dict[str, Any]:
    """Connect, run the synthetic driver for ``duration`` seconds and summarise the queue."""
    await container.connect()
    try:
        driver = container.build_driver()
        driver.start()
        try:
            await asyncio.sleep(duration)
        finally:
            await driver.stop()
        objects = await container.reconciler.list(container.settings.stats_scan_limit)
        return compute_queue_stats(objects).to_api()
    finally:
        await container.close()


@click.group()
def cli() -> None:
    """StreamAudit service commands."""


@cli.command()
@click.option("--host", default="0.0.0.0", show_default=True, help="Interface to bind")
@click.option("--port", default=3001, show_default=True, type=int, help="Port to listen on")
@click.option("--reload", is_flag=True, help="Restart on code changes (development only)")
def serve(host: str, port: int, reload: bool) -> None:
    """Run the HTTP API with uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "stream_audit.api.main:app",
        host=host,
        port=port,
        reload=reload,
        log_level=settings.log_level.lower(),
    )


@cli.command()
@click.option(
    "--duration",
    default=60.0,
    show_default=True,
    type=float,
    help="Seconds to keep the driver running",
)
@click.option(
    "--insert-range",
    nargs=2,
    type=float,
    default=None,
    help="Min and max seconds between inserts (overrides settings)",
)
@click.option(
    "--update-range",
    nargs=2,
    type=float,
    default=None,
    help="Min and max seconds between updates (overrides settings)",
)
@click.option(
    "--item-probability",
    type=click.FloatRange(0, 1),
    default=None,
    help="Chance that an insert also creates items under a recent batch",
)
@click.option("--json", "output_json", is_flag=True, help="Print the final stats as JSON")
def simulate(
    duration: float,
    insert_range: tuple[float, float] | None,
    update_range: tuple[float, float] | None,
    item_probability: float | None,
    output_json: bool,
) -> None:
    """
    Drive synthetic traffic against the configured stores.

    Examples:

        # Fast demo traffic for two minutes
        stream-audit simulate --duration 120 --insert-range 1 3 --update-range 0.5 1
    """
    settings = get_settings()
    overrides: dict[str, Any] = {"enabled": True}
    if insert_range:
        overrides["insert_min_seconds"], overrides["insert_max_seconds"] = insert_range
    if update_range:
        overrides["update_min_seconds"], overrides["update_max_seconds"] = update_range
    if item_probability is not None:
        overrides["item_probability"] = item_probability

    scheduler = SchedulerSettings.model_validate(
        {**settings.scheduler.model_dump(), **overrides}
    )
    settings = settings.model_copy(update={"scheduler": scheduler})

    stats = asyncio.run(run_simulation(build_container(settings), duration))

    if output_json:
        click.echo(json.dumps(stats, indent=2))
        return

    click.echo(f"Queue after {duration:.0f}s: {stats['total']} objects, "
               f"{stats['totalRecords']} records")
    for status, count in sorted(stats["byStatus"].items()):
        click.echo(f"  {status:<12}{count}")
    for outcome, count in sorted(stats["byOutcome"].items()):
        click.echo(f"  {outcome:<12}{count}")


@cli.command()
@click.option("--json", "output_json", is_flag=True, help="Output the table as JSON")
def lifecycle(output_json: bool) -> None:
    """Print the status transition table with display attributes."""
    rows = lifecycle_rows()
    if output_json:
        click.echo(json.dumps(rows, indent=2))
    else:
        print_lifecycle_table(rows)


if __name__ == "__main__":
    cli()
