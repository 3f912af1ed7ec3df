"""Log subcommand: export, stats, trades."""

from __future__ import annotations

import typer

from predamm.storage.db import get_connection, init_schema
from predamm.storage.event_log import list_trades, log_stats
from predamm.storage.export import export_events_to_parquet

app = typer.Typer(help="Venue event log export and statistics")


@app.command("export")
def export(
    ctx: typer.Context,
    condition: str | None = typer.Option(None, "--condition", "-c", help="Filter by condition ID"),
    output: str = typer.Option("events.parquet", "--output", "-o", help="Output path"),
) -> None:
    """Export venue events to Parquet."""
    settings = ctx.obj["settings"]
    conn = get_connection(settings.db_path)
    init_schema(conn)
    try:
        count = export_events_to_parquet(conn, output, condition_id=condition)
        typer.echo(f"Exported {count} events to {output}")
    finally:
        conn.close()


@app.command("stats")
def stats(ctx: typer.Context) -> None:
    """Show event log statistics (counts, time range, by type and condition)."""
    settings = ctx.obj["settings"]
    conn = get_connection(settings.db_path)
    init_schema(conn)
    try:
        s = log_stats(conn)
        typer.echo(f"Total events: {s['total_events']}")
        typer.echo(f"Min emitted_at: {s.get('min_emitted_at')}")
        typer.echo(f"Max emitted_at: {s.get('max_emitted_at')}")
        for row in s["by_type"]:
            typer.echo(f"  {row['event_type']}  {row['count']}")
        if s.get("by_condition"):
            typer.echo("By condition (top 20):")
            for row in s["by_condition"]:
                typer.echo(f"  {row['condition_id']}  {row['count']}")
    finally:
        conn.close()


@app.command("trades")
def trades(
    ctx: typer.Context,
    condition: str | None = typer.Option(None, "--condition", "-c", help="Filter by condition ID"),
    limit: int = typer.Option(20, "--limit", "-n", help="Rows to show"),
) -> None:
    """Show the most recent trades."""
    settings = ctx.obj["settings"]
    conn = get_connection(settings.db_path, read_only=False)
    init_schema(conn)
    try:
        for t in list_trades(conn, condition_id=condition, limit=limit):
            typer.echo(
                f"{t['emitted_at']}  {t['side']:<4} outcome={t['outcome']}  in={t['amount_in']}  "
                f"out={t['amount_out']}  fee={t['fee']}  {t['trader']}"
            )
    finally:
        conn.close()
