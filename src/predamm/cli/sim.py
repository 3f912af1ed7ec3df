"""Sim subcommand: run, report."""

from __future__ import annotations

import typer

from predamm.ids import NO, YES
from predamm.simulation.runner import get_run_result, run_simulation, save_run_result
from predamm.storage.db import get_connection, init_schema
from predamm.storage.event_log import DuckDBEventStore

app = typer.Typer(help="Random-trader market simulations")

OUTCOMES = {"yes": YES, "no": NO}


def _echo_result(result) -> None:
    typer.echo(f"Run: {result.run_id}  Condition: {result.condition_id}")
    typer.echo(f"Trades: {result.trades_executed} executed, {result.trades_rejected} rejected  Volume: {result.volume}")
    typer.echo(f"Reserves at close: yes={result.final_reserve_yes} no={result.final_reserve_no}")
    winner = "YES" if result.winning_outcome == YES else "NO"
    typer.echo(f"Winner: {winner}  LP payout: {result.lp_payout}  Trader PnL: {result.trader_pnl}")
    typer.echo(f"Collateral conserved: {result.conserved}")


@app.command("run")
def run_sim(
    ctx: typer.Context,
    seed: int | None = typer.Option(None, "--seed", "-s", help="RNG seed (default from config)"),
    trades: int | None = typer.Option(None, "--trades", "-n", help="Number of trade attempts"),
    traders: int | None = typer.Option(None, "--traders", "-t", help="Number of simulated traders"),
    fee_bps: int | None = typer.Option(None, "--fee-bps", help="Trading fee in basis points"),
    winner: str | None = typer.Option(None, "--winner", "-w", help="Force outcome: yes or no"),
    persist: bool = typer.Option(True, "--persist/--no-persist", help="Store events and result in DuckDB"),
) -> None:
    """Seed a market, run random traders, resolve, and settle every account."""
    settings = ctx.obj["settings"]
    if winner is not None and winner.lower() not in OUTCOMES:
        typer.echo(f"Unknown outcome: {winner}. Choose from: {list(OUTCOMES)}")
        raise typer.Exit(1)
    kwargs = dict(
        seed=settings.sim_seed if seed is None else seed,
        traders=settings.sim_traders if traders is None else traders,
        trades=settings.sim_trades if trades is None else trades,
        initial_liquidity=settings.sim_initial_liquidity,
        trader_balance=settings.sim_trader_balance,
        trading_fee_bps=settings.default_trading_fee_bps if fee_bps is None else fee_bps,
        lp_fee_bps=settings.default_lp_fee_bps,
        platform_fee_bps=settings.platform_fee_bps,
        winning_outcome=OUTCOMES[winner.lower()] if winner else None,
    )
    if not persist:
        _echo_result(run_simulation(**kwargs))
        return
    conn = get_connection(settings.db_path)
    init_schema(conn)
    try:
        store = DuckDBEventStore(conn, batch_size=100)
        result = run_simulation(sink=store, **kwargs)
        store.flush()
        save_run_result(conn, result)
        _echo_result(result)
    finally:
        conn.close()


@app.command("report")
def report(
    ctx: typer.Context,
    run_id: str = typer.Option(..., "--run-id", help="Simulation run ID"),
) -> None:
    """Show report for a simulation run."""
    settings = ctx.obj["settings"]
    conn = get_connection(settings.db_path)
    init_schema(conn)
    try:
        result = get_run_result(conn, run_id)
        if not result:
            typer.echo(f"Run not found: {run_id}")
            raise typer.Exit(1)
        _echo_result(result)
        typer.echo(f"Params: {result.params}")
    finally:
        conn.close()
