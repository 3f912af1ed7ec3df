"""Experiment runner: seed a market, drive random traders, resolve, settle, persist results."""

from __future__ import annotations

import json
import random
import time
import uuid
from typing import Any

import structlog

from predamm.errors import MarketError
from predamm.events import EventSink
from predamm.ids import NO, NULL_COLLECTION, YES
from predamm.simulation.portfolio import PortfolioState, RunResult
from predamm.simulation.strategies.random_trader import RandomTrader
from predamm.simulation.strategy import Strategy
from predamm.venue import Venue

log = structlog.get_logger(__name__)

LP_ACCOUNT = "lp-0"


def _custody_backed(venue: Venue, engine_yes: str, engine_no: str, winning: int | None) -> bool:
    """Ledger custody equals outstanding position liability (both sides before, winner after resolution)."""
    custody = venue.collateral.balance_of(venue.ledger.address)
    yes_supply = venue.ledger.total_supply(engine_yes)
    no_supply = venue.ledger.total_supply(engine_no)
    if winning is None:
        return custody == yes_supply == no_supply
    return custody == (yes_supply if winning == YES else no_supply)


def run_simulation(
    seed: int = 7,
    traders: int = 5,
    trades: int = 200,
    initial_liquidity: int = 1_000_000,
    trader_balance: int = 250_000,
    trading_fee_bps: int = 100,
    lp_fee_bps: int = 0,
    platform_fee_bps: int = 0,
    winning_outcome: int | None = None,
    strategy: Strategy | None = None,
    sink: EventSink | None = None,
) -> RunResult:
    """Run one market from seeding to full settlement and return a RunResult."""
    rng = random.Random(seed)
    run_id = str(uuid.uuid4())[:8]
    venue = Venue.create(platform_fee_bps=platform_fee_bps, sink=sink)
    registry = venue.registry
    engine = registry.create_market(registry.address, f"sim-{run_id}", trading_fee_bps, lp_fee_bps)
    strategy = strategy or RandomTrader(rng)

    venue.fund(LP_ACCOUNT, initial_liquidity)
    venue.approve_market(LP_ACCOUNT, engine.address)
    engine.add_liquidity(LP_ACCOUNT, initial_liquidity)

    names = [f"trader-{i}" for i in range(traders)]
    books: dict[str, PortfolioState] = {}
    for name in names:
        venue.fund(name, trader_balance)
        venue.approve_market(name, engine.address)
        books[name] = PortfolioState(starting_cash=trader_balance)

    executed = rejected = 0
    for _ in range(trades):
        name = rng.choice(names)
        order = strategy.next_order(
            engine,
            venue.collateral.balance_of(name),
            venue.ledger.balance_of(name, engine.yes_position_id),
            venue.ledger.balance_of(name, engine.no_position_id),
        )
        if order is None:
            continue
        try:
            if order.side == "BUY":
                engine.swap(name, order.amount, order.outcome, order.min_amount_out)
                books[name].apply_buy(order.amount)
            else:
                payout = engine.sell(name, order.amount, order.outcome, order.min_amount_out)
                books[name].apply_sell(payout)
            executed += 1
        except MarketError as e:
            rejected += 1
            log.debug("sim_order_rejected", trader=name, side=order.side, reason=e.code)

    conserved = _custody_backed(venue, engine.yes_position_id, engine.no_position_id, None)
    final_yes, final_no = engine.reserve_yes, engine.reserve_no
    if winning_outcome is None:
        yes_price, _ = engine.get_current_prices()
        winning_outcome = YES if rng.random() * 10_000 < yes_price else NO
    registry.resolve_market(registry.oracle, registry.question_of(engine.condition_id), winning_outcome)

    before = venue.collateral.balance_of(LP_ACCOUNT)
    engine.claim_lp_winnings(LP_ACCOUNT)
    venue.ledger.redeem_positions(
        LP_ACCOUNT, LP_ACCOUNT, venue.collateral, NULL_COLLECTION, engine.condition_id, [NO, YES]
    )
    lp_payout = venue.collateral.balance_of(LP_ACCOUNT) - before

    for name in names:
        before = venue.collateral.balance_of(name)
        venue.ledger.redeem_positions(name, name, venue.collateral, NULL_COLLECTION, engine.condition_id, [NO, YES])
        books[name].apply_redeem(venue.collateral.balance_of(name) - before)

    conserved = conserved and _custody_backed(venue, engine.yes_position_id, engine.no_position_id, winning_outcome)
    result = RunResult(
        run_id=run_id,
        condition_id=engine.condition_id,
        trades_executed=executed,
        trades_rejected=rejected,
        volume=engine.total_volume,
        final_reserve_yes=final_yes,
        final_reserve_no=final_no,
        winning_outcome=winning_outcome,
        lp_payout=lp_payout,
        trader_pnl=sum(b.pnl for b in books.values()),
        conserved=conserved,
        params={
            "seed": seed,
            "traders": traders,
            "trades": trades,
            "initial_liquidity": initial_liquidity,
            "trader_balance": trader_balance,
            "trading_fee_bps": trading_fee_bps,
            "lp_fee_bps": lp_fee_bps,
            "platform_fee_bps": platform_fee_bps,
        },
    )
    log.info(
        "sim_run_complete",
        run_id=run_id,
        executed=executed,
        rejected=rejected,
        volume=result.volume,
        lp_payout=lp_payout,
        conserved=conserved,
    )
    return result


def save_run_result(conn: Any, result: RunResult) -> None:
    """Persist RunResult to sim_runs table."""
    conn.execute(
        """
        INSERT INTO sim_runs (run_id, condition_id, params, trades_executed, trades_rejected, volume,
                              final_reserve_yes, final_reserve_no, winning_outcome, lp_payout, trader_pnl,
                              conserved, created_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        [
            result.run_id,
            result.condition_id,
            json.dumps(result.params),
            result.trades_executed,
            result.trades_rejected,
            result.volume,
            result.final_reserve_yes,
            result.final_reserve_no,
            result.winning_outcome,
            result.lp_payout,
            result.trader_pnl,
            result.conserved,
            int(time.time() * 1000),
        ],
    )


def get_run_result(conn: Any, run_id: str) -> RunResult | None:
    """Load RunResult by run_id."""
    row = conn.execute(
        """
        SELECT run_id, condition_id, params, trades_executed, trades_rejected, volume, final_reserve_yes,
               final_reserve_no, winning_outcome, lp_payout, trader_pnl, conserved
        FROM sim_runs WHERE run_id = ?
        """,
        [run_id],
    ).fetchone()
    if not row:
        return None
    return RunResult(
        run_id=row[0],
        condition_id=row[1],
        params=json.loads(row[2]) if row[2] else {},
        trades_executed=row[3],
        trades_rejected=row[4],
        volume=int(row[5]),
        final_reserve_yes=int(row[6]),
        final_reserve_no=int(row[7]),
        winning_outcome=row[8],
        lp_payout=int(row[9]),
        trader_pnl=int(row[10]),
        conserved=bool(row[11]),
    )
