"""DuckDB connection and schema init."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import duckdb

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

SCHEMA_SQL = """
-- Sequences for auto-increment IDs
CREATE SEQUENCE IF NOT EXISTS event_seq START 1;
CREATE SEQUENCE IF NOT EXISTS trade_seq START 1;

-- Venue event log (append-only, committed events only)
CREATE TABLE IF NOT EXISTS events (
    id              BIGINT PRIMARY KEY DEFAULT nextval('event_seq'),
    event_type      VARCHAR NOT NULL,
    condition_id    VARCHAR NOT NULL,
    emitted_at      BIGINT NOT NULL,
    payload         JSON NOT NULL
);

-- Executed AMM trades (denormalized from trade_executed events)
CREATE TABLE IF NOT EXISTS trades (
    id              BIGINT PRIMARY KEY DEFAULT nextval('trade_seq'),
    condition_id    VARCHAR NOT NULL,
    trader          VARCHAR NOT NULL,
    side            VARCHAR NOT NULL,
    outcome         INTEGER NOT NULL,
    amount_in       HUGEINT NOT NULL,
    amount_out      HUGEINT NOT NULL,
    fee             HUGEINT NOT NULL,
    emitted_at      BIGINT NOT NULL
);

-- Simulation runs (random-trader results)
CREATE TABLE IF NOT EXISTS sim_runs (
    run_id          VARCHAR PRIMARY KEY,
    condition_id    VARCHAR NOT NULL,
    params          JSON,
    trades_executed INTEGER,
    trades_rejected INTEGER,
    volume          HUGEINT,
    final_reserve_yes HUGEINT,
    final_reserve_no  HUGEINT,
    winning_outcome INTEGER,
    lp_payout       HUGEINT,
    trader_pnl      HUGEINT,
    conserved       BOOLEAN,
    created_at      BIGINT
);

CREATE INDEX IF NOT EXISTS idx_events_condition ON events (condition_id, event_type);
CREATE INDEX IF NOT EXISTS idx_trades_condition ON trades (condition_id, emitted_at);
"""


def get_connection(db_path: str | Path, read_only: bool = False) -> DuckDBPyConnection:
    """Open the venue database (":memory:" for a throwaway one). Caller closes it."""
    if str(db_path) == ":memory:":
        return duckdb.connect(":memory:")
    path = Path(db_path)
    if not read_only:
        path.parent.mkdir(parents=True, exist_ok=True)
    return duckdb.connect(str(path), read_only=read_only)


def init_schema(conn: DuckDBPyConnection) -> None:
    """Create tables and sequences if they do not exist."""
    for stmt in SCHEMA_SQL.split(";"):
        stmt = stmt.strip()
        if stmt:
            try:
                conn.execute(stmt)
            except duckdb.Error as e:
                if "already exists" not in str(e).lower():
                    raise
