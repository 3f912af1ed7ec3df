"""Venue event append and query - DuckDB-backed event sink."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog

from predamm.models.events import TradeExecuted, VenueEvent

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

log = structlog.get_logger(__name__)


def append_event(conn: DuckDBPyConnection, event: VenueEvent) -> None:
    """Append a single committed event; trades are also written to the trades table."""
    conn.execute(
        "INSERT INTO events (event_type, condition_id, emitted_at, payload) VALUES (?, ?, ?, ?)",
        [event.event_type, event.scope_id, event.emitted_at, event.model_dump_json()],
    )
    if isinstance(event, TradeExecuted):
        conn.execute(
            """
            INSERT INTO trades (condition_id, trader, side, outcome, amount_in, amount_out, fee, emitted_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            [
                event.condition_id,
                event.trader,
                event.side,
                event.outcome,
                event.amount_in,
                event.amount_out,
                event.fee,
                event.emitted_at,
            ],
        )


class DuckDBEventStore:
    """EventSink writing to an open DuckDB connection. Rows are buffered up to batch_size."""

    def __init__(self, conn: DuckDBPyConnection, batch_size: int = 1) -> None:
        self.conn = conn
        self.batch_size = max(1, batch_size)
        self._buffer: list[VenueEvent] = []

    def emit(self, event: VenueEvent) -> None:
        self._buffer.append(event)
        if len(self._buffer) >= self.batch_size:
            self.flush()

    def flush(self) -> None:
        if not self._buffer:
            return
        pending, self._buffer = self._buffer, []
        for event in pending:
            append_event(self.conn, event)
        log.debug("events_flushed", count=len(pending))


def log_stats(conn: DuckDBPyConnection) -> dict[str, Any]:
    """Return event log statistics: total count, time range, counts by type and by condition."""
    total = conn.execute("SELECT COUNT(*) FROM events").fetchone()[0]
    range_row = conn.execute("SELECT MIN(emitted_at), MAX(emitted_at) FROM events").fetchone()
    by_type = conn.execute(
        "SELECT event_type, COUNT(*) AS cnt FROM events GROUP BY event_type ORDER BY cnt DESC"
    ).fetchall()
    by_condition = conn.execute(
        "SELECT condition_id, COUNT(*) AS cnt FROM events GROUP BY condition_id ORDER BY cnt DESC LIMIT 20"
    ).fetchall()
    return {
        "total_events": total,
        "min_emitted_at": range_row[0],
        "max_emitted_at": range_row[1],
        "by_type": [{"event_type": r[0], "count": r[1]} for r in by_type],
        "by_condition": [{"condition_id": r[0], "count": r[1]} for r in by_condition],
    }


def list_trades(conn: DuckDBPyConnection, condition_id: str | None = None, limit: int = 100) -> list[dict[str, Any]]:
    """Most recent trades first, optionally for one condition."""
    columns = ["condition_id", "trader", "side", "outcome", "amount_in", "amount_out", "fee", "emitted_at"]
    sql = f"SELECT {', '.join(columns)} FROM trades"
    params: list[Any] = []
    if condition_id:
        sql += " WHERE condition_id = ?"
        params.append(condition_id)
    sql += " ORDER BY id DESC LIMIT ?"
    params.append(limit)
    rows = conn.execute(sql, params).fetchall()
    return [dict(zip(columns, r)) for r in rows]
