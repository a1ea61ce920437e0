"""
Collector for PostgreSQL statistics views.

pg_stat_database counters are cumulative since server start (or the last
stats reset). We report them raw; the plugin host turns the ones marked
diff into per-minute rates using the previous snapshot.
"""

from __future__ import annotations

import logging
from decimal import InvalidOperation
from typing import Dict, Union

from sqlalchemy import text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from snapmetrics.collector.base import MetricsCollector
from snapmetrics.errors import DecodeError, QueryError, TransportError
from snapmetrics.graphs import GraphRegistry, counter_graph
from snapmetrics.metrics import MetricSnapshot

log = logging.getLogger(__name__)

STAT_DATABASE_COLUMNS = (
    "xact_commit", "xact_rollback",
    "blks_read", "blks_hit",
    "tup_returned", "tup_fetched", "tup_inserted", "tup_updated", "tup_deleted",
)

# Summed across every database on the server
STAT_DATABASE_SQL = text(
    "SELECT "
    + ", ".join(f"SUM({col}) AS {col}" for col in STAT_DATABASE_COLUMNS)
    + " FROM pg_stat_database"
)

CONNECTION_STATES = ("active", "idle", "idle_in_transaction")

CONNECTIONS_SQL = text(
    "SELECT state, COUNT(*) AS n FROM pg_stat_activity GROUP BY state"
)

POSTGRES_GRAPHS = GraphRegistry({
    "postgres.connections": counter_graph(
        "PostgreSQL Connections", "integer", CONNECTION_STATES, diff=False, stacked=True
    ),
    "postgres.commits": counter_graph(
        "PostgreSQL Commits", "integer", STAT_DATABASE_COLUMNS[0:2]
    ),
    "postgres.blocks": counter_graph(
        "PostgreSQL Disk Blocks", "integer", STAT_DATABASE_COLUMNS[2:4]
    ),
    "postgres.rows": counter_graph(
        "PostgreSQL Rows", "integer", STAT_DATABASE_COLUMNS[4:9]
    ),
})


def _to_float(column: str, value) -> float:
    # psycopg2 hands SUM(bigint) back as Decimal; float() is exact below 2**53
    if value is None:
        raise DecodeError(f"column {column} is NULL")
    try:
        return float(value)
    except (TypeError, ValueError, InvalidOperation) as exc:
        raise DecodeError(f"column {column} is not numeric: {value!r}") from exc


def fetch_stat_database(conn: Connection) -> Dict[str, float]:
    """Run the pg_stat_database aggregate and map columns to metric names."""
    try:
        result = conn.execute(STAT_DATABASE_SQL)
        row = result.mappings().first()
    except SQLAlchemyError as exc:
        raise QueryError(f"pg_stat_database query failed: {exc}") from exc

    if row is None:
        raise DecodeError("pg_stat_database returned no rows")

    stat = {}
    for col in STAT_DATABASE_COLUMNS:
        if col not in row:
            raise DecodeError(f"pg_stat_database result is missing column {col}")
        stat[col] = _to_float(col, row[col])
    return stat


def fetch_connections(conn: Connection) -> Dict[str, float]:
    """Count backends per state. States we don't graph are ignored."""
    try:
        rows = conn.execute(CONNECTIONS_SQL).all()
    except SQLAlchemyError as exc:
        raise QueryError(f"pg_stat_activity query failed: {exc}") from exc

    stat = {state: 0.0 for state in CONNECTION_STATES}
    for row in rows:
        if len(row) != 2:
            raise DecodeError(f"unexpected pg_stat_activity row {tuple(row)!r}")
        # pg reports it with spaces, graph keys can't have them
        state = (row[0] or "").replace(" ", "_")
        if state in stat:
            stat[state] = _to_float(state, row[1])
    return stat


class PostgresCollector(MetricsCollector):

    def __init__(self, bind: Union[Engine, Connection]):
        self._bind = bind

    def _fetch_all(self, conn: Connection) -> MetricSnapshot:
        values = {}
        values.update(fetch_connections(conn))
        values.update(fetch_stat_database(conn))
        return MetricSnapshot(values=values)

    def collect(self) -> MetricSnapshot:
        """Both queries succeed or the whole snapshot fails."""
        if isinstance(self._bind, Connection):
            return self._fetch_all(self._bind)

        try:
            conn = self._bind.connect()
        except SQLAlchemyError as exc:
            raise TransportError(f"could not connect to {self._bind.url.render_as_string()}: {exc}") from exc
        with conn:
            return self._fetch_all(conn)

    def graphs(self) -> GraphRegistry:
        return POSTGRES_GRAPHS

    def name(self) -> str:
        url = self._bind.engine.url
        return f"PostgreSQL ({url.host or 'local'}/{url.database or ''})"

    def close(self):
        if isinstance(self._bind, Engine):
            self._bind.dispose()
