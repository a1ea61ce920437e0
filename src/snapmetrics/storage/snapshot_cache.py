"""
SQLite file holding the previous snapshot, so diff metrics can be turned
into rates on the next run. One row per metric; each save replaces the
whole set.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime, timezone
from typing import Optional

from snapmetrics.errors import CacheError
from snapmetrics.metrics import MetricSnapshot

log = logging.getLogger(__name__)

# Stamped into PRAGMA user_version
SCHEMA_VERSION = 1


class SnapshotCache:

    def __init__(self, db_path: str):
        self._db_path = db_path
        try:
            self._conn = sqlite3.connect(db_path)
            # WAL so a run that dies mid-write doesn't leave a torn cache
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute("""
                CREATE TABLE IF NOT EXISTS metric_values (
                    name TEXT PRIMARY KEY,
                    value REAL NOT NULL,
                    timestamp TEXT NOT NULL
                )
            """)
            self._conn.execute(f"PRAGMA user_version = {SCHEMA_VERSION}")
            self._conn.commit()
        except sqlite3.Error as exc:
            raise CacheError(f"cannot open snapshot cache {db_path}: {exc}") from exc

    def save(self, snapshot: MetricSnapshot):
        stamp = snapshot.timestamp.astimezone(timezone.utc).isoformat()
        try:
            with self._conn:
                self._conn.execute("DELETE FROM metric_values")
                self._conn.executemany(
                    "INSERT INTO metric_values (name, value, timestamp) VALUES (?, ?, ?)",
                    [(name, value, stamp) for name, value in snapshot.values.items()],
                )
        except sqlite3.Error as exc:
            raise CacheError(f"cannot write snapshot cache {self._db_path}: {exc}") from exc
        log.debug("Cached %d values at %s", len(snapshot), stamp)

    def load(self) -> Optional[MetricSnapshot]:
        """Return the previously saved snapshot, or None on first run."""
        try:
            rows = self._conn.execute(
                "SELECT name, value, timestamp FROM metric_values ORDER BY name"
            ).fetchall()
        except sqlite3.Error as exc:
            raise CacheError(f"cannot read snapshot cache {self._db_path}: {exc}") from exc
        if not rows:
            return None

        # all rows share the timestamp of the snapshot they came from
        return MetricSnapshot(
            values={name: value for name, value, _ in rows},
            timestamp=datetime.fromisoformat(rows[0][2]),
        )

    def close(self):
        self._conn.close()
