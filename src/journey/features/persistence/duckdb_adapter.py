from __future__ import annotations

import time
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

import duckdb

from .schema import KV_TABLE_NAME, TELEMETRY_COLUMNS, TELEMETRY_TABLE_NAME, create_schema

_INSERT_TELEMETRY = "INSERT INTO {table} ({columns}) VALUES ({params})".format(
    table=TELEMETRY_TABLE_NAME,
    columns=", ".join(TELEMETRY_COLUMNS),
    params=", ".join("?" * len(TELEMETRY_COLUMNS)),
)


@dataclass(frozen=True)
class DuckDBWriteResult:
    num_events: int
    duration_ms: float


class DuckDBAdapter:
    """
    Single DuckDB file holding the key-value table and the telemetry table.
    `clean_slate` deletes the file on open.
    """

    def __init__(self, path: str, *, clean_slate: bool) -> None:
        self.path = path
        self.clean_slate = clean_slate
        self._conn: duckdb.DuckDBPyConnection | None = None

    def open(self) -> None:
        db_file = Path(self.path)
        if self.clean_slate:
            db_file.unlink(missing_ok=True)
        db_file.parent.mkdir(parents=True, exist_ok=True)

        conn = duckdb.connect(str(db_file))
        create_schema(conn)
        self._conn = conn

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    @property
    def conn(self) -> duckdb.DuckDBPyConnection:
        if self._conn is None:
            raise RuntimeError(f"DuckDB at {self.path!r} is not open")
        return self._conn

    def close(self) -> None:
        conn, self._conn = self._conn, None
        if conn is not None:
            conn.close()

    # key-value

    def kv_get(self, key: str) -> str | None:
        row = self.conn.execute(
            f"SELECT value FROM {KV_TABLE_NAME} WHERE key = ?", [key]
        ).fetchone()
        return None if row is None else str(row[0])

    def kv_set(self, key: str, value: str) -> None:
        self.conn.execute(
            f"INSERT OR REPLACE INTO {KV_TABLE_NAME} (key, value) VALUES (?, ?)", [key, value]
        )

    def kv_remove(self, key: str) -> None:
        self.conn.execute(f"DELETE FROM {KV_TABLE_NAME} WHERE key = ?", [key])

    # telemetry

    def write_telemetry(self, rows: Sequence[tuple]) -> DuckDBWriteResult:
        """Insert a batch of TELEMETRY_COLUMNS-ordered tuples; reports count and time taken."""
        if not rows:
            return DuckDBWriteResult(num_events=0, duration_ms=0.0)
        started = time.perf_counter()
        self.conn.executemany(_INSERT_TELEMETRY, rows)
        elapsed_ms = (time.perf_counter() - started) * 1000.0
        return DuckDBWriteResult(num_events=len(rows), duration_ms=elapsed_ms)

    def count_telemetry(self, session_id: str | None = None) -> int:
        sql = f"SELECT COUNT(*) FROM {TELEMETRY_TABLE_NAME}"
        params: list[str] = []
        if session_id is not None:
            sql += " WHERE session_id = ?"
            params.append(session_id)
        row = self.conn.execute(sql, params).fetchone()
        return 0 if row is None else int(row[0])
