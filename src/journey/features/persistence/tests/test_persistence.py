from __future__ import annotations

import json
from datetime import UTC, datetime

import duckdb
import pytest


def _row(name: str, session_id: str = "s1"):
    from journey.features.persistence.service import TelemetryRow

    return TelemetryRow(
        ts_utc=datetime(2026, 1, 1, tzinfo=UTC),
        kind="event",
        name=name,
        session_id=session_id,
        user_id="u1",
        properties={"sessionId": session_id, "quoteId": "quote_1"},
        measurements={"coverageAmount": 50000.0},
    )


def test_duckdb_adapter_clean_slate(tmp_path):
    from journey.features.persistence.duckdb_adapter import DuckDBAdapter

    db_path = tmp_path / "telemetry.duckdb"

    a1 = DuckDBAdapter(path=str(db_path), clean_slate=True)
    a1.open()
    a1.write_telemetry(
        [
            (
                datetime(2026, 1, 1, tzinfo=UTC),
                "s1",
                "u1",
                "event",
                "QuoteRequested",
                None,
                None,
                None,
                None,
                None,
                None,
            )
        ]
    )
    assert a1.count_telemetry("s1") == 1
    a1.close()

    a2 = DuckDBAdapter(path=str(db_path), clean_slate=True)
    a2.open()
    assert a2.count_telemetry() == 0
    a2.close()


def test_adapter_requires_open(tmp_path):
    from journey.features.persistence.duckdb_adapter import DuckDBAdapter

    adapter = DuckDBAdapter(path=str(tmp_path / "x.duckdb"), clean_slate=True)
    with pytest.raises(RuntimeError):
        adapter.count_telemetry()


def test_buffer_flush_by_count(tmp_path):
    from journey.features.persistence.duckdb_adapter import DuckDBAdapter
    from journey.features.persistence.service import TelemetryBuffer

    adapter = DuckDBAdapter(path=str(tmp_path / "telemetry.duckdb"), clean_slate=True)
    buf = TelemetryBuffer(adapter=adapter, every_n_events=3, or_every_seconds=10_000.0)
    buf.open()

    buf.append(_row("a"))
    buf.append(_row("b"))
    assert adapter.count_telemetry("s1") == 0
    assert buf.pending == 2

    buf.append(_row("c"))
    assert adapter.count_telemetry("s1") == 3
    assert buf.pending == 0

    buf.close()


def test_close_flushes_and_serializes_json(tmp_path):
    from journey.features.persistence.duckdb_adapter import DuckDBAdapter
    from journey.features.persistence.service import TelemetryBuffer

    db_path = tmp_path / "telemetry.duckdb"
    adapter = DuckDBAdapter(path=str(db_path), clean_slate=True)
    buf = TelemetryBuffer(adapter=adapter, every_n_events=100, or_every_seconds=10_000.0)
    buf.open()
    buf.append(_row("QuoteRequested"))
    buf.close()

    con = duckdb.connect(str(db_path), read_only=True)
    rows = con.execute(
        "SELECT name, session_id, properties_json, measurements_json FROM telemetry"
    ).fetchall()
    con.close()

    assert len(rows) == 1
    name, session_id, props_json, meas_json = rows[0]
    assert name == "QuoteRequested"
    assert session_id == "s1"
    assert json.loads(props_json) == {"quoteId": "quote_1", "sessionId": "s1"}
    assert json.loads(meas_json) == {"coverageAmount": 50000.0}


def test_append_before_open_raises(tmp_path):
    from journey.features.persistence.duckdb_adapter import DuckDBAdapter
    from journey.features.persistence.service import TelemetryBuffer

    adapter = DuckDBAdapter(path=str(tmp_path / "t.duckdb"), clean_slate=True)
    buf = TelemetryBuffer(adapter=adapter, every_n_events=1, or_every_seconds=1.0)
    with pytest.raises(RuntimeError):
        buf.append(_row("a"))


def test_periodic_flush_runs_on_simpy_timer(tmp_path):
    import simpy

    from journey.features.persistence.duckdb_adapter import DuckDBAdapter
    from journey.features.persistence.service import TelemetryBuffer

    env = simpy.Environment()
    adapter = DuckDBAdapter(path=str(tmp_path / "t.duckdb"), clean_slate=True)
    buf = TelemetryBuffer(adapter=adapter, every_n_events=1000, or_every_seconds=30.0)
    buf.open()
    buf.start_periodic_flush(env)

    buf.append(_row("a"))
    env.run(until=29.0)
    assert adapter.count_telemetry() == 0

    env.run(until=31.0)
    assert adapter.count_telemetry() == 1
    buf.close()
