from __future__ import annotations

import duckdb
import pytest

from journey.core.errors import SinkUnavailable
from journey.features.persistence.duckdb_adapter import DuckDBAdapter
from journey.features.persistence.service import TelemetryBuffer
from journey.features.sinks.service import (
    DuckDBSink,
    LoggingSink,
    NoopSink,
    RecordingSink,
    SafeSink,
)


class FixedClock:
    def now_ms(self) -> int:
        return 1_710_500_000_000


class ExplodingSink(NoopSink):
    def emit_event(self, name, properties, measurements) -> None:
        raise SinkUnavailable("backend down")

    def emit_metric(self, name, value, properties) -> None:
        raise ConnectionError("socket closed")

    def flush(self) -> None:
        raise TimeoutError("slow")


def test_recording_sink_keeps_every_call():
    sink = RecordingSink()
    sink.emit_event("QuoteRequested", {"sessionId": "s"}, {"coverageAmount": 1.0})
    sink.emit_page_view("HomePage", "http://x/", {"sessionId": "s"}, {"timeOnPage": 5.0})
    sink.emit_metric("TimeOnPage", 12.0, {"sessionId": "s"})
    sink.emit_exception(ValueError("bad"), {"sessionId": "s"})

    assert [r.kind for r in sink.records] == ["event", "page_view", "metric", "exception"]
    assert sink.names() == ["QuoteRequested", "HomePage", "TimeOnPage", "ValueError"]
    assert sink.named("TimeOnPage")[0].value == 12.0
    assert sink.records[1].url == "http://x/"


def test_safe_sink_swallows_and_counts_failures():
    safe = SafeSink(ExplodingSink())

    safe.emit_event("QuoteRequested", {}, {})
    safe.emit_metric("TimeOnPage", 1.0, {})
    safe.flush()
    safe.emit_page_view("HomePage", None, {}, {})  # inner no-op, succeeds

    assert safe.failures == 3


def test_logging_sink_accepts_all_shapes():
    sink = LoggingSink()
    sink.emit_event("BounceEvent", {"sessionId": "s"}, {"timeOnPageMs": 10.0})
    sink.emit_page_view("HomePage", "http://x/", {}, {})
    sink.emit_metric("PageLoadTime", 900.0, {})
    sink.emit_exception(RuntimeError("x"), {})
    sink.flush()
    sink.close()


def test_duckdb_sink_writes_rows(tmp_path):
    db_path = tmp_path / "telemetry.duckdb"
    buf = TelemetryBuffer(
        adapter=DuckDBAdapter(str(db_path), clean_slate=True),
        every_n_events=100,
        or_every_seconds=30.0,
    )
    buf.open()
    sink = DuckDBSink(buffer=buf, clock=FixedClock())

    props = {"sessionId": "session_1", "userId": "user_1"}
    sink.emit_event("QuoteRequested", props, {"coverageAmount": 50000.0})
    sink.emit_page_view("HomePage", "http://localhost:3000/", props, {"timeOnPage": 10.0})
    sink.emit_metric("TimeOnPage", 42.0, props)
    sink.emit_exception(RuntimeError("simulated"), props)
    sink.close()

    con = duckdb.connect(str(db_path), read_only=True)
    rows = con.execute(
        "SELECT kind, name, session_id, user_id, url, value, error_message FROM telemetry"
    ).fetchall()
    con.close()

    by_kind = {r[0]: r for r in rows}
    assert set(by_kind) == {"event", "page_view", "metric", "exception"}
    assert all(r[2] == "session_1" and r[3] == "user_1" for r in rows)
    assert by_kind["page_view"][4] == "http://localhost:3000/"
    assert by_kind["metric"][5] == 42.0
    assert by_kind["exception"][1] == "RuntimeError"
    assert by_kind["exception"][6] == "simulated"


def test_duckdb_sink_wraps_buffer_errors_as_sink_unavailable(tmp_path):
    buf = TelemetryBuffer(
        adapter=DuckDBAdapter(str(tmp_path / "t.duckdb"), clean_slate=True),
        every_n_events=100,
        or_every_seconds=30.0,
    )
    sink = DuckDBSink(buffer=buf, clock=FixedClock())  # never opened

    with pytest.raises(SinkUnavailable):
        sink.emit_event("QuoteRequested", {}, {})

    # and through SafeSink nothing escapes
    safe = SafeSink(sink)
    safe.emit_event("QuoteRequested", {}, {})
    assert safe.failures == 1
