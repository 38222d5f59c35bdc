from __future__ import annotations

import pytest

from journey.core.types import SessionContext
from journey.features.events.schema import (
    ExceptionReport,
    FunnelStep,
    MetricSample,
    PageView,
    QuoteRequested,
    TelemetryEvent,
    string_props,
)
from journey.features.events.service import EventService
from journey.features.sinks.service import NoopSink, RecordingSink, SafeSink


class BrokenSink(NoopSink):
    def emit_event(self, name, properties, measurements) -> None:
        raise ConnectionError("backend unreachable")


def make_service(sink=None):
    sink = sink if sink is not None else RecordingSink()
    ctx = SessionContext(session_id="session_1", user_id="user_1", start_ms=0)
    return EventService(sink=sink, context=ctx), sink, ctx


def test_emit_tags_session_and_user():
    svc, sink, _ = make_service()

    telemetry = svc.emit(QuoteRequested(quote_id="quote_1", insurance_type="auto", coverage_amount=5))

    assert telemetry.properties == {
        "quoteId": "quote_1",
        "insuranceType": "auto",
        "sessionId": "session_1",
        "userId": "user_1",
    }
    assert telemetry.measurements == {"coverageAmount": 5.0}
    rec = sink.records[0]
    assert rec.kind == "event"
    assert rec.properties["sessionId"] == "session_1"


def test_user_id_follows_context_changes():
    svc, sink, ctx = make_service()
    svc.emit(FunnelStep(step="application_started", funnel_id="quote_1"))
    ctx.user_id = "user_2"
    svc.emit(FunnelStep(step="application_completed", funnel_id="quote_1"))

    assert [r.properties["userId"] for r in sink.records] == ["user_1", "user_2"]


def test_each_kind_reaches_the_matching_sink_call():
    svc, sink, _ = make_service()

    svc.emit(PageView(page_name="HomePage", url="http://x/", page_number=1, is_first_view=True, time_on_page_ms=10))
    svc.emit(MetricSample(metric_name="TimeOnPage", value=1500))
    svc.emit(ExceptionReport(error=RuntimeError("boom"), error_type="simulated_client_error", is_simulated=True))

    view, metric, exc = sink.records
    assert (view.kind, view.name, view.url) == ("page_view", "HomePage", "http://x/")
    assert view.properties["isFirstView"] == "true"
    assert view.properties["pageNumber"] == "1"
    assert view.measurements == {"timeOnPage": 10.0}

    assert (metric.kind, metric.value) == ("metric", 1500.0)
    assert metric.properties["pageName"] == "Home"

    assert exc.kind == "exception"
    assert str(exc.error) == "boom"
    assert exc.properties["isSimulated"] == "true"
    assert exc.properties["sessionId"] == "session_1"


def test_sink_failure_never_reaches_caller():
    svc, _, _ = make_service(sink=BrokenSink())

    telemetry = svc.emit(FunnelStep(step="application_started", funnel_id="quote_1"))

    assert telemetry.name == "FunnelStep"
    assert isinstance(svc.sink, SafeSink)
    assert svc.sink.failures == 1


def test_unknown_kind_is_rejected():
    class Weird:
        def to_telemetry(self) -> TelemetryEvent:
            return TelemetryEvent(kind="trace", name="x")

    svc, sink, _ = make_service()
    with pytest.raises(ValueError):
        svc.emit(Weird())
    assert sink.records == []


def test_string_props_drops_none_and_lowers_bools():
    assert string_props({"a": None, "b": True, "c": False, "d": 3}) == {
        "b": "true",
        "c": "false",
        "d": "3",
    }
