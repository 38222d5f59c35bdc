from __future__ import annotations

import pytest

from journey.core.clock import MS_PER_DAY
from journey.core.ids import IdsService
from journey.core.rng import RNG
from journey.core.types import SessionContext
from journey.features.engagement.service import (
    SIMULATED_ERROR_MESSAGE,
    EngagementService,
    SimulatedClientError,
)
from journey.features.events.service import EventService
from journey.features.funnel.types import MetricsCounters
from journey.features.identity.service import IdentityService
from journey.features.sinks.service import RecordingSink
from journey.features.storage.service import InMemoryKeyValueStore

T0 = 1_710_500_000_000


class ManualClock:
    def __init__(self, ms: int = T0) -> None:
        self.ms = ms

    def now_ms(self) -> int:
        return self.ms

    def advance(self, ms: int) -> None:
        self.ms += ms


class FixedRng:
    def __init__(self, u: float) -> None:
        self.u = u

    def random(self) -> float:
        return self.u

    def randint(self, a: int, b: int) -> int:
        return a


def make_engagement(rng=None):
    clock = ManualClock()
    store = InMemoryKeyValueStore()
    identity = IdentityService(store=store, ids=IdsService(clock=clock, rng=RNG(5)))
    ctx = SessionContext(
        session_id="session_1", user_id=identity.ensure_user_id(), start_ms=clock.now_ms()
    )
    sink = RecordingSink()
    counters = MetricsCounters()
    svc = EngagementService(
        events=EventService(sink=sink, context=ctx),
        identity=identity,
        clock=clock,
        rng=rng or RNG(5),
        counters=counters,
    )
    return svc, sink, clock, counters, ctx, identity


def test_page_views_count_up_and_only_the_first_is_first():
    svc, sink, clock, counters, _, _ = make_engagement()

    first = svc.track_page_view()
    clock.advance(2_500)
    second = svc.track_page_view("Pricing")

    assert (first.page_number, first.is_first_view) == (1, True)
    assert (second.page_number, second.is_first_view) == (2, False)
    assert second.time_on_page_ms == 2_500
    assert counters.page_views == 2

    views = [r for r in sink.records if r.kind == "page_view"]
    assert [v.name for v in views] == ["HomePage", "Pricing"]
    assert views[0].url == "http://localhost:3000/"
    assert views[1].properties["isFirstView"] == "false"


def test_bounce_reports_time_and_views_without_counting():
    svc, sink, clock, counters, _, _ = make_engagement()
    svc.track_page_view()
    clock.advance(800)

    r = svc.simulate_bounce()

    assert (r.time_on_page_ms, r.page_views_in_session) == (800, 1)
    assert counters.page_views == 1
    bounce = sink.named("BounceEvent")[0]
    assert bounce.properties["exitReason"] == "immediate_exit"
    assert bounce.measurements == {"timeOnPageMs": 800.0, "pageViewsInSession": 1.0}


def test_new_visitor_gets_a_fresh_identity():
    svc, sink, clock, _, ctx, identity = make_engagement()
    old_user = ctx.user_id
    clock.advance(10)

    r = svc.simulate_new_visitor()

    assert r.user_id != old_user
    assert ctx.user_id == r.user_id
    assert identity.visitor_type() == "new"
    event = sink.named("NewVisitorAcquisition")[0]
    assert event.properties["visitorType"] == "new"
    assert event.properties["trafficSource"] == "organic"
    assert event.properties["userId"] == r.user_id


def test_returning_visitor_without_history_reports_zero_days():
    svc, sink, _, _, _, identity = make_engagement()

    r = svc.simulate_returning_visitor()

    assert r.days_since_last_visit == 0
    assert identity.visitor_type() == "returning"
    assert identity.last_visit_ms() == T0
    assert sink.named("ReturningVisitorEngagement")[0].measurements == {"daysSinceLastVisit": 0.0}


def test_returning_visitor_floors_whole_days():
    svc, sink, clock, _, _, _ = make_engagement()
    svc.simulate_returning_visitor()

    clock.advance(3 * MS_PER_DAY - 1)
    assert svc.simulate_returning_visitor().days_since_last_visit == 2

    clock.advance(1)
    assert svc.simulate_returning_visitor().days_since_last_visit == 0


def test_time_on_page_and_page_load_metrics():
    svc, sink, clock, _, _, _ = make_engagement(rng=FixedRng(0.5))
    clock.advance(12_345)

    assert svc.track_time_on_page() == 12_345
    assert svc.measure_page_load() == 2000.0

    time_on_page, page_load, performance = sink.records
    assert (time_on_page.name, time_on_page.value) == ("TimeOnPage", 12_345.0)
    assert (page_load.kind, page_load.name, page_load.value) == ("metric", "PageLoadTime", 2000.0)
    assert page_load.properties["pageName"] == "Home"

    assert (performance.kind, performance.name) == ("page_view", "HomePage")
    assert performance.url == "http://localhost:3000/"
    assert performance.properties["viewType"] == "performance"
    assert performance.measurements == pytest.approx(
        {
            "duration": 2000.0,
            "perfTotal": 2000.0,
            "networkConnect": 200.0,
            "sentRequest": 400.0,
            "receivedResponse": 600.0,
            "domProcessing": 800.0,
        }
    )


def test_page_load_stays_in_range():
    svc, _, _, _, _, _ = make_engagement(rng=RNG(99))
    for _ in range(200):
        assert 500.0 <= svc.measure_page_load() < 3500.0


def test_simulated_error_is_reported_not_raised():
    svc, sink, _, _, _, _ = make_engagement()

    error = svc.simulate_error()

    assert isinstance(error, SimulatedClientError)
    rec = sink.records[0]
    assert rec.kind == "exception"
    assert str(rec.error) == SIMULATED_ERROR_MESSAGE
    assert rec.properties["errorType"] == "simulated_client_error"
    assert rec.properties["isSimulated"] == "true"
