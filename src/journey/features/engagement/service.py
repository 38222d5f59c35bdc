from __future__ import annotations

from dataclasses import dataclass

from journey.core.clock import Clock, whole_days_between
from journey.core.rng import RNG
from journey.features.events.schema import (
    BounceEvent,
    ExceptionReport,
    MetricSample,
    NewVisitorAcquisition,
    PageView,
    PageViewPerformance,
    ReturningVisitorEngagement,
)
from journey.features.events.service import EventService
from journey.features.funnel.types import MetricsCounters
from journey.features.identity.service import VISITOR_NEW, VISITOR_RETURNING, IdentityService

SIMULATED_ERROR_TYPE = "simulated_client_error"
SIMULATED_ERROR_MESSAGE = "This is a simulated error for demonstration purposes"


@dataclass(frozen=True)
class PageViewReceipt:
    page_name: str
    page_number: int
    is_first_view: bool
    time_on_page_ms: int


@dataclass(frozen=True)
class BounceReceipt:
    time_on_page_ms: int
    page_views_in_session: int


@dataclass(frozen=True)
class VisitorReceipt:
    visitor_type: str
    user_id: str
    days_since_last_visit: int | None = None


class SimulatedClientError(RuntimeError):
    pass


class EngagementService:
    """
    Page views, bounces, visitor acquisition/retention and page timing.
    Page views share the session counters with the funnel.
    """

    def __init__(
        self,
        *,
        events: EventService,
        identity: IdentityService,
        clock: Clock,
        rng: RNG,
        counters: MetricsCounters,
        page_url: str = "http://localhost:3000/",
    ) -> None:
        self._events = events
        self._identity = identity
        self._clock = clock
        self._rng = rng
        self._counters = counters
        self._page_url = page_url

    def _elapsed_ms(self) -> int:
        return self._events.context.elapsed_ms(self._clock.now_ms())

    def track_page_view(self, page_name: str = "HomePage") -> PageViewReceipt:
        name = (page_name or "").strip() or "HomePage"
        n = self._counters.increment("page_views")
        receipt = PageViewReceipt(
            page_name=name,
            page_number=n,
            is_first_view=n == 1,
            time_on_page_ms=self._elapsed_ms(),
        )
        self._events.emit(
            PageView(
                page_name=name,
                url=self._page_url,
                page_number=receipt.page_number,
                is_first_view=receipt.is_first_view,
                time_on_page_ms=receipt.time_on_page_ms,
            )
        )
        return receipt

    def simulate_bounce(self) -> BounceReceipt:
        receipt = BounceReceipt(
            time_on_page_ms=self._elapsed_ms(),
            page_views_in_session=self._counters.page_views,
        )
        self._events.emit(
            BounceEvent(
                time_on_page_ms=receipt.time_on_page_ms,
                page_views_in_session=receipt.page_views_in_session,
            )
        )
        return receipt

    def simulate_new_visitor(self) -> VisitorReceipt:
        self._identity.reset_identity()
        self._identity.set_visitor_type(VISITOR_NEW)
        # events from here on belong to the fresh visitor
        user_id = self._identity.ensure_user_id()
        self._events.context.user_id = user_id
        self._events.emit(NewVisitorAcquisition())
        return VisitorReceipt(visitor_type=VISITOR_NEW, user_id=user_id)

    def simulate_returning_visitor(self) -> VisitorReceipt:
        self._identity.set_visitor_type(VISITOR_RETURNING)
        now = self._clock.now_ms()
        last = self._identity.last_visit_ms()
        days = 0 if last is None else whole_days_between(last, now)

        self._events.emit(ReturningVisitorEngagement(days_since_last_visit=days))
        self._identity.record_visit(now)
        return VisitorReceipt(
            visitor_type=VISITOR_RETURNING,
            user_id=self._events.context.user_id,
            days_since_last_visit=days,
        )

    def track_time_on_page(self, page_name: str = "Home") -> int:
        elapsed = self._elapsed_ms()
        self._events.emit(MetricSample(metric_name="TimeOnPage", value=elapsed, page_name=page_name))
        return elapsed

    def measure_page_load(self, page_name: str = "Home") -> float:
        # synthetic load time, 500-3500ms
        load_ms = self._rng.random() * 3000.0 + 500.0
        self._events.emit(
            MetricSample(metric_name="PageLoadTime", value=load_ms, page_name=page_name)
        )
        self._events.emit(
            PageViewPerformance(page_name="HomePage", url=self._page_url, duration_ms=load_ms)
        )
        return load_ms

    def simulate_error(self) -> SimulatedClientError:
        error = SimulatedClientError(SIMULATED_ERROR_MESSAGE)
        self._events.emit(
            ExceptionReport(error=error, error_type=SIMULATED_ERROR_TYPE, is_simulated=True)
        )
        return error
