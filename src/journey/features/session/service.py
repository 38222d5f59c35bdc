from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from typing import Any

from journey.core.clock import Clock
from journey.core.errors import JourneyError
from journey.core.types import SessionContext
from journey.features.ab_test.service import AbTestService
from journey.features.cohort.service import CohortService
from journey.features.engagement.service import EngagementService
from journey.features.events.service import EventService
from journey.features.funnel.service import FunnelService
from journey.features.funnel.types import FunnelInstance, MetricsCounters
from journey.features.segmentation.service import DeviceProfile, SegmentationService
from journey.features.session.types import OperationResult


class AnalyticsSession:
    """
    Session-scoped entrypoint for a UI (or any caller holding primitive inputs).

    One instance per session; nothing here is process-global. Every operation
    returns an OperationResult and never raises for validation/precondition failures.
    """

    def __init__(
        self,
        *,
        context: SessionContext,
        clock: Clock,
        counters: MetricsCounters,
        events: EventService,
        funnel: FunnelService,
        engagement: EngagementService,
        segmentation: SegmentationService,
        ab_test: AbTestService,
        cohort: CohortService,
        logger: logging.Logger,
        closers: list[Callable[[], None]] | None = None,
    ) -> None:
        self.context = context
        self.clock = clock
        self.events = events
        self._counters = counters
        self._funnel = funnel
        self._engagement = engagement
        self._segmentation = segmentation
        self._ab_test = ab_test
        self._cohort = cohort
        self._logger = logger
        self._closers = list(closers or [])
        self._closed = False

    # ----------------------------
    # Read-only views
    # ----------------------------
    @property
    def session_id(self) -> str:
        return self.context.session_id

    @property
    def user_id(self) -> str:
        return self.context.user_id

    @property
    def metrics(self) -> dict[str, int]:
        return self._counters.snapshot()

    @property
    def funnel(self) -> FunnelInstance:
        return self._funnel.funnel

    def time_on_page_s(self) -> int:
        return self.context.elapsed_ms(self.clock.now_ms()) // 1000

    def _failed(self, op: str, exc: JourneyError) -> OperationResult:
        self._logger.info(
            "operation_rejected",
            extra={
                "feature": "session",
                "reason": op,
                "session_id": self.session_id,
                "error": f"{type(exc).__name__}: {exc}",
            },
        )
        return OperationResult.failure(exc)

    # ----------------------------
    # Web metrics
    # ----------------------------
    def track_page_view(self, page_name: str = "HomePage") -> OperationResult:
        r = self._engagement.track_page_view(page_name)
        return OperationResult.success(
            f"Page view tracked: {r.page_name}",
            page_views=self._counters.page_views,
            is_first_view=r.is_first_view,
        )

    def simulate_new_visitor(self) -> OperationResult:
        r = self._engagement.simulate_new_visitor()
        return OperationResult.success("New visitor simulation tracked", user_id=r.user_id)

    def simulate_returning_visitor(self) -> OperationResult:
        r = self._engagement.simulate_returning_visitor()
        return OperationResult.success(
            f"Returning visitor tracked ({r.days_since_last_visit} days since last visit)",
            days_since_last_visit=r.days_since_last_visit,
        )

    def simulate_bounce(self) -> OperationResult:
        r = self._engagement.simulate_bounce()
        return OperationResult.success(
            "Bounce event tracked (user left immediately)",
            time_on_page_ms=r.time_on_page_ms,
            page_views_in_session=r.page_views_in_session,
        )

    def track_time_on_page(self) -> OperationResult:
        elapsed = self._engagement.track_time_on_page()
        return OperationResult.success(
            f"Time on page tracked: {elapsed // 1000} seconds", time_on_page_ms=elapsed
        )

    def measure_page_load(self) -> OperationResult:
        load_ms = self._engagement.measure_page_load()
        return OperationResult.success(
            f"Page load time measured: {load_ms:.0f}ms", load_time_ms=load_ms
        )

    def simulate_error(self) -> OperationResult:
        error = self._engagement.simulate_error()
        return OperationResult.success(
            "Error simulation tracked", error_message=str(error)
        )

    # ----------------------------
    # Purchase journey
    # ----------------------------
    def submit_quote(
        self, customer_name: Any, insurance_type: Any, coverage_amount: Any
    ) -> OperationResult:
        try:
            r = self._funnel.submit_quote(customer_name, insurance_type, coverage_amount)
        except JourneyError as e:
            return self._failed("submit_quote", e)
        return OperationResult.success(
            f"Quote request submitted: {r.quote_id}",
            quote_id=r.quote_id,
            quote_requests=self._counters.quote_requests,
        )

    def start_application(self) -> OperationResult:
        try:
            r = self._funnel.start_application()
        except JourneyError as e:
            return self._failed("start_application", e)
        return OperationResult.success(
            "Application started successfully",
            application_id=r.application_id,
            quote_id=r.quote_id,
            applications_started=self._counters.applications_started,
        )

    def complete_application(self, personal_info: Any) -> OperationResult:
        try:
            r = self._funnel.complete_application(personal_info)
        except JourneyError as e:
            return self._failed("complete_application", e)
        return OperationResult.success(
            "Application completed successfully",
            application_id=r.application_id,
            time_to_complete_ms=r.elapsed_ms,
            applications_completed=self._counters.applications_completed,
        )

    def purchase_policy(self, coverage_amount: Any = None) -> OperationResult:
        try:
            r = self._funnel.purchase_policy(coverage_amount)
        except JourneyError as e:
            return self._failed("purchase_policy", e)
        return OperationResult.success(
            f"Policy purchased successfully: {r.policy_id}",
            policy_id=r.policy_id,
            conversion_value=r.conversion_value,
            policies_sold=self._counters.policies_sold,
        )

    def reset_journey(self) -> OperationResult:
        self._funnel.reset()
        return OperationResult.success("Purchase journey reset")

    # ----------------------------
    # A/B testing
    # ----------------------------
    def run_ab_test(self, variant: str) -> OperationResult:
        try:
            r = self._ab_test.run(variant)
        except JourneyError as e:
            return self._failed("run_ab_test", e)
        verdict = "Converted!" if r.converted else "No conversion"
        return OperationResult.success(
            f"A/B Test {r.variant.upper()}: {verdict} (Simulated rate: {r.rate * 100:.1f}%)",
            variant=r.variant,
            converted=r.converted,
            rate=r.rate,
        )

    # ----------------------------
    # Device & segmentation
    # ----------------------------
    def track_device_info(self, device: DeviceProfile | None = None) -> OperationResult:
        profile = self._segmentation.track_device_info(device)
        return OperationResult.success(
            "Device info tracked",
            platform=profile.platform,
            language=profile.language,
            time_zone=profile.time_zone,
        )

    def track_custom_segment(self) -> OperationResult:
        segment = self._segmentation.track_custom_segment()
        return OperationResult.success(f"User assigned to segment: {segment}", segment=segment)

    # ----------------------------
    # Cohorts
    # ----------------------------
    def join_cohort(self) -> OperationResult:
        m = self._cohort.join_cohort()
        return OperationResult.success(
            f"Joined cohort: {m.cohort_id}",
            cohort_id=m.cohort_id,
            join_date=m.join_date.isoformat(),
        )

    def track_retention(self) -> OperationResult:
        try:
            r = self._cohort.track_retention()
        except JourneyError as e:
            return self._failed("track_retention", e)
        return OperationResult.success(
            f"Retention event tracked (Day {r.days_since_join} since joining cohort)",
            cohort_id=r.cohort_id,
            days_since_join=r.days_since_join,
        )

    def view_cohort_data(self) -> OperationResult:
        try:
            s = self._cohort.view_cohort_data()
        except JourneyError as e:
            return self._failed("view_cohort_data", e)
        return OperationResult.success(
            "Cohort analytics data displayed (simulated)",
            cohort_id=s.cohort_id,
            total_members=s.total_members,
            active_members=s.active_members,
            retention_rate=s.retention_rate,
            avg_session_duration_s=s.avg_session_duration_s,
            simulated=True,
        )

    # ----------------------------
    # Lifecycle
    # ----------------------------
    def add_closer(self, close: Callable[[], None]) -> None:
        self._closers.append(close)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        # shared sinks/stores are closed by whoever owns them, via closers
        self.events.sink.flush()
        for close in self._closers:
            close()


class SessionRegistry:
    """
    Holds independent sessions for hosts serving many visitors at once.
    Each session owns its own funnel and counters; nothing is shared between them.
    """

    def __init__(self, factory: Callable[[], AnalyticsSession]) -> None:
        self._factory = factory
        self._sessions: dict[str, AnalyticsSession] = {}

    def open(self) -> AnalyticsSession:
        session = self._factory()
        if session.session_id in self._sessions:
            session.close()
            raise ValueError(f"duplicate session_id={session.session_id}")
        self._sessions[session.session_id] = session
        return session

    def get(self, session_id: str) -> AnalyticsSession | None:
        return self._sessions.get(session_id)

    def close(self, session_id: str) -> None:
        session = self._sessions.pop(session_id, None)
        if session is not None:
            session.close()

    def close_all(self) -> None:
        for session_id in list(self._sessions):
            self.close(session_id)

    def __len__(self) -> int:
        return len(self._sessions)

    def __iter__(self) -> Iterator[AnalyticsSession]:
        return iter(list(self._sessions.values()))
