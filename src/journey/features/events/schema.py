from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from typing import Any, ClassVar, Protocol

# Sink call each telemetry record is lowered to
KIND_EVENT = "event"
KIND_PAGE_VIEW = "page_view"
KIND_METRIC = "metric"
KIND_EXCEPTION = "exception"

ALLOWED_KINDS: set[str] = {KIND_EVENT, KIND_PAGE_VIEW, KIND_METRIC, KIND_EXCEPTION}

FUNNEL_APPLICATION_STARTED = "application_started"
FUNNEL_APPLICATION_COMPLETED = "application_completed"
FUNNEL_PURCHASE_COMPLETED = "purchase_completed"


@dataclass(frozen=True, slots=True)
class TelemetryEvent:
    """
    Generic name/properties/measurements shape handed to a sink.
    Typed records below are lowered to this only at the sink boundary.
    """

    kind: str
    name: str
    properties: dict[str, str] = field(default_factory=dict)
    measurements: dict[str, float] = field(default_factory=dict)

    url: str | None = None
    value: float | None = None
    error: BaseException | None = None

    def tagged(self, *, session_id: str, user_id: str | None = None) -> TelemetryEvent:
        props = dict(self.properties)
        props["sessionId"] = session_id
        if user_id is not None:
            props["userId"] = user_id
        return replace(self, properties=props)


def string_props(values: Mapping[str, Any]) -> dict[str, str]:
    out: dict[str, str] = {}
    for key, v in values.items():
        if v is None:
            continue
        if isinstance(v, bool):
            out[key] = "true" if v else "false"
        else:
            out[key] = str(v)
    return out


def numeric_measurements(values: Mapping[str, Any]) -> dict[str, float]:
    out: dict[str, float] = {}
    for key, v in values.items():
        if v is None:
            continue
        f = float(v)
        if math.isfinite(f):
            out[key] = f
    return out


class Trackable(Protocol):
    def to_telemetry(self) -> TelemetryEvent: ...


@dataclass(frozen=True, slots=True)
class TrackedEvent:
    """Base for custom events (sink.emit_event)."""

    name: ClassVar[str] = "CustomEvent"

    def properties(self) -> dict[str, Any]:
        return {}

    def measurements(self) -> dict[str, Any]:
        return {}

    def to_telemetry(self) -> TelemetryEvent:
        return TelemetryEvent(
            kind=KIND_EVENT,
            name=self.name,
            properties=string_props(self.properties()),
            measurements=numeric_measurements(self.measurements()),
        )


# ----------------------------
# Purchase journey
# ----------------------------


@dataclass(frozen=True, slots=True)
class QuoteRequested(TrackedEvent):
    name: ClassVar[str] = "QuoteRequested"

    quote_id: str
    insurance_type: str
    coverage_amount: float

    def properties(self) -> dict[str, Any]:
        return {"quoteId": self.quote_id, "insuranceType": self.insurance_type}

    def measurements(self) -> dict[str, Any]:
        return {"coverageAmount": self.coverage_amount}


@dataclass(frozen=True, slots=True)
class ApplicationStarted(TrackedEvent):
    name: ClassVar[str] = "ApplicationStarted"

    application_id: str
    quote_id: str

    def properties(self) -> dict[str, Any]:
        return {"applicationId": self.application_id, "quoteId": self.quote_id}


@dataclass(frozen=True, slots=True)
class ApplicationCompleted(TrackedEvent):
    name: ClassVar[str] = "ApplicationCompleted"

    application_id: str
    quote_id: str
    time_to_complete_ms: int

    def properties(self) -> dict[str, Any]:
        return {"applicationId": self.application_id, "quoteId": self.quote_id}

    def measurements(self) -> dict[str, Any]:
        return {"timeToCompleteMs": self.time_to_complete_ms}


@dataclass(frozen=True, slots=True)
class PolicyPurchased(TrackedEvent):
    name: ClassVar[str] = "PolicyPurchased"

    policy_id: str
    application_id: str
    quote_id: str
    time_to_convert_ms: int

    def properties(self) -> dict[str, Any]:
        return {
            "policyId": self.policy_id,
            "applicationId": self.application_id,
            "quoteId": self.quote_id,
        }

    def measurements(self) -> dict[str, Any]:
        return {"timeToConvertMs": self.time_to_convert_ms}


@dataclass(frozen=True, slots=True)
class Conversion(TrackedEvent):
    name: ClassVar[str] = "Conversion"

    funnel_id: str
    conversion_value: float
    conversion_type: str = "policy_purchase"

    def properties(self) -> dict[str, Any]:
        return {"conversionType": self.conversion_type, "funnelId": self.funnel_id}

    def measurements(self) -> dict[str, Any]:
        return {"conversionValue": self.conversion_value}


@dataclass(frozen=True, slots=True)
class FunnelStep(TrackedEvent):
    name: ClassVar[str] = "FunnelStep"

    step: str
    funnel_id: str

    def properties(self) -> dict[str, Any]:
        return {"step": self.step, "funnelId": self.funnel_id}


# ----------------------------
# Web metrics / visitors
# ----------------------------


@dataclass(frozen=True, slots=True)
class PageView:
    page_name: str
    url: str
    page_number: int
    is_first_view: bool
    time_on_page_ms: int

    def to_telemetry(self) -> TelemetryEvent:
        return TelemetryEvent(
            kind=KIND_PAGE_VIEW,
            name=self.page_name,
            url=self.url,
            properties=string_props(
                {"pageNumber": self.page_number, "isFirstView": self.is_first_view}
            ),
            measurements=numeric_measurements({"timeOnPage": self.time_on_page_ms}),
        )


@dataclass(frozen=True, slots=True)
class PageViewPerformance:
    """Load timing of one page view, split into fixed phase shares of the total."""

    page_name: str
    url: str
    duration_ms: float

    def to_telemetry(self) -> TelemetryEvent:
        d = float(self.duration_ms)
        return TelemetryEvent(
            kind=KIND_PAGE_VIEW,
            name=self.page_name,
            url=self.url,
            properties=string_props({"viewType": "performance"}),
            measurements=numeric_measurements(
                {
                    "duration": d,
                    "perfTotal": d,
                    "networkConnect": d * 0.1,
                    "sentRequest": d * 0.2,
                    "receivedResponse": d * 0.3,
                    "domProcessing": d * 0.4,
                }
            ),
        )


@dataclass(frozen=True, slots=True)
class BounceEvent(TrackedEvent):
    name: ClassVar[str] = "BounceEvent"

    time_on_page_ms: int
    page_views_in_session: int
    exit_reason: str = "immediate_exit"

    def properties(self) -> dict[str, Any]:
        return {"exitReason": self.exit_reason}

    def measurements(self) -> dict[str, Any]:
        return {
            "timeOnPageMs": self.time_on_page_ms,
            "pageViewsInSession": self.page_views_in_session,
        }


@dataclass(frozen=True, slots=True)
class NewVisitorAcquisition(TrackedEvent):
    name: ClassVar[str] = "NewVisitorAcquisition"

    traffic_source: str = "organic"

    def properties(self) -> dict[str, Any]:
        return {"visitorType": "new", "trafficSource": self.traffic_source}


@dataclass(frozen=True, slots=True)
class ReturningVisitorEngagement(TrackedEvent):
    name: ClassVar[str] = "ReturningVisitorEngagement"

    days_since_last_visit: int

    def properties(self) -> dict[str, Any]:
        return {"visitorType": "returning"}

    def measurements(self) -> dict[str, Any]:
        return {"daysSinceLastVisit": self.days_since_last_visit}


@dataclass(frozen=True, slots=True)
class MetricSample:
    metric_name: str
    value: float
    page_name: str = "Home"

    def to_telemetry(self) -> TelemetryEvent:
        return TelemetryEvent(
            kind=KIND_METRIC,
            name=self.metric_name,
            value=float(self.value),
            properties=string_props({"pageName": self.page_name}),
        )


@dataclass(frozen=True, slots=True)
class ExceptionReport:
    error: BaseException
    error_type: str
    is_simulated: bool = False

    def to_telemetry(self) -> TelemetryEvent:
        return TelemetryEvent(
            kind=KIND_EXCEPTION,
            name=type(self.error).__name__,
            error=self.error,
            properties=string_props(
                {"errorType": self.error_type, "isSimulated": self.is_simulated}
            ),
        )


# ----------------------------
# A/B testing
# ----------------------------


@dataclass(frozen=True, slots=True)
class ABTestParticipation(TrackedEvent):
    name: ClassVar[str] = "ABTestParticipation"

    test_name: str
    variant: str

    def properties(self) -> dict[str, Any]:
        return {"testName": self.test_name, "variant": self.variant}


@dataclass(frozen=True, slots=True)
class ABTestConversion(TrackedEvent):
    name: ClassVar[str] = "ABTestConversion"

    test_name: str
    variant: str

    def properties(self) -> dict[str, Any]:
        return {"testName": self.test_name, "variant": self.variant}


# ----------------------------
# Cohorts
# ----------------------------


@dataclass(frozen=True, slots=True)
class CohortJoin(TrackedEvent):
    name: ClassVar[str] = "CohortJoin"

    cohort_id: str
    join_date: str

    def properties(self) -> dict[str, Any]:
        return {"cohortId": self.cohort_id, "joinDate": self.join_date}


@dataclass(frozen=True, slots=True)
class CohortRetention(TrackedEvent):
    name: ClassVar[str] = "CohortRetention"

    cohort_id: str
    days_since_join: int
    retention_event: str = "active_engagement"

    def properties(self) -> dict[str, Any]:
        return {"cohortId": self.cohort_id, "retentionEvent": self.retention_event}

    def measurements(self) -> dict[str, Any]:
        return {"daysSinceJoin": self.days_since_join}


@dataclass(frozen=True, slots=True)
class CohortAnalysisView(TrackedEvent):
    name: ClassVar[str] = "CohortAnalysisView"

    cohort_id: str
    total_members: int
    active_members: int
    retention_rate: float
    avg_session_duration_s: int

    def properties(self) -> dict[str, Any]:
        return {"cohortId": self.cohort_id}

    def measurements(self) -> dict[str, Any]:
        return {
            "totalMembers": self.total_members,
            "activeMembers": self.active_members,
            "retentionRate": self.retention_rate,
            "avgSessionDuration": self.avg_session_duration_s,
        }


# ----------------------------
# Device / segmentation
# ----------------------------


@dataclass(frozen=True, slots=True)
class DeviceInfo(TrackedEvent):
    name: ClassVar[str] = "DeviceInfo"

    user_agent: str
    platform: str
    language: str
    screen_resolution: str
    viewport: str
    color_depth: int
    time_zone: str

    def properties(self) -> dict[str, Any]:
        return {
            "userAgent": self.user_agent,
            "platform": self.platform,
            "language": self.language,
            "screenResolution": self.screen_resolution,
            "viewport": self.viewport,
            "colorDepth": self.color_depth,
            "timeZone": self.time_zone,
        }


@dataclass(frozen=True, slots=True)
class UserSegmentation(TrackedEvent):
    name: ClassVar[str] = "UserSegmentation"

    segment: str
    assignment_reason: str = "behavioral_analysis"

    def properties(self) -> dict[str, Any]:
        return {"segment": self.segment, "assignmentReason": self.assignment_reason}
