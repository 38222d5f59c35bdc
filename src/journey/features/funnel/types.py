from __future__ import annotations

import math
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any

from journey.core.errors import ValidationError


class FunnelState(str, Enum):
    IDLE = "idle"
    QUOTE_REQUESTED = "quote_requested"
    APPLICATION_STARTED = "application_started"
    APPLICATION_COMPLETED = "application_completed"


@dataclass
class FunnelInstance:
    """
    The in-flight purchase journey of one session.
    application_id is only ever set while quote_id is set; both clear together.
    """

    state: FunnelState = FunnelState.IDLE
    quote_id: str | None = None
    application_id: str | None = None
    coverage_amount: float | None = None

    def clear(self) -> None:
        self.state = FunnelState.IDLE
        self.quote_id = None
        self.application_id = None
        self.coverage_amount = None


COUNTER_NAMES = (
    "page_views",
    "quote_requests",
    "applications_started",
    "applications_completed",
    "policies_sold",
)


@dataclass
class MetricsCounters:
    """
    Per-session counters. Only ever incremented.
    """

    page_views: int = 0
    quote_requests: int = 0
    applications_started: int = 0
    applications_completed: int = 0
    policies_sold: int = 0

    def increment(self, counter: str) -> int:
        if counter not in COUNTER_NAMES:
            raise KeyError(f"Unknown counter={counter!r}")
        n = getattr(self, counter) + 1
        setattr(self, counter, n)
        return n

    def snapshot(self) -> dict[str, int]:
        return asdict(self)


@dataclass(frozen=True)
class QuoteReceipt:
    quote_id: str
    insurance_type: str
    coverage_amount: float


@dataclass(frozen=True)
class ApplicationReceipt:
    application_id: str
    quote_id: str
    elapsed_ms: int | None = None


@dataclass(frozen=True)
class PolicyReceipt:
    policy_id: str
    application_id: str
    quote_id: str
    conversion_value: float
    time_to_convert_ms: int


def parse_amount(value: Any, *, field_name: str = "coverage_amount") -> float:
    """
    Strict numeric parse for user-entered amounts. No silent zero-coercion.
    """
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{field_name} is required")
    if isinstance(value, str):
        value = value.strip()
        if not value:
            raise ValidationError(f"{field_name} is required")
    try:
        amount = float(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"{field_name} must be numeric, got {value!r}") from e
    if not math.isfinite(amount) or amount < 0:
        raise ValidationError(f"{field_name} must be a finite, non-negative number")
    return amount


def parse_amount_or_default(value: Any, default: float = 0.0) -> float:
    """Best-effort parse, used where a numeric default is tolerated."""
    try:
        return parse_amount(value)
    except ValidationError:
        return default
