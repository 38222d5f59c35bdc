from __future__ import annotations

import logging
from typing import Any

from journey.core.clock import Clock
from journey.core.errors import PreconditionError, ValidationError
from journey.core.ids import IdsService
from journey.features.events.schema import (
    FUNNEL_APPLICATION_COMPLETED,
    FUNNEL_APPLICATION_STARTED,
    FUNNEL_PURCHASE_COMPLETED,
    ApplicationCompleted,
    ApplicationStarted,
    Conversion,
    FunnelStep,
    PolicyPurchased,
    QuoteRequested,
)
from journey.features.events.service import EventService
from journey.features.funnel.types import (
    ApplicationReceipt,
    FunnelInstance,
    FunnelState,
    MetricsCounters,
    PolicyReceipt,
    QuoteReceipt,
    parse_amount,
    parse_amount_or_default,
)


def _required_text(value: Any, field_name: str) -> str:
    if value is None:
        raise ValidationError(f"{field_name} is required")
    text = str(value).strip()
    if not text:
        raise ValidationError(f"{field_name} is required")
    return text


class FunnelService:
    """
    Purchase journey state machine: quote -> application -> policy.

    Every transition validates first and mutates second; a failed call leaves the
    funnel, the counters and the sink untouched. A successful purchase resets the
    funnel so the next journey can start in the same session.
    """

    def __init__(
        self,
        *,
        events: EventService,
        clock: Clock,
        ids: IdsService,
        counters: MetricsCounters,
        logger: logging.Logger | None = None,
    ) -> None:
        self._events = events
        self._clock = clock
        self._ids = ids
        self._counters = counters
        self._funnel = FunnelInstance()
        self._logger = logger

    @property
    def funnel(self) -> FunnelInstance:
        return self._funnel

    @property
    def state(self) -> FunnelState:
        return self._funnel.state

    @property
    def counters(self) -> MetricsCounters:
        return self._counters

    def _elapsed_ms(self) -> int:
        return self._events.context.elapsed_ms(self._clock.now_ms())

    def _log(self, msg: str, **extra: Any) -> None:
        if self._logger is not None:
            self._logger.info(msg, extra={"feature": "funnel", **extra})

    # ----------------------------
    # Transitions
    # ----------------------------
    def submit_quote(
        self, customer_name: Any, insurance_type: Any, coverage_amount: Any
    ) -> QuoteReceipt:
        _required_text(customer_name, "customer_name")
        kind = _required_text(insurance_type, "insurance_type")
        amount = parse_amount(coverage_amount)

        quote_id = self._ids.timestamped("quote")
        # a new quote always starts a fresh journey
        self._funnel.clear()
        self._funnel.quote_id = quote_id
        self._funnel.coverage_amount = amount
        self._funnel.state = FunnelState.QUOTE_REQUESTED
        self._counters.increment("quote_requests")

        self._events.emit(
            QuoteRequested(quote_id=quote_id, insurance_type=kind, coverage_amount=amount)
        )
        self._log("quote_requested", event_name="QuoteRequested")
        return QuoteReceipt(quote_id=quote_id, insurance_type=kind, coverage_amount=amount)

    def start_application(self) -> ApplicationReceipt:
        quote_id = self._funnel.quote_id
        if quote_id is None:
            raise PreconditionError("quote required: request a quote first")

        application_id = self._ids.timestamped("app")
        self._funnel.application_id = application_id
        self._funnel.state = FunnelState.APPLICATION_STARTED
        self._counters.increment("applications_started")

        self._events.emit_all(
            ApplicationStarted(application_id=application_id, quote_id=quote_id),
            FunnelStep(step=FUNNEL_APPLICATION_STARTED, funnel_id=quote_id),
        )
        self._log("application_started", event_name="ApplicationStarted")
        return ApplicationReceipt(application_id=application_id, quote_id=quote_id)

    def complete_application(self, personal_info: Any) -> ApplicationReceipt:
        application_id = self._funnel.application_id
        quote_id = self._funnel.quote_id
        if application_id is None or quote_id is None:
            raise PreconditionError("application required: start an application first")
        _required_text(personal_info, "personal_info")

        elapsed = self._elapsed_ms()
        self._funnel.state = FunnelState.APPLICATION_COMPLETED
        self._counters.increment("applications_completed")

        self._events.emit_all(
            ApplicationCompleted(
                application_id=application_id, quote_id=quote_id, time_to_complete_ms=elapsed
            ),
            FunnelStep(step=FUNNEL_APPLICATION_COMPLETED, funnel_id=quote_id),
        )
        self._log("application_completed", event_name="ApplicationCompleted")
        return ApplicationReceipt(
            application_id=application_id, quote_id=quote_id, elapsed_ms=elapsed
        )

    def purchase_policy(self, coverage_amount: Any = None) -> PolicyReceipt:
        application_id = self._funnel.application_id
        quote_id = self._funnel.quote_id
        if (
            self._funnel.state is not FunnelState.APPLICATION_COMPLETED
            or application_id is None
            or quote_id is None
        ):
            raise PreconditionError("completed application required: complete an application first")

        fallback = self._funnel.coverage_amount or 0.0
        value = (
            fallback
            if coverage_amount is None
            else parse_amount_or_default(coverage_amount, default=0.0)
        )

        policy_id = self._ids.timestamped("policy")
        elapsed = self._elapsed_ms()
        self._counters.increment("policies_sold")

        self._events.emit_all(
            PolicyPurchased(
                policy_id=policy_id,
                application_id=application_id,
                quote_id=quote_id,
                time_to_convert_ms=elapsed,
            ),
            Conversion(funnel_id=quote_id, conversion_value=value),
            FunnelStep(step=FUNNEL_PURCHASE_COMPLETED, funnel_id=quote_id),
        )
        self._funnel.clear()
        self._log("policy_purchased", event_name="PolicyPurchased")
        return PolicyReceipt(
            policy_id=policy_id,
            application_id=application_id,
            quote_id=quote_id,
            conversion_value=value,
            time_to_convert_ms=elapsed,
        )

    def reset(self) -> None:
        self._funnel.clear()
