from __future__ import annotations

import logging

from journey.core.types import SessionContext
from journey.features.events.schema import (
    ALLOWED_KINDS,
    KIND_EVENT,
    KIND_EXCEPTION,
    KIND_METRIC,
    KIND_PAGE_VIEW,
    TelemetryEvent,
    Trackable,
)
from journey.features.sinks.service import SafeSink, TelemetrySink


class EventService:
    """
    Lowers typed records to the sink shape, stamps session/user correlation fields
    and hands the result to the sink.

    Contracts enforced:
    - every record carries properties.sessionId (and userId)
    - the sink is always wrapped in SafeSink, so emit() never raises on backend failure
    """

    def __init__(
        self,
        *,
        sink: TelemetrySink,
        context: SessionContext,
        logger: logging.Logger | None = None,
    ) -> None:
        self._sink = sink if isinstance(sink, SafeSink) else SafeSink(sink, logger=logger)
        self._context = context
        self._logger = logger

    @property
    def context(self) -> SessionContext:
        return self._context

    @property
    def sink(self) -> SafeSink:
        return self._sink

    def emit(self, record: Trackable) -> TelemetryEvent:
        """
        Emits a single telemetry record synchronously. The record is not retained.
        """
        telemetry = record.to_telemetry().tagged(
            session_id=self._context.session_id,
            user_id=self._context.user_id,
        )
        if telemetry.kind not in ALLOWED_KINDS:
            raise ValueError(
                f"Unsupported kind={telemetry.kind!r}. Allowed={sorted(ALLOWED_KINDS)}"
            )

        if telemetry.kind == KIND_EVENT:
            self._sink.emit_event(telemetry.name, telemetry.properties, telemetry.measurements)
        elif telemetry.kind == KIND_PAGE_VIEW:
            self._sink.emit_page_view(
                telemetry.name, telemetry.url, telemetry.properties, telemetry.measurements
            )
        elif telemetry.kind == KIND_METRIC:
            self._sink.emit_metric(telemetry.name, float(telemetry.value or 0.0), telemetry.properties)
        elif telemetry.kind == KIND_EXCEPTION:
            error = telemetry.error or RuntimeError(telemetry.name)
            self._sink.emit_exception(error, telemetry.properties)

        if self._logger is not None:
            self._logger.debug(
                "event_emitted",
                extra={
                    "kind": telemetry.kind,
                    "event_name": telemetry.name,
                    "session_id": self._context.session_id,
                    "user_id": self._context.user_id,
                },
            )

        return telemetry

    def emit_all(self, *records: Trackable) -> list[TelemetryEvent]:
        return [self.emit(r) for r in records]
