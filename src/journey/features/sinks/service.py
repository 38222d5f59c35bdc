from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Protocol

from journey.core.clock import Clock, to_datetime
from journey.core.errors import SinkUnavailable
from journey.core.logging import get_logger
from journey.features.events.schema import (
    KIND_EVENT,
    KIND_EXCEPTION,
    KIND_METRIC,
    KIND_PAGE_VIEW,
)
from journey.features.persistence.service import TelemetryBuffer, TelemetryRow


class TelemetrySink(Protocol):
    """
    Surface area of the external analytics backend.
    """

    def emit_event(
        self, name: str, properties: dict[str, str], measurements: dict[str, float]
    ) -> None: ...

    def emit_page_view(
        self,
        name: str,
        url: str | None,
        properties: dict[str, str],
        measurements: dict[str, float],
    ) -> None: ...

    def emit_metric(self, name: str, value: float, properties: dict[str, str]) -> None: ...

    def emit_exception(self, error: BaseException, properties: dict[str, str]) -> None: ...

    def flush(self) -> None: ...

    def close(self) -> None: ...


class NoopSink:
    """Used when no backend is configured."""

    def emit_event(self, name, properties, measurements) -> None:
        return None

    def emit_page_view(self, name, url, properties, measurements) -> None:
        return None

    def emit_metric(self, name, value, properties) -> None:
        return None

    def emit_exception(self, error, properties) -> None:
        return None

    def flush(self) -> None:
        return None

    def close(self) -> None:
        return None


@dataclass(frozen=True)
class RecordedTelemetry:
    kind: str
    name: str
    properties: dict[str, str] = field(default_factory=dict)
    measurements: dict[str, float] = field(default_factory=dict)
    url: str | None = None
    value: float | None = None
    error: BaseException | None = None


class RecordingSink:
    """
    Keeps everything in memory. Handy for demos and tests.
    """

    def __init__(self) -> None:
        self.records: list[RecordedTelemetry] = []

    def emit_event(self, name, properties, measurements) -> None:
        self.records.append(
            RecordedTelemetry(
                kind=KIND_EVENT,
                name=name,
                properties=dict(properties),
                measurements=dict(measurements),
            )
        )

    def emit_page_view(self, name, url, properties, measurements) -> None:
        self.records.append(
            RecordedTelemetry(
                kind=KIND_PAGE_VIEW,
                name=name,
                url=url,
                properties=dict(properties),
                measurements=dict(measurements),
            )
        )

    def emit_metric(self, name, value, properties) -> None:
        self.records.append(
            RecordedTelemetry(
                kind=KIND_METRIC, name=name, value=float(value), properties=dict(properties)
            )
        )

    def emit_exception(self, error, properties) -> None:
        self.records.append(
            RecordedTelemetry(
                kind=KIND_EXCEPTION,
                name=type(error).__name__,
                error=error,
                properties=dict(properties),
            )
        )

    def names(self) -> list[str]:
        return [r.name for r in self.records]

    def named(self, name: str) -> list[RecordedTelemetry]:
        return [r for r in self.records if r.name == name]

    def clear(self) -> None:
        self.records.clear()

    def flush(self) -> None:
        return None

    def close(self) -> None:
        return None


class LoggingSink:
    """
    Writes each record as a JSON log line. A console stand-in for a remote backend.
    """

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._logger = logger or get_logger("journey.telemetry")

    def _log(self, kind: str, name: str, body: dict) -> None:
        self._logger.info(
            json.dumps(body, sort_keys=True, separators=(",", ":"), default=str),
            extra={"kind": kind, "event_name": name},
        )

    def emit_event(self, name, properties, measurements) -> None:
        self._log(KIND_EVENT, name, {"properties": properties, "measurements": measurements})

    def emit_page_view(self, name, url, properties, measurements) -> None:
        self._log(
            KIND_PAGE_VIEW,
            name,
            {"url": url, "properties": properties, "measurements": measurements},
        )

    def emit_metric(self, name, value, properties) -> None:
        self._log(KIND_METRIC, name, {"value": value, "properties": properties})

    def emit_exception(self, error, properties) -> None:
        self._log(
            KIND_EXCEPTION,
            type(error).__name__,
            {"message": str(error), "properties": properties},
        )

    def flush(self) -> None:
        return None

    def close(self) -> None:
        return None


class DuckDBSink:
    """
    Buffers telemetry into the local DuckDB telemetry table.
    DuckDB/buffer failures surface as SinkUnavailable.
    """

    def __init__(self, *, buffer: TelemetryBuffer, clock: Clock) -> None:
        self.buffer = buffer
        self._clock = clock

    def _append(self, row: TelemetryRow) -> None:
        try:
            self.buffer.append(row)
        except Exception as e:  # noqa: BLE001
            raise SinkUnavailable(f"telemetry append failed: {e}") from e

    def _row(self, kind: str, name: str, properties: dict[str, str], **kw) -> TelemetryRow:
        return TelemetryRow(
            ts_utc=to_datetime(self._clock.now_ms()),
            kind=kind,
            name=name,
            session_id=properties.get("sessionId"),
            user_id=properties.get("userId"),
            properties=dict(properties),
            **kw,
        )

    def emit_event(self, name, properties, measurements) -> None:
        self._append(self._row(KIND_EVENT, name, properties, measurements=dict(measurements)))

    def emit_page_view(self, name, url, properties, measurements) -> None:
        self._append(
            self._row(KIND_PAGE_VIEW, name, properties, url=url, measurements=dict(measurements))
        )

    def emit_metric(self, name, value, properties) -> None:
        self._append(self._row(KIND_METRIC, name, properties, value=float(value)))

    def emit_exception(self, error, properties) -> None:
        self._append(
            self._row(
                KIND_EXCEPTION,
                type(error).__name__,
                properties,
                error_type=type(error).__name__,
                error_message=str(error),
            )
        )

    def flush(self) -> None:
        try:
            self.buffer.flush(reason="explicit")
        except Exception as e:  # noqa: BLE001
            raise SinkUnavailable(f"telemetry flush failed: {e}") from e

    def close(self) -> None:
        try:
            self.buffer.close()
        except Exception as e:  # noqa: BLE001
            raise SinkUnavailable(f"telemetry close failed: {e}") from e


class SafeSink:
    """
    Fire-and-forget wrapper. Any failure of the inner sink is logged and swallowed,
    so telemetry problems never reach the caller.
    """

    def __init__(self, inner: TelemetrySink, *, logger: logging.Logger | None = None) -> None:
        self.inner = inner
        self.failures = 0
        self._logger = logger or get_logger(__name__)

    def _swallow(self, op: str, name: str, exc: Exception) -> None:
        self.failures += 1
        self._logger.warning(
            "sink_unavailable",
            extra={
                "feature": "sinks",
                "reason": op,
                "event_name": name,
                "error": f"{type(exc).__name__}: {exc}",
            },
        )

    def emit_event(self, name, properties, measurements) -> None:
        try:
            self.inner.emit_event(name, properties, measurements)
        except Exception as e:  # noqa: BLE001
            self._swallow("emit_event", name, e)

    def emit_page_view(self, name, url, properties, measurements) -> None:
        try:
            self.inner.emit_page_view(name, url, properties, measurements)
        except Exception as e:  # noqa: BLE001
            self._swallow("emit_page_view", name, e)

    def emit_metric(self, name, value, properties) -> None:
        try:
            self.inner.emit_metric(name, value, properties)
        except Exception as e:  # noqa: BLE001
            self._swallow("emit_metric", name, e)

    def emit_exception(self, error, properties) -> None:
        try:
            self.inner.emit_exception(error, properties)
        except Exception as e:  # noqa: BLE001
            self._swallow("emit_exception", type(error).__name__, e)

    def flush(self) -> None:
        try:
            self.inner.flush()
        except Exception as e:  # noqa: BLE001
            self._swallow("flush", "", e)

    def close(self) -> None:
        try:
            self.inner.close()
        except Exception as e:  # noqa: BLE001
            self._swallow("close", "", e)
