from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime

from journey.core.logging import get_logger

from .duckdb_adapter import DuckDBAdapter


@dataclass(frozen=True)
class TelemetryRow:
    """
    One telemetry record as stored in the local telemetry table.
    """

    ts_utc: datetime
    kind: str
    name: str

    session_id: str | None = None
    user_id: str | None = None
    url: str | None = None
    value: float | None = None

    properties: dict[str, str] = field(default_factory=dict)
    measurements: dict[str, float] = field(default_factory=dict)

    error_type: str | None = None
    error_message: str | None = None

    def as_tuple(self) -> tuple:
        """Column order of TELEMETRY_COLUMNS; empty dicts are stored as NULL."""
        return (
            self.ts_utc,
            self.session_id,
            self.user_id,
            self.kind,
            self.name,
            self.url,
            None if self.value is None else float(self.value),
            _compact_json(self.properties),
            _compact_json(self.measurements),
            self.error_type,
            self.error_message,
        )


def _compact_json(d: dict) -> str | None:
    if not d:
        return None
    return json.dumps(d, sort_keys=True, separators=(",", ":"))


class TelemetryBuffer:
    """
    Holds telemetry rows in memory and writes them to DuckDB in batches.

    A batch is written when `every_n_events` rows are pending, when the SimPy
    timer fires (every `or_every_seconds`), on explicit flush, and on close.
    """

    def __init__(
        self,
        *,
        adapter: DuckDBAdapter,
        every_n_events: int,
        or_every_seconds: float,
    ) -> None:
        self.adapter = adapter
        self.every_n_events = int(every_n_events)
        self.or_every_seconds = float(or_every_seconds)

        self._pending: list[TelemetryRow] = []
        self._logger = get_logger(__name__)
        self._timer_started = False

    @property
    def pending(self) -> int:
        return len(self._pending)

    @property
    def is_open(self) -> bool:
        return self.adapter.is_open

    def open(self) -> None:
        if not self.is_open:
            self.adapter.open()

    def append(self, row: TelemetryRow) -> None:
        if not self.is_open:
            raise RuntimeError("TelemetryBuffer is closed; open() it before appending.")
        self._pending.append(row)
        if self._batch_full():
            self.flush(reason="count")

    def _batch_full(self) -> bool:
        return 0 < self.every_n_events <= len(self._pending)

    def flush(self, *, reason: str) -> None:
        if not self._pending:
            return
        batch, self._pending = self._pending, []
        result = self.adapter.write_telemetry([r.as_tuple() for r in batch])
        self._logger.info(
            "flush",
            extra={
                "feature": "persistence",
                "reason": reason,
                "num_events": result.num_events,
                "duration_ms": result.duration_ms,
            },
        )

    def close(self) -> None:
        if not self.is_open:
            return
        self.flush(reason="shutdown")
        self.adapter.close()

    def start_periodic_flush(self, env) -> None:
        """Register the flush timer on `env`. Repeated calls are ignored."""
        if self._timer_started:
            return
        self._timer_started = True
        env.process(self._flush_timer(env))

    def _flush_timer(self, env):
        # ends on the first wake-up after close()
        while self.is_open:
            yield env.timeout(self.or_every_seconds)
            if self.is_open:
                self.flush(reason="timer")
