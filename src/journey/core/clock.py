from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Protocol

import simpy

MS_PER_DAY = 24 * 60 * 60 * 1000


class Clock(Protocol):
    def now_ms(self) -> int: ...


class SystemClock:
    """Wall-clock milliseconds since the epoch."""

    def now_ms(self) -> int:
        return time.time_ns() // 1_000_000


@dataclass
class SimClock:
    """
    Clock driven by a SimPy environment.
    env.now is interpreted as seconds elapsed since start_dt.
    """

    env: simpy.Environment
    start_dt: datetime

    def get_current_time(self) -> datetime:
        return self.start_dt + timedelta(seconds=float(self.env.now))

    def now_ms(self) -> int:
        return to_ms(self.get_current_time())


def to_ms(dt: datetime) -> int:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return int(dt.timestamp() * 1000)


def to_datetime(ms: int) -> datetime:
    return datetime.fromtimestamp(ms / 1000.0, tz=UTC)


def whole_days_between(earlier_ms: int, later_ms: int) -> int:
    # floor of elapsed days; clock skew never yields a negative count
    return max(0, (later_ms - earlier_ms) // MS_PER_DAY)
