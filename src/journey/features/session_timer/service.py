from __future__ import annotations

from collections.abc import Callable
from typing import Any

import simpy

from journey.core.clock import Clock
from journey.core.types import SessionContext


class SessionTimer:
    """
    Periodic time-on-page refresh for display.

    A SimPy process that wakes every `interval_s` and publishes whole seconds since
    session start to `on_tick`. Reads the session start only; never touches the funnel.
    """

    def __init__(
        self,
        *,
        env: simpy.Environment,
        context: SessionContext,
        clock: Clock,
        on_tick: Callable[[int], Any],
        interval_s: float = 5.0,
    ) -> None:
        if interval_s <= 0:
            raise ValueError("interval_s must be > 0")
        self.env = env
        self.context = context
        self.clock = clock
        self.on_tick = on_tick
        self.interval_s = float(interval_s)
        self.ticks = 0
        self._proc: simpy.Process | None = None

    def start(self) -> simpy.Process:
        if self._proc is None:
            self._proc = self.env.process(self._run())
        return self._proc

    def stop(self) -> None:
        if self._proc is not None and self._proc.is_alive:
            self._proc.interrupt("stopped")
        self._proc = None

    def _run(self):
        try:
            while True:
                yield self.env.timeout(self.interval_s)
                self.ticks += 1
                seconds = self.context.elapsed_ms(self.clock.now_ms()) // 1000
                self.on_tick(seconds)
        except simpy.Interrupt:
            return
