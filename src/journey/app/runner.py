from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

import simpy

from journey.core.clock import SimClock
from journey.core.config import JourneyConfig, load_config
from journey.features.bootstrap.service import bootstrap_session
from journey.features.session.types import OperationResult
from journey.features.session_timer.service import SessionTimer
from journey.features.sinks.service import TelemetrySink


@dataclass(frozen=True)
class ScenarioStep:
    delay_s: float
    operation: str
    args: tuple[Any, ...] = ()


# One visitor clicking through the demo page, in simulated seconds.
DEFAULT_SCENARIO: tuple[ScenarioStep, ...] = (
    ScenarioStep(1.0, "track_page_view", ("HomePage",)),
    ScenarioStep(2.0, "simulate_returning_visitor"),
    ScenarioStep(4.0, "submit_quote", ("Alice", "auto", "50000")),
    ScenarioStep(6.0, "start_application"),
    ScenarioStep(20.0, "complete_application", ("Alice Smith, 123 Main St",)),
    ScenarioStep(5.0, "purchase_policy", ("50000",)),
    ScenarioStep(3.0, "run_ab_test", ("variant_a",)),
    ScenarioStep(1.0, "run_ab_test", ("variant_b",)),
    ScenarioStep(2.0, "join_cohort"),
    ScenarioStep(1.0, "track_retention"),
    ScenarioStep(1.0, "view_cohort_data"),
    ScenarioStep(1.0, "track_custom_segment"),
    ScenarioStep(1.0, "measure_page_load"),
    ScenarioStep(1.0, "track_time_on_page"),
    ScenarioStep(2.0, "simulate_bounce"),
)


@dataclass
class DemoResult:
    session_id: str
    user_id: str
    metrics: dict[str, int]
    steps: list[tuple[str, OperationResult]] = field(default_factory=list)
    time_on_page_ticks: list[int] = field(default_factory=list)
    sink_failures: int = 0


def run_demo(
    cfg: JourneyConfig,
    *,
    scenario: Sequence[ScenarioStep] = DEFAULT_SCENARIO,
    start_dt: datetime | None = None,
    sink: TelemetrySink | None = None,
) -> DemoResult:
    env = simpy.Environment()
    clock = SimClock(env=env, start_dt=start_dt or datetime.now(UTC))

    boot = bootstrap_session(cfg, clock=clock, env=env, sink=sink)
    session = boot.session

    ticks: list[int] = []
    timer = SessionTimer(
        env=env,
        context=session.context,
        clock=clock,
        on_tick=ticks.append,
        interval_s=cfg.session.time_on_page_interval_s,
    )
    timer.start()

    steps: list[tuple[str, OperationResult]] = []

    def visitor():
        for step in scenario:
            if step.delay_s > 0:
                yield env.timeout(step.delay_s)
            op = getattr(session, step.operation)
            steps.append((step.operation, op(*step.args)))

    try:
        env.run(until=env.process(visitor()))
    finally:
        timer.stop()
        session.close()

    return DemoResult(
        session_id=session.session_id,
        user_id=session.user_id,
        metrics=session.metrics,
        steps=steps,
        time_on_page_ticks=ticks,
        sink_failures=boot.sink.failures,
    )


def run(config_path: str) -> DemoResult:
    cfg = load_config(config_path)
    return run_demo(cfg)
