from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from journey.core.clock import Clock, to_datetime, to_ms, whole_days_between
from journey.core.errors import PreconditionError
from journey.core.rng import RNG
from journey.features.events.schema import CohortAnalysisView, CohortJoin, CohortRetention
from journey.features.events.service import EventService
from journey.features.storage.service import KeyValueStore

COHORT_ID_KEY = "user_cohort"
COHORT_JOIN_DATE_KEY = "cohort_join_date"


def cohort_id_for(dt: datetime) -> str:
    """Monthly cohort bucket: 2024-03-15 -> cohort_2024_03."""
    return f"cohort_{dt.year}_{dt.month:02d}"


@dataclass(frozen=True)
class CohortMembership:
    cohort_id: str
    join_date: datetime


@dataclass(frozen=True)
class CohortStats:
    cohort_id: str
    total_members: int
    active_members: int
    retention_rate: float
    avg_session_duration_s: int


class CohortStatsSource(Protocol):
    def stats_for(self, cohort_id: str) -> CohortStats: ...


class SyntheticCohortStats:
    """
    SIMULATED cohort numbers for display. Nothing here is aggregated from real telemetry;
    a real backend would implement CohortStatsSource instead.
    """

    def __init__(self, rng: RNG) -> None:
        self._rng = rng

    def stats_for(self, cohort_id: str) -> CohortStats:
        return CohortStats(
            cohort_id=cohort_id,
            total_members=self._rng.randint(100, 1099),
            active_members=self._rng.randint(50, 549),
            retention_rate=round(self._rng.uniform(0.30, 0.70), 2),
            avg_session_duration_s=self._rng.randint(120, 419),
        )


@dataclass(frozen=True)
class RetentionReceipt:
    cohort_id: str
    days_since_join: int


class CohortService:
    def __init__(
        self,
        *,
        events: EventService,
        store: KeyValueStore,
        clock: Clock,
        stats: CohortStatsSource,
    ) -> None:
        self._events = events
        self._store = store
        self._clock = clock
        self._stats = stats

    def membership(self) -> CohortMembership | None:
        cohort_id = self._store.get(COHORT_ID_KEY)
        joined_raw = self._store.get(COHORT_JOIN_DATE_KEY)
        if not cohort_id or not joined_raw:
            return None
        try:
            joined = datetime.fromisoformat(joined_raw)
        except ValueError:
            return None
        return CohortMembership(cohort_id=cohort_id, join_date=joined)

    def join_cohort(self) -> CohortMembership:
        now = to_datetime(self._clock.now_ms())
        membership = CohortMembership(cohort_id=cohort_id_for(now), join_date=now)

        self._store.set(COHORT_ID_KEY, membership.cohort_id)
        self._store.set(COHORT_JOIN_DATE_KEY, now.isoformat())
        self._events.emit(CohortJoin(cohort_id=membership.cohort_id, join_date=now.isoformat()))
        return membership

    def track_retention(self) -> RetentionReceipt:
        membership = self.membership()
        if membership is None:
            raise PreconditionError("cohort required: join a cohort first")

        days = whole_days_between(to_ms(membership.join_date), self._clock.now_ms())
        self._events.emit(CohortRetention(cohort_id=membership.cohort_id, days_since_join=days))
        return RetentionReceipt(cohort_id=membership.cohort_id, days_since_join=days)

    def view_cohort_data(self) -> CohortStats:
        cohort_id = self._store.get(COHORT_ID_KEY)
        if not cohort_id:
            raise PreconditionError("no cohort data available: join a cohort first")

        stats = self._stats.stats_for(cohort_id)
        self._events.emit(
            CohortAnalysisView(
                cohort_id=stats.cohort_id,
                total_members=stats.total_members,
                active_members=stats.active_members,
                retention_rate=stats.retention_rate,
                avg_session_duration_s=stats.avg_session_duration_s,
            )
        )
        return stats
