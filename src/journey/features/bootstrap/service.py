from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field

import duckdb
import simpy

from journey.core.clock import Clock, SystemClock
from journey.core.config import JourneyConfig, SinkConfig, StorageConfig
from journey.core.errors import StorageUnavailable
from journey.core.ids import IdsService
from journey.core.logging import get_logger
from journey.core.rng import RNG
from journey.core.types import SessionContext
from journey.features.ab_test.service import AbTestService, StaticRateTable
from journey.features.cohort.service import CohortService, SyntheticCohortStats
from journey.features.engagement.service import EngagementService
from journey.features.events.service import EventService
from journey.features.funnel.service import FunnelService
from journey.features.funnel.types import MetricsCounters
from journey.features.identity.service import IdentityService
from journey.features.persistence.duckdb_adapter import DuckDBAdapter
from journey.features.persistence.service import TelemetryBuffer
from journey.features.segmentation.service import DeviceProfile, SegmentationService
from journey.features.session.service import AnalyticsSession, SessionRegistry
from journey.features.sinks.service import (
    DuckDBSink,
    LoggingSink,
    NoopSink,
    RecordingSink,
    SafeSink,
    TelemetrySink,
)
from journey.features.storage.service import (
    DuckDBKeyValueStore,
    FallbackKeyValueStore,
    InMemoryKeyValueStore,
    KeyValueStore,
)


@dataclass
class BootstrapResult:
    session: AnalyticsSession
    store: KeyValueStore
    sink: SafeSink
    buffer: TelemetryBuffer | None = None
    closers: list[Callable[[], None]] = field(default_factory=list)


def build_store(
    cfg: StorageConfig, *, logger: logging.Logger
) -> tuple[KeyValueStore, Callable[[], None] | None]:
    """
    DuckDB-backed store when a path is configured, else in-memory.
    An unopenable store degrades to memory with a warning; it is never fatal.
    """
    if cfg.duckdb_path is None:
        return InMemoryKeyValueStore(), None

    kv = DuckDBKeyValueStore(DuckDBAdapter(cfg.duckdb_path, clean_slate=cfg.clean_slate))
    try:
        kv.open()
    except StorageUnavailable as e:
        logger.warning(
            "storage_unavailable",
            extra={"feature": "storage", "reason": "open_failed", "error": str(e)},
        )
        return InMemoryKeyValueStore(), None

    return FallbackKeyValueStore(kv, logger=logger), kv.close


def build_sink(
    cfg: SinkConfig,
    *,
    clock: Clock,
    logger: logging.Logger,
    env: simpy.Environment | None = None,
) -> tuple[TelemetrySink, TelemetryBuffer | None]:
    if cfg.kind == "memory":
        return RecordingSink(), None
    if cfg.kind == "log":
        return LoggingSink(), None
    if cfg.kind == "duckdb" and cfg.duckdb_path:
        buffer = TelemetryBuffer(
            adapter=DuckDBAdapter(cfg.duckdb_path, clean_slate=cfg.clean_slate),
            every_n_events=cfg.flush.every_n_events,
            or_every_seconds=cfg.flush.or_every_seconds,
        )
        try:
            buffer.open()
        except (duckdb.Error, OSError) as e:
            logger.warning(
                "sink_unavailable",
                extra={"feature": "sinks", "reason": "open_failed", "error": str(e)},
            )
            return NoopSink(), None
        if env is not None:
            buffer.start_periodic_flush(env)
        return DuckDBSink(buffer=buffer, clock=clock), buffer
    return NoopSink(), None


@dataclass
class SessionFactory:
    """
    Builds independent sessions over a shared sink. Used directly by
    bootstrap_session and as the factory behind a SessionRegistry.

    store_factory is called once per session: return the same store to share one
    visitor identity, or a fresh one per session for unrelated visitors.
    """

    cfg: JourneyConfig
    store_factory: Callable[[], KeyValueStore]
    sink: SafeSink
    clock: Clock
    rng: RNG
    logger: logging.Logger
    device: DeviceProfile | None = None

    def __call__(self) -> AnalyticsSession:
        store = self.store_factory()
        ids = IdsService(clock=self.clock, rng=self.rng)
        identity = IdentityService(store=store, ids=ids)

        context = SessionContext(
            session_id=identity.new_session_id(),
            user_id=identity.ensure_user_id(),
            start_ms=self.clock.now_ms(),
        )
        counters = MetricsCounters()
        events = EventService(sink=self.sink, context=context, logger=self.logger)

        ab_cfg = self.cfg.ab_test
        session = AnalyticsSession(
            context=context,
            clock=self.clock,
            counters=counters,
            events=events,
            funnel=FunnelService(
                events=events, clock=self.clock, ids=ids, counters=counters, logger=self.logger
            ),
            engagement=EngagementService(
                events=events,
                identity=identity,
                clock=self.clock,
                rng=self.rng,
                counters=counters,
                page_url=self.cfg.session.page_url,
            ),
            segmentation=SegmentationService(events=events, rng=self.rng),
            ab_test=AbTestService(
                events=events,
                rates=StaticRateTable(rates=dict(ab_cfg.rates), default_rate=ab_cfg.default_rate),
                rng=self.rng,
                test_name=ab_cfg.test_name,
            ),
            cohort=CohortService(
                events=events,
                store=store,
                clock=self.clock,
                stats=SyntheticCohortStats(self.rng),
            ),
            logger=self.logger,
        )

        self.logger.info(
            "session_started",
            extra={"feature": "session", "session_id": context.session_id, "user_id": context.user_id},
        )
        if self.cfg.session.track_device_on_start:
            session.track_device_info(self.device)
        return session


def bootstrap_session(
    cfg: JourneyConfig,
    *,
    clock: Clock | None = None,
    rng: RNG | None = None,
    sink: TelemetrySink | None = None,
    store: KeyValueStore | None = None,
    env: simpy.Environment | None = None,
    device: DeviceProfile | None = None,
) -> BootstrapResult:
    """
    Wire one AnalyticsSession from config. Explicit sink/store arguments win over config.
    Closing the returned session flushes and releases everything built here.
    """
    logger = get_logger("journey", cfg.logging.level)
    clock = clock or SystemClock()
    rng = rng or RNG(cfg.run.seed)

    closers: list[Callable[[], None]] = []

    if store is None:
        store, close_store = build_store(cfg.storage, logger=logger)
        if close_store is not None:
            closers.append(close_store)

    buffer: TelemetryBuffer | None = None
    if sink is None:
        sink, buffer = build_sink(cfg.sink, clock=clock, logger=logger, env=env)
    safe = sink if isinstance(sink, SafeSink) else SafeSink(sink, logger=logger)
    # sink closes (final flush) before the store goes away
    closers.insert(0, safe.close)

    shared_store = store
    factory = SessionFactory(
        cfg=cfg,
        store_factory=lambda: shared_store,
        sink=safe,
        clock=clock,
        rng=rng,
        logger=logger,
        device=device,
    )
    session = factory()
    for close in closers:
        session.add_closer(close)

    return BootstrapResult(session=session, store=store, sink=safe, buffer=buffer, closers=closers)


def bootstrap_registry(
    cfg: JourneyConfig,
    *,
    clock: Clock | None = None,
    rng: RNG | None = None,
    sink: TelemetrySink | None = None,
    store_factory: Callable[[], KeyValueStore] | None = None,
) -> SessionRegistry:
    """
    Registry of independent sessions sharing one sink. By default every session gets
    its own in-memory store, i.e. its own visitor identity. The caller owns the sink.
    """
    logger = get_logger("journey", cfg.logging.level)
    sink = sink or NoopSink()
    safe = sink if isinstance(sink, SafeSink) else SafeSink(sink, logger=logger)
    factory = SessionFactory(
        cfg=cfg,
        store_factory=store_factory or InMemoryKeyValueStore,
        sink=safe,
        clock=clock or SystemClock(),
        rng=rng or RNG(cfg.run.seed),
        logger=logger,
    )
    return SessionRegistry(factory)
