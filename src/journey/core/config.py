from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

SINK_KINDS = ("noop", "memory", "log", "duckdb")


@dataclass(frozen=True)
class RunConfig:
    seed: int | None = None


@dataclass(frozen=True)
class SessionConfig:
    page_url: str = "http://localhost:3000/"
    time_on_page_interval_s: float = 5.0
    track_device_on_start: bool = True


@dataclass(frozen=True)
class FlushConfig:
    every_n_events: int = 500
    or_every_seconds: float = 30.0


@dataclass(frozen=True)
class StorageConfig:
    # None -> in-memory store for the lifetime of the process
    duckdb_path: str | None = None
    clean_slate: bool = False


@dataclass(frozen=True)
class SinkConfig:
    kind: str = "noop"
    duckdb_path: str | None = None
    clean_slate: bool = False
    flush: FlushConfig = FlushConfig()


@dataclass(frozen=True)
class AbTestConfig:
    test_name: str = "homepage_cta_test"
    rates: dict[str, float] = field(default_factory=lambda: {"variant_a": 0.15})
    default_rate: float = 0.22


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"


@dataclass(frozen=True)
class JourneyConfig:
    run: RunConfig
    storage: StorageConfig
    logging: LoggingConfig
    session: SessionConfig = SessionConfig()
    sink: SinkConfig = SinkConfig()
    ab_test: AbTestConfig = AbTestConfig()
    raw: dict[str, Any] = field(default_factory=dict)  # original parsed YAML (for debugging)


def load_yaml(path: str | Path) -> dict[str, Any]:
    p = Path(path)
    data = yaml.safe_load(p.read_text())
    if not isinstance(data, dict):
        raise ValueError("Config YAML must parse to a dict at the top level.")
    return data


def _rate(value: Any, where: str) -> float:
    r = float(value)
    if not (0.0 <= r <= 1.0):
        raise ValueError(f"{where} must be in [0, 1], got {r}")
    return r


def parse_config(data: dict[str, Any]) -> JourneyConfig:
    for key in ["run", "storage", "logging"]:
        if key not in data:
            raise ValueError(f"Missing required top-level config section: '{key}'")

    run = data.get("run") or {}
    storage = data.get("storage") or {}
    logging_cfg = data.get("logging") or {}
    session = data.get("session") or {}
    sink = data.get("sink") or {}
    ab = data.get("ab_test") or {}

    seed = run.get("seed")
    run_cfg = RunConfig(seed=None if seed is None else int(seed))

    db_path = storage.get("duckdb_path")
    storage_cfg = StorageConfig(
        duckdb_path=None if db_path is None else str(db_path),
        clean_slate=bool(storage.get("clean_slate", False)),
    )

    interval = float(session.get("time_on_page_interval_s", 5.0))
    if interval <= 0:
        raise ValueError("session.time_on_page_interval_s must be > 0")
    session_cfg = SessionConfig(
        page_url=str(session.get("page_url", "http://localhost:3000/")),
        time_on_page_interval_s=interval,
        track_device_on_start=bool(session.get("track_device_on_start", True)),
    )

    kind = str(sink.get("kind", "noop")).strip().lower()
    if kind not in SINK_KINDS:
        raise ValueError(f"Unsupported sink.kind={kind!r}. Allowed={list(SINK_KINDS)}")
    sink_path = sink.get("duckdb_path")
    if kind == "duckdb" and not sink_path:
        raise ValueError("sink.duckdb_path is required when sink.kind is 'duckdb'")
    flush = sink.get("flush") or {}
    sink_cfg = SinkConfig(
        kind=kind,
        duckdb_path=None if sink_path is None else str(sink_path),
        clean_slate=bool(sink.get("clean_slate", False)),
        flush=FlushConfig(
            every_n_events=int(flush.get("every_n_events", 500)),
            or_every_seconds=float(flush.get("or_every_seconds", 30.0)),
        ),
    )

    rates_raw = ab.get("rates")
    rates = (
        {"variant_a": 0.15}
        if rates_raw is None
        else {str(k): _rate(v, f"ab_test.rates.{k}") for k, v in dict(rates_raw).items()}
    )
    ab_cfg = AbTestConfig(
        test_name=str(ab.get("test_name", "homepage_cta_test")),
        rates=rates,
        default_rate=_rate(ab.get("default_rate", 0.22), "ab_test.default_rate"),
    )

    log_cfg = LoggingConfig(level=str(logging_cfg.get("level", "INFO")).upper())

    return JourneyConfig(
        run=run_cfg,
        storage=storage_cfg,
        logging=log_cfg,
        session=session_cfg,
        sink=sink_cfg,
        ab_test=ab_cfg,
        raw=data,
    )


def load_config(path: str | Path) -> JourneyConfig:
    data = load_yaml(path)
    return parse_config(data)
