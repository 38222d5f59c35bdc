from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Protocol

from journey.core.errors import ValidationError
from journey.core.rng import RNGLike
from journey.features.events.schema import ABTestConversion, ABTestParticipation
from journey.features.events.service import EventService

DEFAULT_TEST_NAME = "homepage_cta_test"


class ConversionRateSource(Protocol):
    def rate_for(self, variant: str) -> float: ...


@dataclass(frozen=True)
class StaticRateTable:
    """
    Hardcoded per-variant conversion rates. Simulated data, not measured.
    Any variant missing from `rates` converts at `default_rate`.
    """

    rates: Mapping[str, float] = field(default_factory=lambda: {"variant_a": 0.15})
    default_rate: float = 0.22

    def __post_init__(self) -> None:
        for name, r in {**self.rates, "<default>": self.default_rate}.items():
            if not (0.0 <= float(r) <= 1.0):
                raise ValueError(f"conversion rate for {name!r} must be in [0, 1], got {r}")

    def rate_for(self, variant: str) -> float:
        return float(self.rates.get(variant, self.default_rate))


@dataclass(frozen=True)
class AbTestOutcome:
    test_name: str
    variant: str
    converted: bool
    rate: float


class AbTestService:
    """
    Stateless A/B simulator: one uniform draw per participation, converted when the
    draw falls below the variant's rate.
    """

    def __init__(
        self,
        *,
        events: EventService,
        rates: ConversionRateSource,
        rng: RNGLike,
        test_name: str = DEFAULT_TEST_NAME,
    ) -> None:
        self._events = events
        self._rates = rates
        self._rng = rng
        self.test_name = test_name

    def should_convert(self, variant: str) -> tuple[bool, float]:
        rate = self._rates.rate_for(variant)
        u = float(self._rng.random())
        return (u < rate), rate

    def run(self, variant: str) -> AbTestOutcome:
        label = "" if variant is None else str(variant).strip()
        if not label:
            raise ValidationError("variant is required")

        self._events.emit(ABTestParticipation(test_name=self.test_name, variant=label))
        converted, rate = self.should_convert(label)
        if converted:
            self._events.emit(ABTestConversion(test_name=self.test_name, variant=label))

        return AbTestOutcome(test_name=self.test_name, variant=label, converted=converted, rate=rate)
