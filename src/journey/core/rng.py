from __future__ import annotations

import random
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol, TypeVar

T = TypeVar("T")


class RNGLike(Protocol):
    def random(self) -> float: ...


@dataclass
class RNG:
    """
    Seedable random source shared by id generation and the synthetic data generators.
    seed=None draws from OS entropy.
    """

    seed: int | None = None

    def __post_init__(self) -> None:
        self._r = random.Random(self.seed)

    def random(self) -> float:
        return self._r.random()

    def randint(self, a: int, b: int) -> int:
        return self._r.randint(a, b)

    def uniform(self, a: float, b: float) -> float:
        return self._r.uniform(a, b)

    def choice(self, seq: Sequence[T]) -> T:
        return self._r.choice(seq)
