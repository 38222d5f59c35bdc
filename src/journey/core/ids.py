from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from journey.core.clock import Clock

BASE36_ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyz"
RANDOM_SUFFIX_LENGTH = 9


class IntRNG(Protocol):
    def randint(self, a: int, b: int) -> int: ...


def random_suffix(rng: IntRNG, length: int = RANDOM_SUFFIX_LENGTH) -> str:
    last = len(BASE36_ALPHABET) - 1
    return "".join(BASE36_ALPHABET[rng.randint(0, last)] for _ in range(length))


@dataclass(slots=True)
class IdsService:
    """
    Identifier factory.
    - timestamped("quote") -> "quote_1710500000000"
    - unique("session")    -> "session_1710500000000_k3j9x0a1b"

    Uniqueness is best-effort (time + random), good enough for one process.
    """

    clock: Clock
    rng: IntRNG

    def timestamped(self, prefix: str) -> str:
        return f"{prefix}_{self.clock.now_ms()}"

    def unique(self, prefix: str) -> str:
        return f"{prefix}_{self.clock.now_ms()}_{random_suffix(self.rng)}"
