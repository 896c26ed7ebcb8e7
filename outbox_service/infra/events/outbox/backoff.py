"""Retry backoff policy for outbox deliveries."""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from datetime import datetime, timedelta

# 2**62 seconds is far beyond any sane cap; larger exponents only risk float overflow
_MAX_EXPONENT = 62


@dataclass(frozen=True, slots=True)
class BackoffPolicy:
    """Exponential backoff with an upper bound.

    ``delay(attempt) = min(base_delay * 2**attempt, cap_delay)`` seconds, where
    ``attempt`` is the attempt count *after* the failure being scheduled. With
    the defaults the first failure waits 2s, the second 4s, and so on up to
    15 minutes.

    ``jitter`` switches to "equal jitter": half of the computed delay is kept
    and the other half is randomized. It is off by default so retry times stay
    deterministic.
    """

    base_delay: float = 1.0
    cap_delay: float = 900.0
    jitter: bool = False
    rng: random.Random = field(default_factory=random.Random, repr=False, compare=False)

    def __post_init__(self) -> None:
        if self.base_delay <= 0:
            raise ValueError("base_delay must be positive")
        if self.cap_delay < self.base_delay:
            raise ValueError("cap_delay must not be lower than base_delay")

    def delay(self, attempt: int) -> float:
        """Seconds to wait before the next attempt, never above ``cap_delay``."""
        exponent = min(max(attempt, 0), _MAX_EXPONENT)
        delay = min(self.base_delay * (2**exponent), self.cap_delay)
        if self.jitter:
            half = delay / 2
            delay = half + self.rng.uniform(0, half)
        return delay

    def next_attempt_at(self, attempt: int, now: datetime) -> datetime:
        return now + timedelta(seconds=self.delay(attempt))

    @staticmethod
    def is_exhausted(attempts: int, max_attempts: int) -> bool:
        """True when ``attempts`` deliveries have used up the retry budget."""
        return attempts >= max_attempts
