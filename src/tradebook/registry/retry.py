"""Bounded retry with exponential backoff and jitter for contended writes."""

from __future__ import annotations

import random
import time
from dataclasses import dataclass, field
from typing import Callable


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 5
    base_delay: float = 0.1  # seconds, doubled per attempt
    jitter: float = 0.1  # seconds, uniform in [0, jitter)
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False, compare=False)
    rand: Callable[[], float] = field(default=random.random, repr=False, compare=False)

    @classmethod
    def from_config(cls, config) -> RetryPolicy:
        return cls(
            max_attempts=config.create_max_attempts,
            base_delay=config.retry_base_delay_ms / 1000,
            jitter=config.retry_jitter_ms / 1000,
        )

    def delay(self, attempt: int, scale: float = 1.0) -> float:
        """Backoff before the retry following ``attempt`` (1-based).

        ``scale`` stretches both the base delay and the jitter window.
        """
        base = (2 ** (attempt - 1)) * self.base_delay
        return (base + self.rand() * self.jitter) * scale

    def wait(self, attempt: int, scale: float = 1.0) -> float:
        seconds = self.delay(attempt, scale)
        self.sleep(seconds)
        return seconds
