"""Backoff policy shared by every retry site.

Schema verification, per-table replication retries and export fetches all
retry through one BackoffPolicy instead of hand-rolled sleep loops.
"""

import logging
import random
import time
from dataclasses import dataclass, field
from typing import Any, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class BackoffPolicy:
    """How many times to try an operation and how long to wait in between.

    Attributes:
        max_attempts: Total attempts, including the first one. Must be >= 1.
        delay: Seconds to wait after the first failed attempt.
        multiplier: Growth factor applied per attempt (1.0 = fixed delay).
        jitter: Upper bound of a uniform random addition to each delay.
        sleep: Sleep function, replaceable in tests.
    """

    max_attempts: int = 3
    delay: float = 2.0
    multiplier: float = 1.0
    jitter: float = 0.0
    sleep: Callable[[float], None] = field(default=time.sleep, compare=False, repr=False)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.delay < 0 or self.jitter < 0:
            raise ValueError("delay and jitter must be non-negative")

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after the given (1-based) failed attempt."""
        base = self.delay * (self.multiplier ** (attempt - 1))
        if self.jitter:
            base += random.uniform(0, self.jitter)
        return base

    def call(
        self,
        fn: Callable[[], T],
        *,
        retry_on: tuple[type[BaseException], ...] = (),
        retry_if: Callable[[T], bool] | None = None,
        description: str = "operation",
    ) -> T:
        """Run fn until it succeeds or the attempts are used up.

        An attempt is retried when it raises one of ``retry_on`` or when
        ``retry_if`` returns True for its result. After the last attempt the
        exception is re-raised, or the last result returned.
        """
        for attempt in range(1, self.max_attempts + 1):
            last = attempt == self.max_attempts
            try:
                result = fn()
            except retry_on as e:
                if last:
                    raise
                self._retry(description, attempt, e)
                continue

            if retry_if is not None and retry_if(result) and not last:
                self._retry(description, attempt, "unsuccessful result")
                continue
            return result

        raise AssertionError("unreachable")  # pragma: no cover

    def _retry(self, description: str, attempt: int, reason: Any) -> None:
        seconds = self.delay_for(attempt)
        logger.warning(
            "%s: attempt %d/%d failed (%s). Retrying in %.1fs...",
            description,
            attempt,
            self.max_attempts,
            reason,
            seconds,
        )
        if seconds > 0:
            self.sleep(seconds)
