"""Circuit breaker around the signal extractor.

States:
- CLOSED: calls go through.
- OPEN: calls are skipped (fallback insights are used) after repeated failures.
- HALF_OPEN: after ``recovery_timeout`` seconds one trial call is let through;
  success closes the circuit, failure re-opens it.
"""
from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)


class BreakerState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class BreakerStats:
    success_count: int = 0
    failure_count: int = 0
    consecutive_failures: int = 0
    last_failure_time: Optional[float] = None

    @property
    def total_calls(self) -> int:
        return self.success_count + self.failure_count


class CircuitBreaker:
    """A minimal, thread-safe circuit breaker."""

    def __init__(
        self,
        failure_threshold: int = 3,
        recovery_timeout: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._clock = clock
        self._lock = threading.Lock()
        self._state = BreakerState.CLOSED
        self._opened_at: Optional[float] = None
        self.stats = BreakerStats()

    @property
    def state(self) -> BreakerState:
        with self._lock:
            return self._state

    def allow(self) -> bool:
        """Return *True* if a call may be attempted now."""
        with self._lock:
            if self._state is BreakerState.CLOSED:
                return True
            if self._state is BreakerState.OPEN and self._opened_at is not None:
                if self._clock() - self._opened_at >= self.recovery_timeout:
                    logger.info("Circuit half-open; allowing a trial extraction call")
                    self._state = BreakerState.HALF_OPEN
                    return True
            return False

    def record_success(self) -> None:
        with self._lock:
            self.stats.success_count += 1
            self.stats.consecutive_failures = 0
            if self._state is not BreakerState.CLOSED:
                logger.info("Signal extractor recovered; circuit closed")
            self._state = BreakerState.CLOSED
            self._opened_at = None

    def record_failure(self, error: BaseException) -> None:
        with self._lock:
            self.stats.failure_count += 1
            self.stats.consecutive_failures += 1
            self.stats.last_failure_time = self._clock()
            should_open = (
                self._state is BreakerState.HALF_OPEN
                or self.stats.consecutive_failures >= self.failure_threshold
            )
            if should_open and self._state is not BreakerState.OPEN:
                logger.error(
                    "Opening circuit after %d consecutive failure(s): %s",
                    self.stats.consecutive_failures,
                    error,
                )
                self._state = BreakerState.OPEN
                self._opened_at = self._clock()

    def to_dict(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "state": self._state.value,
                "success_count": self.stats.success_count,
                "failure_count": self.stats.failure_count,
                "total_calls": self.stats.total_calls,
            }
