"""Three-state circuit breaker.

closed: calls pass through; `failure_threshold` consecutive failures open the
circuit.
open: calls are rejected until `timeout` seconds have passed since the last
failure; the next call then moves the breaker to half_open.
half_open: up to `max_requests` probes pass through; any failure re-opens the
circuit and `success_threshold` successes close it again.

The lock guards admission and result recording only. The protected
operation itself runs without holding it.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable

from robogo.core.context import ExecutionContext
from robogo.core.errors import (
    ErrorBuilder,
    ErrorType,
    RobogoError,
    circuit_breaker_error,
)
from robogo.core.models import CircuitBreakerConfig, format_duration

logger = logging.getLogger(__name__)


class CircuitState(str, Enum):
    """Circuit breaker state."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass(frozen=True)
class CircuitBreakerMetrics:
    """Point-in-time snapshot of a breaker."""

    state: CircuitState
    failures: int
    successes: int
    request_count: int
    total_calls: int
    total_failures: int
    total_successes: int
    rejected_calls: int
    state_changes: int
    last_failure_time: datetime | None


class CircuitBreaker:
    """Guard an operation that fails repeatedly.

    One instance is shared by every caller of the protected operation.
    `clock` must be monotonic; tests inject a fake one.
    """

    def __init__(
        self,
        config: CircuitBreakerConfig | None = None,
        *,
        name: str = "operation",
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config or CircuitBreakerConfig()
        self.name = name
        self._clock = clock
        self._lock = threading.Lock()
        self._state = CircuitState.CLOSED
        self._failures = 0
        self._successes = 0
        self._request_count = 0
        self._last_failure: float | None = None
        self._last_failure_at: datetime | None = None
        self._total_calls = 0
        self._total_failures = 0
        self._total_successes = 0
        self._rejected = 0
        self._state_changes = 0

    # --- state machine (call within lock) ---

    def _transition(self, new_state: CircuitState) -> None:
        if new_state == self._state:
            return
        old_state = self._state
        self._state = new_state
        self._state_changes += 1
        if new_state == CircuitState.OPEN:
            logger.warning(
                f"Circuit breaker '{self.name}' opened after {self._failures} failures "
                f"(was {old_state.value})"
            )
        else:
            logger.info(f"Circuit breaker '{self.name}' {old_state.value} -> {new_state.value}")

    def _allow_request(self) -> bool:
        if self._state == CircuitState.CLOSED:
            return True

        if self._state == CircuitState.OPEN:
            elapsed = (
                self._clock() - self._last_failure if self._last_failure is not None else None
            )
            if elapsed is None or elapsed >= self.config.timeout:
                self._transition(CircuitState.HALF_OPEN)
                self._request_count = 1
                self._successes = 0
                return True
            return False

        # HALF_OPEN: bounded number of probes
        if self._request_count < self.config.max_requests:
            self._request_count += 1
            return True
        return False

    def _record_failure(self) -> None:
        with self._lock:
            self._total_calls += 1
            self._total_failures += 1
            self._failures += 1
            self._last_failure = self._clock()
            self._last_failure_at = datetime.now(timezone.utc)

            if self._state == CircuitState.HALF_OPEN:
                self._transition(CircuitState.OPEN)
            elif (
                self._state == CircuitState.CLOSED
                and self._failures >= self.config.failure_threshold
            ):
                self._transition(CircuitState.OPEN)

    def _record_success(self) -> None:
        with self._lock:
            self._total_calls += 1
            self._total_successes += 1

            if self._state == CircuitState.HALF_OPEN:
                self._successes += 1
                if self._successes >= self.config.success_threshold:
                    self._transition(CircuitState.CLOSED)
                    self._failures = 0
                    self._successes = 0
                    self._request_count = 0
            elif self._state == CircuitState.CLOSED:
                self._failures = 0

    # --- public API ---

    def execute(self, operation: Callable[[], Any], ctx: ExecutionContext | None = None) -> Any:
        """Run `operation` through the breaker and return its value.

        Raises a circuit-open RobogoError without calling `operation` when
        the breaker rejects the request, and a timeout error when `ctx` is
        already cancelled or expired.
        """
        if ctx is not None and ctx.done:
            raise self._context_error(ctx)

        with self._lock:
            allowed = self._allow_request()
            state = self._state
            failures = self._failures
            if not allowed:
                self._rejected += 1

        if not allowed:
            raise circuit_breaker_error(self.name, state.value).with_details(
                {"failures": failures}
            )

        try:
            value = operation()
        except Exception:
            self._record_failure()
            raise
        self._record_success()
        return value

    def get_state(self) -> CircuitState:
        with self._lock:
            return self._state

    def get_metrics(self) -> CircuitBreakerMetrics:
        with self._lock:
            return CircuitBreakerMetrics(
                state=self._state,
                failures=self._failures,
                successes=self._successes,
                request_count=self._request_count,
                total_calls=self._total_calls,
                total_failures=self._total_failures,
                total_successes=self._total_successes,
                rejected_calls=self._rejected,
                state_changes=self._state_changes,
                last_failure_time=self._last_failure_at,
            )

    def format_metrics(self) -> str:
        metrics = self.get_metrics()
        last_failure = "never"
        if metrics.last_failure_time is not None:
            age = (datetime.now(timezone.utc) - metrics.last_failure_time).total_seconds()
            last_failure = f"{format_duration(max(0.0, age))} ago"
        return (
            f"Circuit breaker '{self.name}': state={metrics.state.value} "
            f"failures={metrics.failures} successes={metrics.successes} "
            f"requests={metrics.request_count} rejected={metrics.rejected_calls} "
            f"last_failure={last_failure}"
        )

    def reset(self) -> None:
        """Force the breaker back to closed with cleared counters."""
        with self._lock:
            self._transition(CircuitState.CLOSED)
            self._failures = 0
            self._successes = 0
            self._request_count = 0
            self._last_failure = None

    def _context_error(self, ctx: ExecutionContext) -> RobogoError:
        return (
            ErrorBuilder(ErrorType.TIMEOUT, f"circuit breaker '{self.name}' call {ctx.reason}")
            .with_details({"operation": self.name, "reason": ctx.reason})
            .build()
        )


class CircuitBreakerRegistry:
    """One breaker per protected operation, shared across a run."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._breakers: dict[str, CircuitBreaker] = {}

    def get(self, key: str, config: CircuitBreakerConfig | None = None) -> CircuitBreaker:
        """Return the breaker for `key`, creating it from `config` on first use."""
        with self._lock:
            breaker = self._breakers.get(key)
            if breaker is None:
                breaker = CircuitBreaker(config, name=key, clock=self._clock)
                self._breakers[key] = breaker
            return breaker

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._breakers)

    def reset_all(self) -> None:
        with self._lock:
            breakers = list(self._breakers.values())
        for breaker in breakers:
            breaker.reset()

    def __len__(self) -> int:
        with self._lock:
            return len(self._breakers)
