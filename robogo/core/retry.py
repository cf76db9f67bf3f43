"""Retry executor with configurable backoff.

Retries an operation until it succeeds, the attempt budget is spent, or the
governing ExecutionContext is cancelled. Whether a failure is retried is
decided in this order:
1. A custom `should_retry(attempt, max_attempts)` method on the exception
2. The `retryable` flag of a RobogoError in the cause chain
3. A substring heuristic for transient failures
"""

from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable

from robogo.core.backoff import calculate_delay
from robogo.core.context import ExecutionContext
from robogo.core.errors import ErrorBuilder, ErrorType, RobogoError, get_robogo_error
from robogo.core.models import (
    DEFAULT_RETRY_CONDITIONS,
    BackoffStrategy,
    RetryConfig,
    format_duration,
)

logger = logging.getLogger(__name__)

TRANSIENT_PATTERNS = (
    "connection refused",
    "connection reset",
    "connection timeout",
    "timeout",
    "timed out",
    "temporary failure",
    "service unavailable",
    "too many requests",
    "rate limit",
    "circuit breaker",
    "deadline exceeded",
    "i/o timeout",
    "network is unreachable",
    "no route to host",
)


@dataclass
class RetryPolicy:
    """Configuration for retry behavior."""

    max_attempts: int = 3
    initial_delay: float = 1.0
    max_delay: float = 30.0
    strategy: BackoffStrategy = BackoffStrategy.EXPONENTIAL
    jitter: bool = True

    @classmethod
    def from_config(cls, config: RetryConfig) -> RetryPolicy:
        return cls(
            max_attempts=config.attempts,
            initial_delay=config.delay,
            max_delay=config.max_delay,
            strategy=config.backoff,
            jitter=config.jitter,
        )

    def get_delay(self, attempt: int, rng: random.Random | None = None) -> float:
        return calculate_delay(
            self.initial_delay, attempt, self.strategy, self.max_delay, self.jitter, rng
        )


@dataclass
class RetryContext:
    """Bookkeeping for a single execute() call."""

    max_attempts: int
    attempt: int = 0
    delay: float = 0.0
    total_time: float = 0.0
    last_error: BaseException | None = None
    start_time: float = field(default_factory=time.monotonic)


@dataclass
class RetryResult:
    """Outcome of a retried operation."""

    success: bool
    attempts: int
    total_time: float
    value: Any = None
    last_error: BaseException | None = None
    retry_logs: list[str] = field(default_factory=list)


def is_transient_error(err: BaseException | str | None) -> bool:
    if err is None:
        return False
    text = str(err).lower()
    return any(pattern in text for pattern in TRANSIENT_PATTERNS)


def matches_retry_conditions(
    error_text: str,
    output_text: str = "",
    conditions: Iterable[str] | None = None,
) -> bool:
    """Decide whether a failed step matches any of its retry conditions.

    Empty conditions default to 5xx, timeout and connection_error.
    """
    conditions = list(conditions or DEFAULT_RETRY_CONDITIONS)
    err = (error_text or "").lower()
    out = (output_text or "").lower()

    for condition in conditions:
        condition = condition.lower()
        if condition == "all":
            return True
        if condition == "5xx" and any(code in out for code in ("500", "502", "503", "504")):
            return True
        if condition == "4xx" and "429" in out:
            return True
        if condition == "timeout" and ("timeout" in err or "timeout" in out):
            return True
        if condition == "connection_error" and any(
            word in err for word in ("connection", "network", "refused", "unreachable")
        ):
            return True
        if condition == "rate_limit" and ("429" in out or "rate limit" in err):
            return True
    return False


def format_retry_log(
    attempt: int,
    total_attempts: int,
    delay: float,
    err: BaseException | str | None,
    verbose: bool = False,
) -> str:
    if not verbose:
        return f"Attempt {attempt}/{total_attempts}"
    return f"Attempt {attempt}/{total_attempts} (delay: {format_duration(delay)}): {err}"


def format_retry_summary(result: RetryResult, verbose: bool = False) -> str:
    if result.success:
        if verbose:
            return (
                f"Success after {result.attempts} attempts "
                f"(total time: {format_duration(result.total_time)})"
            )
        return f"Success after {result.attempts} attempts"

    if verbose:
        return (
            f"Failed after {result.attempts} attempts "
            f"(total time: {format_duration(result.total_time)}): {result.last_error}"
        )
    return f"Failed after {result.attempts} attempts: {result.last_error}"


class RetryExecutor:
    """Run an operation under a RetryPolicy.

    Non-retryable failures propagate unchanged. Running out of attempts
    raises an execution error carrying `attempts` and `total_time` details;
    cancellation or deadline expiry raises a timeout error.
    """

    def __init__(
        self,
        policy: RetryPolicy | None = None,
        *,
        verbose: bool = False,
        rng: random.Random | None = None,
    ) -> None:
        self.policy = policy or RetryPolicy()
        self.verbose = verbose
        self._rng = rng

    def should_retry(self, err: BaseException, retry_ctx: RetryContext) -> bool:
        if retry_ctx.attempt >= retry_ctx.max_attempts:
            return False

        custom = getattr(err, "should_retry", None)
        if callable(custom):
            return bool(custom(retry_ctx.attempt, retry_ctx.max_attempts))

        robogo_err = get_robogo_error(err)
        if robogo_err is not None:
            return robogo_err.retryable

        return is_transient_error(err)

    def _is_retryable_kind(self, err: BaseException, retry_ctx: RetryContext) -> bool:
        """Retry eligibility ignoring the attempt budget."""
        probe = RetryContext(max_attempts=retry_ctx.attempt + 1, attempt=retry_ctx.attempt)
        return self.should_retry(err, probe)

    def execute_with_result(
        self,
        operation: Callable[[], Any],
        ctx: ExecutionContext | None = None,
    ) -> RetryResult:
        """Run `operation` with retries and report the outcome without raising."""
        ctx = ctx or ExecutionContext()
        retry_ctx = RetryContext(max_attempts=max(1, self.policy.max_attempts))
        logs: list[str] = []

        while True:
            retry_ctx.attempt += 1
            try:
                value = operation()
            except Exception as exc:
                retry_ctx.last_error = exc
                retry_ctx.total_time = time.monotonic() - retry_ctx.start_time

                if not self.should_retry(exc, retry_ctx):
                    final: BaseException = exc
                    if retry_ctx.attempt >= retry_ctx.max_attempts and self._is_retryable_kind(
                        exc, retry_ctx
                    ):
                        final = self._exhausted_error(exc, retry_ctx)
                    return self._result(False, retry_ctx, logs, error=final)

                if ctx.done:
                    return self._result(
                        False, retry_ctx, logs, error=self._context_error(ctx, retry_ctx)
                    )

                delay = self.policy.get_delay(retry_ctx.attempt, self._rng)
                retry_ctx.delay = delay
                line = format_retry_log(
                    retry_ctx.attempt, retry_ctx.max_attempts, delay, exc, self.verbose
                )
                logs.append(line)
                logger.info(f"Retrying after failure: {line}")

                if ctx.wait(delay):
                    return self._result(
                        False, retry_ctx, logs, error=self._context_error(ctx, retry_ctx)
                    )
                continue

            retry_ctx.total_time = time.monotonic() - retry_ctx.start_time
            return self._result(True, retry_ctx, logs, value=value)

    def execute(self, operation: Callable[[], Any], ctx: ExecutionContext | None = None) -> Any:
        """Run `operation` with retries; return its value or raise the final error."""
        result = self.execute_with_result(operation, ctx)
        if result.attempts > 1:
            summary = format_retry_summary(result, self.verbose)
            if result.success:
                logger.info(summary)
            else:
                logger.warning(summary)
        if not result.success:
            raise result.last_error  # type: ignore[misc]
        return result.value

    def _result(
        self,
        success: bool,
        retry_ctx: RetryContext,
        logs: list[str],
        *,
        value: Any = None,
        error: BaseException | None = None,
    ) -> RetryResult:
        return RetryResult(
            success=success,
            attempts=retry_ctx.attempt,
            total_time=retry_ctx.total_time,
            value=value,
            last_error=error,
            retry_logs=logs,
        )

    def _exhausted_error(self, err: BaseException, retry_ctx: RetryContext) -> RobogoError:
        return (
            ErrorBuilder(
                ErrorType.EXECUTION,
                f"operation failed after {retry_ctx.attempt} attempts",
            )
            .with_cause(err)
            .with_details(
                {
                    "attempts": retry_ctx.attempt,
                    "total_time": retry_ctx.total_time,
                    "last_delay": retry_ctx.delay,
                }
            )
            .add_breadcrumb(f"Retry attempt {retry_ctx.attempt}/{retry_ctx.max_attempts} failed")
            .build()
        )

    def _context_error(self, ctx: ExecutionContext, retry_ctx: RetryContext) -> RobogoError:
        return (
            ErrorBuilder(ErrorType.TIMEOUT, "operation cancelled or timed out during retry")
            .with_cause(retry_ctx.last_error)
            .with_details(
                {
                    "attempts": retry_ctx.attempt,
                    "total_time": retry_ctx.total_time,
                    "reason": ctx.reason,
                }
            )
            .add_breadcrumb(f"Context {ctx.reason or 'cancelled'} after {retry_ctx.attempt} attempts")
            .build()
        )
