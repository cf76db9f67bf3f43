"""Recovery strategy dispatch around a single step action."""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from typing import Any, Callable

from robogo.core.circuit_breaker import CircuitBreaker
from robogo.core.context import ExecutionContext
from robogo.core.errors import recovery_error
from robogo.core.models import RecoveryConfig, RecoveryStrategy
from robogo.core.retry import RetryExecutor, RetryPolicy

logger = logging.getLogger(__name__)


@dataclass
class RecoveryOutcome:
    """Value returned by the protected operation plus what recovery did."""

    value: Any
    strategy: RecoveryStrategy
    recovered_from: BaseException | None = None
    used_fallback: bool = False


class RecoveryExecutor:
    """Apply a RecoveryConfig to an operation.

    - none: call directly, errors propagate unchanged
    - fallback: on error, return the fallback's result instead
    - skip: on error, swallow it when skip_on_error is set
    - retry: RetryExecutor from the nested retry config
      (default: exponential, 3 attempts, 1s initial, 30s cap, jitter)
    - circuit: CircuitBreaker from the nested config (default: 5/3/30s/10)
    """

    def __init__(
        self,
        config: RecoveryConfig | None = None,
        *,
        name: str = "operation",
        circuit_breaker: CircuitBreaker | None = None,
        verbose: bool = False,
        rng: random.Random | None = None,
    ) -> None:
        self.config = config or RecoveryConfig(strategy=RecoveryStrategy.RETRY)
        self.name = name
        policy = RetryPolicy.from_config(self.config.retry) if self.config.retry else RetryPolicy()
        self.retry_executor = RetryExecutor(policy, verbose=verbose, rng=rng)
        self._circuit_breaker = circuit_breaker

    @property
    def circuit_breaker(self) -> CircuitBreaker:
        if self._circuit_breaker is None:
            self._circuit_breaker = CircuitBreaker(self.config.circuit_breaker, name=self.name)
        return self._circuit_breaker

    def execute_with_outcome(
        self,
        operation: Callable[[], Any],
        fallback: Callable[[], Any] | None = None,
        ctx: ExecutionContext | None = None,
    ) -> RecoveryOutcome:
        strategy = self.config.strategy

        if strategy == RecoveryStrategy.FALLBACK:
            try:
                return RecoveryOutcome(operation(), strategy)
            except Exception as exc:
                if fallback is None:
                    raise
                logger.warning(f"'{self.name}' failed, using fallback: {exc}")
                try:
                    value = fallback()
                except Exception as fallback_exc:
                    raise recovery_error(self.name, strategy.value, fallback_exc).with_details(
                        {"original_error": str(exc)}
                    ) from fallback_exc
                return RecoveryOutcome(value, strategy, recovered_from=exc, used_fallback=True)

        if strategy == RecoveryStrategy.SKIP:
            try:
                return RecoveryOutcome(operation(), strategy)
            except Exception as exc:
                if not self.config.skip_on_error:
                    raise
                logger.warning(f"'{self.name}' failed, error skipped: {exc}")
                return RecoveryOutcome(None, strategy, recovered_from=exc)

        if strategy == RecoveryStrategy.RETRY:
            return RecoveryOutcome(self.retry_executor.execute(operation, ctx), strategy)

        if strategy == RecoveryStrategy.CIRCUIT:
            return RecoveryOutcome(self.circuit_breaker.execute(operation, ctx), strategy)

        return RecoveryOutcome(operation(), RecoveryStrategy.NONE)

    def execute(
        self,
        operation: Callable[[], Any],
        fallback: Callable[[], Any] | None = None,
        ctx: ExecutionContext | None = None,
    ) -> Any:
        return self.execute_with_outcome(operation, fallback, ctx).value
