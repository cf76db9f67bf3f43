"""Retry delay calculation."""

from __future__ import annotations

import random

from robogo.core.models import BackoffStrategy

JITTER_FRACTION = 0.25


def _as_strategy(strategy: BackoffStrategy | str) -> BackoffStrategy:
    if isinstance(strategy, BackoffStrategy):
        return strategy
    try:
        return BackoffStrategy(str(strategy).lower())
    except ValueError:
        return BackoffStrategy.FIXED


def calculate_delay(
    base: float,
    attempt: int,
    strategy: BackoffStrategy | str = BackoffStrategy.FIXED,
    max_delay: float = 0.0,
    jitter: bool = False,
    rng: random.Random | None = None,
) -> float:
    """Delay in seconds before the retry that follows `attempt` (1-based).

    fixed: base; linear: base * attempt; exponential: base * 2**(attempt - 1).
    The cap is applied before jitter, and jitter only ever adds up to 25%.
    Unknown strategies behave as fixed.
    """
    attempt = max(1, attempt)
    strategy = _as_strategy(strategy)

    if strategy == BackoffStrategy.LINEAR:
        delay = base * attempt
    elif strategy == BackoffStrategy.EXPONENTIAL:
        delay = base * (2 ** (attempt - 1))
    else:
        delay = base

    if max_delay > 0 and delay > max_delay:
        delay = max_delay

    if jitter and delay > 0:
        # random() is in [0, 1), so the result stays below delay * 1.25
        r = rng if rng is not None else random
        delay += r.random() * delay * JITTER_FRACTION

    return delay
