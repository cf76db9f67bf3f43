# conftest.py - Shared pytest fixtures for all tests
"""Shared pytest fixtures for the Robogo test suite.

Provides:
- A controllable monotonic clock for circuit breaker tests
- Runner and registry factories with deterministic retry timing
- Helpers for writing YAML test-case files
"""

from __future__ import annotations

import random
import textwrap
from pathlib import Path
from typing import Any, Callable

import pytest

from robogo.core.actions import ActionRegistry, default_registry
from robogo.core.config import RunnerConfig
from robogo.core.models import ParallelConfig, Step, TestCase
from robogo.core.runner import TestRunner


# =============================================================================
# Clock and Randomness Fixtures
# =============================================================================


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    """Create a fake monotonic clock starting at t=1000.

    Pass it to CircuitBreaker or CircuitBreakerRegistry to move time by hand
    instead of sleeping through open-state timeouts.

    Returns:
        FakeClock that only advances when told to.

    Example:
        def test_half_open(clock):
            breaker = CircuitBreaker(config, clock=clock)
            clock.advance(config.timeout)
    """
    return FakeClock()


@pytest.fixture
def rng() -> random.Random:
    """Create a seeded random generator for deterministic backoff jitter.

    Returns:
        random.Random seeded with 42.
    """
    return random.Random(42)


# =============================================================================
# Runner Fixtures
# =============================================================================


@pytest.fixture
def registry() -> ActionRegistry:
    """Create a fresh registry holding the built-in actions.

    Each test gets its own registry, so registering or overriding actions
    never leaks between tests.

    Returns:
        ActionRegistry with log, sleep, get_time, get_random, length,
        assert and fail registered.

    Example:
        def test_custom_action(registry, make_runner):
            registry.register("echo", lambda args, options, ctx: args[0])
    """
    return default_registry()


@pytest.fixture
def make_runner(registry: ActionRegistry, rng: random.Random) -> Callable[..., TestRunner]:
    """Build a TestRunner sharing the fixture registry.

    Keyword arguments are validated as a RunnerConfig.

    Returns:
        Factory taking RunnerConfig fields and returning a TestRunner.

    Example:
        def test_x(make_runner):
            runner = make_runner(parallel={"enabled": True, "steps": True})
    """

    def _make(**config: Any) -> TestRunner:
        return TestRunner(RunnerConfig.model_validate(config), registry, rng=rng)

    return _make


@pytest.fixture
def parallel_config() -> ParallelConfig:
    """Create a config with step parallelism on and four workers.

    Returns:
        ParallelConfig(enabled=True, steps=True, max_concurrency=4).

    Example:
        def test_grouping(parallel_config):
            groups = DependencyAnalyzer(parallel_config).group_steps(steps)
    """
    return ParallelConfig(enabled=True, steps=True, max_concurrency=4)


# =============================================================================
# Model Builders and Files
# =============================================================================


def make_step(name: str, action: str = "log", *args: Any, **fields: Any) -> Step:
    """Shorthand Step constructor used across tests."""
    return Step.model_validate({"name": name, "action": action, "args": list(args), **fields})


def make_case(steps: list[dict[str, Any]], **fields: Any) -> TestCase:
    return TestCase.model_validate({"testcase": fields.pop("name", "case"), "steps": steps, **fields})


@pytest.fixture
def write_yaml(tmp_path: Path) -> Callable[[str, str], Path]:
    """Write dedented YAML into tmp_path.

    Returns:
        Function taking (file name, YAML text) and returning the file path.

    Example:
        def test_load(write_yaml):
            path = write_yaml("case.yaml", "testcase: x")
    """

    def _write(name: str, content: str) -> Path:
        path = tmp_path / name
        path.write_text(textwrap.dedent(content).lstrip(), encoding="utf-8")
        return path

    return _write
