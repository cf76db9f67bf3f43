"""Core modules for the Robogo execution engine."""

from robogo.core.actions import ActionRegistry, default_registry
from robogo.core.circuit_breaker import CircuitBreaker, CircuitBreakerRegistry, CircuitState
from robogo.core.config import RunnerConfig, load_runner_config
from robogo.core.context import ExecutionContext
from robogo.core.dependencies import DependencyAnalyzer, StepGroup
from robogo.core.errors import ErrorBuilder, ErrorType, RobogoError
from robogo.core.loader import load_test_case, load_test_cases
from robogo.core.models import (
    ParallelConfig,
    RecoveryConfig,
    RetryConfig,
    Step,
    StepResult,
    StepStatus,
    TestCase,
    TestResult,
    TestSuiteResult,
)
from robogo.core.recovery import RecoveryExecutor
from robogo.core.retry import RetryExecutor, RetryPolicy
from robogo.core.runner import TestRunner

__all__ = [
    "ActionRegistry",
    "CircuitBreaker",
    "CircuitBreakerRegistry",
    "CircuitState",
    "DependencyAnalyzer",
    "ErrorBuilder",
    "ErrorType",
    "ExecutionContext",
    "ParallelConfig",
    "RecoveryConfig",
    "RecoveryExecutor",
    "RetryConfig",
    "RetryExecutor",
    "RetryPolicy",
    "RobogoError",
    "RunnerConfig",
    "Step",
    "StepGroup",
    "StepResult",
    "StepStatus",
    "TestCase",
    "TestResult",
    "TestRunner",
    "TestSuiteResult",
    "default_registry",
    "load_runner_config",
    "load_test_case",
    "load_test_cases",
]
