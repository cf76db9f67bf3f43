"""Data models for Robogo test cases and results.

Uses Pydantic for schema-enforced test definitions loaded from YAML.
"""

from __future__ import annotations

import os
import re
from enum import Enum
from typing import Any

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    field_validator,
    model_validator,
)

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ns|us|µs|ms|s|m|h)")
_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}


def parse_duration(value: Any) -> float:
    """Normalise a duration to float seconds.

    Accepts numbers (seconds) and strings such as "500ms", "1s", "2m" or "1m30s".
    """
    if value is None:
        return 0.0
    if isinstance(value, bool):
        raise ValueError(f"invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip()
    if not text:
        return 0.0
    try:
        return float(text)
    except ValueError:
        pass
    pos = 0
    total = 0.0
    for match in _DURATION_PART.finditer(text):
        if match.start() != pos:
            raise ValueError(f"invalid duration: {value!r}")
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    if pos == 0 or pos != len(text):
        raise ValueError(f"invalid duration: {value!r}")
    return total


def format_duration(seconds: float) -> str:
    """Render seconds compactly: 250ms, 1.5s, 2m5s."""
    if seconds < 1:
        return f"{seconds * 1000:.0f}ms"
    if seconds < 60:
        return f"{seconds:.3g}s"
    minutes, secs = divmod(seconds, 60)
    return f"{int(minutes)}m{secs:.3g}s"


class BackoffStrategy(str, Enum):
    """Delay growth between retry attempts."""

    FIXED = "fixed"
    LINEAR = "linear"
    EXPONENTIAL = "exponential"


class RecoveryStrategy(str, Enum):
    """How a failing step action is recovered."""

    NONE = "none"
    FALLBACK = "fallback"
    SKIP = "skip"
    RETRY = "retry"
    CIRCUIT = "circuit"


class StepStatus(str, Enum):
    """Outcome of a step or test case."""

    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"


RETRY_CONDITIONS = frozenset({"5xx", "4xx", "timeout", "connection_error", "rate_limit", "all"})
DEFAULT_RETRY_CONDITIONS = ("5xx", "timeout", "connection_error")
EXPECTATION_TYPES = (
    "any",
    "contains",
    "not_contains",
    "matches",
    "not_matches",
    "exact",
    "starts_with",
    "ends_with",
)


# --- Policy Models ---


class RetryConfig(BaseModel):
    """Retry policy for a single step."""

    attempts: int = Field(default=1, ge=1)
    delay: float = Field(default=1.0, ge=0)
    backoff: BackoffStrategy = BackoffStrategy.FIXED
    conditions: list[str] = Field(default_factory=list)
    max_delay: float = Field(default=0.0, ge=0)
    jitter: bool = False

    @field_validator("delay", "max_delay", mode="before")
    @classmethod
    def _parse_duration(cls, v: Any) -> float:
        return parse_duration(v)

    @field_validator("backoff", mode="before")
    @classmethod
    def _normalise_backoff(cls, v: Any) -> Any:
        if v is None or v == "":
            return BackoffStrategy.FIXED
        return v.lower() if isinstance(v, str) else v

    @field_validator("conditions")
    @classmethod
    def _validate_conditions(cls, v: list[str]) -> list[str]:
        normalised = [c.lower() for c in v]
        unknown = [c for c in normalised if c not in RETRY_CONDITIONS]
        if unknown:
            raise ValueError(
                f"invalid retry condition(s) {unknown} (valid: {sorted(RETRY_CONDITIONS)})"
            )
        return normalised

    @model_validator(mode="after")
    def _check_delay_cap(self) -> "RetryConfig":
        if self.max_delay > 0 and self.delay > self.max_delay:
            raise ValueError("retry delay cannot be greater than max_delay")
        return self


def default_retry_config() -> RetryConfig:
    """Step-level retry defaults: a single attempt, no retries."""
    return RetryConfig(
        attempts=1,
        delay=1.0,
        backoff=BackoffStrategy.FIXED,
        conditions=list(DEFAULT_RETRY_CONDITIONS),
        max_delay=0.0,
        jitter=False,
    )


class CircuitBreakerConfig(BaseModel):
    """Thresholds for a circuit breaker."""

    failure_threshold: int = Field(default=5, ge=1)
    success_threshold: int = Field(default=3, ge=1)
    timeout: float = Field(default=30.0, ge=0)
    max_requests: int = Field(default=10, ge=1)

    @field_validator("timeout", mode="before")
    @classmethod
    def _parse_timeout(cls, v: Any) -> float:
        return parse_duration(v)

    @model_validator(mode="after")
    def _check_probe_budget(self) -> "CircuitBreakerConfig":
        # Otherwise a half-open breaker could never collect enough successes to close
        if self.success_threshold > self.max_requests:
            raise ValueError("success_threshold cannot be greater than max_requests")
        return self


class RecoveryConfig(BaseModel):
    """Recovery policy for a single step."""

    model_config = ConfigDict(populate_by_name=True)

    strategy: RecoveryStrategy = RecoveryStrategy.NONE
    fallback_action: str = ""
    skip_on_error: bool = False
    retry: RetryConfig | None = Field(
        default=None, validation_alias=AliasChoices("retry", "retry_config")
    )
    circuit_breaker: CircuitBreakerConfig | None = Field(
        default=None,
        validation_alias=AliasChoices("circuit_breaker", "circuit_breaker_config"),
    )

    @field_validator("strategy", mode="before")
    @classmethod
    def _normalise_strategy(cls, v: Any) -> Any:
        if v is None or v == "":
            return RecoveryStrategy.NONE
        return v.lower() if isinstance(v, str) else v

    @model_validator(mode="after")
    def _check_fallback(self) -> "RecoveryConfig":
        if self.strategy == RecoveryStrategy.FALLBACK and not self.fallback_action:
            raise ValueError("fallback strategy requires fallback_action")
        return self


def default_max_concurrency() -> int:
    return max(1, min(os.cpu_count() or 1, 100))


class ParallelConfig(BaseModel):
    """Which feature classes may run concurrently, and how widely."""

    enabled: bool = False
    max_concurrency: int = Field(default_factory=default_max_concurrency, ge=1, le=100)
    test_cases: bool = True
    steps: bool = False
    http_requests: bool = False
    database_operations: bool = False
    file_operations: bool = False

    @field_validator("max_concurrency", mode="before")
    @classmethod
    def _fill_concurrency(cls, v: Any) -> Any:
        # Unset or non-positive falls back to the CPU-derived default
        if v is None or (isinstance(v, int) and not isinstance(v, bool) and v <= 0):
            return default_max_concurrency()
        return v


def merge_parallel_config(custom: ParallelConfig | None) -> ParallelConfig:
    """Merge a custom parallel config with defaults.

    Enabling parallelism always enables test-case level concurrency.
    """
    if custom is None:
        return ParallelConfig()
    if custom.enabled and not custom.test_cases:
        return custom.model_copy(update={"test_cases": True})
    return custom


# --- Step Models ---


class ErrorExpectation(BaseModel):
    """Structured expect_error matcher."""

    type: str = "any"
    message: str = ""

    @field_validator("type", mode="before")
    @classmethod
    def _normalise_type(cls, v: Any) -> str:
        value = str(v or "any").lower()
        if value not in EXPECTATION_TYPES:
            raise ValueError(
                f"unsupported error type: {value} (supported: {', '.join(EXPECTATION_TYPES)})"
            )
        return value


class ConditionalBlock(BaseModel):
    """if: condition with then/else bodies."""

    model_config = ConfigDict(populate_by_name=True)

    condition: str
    then: list["Step"] = Field(default_factory=list)
    else_: list["Step"] = Field(default_factory=list, alias="else")


class LoopBlock(BaseModel):
    """for/while: condition (or iteration spec) with a body."""

    condition: str
    steps: list["Step"] = Field(default_factory=list)
    max_iterations: int = Field(default=1000, ge=1)


class Step(BaseModel):
    """A single named action invocation within a test case."""

    model_config = ConfigDict(populate_by_name=True)

    name: str
    action: str = ""
    args: list[Any] = Field(default_factory=list)
    options: dict[str, Any] = Field(default_factory=dict)
    result: str = ""
    retry: RetryConfig | None = None
    recovery: RecoveryConfig | None = None
    if_: ConditionalBlock | None = Field(default=None, alias="if")
    for_: LoopBlock | None = Field(default=None, alias="for")
    while_: LoopBlock | None = Field(default=None, alias="while")
    continue_on_failure: bool = Field(
        default=False, validation_alias=AliasChoices("continue_on_failure", "continue")
    )
    expect_error: str | ErrorExpectation | None = None
    skip: bool | str | None = None

    @field_validator("name")
    @classmethod
    def _validate_name(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("step name must not be empty")
        return v

    @model_validator(mode="after")
    def _check_body(self) -> "Step":
        flows = [f for f in (self.if_, self.for_, self.while_) if f is not None]
        if len(flows) > 1:
            raise ValueError(f"step '{self.name}' may use only one of if/for/while")
        if not flows and not self.action:
            raise ValueError(f"step '{self.name}' must have an action or a control-flow block")
        return self

    @property
    def has_control_flow(self) -> bool:
        return self.if_ is not None or self.for_ is not None or self.while_ is not None


ConditionalBlock.model_rebuild()
LoopBlock.model_rebuild()


# --- Test Case Models ---


class SecretConfig(BaseModel):
    """A secret value, inline or read from a file."""

    value: str | None = None
    file: str | None = None
    mask_output: bool = True

    @model_validator(mode="after")
    def _check_source(self) -> "SecretConfig":
        if (self.value is None) == (self.file is None):
            raise ValueError("secret must define exactly one of value or file")
        return self


class TestVariables(BaseModel):
    """Variables and secrets declared by a test case."""

    __test__ = False

    vars: dict[str, Any] = Field(default_factory=dict)
    secrets: dict[str, SecretConfig] = Field(default_factory=dict)


class TestCase(BaseModel):
    """A named, ordered sequence of steps."""

    __test__ = False
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(validation_alias=AliasChoices("testcase", "name"))
    description: str = ""
    variables: TestVariables = Field(default_factory=TestVariables)
    steps: list[Step] = Field(default_factory=list)
    parallel: ParallelConfig | None = None
    timeout: float | None = None
    skip: bool | str | None = None
    source_file: str | None = Field(default=None, exclude=True)

    @field_validator("timeout", mode="before")
    @classmethod
    def _parse_timeout(cls, v: Any) -> float | None:
        return None if v is None else parse_duration(v)

    @model_validator(mode="after")
    def _check_unique_names(self) -> "TestCase":
        seen: set[str] = set()
        for step in self.steps:
            if step.name in seen:
                raise ValueError(f"duplicate step name '{step.name}' in test case '{self.name}'")
            seen.add(step.name)
        return self


# --- Result Models ---


class StepResult(BaseModel):
    """Outcome of one executed step."""

    model_config = ConfigDict(frozen=True)

    name: str
    action: str = ""
    status: StepStatus
    duration: float = 0.0
    output: str = ""
    error: str = ""
    error_type: str | None = None
    warnings: list[str] = Field(default_factory=list)
    skip_reason: str = ""
    metadata: dict[str, Any] = Field(default_factory=dict)


class TestResult(BaseModel):
    """Outcome of one test case."""

    __test__ = False
    model_config = ConfigDict(frozen=True)

    name: str
    status: StepStatus
    duration: float = 0.0
    step_results: list[StepResult] = Field(default_factory=list)
    error: str = ""
    skip_reason: str = ""

    @computed_field  # type: ignore[prop-decorator]
    @property
    def passed_steps(self) -> int:
        return sum(1 for r in self.step_results if r.status == StepStatus.PASSED)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def failed_steps(self) -> int:
        return sum(1 for r in self.step_results if r.status == StepStatus.FAILED)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def skipped_steps(self) -> int:
        return sum(1 for r in self.step_results if r.status == StepStatus.SKIPPED)

    @property
    def total_steps(self) -> int:
        return len(self.step_results)


class TestSuiteResult(BaseModel):
    """Aggregate outcome of several test cases."""

    __test__ = False
    model_config = ConfigDict(frozen=True)

    name: str = "suite"
    duration: float = 0.0
    results: list[TestResult] = Field(default_factory=list)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def passed(self) -> int:
        return sum(1 for r in self.results if r.status == StepStatus.PASSED)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if r.status == StepStatus.FAILED)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def skipped(self) -> int:
        return sum(1 for r in self.results if r.status == StepStatus.SKIPPED)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total_steps(self) -> int:
        return sum(r.total_steps for r in self.results)

    @property
    def status(self) -> StepStatus:
        return StepStatus.FAILED if self.failed else StepStatus.PASSED
