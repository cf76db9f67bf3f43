"""Structured error model for the Robogo engine.

Every failure raised by the execution core is a RobogoError:
- Typed (validation, execution, network, ...) with catalog-derived severity
- Retryable/recoverable flags seeded from the catalog, overridable per error
- Provenance (action, step, test case) and free-form details
- Diagnostic context: correlation id, breadcrumbs, variable snapshot, call stack

Errors are built once through ErrorBuilder. Enrichment methods on RobogoError
return new copies so an error can be shared safely between worker threads.
"""

from __future__ import annotations

import errno
import inspect
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping

MAX_STACK_DEPTH = 20
MAX_DISPLAY_FRAMES = 10


class ErrorType(str, Enum):
    """Error taxonomy."""

    VALIDATION = "validation"
    EXECUTION = "execution"
    CONFIGURATION = "configuration"
    NETWORK = "network"
    DATABASE = "database"
    TIMEOUT = "timeout"
    ASSERTION = "assertion"
    MESSAGING = "messaging"
    TEMPLATE = "template"
    SECURITY = "security"
    FILESYSTEM = "filesystem"


class ErrorSeverity(str, Enum):
    """Severity level of an error."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


@dataclass(frozen=True)
class ErrorCategory:
    """Catalog metadata for one error type."""

    type: ErrorType
    severity: ErrorSeverity
    retryable: bool
    recoverable: bool
    user_action: str
    tech_action: str


ERROR_CATALOG: Mapping[ErrorType, ErrorCategory] = MappingProxyType(
    {
        ErrorType.VALIDATION: ErrorCategory(
            ErrorType.VALIDATION,
            ErrorSeverity.LOW,
            retryable=False,
            recoverable=False,
            user_action="Fix the invalid input and retry",
            tech_action="Validate input before processing",
        ),
        ErrorType.EXECUTION: ErrorCategory(
            ErrorType.EXECUTION,
            ErrorSeverity.MEDIUM,
            retryable=True,
            recoverable=True,
            user_action="Check configuration and retry",
            tech_action="Implement retry with exponential backoff",
        ),
        ErrorType.CONFIGURATION: ErrorCategory(
            ErrorType.CONFIGURATION,
            ErrorSeverity.HIGH,
            retryable=False,
            recoverable=False,
            user_action="Fix the configuration and restart",
            tech_action="Validate configuration at startup",
        ),
        ErrorType.NETWORK: ErrorCategory(
            ErrorType.NETWORK,
            ErrorSeverity.MEDIUM,
            retryable=True,
            recoverable=True,
            user_action="Check network connectivity and retry",
            tech_action="Implement exponential backoff retry",
        ),
        ErrorType.DATABASE: ErrorCategory(
            ErrorType.DATABASE,
            ErrorSeverity.HIGH,
            retryable=True,
            recoverable=True,
            user_action="Check database connection and retry",
            tech_action="Implement connection pooling and retry",
        ),
        ErrorType.TIMEOUT: ErrorCategory(
            ErrorType.TIMEOUT,
            ErrorSeverity.MEDIUM,
            retryable=True,
            recoverable=True,
            user_action="Increase timeout value and retry",
            tech_action="Implement adaptive timeout strategies",
        ),
        ErrorType.ASSERTION: ErrorCategory(
            ErrorType.ASSERTION,
            ErrorSeverity.LOW,
            retryable=False,
            recoverable=False,
            user_action="Fix the test assertion and retry",
            tech_action="Validate assertion logic",
        ),
        ErrorType.MESSAGING: ErrorCategory(
            ErrorType.MESSAGING,
            ErrorSeverity.HIGH,
            retryable=True,
            recoverable=True,
            user_action="Check message broker connection and retry",
            tech_action="Implement message broker retry and circuit breaker",
        ),
        ErrorType.TEMPLATE: ErrorCategory(
            ErrorType.TEMPLATE,
            ErrorSeverity.MEDIUM,
            retryable=False,
            recoverable=True,
            user_action="Fix template syntax and retry",
            tech_action="Validate template before processing",
        ),
        ErrorType.SECURITY: ErrorCategory(
            ErrorType.SECURITY,
            ErrorSeverity.CRITICAL,
            retryable=False,
            recoverable=False,
            user_action="Check security credentials and permissions",
            tech_action="Implement secure credential management",
        ),
        ErrorType.FILESYSTEM: ErrorCategory(
            ErrorType.FILESYSTEM,
            ErrorSeverity.MEDIUM,
            retryable=True,
            recoverable=True,
            user_action="Check file permissions and path",
            tech_action="Implement file operation retry",
        ),
    }
)

# Standard message templates
MSG_ARGUMENT_COUNT = "requires {expected} arguments, got {actual}"
MSG_ARGUMENT_TYPE = "argument {index} must be {expected}, got {actual}"
MSG_ARGUMENT_VALUE = "argument {index} has invalid value: {value}"
MSG_CONNECTION_FAILED = "failed to connect to {endpoint}"
MSG_OPERATION_FAILED = "operation '{operation}' failed"
MSG_TIMEOUT_EXCEEDED = "operation timed out after {duration}s"
MSG_RESOURCE_NOT_FOUND = "resource '{resource}' not found"
MSG_CONFIGURATION_MISSING = "missing required configuration: {key}"


@dataclass(frozen=True)
class StackFrame:
    """A single captured call-stack frame."""

    function: str
    file: str
    line: int
    module: str = ""

    def __str__(self) -> str:
        return f"{self.file}:{self.line} in {self.function}"

    @property
    def is_internal(self) -> bool:
        """True if the frame belongs to the robogo package."""
        return self.module == "robogo" or self.module.startswith("robogo.")


@dataclass(frozen=True)
class ErrorContext:
    """Where and when an error occurred."""

    correlation_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    source: StackFrame | None = None
    stack_trace: tuple[StackFrame, ...] = ()
    breadcrumbs: tuple[str, ...] = ()
    variables: Mapping[str, Any] = field(default_factory=dict)
    environment: Mapping[str, str] = field(default_factory=dict)
    request_id: str = ""
    test_run: str = ""

    def add_breadcrumb(self, breadcrumb: str) -> "ErrorContext":
        return replace(self, breadcrumbs=(*self.breadcrumbs, breadcrumb))

    def with_variables(self, variables: Mapping[str, Any]) -> "ErrorContext":
        return replace(self, variables={**self.variables, **variables})

    def with_environment(self, environment: Mapping[str, str]) -> "ErrorContext":
        return replace(self, environment={**self.environment, **environment})


def _capture_frames(skip: int, limit: int = MAX_STACK_DEPTH) -> list[StackFrame]:
    """Capture up to `limit` frames, innermost first.

    `skip` counts frames above the caller of this helper.
    """
    frames: list[StackFrame] = []
    frame = inspect.currentframe()
    try:
        # Step past this helper and the caller's own frame
        for _ in range(skip + 2):
            if frame is None:
                return frames
            frame = frame.f_back
        while frame is not None and len(frames) < limit:
            code = frame.f_code
            frames.append(
                StackFrame(
                    function=code.co_name,
                    file=code.co_filename,
                    line=frame.f_lineno,
                    module=str(frame.f_globals.get("__name__", "")),
                )
            )
            frame = frame.f_back
    finally:
        del frame
    return frames


class RobogoError(Exception):
    """Uniform error value for the engine.

    Instances are treated as immutable once built: with_* / add_breadcrumb
    return updated copies instead of changing the original.
    """

    def __init__(
        self,
        error_type: ErrorType,
        message: str,
        *,
        cause: BaseException | None = None,
        action: str = "",
        step: str = "",
        test_case: str = "",
        details: Mapping[str, Any] | None = None,
        arguments: list[Any] | None = None,
        options: Mapping[str, Any] | None = None,
        severity: ErrorSeverity | None = None,
        retryable: bool | None = None,
        recoverable: bool | None = None,
        user_action: str | None = None,
        tech_action: str | None = None,
        context: ErrorContext | None = None,
        timestamp: str | None = None,
    ) -> None:
        super().__init__(message)
        error_type = ErrorType(error_type)
        category = ERROR_CATALOG[error_type]
        self.type = error_type
        self.message = message
        self.cause = cause
        self.action = action
        self.step = step
        self.test_case = test_case
        self.details: dict[str, Any] = dict(details or {})
        self.arguments = list(arguments) if arguments is not None else None
        self.options = dict(options) if options is not None else None
        self.severity = severity if severity is not None else category.severity
        self.retryable = category.retryable if retryable is None else retryable
        self.recoverable = category.recoverable if recoverable is None else recoverable
        self.user_action = category.user_action if user_action is None else user_action
        self.tech_action = category.tech_action if tech_action is None else tech_action
        self.context = context if context is not None else ErrorContext()
        self.timestamp = timestamp or datetime.now(timezone.utc).isoformat()
        if cause is not None:
            self.__cause__ = cause

    # --- copy-on-write enrichment ---

    def _replace(self, **changes: Any) -> "RobogoError":
        fields = {
            "cause": self.cause,
            "action": self.action,
            "step": self.step,
            "test_case": self.test_case,
            "details": self.details,
            "arguments": self.arguments,
            "options": self.options,
            "severity": self.severity,
            "retryable": self.retryable,
            "recoverable": self.recoverable,
            "user_action": self.user_action,
            "tech_action": self.tech_action,
            "context": self.context,
            "timestamp": self.timestamp,
        }
        fields.update(changes)
        error_type = fields.pop("type", self.type)
        message = fields.pop("message", self.message)
        return RobogoError(error_type, message, **fields)

    def with_step(self, step: str) -> "RobogoError":
        return self._replace(step=step)

    def with_action(self, action: str) -> "RobogoError":
        return self._replace(action=action)

    def with_test_case(self, test_case: str) -> "RobogoError":
        return self._replace(test_case=test_case)

    def with_type(self, error_type: ErrorType) -> "RobogoError":
        return self._replace(type=error_type)

    def with_details(self, details: Mapping[str, Any]) -> "RobogoError":
        return self._replace(details={**self.details, **details})

    def with_retryable(self, retryable: bool) -> "RobogoError":
        return self._replace(retryable=retryable)

    def add_breadcrumb(self, breadcrumb: str) -> "RobogoError":
        return self._replace(context=self.context.add_breadcrumb(breadcrumb))

    # --- accessors ---

    @property
    def category(self) -> ErrorCategory:
        return ERROR_CATALOG[self.type]

    @property
    def correlation_id(self) -> str:
        return self.context.correlation_id

    @property
    def breadcrumbs(self) -> tuple[str, ...]:
        return self.context.breadcrumbs

    def unwrap(self) -> BaseException | None:
        return self.cause

    # --- formatting ---

    def __str__(self) -> str:
        parts: list[str] = []
        if self.test_case:
            parts.append(f"test_case={self.test_case}")
        if self.action:
            parts.append(f"action={self.action}")
        if self.step:
            parts.append(f"step={self.step}")
        parts.append(f"type={self.type.value}")
        parts.append(self.message)
        if self.cause is not None:
            parts.append(f"cause={self.cause}")
        if self.context.correlation_id:
            parts.append(f"correlation_id={self.context.correlation_id}")
        return " | ".join(parts)

    def __repr__(self) -> str:
        return f"RobogoError(type={self.type.value!r}, message={self.message!r})"

    def error_with_stack_trace(self) -> str:
        """Compact form followed by the first MAX_DISPLAY_FRAMES captured frames."""
        msg = str(self)
        frames = self.context.stack_trace
        if frames:
            lines = ["", "", "Stack Trace:"]
            for i, frame in enumerate(frames[:MAX_DISPLAY_FRAMES], start=1):
                lines.append(f"  {i}. {frame}")
            if len(frames) > MAX_DISPLAY_FRAMES:
                lines.append("     ... (truncated)")
            msg += "\n".join(lines) + "\n"
        return msg

    def error_with_context(self) -> str:
        """Compact form followed by correlation id, source, breadcrumbs and variables."""
        ctx = self.context
        lines = [str(self), "", "Error Context:"]
        if ctx.correlation_id:
            lines.append(f"  Correlation ID: {ctx.correlation_id}")
        if ctx.request_id:
            lines.append(f"  Request ID: {ctx.request_id}")
        if ctx.test_run:
            lines.append(f"  Test Run: {ctx.test_run}")
        if ctx.source is not None:
            lines.append(f"  Source: {ctx.source}")
        if ctx.breadcrumbs:
            lines.append("  Breadcrumbs:")
            lines.extend(f"    {i}. {crumb}" for i, crumb in enumerate(ctx.breadcrumbs, start=1))
        if ctx.variables:
            lines.append("  Variables:")
            lines.extend(f"    {k}: {v}" for k, v in ctx.variables.items())
        return "\n".join(lines)


class ErrorBuilder:
    """Fluent builder for RobogoError.

    Defaults are seeded from ERROR_CATALOG for the given type. Unless disabled,
    build() records its caller as the error source plus a bounded call stack.

    Example:
        err = (
            ErrorBuilder(ErrorType.NETWORK, "failed to connect to db:5432")
            .with_cause(exc)
            .with_action("postgres")
            .add_breadcrumb("opening connection")
            .build()
        )
    """

    def __init__(self, error_type: ErrorType, message: str, capture_stack: bool = True) -> None:
        self._type = ErrorType(error_type)
        self._message = message
        self._fields: dict[str, Any] = {"details": {}}
        self._context = ErrorContext()
        self._capture_stack = capture_stack
        self._skip_frames = 0

    def with_cause(self, cause: BaseException | None) -> "ErrorBuilder":
        self._fields["cause"] = cause
        return self

    def with_action(self, action: str) -> "ErrorBuilder":
        self._fields["action"] = action
        return self

    def with_step(self, step: str) -> "ErrorBuilder":
        self._fields["step"] = step
        return self

    def with_test_case(self, test_case: str) -> "ErrorBuilder":
        self._fields["test_case"] = test_case
        return self

    def with_details(self, details: Mapping[str, Any] | None) -> "ErrorBuilder":
        self._fields["details"].update(details or {})
        return self

    def with_arguments(self, arguments: list[Any]) -> "ErrorBuilder":
        self._fields["arguments"] = arguments
        return self

    def with_options(self, options: Mapping[str, Any]) -> "ErrorBuilder":
        self._fields["options"] = options
        return self

    def with_user_action(self, user_action: str) -> "ErrorBuilder":
        self._fields["user_action"] = user_action
        return self

    def with_tech_action(self, tech_action: str) -> "ErrorBuilder":
        self._fields["tech_action"] = tech_action
        return self

    def with_retryable(self, retryable: bool) -> "ErrorBuilder":
        self._fields["retryable"] = retryable
        return self

    def with_recoverable(self, recoverable: bool) -> "ErrorBuilder":
        self._fields["recoverable"] = recoverable
        return self

    def with_severity(self, severity: ErrorSeverity) -> "ErrorBuilder":
        self._fields["severity"] = severity
        return self

    def with_context(self, context: ErrorContext | None) -> "ErrorBuilder":
        if context is not None:
            self._context = context
        return self

    def with_correlation_id(self, correlation_id: str) -> "ErrorBuilder":
        self._context = replace(self._context, correlation_id=correlation_id)
        return self

    def with_breadcrumbs(self, breadcrumbs: list[str]) -> "ErrorBuilder":
        self._context = replace(self._context, breadcrumbs=tuple(breadcrumbs))
        return self

    def add_breadcrumb(self, breadcrumb: str) -> "ErrorBuilder":
        self._context = self._context.add_breadcrumb(breadcrumb)
        return self

    def with_variables(self, variables: Mapping[str, Any]) -> "ErrorBuilder":
        self._context = self._context.with_variables(variables)
        return self

    def with_environment(self, environment: Mapping[str, str]) -> "ErrorBuilder":
        self._context = self._context.with_environment(environment)
        return self

    def with_request_id(self, request_id: str) -> "ErrorBuilder":
        self._context = replace(self._context, request_id=request_id)
        return self

    def with_test_run(self, test_run: str) -> "ErrorBuilder":
        self._context = replace(self._context, test_run=test_run)
        return self

    def capture_stack(self, capture: bool) -> "ErrorBuilder":
        self._capture_stack = capture
        return self

    def skip_frames(self, skip: int) -> "ErrorBuilder":
        """Attribute the error to a frame `skip` levels above build()'s caller."""
        self._skip_frames = skip
        return self

    def build(self) -> RobogoError:
        context = self._context
        if self._capture_stack:
            frames = _capture_frames(self._skip_frames)
            context = replace(
                context,
                source=frames[0] if frames else None,
                stack_trace=tuple(frames),
            )
        return RobogoError(self._type, self._message, context=context, **self._fields)


def is_robogo_error(err: BaseException | None) -> bool:
    return isinstance(err, RobogoError)


def get_robogo_error(err: BaseException | None) -> RobogoError | None:
    """Find the first RobogoError in an exception's cause chain."""
    seen: set[int] = set()
    while err is not None and id(err) not in seen:
        if isinstance(err, RobogoError):
            return err
        seen.add(id(err))
        err = err.__cause__ or getattr(err, "cause", None)
    return None


def classify_exception(err: BaseException) -> ErrorType:
    """Map a plain Python exception to an error type."""
    robogo_err = get_robogo_error(err)
    if robogo_err is not None:
        return robogo_err.type
    if isinstance(err, TimeoutError):
        return ErrorType.TIMEOUT
    if isinstance(err, AssertionError):
        return ErrorType.ASSERTION
    if isinstance(err, ConnectionError):
        return ErrorType.NETWORK
    if isinstance(err, (FileNotFoundError, PermissionError, IsADirectoryError, NotADirectoryError)):
        return ErrorType.FILESYSTEM
    if isinstance(err, OSError) and err.errno in (
        errno.ENETUNREACH,
        errno.EHOSTUNREACH,
        errno.ECONNREFUSED,
        errno.ECONNRESET,
    ):
        return ErrorType.NETWORK
    if isinstance(err, (ValueError, TypeError, KeyError)):
        return ErrorType.VALIDATION
    return ErrorType.EXECUTION


def wrap_error(
    err: BaseException | None,
    error_type: ErrorType,
    action: str = "",
) -> RobogoError | None:
    """Wrap an exception as a RobogoError without double-wrapping.

    An existing RobogoError is returned as-is when it already names an action,
    otherwise as a copy with `action` filled in.
    """
    if err is None:
        return None

    robogo_err = get_robogo_error(err)
    if robogo_err is not None:
        if robogo_err.action or not action:
            return robogo_err
        return robogo_err.with_action(action)

    return (
        ErrorBuilder(error_type, str(err) or type(err).__name__)
        .with_action(action)
        .with_cause(err)
        .skip_frames(1)
        .build()
    )


def wrap_error_with_context(
    err: BaseException | None,
    error_type: ErrorType,
    action: str,
    context: ErrorContext | None,
) -> RobogoError | None:
    if err is None:
        return None
    return (
        ErrorBuilder(error_type, str(err) or type(err).__name__)
        .with_action(action)
        .with_cause(err)
        .with_context(context)
        .skip_frames(1)
        .build()
    )


# --- formatting helpers ---


def format_robogo_error(err: BaseException | None) -> str:
    """Short message for reports: the underlying cause first, if any."""
    if err is None:
        return ""
    if isinstance(err, RobogoError):
        if err.cause is not None:
            return str(err.cause)
        return err.message
    return str(err)


def format_robogo_error_detailed(err: BaseException | None) -> str:
    if err is None:
        return ""
    if not isinstance(err, RobogoError):
        return str(err)
    msg = f"[{err.type.value}] {err.message}"
    if err.action:
        msg += f" | action: {err.action}"
    if err.step:
        msg += f" | step: {err.step}"
    if err.cause is not None:
        msg += f" | cause: {err.cause}"
    return msg


def format_robogo_error_for_logging(err: BaseException | None) -> str:
    if err is None:
        return ""
    if not isinstance(err, RobogoError):
        return str(err)
    parts = [f"type={err.type.value}", f"message={err.message}"]
    if err.action:
        parts.append(f"action={err.action}")
    if err.step:
        parts.append(f"step={err.step}")
    if err.context.correlation_id:
        parts.append(f"correlation_id={err.context.correlation_id}")
    return " | ".join(parts)


def get_error_summary(err: BaseException) -> dict[str, Any]:
    """Flat key/value summary suitable for structured log ingestion."""
    if not isinstance(err, RobogoError):
        return {"type": "unknown", "message": str(err)}

    summary: dict[str, Any] = {
        "type": err.type.value,
        "message": err.message,
        "severity": err.severity.value,
        "retryable": err.retryable,
        "recoverable": err.recoverable,
        "timestamp": err.timestamp,
        "correlation_id": err.context.correlation_id,
    }
    if err.action:
        summary["action"] = err.action
    if err.step:
        summary["step"] = err.step
    if err.test_case:
        summary["test_case"] = err.test_case
    if err.context.source is not None:
        summary["source"] = str(err.context.source)
    return summary


# --- common constructors ---


def _build(
    error_type: ErrorType,
    message: str,
    *,
    cause: BaseException | None = None,
    action: str = "",
    details: Mapping[str, Any] | None = None,
    breadcrumb: str | None = None,
) -> RobogoError:
    builder = (
        ErrorBuilder(error_type, message)
        .with_cause(cause)
        .with_action(action)
        .with_details(details)
        .skip_frames(2)
    )
    if breadcrumb:
        builder.add_breadcrumb(breadcrumb)
    return builder.build()


def validation_error(
    message: str,
    details: Mapping[str, Any] | None = None,
    cause: BaseException | None = None,
) -> RobogoError:
    return _build(ErrorType.VALIDATION, message, cause=cause, details=details)


def execution_error(message: str, cause: BaseException | None = None, action: str = "") -> RobogoError:
    return _build(ErrorType.EXECUTION, message, cause=cause, action=action)


def assertion_error(message: str, actual: Any, expected: Any, operator: str) -> RobogoError:
    return _build(
        ErrorType.ASSERTION,
        message,
        details={"actual": actual, "expected": expected, "operator": operator},
    )


def configuration_error(
    message: str,
    field_name: str = "",
    value: Any = None,
    cause: BaseException | None = None,
) -> RobogoError:
    details = {"field": field_name, "value": value} if field_name else None
    return _build(ErrorType.CONFIGURATION, message, cause=cause, details=details)


def network_error(message: str, cause: BaseException | None = None, action: str = "") -> RobogoError:
    return _build(ErrorType.NETWORK, message, cause=cause, action=action)


def database_error(message: str, cause: BaseException | None = None, action: str = "") -> RobogoError:
    return _build(ErrorType.DATABASE, message, cause=cause, action=action)


def messaging_error(message: str, cause: BaseException | None = None, action: str = "") -> RobogoError:
    return _build(ErrorType.MESSAGING, message, cause=cause, action=action)


def timeout_error(message: str, cause: BaseException | None = None, action: str = "") -> RobogoError:
    return _build(ErrorType.TIMEOUT, message, cause=cause, action=action)


def template_error(message: str, cause: BaseException | None = None, action: str = "") -> RobogoError:
    return _build(ErrorType.TEMPLATE, message, cause=cause, action=action)


def security_error(message: str, cause: BaseException | None = None, action: str = "") -> RobogoError:
    return _build(ErrorType.SECURITY, message, cause=cause, action=action)


def filesystem_error(message: str, cause: BaseException | None = None, action: str = "") -> RobogoError:
    return _build(ErrorType.FILESYSTEM, message, cause=cause, action=action)


def argument_count_error(action: str, expected: int, actual: int) -> RobogoError:
    return _build(
        ErrorType.VALIDATION,
        MSG_ARGUMENT_COUNT.format(expected=expected, actual=actual),
        action=action,
        details={"expected_count": expected, "actual_count": actual},
    )


def argument_type_error(action: str, index: int, expected_type: str, actual_value: Any) -> RobogoError:
    actual_type = type(actual_value).__name__
    return _build(
        ErrorType.VALIDATION,
        MSG_ARGUMENT_TYPE.format(index=index, expected=expected_type, actual=actual_type),
        action=action,
        details={
            "argument_index": index,
            "expected_type": expected_type,
            "actual_type": actual_type,
            "actual_value": actual_value,
        },
    )


def argument_value_error(action: str, index: int, value: Any, reason: str) -> RobogoError:
    return _build(
        ErrorType.VALIDATION,
        MSG_ARGUMENT_VALUE.format(index=index, value=value),
        action=action,
        details={"argument_index": index, "value": value, "reason": reason},
    )


def connection_error(action: str, endpoint: str, cause: BaseException | None = None) -> RobogoError:
    return _build(
        ErrorType.NETWORK,
        MSG_CONNECTION_FAILED.format(endpoint=endpoint),
        cause=cause,
        action=action,
        details={"endpoint": endpoint},
    )


def operation_error(action: str, operation: str, cause: BaseException | None = None) -> RobogoError:
    return _build(
        ErrorType.EXECUTION,
        MSG_OPERATION_FAILED.format(operation=operation),
        cause=cause,
        action=action,
        details={"operation": operation},
    )


def resource_not_found_error(action: str, resource: str) -> RobogoError:
    return _build(
        ErrorType.VALIDATION,
        MSG_RESOURCE_NOT_FOUND.format(resource=resource),
        action=action,
        details={"resource": resource},
    )


def configuration_missing_error(action: str, key: str) -> RobogoError:
    return _build(
        ErrorType.CONFIGURATION,
        MSG_CONFIGURATION_MISSING.format(key=key),
        action=action,
        details={"config_key": key},
    )


def timeout_exceeded_error(action: str, duration: float, cause: BaseException | None = None) -> RobogoError:
    return _build(
        ErrorType.TIMEOUT,
        MSG_TIMEOUT_EXCEEDED.format(duration=duration),
        cause=cause,
        action=action,
        details={"timeout_duration": duration},
    )


def retry_exhausted_error(operation: str, attempts: int, last_error: BaseException | None) -> RobogoError:
    return _build(
        ErrorType.EXECUTION,
        f"operation '{operation}' failed after {attempts} retry attempts",
        cause=last_error,
        details={"operation": operation, "attempts": attempts},
        breadcrumb=f"Retry exhausted for operation: {operation}",
    )


def circuit_breaker_error(operation: str, state: str) -> RobogoError:
    return _build(
        ErrorType.EXECUTION,
        f"circuit breaker is {state} for operation '{operation}'",
        details={"operation": operation, "state": state},
        breadcrumb=f"Circuit breaker {state} for: {operation}",
    )


def recovery_error(operation: str, strategy: str, cause: BaseException | None) -> RobogoError:
    return _build(
        ErrorType.EXECUTION,
        f"recovery strategy '{strategy}' failed for operation '{operation}'",
        cause=cause,
        details={"operation": operation, "strategy": strategy},
        breadcrumb=f"Recovery failed for operation: {operation}",
    )
