"""Action registry and built-in actions.

An action is a callable `fn(args, options, ctx) -> Any` that raises to fail.
Errors that are not RobogoError are classified by the runner.
"""

from __future__ import annotations

import logging
import random
import threading
from datetime import datetime, timezone
from typing import Any, Callable, Protocol

from robogo.core.context import ExecutionContext
from robogo.core.errors import (
    ErrorBuilder,
    ErrorType,
    argument_count_error,
    argument_type_error,
    argument_value_error,
    assertion_error,
    resource_not_found_error,
    timeout_error,
)
from robogo.core.models import format_duration, parse_duration

logger = logging.getLogger(__name__)


class Action(Protocol):
    def __call__(self, args: list[Any], options: dict[str, Any], ctx: ExecutionContext) -> Any: ...


class ActionRegistry:
    """Name -> action lookup, safe for concurrent reads."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._actions: dict[str, Action] = {}

    def register(self, name: str, fn: Action) -> None:
        with self._lock:
            self._actions[name.lower()] = fn

    def get(self, name: str) -> Action:
        with self._lock:
            fn = self._actions.get(name.lower())
        if fn is None:
            raise resource_not_found_error(name, f"action:{name}")
        return fn

    def names(self) -> list[str]:
        with self._lock:
            return sorted(self._actions)

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return isinstance(name, str) and name.lower() in self._actions


# --- built-ins ---


def log_action(args: list[Any], options: dict[str, Any], ctx: ExecutionContext) -> str:
    message = " ".join(str(a) for a in args)
    logger.info(message)
    return message


def sleep_action(args: list[Any], options: dict[str, Any], ctx: ExecutionContext) -> str:
    if len(args) < 1:
        raise argument_count_error("sleep", 1, 0)
    try:
        seconds = parse_duration(args[0])
    except ValueError as e:
        raise argument_type_error("sleep", 0, "duration", args[0]).with_details(
            {"reason": str(e)}
        ) from e
    if ctx.wait(seconds):
        raise timeout_error(f"sleep interrupted: {ctx.reason}", action="sleep")
    return format_duration(seconds)


_TIME_FORMATS = {
    "iso": "%Y-%m-%dT%H:%M:%S%z",
    "iso_date": "%Y-%m-%d",
    "iso_time": "%H:%M:%S",
    "datetime": "%Y-%m-%d %H:%M:%S",
    "date": "%Y-%m-%d",
    "time": "%H:%M:%S",
    "timestamp": "%Y%m%d%H%M%S",
}


def get_time_action(args: list[Any], options: dict[str, Any], ctx: ExecutionContext) -> Any:
    fmt = str(args[0]) if args else "iso"
    now = datetime.now(timezone.utc)
    if fmt == "unix":
        return int(now.timestamp())
    if fmt == "unix_ms":
        return int(now.timestamp() * 1000)
    if fmt in ("iso", "rfc3339"):
        return now.isoformat()
    return now.strftime(_TIME_FORMATS.get(fmt, fmt))


def _is_integral(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return True
    return isinstance(value, str) and value.strip().lstrip("-").isdigit()


def get_random_action(args: list[Any], options: dict[str, Any], ctx: ExecutionContext) -> Any:
    """[max] -> 0..max; [min, max] -> min..max; floats keep 2 (or args[2]) decimals."""
    if not args:
        raise argument_count_error("get_random", 1, 0)
    low, high = (0, args[0]) if len(args) == 1 else (args[0], args[1])
    try:
        low_f, high_f = float(low), float(high)
    except (TypeError, ValueError) as e:
        raise argument_type_error("get_random", 0, "number", low if len(args) > 1 else high) from e
    if low_f > high_f:
        low_f, high_f = high_f, low_f

    if _is_integral(low) and _is_integral(high):
        return random.randint(int(low_f), int(high_f))
    try:
        precision = int(args[2]) if len(args) > 2 else 2
    except (TypeError, ValueError) as e:
        raise argument_value_error("get_random", 2, args[2], "precision must be an integer") from e
    return round(random.uniform(low_f, high_f), precision)


def length_action(args: list[Any], options: dict[str, Any], ctx: ExecutionContext) -> int:
    if len(args) < 1:
        raise argument_count_error("length", 1, 0)
    value = args[0]
    if isinstance(value, (str, list, tuple, dict)):
        return len(value)
    raise argument_type_error("length", 0, "string, list or map", value)


def _compare(actual: Any, operator: str, expected: Any) -> bool:
    try:
        a_num, e_num = float(actual), float(expected)
        numeric = not isinstance(actual, bool) and not isinstance(expected, bool)
    except (TypeError, ValueError):
        numeric = False

    if operator in ("==", "!=", ">", "<", ">=", "<=") and numeric:
        return {
            "==": a_num == e_num,
            "!=": a_num != e_num,
            ">": a_num > e_num,
            "<": a_num < e_num,
            ">=": a_num >= e_num,
            "<=": a_num <= e_num,
        }[operator]

    a_str = str(actual).lower() if isinstance(actual, bool) else str(actual)
    e_str = str(expected).lower() if isinstance(expected, bool) else str(expected)
    comparisons: dict[str, Callable[[], bool]] = {
        "==": lambda: a_str == e_str,
        "!=": lambda: a_str != e_str,
        ">": lambda: a_str > e_str,
        "<": lambda: a_str < e_str,
        ">=": lambda: a_str >= e_str,
        "<=": lambda: a_str <= e_str,
        "contains": lambda: e_str in a_str,
        "not_contains": lambda: e_str not in a_str,
        "starts_with": lambda: a_str.startswith(e_str),
        "ends_with": lambda: a_str.endswith(e_str),
    }
    check = comparisons.get(operator)
    if check is None:
        raise (
            ErrorBuilder(ErrorType.VALIDATION, f"unsupported assertion operator: {operator}")
            .with_action("assert")
            .build()
        )
    return check()


def assert_action(args: list[Any], options: dict[str, Any], ctx: ExecutionContext) -> str:
    """[actual, operator, expected, message?]."""
    if len(args) < 3:
        raise argument_count_error("assert", 3, len(args))
    actual, operator, expected = args[0], str(args[1]), args[2]
    message = str(args[3]) if len(args) > 3 else ""
    if not _compare(actual, operator, expected):
        text = message or f"assertion failed: {actual!s} {operator} {expected!s}"
        raise assertion_error(text, actual, expected, operator).with_action("assert")
    return message or "Assertion passed"


def fail_action(args: list[Any], options: dict[str, Any], ctx: ExecutionContext) -> Any:
    """Always fails; options.type picks the error type (default execution)."""
    message = str(args[0]) if args else "step failed"
    error_type = ErrorType(str(options.get("type", ErrorType.EXECUTION.value)).lower())
    builder = ErrorBuilder(error_type, message).with_action("fail")
    if "retryable" in options:
        builder.with_retryable(bool(options["retryable"]))
    raise builder.build()


BUILTIN_ACTIONS: dict[str, Action] = {
    "log": log_action,
    "sleep": sleep_action,
    "get_time": get_time_action,
    "get_random": get_random_action,
    "length": length_action,
    "assert": assert_action,
    "fail": fail_action,
}


def default_registry() -> ActionRegistry:
    """A fresh registry holding the built-in actions."""
    registry = ActionRegistry()
    for name, fn in BUILTIN_ACTIONS.items():
        registry.register(name, fn)
    return registry
