"""Condition, loop and skip evaluation for control-flow steps.

Conditions are evaluated after variable substitution. Supported forms:
- literals: true / false / 1 / 0
- comparisons: ==, !=, >, <, >=, <= (numeric when both sides are numbers)
- string operators: contains, starts_with, ends_with
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Callable

from robogo.core.errors import ErrorBuilder, ErrorType, RobogoError

# Longer symbols first so ">=" is not read as ">"
_OPERATORS = (">=", "<=", "!=", "==", ">", "<", " contains ", " starts_with ", " ends_with ")
_RANGE = re.compile(r"^\s*(-?\d+)\s*\.\.\s*(-?\d+)\s*$")
_COUNT = re.compile(r"^\s*\d+\s*$")

NO_REASON = "(no reason provided)"


@dataclass(frozen=True)
class SkipInfo:
    should_skip: bool
    reason: str = ""


def _condition_error(message: str, condition: Any) -> RobogoError:
    return (
        ErrorBuilder(ErrorType.VALIDATION, message)
        .with_details({"condition": condition})
        .skip_frames(1)
        .build()
    )


def _unquote(text: str) -> str:
    text = text.strip()
    if len(text) >= 2 and text[0] == text[-1] and text[0] in ("'", '"'):
        return text[1:-1]
    return text


def _as_number(text: str) -> float | None:
    try:
        return float(text)
    except ValueError:
        return None


def evaluate_condition(condition: Any) -> bool:
    """Evaluate an already-substituted condition."""
    if isinstance(condition, bool):
        return condition
    if isinstance(condition, (int, float)):
        return condition != 0

    text = str(condition).strip()
    lowered = text.lower()
    if lowered in ("true", "1"):
        return True
    if lowered in ("false", "0", ""):
        return False

    for op in _OPERATORS:
        if op not in text:
            continue
        left_raw, right_raw = text.split(op, 1)
        left, right = _unquote(left_raw), _unquote(right_raw)
        op = op.strip()

        if op == "contains":
            return right in left
        if op == "starts_with":
            return left.startswith(right)
        if op == "ends_with":
            return left.endswith(right)

        left_num, right_num = _as_number(left), _as_number(right)
        numeric = left_num is not None and right_num is not None
        lhs: Any = left_num if numeric else left
        rhs: Any = right_num if numeric else right

        if op == "==":
            return lhs == rhs
        if op == "!=":
            return lhs != rhs
        if op == ">":
            return lhs > rhs
        if op == "<":
            return lhs < rhs
        if op == ">=":
            return lhs >= rhs
        return lhs <= rhs

    raise _condition_error(f"unable to evaluate condition: {text}", text)


def parse_loop_items(spec: Any, max_iterations: int | None = None) -> list[Any]:
    """Expand a for-loop spec into the items to iterate.

    "3" -> [1, 2, 3]; "1..5" -> [1, 2, 3, 4, 5]; "[a, b]" -> ["a", "b"];
    a list is used as-is. The result is truncated to `max_iterations`.
    """
    if isinstance(spec, bool):
        raise _condition_error(f"invalid for loop specification: {spec!r}", spec)
    if isinstance(spec, int):
        items: list[Any] = list(range(1, spec + 1))
    elif isinstance(spec, (list, tuple)):
        items = list(spec)
    else:
        text = str(spec).strip()
        range_match = _RANGE.match(text)
        if _COUNT.match(text):
            items = list(range(1, int(text) + 1))
        elif range_match:
            start, end = int(range_match.group(1)), int(range_match.group(2))
            step = 1 if end >= start else -1
            items = list(range(start, end + step, step))
        elif text.startswith("[") and text.endswith("]"):
            inner = text[1:-1].strip()
            items = [_unquote(part) for part in inner.split(",")] if inner else []
        else:
            raise _condition_error(f"invalid for loop specification: {text}", text)

    if max_iterations is not None and max_iterations > 0:
        items = items[:max_iterations]
    return items


def evaluate_skip(skip: Any, substitute: Callable[[str], str] | None = None) -> SkipInfo:
    """Decide whether a step or test case is skipped.

    True skips with no reason; a non-empty string (after substitution) skips
    with that string as the reason.
    """
    if skip is None or skip is False:
        return SkipInfo(False)
    if skip is True:
        return SkipInfo(True, NO_REASON)
    if isinstance(skip, str):
        text = substitute(skip) if substitute is not None else skip
        if text.strip():
            return SkipInfo(True, text)
        return SkipInfo(False)
    text = str(skip)
    if text and text not in ("false", "0"):
        return SkipInfo(True, text)
    return SkipInfo(False)
