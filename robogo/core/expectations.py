"""expect_error matching.

A step with `expect_error` passes only if its action fails with a matching
error. A plain string means "contains" (or "any" for the literal "any"); a
mapping gives an explicit `type` and `message`.
"""

from __future__ import annotations

import re

from robogo.core.errors import (
    ErrorBuilder,
    ErrorType,
    RobogoError,
    format_robogo_error,
    validation_error,
)
from robogo.core.models import ErrorExpectation


def normalise_expectation(expect: str | ErrorExpectation | dict) -> ErrorExpectation:
    if isinstance(expect, ErrorExpectation):
        return expect
    if isinstance(expect, dict):
        return ErrorExpectation.model_validate(expect)
    if expect == "any":
        return ErrorExpectation(type="any")
    return ErrorExpectation(type="contains", message=str(expect))


def _regex_matches(pattern: str, text: str) -> bool:
    try:
        return re.search(pattern, text) is not None
    except re.error as e:
        raise (
            ErrorBuilder(ErrorType.VALIDATION, f"invalid regex pattern '{pattern}': {e}")
            .with_cause(e)
            .build()
        ) from e


def error_matches(expectation: ErrorExpectation, message: str) -> bool:
    expected = expectation.message
    kind = expectation.type

    if kind == "any":
        return True
    if kind == "contains":
        return expected in message
    if kind == "not_contains":
        return expected not in message
    if kind == "matches":
        return _regex_matches(expected, message)
    if kind == "not_matches":
        return not _regex_matches(expected, message)
    if kind == "exact":
        return message == expected
    if kind == "starts_with":
        return message.startswith(expected)
    if kind == "ends_with":
        return message.endswith(expected)
    raise validation_error(f"unsupported error type: {kind}", {"type": kind})


def check_expected_error(
    expect: str | ErrorExpectation | dict,
    error: BaseException | None,
    output: str = "",
) -> None:
    """Raise an assertion RobogoError unless `error` satisfies `expect`.

    The error text compared is the underlying cause message when the error
    wraps one.
    """
    expectation = normalise_expectation(expect)

    if error is None:
        if expectation.type == "any":
            message = f"expected any error but action succeeded with result: '{output}'"
        else:
            message = f"expected error but action succeeded with result: '{output}'"
        raise _expectation_error(message, expectation, None)

    actual = format_robogo_error(error)
    if not error_matches(expectation, actual):
        message = (
            f"error expectation failed: '{actual}' {expectation.type} '{expectation.message}'"
        )
        raise _expectation_error(message, expectation, actual)


def _expectation_error(
    message: str, expectation: ErrorExpectation, actual: str | None
) -> RobogoError:
    return (
        ErrorBuilder(ErrorType.ASSERTION, message)
        .with_details(
            {
                "expected_type": expectation.type,
                "expected_message": expectation.message,
                "actual": actual,
            }
        )
        .skip_frames(1)
        .build()
    )
