"""YAML test-case loading."""

from __future__ import annotations

import logging
from pathlib import Path

import yaml
from pydantic import ValidationError

from robogo.core.errors import configuration_error, filesystem_error, validation_error
from robogo.core.models import TestCase

logger = logging.getLogger(__name__)


def parse_test_case(data: object, source: str = "<string>") -> TestCase:
    """Validate already-parsed YAML data as a TestCase."""
    if not isinstance(data, dict):
        raise validation_error(
            f"test case in {source} must be a mapping",
            {"file": source, "found": type(data).__name__},
        )
    try:
        return TestCase.model_validate(data)
    except ValidationError as e:
        raise validation_error(
            f"invalid test case in {source}: {e}",
            {"file": source, "errors": e.error_count()},
            cause=e,
        ) from e


def load_test_case_from_string(text: str, source: str = "<string>") -> TestCase:
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise configuration_error(f"invalid YAML in {source}: {e}", cause=e).with_details(
            {"file": source}
        ) from e
    return parse_test_case(data, source)


def load_test_case(path: str | Path) -> TestCase:
    """Read and validate a single test-case file."""
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise filesystem_error(f"cannot read test case {path}: {e}", cause=e) from e
    test_case = load_test_case_from_string(text, str(path))
    test_case = test_case.model_copy(update={"source_file": str(path)})
    logger.debug(f"Loaded test case '{test_case.name}' with {len(test_case.steps)} steps from {path}")
    return test_case


def load_test_cases(paths: list[str | Path]) -> list[TestCase]:
    return [load_test_case(p) for p in paths]
