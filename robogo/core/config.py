"""Runner configuration.

A RunnerConfig is built once at startup and passed explicitly to TestRunner.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from robogo.core.errors import configuration_error
from robogo.core.models import ParallelConfig, merge_parallel_config, parse_duration

logger = logging.getLogger(__name__)


class RunnerConfig(BaseModel):
    """Execution settings for a test run."""

    parallel: ParallelConfig = Field(default_factory=ParallelConfig)
    verbose: bool = False
    debug_variables: bool = False
    timeout: float | None = None
    fail_fast: bool = False

    @field_validator("timeout", mode="before")
    @classmethod
    def _parse_timeout(cls, v: Any) -> float | None:
        if v is None:
            return None
        seconds = parse_duration(v)
        return seconds if seconds > 0 else None

    @field_validator("parallel", mode="after")
    @classmethod
    def _merge_parallel(cls, v: ParallelConfig) -> ParallelConfig:
        return merge_parallel_config(v)


def load_runner_config(path: str | Path | None) -> RunnerConfig:
    """Load a RunnerConfig from YAML; a missing or empty file yields defaults."""
    if path is None:
        return RunnerConfig()

    path = Path(path)
    if not path.exists():
        logger.debug(f"Config file {path} not found, using defaults")
        return RunnerConfig()

    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (yaml.YAMLError, OSError) as e:
        raise configuration_error(f"invalid config file {path}: {e}", cause=e).with_details(
            {"file": str(path)}
        ) from e

    if data is None:
        return RunnerConfig()
    if not isinstance(data, dict):
        raise configuration_error(f"config file {path} must contain a mapping").with_details(
            {"file": str(path), "found": type(data).__name__}
        )

    try:
        return RunnerConfig.model_validate(data)
    except ValidationError as e:
        raise configuration_error(f"invalid config in {path}: {e}", cause=e).with_details(
            {"file": str(path), "errors": e.error_count()}
        ) from e
