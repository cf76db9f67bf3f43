"""Variable resolution debugging.

Compares a template string with its substituted form to report which
`${name}` placeholders were resolved, which were left behind, and why.
Secret-sourced values (the `SECRETS.` namespace) are shown masked when their
secret is configured for masking.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Mapping, Protocol

logger = logging.getLogger(__name__)

VARIABLE_PATTERN = re.compile(r"\$\{([^}]+)\}")
SECRETS_PREFIX = "SECRETS."
MASKED_VALUE = "[MASKED]"


class SecretInfoProvider(Protocol):
    def get_secret_info(self, name: str) -> tuple[str, bool, bool]:
        """Return (source, masked, exists) for a secret."""
        ...

    def get_secret(self, name: str) -> str | None: ...


@dataclass(frozen=True)
class ResolvedVarInfo:
    value: str
    is_secret: bool = False
    is_masked: bool = False
    source: str = ""
    display_value: str = ""


@dataclass
class VariableResolutionResult:
    original: str
    resolved: str
    unresolved_vars: list[str] = field(default_factory=list)
    resolved_vars: dict[str, ResolvedVarInfo] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)

    @property
    def has_unresolved(self) -> bool:
        return bool(self.unresolved_vars)


def extract_variable_names(text: str) -> list[str]:
    """Unique placeholder names in order of first appearance."""
    names: list[str] = []
    for name in VARIABLE_PATTERN.findall(text or ""):
        if name not in names:
            names.append(name)
    return names


def _root_name(name: str) -> str:
    return re.split(r"[.\[]", name, maxsplit=1)[0]


def is_variable_defined(name: str, variables: Mapping[str, Any]) -> bool:
    """True if `name` or the root of a dotted/indexed path is defined."""
    return name in variables or _root_name(name) in variables


def validate_variable_availability(text: str, variables: Mapping[str, Any]) -> list[str]:
    """Names referenced by `text` that are not defined in `variables`."""
    return [
        name
        for name in extract_variable_names(text)
        if not name.startswith(SECRETS_PREFIX) and not is_variable_defined(name, variables)
    ]


def truncate_value(value: str, max_len: int) -> str:
    if len(value) <= max_len:
        return value
    return value[: max_len - 3] + "..."


def format_variable_debug_info(
    variables: Mapping[str, Any],
    required: list[str],
    secrets: SecretInfoProvider | None = None,
) -> str:
    lines = ["Variable Information:"]
    if variables:
        lines.append("   Available Variables:")
        for name, value in variables.items():
            display = str(value)
            if secrets is not None:
                source, masked, exists = secrets.get_secret_info(name)
                if exists:
                    if masked:
                        display = MASKED_VALUE
                    lines.append(
                        f"      {name} = {truncate_value(display, 40)} "
                        f"(secret from {source}, masked={str(masked).lower()})"
                    )
                    continue
            lines.append(f"      {name} = {truncate_value(display, 40)}")
    else:
        lines.append("   No variables defined")

    if required:
        lines.append("   Required Variables:")
        for name in required:
            status = "available" if is_variable_defined(name, variables) else "missing"
            lines.append(f"      {name} ({status})")
    return "\n".join(lines) + "\n"


class VariableResolutionDebugger:
    """Explain the outcome of a `${...}` substitution."""

    def __init__(
        self,
        enabled: bool = False,
        context: str = "",
        secrets: SecretInfoProvider | None = None,
    ) -> None:
        self.enabled = enabled
        self.context = context
        self.secrets = secrets

    def analyze(
        self,
        original: str,
        resolved: str,
        variables: Mapping[str, Any],
    ) -> VariableResolutionResult:
        """Classify each placeholder of `original` as resolved or unresolved.

        A placeholder still present in `resolved` is unresolved and gets a
        warning explaining whether it was undefined or merely skipped.
        """
        result = VariableResolutionResult(original=original, resolved=resolved)
        remaining = set(VARIABLE_PATTERN.findall(resolved or ""))

        for name in extract_variable_names(original):
            if name in remaining:
                result.unresolved_vars.append(name)
                if self._is_available(name, variables):
                    result.warnings.append(f"Variable '{name}' exists but was not substituted")
                else:
                    result.warnings.append(f"Variable '{name}' is not defined")
                continue

            info = self._resolved_info(name, variables)
            if info is not None:
                result.resolved_vars[name] = info

        return result

    def log_resolution(self, result: VariableResolutionResult) -> None:
        if not self.enabled:
            return
        if not result.resolved_vars and not result.unresolved_vars:
            return

        lines = [f"Variable resolution ({self.context}):"]
        for name, info in result.resolved_vars.items():
            display = truncate_value(info.display_value, 50)
            if info.is_secret:
                lines.append(
                    f"  resolved ${{{name}}} -> {display} "
                    f"(secret from {info.source}, masked={str(info.is_masked).lower()})"
                )
            else:
                lines.append(f"  resolved ${{{name}}} -> {display}")
        for name in result.unresolved_vars:
            lines.append(f"  unresolved ${{{name}}} (not substituted)")
        for warning in result.warnings:
            lines.append(f"  warning: {warning}")

        level = logging.WARNING if result.has_unresolved else logging.DEBUG
        logger.log(level, "\n".join(lines))

    def log_substitution(
        self,
        original: str,
        resolved: str,
        variables: Mapping[str, Any],
    ) -> VariableResolutionResult | None:
        if not self.enabled:
            return None
        result = self.analyze(original, resolved, variables)
        self.log_resolution(result)
        return result

    def _is_available(self, name: str, variables: Mapping[str, Any]) -> bool:
        if name.startswith(SECRETS_PREFIX) and self.secrets is not None:
            return self.secrets.get_secret_info(name[len(SECRETS_PREFIX) :])[2]
        return is_variable_defined(name, variables)

    def _resolved_info(self, name: str, variables: Mapping[str, Any]) -> ResolvedVarInfo | None:
        if name.startswith(SECRETS_PREFIX) and self.secrets is not None:
            source, masked, exists = self.secrets.get_secret_info(name[len(SECRETS_PREFIX) :])
            if exists:
                value = self.secrets.get_secret(name[len(SECRETS_PREFIX) :]) or ""
                return ResolvedVarInfo(
                    value=value,
                    is_secret=True,
                    is_masked=masked,
                    source=source,
                    display_value=MASKED_VALUE if masked else value,
                )

        if name in variables:
            value = str(variables[name])
            return ResolvedVarInfo(value=value, display_value=value)
        return None
