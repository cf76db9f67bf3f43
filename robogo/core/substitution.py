"""`${name}` substitution, secrets and the per-test-case variable store."""

from __future__ import annotations

import json
import logging
import re
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

from robogo.core.errors import security_error
from robogo.core.models import SecretConfig
from robogo.core.variables import MASKED_VALUE, SECRETS_PREFIX, VARIABLE_PATTERN

logger = logging.getLogger(__name__)

_PATH_TOKEN = re.compile(r"\[(\d+)\]|([^.\[\]]+)")

MISSING = object()


@dataclass(frozen=True)
class Secret:
    value: str
    source: str
    mask_output: bool = True


class SecretStore:
    """Secret values addressable as `${SECRETS.name}`."""

    def __init__(self) -> None:
        self._secrets: dict[str, Secret] = {}

    @classmethod
    def from_config(
        cls,
        secrets: Mapping[str, SecretConfig],
        base_dir: Path | None = None,
    ) -> SecretStore:
        """Build a store from test-case secret declarations.

        File paths are relative to `base_dir`; the trailing newline is stripped.
        """
        store = cls()
        for name, config in secrets.items():
            if config.value is not None:
                store.add(name, config.value, mask_output=config.mask_output, source="inline")
                continue

            path = Path(config.file or "")
            if base_dir is not None and not path.is_absolute():
                path = base_dir / path
            try:
                value = path.read_text(encoding="utf-8").rstrip("\r\n")
            except OSError as e:
                raise security_error(
                    f"failed to read secret '{name}' from {path}", cause=e
                ).with_details({"secret": name, "file": str(path)}) from e
            store.add(name, value, mask_output=config.mask_output, source=f"file:{path}")
        return store

    def add(self, name: str, value: str, *, mask_output: bool = True, source: str = "inline") -> None:
        self._secrets[name] = Secret(value=value, source=source, mask_output=mask_output)

    def get_secret(self, name: str) -> str | None:
        secret = self._secrets.get(name)
        return secret.value if secret is not None else None

    def get_secret_info(self, name: str) -> tuple[str, bool, bool]:
        secret = self._secrets.get(name)
        if secret is None:
            return "", False, False
        return secret.source, secret.mask_output, True

    def is_secret_masked(self, name: str) -> bool:
        return self.get_secret_info(name)[1]

    def list_secrets(self) -> list[str]:
        return sorted(self._secrets)

    def mask_output(self, text: str) -> str:
        """Replace every masked secret value in `text` with [MASKED]."""
        if not text:
            return text
        # Longest first so a secret containing another is masked whole
        values = sorted(
            (s.value for s in self._secrets.values() if s.mask_output and s.value),
            key=len,
            reverse=True,
        )
        for value in values:
            text = text.replace(value, MASKED_VALUE)
        return text


def lookup_path(variables: Mapping[str, Any], name: str) -> Any:
    """Resolve `name`, `a.b.c` or `items[0].id` against `variables`.

    Returns MISSING when any segment is absent.
    """
    if name in variables:
        return variables[name]
    if not name:
        return MISSING

    current: Any = variables
    for match in _PATH_TOKEN.finditer(name):
        index, key = match.groups()
        if index is not None or (key is not None and key.isdigit() and isinstance(current, list)):
            position = int(index if index is not None else key)
            if not isinstance(current, (list, tuple)) or position >= len(current):
                return MISSING
            current = current[position]
        elif isinstance(current, Mapping):
            if key not in current:
                return MISSING
            current = current[key]
        else:
            return MISSING
    return current


def stringify(value: Any) -> str:
    """Text form of a variable value used inside larger strings."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str)
    return str(value)


class VariableSubstitutor:
    """Replace `${name}` placeholders; unknown ones are left intact."""

    def __init__(self, secrets: SecretStore | None = None) -> None:
        self.secrets = secrets or SecretStore()

    def resolve(self, name: str, variables: Mapping[str, Any]) -> Any:
        if name.startswith(SECRETS_PREFIX):
            value = self.secrets.get_secret(name[len(SECRETS_PREFIX) :])
            return MISSING if value is None else value
        return lookup_path(variables, name.strip())

    def substitute_string(self, text: str, variables: Mapping[str, Any]) -> Any:
        """Substitute placeholders in `text`.

        A string that is exactly one resolvable placeholder yields the raw
        value, so lists and numbers keep their type.
        """
        whole = VARIABLE_PATTERN.fullmatch(text)
        if whole is not None:
            value = self.resolve(whole.group(1), variables)
            return text if value is MISSING else value

        def replace(match: re.Match[str]) -> str:
            value = self.resolve(match.group(1), variables)
            if value is MISSING:
                return match.group(0)
            return stringify(value)

        return VARIABLE_PATTERN.sub(replace, text)

    def substitute(self, value: Any, variables: Mapping[str, Any]) -> Any:
        """Recursively substitute through strings, lists and dicts."""
        if isinstance(value, str):
            return self.substitute_string(value, variables)
        if isinstance(value, list):
            return [self.substitute(v, variables) for v in value]
        if isinstance(value, dict):
            return {k: self.substitute(v, variables) for k, v in value.items()}
        return value

    def substitute_text(self, text: str, variables: Mapping[str, Any]) -> str:
        """Like substitute_string but always returns text."""
        return stringify(self.substitute_string(text, variables))


class VariableStore:
    """Executor-owned variables for one test case.

    Writes go through the lock; readers get snapshots.
    """

    def __init__(self, initial: Mapping[str, Any] | None = None) -> None:
        self._lock = threading.Lock()
        self._values: dict[str, Any] = dict(initial or {})

    def set(self, name: str, value: Any) -> None:
        with self._lock:
            self._values[name] = value

    def get(self, name: str, default: Any = None) -> Any:
        with self._lock:
            return self._values.get(name, default)

    def delete(self, name: str) -> None:
        with self._lock:
            self._values.pop(name, None)

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            return dict(self._values)

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._values
