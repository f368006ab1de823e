"""Cross-stage variable namespaces.

A deploy action publishes its stack outputs under a namespace; a later action
refers to them as ``#{Namespace.OutputName}``.  Lookups are case-sensitive.
"""

from __future__ import annotations

import threading
from typing import Any

from crossdeploy.core.stage_graph import VARIABLE_REF_RE, variable_ref


class UnresolvedVariableError(KeyError):
    """Raised when a reference names a namespace or key nobody published."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else ""


class NamespaceConflictError(ValueError):
    """Raised when a namespace is published twice within one run."""


class VariableNamespaces:
    """Published outputs of one run, keyed by namespace."""

    def __init__(self) -> None:
        self._values: dict[str, dict[str, str]] = {}
        self._lock = threading.Lock()

    def publish(self, namespace: str, outputs: dict[str, str]) -> None:
        """Publish ``outputs`` under ``namespace``.  Namespaces are write-once."""
        for key, value in outputs.items():
            if not isinstance(value, str):
                raise TypeError(
                    f"{namespace}.{key} must be a string, got {type(value).__name__}"
                )
        with self._lock:
            if namespace in self._values:
                raise NamespaceConflictError(
                    f"Namespace {namespace!r} has already been published"
                )
            self._values[namespace] = dict(outputs)

    def get(self, namespace: str, key: str) -> str:
        try:
            return self._values[namespace][key]
        except KeyError:
            raise UnresolvedVariableError(
                f"{variable_ref(namespace, key)} is not published "
                f"(known namespaces: {sorted(self._values)})"
            ) from None

    def resolve(self, value: Any) -> Any:
        """Substitute every ``#{Namespace.Key}`` reference in ``value``.

        Strings, dicts and lists are walked recursively; other values pass
        through unchanged.
        """
        if isinstance(value, str):
            return VARIABLE_REF_RE.sub(lambda m: self.get(m.group(1), m.group(2)), value)
        if isinstance(value, dict):
            return {k: self.resolve(v) for k, v in value.items()}
        if isinstance(value, (list, tuple)):
            return [self.resolve(v) for v in value]
        return value

    def snapshot(self) -> dict[str, dict[str, str]]:
        with self._lock:
            return {ns: dict(values) for ns, values in self._values.items()}
