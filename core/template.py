"""``{{dotted.path}}`` placeholders in configuration values."""
from __future__ import annotations

from typing import Any, Mapping
import re


_PLACEHOLDER = re.compile(r"\{\{\s*([\w.-]+)\s*\}\}")


class TemplateError(ValueError):
    """Raised when a placeholder cannot be expanded."""


class TemplateResolver:
    """Expands placeholders against a nested mapping of *variables*.

    A string that is nothing but one placeholder becomes the referenced value
    itself, so ``"{{build.threads}}"`` stays an ``int``; placeholders inside
    longer text are formatted with :func:`str`. Referenced values are expanded
    in turn, and each path is expanded at most once per resolver.
    """

    def __init__(self, variables: Mapping[str, Any]) -> None:
        self.variables = variables
        self._expanded: dict[str, Any] = {}

    def resolve(self, value: Any) -> Any:
        return self._expand(value, ())

    def lookup(self, path: str) -> Any:
        return self._lookup(path, ())

    def _expand(self, value: Any, chain: tuple[str, ...]) -> Any:
        if isinstance(value, str):
            whole = _PLACEHOLDER.fullmatch(value.strip())
            if whole:
                return self._lookup(whole.group(1), chain)
            return _PLACEHOLDER.sub(lambda match: str(self._lookup(match.group(1), chain)), value)
        if isinstance(value, Mapping):
            return {key: self._expand(item, chain) for key, item in value.items()}
        if isinstance(value, (list, tuple)):
            return type(value)(self._expand(item, chain) for item in value)
        return value

    def _lookup(self, path: str, chain: tuple[str, ...]) -> Any:
        if path in chain:
            raise TemplateError("Circular placeholder reference: " + " -> ".join((*chain, path)))
        if path not in self._expanded:
            self._expanded[path] = self._expand(self._raw(path), (*chain, path))
        return self._expanded[path]

    def _raw(self, path: str) -> Any:
        node: Any = self.variables
        for key in path.split("."):
            if not isinstance(node, Mapping) or key not in node:
                raise TemplateError(f"Unknown placeholder '{{{{{path}}}}}'")
            node = node[key]
        return node


__all__ = ["TemplateError", "TemplateResolver"]
