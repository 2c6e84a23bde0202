"""Reading layered configuration from TOML, YAML and JSON files."""
from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Sequence
import json
import tomllib

import yaml


def _read_toml(path: Path) -> Any:
    with path.open("rb") as handle:
        return tomllib.load(handle)


def _read_yaml(path: Path) -> Any:
    with path.open(encoding="utf-8") as handle:
        try:
            return yaml.safe_load(handle)
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid YAML in '{path}': {exc}") from exc


def _read_json(path: Path) -> Any:
    with path.open(encoding="utf-8") as handle:
        return json.load(handle)


READERS: Dict[str, Callable[[Path], Any]] = {
    ".toml": _read_toml,
    ".yaml": _read_yaml,
    ".yml": _read_yaml,
    ".json": _read_json,
}


def load_config_file(path: Path) -> Mapping[str, Any]:
    """Decode one configuration file; an empty document yields ``{}``."""

    reader = READERS.get(path.suffix.lower())
    if reader is None:
        raise ValueError(f"Cannot read '{path.name}': expected one of {', '.join(sorted(READERS))}")
    data = reader(path)
    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise TypeError(f"Top level of '{path}' is a {type(data).__name__}, expected a table")
    return data


def load_config_tree(path: Path) -> Dict[str, Any]:
    """Load *path*, or every readable file inside it when it is a directory.

    Directory files are layered in name order, so ``20-local.yaml``
    overrides ``10-base.toml``.
    """

    if path.is_dir():
        files = [entry for entry in sorted(path.iterdir()) if entry.is_file() and entry.suffix.lower() in READERS]
    else:
        files = [path]

    merged: Dict[str, Any] = {}
    for entry in files:
        merged = merge_mappings(merged, load_config_file(entry))
    return merged


def merge_mappings(base: Mapping[str, Any], overlay: Mapping[str, Any]) -> Dict[str, Any]:
    """Return *base* updated by *overlay*; nested tables merge, anything else is replaced."""

    merged = dict(base)
    for key, value in overlay.items():
        current = merged.get(key)
        if isinstance(current, Mapping) and isinstance(value, Mapping):
            value = merge_mappings(current, value)
        merged[key] = value
    return merged


def string_list(value: Any, *, field_name: str = "value") -> List[str]:
    """Accept a single string or a list of strings; blanks are dropped."""

    if value is None:
        return []
    items = [value] if isinstance(value, str) else value
    if not isinstance(items, Sequence):
        raise TypeError(f"{field_name} must be a string or a list of strings")
    result: List[str] = []
    for item in items:
        if not isinstance(item, str):
            raise TypeError(f"{field_name} entries must be strings, got {type(item).__name__}")
        if item.strip():
            result.append(item.strip())
    return result


__all__ = [
    "READERS",
    "load_config_file",
    "load_config_tree",
    "merge_mappings",
    "string_list",
]
