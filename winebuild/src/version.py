"""Version detection and selection for source trees."""
from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Sequence
import re

if TYPE_CHECKING:
    from .catalog import PatchCatalog
    from .context import Console
    from .selection import SelectionProvider

VERSION_PATTERN = re.compile(r"^[0-9]+(\.[0-9]+)*$")
_TOKEN = r"([0-9]+(?:\.[0-9]+)*)"


def is_version(text: str | None) -> bool:
    return bool(text) and VERSION_PATTERN.match(text) is not None


def version_key(version: str) -> tuple[int, ...]:
    """Sort key ordering versions numerically (``9.22`` < ``10.1``)."""
    return tuple(int(part) for part in version.split("."))


def major_minor(version: str) -> str:
    return ".".join(version.split(".")[:2])


def sort_versions(versions: Sequence[str]) -> list[str]:
    return sorted(versions, key=version_key)


def template_variables(version: str, prefix: str) -> dict[str, str]:
    """Placeholders available to version-templated locations.

    ``series`` is the release series directory used by upstream mirrors:
    the version without its last component followed by ``.x`` (``10.x`` for
    ``10.1``, ``9.x`` for ``9.22``).
    """
    parts = version.split(".")
    series_root = ".".join(parts[:-1]) if len(parts) > 1 else parts[0]
    return {
        "version": version,
        "major": parts[0],
        "minor": parts[1] if len(parts) > 1 else "0",
        "series": f"{series_root}.x",
        "prefix": prefix,
    }


class VersionResolver:
    """Determine which version a source tree is, or which one to fetch.

    A version hint (``WINE_VERSION``) takes precedence when the catalog knows
    it. Otherwise trees are inspected (``VERSION`` first, then the
    ``configure.ac`` declarations) and acquisition falls back to the
    selection provider.
    """

    def __init__(
        self,
        *,
        catalog: "PatchCatalog",
        selection: "SelectionProvider",
        console: "Console",
        hint: str | None = None,
        prefix: str = "wine",
        metadata_file: str = "VERSION",
        declaration_file: str = "configure.ac",
    ) -> None:
        self._catalog = catalog
        self._selection = selection
        self._console = console
        self._hint = hint.strip() if hint else None
        self._metadata_file = metadata_file
        self._declaration_file = declaration_file
        escaped = re.escape(prefix)
        self._metadata_patterns = (
            re.compile(rf"^\s*{escaped}\s+version\s+{_TOKEN}", re.IGNORECASE),
            re.compile(rf"^\s*{escaped}-{_TOKEN}", re.IGNORECASE),
            re.compile(rf"^\s*version\s+{_TOKEN}", re.IGNORECASE),
            re.compile(rf"^\s*v?{_TOKEN}\s*$"),
        )
        self._assignment_pattern = re.compile(rf"^{escaped.upper()}_VERSION=\[?{_TOKEN}", re.MULTILINE)
        self._init_pattern = re.compile(rf"^AC_INIT\(.*{escaped}.*$", re.MULTILINE | re.IGNORECASE)

    def detect(self, tree: Path) -> str | None:
        """Read the version embedded in *tree*, or ``None`` when undetectable."""

        version = self._from_metadata(tree / self._metadata_file)
        if version is None:
            version = self._from_declaration(tree / self._declaration_file)
        if version is None:
            self._console.warn(f"Could not detect the version of the source tree at {tree}")
            return None
        self._console.info(f"Detected version: {version}")
        return version

    def resolve(self, tree: Path) -> str | None:
        """Version used to pick patches for *tree*."""

        hint = self._valid_hint()
        if hint is not None:
            return hint
        return self.detect(tree)

    def choose(self) -> str:
        """Version to acquire: a valid hint, otherwise the selection provider's answer."""

        hint = self._valid_hint()
        if hint is not None:
            return hint
        return self._selection.select(self._catalog.versions())

    def _valid_hint(self) -> str | None:
        if not self._hint:
            return None
        available = self._catalog.versions()
        if self._hint in available:
            return self._hint
        listing = " ".join(available) if available else "<none>"
        self._console.warn(
            f"Requested version {self._hint} not found in patches. Available versions: {listing}"
        )
        return None

    def _from_metadata(self, path: Path) -> str | None:
        if not path.is_file():
            return None
        lines = path.read_text(encoding="utf-8", errors="replace").splitlines()
        if not lines:
            return None
        first = lines[0]
        for pattern in self._metadata_patterns:
            match = pattern.search(first)
            if match:
                return match.group(1)
        return None

    def _from_declaration(self, path: Path) -> str | None:
        if not path.is_file():
            return None
        text = path.read_text(encoding="utf-8", errors="replace")
        match = self._assignment_pattern.search(text)
        if match:
            return match.group(1)
        for line in self._init_pattern.finditer(text):
            bracketed = re.search(rf"\[{_TOKEN}\]", line.group(0))
            if bracketed:
                return bracketed.group(1)
        return None


__all__ = [
    "VERSION_PATTERN",
    "VersionResolver",
    "is_version",
    "major_minor",
    "sort_versions",
    "template_variables",
    "version_key",
]
