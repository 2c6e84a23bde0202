"""Patch set discovery and version matching."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Dict, List, Sequence
import hashlib

from .version import is_version, major_minor, sort_versions

if TYPE_CHECKING:
    from .context import Console


@dataclass(slots=True, frozen=True)
class PatchSet:
    """Patch files for one version key, in application order."""

    version: str
    directory: Path
    patches: tuple[Path, ...]
    manifest: Path | None = None
    fallback: bool = False

    def verify_manifest(self) -> List[Path]:
        """Return patches whose SHA-256 differs from (or is missing in) the manifest."""

        if self.manifest is None:
            return []
        expected = parse_manifest(self.manifest.read_text(encoding="utf-8"))
        mismatched: List[Path] = []
        for patch in self.patches:
            digest = hashlib.sha256(patch.read_bytes()).hexdigest()
            if expected.get(patch.name) != digest:
                mismatched.append(patch)
        return mismatched


def parse_manifest(text: str) -> Dict[str, str]:
    """Parse ``sha256sum`` output (``<digest>  [*]<name>`` per line)."""

    digests: Dict[str, str] = {}
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        parts = line.split(None, 1)
        if len(parts) != 2:
            continue
        digest, name = parts
        digests[Path(name.lstrip("*")).name] = digest.lower()
    return digests


class PatchCatalog:
    """Patch sets stored as ``<base>/<prefix>-<version>/`` directories.

    The base directory is the first entry of *search_paths* that is a
    directory; when none is, the catalog is empty and callers build unpatched.
    """

    def __init__(
        self,
        search_paths: Sequence[Path],
        *,
        console: "Console | None" = None,
        prefix: str = "wine",
        suffix: str = ".patch",
        manifest: str = "SHA256SUMS.txt",
    ) -> None:
        self._base = next((path for path in search_paths if path.is_dir()), None)
        self._console = console
        self._prefix = prefix
        self._suffix = suffix
        self._manifest = manifest

    @property
    def base(self) -> Path | None:
        return self._base

    def versions(self) -> List[str]:
        """All versions with a patch directory, in version order."""

        return sort_versions(list(self._directories()))

    def resolve(self, version: str) -> PatchSet | None:
        """Find the patch set for *version*.

        Lookup order: full version, ``major.minor``, then the newest available
        set, flagged ``fallback`` and reported with a compatibility warning.
        ``None`` means there are no patch sets at all.
        """

        directories = self._directories()
        if not directories:
            return None
        if version in directories:
            return self._load(version, directories[version])
        truncated = major_minor(version)
        if truncated in directories:
            return self._load(truncated, directories[truncated])
        newest = sort_versions(list(directories))[-1]
        if self._console is not None:
            self._console.warn(
                f"No patch set matches version {version}; using {directories[newest]} "
                "(version may not match exactly)"
            )
        return self._load(newest, directories[newest], fallback=True)

    def _directories(self) -> Dict[str, Path]:
        if self._base is None:
            return {}
        marker = f"{self._prefix}-"
        found: Dict[str, Path] = {}
        for entry in self._base.iterdir():
            if not entry.is_dir() or not entry.name.startswith(marker):
                continue
            version = entry.name[len(marker):]
            if is_version(version):
                found[version] = entry
        return found

    def _load(self, version: str, directory: Path, *, fallback: bool = False) -> PatchSet:
        patches = sorted(
            (entry for entry in directory.iterdir()
             if entry.is_file() and entry.name.endswith(self._suffix) and entry.name != self._manifest),
            key=lambda entry: entry.name,
        )
        manifest = directory / self._manifest
        return PatchSet(
            version=version,
            directory=directory,
            patches=tuple(patches),
            manifest=manifest if manifest.is_file() else None,
            fallback=fallback,
        )

__all__ = ["PatchCatalog", "PatchSet", "parse_manifest"]
