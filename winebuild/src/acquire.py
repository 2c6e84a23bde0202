"""Source tree acquisition: reuse, download, extract and normalize."""
from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Protocol, Sequence
import tarfile
import zipfile

import zstandard as zstd

from core.archive import archive_filename
from core.template import TemplateError, TemplateResolver

from .errors import AcquisitionError, SourceTreeInvalid
from .filesystem import ENTRY_POINT, FileSystem, SourceTree, normalize
from .version import template_variables

if TYPE_CHECKING:
    from .context import Console
    from .fetcher import Fetcher
    from .selection import ReusePrompt


class Extractor(Protocol):
    def extract(self, archive: Path, destination: Path, *, format_hint: str | None = None) -> Path: ...


def source_url(url_template: str, version: str, *, prefix: str) -> str:
    """Expand *url_template* for *version*."""

    try:
        return str(TemplateResolver(template_variables(version, prefix)).resolve(url_template))
    except TemplateError as exc:
        raise AcquisitionError(f"Invalid source URL template '{url_template}': {exc}") from exc


def discover(fs: FileSystem, candidates: Sequence[Path], *, entry_point: str = ENTRY_POINT) -> SourceTree | None:
    """Return the first candidate directory that already holds a source tree."""

    for candidate in candidates:
        try:
            return SourceTree.open(fs, candidate, entry_point=entry_point, reused=True)
        except SourceTreeInvalid:
            continue
    return None


class SourceAcquirer:
    """Make sure a valid source tree for a version exists at a target path.

    A valid tree already at the target is offered for reuse; anything else
    there is removed before a fresh archive is downloaded and extracted into
    a temporary workspace next to the target. The workspace is discarded
    whether or not acquisition succeeds.
    """

    def __init__(
        self,
        *,
        fs: FileSystem,
        fetcher: "Fetcher",
        extractor: Extractor,
        reuse_prompt: "ReusePrompt",
        console: "Console",
        url_template: str,
        prefix: str = "wine",
        entry_point: str = ENTRY_POINT,
        dry_run: bool = False,
    ) -> None:
        self._fs = fs
        self._fetcher = fetcher
        self._extractor = extractor
        self._reuse_prompt = reuse_prompt
        self._console = console
        self._url_template = url_template
        self._prefix = prefix
        self._entry_point = entry_point
        self._dry_run = dry_run

    def ensure(self, version: str, target: Path) -> SourceTree:
        url = source_url(self._url_template, version, prefix=self._prefix)

        if self._dry_run:
            self._console.dry(f"Would download {url}")
            self._console.dry(f"Would extract {self._prefix}-{version} to {target}")
            return SourceTree(path=target)

        if self._fs.exists(target):
            try:
                existing = SourceTree.open(self._fs, target, entry_point=self._entry_point, reused=True)
            except SourceTreeInvalid as exc:
                self._console.warn(f"Removing invalid source directory: {exc}")
            else:
                if self._reuse_prompt.confirm_reuse(target):
                    self._console.info(f"Using existing source at {target}")
                    return existing
                self._console.info(f"Removing existing source at {target}")
            self._remove(target)

        return self._download(version, url, target)

    def _download(self, version: str, url: str, target: Path) -> SourceTree:
        top_level = f"{self._prefix}-{version}"
        try:
            with self._fs.temp_dir(target.parent) as workspace:
                archive = self._fetcher.fetch(url, workspace / archive_filename(url))
                extracted = workspace / "extract"
                self._extractor.extract(archive, extracted)
                source = extracted / top_level
                if not self._fs.is_dir(source):
                    listing = ", ".join(entry.name for entry in self._fs.list_dir(extracted)) or "<empty>"
                    raise AcquisitionError(
                        f"Archive {archive.name} does not contain {top_level} (found: {listing})"
                    )
                tree = normalize(self._fs, source, target, entry_point=self._entry_point)
        except AcquisitionError:
            raise
        except (OSError, ValueError, tarfile.TarError, zipfile.BadZipFile, zstd.ZstdError) as exc:
            raise AcquisitionError(f"Failed to acquire {top_level}: {exc}") from exc

        self._console.info(f"Source ready at {tree.path}")
        return tree

    def _remove(self, path: Path) -> None:
        try:
            self._fs.remove_tree(path)
        except OSError as exc:
            raise AcquisitionError(f"Failed to remove {path}: {exc}") from exc


__all__ = ["Extractor", "SourceAcquirer", "discover", "source_url"]
