"""Unpacking of downloaded source archives."""
from __future__ import annotations

from pathlib import Path
from typing import Callable, Dict, Protocol, runtime_checkable
import tarfile
import zipfile

import zstandard as zstd


@runtime_checkable
class ArchiveConsole(Protocol):
    dry_run: bool

    def info(self, message: str) -> None: ...

    def dry(self, message: str) -> None: ...


Unpacker = Callable[[Path, Path], None]


def _tar(mode: str) -> Unpacker:
    def unpack(archive: Path, destination: Path) -> None:
        with tarfile.open(archive, mode) as bundle:
            bundle.extractall(destination, filter="data")

    return unpack


def _tar_zst(archive: Path, destination: Path) -> None:
    # zstandard readers are not seekable, so the tar is read as a stream
    with archive.open("rb") as raw, zstd.ZstdDecompressor().stream_reader(raw) as reader:
        with tarfile.open(fileobj=reader, mode="r|") as bundle:
            bundle.extractall(destination, filter="data")


def _zip(archive: Path, destination: Path) -> None:
    with zipfile.ZipFile(archive) as bundle:
        bundle.extractall(destination)


UNPACKERS: Dict[str, Unpacker] = {
    "zst": _tar_zst,
    "xztar": _tar("r:xz"),
    "gztar": _tar("r:gz"),
    "bztar": _tar("r:bz2"),
    "tar": _tar("r:"),
    "zip": _zip,
}

SUFFIXES: Dict[str, str] = {
    ".tar.zst": "zst",
    ".tzst": "zst",
    ".tar.xz": "xztar",
    ".txz": "xztar",
    ".tar.gz": "gztar",
    ".tgz": "gztar",
    ".tar.bz2": "bztar",
    ".tbz2": "bztar",
    ".tar": "tar",
    ".zip": "zip",
}


def archive_format(path: Path | str) -> str:
    """Name the format of *path* from its suffix, e.g. ``"xztar"``."""

    name = Path(path).name.lower()
    for suffix, fmt in SUFFIXES.items():
        if name.endswith(suffix):
            return fmt
    raise ValueError(f"Unrecognised archive type: '{name}' (known suffixes: {' '.join(SUFFIXES)})")


def archive_filename(url: str) -> str:
    """The file name a download of *url* should be stored under."""

    name = url.split("?", 1)[0].rstrip("/").rsplit("/", 1)[-1]
    if not name:
        raise ValueError(f"URL '{url}' does not end in a file name")
    return name


class ArchiveExtractor:
    def __init__(self, console: ArchiveConsole) -> None:
        self._console = console

    def extract(self, archive: Path, destination: Path, *, format_hint: str | None = None) -> Path:
        """Unpack *archive* into *destination*, creating it when needed.

        Tar members that would land outside *destination* (absolute paths,
        ``..`` components, links escaping the tree) are rejected by the
        ``data`` extraction filter.
        """
        if self._console.dry_run:
            self._console.dry(f"Would extract {archive} to {destination}")
            return destination
        if not archive.is_file():
            raise FileNotFoundError(f"Archive '{archive}' does not exist")

        fmt = format_hint or archive_format(archive)
        unpack = UNPACKERS.get(fmt)
        if unpack is None:
            raise ValueError(f"Unsupported archive format: {fmt}")

        destination.mkdir(parents=True, exist_ok=True)
        unpack(archive, destination)
        self._console.info(f"Extracted {archive.name} to {destination}")
        return destination


__all__ = [
    "ArchiveConsole",
    "ArchiveExtractor",
    "archive_filename",
    "archive_format",
]
