"""Filesystem access and source tree normalization."""
from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import ContextManager, Iterator, List, Protocol
import shutil
import tempfile

from .errors import AcquisitionError, SourceTreeInvalid

ENTRY_POINT = "configure"


@dataclass(slots=True, frozen=True)
class SourceTree:
    """An unpacked source directory holding the build entry point at its root."""

    path: Path
    reused: bool = False

    @classmethod
    def open(
        cls,
        fs: "FileSystem",
        path: Path,
        *,
        entry_point: str = ENTRY_POINT,
        reused: bool = False,
    ) -> "SourceTree":
        """Wrap *path*, raising :class:`SourceTreeInvalid` when the entry point is missing."""
        if not fs.is_file(path / entry_point):
            raise SourceTreeInvalid(path, entry_point)
        return cls(path=path, reused=reused)


class FileSystem(Protocol):
    def exists(self, path: Path) -> bool: ...

    def is_file(self, path: Path) -> bool: ...

    def is_dir(self, path: Path) -> bool: ...

    def list_dir(self, path: Path) -> List[Path]: ...

    def make_dirs(self, path: Path) -> None: ...

    def move(self, source: Path, destination: Path) -> None: ...

    def remove_tree(self, path: Path) -> None: ...

    def temp_dir(self, parent: Path | None = None) -> ContextManager[Path]: ...


class LocalFileSystem:
    """:class:`FileSystem` operating on the real disk."""

    def exists(self, path: Path) -> bool:
        return path.exists() or path.is_symlink()

    def is_file(self, path: Path) -> bool:
        return path.is_file()

    def is_dir(self, path: Path) -> bool:
        return path.is_dir()

    def list_dir(self, path: Path) -> List[Path]:
        return sorted(path.iterdir())

    def make_dirs(self, path: Path) -> None:
        path.mkdir(parents=True, exist_ok=True)

    def move(self, source: Path, destination: Path) -> None:
        shutil.move(str(source), str(destination))

    def remove_tree(self, path: Path) -> None:
        if path.is_dir() and not path.is_symlink():
            shutil.rmtree(path)
        elif self.exists(path):
            path.unlink()

    @contextmanager
    def temp_dir(self, parent: Path | None = None) -> Iterator[Path]:
        if parent is not None:
            parent.mkdir(parents=True, exist_ok=True)
        with tempfile.TemporaryDirectory(prefix=".winebuild-", dir=str(parent) if parent else None) as name:
            yield Path(name)


def normalize(
    fs: FileSystem,
    extracted: Path,
    target: Path,
    *,
    entry_point: str = ENTRY_POINT,
) -> SourceTree:
    """Relocate *extracted* to *target* and flatten one stray level of nesting.

    Archives occasionally wrap the tree in an extra directory, leaving the
    entry point at ``target/<dir>/configure``. That directory's contents are
    promoted to *target*. Raises :class:`AcquisitionError` when the entry
    point cannot be found at either depth.
    """

    if extracted != target:
        if fs.exists(target):
            fs.remove_tree(target)
        fs.make_dirs(target.parent)
        fs.move(extracted, target)
        if not fs.is_dir(target):
            raise AcquisitionError(f"Failed to move extracted directory to {target}")

    if fs.is_file(target / entry_point):
        return SourceTree(path=target)

    nested = next(
        (child for child in fs.list_dir(target) if fs.is_dir(child) and fs.is_file(child / entry_point)),
        None,
    )
    if nested is None:
        listing = ", ".join(child.name for child in fs.list_dir(target)) or "<empty>"
        raise AcquisitionError(
            f"{entry_point} script not found after extraction. Expected at: {target / entry_point} "
            f"(directory contains: {listing})"
        )

    holder = target.with_name(f".{target.name}.denest")
    if fs.exists(holder):
        fs.remove_tree(holder)
    fs.move(target, holder)
    try:
        fs.move(holder / nested.name, target)
    finally:
        fs.remove_tree(holder)

    if not fs.is_file(target / entry_point):
        raise AcquisitionError(f"Still could not find {entry_point} script after flattening {nested.name}")
    return SourceTree(path=target)


__all__ = ["ENTRY_POINT", "FileSystem", "LocalFileSystem", "SourceTree", "normalize"]
