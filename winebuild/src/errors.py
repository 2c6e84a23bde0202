"""Exception hierarchy for winebuild."""
from __future__ import annotations

from pathlib import Path


class WineBuildError(RuntimeError):
    """Base class for fatal winebuild failures."""


class ConfigurationError(ValueError):
    """Raised when settings cannot be loaded or are invalid."""


class SourceTreeInvalid(WineBuildError):
    """Raised when a directory lacks the build entry point."""

    def __init__(self, path: Path, entry_point: str):
        super().__init__(f"'{path}' is not a valid source tree ({entry_point} not found)")
        self.path = path
        self.entry_point = entry_point


class AcquisitionError(WineBuildError):
    """Raised when a source tree cannot be downloaded, extracted or normalized."""


class FetchError(AcquisitionError):
    """Raised when an archive download fails."""


class PrerequisitesError(WineBuildError):
    """Raised when required host packages or headers are unavailable."""

    def __init__(self, message: str, hint: str | None = None):
        super().__init__(message)
        self.hint = hint


class SelectionAborted(WineBuildError):
    """Raised when no version could be selected.

    ``user_exit`` distinguishes an explicit exit from the menu from a
    selection that was impossible.
    """

    def __init__(self, message: str, *, user_exit: bool = False):
        super().__init__(message)
        self.user_exit = user_exit
