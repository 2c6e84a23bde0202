"""Version selection and reuse confirmation providers."""
from __future__ import annotations

from pathlib import Path
from typing import Callable, Protocol, Sequence, TextIO
import sys

from .errors import SelectionAborted
from .version import sort_versions


class SelectionProvider(Protocol):
    def select(self, versions: Sequence[str]) -> str:
        """Pick one of *versions* or raise :class:`SelectionAborted`."""
        ...


class ReusePrompt(Protocol):
    def confirm_reuse(self, path: Path) -> bool: ...


class InteractiveSelection:
    """Numbered terminal menu; the last entry exits without selecting."""

    def __init__(
        self,
        *,
        input_func: Callable[[str], str] | None = None,
        stream: TextIO | None = None,
        prefix: str = "wine",
    ) -> None:
        self._input = input_func or input
        self._stream = stream or sys.stderr
        self._label = prefix.capitalize()

    def select(self, versions: Sequence[str]) -> str:
        choices = sort_versions(list(versions))
        if not choices:
            raise SelectionAborted("No versions available to select")

        exit_index = len(choices) + 1
        print("Available versions:", file=self._stream)
        for index, version in enumerate(choices, start=1):
            print(f"  {index}) {self._label} version {version}", file=self._stream)
        print(f"  {exit_index}) Exit", file=self._stream)

        while True:
            try:
                answer = self._input("Select a version to build: ").strip()
            except EOFError as exc:
                raise SelectionAborted("Selection cancelled", user_exit=True) from exc
            if not answer:
                raise SelectionAborted("No version selected", user_exit=True)
            if answer.isdigit():
                choice = int(answer)
                if choice == exit_index:
                    raise SelectionAborted("Exiting", user_exit=True)
                if 1 <= choice <= len(choices):
                    return choices[choice - 1]
            if answer in choices:
                return answer
            print(f"Invalid option '{answer}'. Please try again.", file=self._stream)


class LatestSelection:
    """Non-interactive choice of the newest version."""

    def select(self, versions: Sequence[str]) -> str:
        if not versions:
            raise SelectionAborted("No versions available to select")
        return sort_versions(list(versions))[-1]


class FailFastSelection:
    """Refuses to choose; for runs that must name a version explicitly."""

    def select(self, versions: Sequence[str]) -> str:
        listing = " ".join(sort_versions(list(versions))) or "<none>"
        raise SelectionAborted(f"No version requested. Available versions: {listing}")


class InteractiveReusePrompt:
    def __init__(self, *, input_func: Callable[[str], str] | None = None) -> None:
        self._input = input_func or input

    def confirm_reuse(self, path: Path) -> bool:
        try:
            answer = self._input(f"Source already exists at {path}. Use existing source? [Y/n] ")
        except EOFError:
            return True
        return answer.strip().lower() not in ("n", "no")


class FixedReuseAnswer:
    def __init__(self, answer: bool) -> None:
        self.answer = answer

    def confirm_reuse(self, path: Path) -> bool:
        return self.answer


__all__ = [
    "FailFastSelection",
    "FixedReuseAnswer",
    "InteractiveReusePrompt",
    "InteractiveSelection",
    "LatestSelection",
    "ReusePrompt",
    "SelectionProvider",
]
