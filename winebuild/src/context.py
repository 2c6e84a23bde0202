"""
Run context: resolved settings, the console and the command runner.
"""
import sys
from dataclasses import dataclass
from typing import Iterable

from core.archive import ArchiveConsole
from core.command_runner import CommandRunner

from .settings import Settings


class Console(ArchiveConsole):
    """Leveled terminal output.

    Levels, quietest first: none, error, warn, info, debug. Errors and
    warnings go to stderr, everything else to stdout. ``[DRY]`` lines are
    shown for dry runs regardless of level.
    """

    LEVELS = ("none", "error", "warn", "info", "debug")

    def __init__(self, level: str = "info", dry_run: bool = False):
        self.level = self.LEVELS.index(level) if level in self.LEVELS else self.LEVELS.index("info")
        self.dry_run = dry_run

    def enabled(self, level: str) -> bool:
        return self.level >= self.LEVELS.index(level)

    def _emit(self, level: str, text: str) -> None:
        if self.enabled(level):
            print(text, file=sys.stderr if level in ("error", "warn") else sys.stdout)

    def error(self, message: str) -> None:
        self._emit("error", f"[ERROR] {message}")

    def warn(self, message: str) -> None:
        self._emit("warn", f"[WARN] {message}")

    def info(self, message: str) -> None:
        self._emit("info", f"[INFO] {message}")

    def debug(self, message: str) -> None:
        self._emit("debug", f"[DEBUG] {message}")

    def dry(self, message: str) -> None:
        if self.dry_run:
            print(f"[DRY] {message}")

    def block(self, lines: Iterable[str], *, level: str = "info") -> None:
        """Indented raw output, e.g. the tail of a build log."""
        for line in lines:
            self._emit(level, f"    {line}")


@dataclass
class Context:
    settings: Settings
    console: Console
    runner: CommandRunner
