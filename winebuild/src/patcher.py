"""Ordered, degrading patch application."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Protocol, Sequence

from core.command_runner import CommandRunner

from .catalog import PatchSet
from .context import Console
from .filesystem import SourceTree


class PatchOutcome(str, Enum):
    APPLIED_CLEAN = "applied"
    APPLIED_FUZZY = "applied-fuzzy"
    ALREADY_APPLIED = "already-applied"
    FAILED = "failed"


@dataclass(slots=True, frozen=True)
class PatchResult:
    patch: Path
    outcome: PatchOutcome
    detail: str = ""


@dataclass(slots=True)
class PatchReport:
    """Aggregate of a patch run. Informational only."""

    version: str | None = None
    patch_set: PatchSet | None = None
    results: List[PatchResult] = field(default_factory=list)
    skipped_reason: str | None = None
    planned: bool = False

    @classmethod
    def skipped(cls, reason: str, *, version: str | None = None) -> "PatchReport":
        return cls(version=version, skipped_reason=reason)

    @property
    def applied(self) -> int:
        return sum(1 for result in self.results if result.outcome is not PatchOutcome.FAILED)

    @property
    def failed(self) -> int:
        return sum(1 for result in self.results if result.outcome is PatchOutcome.FAILED)

    def failures(self) -> List[PatchResult]:
        return [result for result in self.results if result.outcome is PatchOutcome.FAILED]


@dataclass(slots=True, frozen=True)
class PatchAttempt:
    """Structured outcome of one invocation of a patch tool."""

    applied: bool = False
    already_applied: bool = False
    targets_exist: bool = False
    output: str = ""


class PatchTool(Protocol):
    def apply(self, tree: Path, patch: Path, *, fuzz: int) -> PatchAttempt:
        """Apply *patch* to *tree* with the given fuzz factor, atomically per file set."""
        ...

    def check_applied(self, tree: Path, patch: Path) -> PatchAttempt:
        """Report whether *patch* is already present in *tree* without changing it."""
        ...


class GnuPatchTool:
    """:class:`PatchTool` backed by GNU ``patch`` in unified-diff mode.

    Every real application is preceded by a dry run with the same options so
    a patch that does not apply never leaves partially applied hunks behind.
    """

    _TARGET_EXISTS_MARKERS = ("already exists", "Reversed (or previously applied)")

    def __init__(self, runner: CommandRunner, *, strip: int = 1, executable: str = "patch") -> None:
        self._runner = runner
        self._strip = strip
        self._executable = executable

    def _command(self, patch: Path, *options: str) -> List[str]:
        return [self._executable, f"-p{self._strip}", "--batch", *options, "-i", str(patch)]

    def _run(self, tree: Path, command: Sequence[str]):
        return self._runner.run(command, cwd=tree, check=False, merge_output=True)

    def apply(self, tree: Path, patch: Path, *, fuzz: int) -> PatchAttempt:
        options = ("--forward", f"--fuzz={fuzz}")
        probe = self._run(tree, self._command(patch, *options, "--dry-run"))
        if not probe.ok:
            return PatchAttempt(output=probe.output)
        result = self._run(tree, self._command(patch, *options, "--no-backup-if-mismatch"))
        return PatchAttempt(applied=result.ok, output=result.output)

    def check_applied(self, tree: Path, patch: Path) -> PatchAttempt:
        reverse = self._run(tree, self._command(patch, "--reverse", "--dry-run"))
        if reverse.ok:
            return PatchAttempt(already_applied=True, output=reverse.output)
        forward = self._run(tree, self._command(patch, "--forward", "--dry-run"))
        exists = any(marker in forward.output for marker in self._TARGET_EXISTS_MARKERS)
        return PatchAttempt(targets_exist=exists, output=forward.output)


class PatchApplier:
    """Apply a :class:`PatchSet` file by file, never aborting the run.

    Each patch is tried strictly, then with fuzz, then probed for prior
    application; anything else is recorded as failed and the loop moves on.
    """

    def __init__(
        self,
        tool: PatchTool,
        console: Console,
        *,
        fuzz: int = 3,
        verify_checksums: bool = False,
    ) -> None:
        self._tool = tool
        self._console = console
        self._fuzz = fuzz
        self._verify_checksums = verify_checksums

    def plan(self, patch_set: PatchSet) -> PatchReport:
        """List what :meth:`apply` would do without invoking the patch tool."""
        self._console.dry(f"Would apply {len(patch_set.patches)} patch(es) from {patch_set.directory}")
        for patch in patch_set.patches:
            self._console.dry(f"Would apply patch: {patch.name}")
        return PatchReport(version=patch_set.version, patch_set=patch_set, planned=True)

    def apply(self, tree: SourceTree, patch_set: PatchSet) -> PatchReport:
        report = PatchReport(version=patch_set.version, patch_set=patch_set)
        self._console.info(f"Applying patches from: {patch_set.directory}")

        rejected: set[Path] = set()
        if self._verify_checksums:
            rejected = set(patch_set.verify_manifest())

        for patch in patch_set.patches:
            self._console.info(f"Applying patch: {patch.name}")
            if patch in rejected:
                result = PatchResult(patch, PatchOutcome.FAILED, "checksum mismatch")
            else:
                result = self._apply_one(tree.path, patch)
            report.results.append(result)
            self._log_result(result)

        if report.applied == 0:
            self._console.warn("No patches were applied.")
        else:
            self._console.info(f"Applied {report.applied} patch(es).")
        if report.failed:
            names = ", ".join(result.patch.name for result in report.failures())
            self._console.warn(f"{report.failed} patch(es) failed to apply: {names}")
        return report

    def _apply_one(self, tree: Path, patch: Path) -> PatchResult:
        strict = self._tool.apply(tree, patch, fuzz=0)
        if strict.applied:
            return PatchResult(patch, PatchOutcome.APPLIED_CLEAN)

        fuzzy = self._tool.apply(tree, patch, fuzz=self._fuzz)
        if fuzzy.applied:
            return PatchResult(patch, PatchOutcome.APPLIED_FUZZY)

        probe = self._tool.check_applied(tree, patch)
        if probe.already_applied:
            return PatchResult(patch, PatchOutcome.ALREADY_APPLIED, "reverse applies cleanly")
        if probe.targets_exist:
            return PatchResult(patch, PatchOutcome.ALREADY_APPLIED, "target files exist")

        detail = (fuzzy.output or strict.output).strip()
        return PatchResult(patch, PatchOutcome.FAILED, detail)

    def _log_result(self, result: PatchResult) -> None:
        if result.outcome is PatchOutcome.APPLIED_CLEAN:
            self._console.info("  ✓ Successfully applied")
        elif result.outcome is PatchOutcome.APPLIED_FUZZY:
            self._console.info("  ✓ Successfully applied (with fuzz)")
        elif result.outcome is PatchOutcome.ALREADY_APPLIED:
            self._console.info(f"  ✓ Already applied ({result.detail})")
        else:
            self._console.warn(f"  ✗ Failed to apply {result.patch.name}")
            if result.detail:
                self._console.debug(result.detail)


__all__ = [
    "GnuPatchTool",
    "PatchApplier",
    "PatchAttempt",
    "PatchOutcome",
    "PatchReport",
    "PatchResult",
    "PatchTool",
]
