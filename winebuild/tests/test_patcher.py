from __future__ import annotations

from pathlib import Path
import hashlib
import shutil
import tempfile
import unittest

from core.command_runner import CommandResult, RecordingCommandRunner, SubprocessCommandRunner

from winebuild.src.catalog import PatchSet
from winebuild.src.context import Console
from winebuild.src.filesystem import SourceTree
from winebuild.src.patcher import (
    GnuPatchTool,
    PatchApplier,
    PatchAttempt,
    PatchOutcome,
    PatchReport,
)


class FakePatchTool:
    """Simulates a tree: patches in ``applied`` are present, ``fuzzy`` need fuzz, ``broken`` never apply."""

    def __init__(self, *, fuzzy=(), broken=(), applied=(), existing=()) -> None:
        self.fuzzy = set(fuzzy)
        self.broken = set(broken)
        self.applied = set(applied)
        self.existing = set(existing)
        self.calls: list[tuple[str, str, int | None]] = []

    def apply(self, tree: Path, patch: Path, *, fuzz: int) -> PatchAttempt:
        self.calls.append(("apply", patch.name, fuzz))
        if patch.name in self.applied or patch.name in self.broken or patch.name in self.existing:
            return PatchAttempt(output="Hunk #1 FAILED")
        if patch.name in self.fuzzy and fuzz == 0:
            return PatchAttempt(output="Hunk #1 FAILED")
        self.applied.add(patch.name)
        return PatchAttempt(applied=True)

    def check_applied(self, tree: Path, patch: Path) -> PatchAttempt:
        self.calls.append(("check", patch.name, None))
        if patch.name in self.applied:
            return PatchAttempt(already_applied=True)
        return PatchAttempt(targets_exist=patch.name in self.existing)


def _patch_set(*names: str, directory: Path = Path("/patches/wine-10.1")) -> PatchSet:
    return PatchSet(version="10.1", directory=directory, patches=tuple(directory / name for name in names))


class PatchApplierTests(unittest.TestCase):
    def setUp(self) -> None:
        self.tree = SourceTree(Path("/src/wine"))
        self.console = Console("none")

    def test_degrades_per_patch_and_never_aborts(self) -> None:
        tool = FakePatchTool(fuzzy={"0002.patch"}, broken={"0003.patch"}, applied={"0004.patch"})
        report = PatchApplier(tool, self.console).apply(
            self.tree, _patch_set("0001.patch", "0002.patch", "0003.patch", "0004.patch")
        )

        self.assertEqual(
            [result.outcome for result in report.results],
            [
                PatchOutcome.APPLIED_CLEAN,
                PatchOutcome.APPLIED_FUZZY,
                PatchOutcome.FAILED,
                PatchOutcome.ALREADY_APPLIED,
            ],
        )
        self.assertEqual(report.applied, 3)
        self.assertEqual(report.failed, 1)
        self.assertEqual([result.patch.name for result in report.failures()], ["0003.patch"])

    def test_failed_middle_patch_counts(self) -> None:
        tool = FakePatchTool(broken={"0002.patch"})
        report = PatchApplier(tool, self.console).apply(
            self.tree, _patch_set("0001.patch", "0002.patch", "0003.patch")
        )
        self.assertEqual((report.applied, report.failed), (2, 1))

    def test_strict_then_fuzzy_then_applied_check(self) -> None:
        tool = FakePatchTool(broken={"0001.patch"})
        PatchApplier(tool, self.console, fuzz=5).apply(self.tree, _patch_set("0001.patch"))
        self.assertEqual(
            tool.calls,
            [("apply", "0001.patch", 0), ("apply", "0001.patch", 5), ("check", "0001.patch", None)],
        )

    def test_existing_targets_count_as_already_applied(self) -> None:
        tool = FakePatchTool(existing={"0001-new-file.patch"})
        report = PatchApplier(tool, self.console).apply(self.tree, _patch_set("0001-new-file.patch"))
        self.assertEqual(report.results[0].outcome, PatchOutcome.ALREADY_APPLIED)
        self.assertEqual(report.results[0].detail, "target files exist")

    def test_reapplying_is_idempotent(self) -> None:
        tool = FakePatchTool()
        applier = PatchApplier(tool, self.console)
        patch_set = _patch_set("0001.patch", "0002.patch", "0003.patch")
        applier.apply(self.tree, patch_set)

        second = applier.apply(self.tree, patch_set)

        self.assertEqual(second.failed, 0)
        self.assertTrue(all(result.outcome is PatchOutcome.ALREADY_APPLIED for result in second.results))

    def test_applies_in_patch_set_order(self) -> None:
        tool = FakePatchTool()
        PatchApplier(tool, self.console).apply(self.tree, _patch_set("0001.patch", "0002.patch"))
        strict_calls = [name for kind, name, fuzz in tool.calls if fuzz == 0]
        self.assertEqual(strict_calls, ["0001.patch", "0002.patch"])

    def test_checksum_mismatch_is_recorded_without_applying(self) -> None:
        with tempfile.TemporaryDirectory() as temp:
            directory = Path(temp)
            (directory / "0001-good.patch").write_text("good\n")
            (directory / "0002-bad.patch").write_text("bad\n")
            good = hashlib.sha256(b"good\n").hexdigest()
            manifest = directory / "SHA256SUMS.txt"
            manifest.write_text(f"{good}  0001-good.patch\n{'f' * 64}  0002-bad.patch\n")
            patch_set = PatchSet(
                version="10.1",
                directory=directory,
                patches=(directory / "0001-good.patch", directory / "0002-bad.patch"),
                manifest=manifest,
            )
            tool = FakePatchTool()

            report = PatchApplier(tool, self.console, verify_checksums=True).apply(self.tree, patch_set)

        self.assertEqual(report.results[1].outcome, PatchOutcome.FAILED)
        self.assertEqual(report.results[1].detail, "checksum mismatch")
        self.assertNotIn("0002-bad.patch", {name for _, name, _ in tool.calls})

    def test_plan_lists_patches_without_running_the_tool(self) -> None:
        tool = FakePatchTool()
        report = PatchApplier(tool, self.console).plan(_patch_set("0001.patch", "0002.patch"))

        self.assertEqual(tool.calls, [])
        self.assertTrue(report.planned)
        self.assertEqual(report.results, [])
        self.assertEqual((report.applied, report.failed), (0, 0))
        self.assertEqual(len(report.patch_set.patches), 2)

    def test_skipped_report(self) -> None:
        report = PatchReport.skipped("no patch sets", version="10.1")
        self.assertEqual((report.applied, report.failed), (0, 0))
        self.assertEqual(report.skipped_reason, "no patch sets")


class GnuPatchToolTests(unittest.TestCase):
    def setUp(self) -> None:
        self.tree = Path("/src/wine")
        self.patch = Path("/patches/wine-10.1/0001-fix.patch")

    def _runner(self, failing: set[str], output: str = "") -> RecordingCommandRunner:
        def responder(record):
            flags = set(record.command)
            if any(flag in flags for flag in failing):
                return CommandResult(command=record.command, returncode=1, stdout=output, stderr="")
            return None

        return RecordingCommandRunner(responder)

    def test_apply_runs_dry_run_before_real_run(self) -> None:
        runner = RecordingCommandRunner()
        attempt = GnuPatchTool(runner).apply(self.tree, self.patch, fuzz=0)

        self.assertTrue(attempt.applied)
        self.assertEqual(
            [record.command for record in runner.commands],
            [
                ["patch", "-p1", "--batch", "--forward", "--fuzz=0", "--dry-run", "-i", str(self.patch)],
                ["patch", "-p1", "--batch", "--forward", "--fuzz=0", "--no-backup-if-mismatch", "-i", str(self.patch)],
            ],
        )
        self.assertTrue(all(record.cwd == str(self.tree) for record in runner.commands))

    def test_failed_dry_run_skips_real_run(self) -> None:
        runner = self._runner({"--dry-run"}, output="Hunk #1 FAILED at 10.")
        attempt = GnuPatchTool(runner, strip=2).apply(self.tree, self.patch, fuzz=3)

        self.assertFalse(attempt.applied)
        self.assertIn("FAILED", attempt.output)
        self.assertEqual(len(runner.commands), 1)
        self.assertIn("-p2", runner.commands[0].command)

    def test_reverse_success_means_already_applied(self) -> None:
        runner = RecordingCommandRunner()
        attempt = GnuPatchTool(runner).check_applied(self.tree, self.patch)
        self.assertTrue(attempt.already_applied)
        self.assertIn("--reverse", runner.commands[0].command)

    def test_existing_targets_detected_from_forward_dry_run(self) -> None:
        runner = self._runner({"--reverse", "--forward"}, output="The next patch would create the file x, which already exists!")
        attempt = GnuPatchTool(runner).check_applied(self.tree, self.patch)
        self.assertFalse(attempt.already_applied)
        self.assertTrue(attempt.targets_exist)

    def test_unrelated_failure_is_not_applied(self) -> None:
        runner = self._runner({"--reverse", "--forward"}, output="Hunk #2 FAILED at 40.")
        attempt = GnuPatchTool(runner).check_applied(self.tree, self.patch)
        self.assertFalse(attempt.already_applied)
        self.assertFalse(attempt.targets_exist)


STRICT_PATCH = "\n".join([
    "--- a/a.txt",
    "+++ b/a.txt",
    "@@ -2,5 +2,5 @@",
    " line 2",
    " line 3",
    "-line 4",
    "+line four",
    " line 5",
    " line 6",
    "",
])

# first context line no longer matches the tree, so only a fuzzy run applies
FUZZY_PATCH = "\n".join([
    "--- a/b.txt",
    "+++ b/b.txt",
    "@@ -2,5 +2,5 @@",
    " BETA",
    " gamma",
    "-delta",
    "+DELTA",
    " epsilon",
    " zeta",
    "",
])

NEW_FILE_PATCH = "\n".join([
    "--- /dev/null",
    "+++ b/new.txt",
    "@@ -0,0 +1,2 @@",
    "+created",
    "+by patch",
    "",
])

BROKEN_PATCH = "\n".join([
    "--- a/a.txt",
    "+++ b/a.txt",
    "@@ -1,3 +1,3 @@",
    " nothing",
    "-like",
    "+this",
    " here",
    "",
])


class GnuPatchOnDiskTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.root = Path(self.temp_dir.name)
        self.tree = self.root / "wine-src"
        self.tree.mkdir()
        (self.tree / "a.txt").write_text("".join(f"line {index}\n" for index in range(1, 8)))
        (self.tree / "b.txt").write_text("alpha\nbeta\ngamma\ndelta\nepsilon\nzeta\neta\n")
        directory = self.root / "patches" / "wine-10.1"
        directory.mkdir(parents=True)
        contents = {
            "0001-strict.patch": STRICT_PATCH,
            "0002-fuzzy.patch": FUZZY_PATCH,
            "0003-new-file.patch": NEW_FILE_PATCH,
            "0004-broken.patch": BROKEN_PATCH,
        }
        for name, text in contents.items():
            (directory / name).write_text(text)
        self.patch_set = _patch_set(*sorted(contents), directory=directory)

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def _apply(self, executable: str = "patch") -> PatchReport:
        tool = GnuPatchTool(SubprocessCommandRunner(), executable=executable)
        return PatchApplier(tool, Console("none")).apply(SourceTree(self.tree), self.patch_set)

    @unittest.skipUnless(shutil.which("patch"), "GNU patch is not installed")
    def test_applies_then_recognises_applied_set(self) -> None:
        first = self._apply()
        self.assertEqual(
            [result.outcome for result in first.results],
            [
                PatchOutcome.APPLIED_CLEAN,
                PatchOutcome.APPLIED_FUZZY,
                PatchOutcome.APPLIED_CLEAN,
                PatchOutcome.FAILED,
            ],
        )
        self.assertIn("line four\n", (self.tree / "a.txt").read_text())
        self.assertIn("DELTA\n", (self.tree / "b.txt").read_text())
        self.assertEqual((self.tree / "new.txt").read_text(), "created\nby patch\n")
        self.assertEqual(sorted(path.name for path in self.tree.iterdir()), ["a.txt", "b.txt", "new.txt"])

        second = self._apply()
        self.assertEqual(
            [result.outcome for result in second.results],
            [
                PatchOutcome.ALREADY_APPLIED,
                PatchOutcome.ALREADY_APPLIED,
                PatchOutcome.ALREADY_APPLIED,
                PatchOutcome.FAILED,
            ],
        )
        self.assertEqual((second.applied, second.failed), (3, 1))

    def test_missing_patch_program_fails_each_patch(self) -> None:
        report = self._apply(executable="winebuild-no-such-patch")

        self.assertEqual([result.outcome for result in report.results], [PatchOutcome.FAILED] * 4)
        self.assertIn("winebuild-no-such-patch", report.results[0].detail)
        self.assertEqual((self.tree / "b.txt").read_text(), "alpha\nbeta\ngamma\ndelta\nepsilon\nzeta\neta\n")


if __name__ == "__main__":
    unittest.main()
