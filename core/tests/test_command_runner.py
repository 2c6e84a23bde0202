from __future__ import annotations

from pathlib import Path
import sys
import unittest

from core.command_runner import (
    CommandError,
    CommandResult,
    RecordingCommandRunner,
    SubprocessCommandRunner,
)


class SubprocessCommandRunnerTests(unittest.TestCase):
    def test_captures_stdout_and_stderr_separately(self) -> None:
        runner = SubprocessCommandRunner()
        result = runner.run(
            [sys.executable, "-c", "import sys; print('out'); print('err', file=sys.stderr)"],
        )
        self.assertTrue(result.ok)
        self.assertEqual(result.stdout.strip(), "out")
        self.assertEqual(result.stderr.strip(), "err")
        self.assertIn("out", result.output)
        self.assertIn("err", result.output)

    def test_merge_output_folds_stderr_into_stdout(self) -> None:
        runner = SubprocessCommandRunner()
        result = runner.run(
            [sys.executable, "-c", "import sys; print('a'); sys.stdout.flush(); print('b', file=sys.stderr)"],
            merge_output=True,
        )
        self.assertEqual(result.stderr, "")
        self.assertEqual(result.stdout.split(), ["a", "b"])

    def test_check_raises_command_error_with_output_tail(self) -> None:
        runner = SubprocessCommandRunner()
        with self.assertRaises(CommandError) as ctx:
            runner.run([sys.executable, "-c", "print('configure: error: no cc'); raise SystemExit(3)"])
        self.assertEqual(ctx.exception.result.returncode, 3)
        self.assertIn("exited with status 3", str(ctx.exception))
        self.assertIn("configure: error: no cc", str(ctx.exception))

    def test_env_is_layered_over_process_environment(self) -> None:
        runner = SubprocessCommandRunner()
        result = runner.run(
            [sys.executable, "-c", "import os; print(os.environ['CFLAGS'], 'PATH' in os.environ)"],
            env={"CFLAGS": "-O2 -g"},
        )
        self.assertEqual(result.stdout.strip(), "-O2 -g True")

    def test_missing_program_is_a_failed_result(self) -> None:
        runner = SubprocessCommandRunner()
        result = runner.run(["winebuild-no-such-program", "-j4"], check=False, merge_output=True)

        self.assertEqual(result.returncode, 127)
        self.assertIn("winebuild-no-such-program", result.output)
        with self.assertRaises(CommandError) as ctx:
            runner.run(["winebuild-no-such-program"])
        self.assertIn("exited with status 127", str(ctx.exception))

    def test_check_disabled_returns_failure(self) -> None:
        runner = SubprocessCommandRunner()
        result = runner.run([sys.executable, "-c", "raise SystemExit(2)"], check=False)
        self.assertFalse(result.ok)
        self.assertEqual(result.returncode, 2)


class RecordingCommandRunnerTests(unittest.TestCase):
    def test_records_commands_and_formats_them(self) -> None:
        runner = RecordingCommandRunner()
        runner.run(["make", "-j4"], cwd=Path("/build"), note="Building")
        runner.run(["echo", "hello world"])

        lines = list(runner.iter_formatted(workspace=Path("/ws")))
        self.assertEqual(lines[0], "[dry-run] Building (cwd=/build) make -j4")
        self.assertEqual(lines[1], "[dry-run] (cwd=/ws) echo 'hello world'")

    def test_responder_scripts_results(self) -> None:
        def responder(record):
            if record.command[0] == "false":
                return CommandResult(command=record.command, returncode=1, stdout="", stderr="boom")
            return None

        runner = RecordingCommandRunner(responder)
        self.assertTrue(runner.run(["true"]).ok)
        failed = runner.run(["false"], check=False)
        self.assertEqual(failed.returncode, 1)
        self.assertEqual(failed.output, "boom")
        with self.assertRaises(CommandError):
            runner.run(["false"])
        self.assertEqual(len(runner.commands), 3)


if __name__ == "__main__":
    unittest.main()
