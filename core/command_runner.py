"""Running external commands, either for real or recorded for a dry run."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Iterator, List, Mapping, Sequence
import os
import shlex
import subprocess

ERROR_TAIL_LINES = 10
COMMAND_NOT_EXECUTABLE = 126
COMMAND_NOT_FOUND = 127


def quote_command(command: Sequence[str]) -> str:
    return shlex.join(str(part) for part in command)


@dataclass
class CommandResult:
    command: Sequence[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def output(self) -> str:
        """Everything the command printed, stdout first."""
        return self.stdout + self.stderr


class CommandError(RuntimeError):
    """A checked command exited with a non-zero status.

    The message carries the last lines of captured output; streamed commands
    have already shown theirs on the terminal.
    """

    def __init__(self, result: CommandResult):
        message = f"`{quote_command(result.command)}` exited with status {result.returncode}"
        tail = result.output.strip().splitlines()[-ERROR_TAIL_LINES:]
        if tail:
            message = "\n".join([message, *tail])
        super().__init__(message)
        self.result = result


class CommandRunner:
    """Base runner: normalizes arguments and enforces ``check``.

    Subclasses implement :meth:`_execute`. ``stream`` leaves the child's
    stdout/stderr attached to the terminal; ``merge_output`` captures both
    streams interleaved into ``stdout``.
    """

    def run(
        self,
        command: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        check: bool = True,
        note: str | None = None,
        stream: bool = False,
        merge_output: bool = False,
    ) -> CommandResult:
        args = [str(part) for part in command]
        result = self._execute(args, cwd=cwd, env=env, note=note, stream=stream, merge_output=merge_output)
        if check and not result.ok:
            raise CommandError(result)
        return result

    def _execute(
        self,
        args: List[str],
        *,
        cwd: Path | None,
        env: Mapping[str, str] | None,
        note: str | None,
        stream: bool,
        merge_output: bool,
    ) -> CommandResult:
        raise NotImplementedError


class SubprocessCommandRunner(CommandRunner):
    def _execute(self, args, *, cwd, env, note, stream, merge_output) -> CommandResult:
        options: Dict[str, object] = {"cwd": str(cwd) if cwd else None, "check": False}
        if env is not None:
            options["env"] = {**os.environ, **env}
        if not stream:
            options.update(
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT if merge_output else subprocess.PIPE,
                text=True,
                errors="replace",
            )
        try:
            process = subprocess.run(args, **options)
        except OSError as exc:
            # exit statuses a shell reports for a missing or unexecutable program
            code = COMMAND_NOT_FOUND if isinstance(exc, FileNotFoundError) else COMMAND_NOT_EXECUTABLE
            return CommandResult(command=args, returncode=code, stderr=f"{exc}\n")
        return CommandResult(
            command=args,
            returncode=process.returncode,
            stdout=process.stdout or "",
            stderr=process.stderr or "",
        )


@dataclass(slots=True)
class RecordedCommand:
    command: List[str]
    cwd: str | None = None
    env: Dict[str, str] = field(default_factory=dict)
    note: str | None = None

    def describe(self, default_cwd: str | None = None) -> str:
        where = self.cwd or default_cwd
        parts = ["[dry-run]"]
        if self.note:
            parts.append(self.note)
        if where:
            parts.append(f"(cwd={where})")
        parts.append(quote_command(self.command))
        return " ".join(parts)


Responder = Callable[[RecordedCommand], "CommandResult | None"]


class RecordingCommandRunner(CommandRunner):
    """Remembers every command instead of running it.

    *responder* may script a :class:`CommandResult` per command; ``None``
    means the command succeeded silently.
    """

    def __init__(self, responder: Responder | None = None) -> None:
        self.commands: List[RecordedCommand] = []
        self._responder = responder

    def _execute(self, args, *, cwd, env, note, stream, merge_output) -> CommandResult:
        record = RecordedCommand(args, str(cwd) if cwd else None, dict(env or {}), note)
        self.commands.append(record)
        scripted = self._responder(record) if self._responder else None
        return scripted or CommandResult(command=args, returncode=0)

    def iter_formatted(self, *, workspace: Path | None = None) -> Iterator[str]:
        default_cwd = str(workspace) if workspace else None
        for record in self.commands:
            yield record.describe(default_cwd)


__all__ = [
    "CommandError",
    "CommandResult",
    "CommandRunner",
    "RecordedCommand",
    "RecordingCommandRunner",
    "SubprocessCommandRunner",
    "quote_command",
]
