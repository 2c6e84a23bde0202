"""Command line interface for winebuild."""
from __future__ import annotations

from argparse import ArgumentParser, Namespace
from pathlib import Path
from typing import Iterable, Sequence
import sys

from core.command_runner import CommandError, RecordingCommandRunner, SubprocessCommandRunner

from .context import Console, Context
from .errors import ConfigurationError, PrerequisitesError, SelectionAborted, WineBuildError
from .pipeline import BuildReport, BuildStage
from .selection import (
    FixedReuseAnswer,
    InteractiveReusePrompt,
    InteractiveSelection,
    LatestSelection,
)
from .settings import Settings, load_settings, parse_threads
from .workflow import Components, run_workflow

BANNER_WIDTH = 40


def _parse_arguments(argv: Sequence[str]) -> Namespace:
    parser = ArgumentParser(prog="winebuild", description="Patch and build Wine from source")
    parser.add_argument("--version", dest="wine_version", help="Wine version to build (overrides WINE_VERSION)")
    parser.add_argument("--threads", help="Parallel build jobs (overrides BUILD_THREADS)")
    parser.add_argument("--debug", action="store_true", default=None, help="Build with debugging information")
    parser.add_argument("--no-wayland", dest="wayland", action="store_false", default=None, help="Skip the Wayland driver")
    parser.add_argument("--config", type=Path, help="Configuration file or directory (overrides WINEBUILD_CONFIG)")
    parser.add_argument("--yes", "-y", action="store_true", help="Do not prompt: build the newest version and reuse sources")
    parser.add_argument("--dry-run", action="store_true", help="Print commands without executing them")
    parser.add_argument("--log", choices=["none", "error", "warn", "info", "debug"], default="info", help="Log level")
    parser.add_argument("--verbose", "-v", action="store_true", help="Shortcut for --log debug")
    return parser.parse_args(list(argv))


def build_settings(args: Namespace) -> Settings:
    settings = load_settings(args.config)
    return settings.with_overrides(
        version_hint=args.wine_version,
        threads=parse_threads(args.threads, name="--threads") if args.threads else None,
        debug=args.debug,
        wayland=args.wayland,
        dry_run=args.dry_run or None,
        interactive=False if args.yes else None,
        log_level="debug" if args.verbose else args.log,
    )


def _components(settings: Settings) -> Components:
    if settings.interactive:
        return Components(
            selection=InteractiveSelection(prefix=settings.prefix),
            reuse_prompt=InteractiveReusePrompt(),
        )
    return Components(selection=LatestSelection(), reuse_prompt=FixedReuseAnswer(True))


def _emit_dry_run_output(runner: RecordingCommandRunner, *, workspace: Path) -> None:
    for line in runner.iter_formatted(workspace=workspace):
        print(line)


def print_summary(report: BuildReport, settings: Settings, *, stream=None) -> None:
    stream = stream or sys.stdout
    rule = "=" * BANNER_WIDTH
    print(rule, file=stream)
    if report.planned:
        headline = "DRY RUN COMPLETE (nothing was built)"
    else:
        headline = "BUILD COMPLETE!" if report.succeeded else "BUILD FAILED!"
    print(headline, file=stream)
    print(rule, file=stream)

    if report.version:
        print(f"Version: {report.version}", file=stream)
    patches = report.patch_report
    if patches is not None:
        if patches.planned and patches.patch_set is not None:
            print(f"Patches: {len(patches.patch_set.patches)} would be applied", file=stream)
        elif patches.skipped_reason:
            print(f"Patches: skipped ({patches.skipped_reason})", file=stream)
        else:
            print(f"Patches: {patches.applied} applied, {patches.failed} failed", file=stream)

    for result in report.stages:
        print(f"  {result.stage.value:<10} {result.status.value}", file=stream)

    failed = report.failed_stage
    if failed is not None:
        log = report.log_for(failed)
        if log is not None:
            print(f"See {log} for details", file=stream)
    elif report.succeeded:
        print(f"Wine installed to: {settings.install.effective_prefix()}", file=stream)
        logs = [report.log_for(stage) for stage in BuildStage]
        if all(log is not None for log in logs):
            print("Logs: " + ", ".join(str(log) for log in logs), file=stream)
    elif report.planned:
        print(f"Would install to: {settings.install.effective_prefix()}", file=stream)


def main(argv: Iterable[str] | None = None) -> int:
    args = _parse_arguments(sys.argv[1:] if argv is None else list(argv))

    try:
        settings = build_settings(args)
    except ConfigurationError as exc:
        print(f"[ERROR] {exc}", file=sys.stderr)
        return 1

    console = Console(settings.log_level, dry_run=settings.dry_run)
    runner: SubprocessCommandRunner | RecordingCommandRunner
    if settings.dry_run:
        runner = RecordingCommandRunner()
    else:
        runner = SubprocessCommandRunner()
    ctx = Context(settings=settings, console=console, runner=runner)

    try:
        report = run_workflow(ctx, _components(settings))
    except SelectionAborted as exc:
        if exc.user_exit:
            console.info(str(exc))
            return 0
        console.error(str(exc))
        return 1
    except PrerequisitesError as exc:
        console.error(str(exc))
        if exc.hint:
            print(exc.hint, file=sys.stderr)
        return 1
    except (WineBuildError, CommandError) as exc:
        console.error(str(exc))
        return 1

    if isinstance(runner, RecordingCommandRunner):
        _emit_dry_run_output(runner, workspace=settings.build.directory)

    print_summary(report, settings)
    return 0 if report.succeeded or report.planned else 1


if __name__ == "__main__":
    sys.exit(main())
