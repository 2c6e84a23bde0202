"""Configure, compile and install a source tree."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List, Sequence
import re

from core.command_runner import CommandRunner

from .context import Console
from .filesystem import SourceTree
from .patcher import PatchReport
from .settings import BuildSettings


class BuildStage(str, Enum):
    CONFIGURE = "configure"
    COMPILE = "compile"
    INSTALL = "install"


class StageStatus(str, Enum):
    SUCCEEDED = "success"
    FAILED = "failed"
    NOT_RUN = "not-run"
    PLANNED = "planned"


@dataclass(slots=True, frozen=True)
class BuildFeatures:
    debug: bool = False
    wayland: bool = True


@dataclass(slots=True)
class BuildStep:
    stage: BuildStage
    description: str
    command: Sequence[str]
    cwd: Path
    env: Dict[str, str]


@dataclass(slots=True, frozen=True)
class StageResult:
    stage: BuildStage
    status: StageStatus
    returncode: int | None = None
    log_path: Path | None = None
    summary: tuple[str, ...] = ()


@dataclass(slots=True)
class BuildReport:
    """Per-stage outcome of a build run.

    ``failed_stage`` is the absorbing failure state; every stage after it is
    reported as not run.
    """

    version: str | None = None
    patch_report: PatchReport | None = None
    stages: List[StageResult] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return len(self.stages) == len(BuildStage) and all(
            result.status is StageStatus.SUCCEEDED for result in self.stages
        )

    @property
    def planned(self) -> bool:
        """A dry run that recorded every stage without running any."""
        return len(self.stages) == len(BuildStage) and all(
            result.status is StageStatus.PLANNED for result in self.stages
        )

    @property
    def failed_stage(self) -> BuildStage | None:
        return next((result.stage for result in self.stages if result.status is StageStatus.FAILED), None)

    def result_for(self, stage: BuildStage) -> StageResult | None:
        return next((result for result in self.stages if result.stage is stage), None)

    def log_for(self, stage: BuildStage) -> Path | None:
        result = self.result_for(stage)
        return result.log_path if result else None


class BuildPipeline:
    """Run the three build stages in order, stopping at the first failure."""

    def __init__(
        self,
        runner: CommandRunner,
        console: Console,
        settings: BuildSettings,
        *,
        privilege: Sequence[str] = (),
        dry_run: bool = False,
    ) -> None:
        self._runner = runner
        self._console = console
        self._settings = settings
        self._privilege = list(privilege)
        self._dry_run = dry_run
        self._filters = {
            stage: [re.compile(pattern) for pattern in patterns]
            for stage, patterns in settings.filters.items()
        }

    def plan(
        self,
        tree: SourceTree,
        install_prefix: Path,
        thread_count: int,
        features: BuildFeatures,
    ) -> List[BuildStep]:
        build_dir = self._settings.directory
        env = self.environment(features)
        make = self._settings.make
        threads = max(1, thread_count)
        jobs = f"-j{threads}"
        building = f"Building with {threads} thread" + ("" if threads == 1 else "s")

        configure = [str(tree.path / "configure"), f"--prefix={install_prefix}", *self._settings.configure_args]
        if not features.wayland and self._settings.without_wayland:
            configure.append(self._settings.without_wayland)

        return [
            BuildStep(BuildStage.CONFIGURE, "Configuring build", configure, build_dir, env),
            BuildStep(BuildStage.COMPILE, building, [make, jobs], build_dir, env),
            BuildStep(BuildStage.INSTALL, f"Installing to {install_prefix}", [*self._privilege, make, "install", jobs], build_dir, env),
        ]

    def environment(self, features: BuildFeatures) -> Dict[str, str]:
        env = dict(self._settings.environment)
        extras = list(self._settings.silent_warnings)
        if features.debug:
            extras.append("-g")
        for name in self._settings.compiler_flags:
            env[name] = " ".join(part for part in (env.get(name, ""), *extras) if part)
        return env

    def run(
        self,
        tree: SourceTree,
        install_prefix: Path,
        thread_count: int,
        features: BuildFeatures | None = None,
        *,
        version: str | None = None,
        patch_report: PatchReport | None = None,
    ) -> BuildReport:
        features = features or BuildFeatures()
        report = BuildReport(version=version, patch_report=patch_report)
        steps = self.plan(tree, install_prefix, thread_count, features)

        if not self._dry_run:
            self._settings.directory.mkdir(parents=True, exist_ok=True)
            self._settings.log_dir.mkdir(parents=True, exist_ok=True)

        failed = False
        for step in steps:
            if failed:
                report.stages.append(StageResult(step.stage, StageStatus.NOT_RUN))
                continue
            result = self._run_step(step)
            report.stages.append(result)
            failed = result.status is StageStatus.FAILED
        return report

    def _run_step(self, step: BuildStep) -> StageResult:
        self._console.info(f"{step.description}...")
        result = self._runner.run(
            step.command,
            cwd=step.cwd,
            env=step.env,
            check=False,
            note=step.description,
            merge_output=True,
        )

        log_path = self._settings.log_dir / f"{step.stage.value}.log"
        if self._dry_run:
            self._console.dry(f"Would write {step.stage.value} output to {log_path}")
            log_path = None
        else:
            log_path.write_text(result.output, encoding="utf-8")

        summary = tuple(self.surface(step.stage, result.output))
        if result.ok and self._dry_run:
            return StageResult(step.stage, StageStatus.PLANNED, result.returncode, None, summary)
        if result.ok:
            self._console.block(summary, level="debug")
            self._console.info(f"{step.stage.value.capitalize()} completed")
            return StageResult(step.stage, StageStatus.SUCCEEDED, result.returncode, log_path, summary)

        self._console.error(f"{step.stage.value.capitalize()} failed with exit code {result.returncode}")
        self._console.block(summary, level="error")
        if log_path is not None:
            self._console.error(f"Full log: {log_path}")
        return StageResult(step.stage, StageStatus.FAILED, result.returncode, log_path, summary)

    def surface(self, stage: BuildStage, output: str) -> List[str]:
        """Last ``summary_lines`` lines of *output* that no stage filter matches."""

        patterns = self._filters.get(stage.value, [])
        lines = [line for line in output.splitlines() if not any(pattern.search(line) for pattern in patterns)]
        limit = self._settings.summary_lines
        return lines[-limit:] if limit > 0 else []


__all__ = [
    "BuildFeatures",
    "BuildPipeline",
    "BuildReport",
    "BuildStage",
    "BuildStep",
    "StageResult",
    "StageStatus",
]
