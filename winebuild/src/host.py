"""Host inspection: worker threads, package manager and build prerequisites."""
from __future__ import annotations

from pathlib import Path
from typing import Callable, List, Sequence
import os
import shutil

from core.command_runner import CommandRunner

from .context import Console
from .settings import HostSettings, PackageSet

PACKAGE_MANAGERS = ("apt", "dnf", "pacman")
DEFAULT_THREADS = 4
CPUINFO = Path("/proc/cpuinfo")


class HostAdapter:
    """Answers host questions for the build without owning any build logic.

    Every probe goes through injectable callables or the command runner so
    the adapter can be exercised without touching the real system.
    """

    def __init__(
        self,
        runner: CommandRunner,
        console: Console,
        settings: HostSettings,
        *,
        which: Callable[[str], str | None] = shutil.which,
        exists: Callable[[Path], bool] = Path.is_file,
        cpu_count: Callable[[], int | None] = os.cpu_count,
        cpuinfo: Path = CPUINFO,
    ) -> None:
        self._runner = runner
        self._console = console
        self._settings = settings
        self._which = which
        self._exists = exists
        self._cpu_count = cpu_count
        self._cpuinfo = cpuinfo

    def detect_threads(self) -> int:
        count = self._cpu_count()
        if count:
            return count
        if self._exists(self._cpuinfo):
            text = self._cpuinfo.read_text(encoding="utf-8", errors="replace")
            processors = sum(1 for line in text.splitlines() if line.startswith("processor"))
            if processors:
                return processors
        return DEFAULT_THREADS

    def detect_package_manager(self) -> str | None:
        return next((name for name in PACKAGE_MANAGERS if self._which(name)), None)

    def is_installed(self, manager: str, package: str) -> bool:
        if manager == "apt":
            result = self._runner.run(["dpkg-query", "-W", "-f=${Status}", package], check=False)
            return result.ok and "install ok installed" in result.stdout
        if manager == "dnf":
            return self._runner.run(["rpm", "-q", package], check=False).ok
        if manager == "pacman":
            return self._runner.run(["pacman", "-Q", package], check=False).ok
        return False

    def install_missing(self, manager: str, packages: Sequence[str]) -> bool:
        """Install the packages of *packages* that are not installed yet.

        When the first attempt fails the command is retried without the
        manager's optional packages, if any were part of it.
        """

        package_set = self._package_set(manager)
        missing = [package for package in packages if not self.is_installed(manager, package)]
        if not missing:
            self._console.info("All required packages are already installed")
            return True

        self._console.info(f"Installing missing packages: {' '.join(missing)}")
        if self._install(package_set, missing):
            return True

        fallback = [package for package in missing if package not in package_set.optional]
        if fallback and len(fallback) < len(missing):
            self._console.warn(f"Retrying without optional packages: {' '.join(package_set.optional)}")
            return self._install(package_set, fallback)
        return False

    def headers_available(self) -> bool:
        return any(self._exists(probe) for probe in self._settings.header_probes)

    def ensure_prerequisites(self) -> bool:
        """Install required packages and confirm the mandatory headers are present."""

        manager = self.detect_package_manager()
        if manager is None or manager not in self._settings.packages:
            self._console.warn("Unknown package manager; please install dependencies manually")
        elif self._settings.install_packages:
            self._console.info(f"Checking build dependencies ({manager})...")
            if not self.install_missing(manager, self._settings.packages[manager].required):
                self._console.warn("Some packages could not be installed")

        if self.headers_available():
            self._console.info("OpenCL headers found")
            return True

        self._console.error("OpenCL headers not found")
        if manager is not None and manager in self._settings.packages and self._settings.install_packages:
            self.install_missing(manager, self._settings.packages[manager].headers)
            if self.headers_available():
                self._console.info("OpenCL headers found")
                return True
        return False

    def manual_hint(self) -> str:
        manager = self.detect_package_manager()
        if manager is None or manager not in self._settings.packages:
            return "Please install the OpenCL development headers with your package manager."
        package_set = self._settings.packages[manager]
        command = " ".join([*package_set.install, *package_set.headers])
        return f"Please install the OpenCL development packages manually:\n  {command}"

    def _package_set(self, manager: str) -> PackageSet:
        return self._settings.packages.get(manager, PackageSet())

    def _install(self, package_set: PackageSet, packages: List[str]) -> bool:
        if not package_set.install:
            self._console.warn("No install command configured")
            return False
        result = self._runner.run([*package_set.install, *packages], check=False, stream=True)
        return result.ok


__all__ = ["DEFAULT_THREADS", "HostAdapter", "PACKAGE_MANAGERS"]
