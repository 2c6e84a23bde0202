"""Configuration loading for winebuild.

All ambient inputs (configuration files, ``WINE_VERSION`` / ``BUILD_*``
environment toggles and command line overrides) are folded into a single
:class:`Settings` object once at startup. Components receive the settings
explicitly and never read the process environment themselves.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, List, Mapping
import os
import re

from core.config_loader import load_config_file, load_config_tree, merge_mappings, string_list
from core.template import TemplateError, TemplateResolver

from .errors import ConfigurationError

DEFAULT_CONFIG = Path(__file__).resolve().parent.parent / "config" / "defaults.toml"
TOOL_DIR = Path(__file__).resolve().parents[2]

CONFIG_ENV = "WINEBUILD_CONFIG"
VERSION_ENV = "WINE_VERSION"
THREADS_ENV = "BUILD_THREADS"
DEBUG_ENV = "BUILD_DEBUG"
WAYLAND_ENV = "BUILD_WAYLAND"

REUSE_POLICIES = ("ask", "always", "never")

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


@dataclass(slots=True, frozen=True)
class SourceSettings:
    directory: Path
    candidates: tuple[Path, ...]
    url_template: str
    reuse: str = "ask"


@dataclass(slots=True, frozen=True)
class PatchSettings:
    search_paths: tuple[Path, ...]
    suffix: str = ".patch"
    manifest: str = "SHA256SUMS.txt"
    strip: int = 1
    fuzz: int = 3
    verify_checksums: bool = False


@dataclass(slots=True, frozen=True)
class BuildSettings:
    directory: Path
    log_dir: Path
    make: str = "make"
    configure_args: tuple[str, ...] = ()
    without_wayland: str = "--without-wayland"
    summary_lines: int = 20
    silent_warnings: tuple[str, ...] = ()
    compiler_flags: tuple[str, ...] = ()
    environment: Mapping[str, str] = field(default_factory=dict)
    filters: Mapping[str, tuple[str, ...]] = field(default_factory=dict)


@dataclass(slots=True, frozen=True)
class InstallSettings:
    prefix: Path
    container_marker: Path | None = None
    container_prefix: Path | None = None
    privilege: tuple[str, ...] = ()

    def effective_prefix(self, *, exists=os.path.isdir) -> Path:
        """Return the container prefix when its marker directory exists."""
        if self.container_marker and self.container_prefix and exists(self.container_marker):
            return self.container_prefix
        return self.prefix


@dataclass(slots=True, frozen=True)
class PackageSet:
    required: tuple[str, ...] = ()
    headers: tuple[str, ...] = ()
    optional: tuple[str, ...] = ()
    install: tuple[str, ...] = ()


@dataclass(slots=True, frozen=True)
class HostSettings:
    install_packages: bool = True
    header_probes: tuple[Path, ...] = ()
    packages: Mapping[str, PackageSet] = field(default_factory=dict)


@dataclass(slots=True, frozen=True)
class Settings:
    prefix: str
    entry_point: str
    metadata_file: str
    declaration_file: str
    source: SourceSettings
    patches: PatchSettings
    build: BuildSettings
    install: InstallSettings
    host: HostSettings
    version_hint: str | None = None
    threads: int | None = None
    debug: bool = False
    wayland: bool = True
    dry_run: bool = False
    interactive: bool = True
    log_level: str = "info"

    def with_overrides(self, **changes: Any) -> "Settings":
        """Return a copy with the non-``None`` entries of *changes* applied."""
        applied = {key: value for key, value in changes.items() if value is not None}
        return replace(self, **applied) if applied else self


def parse_flag(value: str, *, name: str) -> bool:
    text = value.strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    raise ConfigurationError(f"{name} must be a boolean flag (0/1), got '{value}'")


def parse_threads(value: Any, *, name: str = "threads") -> int | None:
    """Return a positive thread count, or ``None`` for "detect" (0 / empty)."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    try:
        threads = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"{name} must be an integer, got '{value}'") from exc
    if threads < 0:
        raise ConfigurationError(f"{name} must be positive, got {threads}")
    return threads or None


def load_settings(
    config_path: Path | None = None,
    *,
    environ: Mapping[str, str] | None = None,
    cwd: Path | None = None,
    home: Path | None = None,
) -> Settings:
    """Build :class:`Settings` from packaged defaults, a user config and the environment.

    The user configuration is taken from *config_path*, falling back to the
    ``WINEBUILD_CONFIG`` variable; it may be a single file or a directory of
    files merged in name order.
    """

    environ = os.environ if environ is None else environ
    cwd = (cwd or Path.cwd()).resolve()
    home = home or Path.home()

    data: Dict[str, Any] = dict(load_config_file(DEFAULT_CONFIG))
    user_config = config_path or (Path(environ[CONFIG_ENV]) if environ.get(CONFIG_ENV) else None)
    if user_config is not None:
        user_config = user_config.expanduser()
        if not user_config.exists():
            raise ConfigurationError(f"Configuration path not found: {user_config}")
        try:
            data = merge_mappings(data, load_config_tree(user_config))
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(f"Failed to load config '{user_config}': {exc}") from exc

    try:
        settings = _settings_from_mapping(data, cwd=cwd, home=home)
    except ConfigurationError:
        raise
    except TemplateError as exc:
        raise ConfigurationError(f"Invalid placeholder in configuration: {exc}") from exc
    except (TypeError, KeyError, ValueError) as exc:
        raise ConfigurationError(f"Invalid configuration: {exc}") from exc
    return apply_environment(settings, environ)


def apply_environment(settings: Settings, environ: Mapping[str, str]) -> Settings:
    """Fold the ``WINE_VERSION`` and ``BUILD_*`` toggles into *settings*."""

    changes: Dict[str, Any] = {}
    version = environ.get(VERSION_ENV, "").strip()
    if version:
        changes["version_hint"] = version
    if environ.get(THREADS_ENV, "").strip():
        changes["threads"] = parse_threads(environ[THREADS_ENV], name=THREADS_ENV)
    if environ.get(DEBUG_ENV, "").strip():
        changes["debug"] = parse_flag(environ[DEBUG_ENV], name=DEBUG_ENV)
    if environ.get(WAYLAND_ENV, "").strip():
        changes["wayland"] = parse_flag(environ[WAYLAND_ENV], name=WAYLAND_ENV)
    return settings.with_overrides(**changes)


def _settings_from_mapping(data: Mapping[str, Any], *, cwd: Path, home: Path) -> Settings:
    context = merge_mappings(data, {"home": str(home), "cwd": str(cwd), "tool_dir": str(TOOL_DIR)})
    resolver = TemplateResolver(context)

    def path(value: Any) -> Path:
        return Path(os.path.normpath(str(resolver.resolve(value)))).expanduser()

    def paths(value: Any, name: str) -> tuple[Path, ...]:
        return tuple(path(item) for item in string_list(value, field_name=name))

    def strings(value: Any, name: str) -> tuple[str, ...]:
        return tuple(str(resolver.resolve(item)) for item in string_list(value, field_name=name))

    project = _section(data, "project")
    source = _section(data, "source")
    version = _section(data, "version")
    patches = _section(data, "patches")
    build = _section(data, "build")
    install = _section(data, "install")
    host = _section(data, "host")

    reuse = str(source.get("reuse", "ask")).lower()
    if reuse not in REUSE_POLICIES:
        raise ConfigurationError(f"source.reuse must be one of {', '.join(REUSE_POLICIES)}, got '{reuse}'")

    filters_section = build.get("filters", {})
    filters = {
        str(stage): tuple(_compile_check(pattern) for pattern in string_list(patterns, field_name=f"build.filters.{stage}"))
        for stage, patterns in filters_section.items()
    }

    environment = {str(key): str(resolver.resolve(value)) for key, value in build.get("environment", {}).items()}

    packages = {
        str(manager): PackageSet(
            required=strings(entry.get("required"), "required"),
            headers=strings(entry.get("headers"), "headers"),
            optional=strings(entry.get("optional"), "optional"),
            install=strings(entry.get("install"), "install"),
        )
        for manager, entry in host.get("packages", {}).items()
        if isinstance(entry, Mapping)
    }

    marker = install.get("container_marker")
    container_prefix = install.get("container_prefix")

    return Settings(
        prefix=str(project.get("prefix", "wine")),
        entry_point=str(project.get("entry_point", "configure")),
        metadata_file=str(version.get("metadata_file", "VERSION")),
        declaration_file=str(version.get("declaration_file", "configure.ac")),
        source=SourceSettings(
            directory=path(source["directory"]),
            candidates=paths(source.get("candidates"), "source.candidates"),
            url_template=str(source["url_template"]),
            reuse=reuse,
        ),
        patches=PatchSettings(
            search_paths=paths(patches.get("search_paths"), "patches.search_paths"),
            suffix=str(patches.get("suffix", ".patch")),
            manifest=str(patches.get("manifest", "SHA256SUMS.txt")),
            strip=int(patches.get("strip", 1)),
            fuzz=int(patches.get("fuzz", 3)),
            verify_checksums=bool(patches.get("verify_checksums", False)),
        ),
        build=BuildSettings(
            directory=path(build["directory"]),
            log_dir=path(build.get("log_dir", build["directory"])),
            make=str(build.get("make", "make")),
            configure_args=strings(build.get("configure_args"), "build.configure_args"),
            without_wayland=str(build.get("without_wayland", "--without-wayland")),
            summary_lines=int(build.get("summary_lines", 20)),
            silent_warnings=strings(build.get("silent_warnings"), "build.silent_warnings"),
            compiler_flags=strings(build.get("compiler_flags"), "build.compiler_flags"),
            environment=environment,
            filters=filters,
        ),
        install=InstallSettings(
            prefix=path(install["prefix"]),
            container_marker=path(marker) if marker else None,
            container_prefix=path(container_prefix) if container_prefix else None,
            privilege=strings(install.get("privilege"), "install.privilege"),
        ),
        host=HostSettings(
            install_packages=bool(host.get("install_packages", True)),
            header_probes=paths(host.get("header_probes"), "host.header_probes"),
            packages=packages,
        ),
        threads=parse_threads(build.get("threads"), name="build.threads"),
        debug=bool(build.get("debug", False)),
        wayland=bool(build.get("wayland", True)),
    )


def _section(data: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    section = data.get(name, {})
    if not isinstance(section, Mapping):
        raise ConfigurationError(f"[{name}] must be a table")
    return section


def _compile_check(pattern: str) -> str:
    try:
        re.compile(pattern)
    except re.error as exc:
        raise ConfigurationError(f"Invalid filter pattern '{pattern}': {exc}") from exc
    return pattern


__all__: List[str] = [
    "BuildSettings",
    "HostSettings",
    "InstallSettings",
    "PackageSet",
    "PatchSettings",
    "Settings",
    "SourceSettings",
    "apply_environment",
    "load_settings",
    "parse_flag",
    "parse_threads",
]
