"""
Sequential build workflow: source, version, patches, prerequisites, build.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from core.archive import ArchiveExtractor

from .acquire import Extractor, SourceAcquirer, discover
from .catalog import PatchCatalog
from .context import Context
from .errors import PrerequisitesError
from .fetcher import Fetcher, UrllibFetcher
from .filesystem import FileSystem, LocalFileSystem, SourceTree
from .host import HostAdapter
from .patcher import GnuPatchTool, PatchApplier, PatchReport, PatchTool
from .pipeline import BuildFeatures, BuildPipeline, BuildReport
from .selection import FixedReuseAnswer, ReusePrompt, SelectionProvider
from .version import VersionResolver


@dataclass
class Components:
    """Replaceable collaborators of a run; unset entries get production defaults."""

    selection: SelectionProvider
    reuse_prompt: ReusePrompt
    fs: Optional[FileSystem] = None
    fetcher: Optional[Fetcher] = None
    extractor: Optional[Extractor] = None
    patch_tool: Optional[PatchTool] = None
    host: Optional[HostAdapter] = None


def reuse_prompt_for(policy: str, interactive: ReusePrompt) -> ReusePrompt:
    if policy == "always":
        return FixedReuseAnswer(True)
    if policy == "never":
        return FixedReuseAnswer(False)
    return interactive


def run_workflow(ctx: Context, components: Components) -> BuildReport:
    """Run one build to completion or to its first fatal failure.

    Acquisition and prerequisite errors propagate; per-patch problems only
    show up in the returned report.
    """
    settings = ctx.settings
    console = ctx.console
    fs = components.fs or LocalFileSystem()
    host = components.host or HostAdapter(ctx.runner, console, settings.host)

    catalog = PatchCatalog(
        settings.patches.search_paths,
        console=console,
        prefix=settings.prefix,
        suffix=settings.patches.suffix,
        manifest=settings.patches.manifest,
    )
    if catalog.base is not None:
        console.info(f"Using patch directory: {catalog.base}")
    else:
        console.warn("No patch directory found")

    resolver = VersionResolver(
        catalog=catalog,
        selection=components.selection,
        console=console,
        hint=settings.version_hint,
        prefix=settings.prefix,
        metadata_file=settings.metadata_file,
        declaration_file=settings.declaration_file,
    )

    tree, version = _source_tree(ctx, components, fs, resolver)
    if version is None:
        version = resolver.resolve(tree.path)

    patch_report = _apply_patches(ctx, components, catalog, tree, version)

    threads = settings.threads or host.detect_threads()
    console.info(f"Using {threads} threads for build")
    if settings.debug:
        console.info("The build will produce debugging information")
    if not settings.wayland:
        console.info("The build will skip the Wayland driver")

    if settings.dry_run:
        console.dry("Would check build dependencies")
    elif not host.ensure_prerequisites():
        raise PrerequisitesError("OpenCL headers not found", hint=host.manual_hint())

    install_prefix = settings.install.effective_prefix()
    console.info(f"Install prefix: {install_prefix}")

    pipeline = BuildPipeline(
        ctx.runner,
        console,
        settings.build,
        privilege=settings.install.privilege,
        dry_run=settings.dry_run,
    )
    return pipeline.run(
        tree,
        install_prefix,
        threads,
        BuildFeatures(debug=settings.debug, wayland=settings.wayland),
        version=version,
        patch_report=patch_report,
    )


def _source_tree(
    ctx: Context,
    components: Components,
    fs: FileSystem,
    resolver: VersionResolver,
) -> tuple[SourceTree, str | None]:
    settings = ctx.settings
    if not settings.version_hint:
        existing = discover(fs, settings.source.candidates, entry_point=settings.entry_point)
        if existing is not None:
            ctx.console.info(f"Using existing source tree at {existing.path}")
            return existing, None

    version = resolver.choose()
    ctx.console.info(f"Selected version: {version}")
    acquirer = SourceAcquirer(
        fs=fs,
        fetcher=components.fetcher or UrllibFetcher(ctx.console),
        extractor=components.extractor or ArchiveExtractor(ctx.console),
        reuse_prompt=reuse_prompt_for(settings.source.reuse, components.reuse_prompt),
        console=ctx.console,
        url_template=settings.source.url_template,
        prefix=settings.prefix,
        entry_point=settings.entry_point,
        dry_run=settings.dry_run,
    )
    return acquirer.ensure(version, settings.source.directory), version


def _apply_patches(
    ctx: Context,
    components: Components,
    catalog: PatchCatalog,
    tree: SourceTree,
    version: str | None,
) -> PatchReport:
    if version is None:
        ctx.console.warn("Skipping patches: version could not be determined")
        return PatchReport.skipped("version undetectable")

    patch_set = catalog.resolve(version)
    if patch_set is None:
        ctx.console.warn(f"No patch sets found; building {version} unpatched")
        return PatchReport.skipped("no patch sets", version=version)

    patches = ctx.settings.patches
    tool = components.patch_tool or GnuPatchTool(ctx.runner, strip=patches.strip)
    applier = PatchApplier(tool, ctx.console, fuzz=patches.fuzz, verify_checksums=patches.verify_checksums)
    report = applier.plan(patch_set) if ctx.settings.dry_run else applier.apply(tree, patch_set)
    report.version = version
    return report


__all__ = ["Components", "reuse_prompt_for", "run_workflow"]
