"""
Mosaic CLI - Plugin Commands

Commands:
    list      - Show installed plugins
    install   - Install a plugin from a repository
    uninstall - Deactivate (or purge) a plugin
    reinstall - Re-download and reload a plugin
    enable    - Re-activate a disabled plugin
"""

from __future__ import annotations

from typing import Optional

import typer

from mosaic.cli import plugin_app, run_with_runtime
from mosaic.cli.output import print_error, print_info, print_json, print_success, print_table
from mosaic.errors import DownloadError
from mosaic.plugins.loader import PluginResult
from mosaic.runtime import MosaicRuntime


def _report(result: PluginResult) -> None:
    if result.success:
        print_success(f"{result.plugin_name}: {result.message}")
        return
    error = result.error
    print_error(
        f"{result.plugin_name}: {error.message}" if error else result.plugin_name,
        details=f"stage: {error.stage.value}" if error else None,
        hint=error.details.get("hint") if error else None,
    )
    raise typer.Exit(1)


@plugin_app.command("list")
def list_plugins(
    as_json: bool = typer.Option(False, "--json", help="Print JSON instead of a table."),
) -> None:
    """Show installed plugins and whether they are enabled."""

    async def _list(runtime: MosaicRuntime):
        return runtime.loader.installed()

    records = run_with_runtime(_list)

    if as_json:
        print_json([r.model_dump(mode="json") for r in records])
        return

    if not records:
        print_info("No plugins installed")
        return

    print_table(
        "Installed Plugins",
        ["Name", "Version", "Kind", "Enabled", "Repository"],
        [
            [
                r.internal_name,
                str(r.version),
                r.kind.value if r.kind else "-",
                "yes" if r.enabled else "no",
                r.repository_url or "-",
            ]
            for r in records
        ],
        styles=["cyan", None, None, None, "dim"],
    )


@plugin_app.command("install")
def install(
    name: str = typer.Argument(..., help="Internal name of the plugin."),
    repo: str = typer.Option(..., "--repo", "-r", help="Repository URL that lists the plugin."),
) -> None:
    """Install a plugin listed by a repository."""

    async def _install(runtime: MosaicRuntime) -> Optional[PluginResult]:
        descriptors = await runtime.catalog.get_repo_plugins(repo)
        descriptor = next((d for d in descriptors if d.internal_name == name), None)
        if descriptor is None:
            return None
        return await runtime.loader.install(descriptor, repo)

    try:
        result = run_with_runtime(_install)
    except DownloadError as e:
        print_error(e.message)
        raise typer.Exit(1)

    if result is None:
        print_error(f"Plugin {name} is not listed by {repo}")
        raise typer.Exit(1)
    _report(result)


@plugin_app.command("uninstall")
def uninstall(
    name: str = typer.Argument(..., help="Internal name of the plugin."),
    purge: bool = typer.Option(False, "--purge", help="Also delete the record and cached package."),
) -> None:
    """Deactivate a plugin; with --purge, forget it entirely."""

    async def _uninstall(runtime: MosaicRuntime) -> PluginResult:
        if purge:
            return await runtime.loader.purge(name)
        return await runtime.loader.uninstall(name)

    _report(run_with_runtime(_uninstall))


@plugin_app.command("reinstall")
def reinstall(
    name: str = typer.Argument(..., help="Internal name of the plugin."),
) -> None:
    """Re-download an installed plugin and load it again."""

    async def _reinstall(runtime: MosaicRuntime) -> Optional[PluginResult]:
        descriptor = runtime.loader.descriptor_for(name)
        if descriptor is None:
            return None
        return await runtime.loader.reinstall(descriptor)

    result = run_with_runtime(_reinstall)
    if result is None:
        print_error(f"Plugin {name} is not installed")
        raise typer.Exit(1)
    _report(result)


@plugin_app.command("enable")
def enable(
    name: str = typer.Argument(..., help="Internal name of the plugin."),
) -> None:
    """Re-activate a disabled plugin from its cached package."""

    async def _enable(runtime: MosaicRuntime) -> PluginResult:
        return await runtime.loader.enable(name)

    _report(run_with_runtime(_enable))
