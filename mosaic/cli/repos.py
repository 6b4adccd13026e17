"""
Mosaic CLI - Repository Commands

Commands:
    list    - Show added repositories
    add     - Add a repository after validating its manifest
    remove  - Remove a repository
    plugins - List the plugins a repository offers
"""

from __future__ import annotations

from typing import Optional

import typer

from mosaic.cli import repo_app, run_with_runtime
from mosaic.cli.output import print_error, print_info, print_json, print_success, print_table, print_warning
from mosaic.errors import DownloadError
from mosaic.models import RepositoryData
from mosaic.runtime import MosaicRuntime


@repo_app.command("list")
def list_repos() -> None:
    """Show repositories that have been added."""

    async def _list(runtime: MosaicRuntime):
        return runtime.repositories.list()

    repos = run_with_runtime(_list)
    if not repos:
        print_info("No repositories added")
        return

    print_table(
        "Repositories",
        ["Name", "URL"],
        [[r.name, r.url] for r in repos],
        styles=["cyan", "dim"],
    )


@repo_app.command("add")
def add(
    url: str = typer.Argument(..., help="Repository manifest URL."),
    name: Optional[str] = typer.Option(None, "--name", "-n", help="Display name override."),
) -> None:
    """Add a repository; its manifest is fetched to validate it."""

    async def _add(runtime: MosaicRuntime) -> tuple[RepositoryData, bool]:
        manifest = await runtime.catalog.fetch_repository(url)
        repo = RepositoryData(name=name or manifest.name, url=url, icon_url=manifest.icon_url)
        return repo, runtime.repositories.add(repo)

    try:
        repo, added = run_with_runtime(_add)
    except DownloadError as e:
        print_error(e.message, hint="Check the URL points at a repository manifest (repo.json).")
        raise typer.Exit(1)

    if added:
        print_success(f"Added repository {repo.name}")
    else:
        print_warning(f"Repository {url} is already added")


@repo_app.command("remove")
def remove(url: str = typer.Argument(..., help="Repository manifest URL.")) -> None:
    """Remove a repository."""

    async def _remove(runtime: MosaicRuntime) -> bool:
        return runtime.repositories.remove(url)

    if not run_with_runtime(_remove):
        print_error(f"Repository not found: {url}")
        raise typer.Exit(1)
    print_success(f"Removed repository {url}")


@repo_app.command("plugins")
def plugins(
    url: str = typer.Argument(..., help="Repository manifest URL."),
    as_json: bool = typer.Option(False, "--json", help="Print JSON instead of a table."),
) -> None:
    """List the plugins a repository offers."""

    async def _plugins(runtime: MosaicRuntime):
        descriptors = await runtime.catalog.get_repo_plugins(url)
        return [(d, runtime.loader.needs_update(d)) for d in descriptors]

    try:
        rows = run_with_runtime(_plugins)
    except DownloadError as e:
        print_error(e.message)
        raise typer.Exit(1)

    if as_json:
        print_json([
            {**d.model_dump(mode="json", by_alias=True), "needsUpdate": stale}
            for d, stale in rows
        ])
        return

    print_table(
        f"Plugins in {url}",
        ["Name", "Internal name", "Version", "Language", "Update"],
        [
            [d.name, d.internal_name, str(d.version), d.language or "-", "yes" if stale else ""]
            for d, stale in rows
        ],
        styles=["cyan", None, None, None, "yellow"],
    )
