"""
Mosaic - Command Line Interface

Search across installed content providers and manage plugins, catalog
repositories, the sidecar runtime and resume positions. Built with Typer
and Rich.

Usage:
    $ mosaic --help
    $ mosaic search "dune"
    $ mosaic repo add https://example.org/repo.json
    $ mosaic plugin install ExampleProvider --repo https://example.org/repo.json

Sub-command Groups:
    plugin  - Plugin management
    repo    - Catalog repositories
    sidecar - Foreign plugin runtime
    resume  - Resume positions

For detailed help on any command:
    $ mosaic <command> --help
    $ mosaic <group> <command> --help
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, TypeVar

import typer

from mosaic import __version__
from mosaic.cli.output import console, err_console
from mosaic.config import Settings
from mosaic.runtime import MosaicRuntime

T = TypeVar("T")

app = typer.Typer(
    name="mosaic",
    help="Mosaic - multi-provider content plugin runtime",
    no_args_is_help=True,
    rich_markup_mode="rich",
    pretty_exceptions_enable=True,
    pretty_exceptions_show_locals=False,
)

plugin_app = typer.Typer(
    name="plugin",
    help="Plugin management commands",
    no_args_is_help=True,
)

repo_app = typer.Typer(
    name="repo",
    help="Catalog repository commands",
    no_args_is_help=True,
)

sidecar_app = typer.Typer(
    name="sidecar",
    help="Foreign plugin runtime commands",
    no_args_is_help=True,
)

resume_app = typer.Typer(
    name="resume",
    help="Resume position commands",
    no_args_is_help=True,
)

app.add_typer(plugin_app, name="plugin")
app.add_typer(repo_app, name="repo")
app.add_typer(sidecar_app, name="sidecar")
app.add_typer(resume_app, name="resume")


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"Mosaic version {__version__}")
        raise typer.Exit()


def verbose_callback(value: bool) -> None:
    """Set verbose mode."""
    if value:
        logging.basicConfig(level=logging.DEBUG)


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        callback=verbose_callback,
        help="Enable verbose output.",
    ),
) -> None:
    """
    Mosaic - multi-provider content plugin runtime

    Use --help on any subcommand for detailed information.
    """
    if not verbose:
        logging.basicConfig(level=Settings().LOG_LEVEL)


def build_runtime() -> MosaicRuntime:
    """Fresh runtime from the current environment."""
    return MosaicRuntime(Settings())


def run_with_runtime(
    fn: Callable[[MosaicRuntime], Awaitable[T]],
    start: bool = False,
) -> T:
    """Run *fn* against a runtime, stopping it afterwards.

    Args:
        fn: Coroutine function taking the runtime.
        start: Start the runtime first (sidecar spawn and plugin restore).
    """

    async def _main() -> T:
        runtime = build_runtime()
        try:
            if start:
                await runtime.start()
            return await fn(runtime)
        finally:
            await runtime.stop()

    return asyncio.run(_main())


@app.command()
def search(
    query: str = typer.Argument(..., help="Search query."),
    providers: Optional[list[str]] = typer.Option(
        None,
        "--provider",
        "-p",
        help="Only search these providers (repeatable).",
    ),
    quick: bool = typer.Option(False, "--quick", "-q", help="Use quick search where offered."),
    as_json: bool = typer.Option(False, "--json", help="Print JSON instead of a table."),
) -> None:
    """
    Search every active provider.

    Installed plugins are restored first, then the query is fanned out and
    the results merged round-robin.
    """
    from mosaic.cli.output import print_error, print_json, print_table, print_warning

    async def _search(runtime: MosaicRuntime) -> Any:
        return await runtime.orchestrator.search(query, active_providers=providers, quick=quick)

    outcome = run_with_runtime(_search, start=True)

    if as_json:
        print_json(outcome.to_dict())
        return

    if outcome.status == "idle":
        print_warning("Query too short")
        return

    for failure in outcome.partial_errors:
        print_error(f"{failure.provider}: {failure.message}")

    if not outcome.merged_results:
        messages = {
            "no_providers": "No providers are installed",
            "all_failed": "Every provider failed",
            "no_results": "No results",
        }
        print_warning(messages.get(outcome.empty_reason or "", "No results"))
        return

    print_table(
        f"Results for '{outcome.query}'",
        ["Name", "Type", "Year", "Provider", "URL"],
        [
            [
                r.name,
                r.type.value if r.type else "",
                str(r.year or ""),
                r.api_name,
                r.url,
            ]
            for r in outcome.merged_results
        ],
        styles=["cyan", None, None, "green", "dim"],
    )


@app.command()
def serve(
    host: str = typer.Option(
        "127.0.0.1",
        "--host",
        "-h",
        help="Host to bind to.",
    ),
    port: int = typer.Option(
        8000,
        "--port",
        "-p",
        help="Port to bind to.",
    ),
) -> None:
    """
    Start the Mosaic API server.
    """
    import uvicorn

    from mosaic.api import create_app

    console.print(f"Starting Mosaic server on [cyan]http://{host}:{port}[/cyan]")
    uvicorn.run(create_app(build_runtime()), host=host, port=port)


# Command modules register onto the sub-apps above.
from mosaic.cli import plugins, repos, resume, sidecar  # noqa: E402,F401

__all__ = [
    "app",
    "plugin_app",
    "repo_app",
    "sidecar_app",
    "resume_app",
    "console",
    "err_console",
    "build_runtime",
    "run_with_runtime",
]


def cli() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    cli()
