"""
Mosaic CLI - Resume Commands

Commands:
    list  - Show stored resume positions
    clear - Forget one position, or all of them
"""

from __future__ import annotations

from typing import Optional

import typer

from mosaic.cli import resume_app, run_with_runtime
from mosaic.cli.output import print_error, print_info, print_success, print_table
from mosaic.runtime import MosaicRuntime


def _clock(seconds: float) -> str:
    total = int(seconds)
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)
    return f"{hours}:{minutes:02d}:{secs:02d}" if hours else f"{minutes}:{secs:02d}"


@resume_app.command("list")
def list_positions() -> None:
    """Show stored resume positions, most recent first."""

    async def _list(runtime: MosaicRuntime):
        return [(e, runtime.resume.is_resumable(e)) for e in runtime.resume.all()]

    rows = run_with_runtime(_list)
    if not rows:
        print_info("No resume positions stored")
        return

    print_table(
        "Resume Positions",
        ["Content", "Position", "Duration", "Resumable", "Updated"],
        [
            [
                e.label or e.content_id,
                _clock(e.position),
                _clock(e.duration) if e.duration > 0 else "-",
                "yes" if resumable else "no",
                e.last_updated.strftime("%Y-%m-%d %H:%M"),
            ]
            for e, resumable in rows
        ],
        styles=["cyan"],
    )


@resume_app.command("clear")
def clear(
    content_id: Optional[str] = typer.Argument(None, help="Content to forget."),
    clear_all: bool = typer.Option(False, "--all", help="Forget every position."),
) -> None:
    """Forget a resume position."""
    if not content_id and not clear_all:
        print_error("Give a content id or --all")
        raise typer.Exit(1)

    async def _clear(runtime: MosaicRuntime) -> int:
        if clear_all:
            return runtime.resume.clear_all()
        return 1 if runtime.resume.clear(content_id) else 0

    count = run_with_runtime(_clear)
    if content_id and not clear_all and count == 0:
        print_error(f"No resume position for {content_id}")
        raise typer.Exit(1)
    print_success(f"Cleared {count} resume position(s)")
