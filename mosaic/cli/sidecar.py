"""
Mosaic CLI - Sidecar Commands

Commands:
    status - Probe the sidecar control plane and show where its bundle is
"""

from __future__ import annotations

import typer

from mosaic.cli import run_with_runtime, sidecar_app
from mosaic.cli.output import print_json, print_status
from mosaic.errors import SidecarUnavailable
from mosaic.runtime import MosaicRuntime


@sidecar_app.command("status")
def status(
    as_json: bool = typer.Option(False, "--json", help="Print JSON instead of checks."),
) -> None:
    """Probe the sidecar without starting it."""

    async def _status(runtime: MosaicRuntime) -> dict:
        healthy = await runtime.supervisor.health_check()
        bundle = runtime.supervisor.locate_bundle()
        info = runtime.supervisor.get_info()
        info["healthy"] = healthy
        info["bundle_path"] = str(bundle) if bundle else None
        return info

    info = run_with_runtime(_status)

    if as_json:
        print_json(info)
        return

    print_status(
        [
            ("Control plane", info["healthy"], info["url"]),
            (
                "Bundle",
                info["bundle_path"] is not None,
                info["bundle_path"] or SidecarUnavailable.HINT,
            ),
            ("Active plugins", info["healthy"], str(info["active_plugin_count"])),
        ],
        title="Sidecar",
    )
