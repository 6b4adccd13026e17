"""Sidecar runtime hosting foreign-bytecode providers: supervisor and RPC client."""

from mosaic.sidecar.client import SidecarAck, SidecarClient, SidecarHealth
from mosaic.sidecar.supervisor import (
    SidecarConfig,
    SidecarInfo,
    SidecarState,
    SidecarSupervisor,
)

__all__ = [
    "SidecarAck",
    "SidecarClient",
    "SidecarConfig",
    "SidecarHealth",
    "SidecarInfo",
    "SidecarState",
    "SidecarSupervisor",
]
