"""
Sidecar process supervisor.

Owns the single external runtime that hosts foreign-bytecode providers:
locating its bundle, spawning it on the loopback control port, probing its
health and shutting it down. The sidecar is optional; when its bundle is
missing only the foreign install path is unavailable.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from mosaic.errors import SidecarUnavailable
from mosaic.sidecar.client import SidecarClient

logger = logging.getLogger(__name__)

PACKAGE_ROOT = Path(__file__).resolve().parents[2]


class SidecarState(str, Enum):
    """Lifecycle state of the sidecar process."""

    NOT_STARTED = "not_started"
    STARTING = "starting"
    HEALTHY = "healthy"
    UNREACHABLE = "unreachable"
    STOPPED = "stopped"


@dataclass
class SidecarConfig:
    """Configuration for the supervised sidecar."""

    host: str = "127.0.0.1"
    port: int = 8765
    runtime: str = "java"
    bundle_name: str = "jvm-bridge-1.0.0.jar"
    bundle_dir: str = "jvm-bridge/build/libs"
    bundle_paths: list[Path] = field(default_factory=list)
    data_dir: Optional[Path] = None
    autostart: bool = True
    startup_timeout: float = 15.0
    stop_timeout: float = 5.0
    poll_interval: float = 0.25

    @classmethod
    def from_settings(cls, settings: Any) -> "SidecarConfig":
        return cls(
            host=settings.SIDECAR_HOST,
            port=settings.SIDECAR_PORT,
            runtime=settings.SIDECAR_RUNTIME,
            bundle_name=settings.SIDECAR_BUNDLE_NAME,
            bundle_dir=settings.SIDECAR_BUNDLE_DIR,
            bundle_paths=list(settings.SIDECAR_BUNDLE_PATHS),
            data_dir=settings.DATA_DIR,
            autostart=settings.SIDECAR_AUTOSTART,
            startup_timeout=settings.SIDECAR_STARTUP_TIMEOUT,
        )

    def candidate_paths(self) -> list[Path]:
        """Bundle locations in lookup order."""
        candidates = [Path(p).expanduser() for p in self.bundle_paths]
        candidates.append(Path.cwd() / self.bundle_dir / self.bundle_name)
        candidates.append(PACKAGE_ROOT / self.bundle_dir / self.bundle_name)
        if self.data_dir is not None:
            candidates.append(Path(self.data_dir) / "sidecar" / self.bundle_name)
        return candidates


@dataclass
class SidecarInfo:
    """Observable facts about the sidecar."""

    state: SidecarState = SidecarState.NOT_STARTED
    pid: Optional[int] = None
    bundle_path: Optional[Path] = None
    started_at: Optional[datetime] = None
    last_health_check: Optional[datetime] = None
    active_plugin_count: int = 0
    exit_code: Optional[int] = None
    last_error: Optional[str] = None


class SidecarSupervisor:
    """
    Manages the lifecycle of the sidecar runtime.

    Features:
    - Bundle discovery across well-known locations
    - Collapsed concurrent starts
    - Health probing with a monotonic state machine
    - Lazy start on first use
    - Graceful shutdown with kill fallback
    """

    def __init__(self, config: SidecarConfig, client: SidecarClient):
        self.config = config
        self.client = client
        self.process: Optional[asyncio.subprocess.Process] = None
        self.info = SidecarInfo()
        self._start_lock = asyncio.Lock()
        self._tasks: set[asyncio.Task] = set()
        self._stopping = False

    @property
    def state(self) -> SidecarState:
        return self.info.state

    def locate_bundle(self) -> Optional[Path]:
        """First existing bundle among the candidate paths."""
        for candidate in self.config.candidate_paths():
            if candidate.is_file():
                return candidate
        return None

    def _command(self, bundle: Path) -> list[str]:
        if bundle.suffix == ".jar":
            return [self.config.runtime, "-jar", str(bundle), str(self.config.port)]
        return [str(bundle), str(self.config.port)]

    def _process_alive(self) -> bool:
        return self.process is not None and self.process.returncode is None

    async def start(self) -> bool:
        """Spawn the sidecar.

        Returns:
            True if a process is running afterwards, False if the bundle is
            missing or the spawn failed.
        """
        async with self._start_lock:
            if self._process_alive():
                return True

            bundle = self.locate_bundle()
            if bundle is None:
                searched = ", ".join(str(p) for p in self.config.candidate_paths())
                self.info.last_error = f"Sidecar bundle not found (searched: {searched})"
                logger.warning(self.info.last_error)
                return False

            cmd = self._command(bundle)
            logger.info(f"Starting sidecar: {' '.join(cmd)}")
            try:
                self.process = await asyncio.create_subprocess_exec(
                    *cmd,
                    cwd=str(bundle.parent),
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                )
            except (OSError, ValueError) as e:
                self.info.last_error = f"Failed to spawn sidecar: {e}"
                logger.error(self.info.last_error)
                return False

            self._stopping = False
            self.info.state = SidecarState.STARTING
            self.info.pid = self.process.pid
            self.info.bundle_path = bundle
            self.info.started_at = datetime.now(timezone.utc)
            self.info.exit_code = None
            self.info.last_error = None

            self._spawn(self._read_output(self.process))
            self._spawn(self._watch_exit(self.process))

            logger.info(f"Sidecar started with PID {self.info.pid}")
            return True

    def _spawn(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _watch_exit(self, process: asyncio.subprocess.Process) -> None:
        code = await process.wait()
        if process is not self.process:
            return
        self.info.exit_code = code
        self.info.pid = None
        self.info.state = SidecarState.STOPPED
        if not self._stopping:
            self.info.last_error = f"Sidecar exited with code {code}"
            logger.error(self.info.last_error)

    async def _read_output(self, process: asyncio.subprocess.Process) -> None:
        async def read_stream(stream, level):
            while True:
                line = await stream.readline()
                if not line:
                    break
                text = line.decode("utf-8", errors="replace").rstrip()
                if text:
                    logger.log(level, f"[sidecar] {text}")

        readers = []
        if process.stdout:
            readers.append(read_stream(process.stdout, logging.INFO))
        if process.stderr:
            readers.append(read_stream(process.stderr, logging.ERROR))
        await asyncio.gather(*readers)

    async def health_check(self) -> bool:
        """Probe the control plane once and update state.

        A success moves NOT_STARTED, STARTING or UNREACHABLE to HEALTHY. A
        failure moves STARTING to UNREACHABLE. HEALTHY never regresses on a
        failed probe and STOPPED only leaves through ``start()``.
        """
        try:
            health = await self.client.health()
            healthy = health.ok
            if healthy:
                self.info.active_plugin_count = health.active_plugin_count
        except (httpx.HTTPError, ValidationError, ValueError) as e:
            logger.debug(f"Sidecar health probe failed: {e}")
            healthy = False

        self.info.last_health_check = datetime.now(timezone.utc)
        state = self.info.state
        if state == SidecarState.STOPPED:
            return healthy
        if healthy:
            if state != SidecarState.HEALTHY:
                logger.info("Sidecar is healthy")
            self.info.state = SidecarState.HEALTHY
        elif state in (SidecarState.STARTING, SidecarState.UNREACHABLE):
            self.info.state = SidecarState.UNREACHABLE
        return healthy

    async def ensure_available(self) -> None:
        """Make sure the sidecar can serve requests, starting it if allowed.

        Raises:
            SidecarUnavailable: Stopped, missing, or not healthy within the
                startup window.
        """
        if self.info.state == SidecarState.HEALTHY:
            return
        if self.info.state == SidecarState.STOPPED:
            raise SidecarUnavailable(self.info.last_error or "sidecar has stopped")

        if await self.health_check():
            return

        if not self._process_alive():
            if not self.config.autostart:
                raise SidecarUnavailable("sidecar is not running and autostart is disabled")
            if not await self.start():
                raise SidecarUnavailable(self.info.last_error or "sidecar could not be started")

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.config.startup_timeout
        while loop.time() < deadline:
            if self.info.state == SidecarState.STOPPED:
                raise SidecarUnavailable(self.info.last_error or "sidecar exited during startup")
            if await self.health_check():
                return
            await asyncio.sleep(self.config.poll_interval)

        raise SidecarUnavailable(
            f"sidecar did not become healthy within {self.config.startup_timeout}s"
        )

    async def stop(self) -> None:
        """Terminate the sidecar, killing it after the stop timeout."""
        self._stopping = True
        process = self.process
        if process is not None and process.returncode is None:
            try:
                process.terminate()
                try:
                    await asyncio.wait_for(process.wait(), timeout=self.config.stop_timeout)
                except asyncio.TimeoutError:
                    logger.warning("Sidecar didn't stop gracefully, killing")
                    process.kill()
                    await process.wait()
            except ProcessLookupError:
                pass
            logger.info("Sidecar stopped")

        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

        if process is not None or self.info.state != SidecarState.NOT_STARTED:
            self.info.state = SidecarState.STOPPED
        self.info.pid = None

    def get_info(self) -> dict:
        """Get sidecar information as dict."""
        return {
            "state": self.info.state.value,
            "url": self.client.base_url,
            "pid": self.info.pid,
            "bundle_path": str(self.info.bundle_path) if self.info.bundle_path else None,
            "started_at": self.info.started_at.isoformat() if self.info.started_at else None,
            "last_health_check": (
                self.info.last_health_check.isoformat()
                if self.info.last_health_check
                else None
            ),
            "active_plugin_count": self.info.active_plugin_count,
            "exit_code": self.info.exit_code,
            "last_error": self.info.last_error,
        }
