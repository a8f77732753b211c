"""Spawns conductor processes against setup directories."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import List, Optional

from hc_admin import constants
from hc_admin.clients.ports import force_admin_port, parse_admin_port
from hc_admin.errors import LaunchTimeoutError, ProcessSpawnError
from hc_admin.utils.pathing import config_path

LOG = logging.getLogger(__name__)
CONDUCTOR_LOG = logging.getLogger("hc_admin.conductor")

_STREAM_LIMIT = 1024 * 1024


class ConductorProcess:
    """A running conductor and the admin port it listens on.

    The caller owns the process: it must either `terminate()` it or leave it
    running detached on purpose.
    """

    def __init__(
        self,
        setup_path: Path,
        port: int,
        process: asyncio.subprocess.Process,
        drains: Optional[List[asyncio.Task]] = None,
    ) -> None:
        self.setup_path = setup_path
        self.port = port
        self.process = process
        self._drains = drains or []

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def running(self) -> bool:
        return self.process.returncode is None

    async def wait(self) -> int:
        code = await self.process.wait()
        self._stop_drains()
        return code

    async def terminate(self, grace: float = constants.TERMINATE_GRACE_SECONDS) -> int:
        """Send SIGTERM, then SIGKILL if the conductor outlives `grace` seconds."""
        if self.running:
            LOG.info("Stopping conductor %s (pid %d)", self.setup_path, self.pid)
            try:
                self.process.terminate()
            except ProcessLookupError:
                pass
            try:
                await asyncio.wait_for(self.process.wait(), timeout=grace)
            except asyncio.TimeoutError:
                LOG.warning("Conductor %s ignored SIGTERM; killing", self.setup_path)
                await _kill(self.process)
        return await self.wait()

    def _stop_drains(self) -> None:
        for task in self._drains:
            task.cancel()
        self._drains = []


class ProcessLauncher:
    """Starts `holochain` for a setup and resolves its admin port."""

    def __init__(
        self,
        holochain_path: str | Path = constants.HOLOCHAIN_PATH,
        timeout: float = constants.LAUNCH_TIMEOUT_SECONDS,
    ) -> None:
        self.holochain_path = str(holochain_path)
        self.timeout = timeout

    async def launch(self, setup_path: Path, forced_port: Optional[int] = None) -> ConductorProcess:
        """Spawn a conductor and return it once its admin port is known.

        With `forced_port` the setup config is pinned to that port and no
        discovery happens. Otherwise the port announced on stdout is awaited
        for at most `timeout` seconds; on failure the child is killed.
        """
        setup_path = Path(setup_path)
        if forced_port is not None:
            force_admin_port(setup_path, forced_port)

        process = await self._spawn(setup_path)
        drains = [asyncio.create_task(_drain(process.stderr, setup_path, "stderr"))]

        if forced_port is not None:
            drains.append(asyncio.create_task(_drain(process.stdout, setup_path, "stdout")))
            LOG.info("Conductor %s started on forced admin port %d", setup_path, forced_port)
            return ConductorProcess(setup_path, forced_port, process, drains)

        try:
            port = await asyncio.wait_for(self._read_port(process, setup_path), self.timeout)
        except asyncio.TimeoutError as exc:
            await _abort(process, drains)
            raise LaunchTimeoutError(
                f"Conductor for {setup_path} did not report an admin port within {self.timeout:g}s"
            ) from exc
        except BaseException:
            await _abort(process, drains)
            raise

        drains.append(asyncio.create_task(_drain(process.stdout, setup_path, "stdout")))
        LOG.info("Conductor %s (pid %d) listening on admin port %d", setup_path, process.pid, port)
        return ConductorProcess(setup_path, port, process, drains)

    async def _spawn(self, setup_path: Path) -> asyncio.subprocess.Process:
        if not setup_path.is_dir():
            raise ProcessSpawnError(f"Setup directory {setup_path} does not exist")
        command = [self.holochain_path, "--config-path", str(config_path(setup_path))]
        LOG.debug("Spawning %s in %s", command, setup_path)
        try:
            return await asyncio.create_subprocess_exec(
                *command,
                cwd=str(setup_path),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                limit=_STREAM_LIMIT,
            )
        except OSError as exc:
            raise ProcessSpawnError(
                f"Unable to start '{self.holochain_path}' for {setup_path}: {exc}"
            ) from exc

    async def _read_port(self, process: asyncio.subprocess.Process, setup_path: Path) -> int:
        assert process.stdout is not None
        while True:
            try:
                raw = await process.stdout.readline()
            except ValueError as exc:
                raise LaunchTimeoutError(
                    f"Conductor for {setup_path} wrote a stdout line longer than {_STREAM_LIMIT} bytes "
                    "before reporting an admin port"
                ) from exc
            if not raw:
                code = await process.wait()
                raise LaunchTimeoutError(
                    f"Conductor for {setup_path} exited with code {code} before reporting an admin port"
                )
            line = raw.decode("utf-8", errors="replace").rstrip()
            CONDUCTOR_LOG.info("[%s stdout] %s", setup_path.name, line)
            port = parse_admin_port(line)
            if port is not None:
                return port


async def _drain(stream: Optional[asyncio.StreamReader], setup_path: Path, label: str) -> None:
    if stream is None:
        return
    try:
        async for raw in stream:
            CONDUCTOR_LOG.info(
                "[%s %s] %s", setup_path.name, label, raw.decode("utf-8", errors="replace").rstrip()
            )
    except (ValueError, ConnectionError):
        LOG.debug("Stopped reading %s of %s", label, setup_path, exc_info=True)


async def _kill(process: asyncio.subprocess.Process) -> None:
    if process.returncode is None:
        try:
            process.kill()
        except ProcessLookupError:
            pass
    await process.wait()


async def _abort(process: asyncio.subprocess.Process, drains: List[asyncio.Task]) -> None:
    await _kill(process)
    for task in drains:
        task.cancel()
