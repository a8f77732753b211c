"""User-facing operations composed from the registry, launcher and admin client."""

from __future__ import annotations

import asyncio
import logging
import shutil
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

from hc_admin import constants
from hc_admin.clients.admin import CmdRunner
from hc_admin.clients.launcher import ConductorProcess, ProcessLauncher
from hc_admin.clients.ports import wait_for_port
from hc_admin.clients.registry import SetupRegistry
from hc_admin.errors import (
    AmbiguousSelectionError,
    HcAdminError,
    InvalidIndexError,
    LaunchTimeoutError,
    SetupIOError,
    describe,
)
from hc_admin.models.admin import AdminRequest, CallResult
from hc_admin.models.enums import NetworkType, SetupStatus
from hc_admin.models.setup import ConductorInfo, SetupEntry
from hc_admin.services.generate_service import GenerateService

LOG = logging.getLogger(__name__)


class Dispatcher:
    """Runs generate / run / call / list / clean over a selection of setups."""

    def __init__(
        self,
        registry: Optional[SetupRegistry] = None,
        launcher: Optional[ProcessLauncher] = None,
        generator: Optional[GenerateService] = None,
    ) -> None:
        self.registry = registry or SetupRegistry()
        self.launcher = launcher or ProcessLauncher()
        self.generator = generator or GenerateService(self.registry, self.launcher)

    # Selection ------------------------------------------------------------------
    def select(self, indices: Optional[Sequence[int]] = None) -> List[SetupEntry]:
        """Return the chosen entries, or every entry when nothing is chosen."""
        entries = self.registry.list()
        if not indices:
            return entries
        invalid = {i for i in indices if i < 0 or i >= len(entries)}
        if invalid:
            raise InvalidIndexError(invalid, len(entries))
        return [entries[i] for i in sorted(set(indices))]

    def select_for_call(self, indices: Optional[Sequence[int]] = None) -> List[SetupEntry]:
        if indices:
            return self.select(indices)
        entries = self.registry.list()
        if not entries:
            raise InvalidIndexError([0], 0)
        if len(entries) > 1:
            raise AmbiguousSelectionError(
                f"{len(entries)} setups are registered in {self.registry.path}; choose one with --indices"
            )
        return entries

    # Commands -------------------------------------------------------------------
    def list(self) -> List[SetupEntry]:
        return self.registry.list()

    async def generate(
        self,
        dnas: Sequence[Path] = (),
        num: int = 1,
        app_id: str = constants.DEFAULT_APP_ID,
        network: Optional[NetworkType] = None,
        root: Optional[Path] = None,
    ) -> List[SetupEntry]:
        return await self.generator.generate(dnas, num=num, app_id=app_id, network=network, root=root)

    async def run(
        self,
        indices: Optional[Sequence[int]] = None,
        forced_ports: Sequence[int] = (),
        stop_event: Optional[asyncio.Event] = None,
        on_started: Optional[Callable[[List[ConductorInfo]], None]] = None,
        dnas: Sequence[Path] = (),
        network: Optional[NetworkType] = None,
        num: int = 1,
        app_id: str = constants.DEFAULT_APP_ID,
        root: Optional[Path] = None,
    ) -> List[ConductorInfo]:
        """Launch the selected setups concurrently and keep them alive.

        Returns once `stop_event` is set, every conductor has exited, or the
        task is cancelled; all conductors launched here are terminated first.
        A setup that fails to launch is reported as FAILED, the others run.
        With an empty registry `num` setups are generated first.
        """
        if not indices and not self.registry.list():
            LOG.info("No setups registered; generating %d", num)
            await self.generate(dnas, num=num, app_id=app_id, network=network, root=root)
        targets = self.select(indices)

        conductors: Dict[int, ConductorProcess] = {}

        async def launch(entry: SetupEntry, port: Optional[int]) -> ConductorInfo:
            try:
                conductor = await self.launcher.launch(entry.path, port)
            except HcAdminError as exc:
                LOG.error("Setup %d (%s) failed to launch: %s", entry.index, entry.path, exc)
                return ConductorInfo(
                    index=entry.index, path=entry.path, status=SetupStatus.FAILED, error=describe(exc)
                )
            conductors[entry.index] = conductor
            return ConductorInfo(
                index=entry.index,
                path=entry.path,
                status=SetupStatus.RUNNING,
                port=conductor.port,
                pid=conductor.pid,
            )

        try:
            infos = list(
                await asyncio.gather(
                    *(
                        launch(entry, forced_ports[i] if i < len(forced_ports) else None)
                        for i, entry in enumerate(targets)
                    )
                )
            )
            if on_started is not None:
                on_started(infos)
            await self._wait_for_exit(conductors, infos, stop_event)
        finally:
            await asyncio.gather(
                *(conductor.terminate() for conductor in conductors.values()),
                return_exceptions=True,
            )
        return infos

    async def _wait_for_exit(
        self,
        conductors: Dict[int, ConductorProcess],
        infos: List[ConductorInfo],
        stop_event: Optional[asyncio.Event],
    ) -> None:
        by_index = {info.index: info for info in infos}
        waiters = {
            asyncio.create_task(conductor.wait()): index for index, conductor in conductors.items()
        }
        stop_task = asyncio.create_task(stop_event.wait()) if stop_event is not None else None
        pending = set(waiters)
        try:
            while pending:
                watched = pending | {stop_task} if stop_task is not None else pending
                done, _ = await asyncio.wait(watched, return_when=asyncio.FIRST_COMPLETED)
                for task in done:
                    if task is stop_task:
                        return
                    index = waiters[task]
                    pending.discard(task)
                    info = by_index[index]
                    info.status = SetupStatus.EXITED
                    LOG.warning(
                        "Conductor for setup %d (%s) exited with code %s",
                        index,
                        info.path,
                        task.result(),
                    )
        finally:
            for task in [*pending, stop_task]:
                if task is not None:
                    task.cancel()

    async def call(
        self,
        request: AdminRequest,
        indices: Optional[Sequence[int]] = None,
        running_ports: Sequence[int] = (),
        forced_ports: Sequence[int] = (),
    ) -> List[CallResult]:
        """Send `request` to each target and collect the responses.

        With `running_ports` the request goes to conductors that are already
        up. Otherwise each selected setup is launched for the call and
        terminated afterwards. The exchange itself has no timeout.
        """
        results = []
        if running_ports:
            for port in running_ports:
                results.append(await self._call_port(request, port, f"port {port}"))
            return results

        for i, entry in enumerate(self.select_for_call(indices)):
            port = forced_ports[i] if i < len(forced_ports) else None
            conductor = await self.launcher.launch(entry.path, port)
            try:
                if port is not None and not await wait_for_port(
                    constants.ADMIN_HOST, port, self.launcher.timeout
                ):
                    raise LaunchTimeoutError(
                        f"Conductor for {entry.path} is not listening on forced admin port {port}"
                    )
                results.append(await self._call_port(request, conductor.port, str(entry.path)))
            finally:
                await conductor.terminate()
        return results

    async def _call_port(self, request: AdminRequest, port: int, target: str) -> CallResult:
        async with await CmdRunner.connect(port) as cmd:
            response = await cmd.command(request)
        LOG.info("%s on %s returned %s", request.type, target, response.type)
        return CallResult(target=target, port=port, response=response)

    def clean(self, indices: Optional[Sequence[int]] = None) -> List[SetupEntry]:
        """Unregister the selected setups (default all) and delete their directories."""
        removed = self.registry.remove(indices) if indices else self.registry.remove_all()
        failures = []
        for entry in removed:
            if not entry.path.exists():
                LOG.debug("Setup directory %s already gone", entry.path)
                continue
            try:
                shutil.rmtree(entry.path)
            except OSError as exc:
                LOG.error("Failed to delete setup %s: %s", entry.path, exc)
                failures.append(f"{entry.path} ({exc})")
        if failures:
            raise SetupIOError(f"Unable to delete setup directories: {', '.join(failures)}")
        return removed
