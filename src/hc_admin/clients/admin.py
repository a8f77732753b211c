"""Admin websocket client for a running conductor."""

from __future__ import annotations

import asyncio
import itertools
import json
import logging
from pathlib import Path
from typing import Any, Optional, Set, Tuple

from pydantic import ValidationError
from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import InvalidHandshake, InvalidURI, WebSocketException

from hc_admin import constants
from hc_admin.clients.launcher import ConductorProcess, ProcessLauncher
from hc_admin.errors import AdminConnectError, AdminRequestError, UnexpectedResponseError
from hc_admin.models.admin import AdminRequest, AdminResponse, WireMessage
from hc_admin.models.enums import AdminClientState

LOG = logging.getLogger(__name__)

# Close frames scheduled by `CmdRunner.close()` that have not completed yet.
_PENDING_CLOSES: Set[asyncio.Task] = set()


class CmdRunner:
    """One admin connection to one conductor.

    Requests are sent one at a time and each waits for the response carrying
    the same id. A closed runner cannot be reconnected; build a new one.

    Use it as an async context manager to release the socket on every exit
    path. Leaving the block schedules the close frame without awaiting it, so
    a process that exits straight afterwards may tear the socket down before
    the frame is sent. Call `aclose()` when the close must be confirmed.
    """

    def __init__(self, port: int, host: str = constants.ADMIN_HOST) -> None:
        self.port = port
        self.host = host
        self._connection: Optional[ClientConnection] = None
        self._ids = itertools.count(1)
        self._lock = asyncio.Lock()
        self.state = AdminClientState.DISCONNECTED

    @classmethod
    async def connect(cls, port: int, host: str = constants.ADMIN_HOST) -> "CmdRunner":
        """Open the admin websocket on `host:port`, raising `AdminConnectError` on failure."""
        runner = cls(port, host)
        await runner.open()
        return runner

    async def open(self) -> None:
        if self.state is not AdminClientState.DISCONNECTED:
            raise AdminConnectError(f"Admin connection on port {self.port} is {self.state.value}")
        uri = f"ws://{self.host}:{self.port}"
        try:
            self._connection = await connect(uri, max_size=None)
        except (OSError, InvalidURI, InvalidHandshake, asyncio.TimeoutError) as exc:
            raise AdminConnectError(f"Failed to connect to admin port {self.port}: {exc}") from exc
        self.state = AdminClientState.CONNECTED
        LOG.debug("Connected to admin interface %s", uri)

    @classmethod
    async def from_setup(
        cls,
        setup_path: Path,
        holochain_path: str | Path = constants.HOLOCHAIN_PATH,
        forced_port: Optional[int] = None,
    ) -> Tuple["CmdRunner", ConductorProcess]:
        """Launch the conductor for `setup_path` and connect to it.

        The returned process belongs to the caller. It is terminated here
        only if the connection cannot be made.
        """
        conductor = await ProcessLauncher(holochain_path).launch(setup_path, forced_port)
        try:
            runner = await cls.connect(conductor.port)
        except BaseException:
            await conductor.terminate()
            raise
        return runner, conductor

    async def command(self, request: AdminRequest) -> AdminResponse:
        """Send one request and return its correlated response."""
        async with self._lock:
            if self.state is not AdminClientState.CONNECTED:
                raise AdminRequestError(f"Admin connection on port {self.port} is {self.state.value}")
            request_id = next(self._ids)
            frame = WireMessage(type="request", id=request_id, data=request.model_dump(mode="json"))
            try:
                await self._connection.send(frame.model_dump_json())
            except WebSocketException as exc:
                raise AdminRequestError(
                    f"Failed to send {request.type} to admin port {self.port}: {exc}"
                ) from exc
            LOG.debug("Sent %s (id %d) to port %d", request.type, request_id, self.port)
            return await self._receive(request_id, request.type)

    async def _receive(self, request_id: int, request_type: str) -> AdminResponse:
        while True:
            try:
                raw = await self._connection.recv()
            except WebSocketException as exc:
                self.close()
                raise AdminRequestError(
                    f"Connection on admin port {self.port} failed awaiting {request_type}: {exc}"
                ) from exc
            try:
                message = WireMessage.model_validate(json.loads(raw))
                response = AdminResponse.model_validate(message.data)
            except (ValueError, ValidationError) as exc:
                raise AdminRequestError(
                    f"Malformed response to {request_type} on admin port {self.port}: {exc}"
                ) from exc
            # A response to an earlier, abandoned request.
            if message.type == "response" and message.id < request_id:
                LOG.debug("Dropping stale response %d on port %d", message.id, self.port)
                continue
            if message.type != "response" or message.id != request_id:
                self.close()
                raise AdminRequestError(
                    f"Expected response {request_id} on admin port {self.port}, "
                    f"got {message.type} {message.id}"
                )
            return response

    def close(self) -> None:
        """Schedule a normal-closure close frame and return without awaiting it."""
        if self.state is AdminClientState.CLOSED:
            return
        previous, self.state = self.state, AdminClientState.CLOSED
        if previous is AdminClientState.DISCONNECTED:
            return
        task = asyncio.ensure_future(self._connection.close(1000, constants.CLOSE_REASON))
        _PENDING_CLOSES.add(task)
        task.add_done_callback(_close_done)

    async def aclose(self) -> None:
        """Close the connection and wait for the closing handshake."""
        if self.state is AdminClientState.CLOSED:
            return
        previous, self.state = self.state, AdminClientState.CLOSED
        if previous is AdminClientState.DISCONNECTED:
            return
        await self._connection.close(1000, constants.CLOSE_REASON)

    async def __aenter__(self) -> "CmdRunner":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close()


def _close_done(task: asyncio.Task) -> None:
    _PENDING_CLOSES.discard(task)
    if not task.cancelled() and task.exception() is not None:
        LOG.debug("Closing admin connection failed: %s", task.exception())


def expect_variant(response: AdminResponse, variant: str, context: str = "") -> Any:
    """Return the payload of `response` if it is `variant`, else raise."""
    if response.type != variant:
        prefix = f"{context}: " if context else ""
        raise UnexpectedResponseError(
            f"{prefix}Expected {variant} but got {response.type} {response.data!r}"
        )
    return response.data
