"""Admin port discovery for launched conductors."""

from __future__ import annotations

import asyncio
import re
from pathlib import Path
from typing import Optional

from hc_admin import constants
from hc_admin.errors import ConfigError
from hc_admin.utils.conductor_config import read_config, save_config
from hc_admin.utils.pathing import config_path

_PORT_PATTERN = re.compile(re.escape(constants.ADMIN_PORT_MARKER) + r"(\d+)###")


def parse_admin_port(line: str) -> Optional[int]:
    """Return the port announced on a conductor stdout line, if any."""
    match = _PORT_PATTERN.search(line)
    if match is None:
        return None
    port = int(match.group(1))
    if not 0 < port < 65536:
        return None
    return port


def force_admin_port(setup_path: Path, port: int) -> None:
    """Pin the first admin interface of a setup's config to `port`."""
    config = read_config(setup_path)
    interfaces = config.get("admin_interfaces") or []
    if not interfaces:
        raise ConfigError(f"Conductor config for {setup_path} has no admin interface")
    driver = interfaces[0].setdefault("driver", {"type": "websocket"})
    driver["port"] = port
    save_config(config_path(setup_path), config)


async def wait_for_port(host: str, port: int, timeout: float, interval: float = 0.1) -> bool:
    """Poll until a TCP connection to `host:port` succeeds or `timeout` elapses."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while True:
        try:
            _reader, writer = await asyncio.open_connection(host, port)
        except OSError:
            if loop.time() >= deadline:
                return False
            await asyncio.sleep(interval)
            continue
        writer.close()
        await writer.wait_closed()
        return True
