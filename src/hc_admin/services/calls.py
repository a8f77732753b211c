"""Builders for the admin requests exposed by `hc call`."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, Optional

from hc_admin.models.admin import AdminRequest


def add_admin_ws(port: int) -> AdminRequest:
    return AdminRequest(
        type="add_admin_interfaces",
        data=[{"driver": {"type": "websocket", "port": port}}],
    )


def add_app_ws(port: int) -> AdminRequest:
    return AdminRequest(type="attach_app_interface", data={"port": port})


def register_dna(path: Path, uuid: Optional[str] = None) -> AdminRequest:
    return AdminRequest(type="register_dna", data={"source": {"path": str(path)}, "uuid": uuid})


def generate_agent_pub_key() -> AdminRequest:
    return AdminRequest(type="generate_agent_pub_key")


def install_app(app_id: str, agent_key, dnas: Iterable[Path]) -> AdminRequest:
    """Install `dnas` under `app_id`; each DNA is nicknamed after its file."""
    return AdminRequest(
        type="install_app",
        data={
            "installed_app_id": app_id,
            "agent_key": agent_key,
            "dnas": [{"path": str(dna), "nick": dna_nick(dna)} for dna in dnas],
        },
    )


def activate_app(app_id: str) -> AdminRequest:
    return AdminRequest(type="activate_app", data={"installed_app_id": app_id})


def deactivate_app(app_id: str) -> AdminRequest:
    return AdminRequest(type="deactivate_app", data={"installed_app_id": app_id})


def list_dnas() -> AdminRequest:
    return AdminRequest(type="list_dnas")


def list_cells() -> AdminRequest:
    return AdminRequest(type="list_cell_ids")


def list_active_apps() -> AdminRequest:
    return AdminRequest(type="list_active_apps")


def dump_state(cell_id: str) -> AdminRequest:
    return AdminRequest(type="dump_state", data={"cell_id": cell_id})


def dna_nick(path: Path) -> str:
    name = Path(path).name
    for suffix in (".dna.gz", ".dna"):
        if name.endswith(suffix):
            return name[: -len(suffix)]
    return name
