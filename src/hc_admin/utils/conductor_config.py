"""Conductor config files written into each setup directory."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict

import yaml

from hc_admin.errors import ConfigError
from hc_admin.models.enums import NetworkType
from hc_admin.utils.pathing import config_path


def build_config(setup_path: Path, network: NetworkType | None = None) -> Dict[str, Any]:
    """Return the config mapping for a fresh setup; admin port 0 lets the OS choose."""
    network_config = None
    if network == NetworkType.QUIC:
        network_config = {"transport_pool": [{"type": "quic"}]}
    return {
        "environment_path": str(setup_path / "databases"),
        "keystore_path": str(setup_path / "keystore"),
        "use_dangerous_test_keystore": False,
        "admin_interfaces": [{"driver": {"type": "websocket", "port": 0}}],
        "network": network_config,
    }


def write_config(setup_path: Path, network: NetworkType | None = None) -> Path:
    path = config_path(setup_path)
    save_config(path, build_config(Path(setup_path), network))
    return path


def read_config(setup_path: Path) -> Dict[str, Any]:
    path = config_path(setup_path)
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise ConfigError(f"No conductor config at {path}") from exc
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigError(f"Unable to read conductor config {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Conductor config {path} is not a mapping")
    return data


def save_config(path: Path, config: Dict[str, Any]) -> None:
    try:
        path.write_text(yaml.safe_dump(config, sort_keys=False), encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Unable to write conductor config {path}: {exc}") from exc
