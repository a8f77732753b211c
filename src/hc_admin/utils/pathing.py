"""Filesystem helpers for hc-admin."""

from __future__ import annotations

from pathlib import Path

from hc_admin import constants


def ensure_runtime_directories() -> dict[str, Path]:
    """Create the directory tree required for runtime state."""
    required = {
        "home": constants.HOME_DIR,
        "logs": constants.LOG_DIR,
    }

    for path in required.values():
        path.mkdir(parents=True, exist_ok=True)

    return required


def manifest_path(root: Path | None = None) -> Path:
    """Return the `.hc` manifest location for a working directory."""
    return (root or Path.cwd()) / constants.MANIFEST_NAME


def config_path(setup_path: Path) -> Path:
    return Path(setup_path) / constants.CONFIG_FILENAME
