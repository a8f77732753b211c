"""Pydantic setup models."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from pydantic import BaseModel

from hc_admin.models.enums import SetupStatus


class SetupEntry(BaseModel):
    """One line of the `.hc` manifest, addressed by its position."""

    index: int
    path: Path


class ConductorInfo(BaseModel):
    """Outcome of launching one setup under `run`."""

    index: int
    path: Path
    status: SetupStatus
    port: Optional[int] = None
    pid: Optional[int] = None
    error: Optional[str] = None
