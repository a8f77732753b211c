"""Shared enums for hc-admin models."""

from __future__ import annotations

from enum import Enum


class NetworkType(str, Enum):
    QUIC = "quic"
    MEM = "mem"


class AdminClientState(str, Enum):
    DISCONNECTED = "DISCONNECTED"
    CONNECTED = "CONNECTED"
    CLOSED = "CLOSED"


class SetupStatus(str, Enum):
    RUNNING = "RUNNING"
    EXITED = "EXITED"
    FAILED = "FAILED"
