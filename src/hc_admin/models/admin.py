"""Pydantic models for admin websocket frames."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel


class AdminRequest(BaseModel):
    """Tagged admin request; `data` is forwarded to the conductor untouched."""

    type: str
    data: Any = None


class AdminResponse(BaseModel):
    """Tagged admin response; `data` is returned to the caller untouched."""

    type: str
    data: Any = None

    @property
    def is_error(self) -> bool:
        return self.type == "error"


class WireMessage(BaseModel):
    """Envelope correlating a request with its response."""

    type: Literal["request", "response"]
    id: int
    data: Any = None


class CallResult(BaseModel):
    """Response to one `hc call` target."""

    target: str
    port: int
    response: AdminResponse
