"""Error taxonomy shared by the registry, launcher, admin client and dispatcher."""

from __future__ import annotations


class HcAdminError(RuntimeError):
    """Base class for every failure reported by hc-admin."""

    kind = "HcAdminError"


class SetupIOError(HcAdminError):
    """Raised when the manifest or a setup directory cannot be read or written."""

    kind = "IoError"


class InvalidIndexError(HcAdminError):
    """Raised when a selection references an entry that does not exist."""

    kind = "InvalidIndex"

    def __init__(self, indices, size: int) -> None:
        self.indices = sorted(indices)
        self.size = size
        listed = ", ".join(str(i) for i in self.indices)
        super().__init__(f"index {listed} out of range (registry has {size} entries)")


class AmbiguousSelectionError(HcAdminError):
    """Raised when an operation needs a single setup but several are registered."""

    kind = "AmbiguousSelection"


class ProcessSpawnError(HcAdminError):
    """Raised when the conductor binary cannot be started."""

    kind = "ProcessSpawnError"


class LaunchTimeoutError(HcAdminError):
    """Raised when a launched conductor never exposes its admin port."""

    kind = "LaunchTimeout"


class AdminConnectError(HcAdminError):
    """Raised when the admin websocket cannot be opened."""

    kind = "ConnectError"


class AdminRequestError(HcAdminError):
    """Raised when a request cannot be written or its response cannot be read."""

    kind = "RequestError"


class UnexpectedResponseError(HcAdminError):
    """Raised when a response is not the variant the caller expected."""

    kind = "UnexpectedResponse"


class ConfigError(HcAdminError):
    """Raised when a setup's conductor config is missing or malformed."""

    kind = "ConfigError"


def describe(exc: HcAdminError) -> str:
    """Render an error the way the CLI reports it."""
    return f"{exc.kind}: {exc}"
