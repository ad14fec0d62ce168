"""Custom exceptions for rtun."""

from enum import Enum


class RtunError(Exception):
    """Base exception for all rtun errors."""

    pass


class ConfigurationError(RtunError):
    """Raised when configuration or tunnel specs are invalid."""

    pass


class LaunchErrorKind(str, Enum):
    """Why a tunnel process could not be started."""

    SPAWN = "spawn"
    ARGUMENTS = "arguments"


class LaunchError(RtunError):
    """Raised when a tunnel process cannot be started."""

    def __init__(
        self,
        message: str,
        kind: LaunchErrorKind = LaunchErrorKind.SPAWN,
        port: int | None = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.port = port


class RuntimeFailure(RtunError):
    """A tunnel process exited on its own while it was supposed to be running."""

    def __init__(self, port: int, returncode: int | None, stderr: str = ""):
        if returncode is None:
            message = f"Lost track of tunnel on port {port}: {stderr}"
        else:
            message = f"Tunnel on port {port} exited unexpectedly ({returncode})"
        super().__init__(message)
        self.port = port
        self.returncode = returncode
        self.stderr = stderr


class ShutdownTimeout(RtunError):
    """A tunnel process survived both the termination request and the kill."""

    def __init__(self, port: int, waited: float):
        super().__init__(f"Tunnel on port {port} did not exit after {waited:.1f}s")
        self.port = port
        self.waited = waited


class SignalDeliveryError(RtunError):
    """Raised when termination signal handlers cannot be installed."""

    pass
