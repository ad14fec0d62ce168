"""Process management for ssh tunnel processes."""

import os
import shutil
import subprocess
import threading
from collections.abc import Callable
from pathlib import Path
from typing import Any

from .common.exceptions import LaunchError, LaunchErrorKind, RtunError
from .common.logging import get_logger
from .config import SupervisorConfig
from .tunnels.models import TunnelSpec, TunnelState

logger = get_logger(__name__)


class TunnelProcess:
    """One external ssh process forwarding a single port.

    State changes are made by the supervisor (under its state lock) and by
    the launcher before the process is published; everyone else reads.
    """

    def __init__(self, spec: TunnelSpec):
        self.spec = spec
        self.state = TunnelState.STARTING
        self.handle: subprocess.Popen[str] | None = None
        self.returncode: int | None = None
        self.error: RtunError | None = None
        self.stderr = ""
        self.unexpected = False
        self._exited = threading.Event()

    def __repr__(self) -> str:
        return f"TunnelProcess(port={self.spec.port}, state={self.state.value}, pid={self.pid})"

    @property
    def port(self) -> int:
        return self.spec.port

    @property
    def pid(self) -> int | None:
        """Get process ID if a process was started"""
        if self.handle is None:
            return None
        return self.handle.pid

    def is_alive(self) -> bool:
        """Check if the tunnel is still starting or running"""
        return self.state in (TunnelState.STARTING, TunnelState.RUNNING)

    def has_exited(self) -> bool:
        return self._exited.is_set()

    def wait_for_exit(self, timeout: float | None = None) -> bool:
        """Block until the monitor has recorded this process's exit.

        Returns:
            True if the exit was recorded within the timeout
        """
        return self._exited.wait(timeout)

    def attach(self, handle: "subprocess.Popen[str]") -> None:
        self.handle = handle
        self.state = TunnelState.RUNNING

    def mark_exited(self, returncode: int | None, stderr: str, unexpected: bool) -> None:
        self.returncode = returncode
        self.stderr = stderr or ""
        self.unexpected = unexpected
        self.state = TunnelState.EXITED
        self._exited.set()

    def mark_failed(self, error: RtunError) -> None:
        self.error = error
        self.state = TunnelState.FAILED
        self._exited.set()

    def terminate(self) -> bool:
        """Send the graceful termination request.

        Returns:
            True if the request was delivered to a live process
        """
        return self._send("terminate")

    def kill(self) -> bool:
        """Forcefully kill the process.

        Returns:
            True if the kill was delivered to a live process
        """
        return self._send("kill")

    def _send(self, method: str) -> bool:
        if self.handle is None or self.has_exited():
            return False
        try:
            getattr(self.handle, method)()
        except ProcessLookupError:
            # Exited between the check and the signal; the monitor records it
            return False
        logger.debug("Signal sent", action=method, port=self.port, pid=self.pid)
        return True


class ProcessLauncher:
    """Starts one ssh port-forward process per tunnel spec"""

    def __init__(
        self,
        config: SupervisorConfig | None = None,
        popen: Callable[..., Any] = subprocess.Popen,
    ):
        """Initialize ProcessLauncher

        Args:
            config: Supervisor configuration (ssh binary, addresses, options)
            popen: Process factory with the subprocess.Popen signature
        """
        self.config = config or SupervisorConfig()
        self._popen = popen

    def resolve_binary(self) -> str:
        """Locate the ssh executable

        Raises:
            LaunchError: If binary doesn't exist or isn't executable
        """
        binary = self.config.ssh_binary
        if os.sep in binary or (os.altsep and os.altsep in binary):
            path = Path(binary)
            if not path.is_file():
                raise LaunchError(f"Binary not found: {binary}")
            if not os.access(path, os.X_OK):
                raise LaunchError(f"Binary is not executable: {binary}")
            return str(path)

        resolved = shutil.which(binary)
        if resolved is None:
            raise LaunchError(f"Binary not found on PATH: {binary}")
        return resolved

    def forward_argument(self, spec: TunnelSpec) -> str:
        """The -L value binding local port P to remote port P"""
        remote = f"{self.config.remote_address}:{spec.port}"
        if self.config.bind_address:
            return f"{self.config.bind_address}:{spec.port}:{remote}"
        return f"{spec.port}:{remote}"

    def build_command(self, spec: TunnelSpec) -> list[str]:
        """Build the ssh invocation for a tunnel.

        -N runs no remote command, -T disables the TTY, so ssh stays in the
        foreground for as long as the forward is up.
        """
        command = [self.resolve_binary(), "-N", "-T"]
        if self.config.exit_on_forward_failure:
            command += ["-o", "ExitOnForwardFailure=yes"]
        for option in self.config.ssh_options:
            command += ["-o", option]
        command += ["-L", self.forward_argument(spec), spec.destination]
        return command

    def launch(self, spec: TunnelSpec) -> TunnelProcess:
        """Start the tunnel process for a spec

        Returns:
            TunnelProcess in RUNNING state

        Raises:
            LaunchError: If the process cannot be started
        """
        try:
            command = self.build_command(spec)
        except LaunchError as e:
            e.port = spec.port
            raise

        process = TunnelProcess(spec)
        kwargs: dict[str, Any] = {
            "stdin": subprocess.DEVNULL,
            "stdout": subprocess.DEVNULL,
            "stderr": subprocess.PIPE,
            "text": True,
            "errors": "replace",
        }
        if os.name == "posix":
            # Terminal signals go to us only; children are stopped explicitly
            kwargs["start_new_session"] = True

        logger.info("Starting tunnel", port=spec.port, command=" ".join(command))
        try:
            handle = self._popen(command, **kwargs)
        except OSError as e:
            logger.error("Failed to start tunnel", port=spec.port, error=str(e))
            raise LaunchError(
                f"Failed to start tunnel on port {spec.port}: {e}", port=spec.port
            ) from e
        except ValueError as e:
            logger.error("Invalid tunnel arguments", port=spec.port, error=str(e))
            raise LaunchError(
                f"Invalid arguments for port {spec.port}: {e}",
                kind=LaunchErrorKind.ARGUMENTS,
                port=spec.port,
            ) from e

        process.attach(handle)
        logger.info("Tunnel started", port=spec.port, pid=process.pid)
        return process
