"""Shared supervisor state: the tunnel table and the one-time shutdown flag."""

import threading
from collections.abc import Iterator

from .common.exceptions import ConfigurationError, RtunError
from .process import TunnelProcess
from .tunnels.models import TunnelSpec


class SupervisorState:
    """Tunnels of one run plus the shutdown flag.

    Every state transition (a tunnel's exit being recorded, the shutdown flag
    being raised) happens under one lock, so an exit is either recorded
    before shutdown began (and counts as unexpected) or after it.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._tunnels: dict[TunnelSpec, TunnelProcess] = {}
        self._sealed = False
        self._shutting_down = False

    def add(self, process: TunnelProcess) -> None:
        """Register a launched (or failed) tunnel.

        Raises:
            ConfigurationError: If the table is sealed or the port is already present
        """
        with self._lock:
            if self._sealed:
                raise ConfigurationError("Tunnels cannot be added after launch")
            if process.spec in self._tunnels:
                raise ConfigurationError(f"Duplicate tunnel: {process.spec}")
            self._tunnels[process.spec] = process

    def seal(self) -> None:
        with self._lock:
            self._sealed = True

    @property
    def sealed(self) -> bool:
        return self._sealed

    @property
    def shutting_down(self) -> bool:
        with self._lock:
            return self._shutting_down

    def try_begin_shutdown(self) -> bool:
        """Raise the shutdown flag.

        Returns:
            True for exactly one caller; everyone else sees False
        """
        with self._lock:
            if self._shutting_down:
                return False
            self._shutting_down = True
            return True

    def record_exit(
        self, process: TunnelProcess, returncode: int | None, stderr: str
    ) -> bool:
        """Record that a tunnel process exited.

        Returns:
            True if the exit happened before shutdown began
        """
        with self._lock:
            unexpected = not self._shutting_down
            process.mark_exited(returncode, stderr, unexpected)
            return unexpected

    def record_failure(self, process: TunnelProcess, error: RtunError) -> bool:
        """Record that a tunnel could not be observed any more.

        Returns:
            True if the failure happened before shutdown began
        """
        with self._lock:
            unexpected = not self._shutting_down
            process.unexpected = unexpected
            process.mark_failed(error)
            return unexpected

    def alive(self) -> list[TunnelProcess]:
        """Tunnels still starting or running"""
        with self._lock:
            return [p for p in self._tunnels.values() if p.is_alive()]

    @property
    def tunnels(self) -> dict[TunnelSpec, TunnelProcess]:
        with self._lock:
            return dict(self._tunnels)

    def __getitem__(self, spec: TunnelSpec) -> TunnelProcess:
        with self._lock:
            return self._tunnels[spec]

    def __contains__(self, spec: object) -> bool:
        with self._lock:
            return spec in self._tunnels

    def __iter__(self) -> Iterator[TunnelProcess]:
        with self._lock:
            return iter(list(self._tunnels.values()))

    def __len__(self) -> int:
        with self._lock:
            return len(self._tunnels)
