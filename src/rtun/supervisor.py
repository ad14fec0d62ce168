"""Tunnel supervisor: launches tunnels, watches them and stops them together."""

import threading
from collections.abc import Callable, Iterable
from types import TracebackType
from typing import Literal

from .common.exceptions import ConfigurationError, LaunchError, RtunError, RuntimeFailure
from .common.logging import get_logger
from .common.utils import describe_returncode, tail_lines
from .config import SupervisorConfig
from .process import ProcessLauncher, TunnelProcess
from .shutdown import ShutdownCoordinator
from .state import SupervisorState
from .tunnels.models import ShutdownResult, TerminationReason, TunnelSpec

logger = get_logger(__name__)


class TunnelSupervisor:
    """Owns the tunnel processes of one run.

    One monitor thread per launched process waits for it to exit. An exit
    before shutdown began is treated as a failure of the whole run: it is
    reported through ``notify`` so whoever waits for termination wakes up.

    Example:
        >>> with SignalBridge() as bridge:
        ...     supervisor = TunnelSupervisor(config, notify=bridge.notify)
        ...     supervisor.launch_all(specs)
        ...     result = supervisor.stop_all(reason=bridge.wait_for_termination())
    """

    def __init__(
        self,
        config: SupervisorConfig | None = None,
        launcher: ProcessLauncher | None = None,
        coordinator: ShutdownCoordinator | None = None,
        notify: Callable[[TerminationReason], None] | None = None,
    ):
        self.config = config or SupervisorConfig()
        self.launcher = launcher or ProcessLauncher(self.config)
        self.coordinator = coordinator or ShutdownCoordinator(self.config)
        self.state = SupervisorState()
        self.process_ended = threading.Event()
        self._notify = notify
        self._monitors: list[threading.Thread] = []

    def launch_all(self, specs: Iterable[TunnelSpec]) -> SupervisorState:
        """Launch one tunnel per spec, in order.

        A tunnel that fails to launch is recorded as failed; the remaining
        specs are still launched.

        Raises:
            ConfigurationError: If specs repeat or tunnels were already launched
        """
        specs = list(specs)
        if self.state.sealed:
            raise ConfigurationError("Tunnels have already been launched")
        if len(set(specs)) != len(specs):
            raise ConfigurationError("Tunnel specs must be unique")

        for spec in specs:
            try:
                process = self.launcher.launch(spec)
            except LaunchError as e:
                logger.warning("Tunnel failed to launch", port=spec.port, error=str(e))
                process = TunnelProcess(spec)
                process.mark_failed(e)
            self.state.add(process)
            if process.is_alive():
                self.monitor(process)

        self.state.seal()
        logger.info(
            "Tunnels launched",
            requested=len(specs),
            running=len(self.state.alive()),
        )
        return self.state

    def monitor(self, process: TunnelProcess) -> threading.Thread:
        """Start the watcher thread for a launched process"""
        thread = threading.Thread(
            target=self._watch,
            args=(process,),
            name=f"rtun-monitor-{process.port}",
            daemon=True,
        )
        self._monitors.append(thread)
        thread.start()
        return thread

    def _watch(self, process: TunnelProcess) -> None:
        handle = process.handle
        if handle is None:
            return

        try:
            # Drains stderr and closes the pipe once the process is gone
            _, stderr = handle.communicate()
        except (OSError, ValueError) as e:
            returncode = None
            unexpected = self.state.record_failure(
                process, RuntimeFailure(process.port, None, str(e))
            )
        else:
            returncode = handle.returncode
            unexpected = self.state.record_exit(process, returncode, stderr)

        self.process_ended.set()
        if not unexpected:
            logger.info(
                "Tunnel exited",
                port=process.port,
                returncode=returncode,
            )
            return

        logger.error(
            "Tunnel exited unexpectedly",
            port=process.port,
            status=describe_returncode(returncode),
            stderr=tail_lines(process.stderr),
        )
        if self._notify is not None:
            self._notify(TerminationReason.CHILD_FAILURE)

    def running(self) -> list[TunnelProcess]:
        return self.state.alive()

    def stop_all(
        self,
        deadline: float | None = None,
        grace_period: float | None = None,
        reason: TerminationReason | None = None,
    ) -> ShutdownResult:
        """Stop every tunnel and report the outcome.

        Safe to call from several threads and more than once; only one
        shutdown sequence runs and every caller gets its result.
        """
        return self.coordinator.stop(
            self.state, reason=reason, deadline=deadline, grace_period=grace_period
        )

    def join(self, timeout: float | None = None) -> bool:
        """Wait for all monitor threads to finish.

        Returns:
            True if every monitor finished within the timeout
        """
        for thread in self._monitors:
            thread.join(timeout)
        return not any(thread.is_alive() for thread in self._monitors)

    def __enter__(self) -> "TunnelSupervisor":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> Literal[False]:
        """Stop whatever is still running"""
        if len(self.state):
            try:
                self.stop_all()
            except RtunError as e:
                logger.error("Error during supervisor cleanup", error=str(e))
        return False
