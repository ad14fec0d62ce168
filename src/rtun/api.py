"""High-level API for rtun.

This module wires the signal bridge, the supervisor and the shutdown
coordinator into a single blocking run.
"""

from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager
from typing import Any

from .common.logging import get_logger
from .config import SupervisorConfig
from .process import ProcessLauncher
from .signals import SignalBridge
from .supervisor import TunnelSupervisor
from .tunnels.models import (
    DEFAULT_HOST,
    DEFAULT_USER,
    ShutdownResult,
    TerminationReason,
    TunnelSpec,
    make_specs,
)

logger = get_logger(__name__)


def run_tunnels(
    specs: Iterable[TunnelSpec],
    config: SupervisorConfig | None = None,
    *,
    on_started: Callable[[TunnelSupervisor], Any] | None = None,
    launcher: ProcessLauncher | None = None,
) -> ShutdownResult:
    """Run tunnels until a termination signal arrives or one of them fails.

    Must be called from the main thread.

    Args:
        specs: Tunnels to run, in launch order
        config: Supervisor configuration
        on_started: Called with the supervisor once every tunnel was launched
        launcher: Process launcher, defaults to one built from config

    Returns:
        ShutdownResult: Per-tunnel outcome of the run

    Raises:
        SignalDeliveryError: If the signal handlers cannot be installed

    Example:
        >>> result = run_tunnels(make_specs([8080, 5432], host="db.example.com"))
        >>> sys.exit(result.exit_code)
    """
    with SignalBridge() as bridge, TunnelSupervisor(
        config, launcher=launcher, notify=bridge.notify
    ) as supervisor:
        supervisor.launch_all(specs)
        if on_started is not None:
            on_started(supervisor)

        if supervisor.running():
            reason = bridge.wait_for_termination()
        else:
            logger.warning("No tunnel is running")
            # Tunnels that died during launch have posted CHILD_FAILURE once
            # their monitor finished
            supervisor.join(timeout=supervisor.config.grace_period)
            reason = bridge.wait_for_termination(timeout=0)
        logger.info("Termination requested", reason=reason.value if reason else None)
        return supervisor.stop_all(reason=reason)


def forward_ports(
    ports: Iterable[int],
    user: str = DEFAULT_USER,
    host: str = DEFAULT_HOST,
    **config_kwargs: Any,
) -> ShutdownResult:
    """Forward each port to the same port on user@host until interrupted.

    Example:
        >>> forward_ports([11434, 10600, 8088], host="gpu-box")
    """
    return run_tunnels(make_specs(ports, user=user, host=host), SupervisorConfig(**config_kwargs))


@contextmanager
def managed_tunnels(
    specs: Iterable[TunnelSpec],
    config: SupervisorConfig | None = None,
    notify: Callable[[TerminationReason], None] | None = None,
    launcher: ProcessLauncher | None = None,
) -> Iterator[TunnelSupervisor]:
    """Context manager that launches tunnels and stops them on exit.

    No signal handlers are installed; the caller decides when to leave.

    Example:
        >>> with managed_tunnels(make_specs([8080])) as supervisor:
        ...     run_job_against("localhost:8080")
        >>> supervisor.coordinator.result.ok
    """
    with TunnelSupervisor(config, launcher=launcher, notify=notify) as supervisor:
        supervisor.launch_all(specs)
        yield supervisor
