"""rtun - run a set of SSH port forwards and stop them together."""

__version__ = "0.1.0"

# High-level API
from .api import forward_ports, managed_tunnels, run_tunnels

# Common utilities
from .common.exceptions import (
    ConfigurationError,
    LaunchError,
    LaunchErrorKind,
    RtunError,
    RuntimeFailure,
    ShutdownTimeout,
    SignalDeliveryError,
)
from .common.logging import get_logger, setup_logging
from .config import SupervisorConfig

# Supervision core
from .process import ProcessLauncher, TunnelProcess
from .shutdown import CoordinatorPhase, ShutdownCoordinator
from .signals import SignalBridge
from .state import SupervisorState
from .supervisor import TunnelSupervisor
from .tunnels.models import (
    ShutdownResult,
    TerminationReason,
    TunnelOutcome,
    TunnelReport,
    TunnelSpec,
    TunnelState,
    make_specs,
)

# Setup logging on package initialization
setup_logging(level="WARNING")

__all__ = [
    # High-level API
    "run_tunnels",
    "forward_ports",
    "managed_tunnels",
    # Core
    "ProcessLauncher",
    "TunnelProcess",
    "TunnelSupervisor",
    "SupervisorState",
    "SignalBridge",
    "ShutdownCoordinator",
    "CoordinatorPhase",
    "SupervisorConfig",
    # Models
    "TunnelSpec",
    "TunnelState",
    "TunnelOutcome",
    "TunnelReport",
    "TerminationReason",
    "ShutdownResult",
    "make_specs",
    # Exceptions
    "RtunError",
    "ConfigurationError",
    "LaunchError",
    "LaunchErrorKind",
    "RuntimeFailure",
    "ShutdownTimeout",
    "SignalDeliveryError",
    # Logging
    "get_logger",
    "setup_logging",
]
