"""Common utilities and shared functionality."""

from .exceptions import (
    ConfigurationError,
    LaunchError,
    LaunchErrorKind,
    RtunError,
    RuntimeFailure,
    ShutdownTimeout,
    SignalDeliveryError,
)
from .logging import get_logger, setup_logging
from .utils import (
    MAX_PORT,
    MIN_PORT,
    describe_returncode,
    tail_lines,
    validate_non_empty_string,
    validate_port,
)

__all__ = [
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
    # Utils
    "validate_port",
    "validate_non_empty_string",
    "describe_returncode",
    "tail_lines",
    "MIN_PORT",
    "MAX_PORT",
]
