"""Tunnel models."""

from .models import (
    DEFAULT_HOST,
    DEFAULT_USER,
    ShutdownResult,
    TerminationReason,
    TunnelOutcome,
    TunnelReport,
    TunnelSpec,
    TunnelState,
    make_specs,
)

__all__ = [
    "TunnelSpec",
    "TunnelState",
    "TunnelOutcome",
    "TunnelReport",
    "TerminationReason",
    "ShutdownResult",
    "make_specs",
    "DEFAULT_USER",
    "DEFAULT_HOST",
]
