"""Tunnel models for rtun.

This module defines the immutable tunnel spec, the lifecycle enums and the
aggregate shutdown result reported at the end of a run.
"""

from collections import Counter
from collections.abc import Iterable
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..common.exceptions import ConfigurationError, RtunError
from ..common.utils import MAX_PORT, MIN_PORT, validate_non_empty_string, validate_port

DEFAULT_USER = "user"
DEFAULT_HOST = "localhost"


class TunnelState(str, Enum):
    """Lifecycle state of a single tunnel process."""

    STARTING = "starting"
    RUNNING = "running"
    EXITED = "exited"
    FAILED = "failed"


class TunnelOutcome(str, Enum):
    """Final outcome of a tunnel, as reported after shutdown."""

    STOPPED = "stopped"
    KILLED = "killed"
    STOP_TIMEOUT = "stop-timed-out"
    LAUNCH_FAILED = "failed-to-launch"
    CRASHED = "crashed"
    EXITED_EARLY = "exited-early"


class TerminationReason(str, Enum):
    """What caused the supervisor to start shutting down."""

    USER_INTERRUPT = "user-interrupt"
    TERMINATE_REQUEST = "terminate-request"
    CHILD_FAILURE = "child-failure"


class TunnelSpec(BaseModel):
    """One requested port forward: local port P to remote port P on user@host."""

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True, extra="forbid")

    port: int = Field(ge=MIN_PORT, le=MAX_PORT, description="Local and remote port")
    user: str = Field(default=DEFAULT_USER, min_length=1, description="SSH user")
    host: str = Field(default=DEFAULT_HOST, min_length=1, description="SSH host")

    @field_validator("port", mode="before")
    @classmethod
    def validate_port_number(cls, v: int) -> int:
        return validate_port(v)

    @field_validator("user", "host")
    @classmethod
    def validate_login_part(cls, v: str) -> str:
        """Reject values ssh would misread as options or a second destination."""
        v = validate_non_empty_string(v, "Value")
        if v.startswith("-"):
            raise ValueError("must not start with '-'")
        if "@" in v or any(ch.isspace() for ch in v):
            raise ValueError("must not contain '@' or whitespace")
        return v

    @property
    def destination(self) -> str:
        """ssh destination string."""
        return f"{self.user}@{self.host}"

    def __str__(self) -> str:
        return f"{self.port} -> {self.destination}:{self.port}"


def make_specs(
    ports: Iterable[int], user: str = DEFAULT_USER, host: str = DEFAULT_HOST
) -> tuple[TunnelSpec, ...]:
    """Build the ordered tunnel specs for a run.

    Raises:
        ConfigurationError: If no ports are given, a port repeats, or any
            value fails validation
    """
    ports = list(ports)
    if not ports:
        raise ConfigurationError("At least one port is required")

    duplicates = sorted(port for port, n in Counter(ports).items() if n > 1)
    if duplicates:
        raise ConfigurationError(
            f"Duplicate ports: {', '.join(str(p) for p in duplicates)}"
        )

    try:
        return tuple(TunnelSpec(port=port, user=user, host=host) for port in ports)
    except ValidationError as e:
        raise ConfigurationError(str(e)) from e


class TunnelReport(BaseModel):
    """Final outcome of one tunnel."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    spec: TunnelSpec
    outcome: TunnelOutcome
    returncode: int | None = None
    detail: str = ""
    error: RtunError | None = None

    @property
    def ok(self) -> bool:
        return self.outcome == TunnelOutcome.STOPPED


class ShutdownResult(BaseModel):
    """Aggregate outcome of a run, one report per tunnel in launch order."""

    model_config = ConfigDict(frozen=True)

    reports: tuple[TunnelReport, ...] = ()
    reason: TerminationReason | None = None

    @property
    def ok(self) -> bool:
        """True only if every tunnel launched and was later stopped cleanly."""
        return all(report.ok for report in self.reports)

    @property
    def exit_code(self) -> int:
        return 0 if self.ok else 1

    @property
    def failures(self) -> list[TunnelReport]:
        return [report for report in self.reports if not report.ok]

    def count(self, outcome: TunnelOutcome) -> int:
        return sum(1 for report in self.reports if report.outcome == outcome)

    def report_for(self, port: int) -> TunnelReport:
        """Look up the report for a port.

        Raises:
            KeyError: If no tunnel was requested for the port
        """
        for report in self.reports:
            if report.spec.port == port:
                return report
        raise KeyError(port)

    def __getitem__(self, spec: TunnelSpec) -> TunnelReport:
        for report in self.reports:
            if report.spec == spec:
                return report
        raise KeyError(spec)
