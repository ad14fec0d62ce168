"""Supervisor configuration."""

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_DEADLINE = 5.0
DEFAULT_GRACE_PERIOD = 2.0


class SupervisorConfig(BaseModel):
    """Pydantic configuration for launching and stopping tunnels"""

    model_config = ConfigDict(
        str_strip_whitespace=True,
        validate_assignment=True,
        extra="forbid",
    )

    ssh_binary: str = Field(default="ssh", min_length=1, description="ssh executable")
    bind_address: str | None = Field(
        default=None, description="Local address to bind forwarded ports to"
    )
    remote_address: str = Field(
        default="127.0.0.1",
        min_length=1,
        description="Address the remote side connects to",
    )
    exit_on_forward_failure: bool = Field(
        default=True, description="Make ssh exit if a port cannot be forwarded"
    )
    ssh_options: list[str] = Field(
        default_factory=list, description="Extra ssh -o Key=Value options"
    )

    deadline: float = Field(
        default=DEFAULT_DEADLINE,
        gt=0,
        le=300.0,
        description="Seconds to wait for tunnels to exit after the termination request",
    )
    grace_period: float = Field(
        default=DEFAULT_GRACE_PERIOD,
        gt=0,
        le=60.0,
        description="Seconds to wait for tunnels to exit after a forceful kill",
    )

    @field_validator("ssh_options")
    @classmethod
    def validate_ssh_options(cls, v: list[str]) -> list[str]:
        """Each option must look like Key=Value"""
        cleaned = []
        for option in v:
            option = option.strip()
            key, sep, _ = option.partition("=")
            if not sep or not key or key.startswith("-"):
                raise ValueError(f"ssh option must be Key=Value, got: {option!r}")
            cleaned.append(option)
        return cleaned

    @field_validator("bind_address", "remote_address")
    @classmethod
    def validate_address(cls, v: str | None) -> str | None:
        if v is not None and (not v or any(ch.isspace() or ch == ":" for ch in v)):
            # IPv6 addresses are accepted in brackets only
            if not (v.startswith("[") and v.endswith("]")):
                raise ValueError(f"Invalid address: {v!r}")
        return v
