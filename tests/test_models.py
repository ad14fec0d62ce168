"""Tests for tunnel models."""

import pytest
from pydantic import ValidationError

from rtun.common.exceptions import ConfigurationError, RuntimeFailure
from rtun.tunnels.models import (
    ShutdownResult,
    TerminationReason,
    TunnelOutcome,
    TunnelReport,
    TunnelSpec,
    make_specs,
)


class TestTunnelSpec:
    """Test TunnelSpec model."""

    def test_defaults(self):
        spec = TunnelSpec(port=8088)
        assert spec.user == "user"
        assert spec.host == "localhost"
        assert spec.destination == "user@localhost"

    def test_str(self):
        spec = TunnelSpec(port=8088, user="alice", host="gpu-box")
        assert str(spec) == "8088 -> alice@gpu-box:8088"

    def test_is_immutable(self):
        spec = TunnelSpec(port=8088)
        with pytest.raises(ValidationError):
            spec.port = 9000

    def test_is_hashable_by_value(self):
        assert TunnelSpec(port=22) == TunnelSpec(port=22)
        assert len({TunnelSpec(port=22), TunnelSpec(port=22)}) == 1

    @pytest.mark.parametrize("port", [0, 65536, -1])
    def test_port_range(self, port):
        with pytest.raises(ValidationError):
            TunnelSpec(port=port)

    @pytest.mark.parametrize("port", [True, "8080", 80.0])
    def test_port_must_be_integer(self, port):
        with pytest.raises(ValidationError, match="must be an integer"):
            TunnelSpec(port=port)

    def test_strips_whitespace(self):
        spec = TunnelSpec(port=80, user=" alice ", host=" example.com ")
        assert spec.destination == "alice@example.com"

    @pytest.mark.parametrize(
        "field,value",
        [
            ("user", ""),
            ("host", "   "),
            ("host", "-oProxyCommand=evil"),
            ("user", "a@b"),
            ("host", "two words"),
        ],
    )
    def test_rejects_bad_login_parts(self, field, value):
        with pytest.raises(ValidationError):
            TunnelSpec(port=80, **{field: value})

    def test_extra_fields_forbidden(self):
        with pytest.raises(ValidationError):
            TunnelSpec(port=80, remote_port=81)


class TestMakeSpecs:
    """Test make_specs function."""

    def test_preserves_order(self):
        specs = make_specs([11434, 10600, 8088])
        assert [s.port for s in specs] == [11434, 10600, 8088]
        assert all(s.destination == "user@localhost" for s in specs)

    def test_returns_tuple(self):
        assert isinstance(make_specs([80]), tuple)

    def test_requires_ports(self):
        with pytest.raises(ConfigurationError, match="At least one port"):
            make_specs([])

    def test_rejects_duplicates(self):
        with pytest.raises(ConfigurationError, match="Duplicate ports: 80"):
            make_specs([80, 443, 80])

    def test_wraps_validation_errors(self):
        with pytest.raises(ConfigurationError):
            make_specs([80], host="")
        with pytest.raises(ConfigurationError):
            make_specs([70000])


class TestShutdownResult:
    """Test ShutdownResult aggregate."""

    def _result(self, *outcomes):
        reports = tuple(
            TunnelReport(spec=TunnelSpec(port=1000 + i), outcome=outcome)
            for i, outcome in enumerate(outcomes)
        )
        return ShutdownResult(reports=reports, reason=TerminationReason.USER_INTERRUPT)

    def test_all_stopped_is_ok(self):
        result = self._result(TunnelOutcome.STOPPED, TunnelOutcome.STOPPED)
        assert result.ok
        assert result.exit_code == 0
        assert result.failures == []

    @pytest.mark.parametrize(
        "outcome",
        [
            TunnelOutcome.KILLED,
            TunnelOutcome.STOP_TIMEOUT,
            TunnelOutcome.LAUNCH_FAILED,
            TunnelOutcome.CRASHED,
            TunnelOutcome.EXITED_EARLY,
        ],
    )
    def test_any_other_outcome_fails(self, outcome):
        result = self._result(TunnelOutcome.STOPPED, outcome)
        assert not result.ok
        assert result.exit_code == 1
        assert [r.spec.port for r in result.failures] == [1001]

    def test_count(self):
        result = self._result(
            TunnelOutcome.STOPPED, TunnelOutcome.LAUNCH_FAILED, TunnelOutcome.STOPPED
        )
        assert result.count(TunnelOutcome.STOPPED) == 2
        assert result.count(TunnelOutcome.LAUNCH_FAILED) == 1

    def test_lookup(self):
        result = self._result(TunnelOutcome.STOPPED, TunnelOutcome.CRASHED)
        assert result.report_for(1001).outcome == TunnelOutcome.CRASHED
        assert result[TunnelSpec(port=1000)].outcome == TunnelOutcome.STOPPED
        with pytest.raises(KeyError):
            result.report_for(9999)

    def test_is_read_only(self):
        result = self._result(TunnelOutcome.STOPPED)
        with pytest.raises(ValidationError):
            result.reason = None

    def test_report_carries_error(self):
        error = RuntimeFailure(8088, 1, "bind: Address already in use")
        report = TunnelReport(
            spec=TunnelSpec(port=8088),
            outcome=TunnelOutcome.CRASHED,
            returncode=1,
            error=error,
        )
        assert report.error is error
        assert not report.ok
