"""Tests for the rtun command line interface."""

from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from rtun import __version__
from rtun.cli import app
from rtun.common.exceptions import RuntimeFailure, SignalDeliveryError
from rtun.common.logging import setup_logging
from rtun.tunnels.models import (
    ShutdownResult,
    TerminationReason,
    TunnelOutcome,
    TunnelReport,
    TunnelSpec,
)


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture(autouse=True)
def restore_logging():
    yield
    # main() points the log handler at the runner's captured stderr
    setup_logging(level="WARNING")


def make_result(*outcomes, reason=TerminationReason.USER_INTERRUPT):
    reports = []
    for port, outcome in outcomes:
        error = RuntimeFailure(port, 255) if outcome == TunnelOutcome.CRASHED else None
        reports.append(
            TunnelReport(
                spec=TunnelSpec(port=port, host="gpu-box"),
                outcome=outcome,
                detail="exit status 255" if error else "",
                error=error,
            )
        )
    return ShutdownResult(reports=tuple(reports), reason=reason)


class TestUsageErrors:
    """Test rejecting bad invocations before anything is launched."""

    @patch("rtun.cli.run_tunnels")
    def test_no_ports(self, mock_run, runner):
        result = runner.invoke(app, [])

        assert result.exit_code == 2
        mock_run.assert_not_called()

    @pytest.mark.parametrize("port", ["0", "65536", "http"])
    @patch("rtun.cli.run_tunnels")
    def test_invalid_port(self, mock_run, runner, port):
        result = runner.invoke(app, ["8080", port])

        assert result.exit_code == 2
        mock_run.assert_not_called()

    @patch("rtun.cli.run_tunnels")
    def test_duplicate_ports(self, mock_run, runner):
        result = runner.invoke(app, ["8080", "9090", "8080"])

        assert result.exit_code == 2
        assert "Duplicate ports: 8080" in result.output
        mock_run.assert_not_called()

    @patch("rtun.cli.run_tunnels")
    def test_invalid_host(self, mock_run, runner):
        result = runner.invoke(app, ["8080", "--host=-oProxyCommand=x"])

        assert result.exit_code == 2
        mock_run.assert_not_called()

    @patch("rtun.cli.run_tunnels")
    def test_invalid_ssh_option(self, mock_run, runner):
        result = runner.invoke(app, ["8080", "-o", "NoEquals"])

        assert result.exit_code == 2
        mock_run.assert_not_called()

    @patch("rtun.cli.run_tunnels")
    def test_invalid_log_level(self, mock_run, runner):
        result = runner.invoke(app, ["8080", "--log-level", "LOUD"])

        assert result.exit_code == 2
        mock_run.assert_not_called()


class TestRun:
    """Test running tunnels from the command line."""

    def test_version(self, runner):
        result = runner.invoke(app, ["--version"])

        assert result.exit_code == 0
        assert f"rtun {__version__}" in result.output

    @patch("rtun.cli.run_tunnels")
    def test_clean_run(self, mock_run, runner):
        mock_run.return_value = make_result(
            (11434, TunnelOutcome.STOPPED), (8088, TunnelOutcome.STOPPED)
        )

        result = runner.invoke(app, ["11434", "8088", "--host", "gpu-box"])

        assert result.exit_code == 0
        assert "Rtun - SSH Tunnel Manager" in result.output
        assert "stopped" in result.output

        specs, config = mock_run.call_args.args
        assert [s.port for s in specs] == [11434, 8088]
        assert {s.destination for s in specs} == {"user@gpu-box"}
        assert config.ssh_binary == "ssh"

    @patch("rtun.cli.run_tunnels")
    def test_failed_run(self, mock_run, runner):
        mock_run.return_value = make_result(
            (11434, TunnelOutcome.STOPPED),
            (8088, TunnelOutcome.CRASHED),
            reason=TerminationReason.CHILD_FAILURE,
        )

        result = runner.invoke(app, ["11434", "8088"])

        assert result.exit_code == 1
        assert "crashed" in result.output

    @patch("rtun.cli.run_tunnels")
    def test_options_reach_config(self, mock_run, runner):
        mock_run.return_value = make_result((8080, TunnelOutcome.STOPPED))

        result = runner.invoke(
            app,
            [
                "8080",
                "--deadline", "1.5",
                "--grace-period", "0.5",
                "--bind-address", "127.0.0.1",
                "-o", "ServerAliveInterval=30",
                "-o", "ConnectTimeout=5",
            ],
        )

        assert result.exit_code == 0
        config = mock_run.call_args.args[1]
        assert config.deadline == 1.5
        assert config.grace_period == 0.5
        assert config.bind_address == "127.0.0.1"
        assert config.ssh_options == ["ServerAliveInterval=30", "ConnectTimeout=5"]

    @patch("rtun.cli.run_tunnels")
    def test_environment_defaults(self, mock_run, runner):
        mock_run.return_value = make_result((8080, TunnelOutcome.STOPPED))

        result = runner.invoke(
            app,
            ["8080"],
            env={"RTUN_USER": "alice", "RTUN_HOST": "db.example.com", "RTUN_SSH_BINARY": "/opt/ssh"},
        )

        assert result.exit_code == 0
        specs, config = mock_run.call_args.args
        assert specs[0].destination == "alice@db.example.com"
        assert config.ssh_binary == "/opt/ssh"

    @patch("rtun.cli.run_tunnels")
    def test_signal_setup_failure(self, mock_run, runner):
        mock_run.side_effect = SignalDeliveryError("Cannot install signal handlers")

        result = runner.invoke(app, ["8080"])

        assert result.exit_code == 3
        assert "Cannot install signal handlers" in result.output

    @patch("rtun.cli.setup_logging")
    @patch("rtun.cli.run_tunnels")
    def test_log_options_reach_setup(self, mock_run, mock_setup, runner, tmp_path):
        mock_run.return_value = make_result((8080, TunnelOutcome.STOPPED))
        log_file = tmp_path / "rtun.log"

        result = runner.invoke(
            app, ["8080", "--log-level", "info", "--json-logs", "--log-file", str(log_file)]
        )

        assert result.exit_code == 0
        mock_setup.assert_called_once_with(level="INFO", json_format=True, log_file=str(log_file))
