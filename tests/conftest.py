"""Shared pytest fixtures for rtun tests."""

import itertools
import sys
import threading

import pytest

from rtun.config import SupervisorConfig
from rtun.process import ProcessLauncher
from rtun.signals import SignalBridge
from rtun.supervisor import TunnelSupervisor
from rtun.tunnels.models import make_specs


class FakeHandle:
    """Stand-in for subprocess.Popen that the test drives.

    Args:
        on_terminate: Return code to exit with on terminate(), None to ignore it
        on_kill: Return code to exit with on kill(), None to ignore it
        stderr: Text returned by communicate()
    """

    _pids = itertools.count(40000)

    def __init__(self, args=None, *, on_terminate=-15, on_kill=-9, stderr=""):
        self.args = args
        self.pid = next(self._pids)
        self.returncode = None
        self.on_terminate = on_terminate
        self.on_kill = on_kill
        self.stderr_text = stderr
        self.terminate_calls = 0
        self.kill_calls = 0
        self._lock = threading.Lock()
        self._exited = threading.Event()

    def exit(self, returncode):
        with self._lock:
            if self.returncode is None:
                self.returncode = returncode
                self._exited.set()

    def terminate(self):
        with self._lock:
            self.terminate_calls += 1
        if self.on_terminate is not None:
            self.exit(self.on_terminate)

    def kill(self):
        with self._lock:
            self.kill_calls += 1
        if self.on_kill is not None:
            self.exit(self.on_kill)

    def poll(self):
        return self.returncode

    def wait(self, timeout=None):
        self._exited.wait(timeout)
        return self.returncode

    def communicate(self, timeout=None):
        self._exited.wait()
        return None, self.stderr_text


class FakePopen:
    """Popen factory handing out FakeHandles, keyed by forwarded port.

    Behaviour can also be keyed by ssh destination ("user@host"), for
    tunnels that share a port.
    """

    def __init__(self):
        self.calls = []
        self.created = []
        self.handles = {}
        self.behaviour = {}
        self.failures = {}

    @staticmethod
    def port_of(command):
        forward = command[command.index("-L") + 1]
        return int(forward.rsplit(":", 1)[1])

    def __call__(self, command, **kwargs):
        port = self.port_of(command)
        self.calls.append((command, kwargs))
        if port in self.failures:
            raise self.failures[port]
        behaviour = self.behaviour.get(command[-1], self.behaviour.get(port, {}))
        handle = FakeHandle(command, **behaviour)
        self.created.append(handle)
        self.handles[port] = handle
        return handle

    def release_all(self):
        for handle in self.created:
            handle.exit(-9)


@pytest.fixture
def config():
    """Fast timeouts and an ssh binary that exists everywhere."""
    return SupervisorConfig(ssh_binary=sys.executable, deadline=0.5, grace_period=0.3)


@pytest.fixture
def make_fake_popen():
    """Factory for independent FakePopens, released at teardown."""
    created = []

    def make():
        popen = FakePopen()
        created.append(popen)
        return popen

    yield make
    # Unblock monitors waiting on handles that ignored kill()
    for popen in created:
        popen.release_all()


@pytest.fixture
def fake_popen(make_fake_popen):
    return make_fake_popen()


@pytest.fixture
def launcher(config, fake_popen):
    return ProcessLauncher(config, popen=fake_popen)


@pytest.fixture
def bridge():
    """A bridge used only as the merged notification channel (no OS handlers)."""
    return SignalBridge()


@pytest.fixture
def supervisor(config, launcher, bridge):
    return TunnelSupervisor(config, launcher=launcher, notify=bridge.notify)


@pytest.fixture
def specs():
    return make_specs([11434, 10600, 8088], user="user", host="localhost")
