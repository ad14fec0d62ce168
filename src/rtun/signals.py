"""Translate OS termination signals into a single stop request.

The Python-level signal handler does nothing. The interpreter's C-level
handler writes the signal number to a wakeup socket
(:func:`signal.set_wakeup_fd`), a listener thread reads it and puts one
:class:`TerminationReason` on a queue. Monitors put ``CHILD_FAILURE`` on the
same queue, so waiting for "a signal or a crash" is one blocking ``get()``.
"""

import queue
import signal
import socket
import threading
from collections.abc import Iterable
from types import FrameType, TracebackType
from typing import Any, Literal

from .common.exceptions import ConfigurationError, SignalDeliveryError
from .common.logging import get_logger
from .tunnels.models import TerminationReason

logger = get_logger(__name__)

_REASONS = {
    signal.SIGINT: TerminationReason.USER_INTERRUPT,
    signal.SIGTERM: TerminationReason.TERMINATE_REQUEST,
}
# Closing the terminal must stop the children too: they run in their own session
if hasattr(signal, "SIGHUP"):
    _REASONS[signal.SIGHUP] = TerminationReason.TERMINATE_REQUEST

DEFAULT_SIGNALS = tuple(_REASONS)


def _wake_only(signum: int, frame: FrameType | None) -> None:
    """Installed so the C handler fires; the listener thread does the work."""


def _signal_name(signum: int) -> str:
    try:
        return signal.Signals(signum).name
    except ValueError:
        return str(signum)


class SignalBridge:
    """Waits for SIGINT/SIGTERM/SIGHUP or a tunnel failure, whichever comes first."""

    def __init__(self, signals: Iterable[int] | None = None):
        """Create an uninstalled bridge.

        Raises:
            ConfigurationError: If a signal has no termination reason
        """
        self._signals = tuple(signals) if signals is not None else DEFAULT_SIGNALS
        unmapped = [s for s in self._signals if s not in _REASONS]
        if unmapped:
            raise ConfigurationError(
                "No termination reason for signals: "
                + ", ".join(_signal_name(s) for s in unmapped)
            )
        self._channel: queue.Queue[TerminationReason] = queue.Queue()
        self._lock = threading.Lock()
        self._reason: TerminationReason | None = None
        self._received = 0
        self._previous_handlers: dict[int, Any] = {}
        self._previous_wakeup_fd: int | None = None
        self._reader: socket.socket | None = None
        self._writer: socket.socket | None = None
        self._listener: threading.Thread | None = None

    @property
    def installed(self) -> bool:
        return self._listener is not None

    @property
    def signals_received(self) -> int:
        with self._lock:
            return self._received

    def install(self) -> "SignalBridge":
        """Register the signal handlers and start the listener thread.

        Raises:
            SignalDeliveryError: If not called from the main thread or the
                platform refuses the handlers
        """
        if self.installed:
            return self
        if threading.current_thread() is not threading.main_thread():
            raise SignalDeliveryError(
                "Signal handlers can only be installed from the main thread"
            )

        try:
            self._reader, self._writer = socket.socketpair()
            self._writer.setblocking(False)
            self._previous_wakeup_fd = signal.set_wakeup_fd(
                self._writer.fileno(), warn_on_full_buffer=False
            )
            for signum in self._signals:
                self._previous_handlers[signum] = signal.signal(signum, _wake_only)
        except (OSError, ValueError) as e:
            self._restore()
            self._close_sockets()
            raise SignalDeliveryError(f"Cannot install signal handlers: {e}") from e

        self._listener = threading.Thread(
            target=self._listen, name="rtun-signals", daemon=True
        )
        self._listener.start()
        logger.debug(
            "Signal handlers installed",
            signals=[_signal_name(s) for s in self._signals],
        )
        return self

    def _listen(self) -> None:
        assert self._reader is not None
        while True:
            try:
                data = self._reader.recv(64)
            except OSError:
                return
            if not data:
                return
            for signum in data:
                self._on_os_signal(signum)

    def _on_os_signal(self, signum: int) -> None:
        if signum not in self._signals:
            return
        reason = _REASONS[signum]

        with self._lock:
            self._received += 1
            first = self._received == 1

        name = _signal_name(signum)
        if first:
            logger.info("Received signal", signal=name)
            self.notify(reason)
        else:
            logger.warning("Already shutting down, ignoring signal", signal=name)

    def notify(self, reason: TerminationReason) -> None:
        """Deliver a termination reason; only the first one is returned."""
        self._channel.put(reason)

    def wait_for_termination(
        self, timeout: float | None = None
    ) -> TerminationReason | None:
        """Block until a signal arrives or a tunnel fails.

        Every call returns the first reason delivered.

        Returns:
            The termination reason, or None if the timeout expired
        """
        with self._lock:
            if self._reason is not None:
                return self._reason
        try:
            reason = self._channel.get(timeout=timeout)
        except queue.Empty:
            return None
        with self._lock:
            if self._reason is None:
                self._reason = reason
            return self._reason

    def close(self) -> None:
        """Restore previous handlers and stop the listener"""
        if not self.installed:
            return
        if threading.current_thread() is threading.main_thread():
            self._restore()
        else:
            logger.warning("Signal handlers can only be restored from the main thread")

        listener = self._listener
        self._listener = None
        if self._writer is not None:
            # EOF on the reader ends the listener loop
            self._writer.close()
            self._writer = None
        if listener is not None:
            listener.join(timeout=1.0)
        self._close_sockets()

    def _restore(self) -> None:
        for signum, previous in self._previous_handlers.items():
            signal.signal(signum, signal.SIG_DFL if previous is None else previous)
        self._previous_handlers.clear()
        if self._previous_wakeup_fd is not None:
            signal.set_wakeup_fd(self._previous_wakeup_fd)
            self._previous_wakeup_fd = None

    def _close_sockets(self) -> None:
        for sock in (self._reader, self._writer):
            if sock is not None:
                sock.close()
        self._reader = self._writer = None

    def __enter__(self) -> "SignalBridge":
        return self.install()

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> Literal[False]:
        self.close()
        return False
