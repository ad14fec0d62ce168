"""Coordinated shutdown of all tunnels."""

import threading
import time
from concurrent.futures import ThreadPoolExecutor
from enum import Enum

from .common.exceptions import LaunchError, RtunError, RuntimeFailure, ShutdownTimeout
from .common.logging import get_logger
from .common.utils import describe_returncode, tail_lines
from .config import SupervisorConfig
from .process import TunnelProcess
from .state import SupervisorState
from .tunnels.models import (
    ShutdownResult,
    TerminationReason,
    TunnelOutcome,
    TunnelReport,
    TunnelState,
    TunnelSpec,
)

logger = get_logger(__name__)

StopOutcome = tuple[TunnelOutcome, RtunError | None]


class CoordinatorPhase(str, Enum):
    """Shutdown state machine: IDLE -> STOPPING -> STOPPED"""

    IDLE = "idle"
    STOPPING = "stopping"
    STOPPED = "stopped"


class ShutdownCoordinator:
    """Drives every tunnel to termination and collects the outcomes.

    The sequence runs once per supervisor state. The termination request goes
    to all live tunnels at the same time; each tunnel then escalates to a kill
    on its own once the shared deadline passes, so the whole sequence takes
    at most deadline + grace period.
    """

    def __init__(self, config: SupervisorConfig | None = None):
        self.config = config or SupervisorConfig()
        self.phase = CoordinatorPhase.IDLE
        self._result: ShutdownResult | None = None
        self._finished = threading.Event()

    @property
    def result(self) -> ShutdownResult | None:
        return self._result

    def stop(
        self,
        state: SupervisorState,
        reason: TerminationReason | None = None,
        deadline: float | None = None,
        grace_period: float | None = None,
    ) -> ShutdownResult:
        """Stop all tunnels in state.

        Only the first caller runs the sequence; concurrent and later callers
        block until it is done and get the same result.
        """
        if not state.try_begin_shutdown():
            logger.debug("Shutdown already in progress, waiting for result")
            self._finished.wait()
            if self._result is None:
                raise RtunError("Shutdown sequence did not produce a result")
            return self._result

        self.phase = CoordinatorPhase.STOPPING
        deadline = self.config.deadline if deadline is None else deadline
        grace_period = self.config.grace_period if grace_period is None else grace_period

        try:
            outcomes = self._stop_all(state, deadline, grace_period)
            reports = tuple(self._report(p, outcomes.get(p.spec)) for p in state)
            self._result = ShutdownResult(reports=reports, reason=reason)
        finally:
            self.phase = CoordinatorPhase.STOPPED
            self._finished.set()

        logger.info(
            "Shutdown complete",
            ok=self._result.ok,
            stopped=self._result.count(TunnelOutcome.STOPPED),
            failed=len(self._result.failures),
        )
        return self._result

    def _dispatch_order(self, state: SupervisorState) -> list[TunnelProcess]:
        return state.alive()

    def _stop_all(
        self, state: SupervisorState, deadline: float, grace_period: float
    ) -> dict[TunnelSpec, StopOutcome]:
        targets = self._dispatch_order(state)
        if not targets:
            return {}

        logger.info(
            "Stopping tunnels",
            ports=[p.port for p in targets],
            deadline=deadline,
            grace_period=grace_period,
        )
        deadline_at = time.monotonic() + deadline
        with ThreadPoolExecutor(
            max_workers=len(targets), thread_name_prefix="rtun-stop"
        ) as pool:
            futures = {
                p.spec: pool.submit(self._stop_one, p, deadline_at, grace_period)
                for p in targets
            }
            return {spec: future.result() for spec, future in futures.items()}

    def _stop_one(
        self, process: TunnelProcess, deadline_at: float, grace_period: float
    ) -> StopOutcome:
        started = time.monotonic()
        try:
            process.terminate()
            if process.wait_for_exit(max(0.0, deadline_at - time.monotonic())):
                return TunnelOutcome.STOPPED, None

            logger.warning(
                "Tunnel did not stop in time, killing", port=process.port, pid=process.pid
            )
            process.kill()
            if process.wait_for_exit(grace_period):
                return TunnelOutcome.KILLED, None
        except Exception:
            logger.exception("Error stopping tunnel", port=process.port, pid=process.pid)

        waited = time.monotonic() - started
        logger.error(
            "Tunnel failed to stop", port=process.port, pid=process.pid, waited=round(waited, 2)
        )
        return TunnelOutcome.STOP_TIMEOUT, ShutdownTimeout(process.port, waited)

    def _report(
        self, process: TunnelProcess, stop_outcome: StopOutcome | None
    ) -> TunnelReport:
        spec = process.spec
        returncode = process.returncode

        if process.state == TunnelState.FAILED and isinstance(process.error, LaunchError):
            return TunnelReport(
                spec=spec,
                outcome=TunnelOutcome.LAUNCH_FAILED,
                detail=str(process.error),
                error=process.error,
            )

        if process.unexpected:
            if process.state == TunnelState.EXITED and returncode == 0:
                return TunnelReport(
                    spec=spec,
                    outcome=TunnelOutcome.EXITED_EARLY,
                    returncode=returncode,
                    detail=tail_lines(process.stderr) or describe_returncode(returncode),
                )
            error = process.error or RuntimeFailure(spec.port, returncode, process.stderr)
            detail = str(process.error) if process.error else describe_returncode(returncode)
            stderr = tail_lines(process.stderr, max_lines=1)
            return TunnelReport(
                spec=spec,
                outcome=TunnelOutcome.CRASHED,
                returncode=returncode,
                detail=f"{detail}: {stderr}" if stderr else detail,
                error=error,
            )

        outcome, error = stop_outcome or (TunnelOutcome.STOPPED, None)
        if outcome == TunnelOutcome.STOP_TIMEOUT:
            detail = str(error)
        else:
            detail = describe_returncode(returncode)
        return TunnelReport(
            spec=spec, outcome=outcome, returncode=returncode, detail=detail, error=error
        )
