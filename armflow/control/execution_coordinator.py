# Copyright 2025-2026 Dimensional Inc.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
Execution Coordinator

Drives one trajectory through a controller backend:

    PENDING --push--> RUNNING --> SUCCEEDED | FAILED | PREEMPTED | TIMEOUT

The backend's blocking execute_and_wait() runs on a worker thread so the
caller can be released by whichever comes first: backend completion, a
backend fault, preempt() from another thread, or the time budget. On
preemption and timeout the backend is cancelled and the worker joined
before execute() returns.
"""

from __future__ import annotations

from threading import Event, RLock, Thread
import time
from typing import TYPE_CHECKING

from reactivex import Subject

from armflow.manipulation.planning.spec import (
    ExecutionInProgress,
    ExecutionResult,
    ExecutionStatus,
)
from armflow.utils.logging_config import setup_logger

if TYPE_CHECKING:
    from reactivex import Observable

    from armflow.manipulation.planning.spec import ExecutionBackendSpec
    from armflow.msgs.trajectory_msgs import JointTrajectory

logger = setup_logger()

DEFAULT_TIMEOUT_FACTOR = 1.5
DEFAULT_TIMEOUT_MARGIN = 2.0


def log_controllers(backend: ExecutionBackendSpec) -> None:
    """Log the backend's active and known controllers. Never raises."""
    try:
        active = sorted(backend.active_controllers())
        known = sorted(backend.known_controllers())
    except Exception as e:
        logger.warning(f"Could not query controllers: {e}")
        return
    logger.info("Active controllers", count=len(active), controllers=active)
    logger.info("Known controllers", count=len(known), controllers=known)
    missing = sorted(set(known) - set(active))
    if missing:
        logger.debug("Inactive controllers", controllers=missing)


class ExecutionCoordinator:
    """Executes trajectories on an ExecutionBackendSpec, one at a time.

    Args:
        backend: Controller backend
        default_timeout: Fixed time budget; None derives it from the trajectory
            as duration * timeout_factor + timeout_margin
        timeout_factor: Multiplier on the trajectory duration
        timeout_margin: Seconds added to the scaled duration
        join_timeout: How long to wait for the worker after cancelling
    """

    def __init__(
        self,
        backend: ExecutionBackendSpec,
        default_timeout: float | None = None,
        timeout_factor: float = DEFAULT_TIMEOUT_FACTOR,
        timeout_margin: float = DEFAULT_TIMEOUT_MARGIN,
        join_timeout: float = 5.0,
    ) -> None:
        self._backend = backend
        self._default_timeout = default_timeout
        self._timeout_factor = timeout_factor
        self._timeout_margin = timeout_margin
        self._join_timeout = join_timeout

        self._lock = RLock()
        self._status: ExecutionStatus | None = None
        self._wakeup = Event()
        self._preempt_reason: str | None = None
        self._status_subject: Subject[ExecutionStatus] = Subject()

    @property
    def status(self) -> ExecutionStatus | None:
        """Status of the current or last execution (None before the first)."""
        with self._lock:
            return self._status

    @property
    def backend(self) -> ExecutionBackendSpec:
        return self._backend

    def is_busy(self) -> bool:
        with self._lock:
            return self._status is not None and not self._status.is_terminal()

    def observe_status(self) -> Observable[ExecutionStatus]:
        """Stream of status transitions."""
        return self._status_subject

    def timeout_for(self, trajectory: JointTrajectory) -> float:
        """Time budget used when execute() gets no explicit timeout."""
        if self._default_timeout is not None:
            return self._default_timeout
        return trajectory.duration * self._timeout_factor + self._timeout_margin

    def execute(self, trajectory: JointTrajectory, timeout: float | None = None) -> ExecutionResult:
        """Run ``trajectory`` to a terminal status.

        Backend faults, timeouts and preemption are returned as results.

        Raises:
            ExecutionInProgress: if another execution is PENDING or RUNNING
        """
        with self._lock:
            if self._status is not None and not self._status.is_terminal():
                raise ExecutionInProgress(
                    f"Execution already {self._status.as_string()}, refusing a second trajectory"
                )
            self._wakeup = Event()
            self._preempt_reason = None
            self._set_status(ExecutionStatus.PENDING)
            wakeup = self._wakeup

        start = time.monotonic()
        budget = timeout if timeout is not None else self.timeout_for(trajectory)
        log_controllers(self._backend)

        try:
            accepted = self._backend.push(trajectory)
            diagnostic = "" if accepted else "Backend rejected the trajectory"
        except Exception as e:
            logger.exception("Trajectory hand-off failed")
            accepted = False
            diagnostic = f"Hand-off failed: {e}"
        if not accepted:
            return self._finish(ExecutionStatus.FAILED, diagnostic, start)

        with self._lock:
            if self._preempt_reason is not None:
                # Preempted between PENDING and the hand-off
                self._cancel_backend()
                return self._finish(ExecutionStatus.PREEMPTED, self._preempt_reason, start)
            self._set_status(ExecutionStatus.RUNNING)

        logger.info(
            "Executing trajectory",
            points=trajectory.num_points,
            duration=round(trajectory.duration, 3),
            timeout=round(budget, 3),
        )

        outcome: list[tuple[ExecutionStatus, str]] = []

        def run() -> None:
            try:
                outcome.append(self._backend.execute_and_wait())
            except Exception as e:
                logger.exception("Backend execution raised")
                outcome.append((ExecutionStatus.FAILED, f"{type(e).__name__}: {e}"))
            finally:
                wakeup.set()

        worker = Thread(target=run, name="execution-worker", daemon=True)
        worker.start()

        wakeup.wait(budget)

        if outcome:
            worker.join()
            status, diagnostic = outcome[0]
            if not status.is_terminal():
                diagnostic = (
                    f"Backend returned non-terminal status {status.as_string()}: {diagnostic}"
                )
                status = ExecutionStatus.FAILED
            return self._finish(status, diagnostic, start)

        with self._lock:
            reason = self._preempt_reason
        self._cancel_backend()
        self._join(worker)
        if reason is not None:
            return self._finish(ExecutionStatus.PREEMPTED, reason, start)
        return self._finish(
            ExecutionStatus.TIMEOUT, f"Execution exceeded {budget:.3f}s time budget", start
        )

    def preempt(self, reason: str = "Preempted by operator") -> bool:
        """Abort the current execution. Returns False if nothing is running."""
        with self._lock:
            if self._status is None or self._status.is_terminal():
                return False
            if self._preempt_reason is None:
                self._preempt_reason = reason
            logger.warning("Preempting execution", reason=reason)
            self._wakeup.set()
            return True

    def dispose(self) -> None:
        """Complete the status stream."""
        self._status_subject.on_completed()

    def _finish(self, status: ExecutionStatus, diagnostic: str, start: float) -> ExecutionResult:
        duration = time.monotonic() - start
        with self._lock:
            self._set_status(status)
        if status == ExecutionStatus.SUCCEEDED:
            logger.info("Execution succeeded", duration=round(duration, 3))
        else:
            logger.warning(
                "Execution ended",
                status=status.as_string(),
                diagnostic=diagnostic,
                duration=round(duration, 3),
            )
        return ExecutionResult(status=status, diagnostic=diagnostic, duration=duration)

    def _set_status(self, status: ExecutionStatus) -> None:
        self._status = status
        logger.debug("Execution status", status=status.as_string())
        try:
            self._status_subject.on_next(status)
        except Exception as e:
            logger.error(f"Status observer error: {e}", status=status.as_string())

    def _cancel_backend(self) -> None:
        try:
            self._backend.cancel_execution()
        except Exception as e:
            logger.error(f"Backend cancel failed: {e}")

    def _join(self, worker: Thread) -> None:
        worker.join(self._join_timeout)
        if worker.is_alive():
            logger.error(
                "Execution worker did not stop after cancel",
                join_timeout=self._join_timeout,
            )
