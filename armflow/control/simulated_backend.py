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
Simulated Execution Backend

In-process controller that "executes" a JointTrajectory by stepping
through its waypoints in (scaled) real time and reporting joint states.
Used by the demo and the tests in place of real hardware.
"""

from __future__ import annotations

import threading
import time
from typing import TYPE_CHECKING

from armflow.manipulation.planning.spec import ExecutionStatus
from armflow.msgs.sensor_msgs import JointState
from armflow.utils.logging_config import setup_logger

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from armflow.msgs.trajectory_msgs import JointTrajectory

logger = setup_logger()


class SimulatedExecutionBackend:
    """Simulated trajectory controller (implements ExecutionBackendSpec).

    Args:
        controllers: Names of the controllers the backend knows about
        active_controllers: Controllers currently running (default: all)
        time_scale: Multiplies waypoint timing; 0 runs instantly, 2 runs at half speed
        fail_at_point: Report a fault when reaching this waypoint index
        fault_message: Diagnostic returned for the injected fault
        joint_state_callback: Called with the commanded JointState at every waypoint
    """

    def __init__(
        self,
        controllers: Iterable[str] = ("arm_controller",),
        active_controllers: Iterable[str] | None = None,
        time_scale: float = 1.0,
        fail_at_point: int | None = None,
        fault_message: str = "Controller fault: following error exceeded",
        joint_state_callback: Callable[[JointState], None] | None = None,
    ):
        if time_scale < 0.0:
            raise ValueError(f"time_scale must be >= 0, got {time_scale}")
        self._known = set(controllers)
        self._active = (
            set(active_controllers) if active_controllers is not None else set(self._known)
        )
        self._time_scale = time_scale
        self._fail_at_point = fail_at_point
        self._fault_message = fault_message
        self._joint_state_callback = joint_state_callback

        self._lock = threading.Lock()
        self._queued: JointTrajectory | None = None
        self._running = False
        self._cancel_event = threading.Event()
        self._last_state: JointState | None = None
        self._executed_count = 0

    @property
    def executed_count(self) -> int:
        """Number of trajectories run to completion."""
        return self._executed_count

    @property
    def last_state(self) -> JointState | None:
        """Last commanded joint state."""
        return self._last_state

    def set_joint_state_callback(self, callback: Callable[[JointState], None] | None) -> None:
        self._joint_state_callback = callback

    def push(self, trajectory: JointTrajectory) -> bool:
        """Queue a trajectory. Rejected while another one is running or if empty."""
        with self._lock:
            if self._running:
                logger.warning("Rejecting trajectory: execution already running")
                return False
            if trajectory.is_empty():
                logger.warning("Rejecting empty trajectory")
                return False
            self._queued = trajectory
            self._cancel_event.clear()
        logger.debug("Trajectory queued", points=trajectory.num_points)
        return True

    def execute_and_wait(self) -> tuple[ExecutionStatus, str]:
        """Step through the queued trajectory; blocks until done, faulted or cancelled."""
        with self._lock:
            trajectory = self._queued
            self._queued = None
            if trajectory is None:
                return ExecutionStatus.FAILED, "No trajectory queued"
            if not self._active:
                return ExecutionStatus.FAILED, "No active controllers"
            self._running = True

        try:
            return self._run(trajectory)
        finally:
            with self._lock:
                self._running = False

    def cancel_execution(self) -> None:
        """Abort the running trajectory. Safe to call from any thread."""
        self._cancel_event.set()

    def active_controllers(self) -> set[str]:
        return set(self._active)

    def known_controllers(self) -> set[str]:
        return set(self._known)

    def _run(self, trajectory: JointTrajectory) -> tuple[ExecutionStatus, str]:
        start = time.monotonic()
        for i, point in enumerate(trajectory.points):
            if self._time_scale > 0.0:
                target = start + point.time_from_start * self._time_scale
                if self._cancel_event.wait(max(0.0, target - time.monotonic())):
                    return ExecutionStatus.PREEMPTED, f"Cancelled at waypoint {i}"
            elif self._cancel_event.is_set():
                return ExecutionStatus.PREEMPTED, f"Cancelled at waypoint {i}"

            if self._fail_at_point is not None and i >= self._fail_at_point:
                logger.warning("Injected controller fault", waypoint=i)
                return ExecutionStatus.FAILED, self._fault_message

            state = JointState(
                name=list(trajectory.joint_names),
                position=list(point.positions),
                velocity=list(point.velocities),
            )
            self._last_state = state
            if self._joint_state_callback is not None:
                try:
                    self._joint_state_callback(state)
                except Exception as e:
                    logger.error(f"Joint state callback error: {e}")

        self._executed_count += 1
        return ExecutionStatus.SUCCEEDED, "Trajectory executed"
