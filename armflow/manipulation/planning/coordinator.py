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
Planning Coordinator

Owns one plan request/response cycle:

    1. take the coordinator's own lock (one plan() at a time per instance)
    2. take the WorldModel read lock and call the planner with the snapshot
    3. release the read lock, whatever the planner did
    4. turn non-success statuses into a failed MotionPlanResult (never raised)
    5. validate the trajectory, optionally score the final configuration

Several coordinators can plan concurrently because the WorldModel lock is
shared between readers.
"""

from __future__ import annotations

import math
import threading
import time
from typing import TYPE_CHECKING

from armflow.manipulation.planning.spec import (
    DecompositionError,
    MotionPlanResult,
    PlanningStatus,
    UnknownJoint,
)
from armflow.msgs.sensor_msgs import JointState
from armflow.utils.logging_config import setup_logger

if TYPE_CHECKING:
    from armflow.manipulation.planning.kinematics.manipulability import ManipulabilityAnalyzer
    from armflow.manipulation.planning.monitor.world_model import WorldModel
    from armflow.manipulation.planning.spec import (
        ManipulabilityMeasures,
        MotionPlanRequest,
        PlannerResponse,
        PlannerSpec,
        RobotModelSpec,
    )
    from armflow.msgs.trajectory_msgs import JointTrajectory

logger = setup_logger()


class PlanningCoordinator:
    """Runs a PlannerSpec against read-locked WorldModel snapshots.

    Args:
        world_model: Shared world state
        planner: Planner capability
        robot_model: Used to validate trajectories and score configurations
        manipulability: Analyzer for the final waypoint (None disables scoring)
        gate_on_manipulability: Fail with LOW_MANIPULABILITY when the final
            configuration does not pass the analyzer's threshold
    """

    def __init__(
        self,
        world_model: WorldModel,
        planner: PlannerSpec,
        robot_model: RobotModelSpec,
        manipulability: ManipulabilityAnalyzer | None = None,
        gate_on_manipulability: bool = False,
    ):
        self._world_model = world_model
        self._planner = planner
        self._robot_model = robot_model
        self._manipulability = manipulability
        self._gate = gate_on_manipulability and manipulability is not None
        self._plan_lock = threading.Lock()

    @property
    def planner(self) -> PlannerSpec:
        return self._planner

    def plan(self, request: MotionPlanRequest) -> MotionPlanResult:
        """Plan ``request`` against the current world snapshot.

        Planning failures are returned as results.

        Raises:
            StateUnavailable: if the world model has no robot state yet
        """
        with self._plan_lock:
            start = time.monotonic()
            with self._world_model.acquire_read_lock() as snapshot:
                revision = snapshot.revision
                start_state = snapshot.joint_state
                logger.info(
                    "Planning",
                    planner=self._planner.get_name(),
                    planner_id=request.planner_id,
                    group=request.group_name,
                    revision=revision,
                    allowed_time=request.allowed_planning_time,
                )
                response: PlannerResponse | None = None
                error = ""
                try:
                    response = self._planner.generate_plan(snapshot, request)
                except Exception as e:
                    logger.exception("Planner raised", planner=self._planner.get_name())
                    error = f"{type(e).__name__}: {e}"
            planning_time = time.monotonic() - start

        if response is None:
            return MotionPlanResult.failure(
                PlanningStatus.PLANNER_ERROR,
                error or "Planner returned no response",
                revision=revision,
                planning_time=planning_time,
            )
        return self._process_response(response, start_state, revision, planning_time)

    def _process_response(
        self,
        response: PlannerResponse,
        start_state: JointState,
        revision: int,
        planning_time: float,
    ) -> MotionPlanResult:
        if not response.is_success():
            logger.warning(
                "Planning failed",
                status=response.status.name,
                reason=response.message,
            )
            return MotionPlanResult.failure(
                response.status,
                response.message,
                revision=revision,
                planning_time=planning_time,
                raw_trajectory=response.raw_trajectory,
            )

        problem = validate_trajectory(response.trajectory, self._robot_model.joint_names())
        if problem is not None:
            logger.warning("Planner returned an invalid trajectory", problem=problem)
            return MotionPlanResult.failure(
                PlanningStatus.INVALID_TRAJECTORY,
                problem,
                revision=revision,
                planning_time=planning_time,
                raw_trajectory=response.raw_trajectory,
            )
        assert response.trajectory is not None

        measures = self._score_final_configuration(response.trajectory, start_state)
        if self._gate and measures is not None and not measures.pass_:
            message = (
                f"Final configuration is near-singular "
                f"(min eigenvalue {measures.min_eigen_value:.3g}, "
                f"threshold {measures.threshold:.3g})"
            )
            logger.warning("Plan rejected", reason=message)
            return MotionPlanResult.failure(
                PlanningStatus.LOW_MANIPULABILITY,
                message,
                revision=revision,
                planning_time=planning_time,
                raw_trajectory=response.raw_trajectory,
                manipulability=measures,
            )

        logger.info(
            "Planning succeeded",
            waypoints=response.trajectory.num_points,
            duration=round(response.trajectory.duration, 3),
            planning_time=round(planning_time, 4),
        )
        return MotionPlanResult(
            status=PlanningStatus.SUCCESS,
            trajectory=response.trajectory,
            raw_trajectory=response.raw_trajectory,
            revision=revision,
            planning_time=planning_time,
            message=response.message,
            manipulability=measures,
        )

    def _score_final_configuration(
        self, trajectory: JointTrajectory, start_state: JointState
    ) -> ManipulabilityMeasures | None:
        if self._manipulability is None:
            return None
        # Joints the trajectory does not move keep their start positions
        values = start_state.as_dict()
        values.update(zip(trajectory.joint_names, trajectory.points[-1].positions, strict=True))
        names = self._robot_model.joint_names()
        final = JointState(name=names, position=[values.get(n, 0.0) for n in names])
        try:
            return self._manipulability.evaluate_configuration(self._robot_model, final)
        except (DecompositionError, UnknownJoint, ValueError) as e:
            logger.warning(f"Manipulability evaluation failed: {e}")
            return None


def validate_trajectory(
    trajectory: JointTrajectory | None,
    known_joints: list[str],
) -> str | None:
    """Return a description of the first problem found, or None if valid."""
    if trajectory is None or trajectory.is_empty():
        return "Trajectory is empty"
    names = list(trajectory.joint_names)
    if not names:
        return "Trajectory has no joint names"
    if len(set(names)) != len(names):
        return f"Trajectory has duplicate joint names {names}"
    unknown = [n for n in names if n not in known_joints]
    if unknown:
        return f"Trajectory references unknown joints {unknown}"

    width = len(names)
    last_time = -math.inf
    for i, point in enumerate(trajectory.points):
        if len(point.positions) != width:
            return f"Waypoint {i} has {len(point.positions)} positions for {width} joints"
        for label, values in (
            ("velocities", point.velocities),
            ("accelerations", point.accelerations),
            ("effort", point.effort),
        ):
            if values and len(values) != width:
                return f"Waypoint {i} has {len(values)} {label} for {width} joints"
        if not all(math.isfinite(p) for p in point.positions):
            return f"Waypoint {i} has non-finite positions"
        t = point.time_from_start
        if not math.isfinite(t) or t < last_time:
            return f"Waypoint {i} time_from_start {t} is not non-decreasing"
        last_time = t
    return None
