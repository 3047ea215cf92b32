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
Joint-Space Planner Base

Shared generate_plan() pipeline for planners that search in joint space:

    1. resolve the start state (request.start_state or the snapshot's state)
    2. resolve the goal configuration (joint goal directly, pose goal via IK)
    3. validate both against joint limits and obstacle clearance
    4. search a geometric path (subclass hook)
    5. time-parameterize it with the request's scaling factors

The raw geometric path and the timed trajectory are both returned.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
import time
from typing import TYPE_CHECKING

import numpy as np

from armflow.manipulation.planning.kinematics.jacobian_ik import JacobianIK
from armflow.manipulation.planning.spec import (
    GoalKind,
    PlannerResponse,
    PlanningStatus,
)
from armflow.manipulation.planning.spec.config import parse_planner_id
from armflow.manipulation.planning.trajectory_generator.joint_trajectory_generator import (
    JointTrajectoryGenerator,
    untimed_trajectory,
)
from armflow.manipulation.planning.utils.clearance import SphereClearanceChecker
from armflow.msgs.sensor_msgs import JointState
from armflow.utils.logging_config import setup_logger

if TYPE_CHECKING:
    from collections.abc import Sequence

    from numpy.typing import NDArray

    from armflow.manipulation.planning.kinematics.serial_chain import SerialChainModel
    from armflow.manipulation.planning.spec import (
        MotionGoal,
        MotionPlanRequest,
        PlannerConfigurationMap,
        WorldSnapshot,
    )

logger = setup_logger()


class PlanningError(Exception):
    """Internal early exit carrying a failure status."""

    def __init__(self, status: PlanningStatus, message: str):
        self.status = status
        self.message = message
        super().__init__(message)


class JointSpacePlanner(ABC):
    """Base class for joint-space planners implementing PlannerSpec.

    Args:
        robot_model: Kinematics of the planning group
        ik: IK solver for pose goals (defaults to JacobianIK on robot_model)
        ik_seeds: Extra IK seeds tried after the start state
        planner_configs: Planner configurations keyed "<group>[<type>]"
        start_limit_tolerance: How far (radians) the start state may sit outside
            the joint limits; controllers report states slightly past soft limits
        edge_step_size: Interpolation step for edge clearance checks (radians)
    """

    def __init__(
        self,
        robot_model: SerialChainModel,
        ik: JacobianIK | None = None,
        ik_seeds: Sequence[Sequence[float]] = (),
        planner_configs: PlannerConfigurationMap | None = None,
        start_limit_tolerance: float = 0.1,
        edge_step_size: float = 0.05,
    ):
        self._model = robot_model
        self._ik = ik or JacobianIK(robot_model)
        self._ik_seeds = [list(s) for s in ik_seeds]
        self._planner_configs = dict(planner_configs or {})
        self._start_limit_tolerance = start_limit_tolerance
        self._edge_step_size = edge_step_size
        config = robot_model.config
        self._traj_gen = JointTrajectoryGenerator(
            num_joints=robot_model.variable_count(),
            max_velocity=config.max_velocity,
            max_acceleration=config.max_acceleration,
        )

    @abstractmethod
    def get_name(self) -> str:
        """Get planner name."""

    @abstractmethod
    def _plan_path(
        self,
        q_start: NDArray[np.float64],
        q_goal: NDArray[np.float64],
        checker: SphereClearanceChecker,
        deadline: float,
        settings: dict[str, str],
    ) -> list[NDArray[np.float64]]:
        """Search a geometric path from q_start to q_goal.

        Raises:
            PlanningError: on failure (timeout, no path)
        """

    @property
    def robot_model(self) -> SerialChainModel:
        return self._model

    def generate_plan(self, snapshot: WorldSnapshot, request: MotionPlanRequest) -> PlannerResponse:
        """Plan from the start state to the first goal of ``request``."""
        start_time = time.monotonic()
        deadline = start_time + request.allowed_planning_time
        try:
            if request.group_name != self._model.config.group_name:
                raise PlanningError(
                    PlanningStatus.INVALID_GROUP,
                    f"Unknown planning group '{request.group_name}'",
                )
            settings = self._settings_for(request)
            checker = SphereClearanceChecker(self._model, snapshot.obstacles)

            q_start = self._resolve_start(request.start_state or snapshot.joint_state)
            if not checker.is_config_valid(q_start):
                raise PlanningError(
                    PlanningStatus.COLLISION_AT_START,
                    f"Start configuration collides with {checker.colliding_obstacles(q_start)}",
                )

            q_goal = self._resolve_goal(request.goals[0], q_start)
            if not checker.is_config_valid(q_goal):
                raise PlanningError(
                    PlanningStatus.COLLISION_AT_GOAL,
                    f"Goal configuration collides with {checker.colliding_obstacles(q_goal)}",
                )

            path = self._plan_path(q_start, q_goal, checker, deadline, settings)
            if time.monotonic() > deadline:
                raise PlanningError(
                    PlanningStatus.TIMED_OUT,
                    f"Exceeded {request.allowed_planning_time:.2f}s planning time",
                )
        except PlanningError as e:
            logger.info(
                f"{self.get_name()} planning failed",
                status=e.status.name,
                reason=e.message,
            )
            return PlannerResponse(
                status=e.status,
                message=e.message,
                planning_time=time.monotonic() - start_time,
            )

        joint_names = self._model.joint_names()
        waypoints = [q.tolist() for q in path]
        trajectory = self._traj_gen.generate(
            waypoints,
            joint_names=joint_names,
            velocity_scaling=request.max_velocity_scaling_factor,
            acceleration_scaling=request.max_acceleration_scaling_factor,
        )
        planning_time = time.monotonic() - start_time
        logger.info(
            f"{self.get_name()} found a path",
            waypoints=len(path),
            duration=round(trajectory.duration, 3),
            planning_time=round(planning_time, 4),
        )
        return PlannerResponse(
            status=PlanningStatus.SUCCESS,
            trajectory=trajectory,
            raw_trajectory=untimed_trajectory(waypoints, joint_names),
            message="Path found",
            planning_time=planning_time,
        )

    def _settings_for(self, request: MotionPlanRequest) -> dict[str, str]:
        if not request.planner_id:
            return {}
        entry = self._planner_configs.get(request.planner_id)
        if entry is None:
            group, planner_type = parse_planner_id(request.planner_id)
            logger.debug(
                "No planner configuration registered, using defaults",
                planner_id=request.planner_id,
                group=group,
                type=planner_type,
            )
            return {}
        return dict(entry.config)

    def _resolve_start(self, state: JointState) -> NDArray[np.float64]:
        values = state.as_dict()
        joint_names = self._model.joint_names()
        missing = [name for name in joint_names if name not in values]
        if missing:
            raise PlanningError(
                PlanningStatus.INVALID_START, f"Start state is missing joints {missing}"
            )
        q = np.array([values[name] for name in joint_names], dtype=np.float64)
        if not np.all(np.isfinite(q)):
            raise PlanningError(PlanningStatus.INVALID_START, "Start state is not finite")
        if not self._model.within_limits(q, tolerance=self._start_limit_tolerance):
            raise PlanningError(
                PlanningStatus.INVALID_START, "Start configuration is outside joint limits"
            )
        return q

    def _resolve_goal(self, goal: MotionGoal, q_start: NDArray[np.float64]) -> NDArray[np.float64]:
        if goal.kind == GoalKind.JOINT:
            q_goal = q_start.copy()
            index = {name: i for i, name in enumerate(self._model.joint_names())}
            for name, value in goal.joint_values:
                if name not in index:
                    raise PlanningError(PlanningStatus.INVALID_GOAL, f"Unknown joint '{name}'")
                q_goal[index[name]] = value
            if not self._model.within_limits(q_goal, tolerance=goal.joint_tolerance):
                raise PlanningError(
                    PlanningStatus.INVALID_GOAL, "Goal configuration is outside joint limits"
                )
            return q_goal

        if goal.link_name != self._model.end_effector_link:
            raise PlanningError(
                PlanningStatus.INVALID_GOAL,
                f"Pose goals are only supported for '{self._model.end_effector_link}', "
                f"got '{goal.link_name}'",
            )
        assert goal.pose is not None
        seed = self._model_state(q_start)
        result = self._ik.solve(
            goal.pose,
            seed=seed,
            position_tolerance=goal.position_tolerance,
            orientation_tolerance=goal.orientation_tolerance,
            extra_seeds=self._ik_seeds,
        )
        if not result.is_success() or result.joint_state is None:
            raise PlanningError(PlanningStatus.NO_IK_SOLUTION, result.message)
        return np.asarray(result.joint_state.position, dtype=np.float64)

    def _model_state(self, q: NDArray[np.float64]) -> JointState:
        return JointState(name=self._model.joint_names(), position=q.tolist())
