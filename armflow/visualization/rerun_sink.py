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

"""Rerun visualization sink.

Draws the end-effector path of every published trajectory as a line strip,
the goal configuration as per-joint scalars plus an end-effector point, and
obstacle markers as points.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np
import rerun as rr

from armflow.msgs.sensor_msgs import JointState
from armflow.utils.logging_config import setup_logger

if TYPE_CHECKING:
    from collections.abc import Sequence

    from armflow.manipulation.planning.spec import RobotModelSpec
    from armflow.msgs.trajectory_msgs import JointTrajectory

logger = setup_logger()

_LABEL_COLORS = {
    "planned_path": (40, 200, 80),
    "raw_path": (230, 160, 30),
}
_DEFAULT_COLOR = (80, 140, 230)


class RerunVisualizationSink:
    """Logs plans to a Rerun recording (implements VisualizationSinkSpec).

    Args:
        robot_model: Used to turn joint configurations into end-effector points
        app_id: Rerun application id
        spawn: Spawn a native viewer on connect
        root: Entity path prefix
    """

    def __init__(
        self,
        robot_model: RobotModelSpec,
        app_id: str = "armflow",
        spawn: bool = True,
        root: str = "world/manipulation",
    ):
        self._robot_model = robot_model
        self._root = root
        rr.init(app_id, spawn=spawn)
        logger.info("Rerun visualization initialized", app_id=app_id, spawn=spawn)

    def _ee_point(self, joint_names: Sequence[str], positions: Sequence[float]) -> list[float]:
        state = JointState(name=list(joint_names), position=list(positions))
        return self._robot_model.forward_kinematics(state)[:3, 3].tolist()

    def publish_trajectory(self, trajectory: JointTrajectory, label: str) -> None:
        points = [self._ee_point(trajectory.joint_names, p.positions) for p in trajectory.points]
        color = _LABEL_COLORS.get(label, _DEFAULT_COLOR)
        rr.log(f"{self._root}/{label}", rr.LineStrips3D([points], colors=[color]))
        rr.log(f"{self._root}/{label}/waypoints", rr.Points3D(points, colors=[color], radii=0.005))
        rr.log(f"{self._root}/{label}/duration", rr.Scalars(float(trajectory.duration)))

    def publish_goal_state(self, joint_names: Sequence[str], joint_values: Sequence[float]) -> None:
        for name, value in zip(joint_names, joint_values, strict=True):
            rr.log(f"{self._root}/goal/joints/{name}", rr.Scalars(float(value)))
        if list(joint_names) == self._robot_model.joint_names():
            point = self._ee_point(joint_names, joint_values)
            marker = rr.Points3D([point], colors=[(220, 40, 40)], radii=0.02)
            rr.log(f"{self._root}/goal/ee", marker)

    def publish_obstacle_markers(self, positions: Sequence[Sequence[float]]) -> None:
        points = np.asarray(positions, dtype=np.float64).reshape(-1, 3)
        rr.log(f"{self._root}/obstacles", rr.Points3D(points, colors=[(200, 60, 60)], radii=0.03))
