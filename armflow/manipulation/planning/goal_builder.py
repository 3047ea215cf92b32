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

"""Goal construction for motion planning requests."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
import math
from typing import TYPE_CHECKING

from armflow.manipulation.planning.spec import GoalKind, InvalidGoal, MotionGoal, UnknownJoint
from armflow.msgs.geometry_msgs import PoseStamped, Quaternion, Vector3

if TYPE_CHECKING:
    from armflow.manipulation.planning.spec import Obstacle, RobotModelSpec

Tolerance = float | Sequence[float]

DEFAULT_JOINT_TOLERANCE = 1e-3


def _tolerance_vector(value: Tolerance, label: str) -> tuple[float, float, float]:
    """Expand a scalar or 3-sequence tolerance; reject negative or non-finite values."""
    if isinstance(value, (int, float)):
        values = [float(value)] * 3
    else:
        values = [float(v) for v in value]
        if len(values) != 3:
            raise InvalidGoal(f"{label} must be a scalar or have 3 entries, got {len(values)}")
    for v in values:
        if not math.isfinite(v) or v < 0.0:
            raise InvalidGoal(f"{label} must be finite and non-negative, got {values}")
    return values[0], values[1], values[2]


class GoalBuilder:
    """Builds immutable MotionGoal values.

    Joint names are checked against ``robot_model.joint_names()`` on every
    call; the builder keeps no state between calls.
    """

    def __init__(self, robot_model: RobotModelSpec):
        self._robot_model = robot_model

    def build_pose_goal(
        self,
        link_name: str,
        pose: PoseStamped,
        position_tolerance: Tolerance,
        orientation_tolerance: Tolerance,
    ) -> MotionGoal:
        """Pose target for ``link_name``.

        Raises:
            InvalidGoal: empty link name or negative/non-finite tolerance
        """
        if not link_name:
            raise InvalidGoal("Pose goal requires a non-empty link name")
        if pose is None:
            raise InvalidGoal("Pose goal requires a pose")
        return MotionGoal(
            kind=GoalKind.POSE,
            link_name=link_name,
            pose=pose,
            position_tolerance=_tolerance_vector(position_tolerance, "position_tolerance"),
            orientation_tolerance=_tolerance_vector(orientation_tolerance, "orientation_tolerance"),
        )

    def build_joint_goal(
        self,
        joint_values: Mapping[str, float],
        tolerance: float = DEFAULT_JOINT_TOLERANCE,
    ) -> MotionGoal:
        """Joint-space target over exactly the joints in ``joint_values``.

        Raises:
            UnknownJoint: a joint is not part of the robot model
            InvalidGoal: empty target, non-finite value or negative tolerance
        """
        if not joint_values:
            raise InvalidGoal("Joint goal requires at least one joint")
        known = self._robot_model.joint_names()
        unknown = [name for name in joint_values if name not in known]
        if unknown:
            raise UnknownJoint(unknown, known)
        if not math.isfinite(tolerance) or tolerance < 0.0:
            raise InvalidGoal(f"Joint tolerance must be finite and non-negative, got {tolerance}")
        pairs = tuple((name, float(value)) for name, value in joint_values.items())
        for name, value in pairs:
            if not math.isfinite(value):
                raise InvalidGoal(f"Joint '{name}' target is not finite")
        return MotionGoal(kind=GoalKind.JOINT, joint_values=pairs, joint_tolerance=float(tolerance))

    def build_pose_goal_from_obstacle(
        self,
        link_name: str,
        obstacle: Obstacle,
        approach_offset: float = 0.1,
        orientation: Quaternion | None = None,
        position_tolerance: Tolerance = 0.01,
        orientation_tolerance: Tolerance = 0.01,
    ) -> MotionGoal:
        """Pose ``approach_offset`` meters above a (perceived) obstacle's top face.

        The default orientation points the tool straight down.
        """
        center = obstacle.pose.position
        dims = obstacle.dimensions
        half_height = 0.0
        if dims:
            half_height = obstacle.bounding_radius() if len(dims) == 1 else float(dims[-1]) / 2.0
        pose = PoseStamped(
            position=Vector3(center.x, center.y, center.z + half_height + approach_offset),
            orientation=orientation or Quaternion(1.0, 0.0, 0.0, 0.0),
            frame_id=obstacle.pose.frame_id,
        )
        return self.build_pose_goal(link_name, pose, position_tolerance, orientation_tolerance)
