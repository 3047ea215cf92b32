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

from __future__ import annotations

from dataclasses import dataclass, field
import time

from armflow.msgs.trajectory_msgs.TrajectoryPoint import TrajectoryPoint


@dataclass
class JointTrajectory:
    """Timestamped joint-space trajectory."""

    joint_names: list[str] = field(default_factory=list)
    points: list[TrajectoryPoint] = field(default_factory=list)
    timestamp: float = field(default_factory=time.time)
    msg_name = "trajectory_msgs.JointTrajectory"

    @property
    def duration(self) -> float:
        """Time of the last waypoint (seconds)."""
        if not self.points:
            return 0.0
        return self.points[-1].time_from_start

    @property
    def num_points(self) -> int:
        return len(self.points)

    def is_empty(self) -> bool:
        return not self.points

    def positions(self) -> list[list[float]]:
        return [list(p.positions) for p in self.points]

    def to_control_trajectory(self) -> tuple[list[list[float]], list[list[float]]]:
        """Split into (waypoints, velocities) for streaming to a velocity controller.

        Waypoints without velocities contribute zeros.
        """
        waypoints: list[list[float]] = []
        velocities: list[list[float]] = []
        for point in self.points:
            waypoints.append(list(point.positions))
            if point.velocities:
                velocities.append(list(point.velocities))
            else:
                velocities.append([0.0] * len(point.positions))
        return waypoints, velocities

    def __str__(self) -> str:
        return (
            f"JointTrajectory({len(self.joint_names)} joints, "
            f"{len(self.points)} points, {self.duration:.3f}s)"
        )
