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
Joint Trajectory Generator

Turns a geometric joint path into a timed JointTrajectory using one
trapezoidal velocity profile over the whole path.

The path parameter s is the cumulative Chebyshev (max-joint) distance, so
|dq_j/ds| <= 1 for every joint and bounding ds/dt by the joint velocity
limit bounds every joint's speed.
"""

from __future__ import annotations

from collections.abc import Sequence
import math

import numpy as np

from armflow.msgs.trajectory_msgs import JointTrajectory, TrajectoryPoint


class JointTrajectoryGenerator:
    """Trapezoidal time-parameterization with velocity/acceleration scaling.

    Example:
        gen = JointTrajectoryGenerator(num_joints=7, max_velocity=2.0, max_acceleration=5.0)
        traj = gen.generate(path, joint_names=names, velocity_scaling=0.5)
    """

    def __init__(
        self,
        num_joints: int,
        max_velocity: float = 1.0,
        max_acceleration: float = 2.0,
    ):
        if max_velocity <= 0.0 or max_acceleration <= 0.0:
            raise ValueError("max_velocity and max_acceleration must be positive")
        self._num_joints = num_joints
        self._max_velocity = max_velocity
        self._max_acceleration = max_acceleration

    @property
    def num_joints(self) -> int:
        return self._num_joints

    def generate(
        self,
        waypoints: Sequence[Sequence[float]],
        joint_names: Sequence[str] | None = None,
        velocity_scaling: float = 1.0,
        acceleration_scaling: float = 1.0,
    ) -> JointTrajectory:
        """Time-parameterize ``waypoints``.

        Args:
            waypoints: Joint positions per waypoint, at least one
            joint_names: Names for the trajectory (defaults to joint0..jointN)
            velocity_scaling: Fraction of max_velocity to use, in (0, 1]
            acceleration_scaling: Fraction of max_acceleration to use, in (0, 1]

        Returns:
            JointTrajectory with positions, velocities, accelerations and
            time_from_start for every waypoint
        """
        if not waypoints:
            raise ValueError("Cannot generate a trajectory from an empty path")
        for label, value in (
            ("velocity_scaling", velocity_scaling),
            ("acceleration_scaling", acceleration_scaling),
        ):
            if not 0.0 < value <= 1.0:
                raise ValueError(f"{label} must be in (0, 1], got {value}")

        q = np.asarray(waypoints, dtype=np.float64)
        if q.ndim != 2 or q.shape[1] != self._num_joints:
            raise ValueError(f"Expected waypoints of width {self._num_joints}, got shape {q.shape}")
        names = list(joint_names) if joint_names is not None else [
            f"joint{i}" for i in range(self._num_joints)
        ]

        v = self._max_velocity * velocity_scaling
        a = self._max_acceleration * acceleration_scaling

        seg = np.abs(np.diff(q, axis=0)).max(axis=1) if len(q) > 1 else np.zeros(0)
        s = np.concatenate([[0.0], np.cumsum(seg)])
        profile = _TrapezoidProfile(float(s[-1]), v, a)

        points: list[TrajectoryPoint] = []
        for i, s_i in enumerate(s):
            # Direction of travel: the segment leaving the waypoint (entering it for the last one)
            k = min(i, len(seg) - 1)
            if k >= 0 and seg[k] > 0.0:
                dq_ds = (q[k + 1] - q[k]) / seg[k]
            else:
                dq_ds = np.zeros(self._num_joints)
            sdot, sddot = profile.rates(float(s_i))
            points.append(
                TrajectoryPoint(
                    positions=q[i].tolist(),
                    velocities=(dq_ds * sdot).tolist(),
                    accelerations=(dq_ds * sddot).tolist(),
                    time_from_start=profile.time_at(float(s_i)),
                )
            )

        return JointTrajectory(joint_names=names, points=points)


def untimed_trajectory(
    waypoints: Sequence[Sequence[float]],
    joint_names: Sequence[str],
) -> JointTrajectory:
    """Trajectory of bare positions, all at time 0 (the raw planner output)."""
    return JointTrajectory(
        joint_names=list(joint_names),
        points=[TrajectoryPoint(positions=list(p)) for p in waypoints],
    )


class _TrapezoidProfile:
    """Rest-to-rest trapezoidal (or triangular) profile over a path of length L."""

    def __init__(self, length: float, v_max: float, a_max: float):
        self.length = length
        self.a = a_max
        if length <= 0.0:
            self.v_peak = 0.0
            self.t_acc = 0.0
            self.s_acc = 0.0
            self.duration = 0.0
            return
        if length >= v_max * v_max / a_max:
            self.v_peak = v_max
        else:
            self.v_peak = math.sqrt(length * a_max)
        self.t_acc = self.v_peak / a_max
        self.s_acc = 0.5 * self.v_peak * self.t_acc
        t_cruise = (length - 2.0 * self.s_acc) / self.v_peak
        self.duration = 2.0 * self.t_acc + t_cruise

    def time_at(self, s: float) -> float:
        if self.length <= 0.0:
            return 0.0
        s = min(max(s, 0.0), self.length)
        if s <= self.s_acc:
            return math.sqrt(2.0 * s / self.a)
        if s <= self.length - self.s_acc:
            return self.t_acc + (s - self.s_acc) / self.v_peak
        return self.duration - math.sqrt(max(0.0, 2.0 * (self.length - s) / self.a))

    def rates(self, s: float) -> tuple[float, float]:
        """(ds/dt, d2s/dt2) at path position s."""
        if self.length <= 0.0:
            return 0.0, 0.0
        if s < self.s_acc:
            return math.sqrt(2.0 * self.a * s), self.a
        if s <= self.length - self.s_acc:
            return self.v_peak, 0.0
        return math.sqrt(max(0.0, 2.0 * self.a * (self.length - s))), -self.a
