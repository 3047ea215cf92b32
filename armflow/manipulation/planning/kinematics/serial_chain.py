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
Serial Chain Model

Forward kinematics and geometric Jacobian of a revolute serial chain
described by modified (Craig) Denavit-Hartenberg parameters:

    T_i = RotX(alpha_{i-1}) @ TransX(a_{i-1}) @ RotZ(theta_i) @ TransZ(d_i)

Joint i rotates about the z axis of frame i.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np

from armflow.manipulation.planning.spec import UnknownJoint

if TYPE_CHECKING:
    from numpy.typing import NDArray

    from armflow.manipulation.planning.spec import Jacobian, RobotModelConfig
    from armflow.manipulation.planning.spec.config import DHRow
    from armflow.msgs.sensor_msgs import JointState


def mdh_transform(a: float, d: float, alpha: float, theta: float) -> NDArray[np.float64]:
    """Homogeneous transform of one modified DH link."""
    ca, sa = np.cos(alpha), np.sin(alpha)
    ct, st = np.cos(theta), np.sin(theta)
    return np.array(
        [
            [ct, -st, 0.0, a],
            [st * ca, ct * ca, -sa, -d * sa],
            [st * sa, ct * sa, ca, d * ca],
            [0.0, 0.0, 0.0, 1.0],
        ]
    )


class SerialChainModel:
    """Robot model of a revolute serial chain (implements RobotModelSpec)."""

    def __init__(self, config: RobotModelConfig):
        self._config = config
        self._joint_names = list(config.joint_names)
        self._index = {name: i for i, name in enumerate(self._joint_names)}
        self._dh: list[DHRow] = list(config.dh_parameters)
        self._offsets = np.asarray(config.joint_offsets, dtype=np.float64)
        lower, upper = config.get_joint_limits()
        self._lower = np.asarray(lower, dtype=np.float64)
        self._upper = np.asarray(upper, dtype=np.float64)

    @property
    def config(self) -> RobotModelConfig:
        return self._config

    @property
    def end_effector_link(self) -> str:
        return self._config.end_effector_link

    def joint_names(self) -> list[str]:
        return list(self._joint_names)

    def variable_count(self) -> int:
        return len(self._joint_names)

    def joint_limits(self) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
        return self._lower.copy(), self._upper.copy()

    def positions_of(self, joint_state: JointState) -> NDArray[np.float64]:
        """Joint positions in model order.

        Raises:
            UnknownJoint: if the state is missing model joints
        """
        if list(joint_state.name) == self._joint_names:
            return np.asarray(joint_state.position, dtype=np.float64)
        values = joint_state.as_dict()
        missing = [name for name in self._joint_names if name not in values]
        if missing:
            raise UnknownJoint(missing, self._joint_names)
        return np.array([values[name] for name in self._joint_names], dtype=np.float64)

    def frames(self, q: NDArray[np.float64]) -> list[NDArray[np.float64]]:
        """Base, joint 1..n and end-effector frames for positions ``q``."""
        q = np.asarray(q, dtype=np.float64)
        if q.shape != (len(self._joint_names),):
            raise ValueError(
                f"Expected {len(self._joint_names)} joint positions, got shape {q.shape}"
            )
        T = np.eye(4)
        frames = [T]
        for (a, d, alpha), theta in zip(self._dh, q + self._offsets, strict=True):
            T = T @ mdh_transform(a, d, alpha, theta)
            frames.append(T)
        a, d, alpha = self._config.flange_offset
        frames.append(T @ mdh_transform(a, d, alpha, 0.0))
        return frames

    def forward_kinematics_q(self, q: NDArray[np.float64]) -> NDArray[np.float64]:
        return self.frames(q)[-1]

    def forward_kinematics(self, joint_state: JointState) -> NDArray[np.float64]:
        """4x4 end-effector pose in the base frame."""
        return self.forward_kinematics_q(self.positions_of(joint_state))

    def link_positions_q(self, q: NDArray[np.float64]) -> NDArray[np.float64]:
        return np.array([T[:3, 3] for T in self.frames(q)])

    def link_positions(self, joint_state: JointState) -> NDArray[np.float64]:
        """(n + 2) x 3 origins of base, joint frames and end-effector."""
        return self.link_positions_q(self.positions_of(joint_state))

    def jacobian_q(self, q: NDArray[np.float64]) -> Jacobian:
        frames = self.frames(q)
        p_ee = frames[-1][:3, 3]
        n = len(self._joint_names)
        J = np.zeros((6, n))
        for i in range(n):
            T = frames[i + 1]
            z = T[:3, 2]
            J[:3, i] = np.cross(z, p_ee - T[:3, 3])
            J[3:, i] = z
        return J

    def jacobian_at(self, joint_state: JointState) -> Jacobian:
        """6 x n geometric Jacobian (rows: [vx, vy, vz, wx, wy, wz])."""
        return self.jacobian_q(self.positions_of(joint_state))

    def within_limits(self, q: NDArray[np.float64], tolerance: float = 1e-9) -> bool:
        q = np.asarray(q, dtype=np.float64)
        return bool(np.all(q >= self._lower - tolerance) and np.all(q <= self._upper + tolerance))
