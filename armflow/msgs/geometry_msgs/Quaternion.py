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

from collections.abc import Sequence
from dataclasses import dataclass
from typing import TypeAlias

import numpy as np
from scipy.spatial.transform import Rotation

from armflow.msgs.geometry_msgs.Vector3 import Vector3

QuaternionConvertable: TypeAlias = "Sequence[int | float] | np.ndarray | Quaternion"


@dataclass
class Quaternion:
    """Unit quaternion in (x, y, z, w) order."""

    x: float = 0.0
    y: float = 0.0
    z: float = 0.0
    w: float = 1.0
    msg_name = "geometry_msgs.Quaternion"

    @classmethod
    def from_any(cls, value: QuaternionConvertable) -> Quaternion:
        if isinstance(value, Quaternion):
            return cls(value.x, value.y, value.z, value.w)
        arr = np.asarray(value, dtype=np.float64).reshape(-1)
        if arr.size != 4:
            raise ValueError("Quaternion requires exactly 4 components [x, y, z, w]")
        return cls(float(arr[0]), float(arr[1]), float(arr[2]), float(arr[3]))

    @classmethod
    def from_rotation_matrix(cls, matrix: np.ndarray) -> Quaternion:
        x, y, z, w = Rotation.from_matrix(np.asarray(matrix, dtype=np.float64)).as_quat()
        return cls(float(x), float(y), float(z), float(w))

    @classmethod
    def from_euler(cls, roll: float, pitch: float, yaw: float) -> Quaternion:
        x, y, z, w = Rotation.from_euler("xyz", [roll, pitch, yaw]).as_quat()
        return cls(float(x), float(y), float(z), float(w))

    def to_numpy(self) -> np.ndarray:
        return np.array([self.x, self.y, self.z, self.w], dtype=np.float64)

    def to_list(self) -> list[float]:
        return [self.x, self.y, self.z, self.w]

    def norm(self) -> float:
        return float(np.linalg.norm(self.to_numpy()))

    def to_rotation_matrix(self) -> np.ndarray:
        """3x3 rotation matrix. Raises ValueError for a zero quaternion."""
        if self.norm() == 0.0:
            raise ValueError("Zero-norm quaternion has no rotation")
        return Rotation.from_quat(self.to_numpy()).as_matrix()

    def to_euler(self) -> Vector3:
        """Roll, pitch, yaw (radians)."""
        roll, pitch, yaw = Rotation.from_quat(self.to_numpy()).as_euler("xyz")
        return Vector3(float(roll), float(pitch), float(yaw))
