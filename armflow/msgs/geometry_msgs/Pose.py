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
from typing import Any

import numpy as np

from armflow.msgs.geometry_msgs.Quaternion import Quaternion
from armflow.msgs.geometry_msgs.Vector3 import Vector3


@dataclass
class Pose:
    position: Vector3 = field(default_factory=Vector3)
    orientation: Quaternion = field(default_factory=Quaternion)
    msg_name = "geometry_msgs.Pose"

    def __post_init__(self) -> None:
        # Accept plain sequences for convenience
        self.position = Vector3.from_any(self.position)
        self.orientation = Quaternion.from_any(self.orientation)

    @property
    def x(self) -> float:
        return self.position.x

    @property
    def y(self) -> float:
        return self.position.y

    @property
    def z(self) -> float:
        return self.position.z

    @classmethod
    def from_matrix(cls, matrix: np.ndarray, **kwargs: Any) -> Any:
        """Build from a 4x4 homogeneous transform."""
        matrix = np.asarray(matrix, dtype=np.float64)
        return cls(
            position=Vector3.from_any(matrix[:3, 3]),
            orientation=Quaternion.from_rotation_matrix(matrix[:3, :3]),
            **kwargs,
        )

    def to_matrix(self) -> np.ndarray:
        """4x4 homogeneous transform."""
        T = np.eye(4)
        T[:3, :3] = self.orientation.to_rotation_matrix()
        T[:3, 3] = self.position.to_numpy()
        return T

    def __str__(self) -> str:
        q = self.orientation
        return (
            f"Pose(pos=[{self.x:.3f}, {self.y:.3f}, {self.z:.3f}], "
            f"quat=[{q.x:.3f}, {q.y:.3f}, {q.z:.3f}, {q.w:.3f}])"
        )
