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
Clearance Checking

Approximates every link as a chain of spheres between consecutive joint
origins and every obstacle as its bounding sphere. A configuration is
collision-free when no link sphere overlaps an obstacle sphere.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING

import numpy as np

from armflow.manipulation.planning.utils.path_utils import interpolate_segment

if TYPE_CHECKING:
    from numpy.typing import NDArray

    from armflow.manipulation.planning.kinematics.serial_chain import SerialChainModel
    from armflow.manipulation.planning.spec import Obstacle


class SphereClearanceChecker:
    """Configuration and edge validity against a fixed obstacle set.

    Built per planning call from the locked snapshot's obstacles.
    """

    def __init__(
        self,
        robot_model: SerialChainModel,
        obstacles: Mapping[str, Obstacle],
        link_radius: float | None = None,
        skip_base_segment: bool = True,
    ):
        self._model = robot_model
        self._link_radius = (
            robot_model.config.link_radius if link_radius is None else link_radius
        )
        self._skip_base = skip_base_segment
        self._centers = np.array(
            [o.position() for o in obstacles.values()], dtype=np.float64
        ).reshape(-1, 3)
        self._radii = np.array([o.bounding_radius() for o in obstacles.values()], dtype=np.float64)
        self._names = list(obstacles)

    @property
    def has_obstacles(self) -> bool:
        return len(self._names) > 0

    def sphere_centers(self, q: NDArray[np.float64]) -> NDArray[np.float64]:
        """Centers of the spheres covering every link for configuration q."""
        points = self._model.link_positions_q(q)
        start = 1 if self._skip_base else 0
        spacing = max(self._link_radius, 1e-3)
        centers: list[NDArray[np.float64]] = []
        for p0, p1 in zip(points[start:-1], points[start + 1 :], strict=True):
            length = float(np.linalg.norm(p1 - p0))
            steps = max(1, int(np.ceil(length / spacing)))
            for k in range(steps + 1):
                centers.append(p0 + (k / steps) * (p1 - p0))
        return np.asarray(centers)

    def clearance(self, q: NDArray[np.float64]) -> float:
        """Smallest signed distance between any link sphere and obstacle sphere."""
        if not self.has_obstacles:
            return float("inf")
        centers = self.sphere_centers(q)
        d = np.linalg.norm(centers[:, None, :] - self._centers[None, :, :], axis=2)
        return float(np.min(d - self._radii[None, :] - self._link_radius))

    def colliding_obstacles(self, q: NDArray[np.float64]) -> list[str]:
        if not self.has_obstacles:
            return []
        centers = self.sphere_centers(q)
        d = np.linalg.norm(centers[:, None, :] - self._centers[None, :, :], axis=2)
        hit = np.any(d - self._radii[None, :] - self._link_radius < 0.0, axis=0)
        return [name for name, h in zip(self._names, hit, strict=True) if h]

    def is_config_valid(self, q: NDArray[np.float64]) -> bool:
        return self.clearance(q) >= 0.0

    def is_edge_valid(
        self,
        q_start: NDArray[np.float64],
        q_end: NDArray[np.float64],
        step_size: float = 0.05,
    ) -> bool:
        if not self.has_obstacles:
            return True
        return all(self.is_config_valid(q) for q in interpolate_segment(q_start, q_end, step_size))
