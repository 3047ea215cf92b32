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

"""Straight-line joint-space planner.

Connects start and goal with a linearly interpolated joint path and accepts
it if every interpolated configuration clears the obstacles.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

import numpy as np

from armflow.manipulation.planning.planners.joint_space_planner import (
    JointSpacePlanner,
    PlanningError,
)
from armflow.manipulation.planning.spec import PlanningStatus
from armflow.manipulation.planning.utils.path_utils import interpolate_segment

if TYPE_CHECKING:
    from numpy.typing import NDArray

    from armflow.manipulation.planning.utils.clearance import SphereClearanceChecker


class InterpolationPlanner(JointSpacePlanner):
    """Linear joint interpolation with clearance checking.

    Planner settings (from the configuration map):
        resolution: Maximum joint step between waypoints (radians, default 0.1)
    """

    def __init__(self, *args: object, resolution: float = 0.1, **kwargs: object):
        super().__init__(*args, **kwargs)  # type: ignore[arg-type]
        self._resolution = resolution

    def get_name(self) -> str:
        return "Interpolation"

    def _plan_path(
        self,
        q_start: NDArray[np.float64],
        q_goal: NDArray[np.float64],
        checker: SphereClearanceChecker,
        deadline: float,
        settings: dict[str, str],
    ) -> list[NDArray[np.float64]]:
        resolution = float(settings.get("resolution", self._resolution))
        path = interpolate_segment(q_start, q_goal, resolution)
        for q in path:
            if time.monotonic() > deadline:
                raise PlanningError(PlanningStatus.TIMED_OUT, "Timed out checking path clearance")
            if not checker.is_config_valid(q):
                raise PlanningError(
                    PlanningStatus.PLANNING_FAILED,
                    f"Straight-line path collides with {checker.colliding_obstacles(q)}",
                )
        return path
