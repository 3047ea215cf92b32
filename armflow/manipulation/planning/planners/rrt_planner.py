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

"""RRT-Connect motion planner implementing PlannerSpec.

Bi-directional RRT in joint space. Collision checking uses the sphere
clearance checker built from the locked world snapshot.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import time
from typing import TYPE_CHECKING, TypeAlias

import numpy as np

from armflow.manipulation.planning.planners.joint_space_planner import (
    JointSpacePlanner,
    PlanningError,
)
from armflow.manipulation.planning.spec import PlanningStatus
from armflow.manipulation.planning.utils.path_utils import shortcut_path
from armflow.utils.logging_config import setup_logger

if TYPE_CHECKING:
    from collections.abc import Callable

    from numpy.typing import NDArray

    from armflow.manipulation.planning.utils.clearance import SphereClearanceChecker

logger = setup_logger()

EdgeCheck: TypeAlias = "Callable[[NDArray[np.float64], NDArray[np.float64]], bool]"


@dataclass(eq=False)
class TreeNode:
    """Node in RRT tree."""

    config: NDArray[np.float64]
    parent: TreeNode | None = None
    children: list[TreeNode] = field(default_factory=list)

    def path_to_root(self) -> list[NDArray[np.float64]]:
        """Get path from this node to root."""
        path = []
        node: TreeNode | None = self
        while node is not None:
            path.append(node.config)
            node = node.parent
        return list(reversed(path))


class RRTConnectPlanner(JointSpacePlanner):
    """Bi-directional RRT-Connect planner.

    Planner settings (from the configuration map):
        range: Extension step size (radians)
        max_iterations: Iteration budget
    """

    def __init__(
        self,
        *args: object,
        step_size: float = 0.1,
        connect_step_size: float = 0.05,
        goal_tolerance: float = 0.1,
        max_iterations: int = 5000,
        shortcut_iterations: int = 100,
        rng: np.random.Generator | None = None,
        **kwargs: object,
    ):
        super().__init__(*args, **kwargs)  # type: ignore[arg-type]
        self._step_size = step_size
        self._connect_step_size = connect_step_size
        self._goal_tolerance = goal_tolerance
        self._max_iterations = max_iterations
        self._shortcut_iterations = shortcut_iterations
        self._rng = rng or np.random.default_rng()

    def get_name(self) -> str:
        """Get planner name."""
        return "RRTConnect"

    def _plan_path(
        self,
        q_start: NDArray[np.float64],
        q_goal: NDArray[np.float64],
        checker: SphereClearanceChecker,
        deadline: float,
        settings: dict[str, str],
    ) -> list[NDArray[np.float64]]:
        step_size = float(settings.get("range", self._step_size))
        max_iterations = int(settings.get("max_iterations", self._max_iterations))

        def edge_valid(a: NDArray[np.float64], b: NDArray[np.float64]) -> bool:
            return checker.is_edge_valid(a, b, self._edge_step_size)

        # Direct connection first
        if edge_valid(q_start, q_goal):
            return [q_start.copy(), q_goal.copy()]

        lower, upper = self._model.joint_limits()
        lower = np.minimum(lower, q_start)
        upper = np.maximum(upper, q_start)
        start_tree = [TreeNode(config=q_start.copy())]
        goal_tree = [TreeNode(config=q_goal.copy())]
        trees_swapped = False

        for iteration in range(max_iterations):
            if time.monotonic() > deadline:
                raise PlanningError(
                    PlanningStatus.TIMED_OUT, f"Timeout after {iteration} iterations"
                )

            sample = self._rng.uniform(lower, upper)
            extended = self._extend_tree(start_tree, sample, step_size, edge_valid)

            if extended is not None:
                connected = self._connect_tree(goal_tree, extended.config, edge_valid)
                if connected is not None:
                    path = extended.path_to_root() + list(reversed(connected.path_to_root()))[1:]
                    if trees_swapped:
                        path = list(reversed(path))
                    logger.debug("RRT-Connect trees joined", iterations=iteration + 1)
                    return shortcut_path(
                        path, edge_valid, max_iterations=self._shortcut_iterations, rng=self._rng
                    )

            start_tree, goal_tree = goal_tree, start_tree
            trees_swapped = not trees_swapped

        raise PlanningError(
            PlanningStatus.PLANNING_FAILED, f"No path found after {max_iterations} iterations"
        )

    def _extend_tree(
        self,
        tree: list[TreeNode],
        target: NDArray[np.float64],
        step_size: float,
        edge_valid: EdgeCheck,
    ) -> TreeNode | None:
        """Extend tree toward target, returns new node if successful."""
        nearest = min(tree, key=lambda n: float(np.linalg.norm(n.config - target)))

        diff = target - nearest.config
        dist = float(np.linalg.norm(diff))

        if dist <= step_size:
            new_config = target.copy()
        else:
            new_config = nearest.config + step_size * (diff / dist)

        if edge_valid(nearest.config, new_config):
            new_node = TreeNode(config=new_config, parent=nearest)
            nearest.children.append(new_node)
            tree.append(new_node)
            return new_node

        return None

    def _connect_tree(
        self,
        tree: list[TreeNode],
        target: NDArray[np.float64],
        edge_valid: EdgeCheck,
    ) -> TreeNode | None:
        """Try to connect tree to target, returns connected node if successful."""
        while True:
            result = self._extend_tree(tree, target, self._connect_step_size, edge_valid)

            if result is None:
                return None

            if float(np.linalg.norm(result.config - target)) < self._goal_tolerance:
                # Close the gap exactly so the joined path is continuous
                if not np.array_equal(result.config, target):
                    return self._extend_tree(tree, target, self._goal_tolerance, edge_valid)
                return result
