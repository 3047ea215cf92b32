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
Path Utilities

Standalone utility functions for path manipulation and post-processing.
These functions are stateless and can be used by any planner implementation.

## Functions

- interpolate_segment(): Interpolate between two configurations
- shortcut_path(): Remove unnecessary waypoints with a validity callback
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np

if TYPE_CHECKING:
    from collections.abc import Callable

    from numpy.typing import NDArray

    from armflow.manipulation.planning.spec import JointPath


def interpolate_segment(
    q_start: NDArray[np.float64],
    q_end: NDArray[np.float64],
    step_size: float,
) -> list[NDArray[np.float64]]:
    """Configurations from q_start to q_end (inclusive), at most step_size apart."""
    diff = q_end - q_start
    distance = float(np.linalg.norm(diff))

    if distance <= step_size:
        return [q_start, q_end]

    num_steps = int(np.ceil(distance / step_size))
    return [q_start + (i / num_steps) * diff for i in range(num_steps + 1)]


def shortcut_path(
    path: list[NDArray[np.float64]],
    edge_valid: Callable[[NDArray[np.float64], NDArray[np.float64]], bool],
    max_iterations: int = 100,
    rng: np.random.Generator | None = None,
) -> list[NDArray[np.float64]]:
    """Simplify path by random shortcutting.

    Randomly picks two waypoints and, if ``edge_valid`` accepts the direct
    connection, removes everything between them.
    """
    if len(path) <= 2:
        return list(path)

    rng = rng or np.random.default_rng()
    simplified = list(path)

    for _ in range(max_iterations):
        if len(simplified) <= 2:
            break

        i = int(rng.integers(0, len(simplified) - 2))
        j = int(rng.integers(i + 2, len(simplified)))

        if edge_valid(simplified[i], simplified[j]):
            simplified = simplified[: i + 1] + simplified[j:]

    return simplified

