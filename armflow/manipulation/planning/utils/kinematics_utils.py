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
Kinematics Utilities

Standalone utility functions for inverse kinematics operations.
These functions are stateless and can be used by any IK solver implementation.

## Functions

- damped_pseudoinverse(): Compute damped pseudoinverse of Jacobian
- check_singularity(): Check if Jacobian is near singularity
- get_manipulability(): Compute manipulability measure
- compute_pose_error(): Compute position/orientation error between poses
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np
from scipy.spatial.transform import Rotation

if TYPE_CHECKING:
    from numpy.typing import NDArray

    from armflow.manipulation.planning.spec import Jacobian


def damped_pseudoinverse(
    J: Jacobian,
    damping: float = 0.01,
) -> NDArray[np.float64]:
    """Compute damped pseudoinverse of Jacobian.

    Uses the damped least-squares formula:
        J_pinv = J^T @ (J @ J^T + λ²I)^(-1)

    Args:
        J: m x n Jacobian matrix
        damping: Damping factor λ (higher = more regularization, more stable)

    Returns:
        n x m pseudoinverse matrix
    """
    JJT = J @ J.T
    I = np.eye(JJT.shape[0])
    result: NDArray[np.float64] = J.T @ np.linalg.solve(JJT + damping**2 * I, I)
    return result


def check_singularity(
    J: Jacobian,
    threshold: float = 0.01,
) -> bool:
    """Check if Jacobian is near singularity (manipulability below threshold)."""
    return get_manipulability(J) < threshold


def get_manipulability(J: Jacobian) -> float:
    """Compute manipulability measure w = sqrt(det(J @ J^T)).

    Higher is better, zero at a singularity.
    """
    JJT = J @ J.T
    det = np.linalg.det(JJT)
    return float(np.sqrt(max(0.0, det)))


def compute_pose_error(
    current_pose: NDArray[np.float64],
    target_pose: NDArray[np.float64],
) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
    """Per-axis position and orientation error between two poses.

    Args:
        current_pose: Current 4x4 homogeneous transform
        target_pose: Target 4x4 homogeneous transform

    Returns:
        (position_error, orientation_error): world-frame translation error in
        meters and world-frame rotation vector (axis * angle) in radians
    """
    position_error = target_pose[:3, 3] - current_pose[:3, 3]
    R_error = target_pose[:3, :3] @ current_pose[:3, :3].T
    orientation_error = Rotation.from_matrix(R_error).as_rotvec()
    return position_error, orientation_error


def within_tolerance(
    error: NDArray[np.float64],
    tolerance: NDArray[np.float64] | tuple[float, float, float],
) -> bool:
    """True if every component of |error| is within its per-axis tolerance."""
    return bool(np.all(np.abs(error) <= np.asarray(tolerance, dtype=np.float64)))
