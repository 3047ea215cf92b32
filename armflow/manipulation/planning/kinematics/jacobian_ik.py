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

"""Jacobian-based inverse kinematics.

JacobianIK solves pose targets on any RobotModelSpec implementation using
damped least squares. It only uses forward_kinematics, jacobian_at and
joint_limits, so it works for any serial-chain model.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np

from armflow.manipulation.planning.spec import IKResult, IKStatus, UnknownJoint
from armflow.manipulation.planning.utils.kinematics_utils import (
    check_singularity,
    compute_pose_error,
    damped_pseudoinverse,
    within_tolerance,
)
from armflow.msgs.sensor_msgs import JointState
from armflow.utils.logging_config import setup_logger

if TYPE_CHECKING:
    from collections.abc import Sequence

    from numpy.typing import NDArray

    from armflow.manipulation.planning.spec import RobotModelSpec
    from armflow.msgs.geometry_msgs import PoseStamped

logger = setup_logger()

# Orientation tolerances at or above this are treated as "any orientation"
_FREE_ORIENTATION = np.pi


class JacobianIK:
    """Damped least-squares IK solver.

    Methods:
        - solve(): solve_iterative from the seed, extra seeds, then random restarts
        - solve_iterative(): iterate from one seed until every axis is within tolerance

    Example:
        ik = JacobianIK(robot_model, damping=0.05)
        result = ik.solve(target_pose, seed=current_joints)
        if result.is_success():
            print(f"Solution: {result.joint_state.position}")
    """

    def __init__(
        self,
        robot_model: RobotModelSpec,
        damping: float = 0.05,
        max_iterations: int = 200,
        max_step: float = 0.1,
        gain: float = 0.5,
        singularity_threshold: float = 1e-6,
        rng: np.random.Generator | None = None,
    ):
        """Create Jacobian IK solver.

        Args:
            robot_model: Kinematics to solve on
            damping: Damping factor for pseudoinverse (higher = more stable near singularities)
            max_iterations: Maximum iterations per seed
            max_step: Maximum joint change per iteration (radians)
            gain: Proportional gain on the pose error
            singularity_threshold: Manipulability threshold for singularity detection
            rng: Random generator for restart seeds
        """
        self._model = robot_model
        self._damping = damping
        self._max_iterations = max_iterations
        self._max_step = max_step
        self._gain = gain
        self._singularity_threshold = singularity_threshold
        self._rng = rng or np.random.default_rng()

    def solve(
        self,
        target_pose: PoseStamped,
        seed: JointState,
        position_tolerance: Sequence[float] = (0.001, 0.001, 0.001),
        orientation_tolerance: Sequence[float] = (0.01, 0.01, 0.01),
        extra_seeds: Sequence[Sequence[float]] = (),
        max_attempts: int = 10,
    ) -> IKResult:
        """Solve IK with multiple restarts.

        Tries ``seed`` first, then each of ``extra_seeds``, then random
        configurations within the joint limits, until ``max_attempts`` seeds
        have been tried.

        Args:
            target_pose: Target end-effector pose in the base frame
            seed: Initial guess (named joint state)
            position_tolerance: Per-axis position tolerance (meters)
            orientation_tolerance: Per-axis orientation tolerance (radians)
            extra_seeds: Additional starting configurations in model joint order
            max_attempts: Maximum number of seeds to try

        Returns:
            IKResult with solution or failure status
        """
        lower, upper = self._model.joint_limits()
        joint_names = self._model.joint_names()

        values = seed.as_dict()
        missing = [name for name in joint_names if name not in values]
        if missing:
            raise UnknownJoint(missing, joint_names)
        seeds = [np.array([values[name] for name in joint_names], dtype=np.float64)]
        seeds.extend(np.asarray(s, dtype=np.float64) for s in extra_seeds)

        last: IKResult | None = None
        for attempt in range(max_attempts):
            q0 = seeds[attempt] if attempt < len(seeds) else self._rng.uniform(lower, upper)
            result = self.solve_iterative(
                target_pose,
                q0,
                position_tolerance=position_tolerance,
                orientation_tolerance=orientation_tolerance,
            )
            if result.is_success():
                logger.debug("IK converged", attempt=attempt, iterations=result.iterations)
                return result
            last = result

        return _create_failure_result(
            IKStatus.NO_SOLUTION,
            f"IK failed after {max_attempts} attempts"
            + (f" ({last.message})" if last is not None else ""),
            iterations=last.iterations if last is not None else 0,
        )

    def solve_iterative(
        self,
        target_pose: PoseStamped,
        q0: NDArray[np.float64],
        position_tolerance: Sequence[float] = (0.001, 0.001, 0.001),
        orientation_tolerance: Sequence[float] = (0.01, 0.01, 0.01),
    ) -> IKResult:
        """Iterate damped least squares from ``q0`` until converged.

        Converges when every axis of the position and orientation error is
        within its tolerance. Orientation is ignored when every orientation
        tolerance is at least pi.
        """
        target = target_pose.to_matrix()
        pos_tol = np.asarray(position_tolerance, dtype=np.float64)
        ori_tol = np.asarray(orientation_tolerance, dtype=np.float64)
        position_only = bool(np.all(ori_tol >= _FREE_ORIENTATION))

        joint_names = self._model.joint_names()
        lower, upper = self._model.joint_limits()
        q = np.clip(np.asarray(q0, dtype=np.float64), lower, upper)

        pos_err = ori_err = np.zeros(3)
        for iteration in range(self._max_iterations):
            state = JointState(name=joint_names, position=q.tolist())
            current = self._model.forward_kinematics(state)
            pos_err, ori_err = compute_pose_error(current, target)

            if within_tolerance(pos_err, pos_tol) and (
                position_only or within_tolerance(ori_err, ori_tol)
            ):
                return _create_success_result(
                    joint_names=joint_names,
                    joint_positions=q,
                    position_error=float(np.linalg.norm(pos_err)),
                    orientation_error=float(np.linalg.norm(ori_err)),
                    iterations=iteration + 1,
                )

            J = self._model.jacobian_at(state)
            if position_only:
                J = J[:3, :]
                error = pos_err * self._gain
            else:
                error = np.concatenate([pos_err, ori_err]) * self._gain

            # Increase damping near singularities instead of failing
            if check_singularity(J, threshold=self._singularity_threshold):
                effective_damping = self._damping * 10.0
            else:
                effective_damping = self._damping

            dq = damped_pseudoinverse(J, effective_damping) @ error

            max_change = float(np.max(np.abs(dq)))
            if max_change > self._max_step:
                dq = dq * (self._max_step / max_change)

            q = np.clip(q + dq, lower, upper)

        return _create_failure_result(
            IKStatus.NO_SOLUTION,
            f"Did not converge after {self._max_iterations} iterations "
            f"(pos_err={np.linalg.norm(pos_err):.4f}, ori_err={np.linalg.norm(ori_err):.4f})",
            iterations=self._max_iterations,
        )


# ============= Result Helpers =============


def _create_success_result(
    joint_names: list[str],
    joint_positions: NDArray[np.float64],
    position_error: float,
    orientation_error: float,
    iterations: int,
) -> IKResult:
    """Create a successful IK result."""
    return IKResult(
        status=IKStatus.SUCCESS,
        joint_state=JointState(name=joint_names, position=joint_positions.tolist()),
        position_error=position_error,
        orientation_error=orientation_error,
        iterations=iterations,
        message="IK solution found",
    )


def _create_failure_result(
    status: IKStatus,
    message: str,
    iterations: int = 0,
) -> IKResult:
    """Create a failed IK result."""
    return IKResult(
        status=status,
        joint_state=None,
        iterations=iterations,
        message=message,
    )
