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
Manipulability Analyzer

Translational manipulability ellipsoid of a configuration:

    M = Jv @ Jv.T            (Jv = first three rows of the Jacobian)
    M = V @ diag(λ) @ V.T    (λ ascending, V columns are unit eigenvectors)

λ[0] and V[:, 0] describe the direction in which the end-effector is most
constrained. The ellipsoid's semi-axis lengths are sqrt(λ).

Example:
    analyzer = ManipulabilityAnalyzer(threshold=1e-6)
    measures = analyzer.evaluate(robot_model.jacobian_at(joint_state))
    if not measures.pass_:
        logger.warning("Configuration is close to a singularity")
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np

from armflow.manipulation.planning.spec import (
    DecompositionError,
    ManipulabilityMeasures,
    ManipulabilityMode,
)

if TYPE_CHECKING:
    from armflow.manipulation.planning.spec import Jacobian, RobotModelSpec
    from armflow.msgs.sensor_msgs import JointState

DEFAULT_MANIPULABILITY_THRESHOLD = 1e-6

# Eigenvalues at or below RANK_RTOL * lambda_max are treated as exactly zero
RANK_RTOL = 1e3 * np.finfo(np.float64).eps


class ManipulabilityAnalyzer:
    """Computes ManipulabilityMeasures from a Jacobian.

    Holds only its configuration, so one instance can be shared across threads.

    Args:
        threshold: Pass threshold, compared against the smallest eigenvalue
            (MIN_EIGENVALUE) or against λmin / λmax (ISOTROPY)
        mode: Which quantity is compared against ``threshold``
    """

    def __init__(
        self,
        threshold: float = DEFAULT_MANIPULABILITY_THRESHOLD,
        mode: ManipulabilityMode | str = ManipulabilityMode.MIN_EIGENVALUE,
    ):
        if not np.isfinite(threshold) or threshold < 0.0:
            raise ValueError(f"Manipulability threshold must be finite and >= 0, got {threshold}")
        self._threshold = float(threshold)
        self._mode = ManipulabilityMode(mode)

    @property
    def threshold(self) -> float:
        return self._threshold

    @property
    def mode(self) -> ManipulabilityMode:
        return self._mode

    def evaluate(self, jacobian: Jacobian) -> ManipulabilityMeasures:
        """Eigen-decompose the translational manipulability matrix.

        Args:
            jacobian: 3 x n translational or 6 x n geometric Jacobian

        Raises:
            ValueError: if the Jacobian is not 3 x n or 6 x n
            DecompositionError: on non-finite input or if the solver fails
        """
        J = np.asarray(jacobian, dtype=np.float64)
        if J.ndim != 2 or J.shape[0] not in (3, 6) or J.shape[1] == 0:
            raise ValueError(f"Expected a 3 x n or 6 x n Jacobian, got shape {J.shape}")
        if not np.all(np.isfinite(J)):
            raise DecompositionError("Jacobian contains non-finite values")

        Jv = J[:3, :]
        M = Jv @ Jv.T
        # Symmetrize so eigh sees an exactly symmetric matrix
        M = 0.5 * (M + M.T)

        try:
            eigen_values, eigen_vectors = np.linalg.eigh(M)
        except np.linalg.LinAlgError as e:
            raise DecompositionError(f"Eigen-decomposition did not converge: {e}") from e

        if not (np.all(np.isfinite(eigen_values)) and np.all(np.isfinite(eigen_vectors))):
            raise DecompositionError("Eigen-decomposition produced non-finite values")

        # eigh already returns ascending order; keep it explicit
        order = np.argsort(eigen_values, kind="stable")
        eigen_values = eigen_values[order]
        eigen_vectors = eigen_vectors[:, order]

        # Values below the rank tolerance are numerical noise of a rank-deficient M
        lmax = float(eigen_values[-1])
        rank_tol = RANK_RTOL * max(lmax, 0.0)
        eigen_values = np.where(eigen_values <= rank_tol, 0.0, eigen_values)

        return ManipulabilityMeasures(
            eigen_values=eigen_values,
            eigen_vectors=np.ascontiguousarray(eigen_vectors),
            pass_=self._passes(eigen_values),
            threshold=self._threshold,
        )

    def evaluate_configuration(
        self,
        robot_model: RobotModelSpec,
        joint_state: JointState,
    ) -> ManipulabilityMeasures:
        """Evaluate the configuration ``joint_state`` of ``robot_model``."""
        return self.evaluate(robot_model.jacobian_at(joint_state))

    def _passes(self, eigen_values: np.ndarray) -> bool:
        lmin = float(eigen_values[0])
        if lmin <= 0.0:
            return False
        if self._mode == ManipulabilityMode.ISOTROPY:
            return lmin / float(eigen_values[-1]) >= self._threshold
        return lmin >= self._threshold
