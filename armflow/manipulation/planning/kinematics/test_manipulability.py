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

"""Tests for ManipulabilityAnalyzer."""

from unittest.mock import MagicMock, patch

import numpy as np
import pytest

from armflow.manipulation.planning.kinematics.manipulability import ManipulabilityAnalyzer
from armflow.manipulation.planning.spec import DecompositionError, ManipulabilityMode
from armflow.msgs.sensor_msgs import JointState


@pytest.fixture
def jacobian():
    rng = np.random.default_rng(7)
    return rng.normal(size=(6, 7))


class TestEvaluate:
    def test_reconstructs_manipulability_matrix(self, jacobian):
        measures = ManipulabilityAnalyzer().evaluate(jacobian)

        Jv = jacobian[:3, :]
        M = Jv @ Jv.T
        V = measures.eigen_vectors
        np.testing.assert_allclose(V @ measures.eigen_value_matrix @ V.T, M, atol=1e-9)
        assert np.all(np.diff(measures.eigen_values) >= 0.0)
        np.testing.assert_allclose(np.linalg.norm(V, axis=0), np.ones(3), atol=1e-12)

    def test_eigenvectors_match_eigenvalues(self, jacobian):
        measures = ManipulabilityAnalyzer().evaluate(jacobian)
        Jv = jacobian[:3, :]
        M = Jv @ Jv.T
        for i in range(3):
            v = measures.get_vector(i)
            assert v.shape == (3,)
            np.testing.assert_allclose(M @ v, measures.eigen_values[i] * v, atol=1e-9)

    def test_translational_jacobian_gives_same_result(self, jacobian):
        analyzer = ManipulabilityAnalyzer()
        full = analyzer.evaluate(jacobian)
        translational = analyzer.evaluate(jacobian[:3, :])
        np.testing.assert_allclose(full.eigen_values, translational.eigen_values)

    def test_rank_one_jacobian_never_passes(self):
        u = np.array([1.0, 2.0, 3.0])
        v = np.linspace(0.1, 0.7, 7)
        J = np.outer(u, v)

        for threshold in (1e-12, 1e-6, 1.0):
            measures = ManipulabilityAnalyzer(threshold=threshold).evaluate(J)
            assert measures.eigen_values[0] == 0.0
            assert measures.eigen_values[1] == 0.0
            assert measures.eigen_values[2] > 0.0
            assert not measures.pass_

        isotropy = ManipulabilityAnalyzer(threshold=1e-9, mode=ManipulabilityMode.ISOTROPY)
        assert not isotropy.evaluate(J).pass_

    def test_zero_jacobian(self):
        measures = ManipulabilityAnalyzer(threshold=0.0).evaluate(np.zeros((6, 7)))
        np.testing.assert_array_equal(measures.eigen_values, np.zeros(3))
        assert not measures.pass_
        assert measures.isotropy == 0.0
        assert measures.index == 0.0

    def test_threshold_policies(self):
        J = np.diag([1.0, 2.0, 4.0])  # eigenvalues 1, 4, 16

        assert ManipulabilityAnalyzer(threshold=1.0).evaluate(J).pass_
        assert not ManipulabilityAnalyzer(threshold=1.5).evaluate(J).pass_

        assert ManipulabilityAnalyzer(threshold=0.0625, mode="isotropy").evaluate(J).pass_
        assert not ManipulabilityAnalyzer(threshold=0.1, mode="isotropy").evaluate(J).pass_

    def test_derived_quantities(self):
        measures = ManipulabilityAnalyzer().evaluate(np.diag([1.0, 2.0, 4.0]))
        np.testing.assert_allclose(measures.eigen_values, [1.0, 4.0, 16.0])
        np.testing.assert_allclose(measures.semi_axes, [1.0, 2.0, 4.0])
        assert measures.min_eigen_value == pytest.approx(1.0)
        assert measures.isotropy == pytest.approx(1.0 / 16.0)
        assert measures.index == pytest.approx(8.0)

    def test_measures_are_read_only(self, jacobian):
        measures = ManipulabilityAnalyzer().evaluate(jacobian)
        with pytest.raises(ValueError):
            measures.eigen_values[0] = 1.0
        with pytest.raises(IndexError):
            measures.get_vector(3)
        with pytest.raises(IndexError):
            measures.get_vector(-1)


class TestErrors:
    @pytest.mark.parametrize("shape", [(4, 7), (6,), (6, 0), (2, 2, 2)])
    def test_wrong_shape(self, shape):
        with pytest.raises(ValueError):
            ManipulabilityAnalyzer().evaluate(np.ones(shape))

    def test_non_finite_jacobian(self, jacobian):
        jacobian[1, 2] = np.nan
        with pytest.raises(DecompositionError):
            ManipulabilityAnalyzer().evaluate(jacobian)

    def test_solver_failure(self, jacobian):
        with patch("numpy.linalg.eigh", side_effect=np.linalg.LinAlgError("no convergence")):
            with pytest.raises(DecompositionError):
                ManipulabilityAnalyzer().evaluate(jacobian)

    def test_invalid_threshold(self):
        with pytest.raises(ValueError):
            ManipulabilityAnalyzer(threshold=-1.0)
        with pytest.raises(ValueError):
            ManipulabilityAnalyzer(threshold=float("inf"))


def test_evaluate_configuration_uses_robot_jacobian(jacobian):
    robot_model = MagicMock()
    robot_model.jacobian_at.return_value = jacobian
    state = JointState(name=["j1"], position=[0.0])

    measures = ManipulabilityAnalyzer().evaluate_configuration(robot_model, state)

    robot_model.jacobian_at.assert_called_once_with(state)
    assert measures.eigen_values.shape == (3,)
