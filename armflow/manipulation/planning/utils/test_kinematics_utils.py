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

"""Tests for kinematics utilities."""

import numpy as np
import pytest
from scipy.spatial.transform import Rotation

from armflow.manipulation.planning.utils.kinematics_utils import (
    check_singularity,
    compute_pose_error,
    damped_pseudoinverse,
    get_manipulability,
    within_tolerance,
)


def _pose(position, rotvec=(0.0, 0.0, 0.0)):
    T = np.eye(4)
    T[:3, :3] = Rotation.from_rotvec(rotvec).as_matrix()
    T[:3, 3] = position
    return T


def test_damped_pseudoinverse_without_damping_is_pinv():
    rng = np.random.default_rng(3)
    J = rng.normal(size=(6, 7))
    np.testing.assert_allclose(damped_pseudoinverse(J, damping=0.0), np.linalg.pinv(J), atol=1e-9)


def test_damped_pseudoinverse_is_finite_at_singularity():
    J = np.zeros((6, 7))
    J[0, 0] = 1.0
    J_pinv = damped_pseudoinverse(J, damping=0.1)
    assert J_pinv.shape == (7, 6)
    assert np.all(np.isfinite(J_pinv))


def test_manipulability_and_singularity():
    assert get_manipulability(np.eye(3)) == pytest.approx(1.0)
    singular = np.array([[1.0, 0.0, 0.0], [0.0, 0.0, 0.0], [0.0, 0.0, 1.0]])
    assert get_manipulability(singular) == 0.0
    assert check_singularity(singular)
    assert not check_singularity(np.eye(3))


def test_pose_error():
    current = _pose([0.1, 0.2, 0.3])
    target = _pose([0.2, 0.2, 0.1], rotvec=(0.0, 0.0, 0.5))

    pos_err, ori_err = compute_pose_error(current, target)

    np.testing.assert_allclose(pos_err, [0.1, 0.0, -0.2])
    np.testing.assert_allclose(ori_err, [0.0, 0.0, 0.5], atol=1e-12)


def test_within_tolerance_is_per_axis():
    assert within_tolerance(np.array([0.01, -0.01, 0.0]), (0.01, 0.01, 0.01))
    assert not within_tolerance(np.array([0.0, 0.0, 0.02]), (0.1, 0.1, 0.01))
