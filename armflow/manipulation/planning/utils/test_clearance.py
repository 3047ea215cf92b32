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

"""Tests for SphereClearanceChecker."""

import numpy as np
import pytest

from armflow.manipulation.planning.kinematics.serial_chain import SerialChainModel
from armflow.manipulation.planning.spec import Obstacle, ObstacleType, panda_robot_config
from armflow.manipulation.planning.utils.clearance import SphereClearanceChecker
from armflow.msgs.geometry_msgs import PoseStamped, Vector3


@pytest.fixture
def panda():
    return SerialChainModel(panda_robot_config())


def _sphere(name, x, y, z, radius):
    return Obstacle(
        name=name,
        obstacle_type=ObstacleType.SPHERE,
        pose=PoseStamped(position=Vector3(x, y, z)),
        dimensions=(radius,),
    )


def test_no_obstacles_is_always_valid(panda):
    checker = SphereClearanceChecker(panda, {})
    q = np.zeros(7)
    assert not checker.has_obstacles
    assert checker.clearance(q) == float("inf")
    assert checker.is_config_valid(q)
    assert checker.is_edge_valid(q, np.ones(7))


def test_obstacle_on_the_arm_collides(panda):
    obstacles = {"on_arm": _sphere("on_arm", 0.0, 0.0, 0.5, 0.05)}
    checker = SphereClearanceChecker(panda, obstacles)

    q = np.zeros(7)
    assert not checker.is_config_valid(q)
    assert checker.colliding_obstacles(q) == ["on_arm"]


def test_distant_obstacle_is_clear(panda):
    obstacles = {"far": _sphere("far", 0.6, 0.4, 0.1, 0.05)}
    checker = SphereClearanceChecker(panda, obstacles)

    q = np.zeros(7)
    assert checker.is_config_valid(q)
    assert checker.clearance(q) > 0.0
    assert checker.colliding_obstacles(q) == []


def test_edge_sweeping_through_obstacle_is_invalid(panda):
    obstacles = {"post": _sphere("post", 0.0, 0.088, 1.033, 0.02)}
    checker = SphereClearanceChecker(panda, obstacles, link_radius=0.02)

    q_start = np.zeros(7)
    q_end = np.zeros(7)
    q_end[0] = np.pi

    assert checker.is_config_valid(q_start)
    assert checker.is_config_valid(q_end)
    assert not checker.is_edge_valid(q_start, q_end, step_size=0.05)


def test_sphere_centers_cover_links(panda):
    checker = SphereClearanceChecker(panda, {}, link_radius=0.05)
    centers = checker.sphere_centers(np.zeros(7))
    assert centers.shape[1] == 3
    # Base segment is skipped, first center is joint 1's origin
    np.testing.assert_allclose(centers[0], [0.0, 0.0, 0.333])
    np.testing.assert_allclose(centers[-1], [0.088, 0.0, 0.926], atol=1e-9)
