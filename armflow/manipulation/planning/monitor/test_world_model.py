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

"""Tests for WorldModel."""

from __future__ import annotations

import threading

import pytest

from armflow.manipulation.planning.monitor import WorldModel
from armflow.manipulation.planning.spec import Obstacle, ObstacleType, StateUnavailable
from armflow.msgs.geometry_msgs import PoseStamped, Vector3
from armflow.msgs.sensor_msgs import JointState

JOINTS = ["joint1", "joint2", "joint3"]


@pytest.fixture
def world_model():
    return WorldModel(JOINTS)


def _box(name: str, x: float = 0.5) -> Obstacle:
    return Obstacle(
        name=name,
        obstacle_type=ObstacleType.BOX,
        pose=PoseStamped(position=Vector3(x, 0.0, 0.2)),
        dimensions=(0.1, 0.1, 0.1),
    )


# =============================================================================
# Read lock
# =============================================================================


class TestAcquireReadLock:
    def test_empty_model_raises_state_unavailable(self, world_model):
        with pytest.raises(StateUnavailable):
            with world_model.acquire_read_lock():
                pass
        # Lock was released before raising
        assert world_model.rw_lock.readers == 0
        assert world_model.rw_lock.acquire_write(timeout=0.1)
        world_model.rw_lock.release_write()

    def test_partial_state_is_not_readable(self, world_model):
        world_model.update_from_sensors(JointState(name=["joint1"], position=[0.1]))
        assert not world_model.has_state()
        with pytest.raises(StateUnavailable):
            with world_model.acquire_read_lock():
                pass

    def test_returns_state_after_update(self, world_model):
        revision = world_model.update_from_sensors(
            JointState(name=JOINTS, position=[0.1, 0.2, 0.3])
        )

        with world_model.acquire_read_lock() as snapshot:
            assert snapshot.joint_names == JOINTS
            assert snapshot.joint_state.position == [0.1, 0.2, 0.3]
            assert snapshot.revision == revision
            assert world_model.rw_lock.readers == 1
        assert world_model.rw_lock.readers == 0

    def test_lock_released_when_block_raises(self, world_model):
        world_model.update_from_sensors(JointState(name=JOINTS, position=[0.0, 0.0, 0.0]))

        with pytest.raises(RuntimeError):
            with world_model.acquire_read_lock():
                raise RuntimeError("planner exploded")

        assert world_model.rw_lock.acquire_write(timeout=0.1)
        world_model.rw_lock.release_write()

    def test_snapshot_is_stable_while_model_changes(self, world_model):
        world_model.update_from_sensors(JointState(name=JOINTS, position=[0.0, 0.0, 0.0]))
        with world_model.acquire_read_lock() as snapshot:
            held = snapshot
        world_model.update_from_sensors(JointState(name=["joint1"], position=[1.0]))

        assert held.joint_state.position == [0.0, 0.0, 0.0]
        assert world_model.current_joint_state().position == [1.0, 0.0, 0.0]

    def test_writer_waits_for_reader(self, world_model):
        world_model.update_from_sensors(JointState(name=JOINTS, position=[0.0, 0.0, 0.0]))
        done = threading.Event()

        def write():
            world_model.update_from_sensors(JointState(name=["joint2"], position=[0.5]))
            done.set()

        with world_model.acquire_read_lock() as snapshot:
            writer = threading.Thread(target=write)
            writer.start()
            assert not done.wait(0.1)
            assert snapshot.joint_state.position[1] == 0.0
        writer.join(1.0)
        assert done.is_set()
        assert world_model.current_joint_state().position[1] == 0.5


# =============================================================================
# Updates
# =============================================================================


class TestUpdateFromSensors:
    def test_partial_updates_merge_by_name(self, world_model):
        world_model.update_from_sensors(JointState(name=JOINTS, position=[0.0, 0.0, 0.0]))
        world_model.update_from_sensors(JointState(name=["joint3", "joint1"], position=[3.0, 1.0]))

        assert world_model.current_joint_state().position == [1.0, 0.0, 3.0]

    def test_unknown_joints_are_ignored(self, world_model):
        world_model.update_from_sensors(
            JointState(name=[*JOINTS, "gripper"], position=[0.1, 0.2, 0.3, 0.04])
        )
        state = world_model.current_joint_state()
        assert state.name == JOINTS
        assert state.position == [0.1, 0.2, 0.3]

    def test_each_update_is_one_revision(self, world_model):
        assert world_model.revision == 0
        r1 = world_model.update_from_sensors(JointState(name=JOINTS, position=[0.0, 0.0, 0.0]))
        r2 = world_model.update_from_sensors(
            JointState(name=JOINTS, position=[0.1, 0.1, 0.1]),
            obstacles=[_box("a"), _box("b")],
        )
        assert (r1, r2) == (1, 2)
        assert world_model.revision == 2

    def test_obstacles_added_replaced_and_removed(self, world_model):
        world_model.update_from_sensors(
            JointState(name=JOINTS, position=[0.0, 0.0, 0.0]), obstacles=[_box("a"), _box("b")]
        )
        world_model.update_from_sensors(obstacles=[_box("a", x=0.9)], removed=["b", "missing"])

        assert world_model.obstacle_names() == ["a"]
        with world_model.acquire_read_lock() as snapshot:
            assert snapshot.obstacles["a"].pose.position.x == pytest.approx(0.9)
            with pytest.raises(TypeError):
                snapshot.obstacles["c"] = _box("c")  # type: ignore[index]

    def test_wait_for_state(self, world_model):
        assert not world_model.wait_for_state(timeout=0.01)
        world_model.update_from_sensors(JointState(name=JOINTS, position=[0.0, 0.0, 0.0]))
        assert world_model.wait_for_state(timeout=0.01)

    def test_state_age(self, world_model):
        assert world_model.get_state_age() is None
        assert world_model.is_state_stale()
        world_model.update_from_sensors(JointState(name=JOINTS, position=[0.0, 0.0, 0.0]))
        assert world_model.get_state_age() >= 0.0
        assert not world_model.is_state_stale(max_age=10.0)

    def test_requires_joints(self):
        with pytest.raises(ValueError):
            WorldModel([])
