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

"""Tests for PlanningCoordinator using a mocked planner."""

import threading
import time
from unittest.mock import MagicMock

import numpy as np
import pytest

from armflow.manipulation.planning.coordinator import PlanningCoordinator, validate_trajectory
from armflow.manipulation.planning.goal_builder import GoalBuilder
from armflow.manipulation.planning.kinematics.manipulability import ManipulabilityAnalyzer
from armflow.manipulation.planning.kinematics.serial_chain import SerialChainModel
from armflow.manipulation.planning.monitor import WorldModel
from armflow.manipulation.planning.spec import (
    MotionPlanRequest,
    PlannerResponse,
    PlanningFailure,
    PlanningStatus,
    StateUnavailable,
    UnknownJoint,
    panda_robot_config,
)
from armflow.manipulation.planning.spec.config import PANDA_READY_POSITIONS
from armflow.msgs.sensor_msgs import JointState
from armflow.msgs.trajectory_msgs import JointTrajectory, TrajectoryPoint


@pytest.fixture
def panda():
    return SerialChainModel(panda_robot_config())


@pytest.fixture
def world_model(panda):
    model = WorldModel(panda.joint_names())
    model.update_from_sensors(
        JointState(name=panda.joint_names(), position=list(PANDA_READY_POSITIONS))
    )
    return model


@pytest.fixture
def planner():
    planner = MagicMock()
    planner.get_name.return_value = "MockPlanner"
    return planner


@pytest.fixture
def request_(panda):
    goal = GoalBuilder(panda).build_joint_goal({"panda_joint1": 0.5})
    return MotionPlanRequest(group_name="panda_arm", goals=(goal,), planner_id="panda_arm[EST]")


def _trajectory(panda, times=(0.0, 1.0)):
    end = list(PANDA_READY_POSITIONS)
    end[0] = 0.5
    configs = [list(PANDA_READY_POSITIONS), end]
    return JointTrajectory(
        joint_names=panda.joint_names(),
        points=[
            TrajectoryPoint(positions=q, time_from_start=t)
            for q, t in zip(configs, times, strict=True)
        ],
    )


def _success(panda, **kwargs):
    return PlannerResponse(
        status=PlanningStatus.SUCCESS,
        trajectory=_trajectory(panda, **kwargs),
        raw_trajectory=_trajectory(panda, times=(0.0, 0.0)),
        message="Path found",
    )


def _assert_write_lock_free(world_model):
    assert world_model.rw_lock.readers == 0
    assert world_model.rw_lock.acquire_write(timeout=0.1)
    world_model.rw_lock.release_write()


# =============================================================================
# plan()
# =============================================================================


class TestPlan:
    def test_success(self, panda, world_model, planner, request_):
        planner.generate_plan.return_value = _success(panda)
        coordinator = PlanningCoordinator(world_model, planner, panda)

        result = coordinator.plan(request_)

        assert result.is_success()
        assert result.reason is None
        assert result.trajectory.num_points == 2
        assert result.raw_trajectory is not None
        assert result.revision == world_model.revision
        assert result.manipulability is None
        assert result.raise_for_status() is result

    def test_planner_gets_locked_snapshot(self, panda, world_model, planner, request_):
        seen = {}

        def generate_plan(snapshot, request):
            seen["readers"] = world_model.rw_lock.readers
            seen["positions"] = list(snapshot.joint_state.position)
            seen["request"] = request
            return _success(panda)

        planner.generate_plan.side_effect = generate_plan
        PlanningCoordinator(world_model, planner, panda).plan(request_)

        assert seen["readers"] == 1
        assert seen["positions"] == pytest.approx(PANDA_READY_POSITIONS)
        assert seen["request"] is request_
        _assert_write_lock_free(world_model)

    def test_failure_status_is_returned(self, panda, world_model, planner, request_):
        planner.generate_plan.return_value = PlannerResponse(
            status=PlanningStatus.NO_IK_SOLUTION, message="no solution"
        )
        coordinator = PlanningCoordinator(world_model, planner, panda)

        result = coordinator.plan(request_)

        assert not result.is_success()
        assert result.status == PlanningStatus.NO_IK_SOLUTION
        assert result.reason == PlanningStatus.NO_IK_SOLUTION
        assert result.trajectory is None
        assert result.message == "no solution"
        with pytest.raises(PlanningFailure) as exc_info:
            result.raise_for_status()
        assert exc_info.value.reason == PlanningStatus.NO_IK_SOLUTION
        _assert_write_lock_free(world_model)

    def test_planner_exception(self, panda, world_model, planner, request_):
        planner.generate_plan.side_effect = RuntimeError("solver crashed")
        coordinator = PlanningCoordinator(world_model, planner, panda)

        result = coordinator.plan(request_)

        assert result.status == PlanningStatus.PLANNER_ERROR
        assert "solver crashed" in result.message
        _assert_write_lock_free(world_model)

    def test_planner_returns_none(self, panda, world_model, planner, request_):
        planner.generate_plan.return_value = None
        result = PlanningCoordinator(world_model, planner, panda).plan(request_)
        assert result.status == PlanningStatus.PLANNER_ERROR

    def test_invalid_trajectory(self, panda, world_model, planner, request_):
        planner.generate_plan.return_value = _success(panda, times=(1.0, 0.5))
        result = PlanningCoordinator(world_model, planner, panda).plan(request_)
        assert result.status == PlanningStatus.INVALID_TRAJECTORY
        assert result.raw_trajectory is not None

    def test_no_state_raises(self, panda, planner, request_):
        empty = WorldModel(panda.joint_names())
        coordinator = PlanningCoordinator(empty, planner, panda)

        with pytest.raises(StateUnavailable):
            coordinator.plan(request_)
        planner.generate_plan.assert_not_called()
        _assert_write_lock_free(empty)

    def test_sequential_plans(self, panda, world_model, planner, request_):
        planner.generate_plan.return_value = _success(panda)
        coordinator = PlanningCoordinator(world_model, planner, panda)

        first = coordinator.plan(request_)
        world_model.update_from_sensors(JointState(name=["panda_joint1"], position=[0.1]))
        second = coordinator.plan(request_)

        assert second.revision == first.revision + 1


# =============================================================================
# Manipulability scoring
# =============================================================================


class TestManipulability:
    def test_final_waypoint_is_scored(self, panda, world_model, planner, request_):
        planner.generate_plan.return_value = _success(panda)
        analyzer = ManipulabilityAnalyzer(threshold=1e-6)
        coordinator = PlanningCoordinator(world_model, planner, panda, manipulability=analyzer)

        result = coordinator.plan(request_)

        assert result.is_success()
        assert result.manipulability is not None
        assert result.manipulability.pass_
        q_final = np.array(result.trajectory.points[-1].positions)
        expected = analyzer.evaluate(panda.jacobian_q(q_final))
        np.testing.assert_allclose(result.manipulability.eigen_values, expected.eigen_values)

    def test_low_score_is_reported_without_gating(self, panda, world_model, planner, request_):
        planner.generate_plan.return_value = _success(panda)
        analyzer = ManipulabilityAnalyzer(threshold=1e3)
        coordinator = PlanningCoordinator(world_model, planner, panda, manipulability=analyzer)

        result = coordinator.plan(request_)

        assert result.is_success()
        assert not result.manipulability.pass_

    def test_gating_rejects_low_score(self, panda, world_model, planner, request_):
        planner.generate_plan.return_value = _success(panda)
        analyzer = ManipulabilityAnalyzer(threshold=1e3)
        coordinator = PlanningCoordinator(
            world_model, planner, panda, manipulability=analyzer, gate_on_manipulability=True
        )

        result = coordinator.plan(request_)

        assert result.status == PlanningStatus.LOW_MANIPULABILITY
        assert result.manipulability is not None
        assert result.trajectory is None

    def test_partial_trajectory_is_scored_with_start_positions(
        self, panda, world_model, planner, request_
    ):
        ready = list(PANDA_READY_POSITIONS)
        planner.generate_plan.return_value = PlannerResponse(
            status=PlanningStatus.SUCCESS,
            trajectory=JointTrajectory(
                joint_names=["panda_joint1", "panda_joint2"],
                points=[
                    TrajectoryPoint(positions=ready[:2], time_from_start=0.0),
                    TrajectoryPoint(positions=[0.5, ready[1]], time_from_start=1.0),
                ],
            ),
        )
        analyzer = ManipulabilityAnalyzer(threshold=1e-6)
        coordinator = PlanningCoordinator(world_model, planner, panda, manipulability=analyzer)

        result = coordinator.plan(request_)

        assert result.is_success()
        q_final = np.array([0.5, *ready[1:]])
        expected = analyzer.evaluate(panda.jacobian_q(q_final))
        np.testing.assert_allclose(result.manipulability.eigen_values, expected.eigen_values)

    def test_unscorable_configuration_is_not_raised(self, panda, world_model, planner, request_):
        planner.generate_plan.return_value = _success(panda)
        robot_model = MagicMock(wraps=panda)
        robot_model.joint_names.return_value = panda.joint_names()
        robot_model.jacobian_at.side_effect = UnknownJoint(["panda_joint7"], panda.joint_names())
        coordinator = PlanningCoordinator(
            world_model, planner, robot_model, manipulability=ManipulabilityAnalyzer()
        )

        result = coordinator.plan(request_)

        assert result.is_success()
        assert result.manipulability is None


# =============================================================================
# Concurrency
# =============================================================================


class TestConcurrency:
    def test_coordinators_share_the_read_lock(self, panda, world_model, request_):
        both_inside = threading.Barrier(2, timeout=5.0)
        observed_readers = []

        def generate_plan(snapshot, request):
            both_inside.wait()
            observed_readers.append(world_model.rw_lock.readers)
            both_inside.wait()
            return _success(panda)

        coordinators = []
        for _ in range(2):
            planner = MagicMock()
            planner.get_name.return_value = "MockPlanner"
            planner.generate_plan.side_effect = generate_plan
            coordinators.append(PlanningCoordinator(world_model, planner, panda))

        results = []
        workers = [
            threading.Thread(target=lambda c=c: results.append(c.plan(request_)))
            for c in coordinators
        ]
        for worker in workers:
            worker.start()
        for worker in workers:
            worker.join(timeout=10.0)

        assert len(results) == 2
        assert all(result.is_success() for result in results)
        assert observed_readers == [2, 2]
        _assert_write_lock_free(world_model)

    def test_one_coordinator_plans_one_request_at_a_time(
        self, panda, world_model, planner, request_
    ):
        active = 0
        max_active = 0
        counter_lock = threading.Lock()

        def generate_plan(snapshot, request):
            nonlocal active, max_active
            with counter_lock:
                active += 1
                max_active = max(max_active, active)
            time.sleep(0.05)
            with counter_lock:
                active -= 1
            return _success(panda)

        planner.generate_plan.side_effect = generate_plan
        coordinator = PlanningCoordinator(world_model, planner, panda)

        results = []
        workers = [
            threading.Thread(target=lambda: results.append(coordinator.plan(request_)))
            for _ in range(3)
        ]
        for worker in workers:
            worker.start()
        for worker in workers:
            worker.join(timeout=10.0)

        assert len(results) == 3
        assert all(result.is_success() for result in results)
        assert max_active == 1
        assert planner.generate_plan.call_count == 3


# =============================================================================
# validate_trajectory
# =============================================================================


class TestValidateTrajectory:

    JOINTS = ["a", "b"]

    def _traj(self, names=None, points=None):
        return JointTrajectory(
            joint_names=names if names is not None else list(self.JOINTS),
            points=points
            if points is not None
            else [TrajectoryPoint(positions=[0.0, 0.0], time_from_start=0.0)],
        )

    def test_valid(self):
        assert validate_trajectory(self._traj(), self.JOINTS) is None

    def test_empty(self):
        assert validate_trajectory(None, self.JOINTS) is not None
        assert validate_trajectory(self._traj(points=[]), self.JOINTS) is not None

    def test_joint_names(self):
        assert validate_trajectory(self._traj(names=["a", "a"]), self.JOINTS) is not None
        assert validate_trajectory(self._traj(names=["a", "c"]), self.JOINTS) is not None

    def test_width_mismatch(self):
        points = [TrajectoryPoint(positions=[0.0], time_from_start=0.0)]
        assert "positions" in validate_trajectory(self._traj(points=points), self.JOINTS)

    def test_non_finite(self):
        points = [TrajectoryPoint(positions=[0.0, float("nan")], time_from_start=0.0)]
        assert "non-finite" in validate_trajectory(self._traj(points=points), self.JOINTS)
