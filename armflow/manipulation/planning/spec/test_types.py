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

"""Tests for the planning data types and error taxonomy."""

import pytest

from armflow.manipulation.planning.spec import (
    ExecutionFailure,
    ExecutionResult,
    ExecutionStatus,
    ExecutionTimeout,
    GoalKind,
    InvalidGoal,
    MotionGoal,
    MotionPlanRequest,
    MotionPlanResult,
    Obstacle,
    ObstacleType,
    PlanningFailure,
    PlanningStatus,
    UnknownJoint,
)
from armflow.msgs.geometry_msgs import PoseStamped

GOAL = MotionGoal(kind=GoalKind.JOINT, joint_values=(("joint1", 0.1),), joint_tolerance=1e-3)


class TestMotionPlanRequest:
    def test_goals_become_a_tuple(self):
        request = MotionPlanRequest(group_name="arm", goals=[GOAL])
        assert request.goals == (GOAL,)
        assert request.start_state is None

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"group_name": ""},
            {"goals": ()},
            {"allowed_planning_time": 0.0},
            {"allowed_planning_time": float("inf")},
            {"max_velocity_scaling_factor": 0.0},
            {"max_acceleration_scaling_factor": 1.1},
        ],
    )
    def test_rejects_invalid_fields(self, kwargs):
        params = {"group_name": "arm", "goals": (GOAL,)}
        params.update(kwargs)
        with pytest.raises(ValueError):
            MotionPlanRequest(**params)


class TestResults:
    def test_plan_failure(self):
        result = MotionPlanResult.failure(PlanningStatus.TIMED_OUT, "too slow", revision=4)
        assert result.status == PlanningStatus.TIMED_OUT
        assert result.reason == PlanningStatus.TIMED_OUT
        assert result.revision == 4
        with pytest.raises(PlanningFailure, match="TIMED_OUT"):
            result.raise_for_status()

    def test_execution_result(self):
        assert ExecutionResult(ExecutionStatus.SUCCEEDED).is_success()
        with pytest.raises(ExecutionTimeout):
            ExecutionResult(ExecutionStatus.TIMEOUT, "late").raise_for_status()
        with pytest.raises(ExecutionFailure) as exc_info:
            ExecutionResult(ExecutionStatus.FAILED, "joint 2 fault").raise_for_status()
        assert exc_info.value.diagnostic == "joint 2 fault"

    def test_terminal_statuses(self):
        assert not ExecutionStatus.PENDING.is_terminal()
        assert not ExecutionStatus.RUNNING.is_terminal()
        assert all(
            s.is_terminal()
            for s in (
                ExecutionStatus.SUCCEEDED,
                ExecutionStatus.FAILED,
                ExecutionStatus.PREEMPTED,
                ExecutionStatus.TIMEOUT,
            )
        )


class TestErrors:
    def test_error_hierarchy(self):
        assert issubclass(InvalidGoal, ValueError)
        assert issubclass(UnknownJoint, KeyError)
        assert issubclass(ExecutionTimeout, ExecutionFailure)

    def test_unknown_joint_message(self):
        error = UnknownJoint(["elbow"], ["joint1"])
        assert str(error) == "Unknown joint(s): ['elbow']"


class TestObstacle:
    @pytest.mark.parametrize(
        "obstacle_type, dimensions, radius",
        [
            (ObstacleType.SPHERE, (0.1,), 0.1),
            (ObstacleType.BOX, (0.2, 0.2, 0.2), 0.5 * (3 * 0.04) ** 0.5),
            (ObstacleType.CYLINDER, (0.1, 0.2), (0.01 + 0.01) ** 0.5),
            (ObstacleType.BOX, (), 0.0),
        ],
    )
    def test_bounding_radius(self, obstacle_type, dimensions, radius):
        obstacle = Obstacle(
            name="o", obstacle_type=obstacle_type, pose=PoseStamped(), dimensions=dimensions
        )
        assert obstacle.bounding_radius() == pytest.approx(radius)
