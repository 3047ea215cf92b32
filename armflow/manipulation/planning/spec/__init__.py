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

"""Manipulation Planning Specifications."""

from armflow.manipulation.planning.spec.config import (
    PlannerConfigurationMap,
    PlannerConfigurationSettings,
    RobotModelConfig,
    add_planner_configuration_settings,
    panda_robot_config,
)
from armflow.manipulation.planning.spec.enums import (
    ExecutionStatus,
    GoalKind,
    IKStatus,
    ManipulabilityMode,
    ObstacleType,
    PlanningStatus,
)
from armflow.manipulation.planning.spec.errors import (
    ArmflowError,
    DecompositionError,
    ExecutionFailure,
    ExecutionInProgress,
    ExecutionPreempted,
    ExecutionTimeout,
    InvalidGoal,
    PlanningFailure,
    StateUnavailable,
    UnknownJoint,
)
from armflow.manipulation.planning.spec.protocols import (
    ExecutionBackendSpec,
    PlannerSpec,
    RobotModelSpec,
    VisualizationSinkSpec,
)
from armflow.manipulation.planning.spec.types import (
    CollisionObjectMessage,
    DetectedObject,
    ExecutionResult,
    GroupName,
    IKResult,
    Jacobian,
    JointPath,
    ManipulabilityMeasures,
    MotionGoal,
    MotionPlanRequest,
    MotionPlanResult,
    Obstacle,
    PlannerResponse,
    WorldSnapshot,
)

__all__ = [
    "ArmflowError",
    "CollisionObjectMessage",
    "DecompositionError",
    "DetectedObject",
    "ExecutionBackendSpec",
    "ExecutionFailure",
    "ExecutionInProgress",
    "ExecutionPreempted",
    "ExecutionResult",
    "ExecutionStatus",
    "ExecutionTimeout",
    "GoalKind",
    "GroupName",
    "IKResult",
    "IKStatus",
    "InvalidGoal",
    "Jacobian",
    "JointPath",
    "ManipulabilityMeasures",
    "ManipulabilityMode",
    "MotionGoal",
    "MotionPlanRequest",
    "MotionPlanResult",
    "Obstacle",
    "ObstacleType",
    "PlannerConfigurationMap",
    "PlannerConfigurationSettings",
    "PlannerResponse",
    "PlannerSpec",
    "PlanningFailure",
    "PlanningStatus",
    "RobotModelConfig",
    "RobotModelSpec",
    "StateUnavailable",
    "UnknownJoint",
    "VisualizationSinkSpec",
    "WorldSnapshot",
    "add_planner_configuration_settings",
    "panda_robot_config",
]
