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

"""Factory functions for manipulation planning components."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from armflow.visualization.sink import SafeVisualizationSink

if TYPE_CHECKING:
    from armflow.manipulation.planning.kinematics.serial_chain import SerialChainModel
    from armflow.manipulation.planning.spec import (
        ExecutionBackendSpec,
        PlannerSpec,
        RobotModelConfig,
        VisualizationSinkSpec,
    )


def create_robot_model(config: RobotModelConfig) -> SerialChainModel:
    """Create robot kinematics from a RobotModelConfig."""
    from armflow.manipulation.planning.kinematics.serial_chain import SerialChainModel

    return SerialChainModel(config)


def create_planner(
    name: str = "interpolation",
    robot_model: SerialChainModel | None = None,
    **kwargs: Any,
) -> PlannerSpec:
    """Create motion planner. name='interpolation'|'rrt_connect'."""
    if robot_model is None:
        raise ValueError("create_planner requires a robot_model")
    if name == "interpolation":
        from armflow.manipulation.planning.planners.interpolation_planner import (
            InterpolationPlanner,
        )

        return InterpolationPlanner(robot_model, **kwargs)
    elif name == "rrt_connect":
        from armflow.manipulation.planning.planners.rrt_planner import RRTConnectPlanner

        return RRTConnectPlanner(robot_model, **kwargs)
    else:
        raise ValueError(f"Unknown planner: {name}. Available: ['interpolation', 'rrt_connect']")


def create_execution_backend(
    name: str = "simulated",
    **kwargs: Any,
) -> ExecutionBackendSpec:
    """Create controller backend. name='simulated'."""
    if name == "simulated":
        from armflow.control.simulated_backend import SimulatedExecutionBackend

        return SimulatedExecutionBackend(**kwargs)
    else:
        raise ValueError(f"Unknown execution backend: {name}. Available: ['simulated']")


def create_visualization_sink(
    backend: str = "logging",
    robot_model: SerialChainModel | None = None,
    **kwargs: Any,
) -> VisualizationSinkSpec:
    """Create a visualization sink wrapped in SafeVisualizationSink.

    backend='logging'|'rerun'|'recording'|'none'.
    """
    sink: VisualizationSinkSpec
    if backend == "logging":
        from armflow.visualization.sink import LoggingVisualizationSink

        sink = LoggingVisualizationSink()
    elif backend == "rerun":
        if robot_model is None:
            raise ValueError("The rerun sink requires a robot_model")
        from armflow.visualization.rerun_sink import RerunVisualizationSink

        sink = RerunVisualizationSink(robot_model, **kwargs)
    elif backend == "recording":
        from armflow.visualization.sink import RecordingVisualizationSink

        sink = RecordingVisualizationSink()
    elif backend == "none":
        from armflow.visualization.sink import NullVisualizationSink

        sink = NullVisualizationSink()
    else:
        raise ValueError(
            f"Unknown visualization backend: {backend}. "
            "Available: ['logging', 'rerun', 'recording', 'none']"
        )
    return SafeVisualizationSink(sink)
