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

"""Tests for the component factories."""

from unittest.mock import patch

import pytest

from armflow.control.simulated_backend import SimulatedExecutionBackend
from armflow.manipulation.planning.factory import (
    create_execution_backend,
    create_planner,
    create_robot_model,
    create_visualization_sink,
)
from armflow.manipulation.planning.planners import InterpolationPlanner, RRTConnectPlanner
from armflow.manipulation.planning.spec import panda_robot_config
from armflow.visualization import (
    LoggingVisualizationSink,
    NullVisualizationSink,
    RecordingVisualizationSink,
    SafeVisualizationSink,
)


@pytest.fixture
def panda():
    return create_robot_model(panda_robot_config())


def test_create_robot_model(panda):
    assert panda.variable_count() == 7
    assert panda.end_effector_link == panda_robot_config().end_effector_link


class TestCreatePlanner:
    def test_interpolation(self, panda):
        planner = create_planner("interpolation", panda, resolution=0.2)
        assert isinstance(planner, InterpolationPlanner)
        assert planner.get_name() == "Interpolation"

    def test_rrt_connect(self, panda):
        assert isinstance(create_planner("rrt_connect", panda), RRTConnectPlanner)

    def test_errors(self, panda):
        with pytest.raises(ValueError):
            create_planner("chomp", panda)
        with pytest.raises(ValueError):
            create_planner("interpolation")


def test_create_execution_backend():
    backend = create_execution_backend("simulated", time_scale=0.0)
    assert isinstance(backend, SimulatedExecutionBackend)
    with pytest.raises(ValueError):
        create_execution_backend("ros2")


class TestCreateVisualizationSink:
    @pytest.mark.parametrize(
        "backend, expected",
        [
            ("logging", LoggingVisualizationSink),
            ("recording", RecordingVisualizationSink),
            ("none", NullVisualizationSink),
        ],
    )
    def test_wrapped_backends(self, backend, expected):
        sink = create_visualization_sink(backend)
        assert isinstance(sink, SafeVisualizationSink)
        assert isinstance(sink.inner, expected)

    @patch("armflow.visualization.rerun_sink.rr")
    def test_rerun(self, mock_rr, panda):
        sink = create_visualization_sink("rerun", robot_model=panda, spawn=False)
        assert type(sink.inner).__name__ == "RerunVisualizationSink"

    def test_rerun_requires_robot_model(self):
        with pytest.raises(ValueError):
            create_visualization_sink("rerun")

    def test_unknown(self):
        with pytest.raises(ValueError):
            create_visualization_sink("foxglove")
