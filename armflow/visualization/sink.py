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
Visualization sinks for plans, goals and obstacles.

Sinks are fire-and-forget. Wrap any sink in SafeVisualizationSink before
handing it to the planning pipeline so that a broken viewer can never turn
into a planning or execution failure.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import threading
from typing import TYPE_CHECKING, Any

from armflow.utils.logging_config import setup_logger

if TYPE_CHECKING:
    from collections.abc import Sequence

    from armflow.manipulation.planning.spec import VisualizationSinkSpec
    from armflow.msgs.trajectory_msgs import JointTrajectory

logger = setup_logger()


class SafeVisualizationSink:
    """Delegates to another sink, logging and swallowing its exceptions."""

    def __init__(self, sink: VisualizationSinkSpec):
        self._sink = sink
        self._failures = 0

    @property
    def inner(self) -> VisualizationSinkSpec:
        return self._sink

    @property
    def failure_count(self) -> int:
        return self._failures

    def publish_trajectory(self, trajectory: JointTrajectory, label: str) -> None:
        self._call("publish_trajectory", trajectory, label)

    def publish_goal_state(self, joint_names: Sequence[str], joint_values: Sequence[float]) -> None:
        self._call("publish_goal_state", joint_names, joint_values)

    def publish_obstacle_markers(self, positions: Sequence[Sequence[float]]) -> None:
        self._call("publish_obstacle_markers", positions)

    def _call(self, method: str, *args: Any) -> None:
        try:
            getattr(self._sink, method)(*args)
        except Exception as e:
            self._failures += 1
            logger.warning(f"Visualization {method} failed: {e}", sink=type(self._sink).__name__)


class LoggingVisualizationSink:
    """Writes visualization artifacts to the structured log."""

    def publish_trajectory(self, trajectory: JointTrajectory, label: str) -> None:
        logger.info(
            f"Trajectory '{label}'",
            joints=len(trajectory.joint_names),
            points=trajectory.num_points,
            duration=round(trajectory.duration, 3),
        )

    def publish_goal_state(self, joint_names: Sequence[str], joint_values: Sequence[float]) -> None:
        pairs = zip(joint_names, joint_values, strict=False)
        goal = {name: round(float(v), 4) for name, v in pairs}
        logger.info("Goal state", **goal)

    def publish_obstacle_markers(self, positions: Sequence[Sequence[float]]) -> None:
        logger.info(
            "Obstacle markers",
            count=len(positions),
            positions=[[round(float(c), 3) for c in p] for p in positions],
        )


class NullVisualizationSink:
    """Discards everything."""

    def publish_trajectory(self, trajectory: JointTrajectory, label: str) -> None:
        pass

    def publish_goal_state(self, joint_names: Sequence[str], joint_values: Sequence[float]) -> None:
        pass

    def publish_obstacle_markers(self, positions: Sequence[Sequence[float]]) -> None:
        pass


@dataclass
class RecordingVisualizationSink:
    """Keeps every published artifact in memory, in call order."""

    trajectories: list[tuple[str, JointTrajectory]] = field(default_factory=list)
    goal_states: list[tuple[list[str], list[float]]] = field(default_factory=list)
    obstacle_markers: list[list[list[float]]] = field(default_factory=list)
    events: list[str] = field(default_factory=list)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def publish_trajectory(self, trajectory: JointTrajectory, label: str) -> None:
        with self._lock:
            self.trajectories.append((label, trajectory))
            self.events.append(f"trajectory:{label}")

    def publish_goal_state(self, joint_names: Sequence[str], joint_values: Sequence[float]) -> None:
        with self._lock:
            self.goal_states.append((list(joint_names), [float(v) for v in joint_values]))
            self.events.append("goal_state")

    def publish_obstacle_markers(self, positions: Sequence[Sequence[float]]) -> None:
        with self._lock:
            self.obstacle_markers.append([[float(c) for c in p] for p in positions])
            self.events.append("obstacle_markers")

    def trajectory_labels(self) -> list[str]:
        with self._lock:
            return [label for label, _ in self.trajectories]

    def clear(self) -> None:
        with self._lock:
            self.trajectories.clear()
            self.goal_states.clear()
            self.obstacle_markers.clear()
            self.events.clear()
