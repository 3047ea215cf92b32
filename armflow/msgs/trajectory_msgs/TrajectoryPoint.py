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

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class TrajectoryPoint:
    """Single waypoint of a joint trajectory.

    Attributes:
        positions: Joint positions (rad)
        velocities: Joint velocities (rad/s), empty if unknown
        accelerations: Joint accelerations (rad/s^2), empty if unknown
        effort: Joint efforts, empty if unknown
        time_from_start: Seconds from trajectory start
    """

    positions: list[float] = field(default_factory=list)
    velocities: list[float] = field(default_factory=list)
    accelerations: list[float] = field(default_factory=list)
    effort: list[float] = field(default_factory=list)
    time_from_start: float = 0.0

    def __post_init__(self) -> None:
        self.positions = [float(p) for p in self.positions]
        self.velocities = [float(v) for v in self.velocities]
        self.accelerations = [float(a) for a in self.accelerations]
        self.effort = [float(e) for e in self.effort]
        self.time_from_start = float(self.time_from_start)
