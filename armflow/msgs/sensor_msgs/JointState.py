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
import time


@dataclass
class JointState:
    """Joint-space robot state. All lists are ordered like ``name``.

    ``velocity`` and ``effort`` may be empty when the source does not report them.
    """

    name: list[str] = field(default_factory=list)
    position: list[float] = field(default_factory=list)
    velocity: list[float] = field(default_factory=list)
    effort: list[float] = field(default_factory=list)
    ts: float = field(default_factory=time.time)
    msg_name = "sensor_msgs.JointState"

    def __post_init__(self) -> None:
        self.name = list(self.name)
        self.position = [float(p) for p in self.position]
        self.velocity = [float(v) for v in self.velocity]
        self.effort = [float(e) for e in self.effort]
        for label, values in (
            ("position", self.position),
            ("velocity", self.velocity),
            ("effort", self.effort),
        ):
            if values and len(values) != len(self.name):
                raise ValueError(
                    f"JointState {label} has {len(values)} entries for {len(self.name)} joints"
                )

    def as_dict(self) -> dict[str, float]:
        """Map joint name -> position."""
        return dict(zip(self.name, self.position, strict=False))

    def get_position(self, joint_name: str) -> float:
        return self.position[self.name.index(joint_name)]

    def __len__(self) -> int:
        return len(self.name)
