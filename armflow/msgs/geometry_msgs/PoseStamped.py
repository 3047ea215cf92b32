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

from armflow.msgs.geometry_msgs.Pose import Pose


@dataclass
class PoseStamped(Pose):
    frame_id: str = ""
    ts: float = field(default_factory=time.time)
    msg_name = "geometry_msgs.PoseStamped"

    def to_pose(self) -> Pose:
        return Pose(position=self.position, orientation=self.orientation)

    def __str__(self) -> str:
        return f"PoseStamped(frame={self.frame_id!r}, {Pose.__str__(self)})"
