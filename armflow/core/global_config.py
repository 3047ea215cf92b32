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

from functools import cached_property
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class GlobalConfig(BaseSettings):
    planner_name: str = "interpolation"
    planner_id: str = "panda_arm[EST]"
    planning_timeout: float = Field(default=5.0, gt=0.0)
    execution_timeout: float | None = None
    velocity_scaling: float = Field(default=0.5, gt=0.0, le=1.0)
    acceleration_scaling: float = Field(default=0.5, gt=0.0, le=1.0)
    manipulability_threshold: float = Field(default=1e-6, ge=0.0)
    manipulability_mode: Literal["min_eigenvalue", "isotropy"] = "min_eigenvalue"
    gate_on_manipulability: bool = False
    viewer_backend: Literal["logging", "rerun", "none"] = "logging"
    simulation_time_scale: float = Field(default=1.0, ge=0.0)

    model_config = SettingsConfigDict(
        env_prefix="ARMFLOW_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    @cached_property
    def visualization_enabled(self) -> bool:
        return self.viewer_backend != "none"
