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
World Model

Thread-safe store of the robot's joint state and the obstacle set, published
as immutable WorldSnapshot revisions.

Readers take a shared lock for the duration of one planning call:

    with world_model.acquire_read_lock() as snapshot:
        response = planner.generate_plan(snapshot, request)

Writers (the monitors) merge partial updates under the exclusive lock; each
call to update_from_sensors() publishes exactly one new revision.
"""

from __future__ import annotations

from contextlib import contextmanager
import threading
import time
from types import MappingProxyType
from typing import TYPE_CHECKING

from armflow.manipulation.planning.spec import Obstacle, StateUnavailable, WorldSnapshot
from armflow.msgs.sensor_msgs import JointState
from armflow.utils.logging_config import setup_logger
from armflow.utils.rw_lock import ReadWriteLock

if TYPE_CHECKING:
    from collections.abc import Generator, Iterable, Sequence

logger = setup_logger()


class WorldModel:
    """Multiple-reader / single-writer world state.

    The model only becomes readable once every joint in ``joint_names`` has
    been reported at least once. Joints outside ``joint_names`` are ignored.
    """

    def __init__(self, joint_names: Sequence[str]) -> None:
        if not joint_names:
            raise ValueError("WorldModel requires at least one joint")
        self._joint_names = list(joint_names)
        self._joint_index = {name: i for i, name in enumerate(self._joint_names)}
        self._lock = ReadWriteLock()

        n = len(self._joint_names)
        self._positions: list[float | None] = [None] * n
        self._velocities = [0.0] * n
        self._efforts = [0.0] * n
        self._obstacles: dict[str, Obstacle] = {}

        self._revision = 0
        self._snapshot: WorldSnapshot | None = None
        self._state_ready = threading.Event()

    @property
    def joint_names(self) -> list[str]:
        return list(self._joint_names)

    @property
    def revision(self) -> int:
        """Latest published revision (0 before the first update)."""
        with self._lock.read_locked():
            return self._revision

    @property
    def rw_lock(self) -> ReadWriteLock:
        return self._lock

    def has_state(self) -> bool:
        """True once a complete robot state has been observed."""
        return self._state_ready.is_set()

    def wait_for_state(self, timeout: float | None = None) -> bool:
        """Block until a complete robot state is available. False on timeout."""
        return self._state_ready.wait(timeout)

    @contextmanager
    def acquire_read_lock(self) -> Generator[WorldSnapshot, None, None]:
        """Hold the shared lock and yield the current snapshot.

        Raises:
            StateUnavailable: if no complete robot state was ever observed
        """
        self._lock.acquire_read()
        try:
            snapshot = self._snapshot
            if snapshot is None:
                raise StateUnavailable(
                    f"No complete robot state observed yet for joints {self._joint_names}"
                )
            yield snapshot
        finally:
            self._lock.release_read()

    def update_from_sensors(
        self,
        joint_state: JointState | None = None,
        obstacles: Iterable[Obstacle] | None = None,
        removed: Iterable[str] = (),
    ) -> int:
        """Merge a partial update and publish it as one revision.

        Args:
            joint_state: Joint values to merge by name (may cover a subset of joints)
            obstacles: Obstacles to add or replace, keyed by name
            removed: Names of obstacles to drop

        Returns:
            The new revision number
        """
        with self._lock.write_locked():
            if joint_state is not None:
                self._merge_joint_state(joint_state)
            for obstacle in obstacles or ():
                self._obstacles[obstacle.name] = obstacle
            for name in removed:
                if self._obstacles.pop(name, None) is None:
                    logger.debug(f"Obstacle '{name}' not present, nothing to remove")

            self._revision += 1
            snapshot = self._build_snapshot()
            self._snapshot = snapshot
            revision = self._revision

        if snapshot is not None and not self._state_ready.is_set():
            logger.info("World model received complete robot state", revision=revision)
            self._state_ready.set()
        return revision

    def current_joint_state(self) -> JointState | None:
        """Latest complete joint state, or None."""
        with self._lock.read_locked():
            return self._snapshot.joint_state if self._snapshot is not None else None

    def obstacle_names(self) -> list[str]:
        with self._lock.read_locked():
            return list(self._obstacles)

    def get_state_age(self) -> float | None:
        """Seconds since the last published revision, None without state."""
        with self._lock.read_locked():
            if self._snapshot is None:
                return None
            return time.time() - self._snapshot.stamp

    def is_state_stale(self, max_age: float = 1.0) -> bool:
        """True if there is no state or it is older than ``max_age`` seconds."""
        age = self.get_state_age()
        return age is None or age > max_age

    def _merge_joint_state(self, joint_state: JointState) -> None:
        for i, name in enumerate(joint_state.name):
            idx = self._joint_index.get(name)
            if idx is None:
                logger.debug(f"Ignoring joint '{name}' not in robot model")
                continue
            if i < len(joint_state.position):
                self._positions[idx] = joint_state.position[i]
            if i < len(joint_state.velocity):
                self._velocities[idx] = joint_state.velocity[i]
            if i < len(joint_state.effort):
                self._efforts[idx] = joint_state.effort[i]

    def _build_snapshot(self) -> WorldSnapshot | None:
        if any(p is None for p in self._positions):
            return None
        state = JointState(
            name=list(self._joint_names),
            position=list(self._positions),  # type: ignore[arg-type]
            velocity=list(self._velocities),
            effort=list(self._efforts),
        )
        return WorldSnapshot(
            joint_state=state,
            obstacles=MappingProxyType(dict(self._obstacles)),
            revision=self._revision,
            stamp=time.time(),
        )
