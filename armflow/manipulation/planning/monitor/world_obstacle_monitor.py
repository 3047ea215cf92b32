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

"""Keeps the WorldModel obstacle set in sync with collision-object and perception inputs."""

from __future__ import annotations

import threading
import time
from typing import TYPE_CHECKING

from armflow.manipulation.planning.spec import (
    CollisionObjectMessage,
    DetectedObject,
    Obstacle,
    ObstacleType,
)
from armflow.msgs.geometry_msgs import PoseStamped
from armflow.utils.logging_config import setup_logger

if TYPE_CHECKING:
    from collections.abc import Callable

    from armflow.manipulation.planning.monitor.world_model import WorldModel

logger = setup_logger()

_TYPE_MAP = {
    "box": ObstacleType.BOX,
    "sphere": ObstacleType.SPHERE,
    "cylinder": ObstacleType.CYLINDER,
}


class WorldObstacleMonitor:
    """Translates obstacle inputs into WorldModel revisions.

    Static obstacles arrive as CollisionObjectMessage add/update/remove
    operations and live until removed. Perception obstacles arrive as
    DetectedObject batches and expire once unseen for ``detection_timeout``
    seconds. Inputs are ignored until ``start()``.
    """

    def __init__(self, world_model: WorldModel, detection_timeout: float = 2.0):
        self._world_model = world_model
        self._lock = threading.Lock()
        self._detection_timeout = detection_timeout

        self._collision_objects: dict[str, Obstacle] = {}  # msg_id -> obstacle
        self._perception_objects: dict[str, Obstacle] = {}  # detection_id -> obstacle
        self._perception_timestamps: dict[str, float] = {}  # detection_id -> timestamp

        self._running = False

        # Callbacks: (operation, obstacle_name, obstacle) where operation is "add"/"update"/"remove"
        self._obstacle_callbacks: list[Callable[[str, str, Obstacle | None], None]] = []

    def start(self) -> None:
        self._running = True
        logger.info("World obstacle monitor started")

    def stop(self) -> None:
        self._running = False
        logger.info("World obstacle monitor stopped")

    def on_collision_object(self, msg: CollisionObjectMessage) -> None:
        """Apply one add, update or remove operation."""
        if not self._running:
            return

        with self._lock:
            if msg.operation in ("add", "update"):
                self._upsert_collision_object(msg)
            elif msg.operation == "remove":
                self._remove_collision_object(msg.id)
            else:
                logger.warning(f"Unknown collision object operation: {msg.operation}")

    def _upsert_collision_object(self, msg: CollisionObjectMessage) -> None:
        existing = self._collision_objects.get(msg.id)
        if existing is not None and msg.primitive_type is None and msg.pose is not None:
            # Pose-only update keeps the existing geometry
            obstacle: Obstacle | None = Obstacle(
                name=existing.name,
                obstacle_type=existing.obstacle_type,
                pose=msg.pose,
                dimensions=existing.dimensions,
                color=existing.color,
                source=existing.source,
            )
        else:
            obstacle = self._msg_to_obstacle(msg)
        if obstacle is None:
            logger.warning(f"Failed to create obstacle from message: {msg.id}")
            return

        operation = "update" if existing is not None else "add"
        self._world_model.update_from_sensors(obstacles=[obstacle])
        self._collision_objects[msg.id] = obstacle
        logger.debug(f"{operation.capitalize()} collision object '{msg.id}'")
        self._notify(operation, obstacle.name, obstacle)

    def _remove_collision_object(self, msg_id: str) -> None:
        obstacle = self._collision_objects.pop(msg_id, None)
        if obstacle is None:
            logger.debug(f"Collision object '{msg_id}' not found")
            return

        self._world_model.update_from_sensors(removed=[obstacle.name])
        logger.debug(f"Removed collision object '{msg_id}'")
        self._notify("remove", obstacle.name, None)

    def _msg_to_obstacle(self, msg: CollisionObjectMessage) -> Obstacle | None:
        if msg.primitive_type is None or msg.pose is None or msg.dimensions is None:
            return None

        obstacle_type = _TYPE_MAP.get(msg.primitive_type.lower())
        if obstacle_type is None:
            logger.warning(f"Unknown primitive type: {msg.primitive_type}")
            return None

        return Obstacle(
            name=msg.id,
            obstacle_type=obstacle_type,
            pose=msg.pose,
            dimensions=tuple(msg.dimensions),
            color=msg.color,
            source="static",
        )

    def on_detections(self, detections: list[DetectedObject], now: float | None = None) -> None:
        """Handle perception detection results.

        Adds or moves an obstacle per detection, then drops detections that
        have not been seen for longer than ``detection_timeout``. All changes
        are published as a single WorldModel revision.

        Args:
            detections: Detections from the current perception frame
            now: Timestamp of the frame (defaults to time.time())
        """
        if not self._running:
            return

        with self._lock:
            current_time = time.time() if now is None else now
            seen_ids: set[str] = set()
            upserts: list[Obstacle] = []
            added: list[Obstacle] = []

            for detection in detections:
                det_id = detection.object_id
                seen_ids.add(det_id)
                obstacle = self._detection_to_obstacle(detection)
                if det_id not in self._perception_objects:
                    added.append(obstacle)
                    logger.debug(f"Added perception object '{det_id}'")
                self._perception_objects[det_id] = obstacle
                self._perception_timestamps[det_id] = current_time
                upserts.append(obstacle)

            stale = self._collect_stale_detections(current_time, seen_ids)
            if upserts or stale:
                self._world_model.update_from_sensors(
                    obstacles=upserts, removed=[o.name for o in stale]
                )

            for obstacle in added:
                self._notify("add", obstacle.name, obstacle)
            for obstacle in stale:
                self._notify("remove", obstacle.name, None)

    def _detection_to_obstacle(self, detection: DetectedObject) -> Obstacle:
        center = detection.center
        return Obstacle(
            name=f"detection_{detection.object_id}",
            obstacle_type=ObstacleType.BOX,
            pose=PoseStamped(position=center.position, orientation=center.orientation),
            dimensions=tuple(detection.size),
            color=(0.2, 0.8, 0.2, 0.6),  # Green for perception objects
            source="perception",
        )

    def _collect_stale_detections(self, current_time: float, seen_ids: set[str]) -> list[Obstacle]:
        """Forget detections that haven't been seen recently and return their obstacles."""
        stale_ids = [
            det_id
            for det_id, timestamp in self._perception_timestamps.items()
            if det_id not in seen_ids and current_time - timestamp > self._detection_timeout
        ]
        stale: list[Obstacle] = []
        for det_id in stale_ids:
            stale.append(self._perception_objects.pop(det_id))
            del self._perception_timestamps[det_id]
            logger.debug(f"Removed stale perception object '{det_id}'")
        return stale

    def add_static_obstacle(
        self,
        name: str,
        obstacle_type: str,
        pose: PoseStamped,
        dimensions: tuple[float, ...],
        color: tuple[float, float, float, float] = (0.8, 0.2, 0.2, 0.8),
    ) -> bool:
        """Manually add a static obstacle. Returns True if it was added."""
        msg = CollisionObjectMessage(
            id=name,
            operation="add",
            primitive_type=obstacle_type,
            pose=pose,
            dimensions=dimensions,
            color=color,
        )
        self.on_collision_object(msg)
        return name in self._collision_objects

    def remove_static_obstacle(self, name: str) -> bool:
        """Remove a static obstacle by name."""
        if name not in self._collision_objects:
            return False
        self.on_collision_object(CollisionObjectMessage(id=name, operation="remove"))
        return True

    def clear_perception_obstacles(self) -> int:
        """Remove all perception obstacles. Returns how many were removed."""
        with self._lock:
            names = [o.name for o in self._perception_objects.values()]
            self._perception_objects.clear()
            self._perception_timestamps.clear()
            if names:
                self._world_model.update_from_sensors(removed=names)
        for name in names:
            self._notify("remove", name, None)
        return len(names)

    def clear_all_obstacles(self) -> None:
        """Drop every static and perception obstacle in one revision."""
        with self._lock:
            names = [o.name for o in self._collision_objects.values()]
            names += [o.name for o in self._perception_objects.values()]
            self._collision_objects.clear()
            self._perception_objects.clear()
            self._perception_timestamps.clear()
            if names:
                self._world_model.update_from_sensors(removed=names)

    def get_obstacle_count(self) -> int:
        with self._lock:
            return len(self._collision_objects) + len(self._perception_objects)

    def add_obstacle_callback(self, callback: Callable[[str, str, Obstacle | None], None]) -> None:
        """Add callback for obstacle changes.

        Args:
            callback: Function called with (operation, obstacle_name, obstacle)
                     where operation is "add", "update", or "remove"
        """
        self._obstacle_callbacks.append(callback)

    def _notify(self, operation: str, name: str, obstacle: Obstacle | None) -> None:
        for callback in self._obstacle_callbacks:
            try:
                callback(operation, name, obstacle)
            except Exception as e:
                logger.error(f"Obstacle callback error: {e}")
