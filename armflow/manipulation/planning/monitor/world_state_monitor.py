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
World State Monitor

Forwards joint state messages into a WorldModel, translating controller
joint names into model joint names.

Example:
    monitor = WorldStateMonitor(world_model, config.joint_names, config.joint_name_mapping)
    monitor.start()
    monitor.on_joint_state(joint_state_msg)  # Called by subscriber
    monitor.subscribe(joint_state_observable)  # Or attach to a stream
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from reactivex.disposable import CompositeDisposable

from armflow.msgs.sensor_msgs import JointState
from armflow.utils.logging_config import setup_logger

if TYPE_CHECKING:
    from collections.abc import Callable

    from reactivex import Observable
    from reactivex.abc import DisposableBase

    from armflow.manipulation.planning.monitor.world_model import WorldModel

logger = setup_logger()


class WorldStateMonitor:
    """Syncs joint state messages to a WorldModel.

    ## Thread Safety

    on_joint_state() can be called from any thread; the WorldModel serializes
    writers. Errors are logged and never propagate to the transport.
    """

    def __init__(
        self,
        world_model: WorldModel,
        joint_names: list[str],
        joint_name_mapping: dict[str, str] | None = None,
    ):
        """Create a world state monitor.

        Args:
            world_model: WorldModel to push state into
            joint_names: Ordered list of joint names (model names)
            joint_name_mapping: Maps controller joint names to model joint names.
                Example: {"left_joint1": "joint1"} means messages with "left_joint1"
                will be mapped to model "joint1". If None, names must match exactly.
        """
        self._world_model = world_model
        self._joint_names = list(joint_names)
        self._joint_name_mapping = dict(joint_name_mapping or {})
        self._running = False
        self._msg_count = 0
        self._disposables = CompositeDisposable()

        # Callbacks: called with the translated JointState after each update
        self._state_callbacks: list[Callable[[JointState], None]] = []

    def start(self) -> None:
        """Start the state monitor."""
        self._running = True
        logger.info("World state monitor started", joints=len(self._joint_names))

    def stop(self) -> None:
        """Stop the state monitor and drop stream subscriptions."""
        self._running = False
        self._disposables.dispose()
        self._disposables = CompositeDisposable()
        logger.info("World state monitor stopped")

    @property
    def message_count(self) -> int:
        return self._msg_count

    def subscribe(self, joint_states: Observable[JointState]) -> DisposableBase:
        """Feed every JointState emitted by ``joint_states`` into the model."""
        subscription = joint_states.subscribe(
            on_next=self.on_joint_state,
            on_error=lambda e: logger.error(f"Joint state stream error: {e}"),
        )
        self._disposables.add(subscription)
        return subscription

    def on_joint_state(self, msg: JointState) -> None:
        """Handle incoming joint state message.

        Joints the model does not know about are dropped by the WorldModel;
        partial messages are merged.

        Args:
            msg: JointState message with joint names and positions
        """
        if not self._running:
            return

        try:
            translated = self._translate(msg)
            if not translated.name:
                logger.debug(
                    "[WorldStateMonitor] No known joints in message",
                    received=list(msg.name),
                )
                return

            self._world_model.update_from_sensors(joint_state=translated)
            self._msg_count += 1

            for callback in self._state_callbacks:
                try:
                    callback(translated)
                except Exception as e:
                    logger.error(f"State callback error: {e}")

        except Exception as e:
            logger.exception(f"[WorldStateMonitor] Unexpected exception in on_joint_state: {e}")

    def _translate(self, msg: JointState) -> JointState:
        """Rename controller joints to model joints, keeping only known joints."""
        known = set(self._joint_names)
        names: list[str] = []
        positions: list[float] = []
        velocities: list[float] = []
        efforts: list[float] = []
        has_velocity = len(msg.velocity) == len(msg.name)
        has_effort = len(msg.effort) == len(msg.name)

        for i, ctrl_name in enumerate(msg.name):
            model_name = self._joint_name_mapping.get(ctrl_name, ctrl_name)
            if model_name not in known or i >= len(msg.position):
                continue
            names.append(model_name)
            positions.append(msg.position[i])
            if has_velocity:
                velocities.append(msg.velocity[i])
            if has_effort:
                efforts.append(msg.effort[i])

        return JointState(
            name=names,
            position=positions,
            velocity=velocities,
            effort=efforts,
            ts=msg.ts,
        )

    def add_state_callback(self, callback: Callable[[JointState], None]) -> None:
        """Register a callback called with each translated JointState."""
        self._state_callbacks.append(callback)

    def remove_state_callback(self, callback: Callable[[JointState], None]) -> None:
        if callback in self._state_callbacks:
            self._state_callbacks.remove(callback)
