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

"""Pick-and-place module: plan, visualize and execute arm motions."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
import threading
from typing import TYPE_CHECKING, Any

from armflow.control.execution_coordinator import ExecutionCoordinator
from armflow.core.global_config import GlobalConfig
from armflow.manipulation.planning.coordinator import PlanningCoordinator
from armflow.manipulation.planning.factory import (
    create_execution_backend,
    create_planner,
    create_robot_model,
    create_visualization_sink,
)
from armflow.manipulation.planning.goal_builder import GoalBuilder
from armflow.manipulation.planning.kinematics.manipulability import ManipulabilityAnalyzer
from armflow.manipulation.planning.monitor import (
    WorldModel,
    WorldObstacleMonitor,
    WorldStateMonitor,
)
from armflow.manipulation.planning.spec import (
    ExecutionInProgress,
    ExecutionResult,
    ExecutionStatus,
    ManipulabilityMode,
    MotionPlanRequest,
    MotionPlanResult,
    PlanningStatus,
    RobotModelConfig,
    StateUnavailable,
    add_planner_configuration_settings,
    panda_robot_config,
)
from armflow.manipulation.planning.spec.config import (
    PANDA_READY_POSITIONS,
    log_planner_config_map,
    parse_planner_id,
)
from armflow.utils.logging_config import setup_logger
from armflow.visualization.sink import SafeVisualizationSink

if TYPE_CHECKING:
    from collections.abc import Sequence

    from armflow.manipulation.planning.kinematics.serial_chain import SerialChainModel
    from armflow.manipulation.planning.spec import (
        ExecutionBackendSpec,
        MotionGoal,
        PlannerConfigurationMap,
        PlannerSpec,
        VisualizationSinkSpec,
    )
    from armflow.msgs.geometry_msgs import PoseStamped
    from armflow.msgs.sensor_msgs import JointState
    from armflow.msgs.trajectory_msgs import JointTrajectory

logger = setup_logger()


class PickAndPlaceState(Enum):
    """State machine for the pick-and-place module."""

    IDLE = 0
    PLANNING = 1
    EXECUTING = 2
    COMPLETED = 3
    FAULT = 4


@dataclass
class PickAndPlaceConfig:
    """Configuration for PickAndPlaceModule."""

    robot: RobotModelConfig = field(default_factory=panda_robot_config)
    planner_name: str = "interpolation"  # "interpolation" or "rrt_connect"
    planner_id: str = "panda_arm[EST]"
    planner_settings: dict[str, str] = field(
        default_factory=lambda: {"type": "EST", "range": "0.2", "resolution": "0.1"}
    )
    ik_seeds: list[list[float]] = field(default_factory=lambda: [list(PANDA_READY_POSITIONS)])
    planning_timeout: float = 5.0
    execution_timeout: float | None = None
    velocity_scaling: float = 0.5
    acceleration_scaling: float = 0.5
    position_tolerance: float = 0.01
    orientation_tolerance: float = 0.01
    manipulability_threshold: float = 1e-6
    manipulability_mode: str = ManipulabilityMode.MIN_EIGENVALUE.value
    gate_on_manipulability: bool = False
    viewer_backend: str = "logging"
    simulation_time_scale: float = 1.0
    detection_timeout: float = 2.0

    @classmethod
    def from_global_config(
        cls, global_config: GlobalConfig | None = None, **overrides: Any
    ) -> PickAndPlaceConfig:
        """Take defaults from GlobalConfig (ARMFLOW_* environment / .env)."""
        g = global_config or GlobalConfig()
        params: dict[str, Any] = {
            "planner_name": g.planner_name,
            "planner_id": g.planner_id,
            "planning_timeout": g.planning_timeout,
            "execution_timeout": g.execution_timeout,
            "velocity_scaling": g.velocity_scaling,
            "acceleration_scaling": g.acceleration_scaling,
            "manipulability_threshold": g.manipulability_threshold,
            "manipulability_mode": g.manipulability_mode,
            "gate_on_manipulability": g.gate_on_manipulability,
            "viewer_backend": g.viewer_backend,
            "simulation_time_scale": g.simulation_time_scale,
        }
        params.update(overrides)
        return cls(**params)


def log_joint_trajectory(trajectory: JointTrajectory, label: str = "trajectory") -> None:
    """Log a trajectory summary, and every waypoint at debug level."""
    logger.info(
        f"Joint trajectory '{label}'",
        joints=list(trajectory.joint_names),
        points=trajectory.num_points,
        duration=round(trajectory.duration, 3),
    )
    for i, point in enumerate(trajectory.points):
        logger.debug(
            f"  [{i}] t={point.time_from_start:.3f}",
            positions=[round(p, 4) for p in point.positions],
            velocities=[round(v, 4) for v in point.velocities],
        )


class PickAndPlaceModule:
    """Plan / visualize / execute workflow for one arm.

    Owns the world model and its monitors, the goal builder, the planning and
    execution coordinators and the visualization sink. Collaborators default
    to the factories' implementations and can be injected.

    State machine:
        IDLE -> PLANNING -> COMPLETED | FAULT
        COMPLETED -> EXECUTING -> COMPLETED | FAULT
        FAULT -> IDLE via reset()

    Example:
        module = PickAndPlaceModule(PickAndPlaceConfig())
        module.start()
        module.on_joint_state(current_state)
        result, status = module.plan_and_execute_pose(target_pose)
    """

    def __init__(
        self,
        config: PickAndPlaceConfig | None = None,
        *,
        robot_model: SerialChainModel | None = None,
        planner: PlannerSpec | None = None,
        backend: ExecutionBackendSpec | None = None,
        sink: VisualizationSinkSpec | None = None,
    ) -> None:
        self.config = config or PickAndPlaceConfig()
        robot_config = self.config.robot

        # State machine
        self._state = PickAndPlaceState.IDLE
        self._lock = threading.Lock()
        self._error_message = ""

        # World and its feeds
        self._robot_model = robot_model or create_robot_model(robot_config)
        self._world_model = WorldModel(robot_config.joint_names)
        self._state_monitor = WorldStateMonitor(
            self._world_model,
            robot_config.joint_names,
            joint_name_mapping=robot_config.joint_name_mapping,
        )
        self._obstacle_monitor = WorldObstacleMonitor(
            self._world_model, detection_timeout=self.config.detection_timeout
        )
        self._state_monitor.add_state_callback(self._on_state_update)

        # Planning
        self._planner_configs: PlannerConfigurationMap = {}
        if self.config.planner_settings:
            group, _ = parse_planner_id(self.config.planner_id)
            add_planner_configuration_settings(
                self._planner_configs,
                group or robot_config.group_name,
                self.config.planner_settings,
            )
        log_planner_config_map(self._planner_configs)

        self._goal_builder = GoalBuilder(self._robot_model)
        self._planner = planner or create_planner(
            self.config.planner_name,
            robot_model=self._robot_model,
            ik_seeds=self.config.ik_seeds,
            planner_configs=self._planner_configs,
        )
        self._manipulability = ManipulabilityAnalyzer(
            threshold=self.config.manipulability_threshold,
            mode=ManipulabilityMode(self.config.manipulability_mode),
        )
        self._planning = PlanningCoordinator(
            self._world_model,
            self._planner,
            self._robot_model,
            manipulability=self._manipulability,
            gate_on_manipulability=self.config.gate_on_manipulability,
        )

        # Execution
        self._backend = backend or create_execution_backend(
            "simulated",
            controllers=robot_config.controller_names,
            time_scale=self.config.simulation_time_scale,
            joint_state_callback=self._state_monitor.on_joint_state,
        )
        self._execution = ExecutionCoordinator(
            self._backend, default_timeout=self.config.execution_timeout
        )

        if sink is None:
            sink = create_visualization_sink(
                self.config.viewer_backend, robot_model=self._robot_model
            )
        elif not isinstance(sink, SafeVisualizationSink):
            sink = SafeVisualizationSink(sink)
        self._sink: VisualizationSinkSpec = sink

        # Last plan for the plan/visualize/execute workflow
        self._last_plan: MotionPlanResult | None = None
        self._state_refresh_needed = False

        logger.info(
            "PickAndPlaceModule initialized",
            robot=robot_config.name,
            planner=self._planner.get_name(),
            planner_id=self.config.planner_id,
        )

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def start(self) -> None:
        self._state_monitor.start()
        self._obstacle_monitor.start()
        logger.info("PickAndPlaceModule started")

    def stop(self) -> None:
        if self._state == PickAndPlaceState.EXECUTING:
            self._execution.preempt("Module stopping")
        self._state_monitor.stop()
        self._obstacle_monitor.stop()
        self._execution.dispose()
        logger.info("PickAndPlaceModule stopped")

    # =========================================================================
    # Accessors
    # =========================================================================

    @property
    def robot_model(self) -> SerialChainModel:
        return self._robot_model

    @property
    def world_model(self) -> WorldModel:
        return self._world_model

    @property
    def state_monitor(self) -> WorldStateMonitor:
        return self._state_monitor

    @property
    def obstacle_monitor(self) -> WorldObstacleMonitor:
        return self._obstacle_monitor

    @property
    def goal_builder(self) -> GoalBuilder:
        return self._goal_builder

    @property
    def planning_coordinator(self) -> PlanningCoordinator:
        return self._planning

    @property
    def execution_coordinator(self) -> ExecutionCoordinator:
        return self._execution

    @property
    def sink(self) -> VisualizationSinkSpec:
        return self._sink

    @property
    def last_plan(self) -> MotionPlanResult | None:
        return self._last_plan

    @property
    def state_refresh_needed(self) -> bool:
        """True after an execution until a new joint state has been received."""
        return self._state_refresh_needed

    def get_state(self) -> str:
        """Get current state name."""
        return self._state.name

    def get_error(self) -> str:
        """Get last error message, or empty string."""
        return self._error_message

    def has_planned_path(self) -> bool:
        return self._last_plan is not None and self._last_plan.is_success()

    def clear_planned_path(self) -> None:
        self._last_plan = None

    # =========================================================================
    # Inputs
    # =========================================================================

    def on_joint_state(self, msg: JointState) -> None:
        """Feed a joint state from the controller."""
        self._state_monitor.on_joint_state(msg)

    def _on_state_update(self, _msg: JointState) -> None:
        if self._state != PickAndPlaceState.EXECUTING:
            self._state_refresh_needed = False

    # =========================================================================
    # Planning
    # =========================================================================

    def _begin_planning(self) -> bool:
        with self._lock:
            if self._state not in (PickAndPlaceState.IDLE, PickAndPlaceState.COMPLETED):
                logger.warning(f"Cannot plan: state is {self._state.name}")
                return False
            self._state = PickAndPlaceState.PLANNING
        return True

    def _fail(self, msg: str) -> None:
        """Set FAULT state with error message."""
        logger.warning(msg)
        self._state = PickAndPlaceState.FAULT
        self._error_message = msg

    def build_request(
        self,
        goals: Sequence[MotionGoal],
        start_state: JointState | None = None,
    ) -> MotionPlanRequest:
        """Request for ``goals`` with the configured planner and scaling."""
        return MotionPlanRequest(
            group_name=self.config.robot.group_name,
            goals=tuple(goals),
            planner_id=self.config.planner_id,
            allowed_planning_time=self.config.planning_timeout,
            max_velocity_scaling_factor=self.config.velocity_scaling,
            max_acceleration_scaling_factor=self.config.acceleration_scaling,
            start_state=start_state,
        )

    def plan(self, request: MotionPlanRequest) -> MotionPlanResult:
        """Plan ``request`` and keep the result for visualize_plan() / execute().

        A result with PLANNER_ERROR is returned when the module is busy.
        """
        if not self._begin_planning():
            return MotionPlanResult.failure(
                PlanningStatus.PLANNER_ERROR, f"Cannot plan while {self._state.name}"
            )
        if self._state_refresh_needed:
            logger.warning("Planning from the state observed before the last execution")

        try:
            result = self._planning.plan(request)
        except StateUnavailable as e:
            self._fail(f"No joint state: {e}")
            return MotionPlanResult.failure(PlanningStatus.INVALID_START, str(e))
        except Exception as e:
            self._fail(f"Planning error: {e}")
            raise

        if not result.is_success():
            self._last_plan = None
            self._fail(f"Planning failed: {result.status.name}: {result.message}")
            return result

        assert result.trajectory is not None
        self._last_plan = result
        log_joint_trajectory(result.trajectory, "planned_path")
        self._state = PickAndPlaceState.COMPLETED
        return result

    def plan_to_pose(
        self,
        pose: PoseStamped,
        link_name: str | None = None,
        position_tolerance: float | Sequence[float] | None = None,
        orientation_tolerance: float | Sequence[float] | None = None,
    ) -> MotionPlanResult:
        """Plan the end effector (or ``link_name``) to ``pose``.

        Raises:
            InvalidGoal: bad link name or tolerances
        """
        goal = self._goal_builder.build_pose_goal(
            link_name or self._robot_model.end_effector_link,
            pose,
            self.config.position_tolerance if position_tolerance is None else position_tolerance,
            self.config.orientation_tolerance
            if orientation_tolerance is None
            else orientation_tolerance,
        )
        logger.info(f"Planning to pose {pose}", link=goal.link_name)
        return self.plan(self.build_request([goal]))

    def plan_to_joints(
        self,
        joints: Mapping[str, float] | Sequence[float],
        tolerance: float = 1e-3,
    ) -> MotionPlanResult:
        """Plan to a joint configuration.

        ``joints`` is either a name -> value mapping (a subset of the joints is
        allowed) or a full list in model joint order.

        Raises:
            UnknownJoint: a joint is not part of the robot model
            InvalidGoal: empty or non-finite target
            ValueError: a list with the wrong number of values
        """
        if isinstance(joints, Mapping):
            values = dict(joints)
        else:
            names = self._robot_model.joint_names()
            if len(joints) != len(names):
                raise ValueError(f"Expected {len(names)} joint values, got {len(joints)}")
            values = dict(zip(names, joints, strict=True))
        goal = self._goal_builder.build_joint_goal(values, tolerance=tolerance)
        logger.info("Planning to joints", target={k: round(v, 3) for k, v in values.items()})
        return self.plan(self.build_request([goal]))

    def plan_to_obstacle(
        self, obstacle_name: str, approach_offset: float = 0.1
    ) -> MotionPlanResult:
        """Plan to a pose above a known (e.g. perceived) obstacle.

        Raises:
            KeyError: no obstacle with that name
            StateUnavailable: no robot state received yet
        """
        with self._world_model.acquire_read_lock() as snapshot:
            obstacle = snapshot.obstacles[obstacle_name]
        goal = self._goal_builder.build_pose_goal_from_obstacle(
            self._robot_model.end_effector_link,
            obstacle,
            approach_offset=approach_offset,
            position_tolerance=self.config.position_tolerance,
            orientation_tolerance=self.config.orientation_tolerance,
        )
        logger.info(f"Planning above obstacle '{obstacle_name}'")
        return self.plan(self.build_request([goal]))

    # =========================================================================
    # Visualization
    # =========================================================================

    def visualize_plan(self, result: MotionPlanResult | None = None) -> bool:
        """Publish planned path, raw path, goal state and obstacle markers.

        Returns False if there is no successful plan to show.
        """
        result = result or self._last_plan
        if result is None or not result.is_success() or result.trajectory is None:
            logger.warning("No planned path to visualize")
            return False

        trajectory = result.trajectory
        self._sink.publish_trajectory(trajectory, "planned_path")
        if result.raw_trajectory is not None and not result.raw_trajectory.is_empty():
            self._sink.publish_trajectory(result.raw_trajectory, "raw_path")
        self._sink.publish_goal_state(
            list(trajectory.joint_names), list(trajectory.points[-1].positions)
        )
        try:
            with self._world_model.acquire_read_lock() as snapshot:
                positions = [obs.position().tolist() for obs in snapshot.obstacles.values()]
        except StateUnavailable:
            positions = []
        if positions:
            self._sink.publish_obstacle_markers(positions)
        return True

    # =========================================================================
    # Execution
    # =========================================================================

    def execute(self, timeout: float | None = None) -> ExecutionResult:
        """Execute the last planned trajectory.

        The world model keeps the pre-execution state until the controller
        reports again; state_refresh_needed stays True until then.

        Raises:
            ExecutionInProgress: if an execution is already running
        """
        with self._lock:
            if self._state == PickAndPlaceState.EXECUTING:
                raise ExecutionInProgress("PickAndPlaceModule is already executing")
            plan = self._last_plan
            ready = self._state == PickAndPlaceState.COMPLETED
            if plan is None or plan.trajectory is None or not ready:
                message = f"No planned trajectory to execute (state {self._state.name})"
                logger.warning(message)
                return ExecutionResult(status=ExecutionStatus.FAILED, diagnostic=message)
            self._state = PickAndPlaceState.EXECUTING

        try:
            result = self._execution.execute(plan.trajectory, timeout=timeout)
        except Exception as e:
            self._fail(f"Execution error: {e}")
            raise
        finally:
            self._state_refresh_needed = True

        logger.info(
            "Execution finished",
            status=result.status.as_string(),
            diagnostic=result.diagnostic,
        )
        if not result.is_success():
            self._fail(f"Execution {result.status.as_string()}: {result.diagnostic}")
            return result

        # The executed plan no longer starts at the current state
        self._last_plan = None
        self._state = PickAndPlaceState.COMPLETED
        return result

    def plan_and_execute(
        self, request: MotionPlanRequest, timeout: float | None = None
    ) -> tuple[MotionPlanResult, ExecutionResult | None]:
        """Plan, visualize and execute. Execution is skipped if planning fails."""
        result = self.plan(request)
        if not result.is_success():
            return result, None
        self.visualize_plan(result)
        return result, self.execute(timeout=timeout)

    def plan_and_execute_pose(
        self, pose: PoseStamped, timeout: float | None = None
    ) -> tuple[MotionPlanResult, ExecutionResult | None]:
        result = self.plan_to_pose(pose)
        if not result.is_success():
            return result, None
        self.visualize_plan(result)
        return result, self.execute(timeout=timeout)

    def cancel(self) -> bool:
        """Cancel current motion."""
        if self._state != PickAndPlaceState.EXECUTING:
            return False
        cancelled = self._execution.preempt("Cancelled by operator")
        if cancelled:
            logger.info("Motion cancelled")
        return cancelled

    def reset(self) -> bool:
        """Reset to IDLE state (fails if EXECUTING)."""
        if self._state == PickAndPlaceState.EXECUTING:
            return False
        self._state = PickAndPlaceState.IDLE
        self._error_message = ""
        return True
