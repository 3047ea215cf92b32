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

import inspect
import types
from typing import Literal, Optional, Union, get_args, get_origin

from rich.console import Console
from rich.table import Table
import typer

from armflow.core.global_config import GlobalConfig
from armflow.manipulation.pick_and_place import PickAndPlaceConfig, PickAndPlaceModule
from armflow.manipulation.planning.spec import ExecutionResult, ExecutionStatus, MotionPlanResult
from armflow.msgs.geometry_msgs import PoseStamped, Quaternion, Vector3
from armflow.msgs.sensor_msgs import JointState

main = typer.Typer()
console = Console()

# Demo target from the original pick-and-place flow, tool pointing down
DEMO_POSITION = (0.5, 0.0, 0.75)
DEMO_ORIENTATION = (1.0, 0.0, 0.0, 0.0)
DEMO_JOINT_GOAL = [0.3, -0.5, 0.0, -2.0, 0.0, 1.6, 0.785]

_STATUS_COLORS = {
    ExecutionStatus.PENDING: "yellow",
    ExecutionStatus.RUNNING: "blue",
    ExecutionStatus.SUCCEEDED: "green",
    ExecutionStatus.FAILED: "red",
    ExecutionStatus.PREEMPTED: "magenta",
    ExecutionStatus.TIMEOUT: "red",
}


def create_dynamic_callback():
    fields = GlobalConfig.model_fields

    params = [
        inspect.Parameter("ctx", inspect.Parameter.POSITIONAL_OR_KEYWORD, annotation=typer.Context),
    ]

    for field_name, field_info in fields.items():
        field_type = field_info.annotation

        # Optional[T] -> T
        if get_origin(field_type) in (Union, types.UnionType):
            inner_types = [t for t in get_args(field_type) if t is not type(None)]
            actual_type = inner_types[0] if len(inner_types) == 1 else field_type
        else:
            actual_type = field_type
        if get_origin(actual_type) is Literal:
            actual_type = str

        cli_option_name = field_name.replace("_", "-")

        if actual_type is bool:
            param = inspect.Parameter(
                field_name,
                inspect.Parameter.KEYWORD_ONLY,
                default=typer.Option(
                    None,  # None means use the model's default if not provided
                    f"--{cli_option_name}/--no-{cli_option_name}",
                    help=f"Override {field_name} in GlobalConfig",
                ),
                annotation=Optional[bool],  # noqa: UP045
            )
        else:
            param = inspect.Parameter(
                field_name,
                inspect.Parameter.KEYWORD_ONLY,
                default=typer.Option(
                    None,
                    f"--{cli_option_name}",
                    help=f"Override {field_name} in GlobalConfig",
                ),
                annotation=Optional[actual_type],  # noqa: UP045
            )
        params.append(param)

    def callback(**kwargs) -> None:
        ctx = kwargs.pop("ctx")
        overrides = {k: v for k, v in kwargs.items() if v is not None}
        ctx.obj = GlobalConfig(**overrides)

    callback.__signature__ = inspect.Signature(params)

    return callback


main.callback()(create_dynamic_callback())


def _print_plan(result: MotionPlanResult) -> None:
    table = Table(title="Motion plan")
    table.add_column("Field")
    table.add_column("Value")
    color = "green" if result.is_success() else "red"
    table.add_row("status", f"[{color}]{result.status.name}[/{color}]")
    table.add_row("message", result.message)
    table.add_row("planning time", f"{result.planning_time:.3f}s")
    table.add_row("world revision", str(result.revision))
    if result.trajectory is not None:
        table.add_row("waypoints", str(result.trajectory.num_points))
        table.add_row("duration", f"{result.trajectory.duration:.3f}s")
    if result.manipulability is not None:
        measures = result.manipulability
        table.add_row("min eigenvalue", f"{measures.min_eigen_value:.4g}")
        table.add_row("manipulability", "pass" if measures.pass_ else "fail")
    console.print(table)


def _print_execution(result: ExecutionResult) -> None:
    color = _STATUS_COLORS.get(result.status, "white")
    console.print(
        f"Status: [{color}]{result.status.as_string()}[/{color}] "
        f"({result.duration:.2f}s) {result.diagnostic}"
    )


def _run_demo(module: PickAndPlaceModule, plan: MotionPlanResult, confirm: bool) -> None:
    _print_plan(plan)
    if not plan.is_success():
        raise typer.Exit(code=1)
    module.visualize_plan(plan)

    if confirm and not typer.confirm("Execute the planned trajectory?", default=True):
        console.print("Execution skipped")
        return

    subscription = module.execution_coordinator.observe_status().subscribe(
        lambda status: console.print(
            f"  -> [{_STATUS_COLORS[status]}]{status.as_string()}[/{_STATUS_COLORS[status]}]"
        )
    )
    try:
        result = module.execute()
    finally:
        subscription.dispose()
    _print_execution(result)
    if not result.is_success():
        raise typer.Exit(code=1)


def _start_module(config: GlobalConfig) -> PickAndPlaceModule:
    module = PickAndPlaceModule(PickAndPlaceConfig.from_global_config(config))
    module.start()
    names = module.robot_model.joint_names()
    module.on_joint_state(JointState(name=names, position=[0.0] * len(names)))
    return module


@main.command()
def demo(
    ctx: typer.Context,
    confirm: bool = typer.Option(
        True, "--confirm/--no-confirm", help="Ask before executing the plan"
    ),
) -> None:
    """Plan to the demo pose from the zero configuration and execute it."""
    config: GlobalConfig = ctx.obj
    module = _start_module(config)
    try:
        pose = PoseStamped(
            position=Vector3(*DEMO_POSITION),
            orientation=Quaternion(*DEMO_ORIENTATION),
            frame_id=module.config.robot.base_link,
        )
        _run_demo(module, module.plan_to_pose(pose), confirm)
    finally:
        module.stop()


@main.command()
def joint_demo(
    ctx: typer.Context,
    confirm: bool = typer.Option(
        True, "--confirm/--no-confirm", help="Ask before executing the plan"
    ),
) -> None:
    """Plan to a fixed joint configuration from the zero configuration and execute it."""
    config: GlobalConfig = ctx.obj
    module = _start_module(config)
    try:
        _run_demo(module, module.plan_to_joints(DEMO_JOINT_GOAL), confirm)
    finally:
        module.stop()


@main.command()
def show_config(ctx: typer.Context) -> None:
    """Show current configuration status."""
    config: GlobalConfig = ctx.obj

    for field_name, value in config.model_dump().items():
        typer.echo(f"{field_name}: {value}")


if __name__ == "__main__":
    main()
