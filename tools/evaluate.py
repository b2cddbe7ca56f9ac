"""
Evaluate landmark residuals stored in problem snapshots.
Prints residuals, cost and Jacobians, checks Jacobians numerically and seeds
landmark estimates.
"""

from pathlib import Path
from typing import Optional

import numpy as np
from rich.console import Console
from rich.table import Table

from landmark_residual.common.config import ResidualToolConfig
from landmark_residual.common.data_structures import LandmarkPoseEstimate
from landmark_residual.common.json_io import LandmarkProblem, load_problem, save_problem
from landmark_residual.estimation.gradient_checker import check_gradients
from landmark_residual.estimation.landmark_cost_function import (
    create_autodiff_cost_function, initial_landmark_pose
)

console = Console()

RESIDUAL_LABELS = ["t_x", "t_y", "t_z", "r_x", "r_y", "r_z"]


def _load(snapshot: Path, require_landmark: bool = True) -> Optional[LandmarkProblem]:
    """Load a snapshot, reporting problems on the console."""
    if not snapshot.exists():
        console.print(f"[red]✗ Error: Snapshot file not found: {snapshot}[/red]")
        return None

    try:
        problem = load_problem(snapshot)
    except (KeyError, ValueError) as e:
        console.print(f"[red]✗ Error loading snapshot: {e}[/red]")
        return None

    if require_landmark and problem.landmark is None:
        console.print("[red]✗ Error: Snapshot has no landmark estimate (run init-landmark first)[/red]")
        return None
    return problem


def _matrix_table(title: str, matrix: np.ndarray) -> Table:
    table = Table(title=title)
    table.add_column("Residual", style="cyan")
    for column in range(matrix.shape[1]):
        table.add_column(str(column), justify="right")
    for label, row in zip(RESIDUAL_LABELS, matrix):
        table.add_row(label, *[f"{value: .6e}" for value in row])
    return table


def run_evaluate(
    snapshot: Path,
    config: Optional[ResidualToolConfig] = None,
    show_jacobians: bool = False
) -> int:
    """
    Evaluate the landmark residual of a snapshot.

    Args:
        snapshot: Path to problem snapshot JSON file
        config: Tool configuration, defaults when None
        show_jacobians: Print the Jacobian of every parameter block

    Returns:
        Exit code, 0 on success
    """
    problem = _load(snapshot)
    if problem is None:
        return 1

    config = config or ResidualToolConfig()
    try:
        cost_function = create_autodiff_cost_function(
            problem.observation, problem.prev_node, problem.next_node, config.cost)
    except ValueError as e:
        console.print(f"[red]✗ Error building cost function: {e}[/red]")
        return 1

    result = cost_function.evaluate(problem.parameter_blocks(), compute_jacobians=show_jacobians)

    console.print(f"\n[bold]Landmark residual ({problem.dimension}D nodes)[/bold]")
    console.print(f"Interpolation parameter: {cost_function.interpolation_parameter:.6f}")

    table = Table(title="Residual")
    table.add_column("Component", style="cyan")
    table.add_column("Value", justify="right", style="yellow")
    for label, value in zip(RESIDUAL_LABELS, result.residuals):
        table.add_row(label, f"{value: .9e}")
    console.print(table)
    console.print(f"Cost (0.5 * |r|^2): [yellow]{result.cost:.9e}[/yellow]")

    if show_jacobians:
        for index, jacobian in enumerate(result.jacobians):
            console.print(_matrix_table(f"Jacobian block {index}", jacobian))

    return 0


def run_check_gradients(
    snapshot: Path,
    config: Optional[ResidualToolConfig] = None,
    step: Optional[float] = None,
    tolerance: Optional[float] = None
) -> int:
    """
    Compare automatic Jacobians of a snapshot against central differences.

    `step` and `tolerance` override the configured gradient check settings.

    Returns:
        Exit code, 0 if every block agrees within tolerance
    """
    problem = _load(snapshot)
    if problem is None:
        return 1

    config = config or ResidualToolConfig()
    check_config = config.gradient_check
    if step is not None:
        check_config = check_config.model_copy(update={"step": step})
    if tolerance is not None:
        check_config = check_config.model_copy(
            update={"relative_tolerance": tolerance, "absolute_tolerance": tolerance})

    try:
        cost_function = create_autodiff_cost_function(
            problem.observation, problem.prev_node, problem.next_node, config.cost)
    except ValueError as e:
        console.print(f"[red]✗ Error building cost function: {e}[/red]")
        return 1

    result = check_gradients(cost_function, problem.parameter_blocks(), check_config)

    table = Table(title="Gradient Check")
    table.add_column("Block", style="cyan")
    table.add_column("Size", justify="right")
    table.add_column("Max abs error", justify="right", style="yellow")
    for index, (size, error) in enumerate(zip(cost_function.parameter_block_sizes, result.max_abs_error)):
        table.add_row(str(index), str(size), f"{error:.3e}")
    console.print(table)

    if result.passed:
        console.print("[green]✓ Jacobians match finite differences[/green]")
        return 0
    for message in result.messages:
        console.print(f"[red]✗ {message}[/red]")
    return 1


def run_init_landmark(
    snapshot: Path,
    output: Optional[Path] = None,
    config: Optional[ResidualToolConfig] = None
) -> Optional[Path]:
    """
    Seed the landmark estimate from the interpolated trajectory and measurement.

    Args:
        snapshot: Path to problem snapshot JSON file
        output: Output file, defaults to overwriting the snapshot
        config: Tool configuration whose cost section sets the slerp threshold

    Returns:
        Path to written snapshot if successful, None if error
    """
    problem = _load(snapshot, require_landmark=False)
    if problem is None:
        return None

    config = config or ResidualToolConfig()
    try:
        pose = initial_landmark_pose(
            problem.observation, problem.prev_node, problem.next_node, config.cost)
    except ValueError as e:
        console.print(f"[red]✗ Error: {e}[/red]")
        return None

    problem.landmark = LandmarkPoseEstimate.from_rigid(pose)
    output_file = save_problem(problem, output or snapshot)

    console.print(f"[green]✓ Landmark seeded and written to {output_file}[/green]")
    console.print(f"  rotation:    {np.array2string(pose.rotation, precision=6)}")
    console.print(f"  translation: {np.array2string(pose.translation, precision=6)}")
    return output_file
