#!/usr/bin/env python3
"""
Simple demo of the landmark residual on a circular planar trajectory.
"""

import logging

import numpy as np
from pathlib import Path

from landmark_residual.common.config import load_tool_config, save_config
from landmark_residual.common.data_structures import (
    LandmarkObservation, LandmarkPoseEstimate, NodeSpec2D, Rigid3
)
from landmark_residual.common.json_io import LandmarkProblem, save_problem
from landmark_residual.estimation import (
    check_gradients, create_autodiff_cost_function, initial_landmark_pose
)
from landmark_residual.utils.math_utils import quaternion_from_rotation_vector, quaternion_multiply


def create_circle_nodes(radius=2.0, duration=5.0, dt=0.5):
    """Planar nodes on a circle, facing the tangent direction."""
    omega = 2 * np.pi / duration
    nodes = []
    for t in np.arange(0.0, duration + 1e-9, dt):
        x = radius * np.cos(omega * t)
        y = radius * np.sin(omega * t)
        yaw = omega * t + np.pi / 2
        nodes.append(NodeSpec2D(time=t, pose=np.array([x, y, yaw])))
    return nodes


def main():
    config_path = Path(__file__).parent.parent / "config" / "landmark_cost.yaml"
    config = load_tool_config(config_path)
    logging.basicConfig(level=config.log_level)

    nodes = create_circle_nodes()
    prev_node, next_node = nodes[3], nodes[4]

    # A landmark seen 1.5 m ahead and 0.5 m to the left, between the two nodes
    observation = LandmarkObservation(
        time=0.5 * (prev_node.time + next_node.time) + 0.1,
        landmark_to_tracking_transform=Rigid3(
            rotation=quaternion_from_rotation_vector([0.0, 0.0, 0.3]),
            translation=[1.5, 0.5, 0.0]
        ),
        translation_weight=10.0,
        rotation_weight=5.0
    )

    seed = initial_landmark_pose(observation, prev_node, next_node, config.cost)
    print(f"Seeded landmark translation: {seed.translation}")

    # Move the landmark away from its seeded pose
    landmark = LandmarkPoseEstimate(
        rotation=quaternion_multiply(seed.rotation, quaternion_from_rotation_vector([0.0, 0.05, 0.1])),
        translation=seed.translation + np.array([0.1, -0.05, 0.02])
    )
    problem = LandmarkProblem(observation, prev_node, next_node, landmark)

    cost = create_autodiff_cost_function(observation, prev_node, next_node, config.cost)
    print(f"Cost function: {cost}")
    print(f"Interpolation parameter: {cost.interpolation_parameter:.3f}")

    result = cost.evaluate(problem.parameter_blocks())
    print(f"Residual: {np.array2string(result.residuals, precision=4)}")
    print(f"Cost: {result.cost:.6f}")
    print(f"Stacked Jacobian shape: {result.stacked_jacobian().shape}")

    check = check_gradients(cost, problem.parameter_blocks(), config.gradient_check)
    print(f"Gradient check passed: {check.passed}")
    print(f"Max abs error per block: {[f'{e:.1e}' for e in check.max_abs_error]}")

    output = save_problem(problem, Path("output") / "landmark_problem.json")
    save_config(config, output.parent / "landmark_config.yaml")
    print(f"Snapshot and config written to {output.parent}")
    print(f"Re-evaluate with: landmark-residual evaluate {output} -c {output.parent / 'landmark_config.yaml'}")


if __name__ == "__main__":
    main()
