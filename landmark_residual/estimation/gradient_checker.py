"""
Finite-difference verification of automatically differentiated Jacobians.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence

import numpy as np

from landmark_residual.common.config import GradientCheckConfig
from landmark_residual.estimation.base_cost_function import AutoDiffCostFunction

logger = logging.getLogger(__name__)


def numerical_jacobian(
    f: Callable[[np.ndarray], np.ndarray],
    x: np.ndarray,
    epsilon: float = 1e-6
) -> np.ndarray:
    """
    Compute Jacobian numerically using central differences.

    Args:
        f: Function that takes x and returns y
        x: Point at which to compute Jacobian
        epsilon: Step size for finite differences

    Returns:
        Numerical Jacobian, shape (len(y), len(x))
    """
    x = np.asarray(x, dtype=float)
    y0 = np.asarray(f(x))

    J = np.zeros((len(y0), len(x)))
    for i in range(len(x)):
        x_plus = x.copy()
        x_minus = x.copy()
        x_plus[i] += epsilon
        x_minus[i] -= epsilon
        J[:, i] = (np.asarray(f(x_plus)) - np.asarray(f(x_minus))) / (2 * epsilon)

    return J


@dataclass
class GradientCheckResult:
    """
    Comparison of automatic and numerical Jacobians.

    Attributes:
        passed: True if every block agrees within tolerance
        max_abs_error: Largest absolute entry difference per block
        automatic: Jacobians from automatic differentiation
        numerical: Jacobians from central differences
        messages: Human-readable description of each failing block
    """
    passed: bool
    max_abs_error: List[float]
    automatic: List[np.ndarray]
    numerical: List[np.ndarray]
    messages: List[str] = field(default_factory=list)


def check_gradients(
    cost_function: AutoDiffCostFunction,
    parameter_blocks: Sequence[np.ndarray],
    config: Optional[GradientCheckConfig] = None
) -> GradientCheckResult:
    """
    Compare a cost function's Jacobians against central differences.

    Each parameter block is perturbed independently in its ambient
    coordinates; quaternion blocks are not renormalized, matching how the
    automatic Jacobian is defined.

    Args:
        cost_function: Cost function to check
        parameter_blocks: Point at which to check, one array per block
        config: Step size and tolerances

    Returns:
        GradientCheckResult describing the comparison
    """
    config = config or GradientCheckConfig()
    blocks = [np.asarray(block, dtype=float).flatten() for block in parameter_blocks]
    automatic = cost_function.evaluate(blocks, compute_jacobians=True).jacobians

    numerical = []
    for index in range(len(blocks)):
        def residual_of_block(values, index=index):
            perturbed = list(blocks)
            perturbed[index] = values
            return cost_function(*perturbed)

        numerical.append(numerical_jacobian(residual_of_block, blocks[index], config.step))

    max_abs_error = []
    messages = []
    for index, (J_auto, J_num) in enumerate(zip(automatic, numerical)):
        max_abs_error.append(float(np.max(np.abs(J_auto - J_num))) if J_auto.size else 0.0)
        if not np.allclose(J_auto, J_num, rtol=config.relative_tolerance, atol=config.absolute_tolerance):
            messages.append(
                f"Parameter block {index}: max |automatic - numerical| = {max_abs_error[-1]:.3e}"
            )

    passed = not messages
    if not passed:
        logger.warning("Gradient check failed: %s", "; ".join(messages))
    return GradientCheckResult(
        passed=passed,
        max_abs_error=max_abs_error,
        automatic=automatic,
        numerical=numerical,
        messages=messages
    )
