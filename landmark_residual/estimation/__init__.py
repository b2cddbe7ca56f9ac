"""
Landmark cost functions and automatic differentiation support.
"""

from .base_cost_function import (
    AutoDiffCostFunction,
    EvaluationResult
)
from .landmark_cost_function import (
    LandmarkCostFunction2D,
    LandmarkCostFunction3D,
    create_autodiff_cost_function,
    initial_landmark_pose
)
from .gradient_checker import (
    GradientCheckResult,
    check_gradients
)

__all__ = [
    'AutoDiffCostFunction',
    'EvaluationResult',
    'LandmarkCostFunction2D',
    'LandmarkCostFunction3D',
    'create_autodiff_cost_function',
    'initial_landmark_pose',
    'GradientCheckResult',
    'check_gradients'
]
