"""
Landmark cost functions for landmark observations between two trajectory nodes.

The cost measures the weighted error between the landmark pose given by the
measurement and the pose predicted from the trajectory, interpolated linearly
in time between the node before and the node after the observation.
"""

import logging
from typing import Optional, Union

import numpy as np

from landmark_residual.common.config import LandmarkCostConfig
from landmark_residual.common.data_structures import (
    LandmarkObservation, NodeSpec2D, NodeSpec3D, Rigid3
)
from landmark_residual.estimation.base_cost_function import AutoDiffCostFunction
from landmark_residual.estimation.cost_helpers import (
    interpolate_nodes_2d, interpolate_nodes_3d,
    compute_unscaled_error, rotate_translation_error,
    scale_error_with_covariance, sqrt_information
)
from landmark_residual.utils.jax_init import jnp

logger = logging.getLogger(__name__)

NUM_RESIDUALS = 6


def interpolation_parameter(observation_time: float, prev_time: float, next_time: float) -> float:
    """
    Fraction of the node interval elapsed at the observation time.

    Raises:
        ValueError: If both nodes share a timestamp
    """
    duration = float(next_time) - float(prev_time)
    if duration == 0.0:
        raise ValueError(f"Nodes must have distinct timestamps, both are at {prev_time}")
    return (float(observation_time) - float(prev_time)) / duration


def _checked_interpolation_parameter(
    observation: LandmarkObservation,
    prev_time: float,
    next_time: float,
    config: LandmarkCostConfig
) -> float:
    """Interpolation parameter, warning or raising when it extrapolates."""
    parameter = interpolation_parameter(observation.time, prev_time, next_time)
    if not 0.0 <= parameter <= 1.0:
        message = (
            f"Observation at {observation.time} lies outside node interval "
            f"[{prev_time}, {next_time}] (interpolation parameter {parameter:.6f})"
        )
        if config.reject_extrapolation:
            raise ValueError(message)
        logger.warning("%s; extrapolating", message)
    return parameter


class LandmarkCostFunctionBase(AutoDiffCostFunction):
    """
    Shared landmark error pipeline.

    Given the interpolated tracking pose and the landmark variables, the error
    is computed in the tracking or landmark frame, its translation part is
    rotated by the interpolated orientation, and it is finally scaled by the
    observation weights and square-root information.
    """

    def __init__(
        self,
        observation: LandmarkObservation,
        prev_time: float,
        next_time: float,
        parameter_block_sizes,
        config: Optional[LandmarkCostConfig] = None
    ):
        self.config = config or LandmarkCostConfig()

        transform = observation.landmark_to_tracking_transform
        self._relative_rotation = jnp.asarray(transform.rotation)
        self._relative_translation = jnp.asarray(transform.translation)
        self._translation_weight = observation.translation_weight
        self._rotation_weight = observation.rotation_weight
        self._sqrt_information = jnp.asarray(sqrt_information(observation.inverse_covariance))
        self._interpolation_parameter = _checked_interpolation_parameter(
            observation, prev_time, next_time, self.config)
        self._observed_from_tracking = observation.observed_from_tracking

        # The measurement direction is fixed for the lifetime of the instance
        if self._observed_from_tracking:
            self._unscaled_error = self._error_from_tracking
        else:
            self._unscaled_error = self._error_from_landmark

        super().__init__(NUM_RESIDUALS, parameter_block_sizes, use_jit=self.config.jit)

    @property
    def interpolation_parameter(self) -> float:
        """Fraction of the node interval elapsed at the observation time."""
        return self._interpolation_parameter

    @property
    def observed_from_tracking(self) -> bool:
        """Whether the measured transform is expressed from the tracking frame."""
        return self._observed_from_tracking

    @property
    def sqrt_information(self) -> np.ndarray:
        """Square-root information matrix applied to the weighted error."""
        return np.asarray(self._sqrt_information)

    def _error_from_tracking(self, tracking_rotation, tracking_translation,
                             landmark_rotation, landmark_translation):
        return compute_unscaled_error(
            self._relative_rotation, self._relative_translation,
            tracking_rotation, tracking_translation,
            landmark_rotation, landmark_translation,
            self.config.rotation_error
        )

    def _error_from_landmark(self, tracking_rotation, tracking_translation,
                             landmark_rotation, landmark_translation):
        return compute_unscaled_error(
            self._relative_rotation, self._relative_translation,
            landmark_rotation, landmark_translation,
            tracking_rotation, tracking_translation,
            self.config.rotation_error
        )

    def weighted_error(self, interpolated_rotation, interpolated_translation,
                       landmark_rotation, landmark_translation):
        """Weighted 6-vector error for an already interpolated tracking pose."""
        error = self._unscaled_error(
            interpolated_rotation, interpolated_translation,
            landmark_rotation, landmark_translation
        )
        # Express the translation error in the world frame
        error = rotate_translation_error(error, interpolated_rotation)
        return scale_error_with_covariance(
            error, self._translation_weight, self._rotation_weight, self._sqrt_information)


class LandmarkCostFunction2D(LandmarkCostFunctionBase):
    """
    Landmark cost against planar node poses embedded in 3D space.

    Parameter blocks: previous node [x, y, theta], next node [x, y, theta],
    landmark rotation [w, x, y, z], landmark translation [x, y, z].
    """

    PARAMETER_BLOCK_SIZES = (3, 3, 4, 3)

    def __init__(
        self,
        observation: LandmarkObservation,
        prev_node: NodeSpec2D,
        next_node: NodeSpec2D,
        config: Optional[LandmarkCostConfig] = None
    ):
        self._prev_node_gravity_alignment = jnp.asarray(prev_node.gravity_alignment)
        self._next_node_gravity_alignment = jnp.asarray(next_node.gravity_alignment)
        super().__init__(observation, prev_node.time, next_node.time, self.PARAMETER_BLOCK_SIZES, config)

    def interpolate(self, prev_node_pose, next_node_pose):
        """Interpolated tracking rotation and translation at the observation time."""
        return interpolate_nodes_2d(
            prev_node_pose, self._prev_node_gravity_alignment,
            next_node_pose, self._next_node_gravity_alignment,
            self._interpolation_parameter, self.config.slerp_linear_threshold
        )

    def residual(self, prev_node_pose, next_node_pose, landmark_rotation, landmark_translation):
        rotation, translation = self.interpolate(prev_node_pose, next_node_pose)
        return self.weighted_error(rotation, translation, landmark_rotation, landmark_translation)


class LandmarkCostFunction3D(LandmarkCostFunctionBase):
    """
    Landmark cost against full 3D node poses.

    Parameter blocks: previous node rotation, previous node translation, next
    node rotation, next node translation, landmark rotation, landmark translation.
    """

    PARAMETER_BLOCK_SIZES = (4, 3, 4, 3, 4, 3)

    def __init__(
        self,
        observation: LandmarkObservation,
        prev_node: NodeSpec3D,
        next_node: NodeSpec3D,
        config: Optional[LandmarkCostConfig] = None
    ):
        super().__init__(observation, prev_node.time, next_node.time, self.PARAMETER_BLOCK_SIZES, config)

    def interpolate(self, prev_node_rotation, prev_node_translation,
                    next_node_rotation, next_node_translation):
        """Interpolated tracking rotation and translation at the observation time."""
        return interpolate_nodes_3d(
            prev_node_rotation, prev_node_translation,
            next_node_rotation, next_node_translation,
            self._interpolation_parameter, self.config.slerp_linear_threshold
        )

    def residual(self, prev_node_rotation, prev_node_translation,
                 next_node_rotation, next_node_translation,
                 landmark_rotation, landmark_translation):
        rotation, translation = self.interpolate(
            prev_node_rotation, prev_node_translation,
            next_node_rotation, next_node_translation
        )
        return self.weighted_error(rotation, translation, landmark_rotation, landmark_translation)


LandmarkCostFunction = Union[LandmarkCostFunction2D, LandmarkCostFunction3D]


def create_autodiff_cost_function(
    observation: LandmarkObservation,
    prev_node: Union[NodeSpec2D, NodeSpec3D],
    next_node: Union[NodeSpec2D, NodeSpec3D],
    config: Optional[LandmarkCostConfig] = None
) -> LandmarkCostFunction:
    """
    Create the landmark cost function matching the node type.

    Raises:
        ValueError: If the nodes are of different or unknown types
    """
    if isinstance(prev_node, NodeSpec2D) and isinstance(next_node, NodeSpec2D):
        return LandmarkCostFunction2D(observation, prev_node, next_node, config)
    if isinstance(prev_node, NodeSpec3D) and isinstance(next_node, NodeSpec3D):
        return LandmarkCostFunction3D(observation, prev_node, next_node, config)
    raise ValueError(
        f"Nodes must both be NodeSpec2D or both NodeSpec3D, got "
        f"{type(prev_node).__name__} and {type(next_node).__name__}"
    )


def interpolate_node_poses(
    observation_time: float,
    prev_node: Union[NodeSpec2D, NodeSpec3D],
    next_node: Union[NodeSpec2D, NodeSpec3D],
    linear_threshold: Optional[float] = None
) -> Rigid3:
    """Tracking pose interpolated at `observation_time` from the nodes' current poses."""
    if linear_threshold is None:
        linear_threshold = LandmarkCostConfig().slerp_linear_threshold
    parameter = interpolation_parameter(observation_time, prev_node.time, next_node.time)
    if isinstance(prev_node, NodeSpec2D) and isinstance(next_node, NodeSpec2D):
        rotation, translation = interpolate_nodes_2d(
            prev_node.pose, prev_node.gravity_alignment,
            next_node.pose, next_node.gravity_alignment,
            parameter, linear_threshold
        )
    elif isinstance(prev_node, NodeSpec3D) and isinstance(next_node, NodeSpec3D):
        rotation, translation = interpolate_nodes_3d(
            prev_node.pose.rotation, prev_node.pose.translation,
            next_node.pose.rotation, next_node.pose.translation,
            parameter, linear_threshold
        )
    else:
        raise ValueError("Nodes must both be NodeSpec2D or both NodeSpec3D")
    return Rigid3(rotation=np.asarray(rotation), translation=np.asarray(translation))


def initial_landmark_pose(
    observation: LandmarkObservation,
    prev_node: Union[NodeSpec2D, NodeSpec3D],
    next_node: Union[NodeSpec2D, NodeSpec3D],
    config: Optional[LandmarkCostConfig] = None
) -> Rigid3:
    """
    Landmark pose implied by the current trajectory and the measurement.

    Used to seed the landmark variable. The trajectory is interpolated with the
    slerp threshold of `config`, the same way a cost function built from that
    configuration interpolates it.
    """
    config = config or LandmarkCostConfig()
    tracking_pose = interpolate_node_poses(
        observation.time, prev_node, next_node, config.slerp_linear_threshold)
    transform = observation.landmark_to_tracking_transform
    if observation.observed_from_tracking:
        return tracking_pose * transform
    return tracking_pose * transform.inverse()
