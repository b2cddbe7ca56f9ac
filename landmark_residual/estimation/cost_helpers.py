"""
Differentiable building blocks for pose-graph residuals.

Every function here is written against `jax.numpy` only, so the same code
evaluates plain float64 arrays and forward-mode tracers (dual numbers) produced
by `jax.jacfwd`. Branches are expressed with `jnp.where`; where one side of a
branch would produce a non-finite derivative, its input is replaced by a safe
value first so the unused side cannot poison the gradient.

Quaternions are [w, x, y, z]. Rotations are not renormalized unless stated;
callers are expected to pass unit quaternions.
"""

import logging
from typing import Tuple

import numpy as np
from scipy.linalg import cholesky, LinAlgError

from landmark_residual.common.config import RotationErrorType
from landmark_residual.utils.jax_init import jnp

logger = logging.getLogger(__name__)

# Default switch-over to linear interpolation for nearly identical rotations
SLERP_LINEAR_THRESHOLD = 1e-5

# Below this rotation angle the angle-axis map is linearized
ANGLE_AXIS_CUTOFF = 1e-7

_CONJUGATE_SIGNS = np.array([1.0, -1.0, -1.0, -1.0])


# ============================================================================
# Quaternion Algebra
# ============================================================================

def quaternion_multiply(q1, q2):
    """Hamilton product q1 * q2."""
    w1, x1, y1, z1 = q1[0], q1[1], q1[2], q1[3]
    w2, x2, y2, z2 = q2[0], q2[1], q2[2], q2[3]
    return jnp.stack([
        w1 * w2 - x1 * x2 - y1 * y2 - z1 * z2,
        w1 * x2 + x1 * w2 + y1 * z2 - z1 * y2,
        w1 * y2 - x1 * z2 + y1 * w2 + z1 * x2,
        w1 * z2 + x1 * y2 - y1 * x2 + z1 * w2
    ])


def quaternion_conjugate(q):
    """Conjugate, the inverse of a unit quaternion."""
    return jnp.asarray(q) * _CONJUGATE_SIGNS


def quaternion_normalize(q):
    """Scale q to unit norm (NaN for a zero quaternion)."""
    q = jnp.asarray(q)
    return q / jnp.sqrt(jnp.sum(q * q))


def rotate_vector(q, v):
    """
    Rotate a 3-vector by a unit quaternion.

    Uses v' = v + w * t + u x t with t = 2 * (u x v), where u is the vector
    part of q.
    """
    u = jnp.asarray(q)[1:]
    t = 2.0 * jnp.cross(u, v)
    return v + q[0] * t + jnp.cross(u, t)


def yaw_quaternion(theta):
    """Rotation by theta around the z axis."""
    half = 0.5 * theta
    zero = jnp.zeros_like(half)
    return jnp.stack([jnp.cos(half), zero, zero, jnp.sin(half)])


# ============================================================================
# Pose Interpolation
# ============================================================================

def slerp_quaternions(start, end, factor, linear_threshold: float = SLERP_LINEAR_THRESHOLD):
    """
    Shortest-arc spherical linear interpolation between two unit quaternions.

    Args:
        start: Quaternion returned at factor = 0
        end: Quaternion reached at factor = 1 (possibly as -end)
        factor: Interpolation parameter, nominally in [0, 1]
        linear_threshold: Use linear blending when |cos(theta)| >= 1 - threshold

    Returns:
        Interpolated quaternion [w, x, y, z]
    """
    start = jnp.asarray(start)
    end = jnp.asarray(end)
    # theta is the half-angle between the two rotations
    cos_theta = jnp.sum(start * end)
    abs_cos_theta = jnp.abs(cos_theta)
    use_linear = abs_cos_theta >= 1.0 - linear_threshold

    # arccos has an infinite derivative at 1; feed the unused branch a safe value
    safe_cos_theta = jnp.where(use_linear, 0.0, abs_cos_theta)
    theta = jnp.arccos(safe_cos_theta)
    sin_theta = jnp.sin(theta)

    start_scale = jnp.where(use_linear, 1.0 - factor, jnp.sin((1.0 - factor) * theta) / sin_theta)
    end_scale = jnp.where(use_linear, factor, jnp.sin(factor * theta) / sin_theta)

    # Shortest path: flip the end quaternion into the start's hemisphere
    end_scale = jnp.where(cos_theta < 0.0, -end_scale, end_scale)
    return start_scale * start + end_scale * end


def interpolate_nodes_2d(
    prev_node_pose,
    prev_node_gravity_alignment,
    next_node_pose,
    next_node_gravity_alignment,
    interpolation_parameter: float,
    linear_threshold: float = SLERP_LINEAR_THRESHOLD
) -> Tuple:
    """
    Interpolate two planar node poses embedded in 3D.

    Each node rotation is Rz(theta) * gravity_alignment, i.e. the rotation of
    Embed3D(pose) * Rotation(gravity_alignment). Rotations are slerped and the
    planar translations linearly interpolated with z = 0.

    Args:
        prev_node_pose: Previous node [x, y, theta]
        prev_node_gravity_alignment: Previous node gravity alignment quaternion
        next_node_pose: Next node [x, y, theta]
        next_node_gravity_alignment: Next node gravity alignment quaternion
        interpolation_parameter: Fraction of the way from previous to next node

    Returns:
        Tuple of (rotation [w, x, y, z], translation [x, y, z])
    """
    prev_rotation = quaternion_normalize(
        quaternion_multiply(yaw_quaternion(prev_node_pose[2]), prev_node_gravity_alignment))
    next_rotation = quaternion_normalize(
        quaternion_multiply(yaw_quaternion(next_node_pose[2]), next_node_gravity_alignment))

    rotation = slerp_quaternions(prev_rotation, next_rotation, interpolation_parameter, linear_threshold)
    x = prev_node_pose[0] + interpolation_parameter * (next_node_pose[0] - prev_node_pose[0])
    y = prev_node_pose[1] + interpolation_parameter * (next_node_pose[1] - prev_node_pose[1])
    translation = jnp.stack([x, y, jnp.zeros_like(x)])
    return rotation, translation


def interpolate_nodes_3d(
    prev_node_rotation,
    prev_node_translation,
    next_node_rotation,
    next_node_translation,
    interpolation_parameter: float,
    linear_threshold: float = SLERP_LINEAR_THRESHOLD
) -> Tuple:
    """
    Interpolate two full 3D node poses.

    Returns:
        Tuple of (rotation [w, x, y, z], translation [x, y, z])
    """
    rotation = slerp_quaternions(prev_node_rotation, next_node_rotation, interpolation_parameter, linear_threshold)
    prev_node_translation = jnp.asarray(prev_node_translation)
    translation = prev_node_translation + interpolation_parameter * (
        jnp.asarray(next_node_translation) - prev_node_translation)
    return rotation, translation


# ============================================================================
# Relative Transform Error
# ============================================================================

def quaternion_vector_error(q):
    """Twice the vector part of q, taken in the w >= 0 hemisphere."""
    q = jnp.where(q[0] < 0.0, -q, q)
    return 2.0 * q[1:]


def angle_axis_error(q):
    """Angle-axis vector of q (normalized first, w >= 0 hemisphere)."""
    q = quaternion_normalize(q)
    q = jnp.where(q[0] < 0.0, -q, q)
    vector = q[1:]
    squared_norm = jnp.sum(vector * vector)
    # |vec(q)| = sin(angle / 2), so angle < cutoff <=> |vec(q)| < ~cutoff / 2
    near_identity = squared_norm < (0.5 * ANGLE_AXIS_CUTOFF) ** 2
    safe_norm = jnp.sqrt(jnp.where(near_identity, 1.0, squared_norm))
    angle = 2.0 * jnp.arctan2(safe_norm, q[0])
    scale = jnp.where(near_identity, 2.0, angle / safe_norm)
    return scale * vector


def compute_unscaled_error(
    relative_rotation,
    relative_translation,
    start_rotation,
    start_translation,
    end_rotation,
    end_translation,
    rotation_error: RotationErrorType = RotationErrorType.QUATERNION_VECTOR
):
    """
    Error between a measured relative pose and the one implied by two poses.

    The measured start_T_end is `relative`; the implied one is
    start^-1 * end. The translation error is relative.t - (start^-1 * end).t
    and the rotation error is derived from end_R^-1 * start_R * relative_R,
    which is the identity when the poses agree with the measurement.

    Args:
        relative_rotation: Measured start_T_end rotation
        relative_translation: Measured start_T_end translation
        start_rotation, start_translation: Pose of the start frame
        end_rotation, end_translation: Pose of the end frame
        rotation_error: Rotation error representation

    Returns:
        6-vector [translation error (3), rotation error (3)] in the start frame
    """
    start_rotation_inverse = quaternion_conjugate(start_rotation)
    delta = jnp.asarray(end_translation) - jnp.asarray(start_translation)
    h_translation = rotate_vector(start_rotation_inverse, delta)

    h_rotation_inverse = quaternion_multiply(quaternion_conjugate(end_rotation), start_rotation)
    rotation_residual = quaternion_multiply(h_rotation_inverse, relative_rotation)

    if rotation_error == RotationErrorType.ANGLE_AXIS:
        rotation_part = angle_axis_error(rotation_residual)
    else:
        rotation_part = quaternion_vector_error(rotation_residual)

    return jnp.concatenate([jnp.asarray(relative_translation) - h_translation, rotation_part])


def rotate_translation_error(error, rotation):
    """Express the translation part of a 6-vector error in the frame rotated by `rotation`."""
    return jnp.concatenate([rotate_vector(rotation, error[:3]), error[3:]])


# ============================================================================
# Error Scaling
# ============================================================================

def sqrt_information(inverse_covariance: np.ndarray) -> np.ndarray:
    """
    Square root U of an information matrix, with U^T U = inverse_covariance.

    Positive definite matrices use the upper Cholesky factor. Anything else
    (singular, or indefinite from round-off) falls back to an eigen-decomposition
    with negative eigenvalues clipped to zero; directions with vanishing
    information then contribute nothing to the residual. Nearly singular
    matrices still factor, but may yield very large residuals.

    Args:
        inverse_covariance: Symmetric 6x6 information matrix

    Returns:
        6x6 square-root information matrix
    """
    information = np.asarray(inverse_covariance, dtype=float)
    try:
        return cholesky(information, lower=False)
    except LinAlgError:
        eigenvalues, eigenvectors = np.linalg.eigh(information)
        logger.warning(
            "Inverse covariance is not positive definite (min eigenvalue %.3e); "
            "using clipped eigen-decomposition square root", eigenvalues.min()
        )
        return np.sqrt(np.clip(eigenvalues, 0.0, None))[:, np.newaxis] * eigenvectors.T


def scale_error(error, translation_weight: float, rotation_weight: float):
    """Scale the translation and rotation halves of a 6-vector error."""
    return jnp.concatenate([error[:3] * translation_weight, error[3:] * rotation_weight])


def scale_error_with_covariance(
    error,
    translation_weight: float,
    rotation_weight: float,
    sqrt_info
):
    """
    Weight a 6-vector error by scalar weights and a square-root information matrix.

    The squared norm of the result is e_w^T * inverse_covariance * e_w, where
    e_w is the error after scalar weighting.
    """
    return jnp.asarray(sqrt_info) @ scale_error(error, translation_weight, rotation_weight)
