"""
Mathematical utilities for plain floating-point pose handling.
Uses scipy.spatial.transform.Rotation for robust implementations.

Quaternions are stored as [w, x, y, z] throughout the package; scipy uses
[x, y, z, w], so every conversion goes through the helpers below. The
differentiable counterparts used inside residuals live in
`landmark_residual.estimation.cost_helpers`.
"""

import numpy as np
from typing import Tuple
from scipy.spatial.transform import Rotation


# ============================================================================
# Quaternion Operations
# ============================================================================

def quaternion_normalize(q: np.ndarray) -> np.ndarray:
    """
    Normalize quaternion to unit norm.

    A zero-length quaternion is returned unchanged; it has no meaningful
    rotation and downstream residuals are left to propagate NaNs for it.

    Args:
        q: Quaternion [w, x, y, z]

    Returns:
        Normalized quaternion
    """
    q = np.asarray(q, dtype=float).flatten()
    norm = np.linalg.norm(q)
    if norm < 1e-10:
        return q
    return q / norm


def quaternion_conjugate(q: np.ndarray) -> np.ndarray:
    """Conjugate of quaternion [w, x, y, z] (inverse for unit quaternions)."""
    q = np.asarray(q, dtype=float).flatten()
    return np.array([q[0], -q[1], -q[2], -q[3]])


def quaternion_multiply(q1: np.ndarray, q2: np.ndarray) -> np.ndarray:
    """
    Hamilton product q1 * q2.

    Args:
        q1: Left quaternion [w, x, y, z]
        q2: Right quaternion [w, x, y, z]

    Returns:
        Product quaternion [w, x, y, z]
    """
    w1, x1, y1, z1 = np.asarray(q1, dtype=float).flatten()
    w2, x2, y2, z2 = np.asarray(q2, dtype=float).flatten()
    return np.array([
        w1 * w2 - x1 * x2 - y1 * y2 - z1 * z2,
        w1 * x2 + x1 * w2 + y1 * z2 - z1 * y2,
        w1 * y2 - x1 * z2 + y1 * w2 + z1 * x2,
        w1 * z2 + x1 * y2 - y1 * x2 + z1 * w2
    ])


def quaternion_to_rotation_matrix(q: np.ndarray) -> np.ndarray:
    """
    Convert quaternion to rotation matrix.

    Args:
        q: Quaternion [w, x, y, z]

    Returns:
        3x3 rotation matrix
    """
    q = quaternion_normalize(q)

    # Convert to scipy format [x, y, z, w] and get matrix
    r = Rotation.from_quat([q[1], q[2], q[3], q[0]])
    return r.as_matrix()


def rotation_matrix_to_quaternion(R: np.ndarray) -> np.ndarray:
    """Convert rotation matrix to quaternion [w, x, y, z] with w >= 0."""
    q = Rotation.from_matrix(np.asarray(R)).as_quat()  # Returns [x, y, z, w]
    q = np.array([q[3], q[0], q[1], q[2]])
    return -q if q[0] < 0 else q


def quaternion_from_rotation_vector(omega: np.ndarray) -> np.ndarray:
    """
    Exponential map from an axis-angle vector to a unit quaternion.

    Args:
        omega: 3x1 axis-angle vector (rotation vector)

    Returns:
        Quaternion [w, x, y, z]
    """
    q = Rotation.from_rotvec(np.asarray(omega, dtype=float).flatten()).as_quat()
    return np.array([q[3], q[0], q[1], q[2]])


def quaternion_angular_distance(q1: np.ndarray, q2: np.ndarray) -> float:
    """Rotation angle (radians) between two orientations, sign-invariant."""
    q1 = quaternion_normalize(q1)
    q2 = quaternion_normalize(q2)
    dot = np.clip(abs(np.dot(q1, q2)), 0.0, 1.0)
    return float(2.0 * np.arccos(dot))


def random_quaternion(rng: np.random.Generator = None) -> np.ndarray:
    """
    Generate a random unit quaternion.

    Args:
        rng: Optional numpy random generator for reproducibility

    Returns:
        Quaternion [w, x, y, z]
    """
    rng = rng if rng is not None else np.random.default_rng()
    # Normalized Gaussian samples are uniform on the unit sphere
    return quaternion_normalize(rng.normal(size=4))


def rotate_vector(q: np.ndarray, v: np.ndarray) -> np.ndarray:
    """Rotate 3D vector v by quaternion q."""
    return quaternion_to_rotation_matrix(q) @ np.asarray(v, dtype=float).flatten()


# ============================================================================
# Planar Pose Embedding
# ============================================================================

def yaw_quaternion(theta: float) -> np.ndarray:
    """Quaternion [w, x, y, z] of a rotation by theta around the z axis."""
    return np.array([np.cos(theta / 2.0), 0.0, 0.0, np.sin(theta / 2.0)])


def embed_3d(pose_2d: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """
    Embed a planar pose [x, y, theta] into 3D.

    Args:
        pose_2d: Planar pose [x, y, theta]

    Returns:
        Tuple of (quaternion [w, x, y, z], translation [x, y, 0])
    """
    pose_2d = np.asarray(pose_2d, dtype=float).flatten()
    if len(pose_2d) != 3:
        raise ValueError(f"Planar pose must have 3 components, got {len(pose_2d)}")
    return yaw_quaternion(pose_2d[2]), np.array([pose_2d[0], pose_2d[1], 0.0])
