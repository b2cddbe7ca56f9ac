"""
Core data structures for landmark residual evaluation.
Following the naming convention: A_X_B means X transforms FROM B TO A.

Records handed to a cost function are frozen: a cost function is built once per
(observation, previous node, next node) triple and must not see them change.
"""

from dataclasses import dataclass, field
from typing import List, Dict, Any, Tuple
import numpy as np

from landmark_residual.utils.math_utils import (
    quaternion_normalize, quaternion_multiply, quaternion_conjugate,
    quaternion_to_rotation_matrix, rotation_matrix_to_quaternion,
    rotate_vector, embed_3d
)


def _frozen_array(values, size: int, name: str) -> np.ndarray:
    """Flatten to a read-only float array of the expected size."""
    array = np.array(values, dtype=float).flatten()
    if len(array) != size:
        raise ValueError(f"{name} must have {size} components, got {len(array)}")
    array.setflags(write=False)
    return array


# ============================================================================
# Rigid Transforms
# ============================================================================

@dataclass(frozen=True, eq=False)
class Rigid3:
    """3D rigid transform with rotation quaternion [w, x, y, z] and translation."""
    rotation: np.ndarray = field(default_factory=lambda: np.array([1.0, 0.0, 0.0, 0.0]))
    translation: np.ndarray = field(default_factory=lambda: np.zeros(3))

    def __post_init__(self):
        """Validate dimensions and normalize the rotation."""
        rotation = _frozen_array(self.rotation, 4, "Rotation")
        rotation = quaternion_normalize(rotation)
        rotation.setflags(write=False)
        object.__setattr__(self, "rotation", rotation)
        object.__setattr__(self, "translation", _frozen_array(self.translation, 3, "Translation"))

    @classmethod
    def identity(cls) -> 'Rigid3':
        """Identity transform."""
        return cls()

    @classmethod
    def from_translation(cls, translation) -> 'Rigid3':
        """Pure translation."""
        return cls(translation=translation)

    @classmethod
    def from_rotation(cls, rotation) -> 'Rigid3':
        """Pure rotation."""
        return cls(rotation=rotation)

    def compose(self, other: 'Rigid3') -> 'Rigid3':
        """Return self * other, i.e. apply other first, then self."""
        return Rigid3(
            rotation=quaternion_multiply(self.rotation, other.rotation),
            translation=self.translation + rotate_vector(self.rotation, other.translation)
        )

    def __mul__(self, other: 'Rigid3') -> 'Rigid3':
        return self.compose(other)

    def inverse(self) -> 'Rigid3':
        """Inverse transform."""
        rotation_inverse = quaternion_conjugate(self.rotation)
        return Rigid3(
            rotation=rotation_inverse,
            translation=-rotate_vector(rotation_inverse, self.translation)
        )

    def to_matrix(self) -> np.ndarray:
        """Convert to 4x4 transformation matrix."""
        T = np.eye(4)
        T[:3, :3] = quaternion_to_rotation_matrix(self.rotation)
        T[:3, 3] = self.translation
        return T

    @classmethod
    def from_matrix(cls, T: np.ndarray) -> 'Rigid3':
        """Create from 4x4 transformation matrix."""
        T = np.asarray(T, dtype=float)
        return cls(rotation=rotation_matrix_to_quaternion(T[:3, :3]), translation=T[:3, 3])

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "rotation": self.rotation.tolist(),
            "translation": self.translation.tolist()
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Rigid3':
        """Create from dictionary."""
        return cls(
            rotation=np.array(data.get("rotation", [1.0, 0.0, 0.0, 0.0])),
            translation=np.array(data.get("translation", [0.0, 0.0, 0.0]))
        )


# ============================================================================
# Trajectory Nodes
# ============================================================================

@dataclass(frozen=True, eq=False)
class NodeSpec2D:
    """
    Planar trajectory node as seen by the optimizer.

    Attributes:
        time: Node timestamp in seconds
        pose: Global planar pose [x, y, theta] (initial value of the variable)
        gravity_alignment: Rotation aligning the tracking frame with gravity
    """
    time: float
    pose: np.ndarray
    gravity_alignment: np.ndarray = field(default_factory=lambda: np.array([1.0, 0.0, 0.0, 0.0]))

    def __post_init__(self):
        """Validate dimensions."""
        object.__setattr__(self, "time", float(self.time))
        object.__setattr__(self, "pose", _frozen_array(self.pose, 3, "Planar pose"))
        gravity = quaternion_normalize(_frozen_array(self.gravity_alignment, 4, "Gravity alignment"))
        gravity.setflags(write=False)
        object.__setattr__(self, "gravity_alignment", gravity)

    def global_pose_3d(self) -> Rigid3:
        """Embedded 3D pose including the gravity alignment."""
        rotation, translation = embed_3d(self.pose)
        return Rigid3(rotation=rotation, translation=translation) * Rigid3.from_rotation(self.gravity_alignment)

    def parameter_blocks(self) -> List[np.ndarray]:
        """Optimization variable blocks for this node."""
        return [np.array(self.pose)]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "time": self.time,
            "pose": self.pose.tolist(),
            "gravity_alignment": self.gravity_alignment.tolist()
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'NodeSpec2D':
        """Create from dictionary."""
        return cls(
            time=data["time"],
            pose=np.array(data["pose"]),
            gravity_alignment=np.array(data.get("gravity_alignment", [1.0, 0.0, 0.0, 0.0]))
        )


@dataclass(frozen=True, eq=False)
class NodeSpec3D:
    """Full 3D trajectory node: timestamp and global pose."""
    time: float
    pose: Rigid3

    def __post_init__(self):
        object.__setattr__(self, "time", float(self.time))
        if not isinstance(self.pose, Rigid3):
            raise ValueError(f"Pose must be a Rigid3, got {type(self.pose).__name__}")

    def global_pose_3d(self) -> Rigid3:
        """Global 3D pose."""
        return self.pose

    def parameter_blocks(self) -> List[np.ndarray]:
        """Optimization variable blocks: rotation, translation."""
        return [np.array(self.pose.rotation), np.array(self.pose.translation)]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {"time": self.time, "pose": self.pose.to_dict()}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'NodeSpec3D':
        """Create from dictionary."""
        return cls(time=data["time"], pose=Rigid3.from_dict(data["pose"]))


# ============================================================================
# Landmark Data Structures
# ============================================================================

@dataclass(frozen=True, eq=False)
class LandmarkObservation:
    """
    Single landmark measurement relative to the tracking frame.

    Attributes:
        time: Observation timestamp in seconds
        landmark_to_tracking_transform: tracking_T_landmark measured by the sensor
        translation_weight: Scalar weight of the translation error
        rotation_weight: Scalar weight of the rotation error
        inverse_covariance: 6x6 information matrix over [translation, rotation]
        observed_from_tracking: True if the transform was measured from the
            tracking frame, False if it was measured from the landmark frame
    """
    time: float
    landmark_to_tracking_transform: Rigid3
    translation_weight: float = 1.0
    rotation_weight: float = 1.0
    inverse_covariance: np.ndarray = field(default_factory=lambda: np.eye(6))
    observed_from_tracking: bool = True

    def __post_init__(self):
        """Validate the information matrix."""
        object.__setattr__(self, "time", float(self.time))
        object.__setattr__(self, "translation_weight", float(self.translation_weight))
        object.__setattr__(self, "rotation_weight", float(self.rotation_weight))
        object.__setattr__(self, "observed_from_tracking", bool(self.observed_from_tracking))

        information = np.array(self.inverse_covariance, dtype=float)
        if information.size != 36:
            raise ValueError(f"Inverse covariance must be 6x6, got {information.shape}")
        information = information.reshape(6, 6)
        if not np.all(np.isfinite(information)):
            raise ValueError("Inverse covariance must contain only finite values")
        if not np.allclose(information, information.T, atol=1e-9):
            raise ValueError("Inverse covariance must be symmetric")
        information.setflags(write=False)
        object.__setattr__(self, "inverse_covariance", information)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "time": self.time,
            "landmark_to_tracking_transform": self.landmark_to_tracking_transform.to_dict(),
            "translation_weight": self.translation_weight,
            "rotation_weight": self.rotation_weight,
            "inverse_covariance": self.inverse_covariance.tolist(),
            "observed_from_tracking": self.observed_from_tracking
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LandmarkObservation':
        """Create from dictionary."""
        return cls(
            time=data["time"],
            landmark_to_tracking_transform=Rigid3.from_dict(data["landmark_to_tracking_transform"]),
            translation_weight=data.get("translation_weight", 1.0),
            rotation_weight=data.get("rotation_weight", 1.0),
            inverse_covariance=np.array(data.get("inverse_covariance", np.eye(6))),
            observed_from_tracking=data.get("observed_from_tracking", True)
        )


@dataclass(eq=False)
class LandmarkPoseEstimate:
    """Landmark pose owned by the solver and updated between iterations."""
    rotation: np.ndarray  # Quaternion [w, x, y, z]
    translation: np.ndarray  # 3x1 position in world frame

    def __post_init__(self):
        """Validate dimensions."""
        self.rotation = np.asarray(self.rotation, dtype=float).flatten()
        self.translation = np.asarray(self.translation, dtype=float).flatten()

        if len(self.rotation) != 4:
            raise ValueError(f"Rotation must have 4 components, got {len(self.rotation)}")
        if len(self.translation) != 3:
            raise ValueError(f"Translation must be 3D, got {len(self.translation)}")

    @classmethod
    def from_rigid(cls, pose: Rigid3) -> 'LandmarkPoseEstimate':
        """Create from a rigid transform."""
        return cls(rotation=np.array(pose.rotation), translation=np.array(pose.translation))

    def to_rigid(self) -> Rigid3:
        """Convert to a rigid transform."""
        return Rigid3(rotation=self.rotation, translation=self.translation)

    def parameter_blocks(self) -> Tuple[np.ndarray, np.ndarray]:
        """Optimization variable blocks: rotation, translation."""
        return self.rotation.copy(), self.translation.copy()

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "rotation": self.rotation.tolist(),
            "translation": self.translation.tolist()
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LandmarkPoseEstimate':
        """Create from dictionary."""
        return cls(rotation=np.array(data["rotation"]), translation=np.array(data["translation"]))
