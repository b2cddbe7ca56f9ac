"""
Unit tests for data structures.
"""

import dataclasses

import pytest
import numpy as np
from numpy.testing import assert_array_almost_equal

from landmark_residual.common.data_structures import (
    Rigid3, NodeSpec2D, NodeSpec3D, LandmarkObservation, LandmarkPoseEstimate
)
from landmark_residual.utils.math_utils import random_quaternion, yaw_quaternion


class TestRigid3:
    """Test rigid transforms."""

    def test_identity(self):
        """Test identity transform."""
        pose = Rigid3.identity()
        assert_array_almost_equal(pose.rotation, [1.0, 0.0, 0.0, 0.0])
        assert_array_almost_equal(pose.translation, np.zeros(3))
        assert_array_almost_equal(pose.to_matrix(), np.eye(4))

    def test_rotation_normalized(self):
        """Test that the rotation is normalized on construction."""
        pose = Rigid3(rotation=np.array([2.0, 0.0, 0.0, 0.0]))
        assert_array_almost_equal(pose.rotation, [1.0, 0.0, 0.0, 0.0])

    def test_invalid_dimensions(self):
        """Test that invalid dimensions raise errors."""
        with pytest.raises(ValueError, match="Rotation must have 4"):
            Rigid3(rotation=np.array([1.0, 0.0, 0.0]))
        with pytest.raises(ValueError, match="Translation must have 3"):
            Rigid3(translation=np.array([1.0, 0.0]))

    def test_immutable(self):
        """Test that transforms cannot be modified."""
        pose = Rigid3.from_translation([1.0, 2.0, 3.0])
        with pytest.raises(dataclasses.FrozenInstanceError):
            pose.translation = np.zeros(3)
        with pytest.raises(ValueError):
            pose.translation[0] = 5.0

    def test_compose(self):
        """Test composition applies the right operand first."""
        a = Rigid3(rotation=yaw_quaternion(np.pi / 2), translation=[1.0, 0.0, 0.0])
        b = Rigid3.from_translation([1.0, 0.0, 0.0])
        c = a * b
        assert_array_almost_equal(c.translation, [1.0, 1.0, 0.0])
        assert_array_almost_equal(c.to_matrix(), a.to_matrix() @ b.to_matrix())

    def test_inverse(self):
        """Test that composing with the inverse gives identity."""
        rng = np.random.default_rng(11)
        pose = Rigid3(rotation=random_quaternion(rng), translation=rng.normal(size=3))
        result = pose * pose.inverse()
        assert_array_almost_equal(result.to_matrix(), np.eye(4))

    def test_matrix_conversion(self):
        """Test conversion to and from 4x4 matrices."""
        rng = np.random.default_rng(12)
        pose = Rigid3(rotation=random_quaternion(rng), translation=rng.normal(size=3))
        recovered = Rigid3.from_matrix(pose.to_matrix())
        assert_array_almost_equal(recovered.to_matrix(), pose.to_matrix())


class TestTrajectoryNodes:
    """Test trajectory node records."""

    def test_planar_node_global_pose(self):
        """Test embedding of a planar node."""
        node = NodeSpec2D(time=1.0, pose=np.array([1.0, 2.0, np.pi / 2]))
        pose = node.global_pose_3d()
        assert_array_almost_equal(pose.translation, [1.0, 2.0, 0.0])
        assert_array_almost_equal(pose.rotation, yaw_quaternion(np.pi / 2))

    def test_planar_node_gravity_alignment(self):
        """Test that gravity alignment is applied after the yaw."""
        gravity = np.array([np.cos(0.05), np.sin(0.05), 0.0, 0.0])
        node = NodeSpec2D(time=0.0, pose=np.array([0.0, 0.0, 0.4]), gravity_alignment=gravity)
        expected = Rigid3.from_rotation(yaw_quaternion(0.4)) * Rigid3.from_rotation(gravity)
        assert_array_almost_equal(node.global_pose_3d().to_matrix(), expected.to_matrix())

    def test_planar_node_invalid_pose(self):
        """Test that non-planar poses are rejected."""
        with pytest.raises(ValueError, match="Planar pose must have 3"):
            NodeSpec2D(time=0.0, pose=np.array([1.0, 2.0]))

    def test_parameter_blocks_are_copies(self):
        """Test that parameter blocks can be modified freely."""
        node = NodeSpec2D(time=0.0, pose=np.array([1.0, 2.0, 0.3]))
        blocks = node.parameter_blocks()
        blocks[0][0] = 10.0
        assert node.pose[0] == 1.0

    def test_full_node_requires_rigid(self):
        """Test that 3D nodes require a Rigid3 pose."""
        with pytest.raises(ValueError, match="Rigid3"):
            NodeSpec3D(time=0.0, pose=np.eye(4))

    def test_full_node_blocks(self):
        """Test 3D node parameter blocks."""
        node = NodeSpec3D(time=0.0, pose=Rigid3.from_translation([1.0, 2.0, 3.0]))
        rotation, translation = node.parameter_blocks()
        assert_array_almost_equal(rotation, [1.0, 0.0, 0.0, 0.0])
        assert_array_almost_equal(translation, [1.0, 2.0, 3.0])


class TestLandmarkObservation:
    """Test landmark observation validation."""

    def test_defaults(self):
        """Test default weights and information."""
        observation = LandmarkObservation(time=0.5, landmark_to_tracking_transform=Rigid3.identity())
        assert observation.translation_weight == 1.0
        assert observation.rotation_weight == 1.0
        assert observation.observed_from_tracking
        assert_array_almost_equal(observation.inverse_covariance, np.eye(6))

    def test_invalid_covariance_shape(self):
        """Test that non 6x6 information matrices are rejected."""
        with pytest.raises(ValueError, match="6x6"):
            LandmarkObservation(
                time=0.0,
                landmark_to_tracking_transform=Rigid3.identity(),
                inverse_covariance=np.eye(3)
            )

    def test_asymmetric_covariance(self):
        """Test that asymmetric information matrices are rejected."""
        information = np.eye(6)
        information[0, 1] = 0.5
        with pytest.raises(ValueError, match="symmetric"):
            LandmarkObservation(
                time=0.0,
                landmark_to_tracking_transform=Rigid3.identity(),
                inverse_covariance=information
            )

    @pytest.mark.parametrize("value", [np.inf, np.nan])
    def test_non_finite_covariance(self, value):
        """Test that infinite or NaN information is rejected before symmetry is checked."""
        information = np.eye(6)
        information[0, 0] = value
        with pytest.raises(ValueError, match="finite"):
            LandmarkObservation(
                time=0.0,
                landmark_to_tracking_transform=Rigid3.identity(),
                inverse_covariance=information
            )

    def test_covariance_not_shared(self):
        """Test that the caller's matrix is copied and the stored one is read-only."""
        information = np.eye(6)
        observation = LandmarkObservation(
            time=0.0,
            landmark_to_tracking_transform=Rigid3.identity(),
            inverse_covariance=information
        )
        information[0, 0] = 100.0
        assert observation.inverse_covariance[0, 0] == 1.0
        with pytest.raises(ValueError):
            observation.inverse_covariance[0, 0] = 2.0

    def test_dict_conversion(self):
        """Test dictionary conversion keeps every field."""
        observation = LandmarkObservation(
            time=2.5,
            landmark_to_tracking_transform=Rigid3(rotation=yaw_quaternion(0.2), translation=[1.0, 0.0, 0.5]),
            translation_weight=3.0,
            rotation_weight=0.5,
            inverse_covariance=np.diag([1.0, 2.0, 3.0, 4.0, 5.0, 6.0]),
            observed_from_tracking=False
        )
        restored = LandmarkObservation.from_dict(observation.to_dict())
        assert restored.time == 2.5
        assert restored.translation_weight == 3.0
        assert restored.rotation_weight == 0.5
        assert not restored.observed_from_tracking
        assert_array_almost_equal(restored.inverse_covariance, observation.inverse_covariance)
        assert_array_almost_equal(
            restored.landmark_to_tracking_transform.to_matrix(),
            observation.landmark_to_tracking_transform.to_matrix()
        )


class TestLandmarkPoseEstimate:
    """Test the solver-owned landmark variable."""

    def test_invalid_dimensions(self):
        """Test that invalid dimensions raise errors."""
        with pytest.raises(ValueError, match="Rotation must have 4"):
            LandmarkPoseEstimate(rotation=np.zeros(3), translation=np.zeros(3))
        with pytest.raises(ValueError, match="Translation must be 3D"):
            LandmarkPoseEstimate(rotation=np.array([1.0, 0.0, 0.0, 0.0]), translation=np.zeros(2))

    def test_rigid_conversion(self):
        """Test conversion from and to Rigid3."""
        pose = Rigid3(rotation=yaw_quaternion(0.7), translation=[1.0, 2.0, 3.0])
        estimate = LandmarkPoseEstimate.from_rigid(pose)
        assert_array_almost_equal(estimate.to_rigid().to_matrix(), pose.to_matrix())

    def test_parameter_blocks_are_copies(self):
        """Test that parameter blocks do not alias the estimate."""
        estimate = LandmarkPoseEstimate(rotation=np.array([1.0, 0.0, 0.0, 0.0]), translation=np.zeros(3))
        rotation, translation = estimate.parameter_blocks()
        translation[0] = 1.0
        assert estimate.translation[0] == 0.0
