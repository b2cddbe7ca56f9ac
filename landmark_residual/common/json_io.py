"""
JSON I/O for landmark problem snapshots.

A snapshot holds everything needed to build and evaluate one landmark residual:
the observation, the nodes before and after it, and (optionally) the current
landmark pose estimate.
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Dict, Any, List, Optional, Union

import numpy as np

from landmark_residual.common.data_structures import (
    LandmarkObservation, LandmarkPoseEstimate, NodeSpec2D, NodeSpec3D
)

logger = logging.getLogger(__name__)

FORMAT_VERSION = "1.0"


class NumpyJSONEncoder(json.JSONEncoder):
    """JSON encoder that handles numpy arrays."""

    def default(self, obj):
        """Convert numpy arrays to lists."""
        if isinstance(obj, np.ndarray):
            return obj.tolist()
        if isinstance(obj, (np.float32, np.float64)):
            return float(obj)
        if isinstance(obj, (np.int32, np.int64)):
            return int(obj)
        if isinstance(obj, np.bool_):
            return bool(obj)
        return super().default(obj)


def _node_from_dict(data: Dict[str, Any], dimension: int) -> Union[NodeSpec2D, NodeSpec3D]:
    if dimension == 2:
        return NodeSpec2D.from_dict(data)
    if dimension == 3:
        return NodeSpec3D.from_dict(data)
    raise ValueError(f"Unsupported node dimension: {dimension}")


@dataclass
class LandmarkProblem:
    """One landmark observation with its surrounding nodes and landmark estimate."""
    observation: LandmarkObservation
    prev_node: Union[NodeSpec2D, NodeSpec3D]
    next_node: Union[NodeSpec2D, NodeSpec3D]
    landmark: Optional[LandmarkPoseEstimate] = None

    def __post_init__(self):
        if type(self.prev_node) is not type(self.next_node):
            raise ValueError("Previous and next node must have the same type")

    @property
    def dimension(self) -> int:
        """2 for planar nodes, 3 for full 3D nodes."""
        return 2 if isinstance(self.prev_node, NodeSpec2D) else 3

    def parameter_blocks(self) -> List[np.ndarray]:
        """Parameter blocks in cost function order."""
        if self.landmark is None:
            raise ValueError("Problem has no landmark estimate")
        return (
            self.prev_node.parameter_blocks()
            + self.next_node.parameter_blocks()
            + list(self.landmark.parameter_blocks())
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result = {
            "metadata": {
                "version": FORMAT_VERSION,
                "timestamp": datetime.now().isoformat(),
                "dimension": self.dimension,
                "units": {
                    "position": "meters",
                    "rotation": "quaternion_wxyz",
                    "time": "seconds"
                }
            },
            "observation": self.observation.to_dict(),
            "prev_node": self.prev_node.to_dict(),
            "next_node": self.next_node.to_dict()
        }
        if self.landmark is not None:
            result["landmark"] = self.landmark.to_dict()
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LandmarkProblem':
        """Create from dictionary."""
        dimension = int(data.get("metadata", {}).get("dimension", 2))
        landmark = None
        if data.get("landmark") is not None:
            landmark = LandmarkPoseEstimate.from_dict(data["landmark"])

        return cls(
            observation=LandmarkObservation.from_dict(data["observation"]),
            prev_node=_node_from_dict(data["prev_node"], dimension),
            next_node=_node_from_dict(data["next_node"], dimension),
            landmark=landmark
        )


def save_problem(problem: LandmarkProblem, filepath: Union[str, Path]) -> Path:
    """Save a problem snapshot to a JSON file."""
    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)
    with open(filepath, 'w') as f:
        json.dump(problem.to_dict(), f, indent=2, cls=NumpyJSONEncoder)
    logger.info("Saved landmark problem to %s", filepath)
    return filepath


def load_problem(filepath: Union[str, Path]) -> LandmarkProblem:
    """
    Load a problem snapshot from a JSON file.

    Raises:
        FileNotFoundError: If the file does not exist
    """
    filepath = Path(filepath)
    if not filepath.exists():
        raise FileNotFoundError(f"Problem file not found: {filepath}")
    with open(filepath, 'r') as f:
        data = json.load(f)

    version = data.get("metadata", {}).get("version", FORMAT_VERSION)
    if version != FORMAT_VERSION:
        logger.warning("Problem file %s has format version %s, expected %s", filepath, version, FORMAT_VERSION)
    return LandmarkProblem.from_dict(data)
