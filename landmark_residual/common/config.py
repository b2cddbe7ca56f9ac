"""
Configuration models using Pydantic for type safety and validation.
"""

import logging
from enum import Enum
from pathlib import Path
from typing import Union

import yaml
from pydantic import BaseModel, Field, field_validator

from landmark_residual.utils.config_loader import ConfigLoader


class RotationErrorType(str, Enum):
    """How the relative rotation quaternion is turned into a 3-vector error."""
    QUATERNION_VECTOR = "quaternion_vector"  # 2 * vec(q), first-order angle-axis
    ANGLE_AXIS = "angle_axis"  # exact angle-axis vector


class LandmarkCostConfig(BaseModel):
    """Landmark cost function configuration."""
    rotation_error: RotationErrorType = Field(
        default=RotationErrorType.QUATERNION_VECTOR,
        description="Rotation error representation"
    )
    slerp_linear_threshold: float = Field(
        1e-5,
        gt=0,
        lt=1,
        description="Fall back to linear quaternion interpolation when |cos(theta)| >= 1 - threshold"
    )
    reject_extrapolation: bool = Field(
        False,
        description="Raise instead of warn when the observation lies outside the node interval"
    )
    jit: bool = Field(
        True,
        description="Compile residual and Jacobian evaluation with jax.jit"
    )


class GradientCheckConfig(BaseModel):
    """Finite-difference gradient check configuration."""
    step: float = Field(1e-6, gt=0, le=1e-2, description="Central difference step size")
    relative_tolerance: float = Field(1e-6, ge=0, description="Relative tolerance per Jacobian entry")
    absolute_tolerance: float = Field(1e-6, ge=0, description="Absolute tolerance per Jacobian entry")


class ResidualToolConfig(BaseModel):
    """Complete configuration of the residual tooling."""
    cost: LandmarkCostConfig = Field(default_factory=LandmarkCostConfig)
    gradient_check: GradientCheckConfig = Field(default_factory=GradientCheckConfig)
    log_level: str = Field("WARNING", description="Logging level name")

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f'Unknown log level: {v}')
        return level


def load_tool_config(path: Union[str, Path]) -> ResidualToolConfig:
    """
    Load tool configuration from YAML file (supports !include).

    A file without any tool-level key is read as a bare cost section.
    """
    data = ConfigLoader().load_config(path)
    if data and not set(data) & set(ResidualToolConfig.model_fields):
        data = {"cost": data}
    return ResidualToolConfig(**data)


def save_config(config: BaseModel, path: Union[str, Path]) -> None:
    """Save configuration to YAML file."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    # Convert to dict and handle enums
    data = config.model_dump(mode='json')

    with open(path, 'w') as f:
        yaml.safe_dump(data, f, sort_keys=False)
