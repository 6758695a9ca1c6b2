import math
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field


class SolverStrategy(str, Enum):
    NORMAL = "normal"
    SVD = "svd"


class ResolverSettings(BaseModel):
    """Tuning values consumed by the resolver, fixed for the loop's lifetime."""

    model_config = ConfigDict(frozen=True)

    damping: float = Field(default=0.01, ge=0.0)
    epsilon: float = Field(default=0.01, ge=0.0)
    strategy: SolverStrategy = SolverStrategy.NORMAL
    # Per-tick joint delta limit [rad], not a rate.
    max_joint_step: float = Field(default=math.radians(1.0), gt=0.0)
    max_linear_speed: float = Field(default=0.02, gt=0.0)  # [m/sec]
    max_angular_speed: float = Field(default=math.radians(10.0), gt=0.0)  # [rad/sec]
    arrival_tolerance: float = Field(default=0.01, gt=0.0)
    rate_hz: float = Field(default=512.0, gt=0.0)
