import math
from dataclasses import dataclass
from .config import ResolverSettings, SolverStrategy


@dataclass
class CommonCLI:
    damping: float = 0.01
    """Damping factor lambda of the pseudo-inverse."""
    epsilon: float = 0.01
    """Singular values above this are inverted undamped (svd strategy)."""
    strategy: SolverStrategy = SolverStrategy.NORMAL
    """Pseudo-inverse strategy."""
    max_joint_step_deg: float = 1.0
    """Per-tick joint step limit [deg]."""
    max_linear_vel: float = 0.02
    """Target linear speed [m/sec]."""
    max_rot_deg_vel: float = 10.0
    """Target angular speed [deg/sec]."""
    tolerance: float = 0.01
    """Waypoint arrival tolerance."""
    rate: float = 512.0
    """Control loop rate [Hz]."""

    def to_settings(self) -> ResolverSettings:
        return ResolverSettings(
            damping=self.damping,
            epsilon=self.epsilon,
            strategy=self.strategy,
            max_joint_step=math.radians(self.max_joint_step_deg),
            max_linear_speed=self.max_linear_vel,
            max_angular_speed=math.radians(self.max_rot_deg_vel),
            arrival_tolerance=self.tolerance,
            rate_hz=self.rate,
        )
