"""
Singularity-robust, velocity-resolved inverse kinematics.

This package drives a manipulator towards a moving Cartesian target with a
damped pseudo-inverse of the Jacobian, staying numerically stable through
kinematic singularities.

Main components:
- BaseKinematics: Abstract robot model providing forward kinematics and the spatial Jacobian.
- DampedPseudoInverseSolver: Normal-equations or SVD-filtered damped pseudo-inverse.
- WaypointPair / TargetTrajectory: Round-trip target shuttling between two waypoints.
- IKResolver: One control tick from joints to clamped, integrated joints.
- ResolverRunner: Fixed-rate scheduler publishing every tick to subscribers.

Example:
    ```python
    from ik_resolver import (
        IKResolver, ResolverRunner, ResolverSettings, ScrewChainKinematics,
        TargetTrajectory, WaypointPair,
    )

    settings = ResolverSettings()
    robot = ScrewChainKinematics.puma560()
    q0 = robot.get_default_config()

    waypoints = WaypointPair()
    waypoints.initialize(pose_a, pose_b)  # or set_by_name() from a UI callback

    trajectory = TargetTrajectory.from_settings(
        waypoints, robot.forward_kinematics(q0), settings
    )
    resolver = IKResolver.from_settings(robot, trajectory, settings)

    runner = ResolverRunner(resolver, q0, rate_hz=settings.rate_hz)
    runner.subscribe(lambda result: publish(result.joints))
    runner.start()
    ```
"""

from ik_resolver.config import ResolverSettings, SolverStrategy
from ik_resolver.se3 import Pose
from ik_resolver.pseudo_inverse import DampedPseudoInverseSolver
from ik_resolver.waypoints import WaypointPair
from ik_resolver.trajectory import TargetTrajectory
from ik_resolver.kinematics import BaseKinematics, ScrewChainKinematics
from ik_resolver.resolver import IKResolver, NonFiniteError, TickResult
from ik_resolver.runner import ResolverRunner

__all__ = [
    "ResolverSettings",
    "SolverStrategy",
    "Pose",
    "DampedPseudoInverseSolver",
    "WaypointPair",
    "TargetTrajectory",
    "BaseKinematics",
    "ScrewChainKinematics",
    "IKResolver",
    "NonFiniteError",
    "TickResult",
    "ResolverRunner",
]
