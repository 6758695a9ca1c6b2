from dataclasses import dataclass
import numpy as np
from loguru import logger
from ik_resolver.config import ResolverSettings
from ik_resolver.kinematics import BaseKinematics
from ik_resolver.pseudo_inverse import DampedPseudoInverseSolver
from ik_resolver.se3 import Pose, adjoint, log, relative_transform
from ik_resolver.trajectory import TargetTrajectory


class NonFiniteError(ValueError):
    """A NaN or Inf reached the resolver from its inputs or its own computation."""


@dataclass
class TickResult:
    """Everything computed during one resolver tick.

    Attributes:
        joints: Updated joint vector (previous joints plus ``step``).
        step: Joint delta after per-joint clamping.
        raw_step: Joint delta returned by the solver, before clamping.
        current_pose: End-effector pose at the previous joints.
        target_pose: Intermediate target produced by the trajectory.
        body_twist_error: Error twist in the end-effector frame.
        spatial_twist_error: Error twist transported to the reference frame.
        residual: ``J @ raw_step - spatial_twist_error``, zero for an exact solve.
    """

    joints: np.ndarray
    step: np.ndarray
    raw_step: np.ndarray
    current_pose: Pose
    target_pose: Pose
    body_twist_error: np.ndarray
    spatial_twist_error: np.ndarray
    residual: np.ndarray


def _check_finite(name: str, value: np.ndarray) -> None:
    if not np.all(np.isfinite(value)):
        logger.error(f"[IKResolver] Non-finite {name}: {value}")
        raise NonFiniteError(f"Non-finite {name}")


class IKResolver:
    """
    Velocity-resolved IK step towards the moving target.

    The resolver keeps no state of its own besides the trajectory; the joint
    vector is passed in and returned by :meth:`tick`, so the loop can restart
    from any configuration.
    """

    kinematics: BaseKinematics
    trajectory: TargetTrajectory
    solver: DampedPseudoInverseSolver
    max_joint_step: float

    def __init__(
        self,
        kinematics: BaseKinematics,
        trajectory: TargetTrajectory,
        solver: DampedPseudoInverseSolver,
        max_joint_step: float,
    ):
        """
        Initialize the resolver.

        Args:
            kinematics: Forward kinematics and Jacobian provider.
            trajectory: Source of the intermediate target pose.
            solver: Damped pseudo-inverse solver.
            max_joint_step: Per-tick joint delta limit [rad].
        """
        if max_joint_step <= 0.0:
            raise ValueError("max_joint_step must be positive")
        self.kinematics = kinematics
        self.trajectory = trajectory
        self.solver = solver
        self.max_joint_step = max_joint_step

    @classmethod
    def from_settings(
        cls,
        kinematics: BaseKinematics,
        trajectory: TargetTrajectory,
        settings: ResolverSettings,
    ) -> "IKResolver":
        return cls(
            kinematics,
            trajectory,
            DampedPseudoInverseSolver.from_settings(settings),
            settings.max_joint_step,
        )

    def tick(self, joints: np.ndarray) -> TickResult:
        """
        Execute one control step from ``joints``.

        Args:
            joints: Current joint vector of shape (N,).

        Returns:
            TickResult: The integrated joint vector and per-tick diagnostics.

        Raises:
            NonFiniteError: If any input or intermediate value is NaN or Inf.
            ValueError: If the Jacobian shape does not match the joint vector.
        """
        q = np.asarray(joints, dtype=float)
        _check_finite("joint vector", q)

        current_pose = self.kinematics.forward_kinematics(q)
        current_T = current_pose.to_matrix()
        _check_finite("end-effector pose", current_T)

        jacobian = np.asarray(self.kinematics.jacobian(q), dtype=float)
        if jacobian.shape != (6, q.shape[0]):
            raise ValueError(
                f"Jacobian shape {jacobian.shape} does not match {q.shape[0]} joints"
            )
        _check_finite("Jacobian", jacobian)

        target_pose = self.trajectory.update()

        body_error = log(relative_transform(target_pose.to_matrix(), current_T))
        # current_T is the end-effector pose seen from the origin, the frame
        # the Jacobian maps into.
        origin_to_eef = relative_transform(current_T, np.eye(4))
        spatial_error = adjoint(origin_to_eef) @ body_error

        raw_step = self.solver.solve(jacobian, spatial_error)
        _check_finite("joint step", raw_step)

        step = np.clip(raw_step, -self.max_joint_step, self.max_joint_step)
        new_joints = q + step

        return TickResult(
            joints=new_joints,
            step=step,
            raw_step=raw_step,
            current_pose=current_pose,
            target_pose=target_pose,
            body_twist_error=body_error,
            spatial_twist_error=spatial_error,
            residual=jacobian @ raw_step - spatial_error,
        )
