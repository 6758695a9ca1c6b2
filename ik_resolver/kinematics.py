import numpy as np
from abc import ABC, abstractmethod
from ik_resolver.se3 import Pose, adjoint, exp


class BaseKinematics(ABC):
    """
    Abstract robot model consumed by the resolver.

    Implementations wrap whatever modeling toolkit provides the kinematics.
    Both methods must be pure functions of the joint vector.
    """

    @property
    @abstractmethod
    def joint_count(self) -> int:
        """
        Number of actuated joints N.
        """
        pass  # pragma: no cover

    @abstractmethod
    def forward_kinematics(self, config: np.ndarray) -> Pose:
        """
        Compute the end-effector pose in the reference (origin) frame.

        Args:
            config: Joint vector of shape (N,).

        Returns:
            Pose: The end-effector pose.
        """
        pass  # pragma: no cover

    @abstractmethod
    def jacobian(self, config: np.ndarray) -> np.ndarray:
        """
        Compute the spatial Jacobian.

        Args:
            config: Joint vector of shape (N,).

        Returns:
            np.ndarray: Matrix of shape (6, N), angular rows first, mapping joint
                velocities to a twist expressed in the reference frame.
        """
        pass  # pragma: no cover

    def get_default_config(self) -> np.ndarray:
        """
        Get the default configuration for the robot.
        """
        return np.zeros(self.joint_count)


def revolute_screw(axis, point) -> np.ndarray:
    """Space-frame screw axis of a revolute joint about ``axis`` through ``point``."""
    w = np.asarray(axis, dtype=float)
    w = w / np.linalg.norm(w)
    q = np.asarray(point, dtype=float)
    return np.concatenate([w, -np.cross(w, q)])


class ScrewChainKinematics(BaseKinematics):
    """
    Serial chain described by product of exponentials.

    ``T(q) = exp(S_1 q_1) ... exp(S_N q_N) M`` with space-frame screw axes
    ``S_i`` and home pose ``M``.
    """

    screw_axes: np.ndarray
    home: np.ndarray

    def __init__(self, screw_axes: np.ndarray, home: np.ndarray):
        screw_axes = np.asarray(screw_axes, dtype=float)
        if screw_axes.ndim != 2 or screw_axes.shape[0] != 6:
            raise ValueError(f"screw_axes must have shape (6, N), got {screw_axes.shape}")
        self.screw_axes = screw_axes
        self.home = np.asarray(home, dtype=float)

    @classmethod
    def puma560(cls) -> "ScrewChainKinematics":
        """
        PUMA 560 style elbow arm with a spherical wrist.

        The zero configuration is singular: joints 4 and 6 are collinear.
        """
        d1, a2, d4, tool = 0.67, 0.432, 0.432, 0.056
        wrist = (a2 + d4, 0.0, d1)
        screws = [
            revolute_screw((0, 0, 1), (0, 0, 0)),
            revolute_screw((0, 1, 0), (0, 0, d1)),
            revolute_screw((0, 1, 0), (a2, 0, d1)),
            revolute_screw((1, 0, 0), wrist),
            revolute_screw((0, 1, 0), wrist),
            revolute_screw((1, 0, 0), wrist),
        ]
        home = np.eye(4)
        home[:3, 3] = [a2 + d4 + tool, 0.0, d1]
        return cls(np.stack(screws, axis=1), home)

    @property
    def joint_count(self) -> int:
        return self.screw_axes.shape[1]

    def _check_config(self, config: np.ndarray) -> np.ndarray:
        q = np.asarray(config, dtype=float)
        if q.shape != (self.joint_count,):
            raise ValueError(
                f"Expected joint vector of shape ({self.joint_count},), got {q.shape}"
            )
        return q

    def forward_kinematics(self, config: np.ndarray) -> Pose:
        q = self._check_config(config)
        T = np.eye(4)
        for i in range(self.joint_count):
            T = T @ exp(self.screw_axes[:, i] * q[i])
        return Pose.from_matrix(T @ self.home)

    def jacobian(self, config: np.ndarray) -> np.ndarray:
        q = self._check_config(config)
        J = np.zeros((6, self.joint_count))
        T = np.eye(4)
        for i in range(self.joint_count):
            J[:, i] = adjoint(T) @ self.screw_axes[:, i]
            T = T @ exp(self.screw_axes[:, i] * q[i])
        return J
