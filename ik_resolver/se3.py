"""
Rigid-body algebra for the resolver.

Twists are 6-vectors ordered ``(wx, wy, wz, vx, vy, vz)``: angular part first,
then linear. Transforms are 4x4 homogeneous numpy matrices and quaternions use
the ``(w, x, y, z)`` layout of :mod:`transforms3d`.
"""

from dataclasses import dataclass

import numpy as np
from transforms3d.quaternions import mat2quat, quat2mat

# Angles closer than this to 0 or pi take the dedicated log branches.
SMALL_ANGLE = 1e-6
# Below this half angle slerp degrades to a normalized lerp.
SLERP_LERP_ANGLE = 1e-3


@dataclass(frozen=True, eq=False)
class Pose:
    """Position plus unit quaternion ``(w, x, y, z)``.

    Both arrays are copied and made read-only, so a Pose can be handed across
    threads as a snapshot.
    """

    position: np.ndarray
    orientation: np.ndarray

    def __post_init__(self):
        position = np.array(self.position, dtype=float).reshape(3)
        orientation = np.array(self.orientation, dtype=float).reshape(4)
        norm = np.linalg.norm(orientation)
        if norm == 0.0:
            raise ValueError("Pose orientation must be a non-zero quaternion")
        orientation = orientation / norm
        position.setflags(write=False)
        orientation.setflags(write=False)
        object.__setattr__(self, "position", position)
        object.__setattr__(self, "orientation", orientation)

    @classmethod
    def identity(cls) -> "Pose":
        return cls(np.zeros(3), np.array([1.0, 0.0, 0.0, 0.0]))

    @classmethod
    def from_matrix(cls, T: np.ndarray) -> "Pose":
        """Convert a 4x4 homogeneous transform to a Pose."""
        return cls(T[:3, 3], mat2quat(T[:3, :3]))

    def to_matrix(self) -> np.ndarray:
        """Convert the Pose to a 4x4 homogeneous transform."""
        T = np.eye(4)
        T[:3, :3] = quat2mat(self.orientation)
        T[:3, 3] = self.position
        return T

    def __repr__(self) -> str:
        p = np.round(self.position, 4).tolist()
        q = np.round(self.orientation, 4).tolist()
        return f"Pose(position={p}, orientation={q})"


def skew(v: np.ndarray) -> np.ndarray:
    """Return the 3x3 skew-symmetric matrix ``[v]x``."""
    return np.array(
        [
            [0.0, -v[2], v[1]],
            [v[2], 0.0, -v[0]],
            [-v[1], v[0], 0.0],
        ]
    )


def vee(S: np.ndarray) -> np.ndarray:
    """Inverse of :func:`skew`."""
    return np.array([S[2, 1], S[0, 2], S[1, 0]])


def inverse_transform(T: np.ndarray) -> np.ndarray:
    """Rigid inverse ``[[R^T, -R^T p], [0, 1]]``, no general matrix inversion."""
    R_t = T[:3, :3].T
    return np.block(
        [
            [R_t, -(R_t @ T[:3, 3])[:, np.newaxis]],
            [np.zeros((1, 3)), np.ones((1, 1))],
        ]
    )


def relative_transform(target: np.ndarray, reference: np.ndarray) -> np.ndarray:
    """Express ``target`` in the ``reference`` frame: ``inv(reference) @ target``."""
    return inverse_transform(reference) @ target


def left_jacobian_inverse(theta: float, axis: np.ndarray) -> np.ndarray:
    """
    Inverse of the SE(3) left Jacobian for a rotation of ``theta`` about a unit ``axis``.

    Maps the translation of a transform to the linear part of its twist. Tends
    to the identity as ``theta`` goes to zero and stays finite at ``theta = pi``.
    """
    if theta < SMALL_ANGLE:
        return np.eye(3)
    K = skew(axis)
    half = 0.5 * theta
    return (
        np.eye(3) - half * K + (1.0 - half * np.cos(half) / np.sin(half)) * (K @ K)
    )


def _axis_near_pi(R: np.ndarray) -> np.ndarray:
    # R ~ 2 w w^T - I, so each |w_i| comes from the diagonal and the relative
    # signs from the symmetric off-diagonal terms of the largest component.
    diag = np.clip((1.0 + np.diag(R)) * 0.5, 0.0, None)
    k = int(np.argmax(diag))
    axis = np.zeros(3)
    axis[k] = np.sqrt(diag[k])
    for j in range(3):
        if j != k:
            axis[j] = (R[k, j] + R[j, k]) / (4.0 * axis[k])
    axis /= np.linalg.norm(axis)
    # Off exactly pi the antisymmetric part still carries the true sign.
    if np.dot(vee(R - R.T), axis) < 0.0:
        axis = -axis
    return axis


def log(T: np.ndarray) -> np.ndarray:
    """
    Matrix logarithm of an SE(3) element.

    Args:
        T: 4x4 homogeneous transform.

    Returns:
        np.ndarray: Twist ``(w * theta, v)`` that exponentiates to ``T`` in unit time.
    """
    R = T[:3, :3]
    p = T[:3, 3]
    cos_theta = np.clip((np.trace(R) - 1.0) * 0.5, -1.0, 1.0)
    theta = float(np.arccos(cos_theta))

    if theta < SMALL_ANGLE:
        # Pure translation: G^-1 is the identity in the limit.
        return np.concatenate([np.zeros(3), p])

    if np.pi - theta < SMALL_ANGLE:
        axis = _axis_near_pi(R)
    else:
        axis = vee(R - R.T) / (2.0 * np.sin(theta))

    v = left_jacobian_inverse(theta, axis) @ p
    return np.concatenate([axis * theta, v])


def exp(twist: np.ndarray) -> np.ndarray:
    """Exponential map from a twist ``(w * theta, v)`` to a 4x4 transform."""
    twist = np.asarray(twist, dtype=float)
    w, v = twist[:3], twist[3:]
    theta = np.linalg.norm(w)
    T = np.eye(4)

    if theta < SMALL_ANGLE:
        T[:3, 3] = v
        return T

    K = skew(w / theta)
    K2 = K @ K
    s, c = np.sin(theta), np.cos(theta)
    T[:3, :3] = np.eye(3) + s * K + (1.0 - c) * K2
    T[:3, 3] = (np.eye(3) + (1.0 - c) / theta * K + (theta - s) / theta * K2) @ v
    return T


def adjoint(T: np.ndarray) -> np.ndarray:
    """6x6 adjoint ``[[R, 0], [[p]x R, R]]`` transporting twists through ``T``."""
    R, p = T[:3, :3], T[:3, 3]
    Ad = np.zeros((6, 6))
    Ad[:3, :3] = R
    Ad[3:, :3] = skew(p) @ R
    Ad[3:, 3:] = R
    return Ad


def align_quaternion(q: np.ndarray, reference: np.ndarray) -> np.ndarray:
    """Unit copy of ``q`` on the same hemisphere as ``reference`` (q and -q are one rotation)."""
    q = np.asarray(q, dtype=float)
    q = q / np.linalg.norm(q)
    return -q if np.dot(q, reference) < 0.0 else q


def quaternion_angle(q1: np.ndarray, q2: np.ndarray) -> float:
    """Geodesic (shortest path) rotation angle between two quaternions, in [0, pi]."""
    q1 = np.asarray(q1, dtype=float) / np.linalg.norm(q1)
    cos_half = np.dot(q1, align_quaternion(q2, q1))
    return float(2.0 * np.arccos(min(cos_half, 1.0)))


def slerp(q1: np.ndarray, q2: np.ndarray, t: float) -> np.ndarray:
    """
    Shortest-path spherical interpolation from ``q1`` (t = 0) to ``q2`` (t = 1).

    Nearly identical orientations fall back to a normalized lerp, where the
    ``sin`` weights lose precision.
    """
    q1 = np.asarray(q1, dtype=float) / np.linalg.norm(q1)
    q2 = align_quaternion(q2, q1)
    half_angle = 0.5 * quaternion_angle(q1, q2)

    if half_angle < SLERP_LERP_ANGLE:
        blended = (1.0 - t) * q1 + t * q2
    else:
        blended = (
            np.sin((1.0 - t) * half_angle) * q1 + np.sin(t * half_angle) * q2
        ) / np.sin(half_angle)
    return blended / np.linalg.norm(blended)
