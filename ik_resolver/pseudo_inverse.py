import numpy as np
from loguru import logger
from ik_resolver.config import ResolverSettings, SolverStrategy

TWIST_DIM = 6


def damped_pinv_normal(jacobian: np.ndarray, damping: float) -> np.ndarray:
    """
    Damped pseudo-inverse through the regularized normal equations.

    Tall Jacobians use the left inverse ``(J^T J + l^2 I)^-1 J^T``, fat
    (redundant) ones the right inverse ``J^T (J J^T + l^2 I)^-1``.

    Raises:
        np.linalg.LinAlgError: If the regularized normal matrix is exactly
            singular, which can only happen with ``damping == 0``.
    """
    J = np.asarray(jacobian, dtype=float)
    rows, cols = J.shape
    lam2 = damping * damping
    if rows >= cols:
        lhs = J.T @ J + lam2 * np.eye(cols)
        return np.linalg.solve(lhs, J.T)
    # (J J^T + l^2 I) is symmetric, so J^T A^-1 == (A^-1 J)^T.
    rhs = J @ J.T + lam2 * np.eye(rows)
    return np.linalg.solve(rhs, J).T


def damped_pinv_svd(jacobian: np.ndarray, epsilon: float, damping: float) -> np.ndarray:
    """
    Damped pseudo-inverse with singular value filtering.

    Singular values above ``epsilon`` are inverted exactly; the rest are
    replaced by ``s / (s^2 + l^2)`` so only ill-conditioned directions are damped.
    """
    J = np.asarray(jacobian, dtype=float)
    U, s, Vt = np.linalg.svd(J, full_matrices=False)

    damped_denom = s * s + damping * damping
    damped = np.divide(s, damped_denom, out=np.zeros_like(s), where=damped_denom > 0)
    exact = np.divide(1.0, s, out=np.zeros_like(s), where=s != 0)
    inv_s = np.where(np.abs(s) > epsilon, exact, damped)

    return Vt.T @ np.diag(inv_s) @ U.T


class DampedPseudoInverseSolver:
    """
    Singularity-robust inverse of the manipulator Jacobian.

    Wraps the two damping strategies behind one interface. The strategy is
    fixed at construction, so the choice is deterministic for every call.
    Rank-deficient Jacobians never raise: the loss of rank is absorbed by
    damping at the cost of tracking accuracy.
    """

    strategy: SolverStrategy
    damping: float
    epsilon: float

    def __init__(
        self,
        strategy: SolverStrategy = SolverStrategy.NORMAL,
        damping: float = 0.01,
        epsilon: float = 0.01,
    ):
        if damping < 0.0 or epsilon < 0.0:
            raise ValueError("damping and epsilon must be non-negative")
        self.strategy = SolverStrategy(strategy)
        self.damping = damping
        self.epsilon = epsilon
        self._warned_singular = False

    @classmethod
    def from_settings(cls, settings: ResolverSettings) -> "DampedPseudoInverseSolver":
        return cls(settings.strategy, settings.damping, settings.epsilon)

    def pseudo_inverse(self, jacobian: np.ndarray) -> np.ndarray:
        """
        Compute the damped pseudo-inverse of a Jacobian.

        Args:
            jacobian: Matrix of shape (6, N).

        Returns:
            np.ndarray: Matrix of shape (N, 6).
        """
        J = np.asarray(jacobian, dtype=float)
        if J.ndim != 2 or J.shape[0] != TWIST_DIM:
            raise ValueError(
                f"Jacobian must have shape ({TWIST_DIM}, N), got {J.shape}"
            )

        if self.strategy == SolverStrategy.SVD:
            return damped_pinv_svd(J, self.epsilon, self.damping)

        try:
            return damped_pinv_normal(J, self.damping)
        except np.linalg.LinAlgError:
            if not self._warned_singular:
                logger.warning(
                    "[DampedPseudoInverseSolver] Singular normal matrix without damping, "
                    "falling back to numpy.linalg.pinv"
                )
                self._warned_singular = True
            return np.linalg.pinv(J)

    def solve(self, jacobian: np.ndarray, twist: np.ndarray) -> np.ndarray:
        """Map a spatial twist to joint velocities."""
        return self.pseudo_inverse(jacobian) @ np.asarray(twist, dtype=float)
