import numpy as np
import pytest
from loguru import logger

from ik_resolver.config import ResolverSettings, SolverStrategy
from ik_resolver.pseudo_inverse import (
    DampedPseudoInverseSolver,
    damped_pinv_normal,
    damped_pinv_svd,
)


def _well_conditioned(n_joints: int, seed: int = 0) -> np.ndarray:
    """6 x n_joints Jacobian with singular values between 1 and 3."""
    rng = np.random.default_rng(seed)
    U, _ = np.linalg.qr(rng.normal(size=(6, 6)))
    V, _ = np.linalg.qr(rng.normal(size=(n_joints, n_joints)))
    k = min(6, n_joints)
    s = np.linspace(1.0, 3.0, k)
    return U[:, :k] @ np.diag(s) @ V[:, :k].T


def _rank_deficient() -> np.ndarray:
    J = _well_conditioned(6, seed=1)
    J[:, 5] = J[:, 3]
    J[2, :] = 0.0
    return J


@pytest.mark.parametrize("n_joints", [3, 6, 7])
@pytest.mark.parametrize("strategy", list(SolverStrategy))
def test_converges_to_moore_penrose(n_joints, strategy):
    J = _well_conditioned(n_joints)
    solver = DampedPseudoInverseSolver(strategy, damping=1e-7, epsilon=1e-3)
    np.testing.assert_allclose(
        solver.pseudo_inverse(J), np.linalg.pinv(J), atol=1e-6
    )


@pytest.mark.parametrize("strategy", list(SolverStrategy))
def test_rank_deficient_stays_finite(strategy):
    J = _rank_deficient()
    solver = DampedPseudoInverseSolver(strategy, damping=0.01, epsilon=0.01)
    pinv = solver.pseudo_inverse(J)
    assert pinv.shape == (6, 6)
    assert np.all(np.isfinite(pinv))


@pytest.mark.parametrize("strategy", list(SolverStrategy))
def test_zero_jacobian_gives_zero_inverse(strategy):
    solver = DampedPseudoInverseSolver(strategy, damping=0.1)
    np.testing.assert_allclose(solver.pseudo_inverse(np.zeros((6, 4))), np.zeros((4, 6)))


def test_output_shape_is_joints_by_twist():
    for n_joints in (2, 6, 9):
        J = _well_conditioned(n_joints)
        for strategy in SolverStrategy:
            solver = DampedPseudoInverseSolver(strategy)
            assert solver.pseudo_inverse(J).shape == (n_joints, 6)


def test_normal_equations_tall_and_fat_forms():
    lam = 0.3
    tall = _well_conditioned(3)
    expected_tall = np.linalg.inv(tall.T @ tall + lam**2 * np.eye(3)) @ tall.T
    np.testing.assert_allclose(damped_pinv_normal(tall, lam), expected_tall, atol=1e-12)

    fat = _well_conditioned(8)
    expected_fat = fat.T @ np.linalg.inv(fat @ fat.T + lam**2 * np.eye(6))
    np.testing.assert_allclose(damped_pinv_normal(fat, lam), expected_fat, atol=1e-12)


def test_svd_damps_only_small_singular_values():
    J = np.zeros((6, 2))
    J[0, 0] = 2.0
    J[1, 1] = 1e-4
    pinv = damped_pinv_svd(J, epsilon=0.01, damping=0.1)
    assert pinv[0, 0] == pytest.approx(0.5)
    assert pinv[1, 1] == pytest.approx(1e-4 / (1e-8 + 0.01))


def test_svd_threshold_extremes():
    J = np.zeros((6, 1))
    J[3, 0] = 2.0
    lam = 0.5

    # Every singular value filtered: plain damped least squares.
    pinv = damped_pinv_svd(J, epsilon=np.inf, damping=lam)
    assert pinv[0, 3] == pytest.approx(2.0 / (4.0 + lam**2))
    np.testing.assert_allclose(pinv, damped_pinv_normal(J, lam), atol=1e-12)

    # No threshold: non-zero singular values are inverted exactly.
    pinv = damped_pinv_svd(J, epsilon=0.0, damping=lam)
    assert pinv[0, 3] == pytest.approx(0.5)


def test_svd_without_damping_drops_zero_singular_values():
    J = np.zeros((6, 2))
    J[0, 0] = 4.0
    pinv = damped_pinv_svd(J, epsilon=0.0, damping=0.0)
    assert np.all(np.isfinite(pinv))
    assert pinv[0, 0] == pytest.approx(0.25)
    assert pinv[1, 1] == 0.0


def test_undamped_singular_normal_falls_back_to_pinv():
    J = np.zeros((6, 2))
    J[0, 0] = 1.0
    solver = DampedPseudoInverseSolver(SolverStrategy.NORMAL, damping=0.0)

    logs = []
    handler_id = logger.add(lambda msg: logs.append(msg), level="WARNING")
    try:
        first = solver.pseudo_inverse(J)
        solver.pseudo_inverse(J)
    finally:
        logger.remove(handler_id)

    np.testing.assert_allclose(first, np.linalg.pinv(J))
    assert sum("falling back" in str(m) for m in logs) == 1


def test_solve_applies_pseudo_inverse():
    J = _well_conditioned(7)
    twist = np.array([0.1, -0.2, 0.0, 0.01, 0.02, -0.03])
    solver = DampedPseudoInverseSolver(SolverStrategy.SVD, damping=0.05)
    np.testing.assert_allclose(
        solver.solve(J, twist), solver.pseudo_inverse(J) @ twist
    )


def test_rejects_wrong_shape():
    solver = DampedPseudoInverseSolver()
    with pytest.raises(ValueError):
        solver.pseudo_inverse(np.zeros((5, 3)))
    with pytest.raises(ValueError):
        solver.pseudo_inverse(np.zeros(6))


def test_rejects_negative_parameters():
    with pytest.raises(ValueError):
        DampedPseudoInverseSolver(damping=-1.0)
    with pytest.raises(ValueError):
        DampedPseudoInverseSolver(epsilon=-1.0)


def test_from_settings():
    settings = ResolverSettings(strategy="svd", damping=0.2, epsilon=0.05)
    solver = DampedPseudoInverseSolver.from_settings(settings)
    assert solver.strategy == SolverStrategy.SVD
    assert solver.damping == 0.2
    assert solver.epsilon == 0.05
