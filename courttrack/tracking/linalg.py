"""
Small Fixed-Size Linear Algebra Kernel

Helpers shared by the motion filters. Matrices are float64 numpy arrays
of at most 4x4, so everything here is plain dense math.

Only the 2x2 inverse is hand-written: the innovation covariance is always
2x2 and a singular one must be reported (as None) rather than raised.
"""

from typing import Optional, Sequence

import numpy as np

SINGULAR_EPS = 1e-10


def as_matrix(values) -> np.ndarray:
    """Coerce nested sequences to a float64 array."""
    return np.asarray(values, dtype=np.float64)


def mat_mul(A: np.ndarray, B: np.ndarray) -> np.ndarray:
    return A @ B


def mat_vec(A: np.ndarray, x: np.ndarray) -> np.ndarray:
    return A @ x


def transpose(A: np.ndarray) -> np.ndarray:
    return A.T.copy()


def mat_add(A: np.ndarray, B: np.ndarray) -> np.ndarray:
    return A + B


def mat_sub(A: np.ndarray, B: np.ndarray) -> np.ndarray:
    return A - B


def inverse_2x2(A: np.ndarray, eps: float = SINGULAR_EPS) -> Optional[np.ndarray]:
    """
    Closed-form inverse of a 2x2 matrix.

    Args:
        A: 2x2 matrix
        eps: Determinant magnitude below which A is treated as singular

    Returns:
        Inverse of A, or None if A is singular
    """
    det = A[0, 0] * A[1, 1] - A[0, 1] * A[1, 0]
    if not np.isfinite(det) or abs(det) <= eps:
        return None

    inv_det = 1.0 / det
    return np.array(
        [[A[1, 1] * inv_det, -A[0, 1] * inv_det], [-A[1, 0] * inv_det, A[0, 0] * inv_det]],
        dtype=np.float64,
    )


def clamp_diagonal(P: np.ndarray, upper_bounds: Sequence[float]) -> np.ndarray:
    """Clamp diagonal entries of P in place to finite upper bounds."""
    for i, bound in enumerate(upper_bounds):
        if not np.isfinite(P[i, i]) or P[i, i] > bound:
            P[i, i] = bound
    return P
