import casadi as ca
import numpy as np


def is_symmetric(A, tol=1e-12):
    A = ca.DM(A)
    return A.size1() == A.size2() and float(ca.norm_inf(A - A.T)) <= tol


def is_spd_strict(A, sym_tol=1e-12):
    """
    Test the joint space inertia matrix for SPD:
    - Require near-symmetry (no symmetrisation step)
    - Cholesky on A (no jitter)
    """
    if not is_symmetric(A, sym_tol):
        return False
    try:
        ca.chol(ca.DM(A))   # will fail unless A is SPD
        return True
    except RuntimeError:
        return False


def min_eigval(A):
    M = np.array(A)
    w = np.linalg.eigvalsh(M)  # symmetric eigensolver
    return float(w.min())


def is_spd_eigs(A, sym_tol=1e-12, eig_tol=0.0):
    if not is_symmetric(A, sym_tol):
        return False
    return min_eigval(A) > eig_tol


def is_invertible(A, cond_tol=1e12):
    """Numerical invertibility of a square block, e.g. the floating base
    block M[0:6, 0:6] the flow map solves with."""
    M = np.array(A)
    return M.shape[0] == M.shape[1] and np.linalg.cond(M) < cond_tol
