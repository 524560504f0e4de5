"""Solver options and solution polishing for quadratic programs."""

from __future__ import annotations

import dataclasses
import warnings
from dataclasses import dataclass
from typing import Callable

import numpy as np
import scipy.linalg as sla
import scipy.sparse as sp
import scipy.sparse.linalg as spla

from .qp import QPSolution, QuadraticProgram


@dataclass
class QPSolverParams:
    """Options for the quadratic program solver."""

    verbose: bool = False
    alpha: float = 1.6
    rho: float = 0.1
    sigma: float = 1e-6
    scaling: bool = True
    eps_abs: float = 1e-3
    eps_rel: float = 1e-3
    eps_primal_inf: float = 1e-4
    eps_dual_inf: float = 1e-4
    max_iter: int | None = None
    max_time: float | None = None
    """Maximal solution time in seconds (no limit if None)."""
    stop_check_iter: int = 25
    polish: bool = True
    polish_iter: int = 5
    delta: float = 1e-6


_ACTIVE_TOL = 100 * np.finfo(float).eps


def _dense_system(pbm, c, sx, sy, active, delta):
    n = pbm.num_variables()
    k = active.size
    p_bar = c * sx[:, None] * pbm.P * sx[None, :]
    p_sym = np.triu(p_bar) + np.triu(p_bar, 1).T
    a_sel = sy[active][:, None] * pbm.A[active, :] * sx[None, :]
    kkt = np.block([[p_sym, a_sel.T], [a_sel, np.zeros((k, k))]])
    perturbed = kkt + np.diag(np.concatenate([np.full(n, delta), np.full(k, -delta)]))
    try:
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", sla.LinAlgWarning)
            factor = sla.lu_factor(perturbed)
    except (ValueError, np.linalg.LinAlgError):
        return kkt, None
    lu = factor[0]
    if not np.all(np.isfinite(lu)) or np.any(np.diag(lu) == 0):
        return kkt, None
    return kkt, lambda rhs: sla.lu_solve(factor, rhs)


def _sparse_system(pbm, c, sx, sy, active, delta):
    n = pbm.num_variables()
    k = active.size
    p_bar = sp.csc_matrix(pbm.P.multiply(sx[:, None]).multiply(sx[None, :]) * c)
    p_sym = sp.triu(p_bar) + sp.triu(p_bar, 1).T
    if k > 0:
        a_sel = sp.csr_matrix(pbm.A[active, :].multiply(sy[active][:, None]).multiply(sx[None, :]))
        kkt = sp.bmat([[p_sym, a_sel.T], [a_sel, None]], format="csc")
    else:
        kkt = sp.csc_matrix(p_sym)
    perturbed = kkt + sp.diags(np.concatenate([np.full(n, delta), np.full(k, -delta)]))
    try:
        factor = spla.splu(sp.csc_matrix(perturbed))
    except RuntimeError:
        return kkt, None
    return kkt, factor.solve


def polish_qp(
    pbm: QuadraticProgram,
    sol: QPSolution,
    prm: QPSolverParams,
    c: float,
    sx: np.ndarray,
    sy: np.ndarray,
) -> QPSolution | None:
    """Polish a solution of the scaled problem by solving the reduced KKT system.

    ``sol`` holds the scaled primal and dual variables, ``c`` is the cost
    scaling and ``sx``/``sy`` the variable and constraint scalings. Returns a
    new solution with refined scaled variables, or None if the reduced system
    could not be factorized.
    """
    sx = np.asarray(sx, dtype=float)
    sy = np.asarray(sy, dtype=float)
    dual = np.asarray(sol.dual, dtype=float)
    n = pbm.num_variables()

    lower = np.flatnonzero((dual < -_ACTIVE_TOL) & (pbm.l != -np.inf))
    upper = np.flatnonzero((dual > _ACTIVE_TOL) & (pbm.u != np.inf))
    active = np.concatenate([lower, upper]).astype(int)

    build = _sparse_system if pbm.is_sparse() else _dense_system
    kkt, solve = build(pbm, c, sx, sy, active, prm.delta)
    if solve is None:
        return None
    solve: Callable[[np.ndarray], np.ndarray]

    rhs = np.concatenate([-c * sx * pbm.q, sy[lower] * pbm.l[lower], sy[upper] * pbm.u[upper]])

    t_hat = np.zeros(n + active.size)
    for _ in range(prm.polish_iter):
        t_hat = t_hat + solve(rhs - kkt @ t_hat)

    if not np.all(np.isfinite(t_hat)):
        return None

    new_dual = dual.copy()
    new_dual[active] = t_hat[n:]
    return dataclasses.replace(sol, primal=t_hat[:n].copy(), dual=new_dual)