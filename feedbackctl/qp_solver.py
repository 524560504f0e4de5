"""Operator splitting solver for quadratic programs.

The algorithm follows the operator splitting (ADMM) scheme for quadratic
programs of the form ``min 0.5 x'Px + q'x  s.t.  l <= Ax <= u``. Dense and
sparse problems are both supported.
"""

from __future__ import annotations

import time
import warnings
from typing import Callable

import numpy as np
import scipy.linalg as sla
import scipy.sparse as sp
import scipy.sparse.linalg as spla

from .qp import QPSolution, QPSolutionStatus, QuadraticProgram
from .qp_polish import QPSolverParams, polish_qp

__all__ = ["QPSolver", "solve_qp"]

_SolveFn = Callable[[np.ndarray], np.ndarray]


def _inf_norm(vec: np.ndarray) -> float:
    vec = np.asarray(vec)
    return float(np.max(np.abs(vec))) if vec.size else 0.0


def _abs_scaled(mat, left: np.ndarray, right: np.ndarray, factor: float = 1.0):
    """Return |factor * diag(left) mat diag(right)|."""
    if sp.issparse(mat):
        return abs(sp.csc_matrix(mat.multiply(left[:, None]).multiply(right[None, :]) * factor))
    return np.abs(factor * left[:, None] * mat * right[None, :])


def _col_max(mat, ncols: int) -> np.ndarray:
    if mat.shape[0] == 0:
        return np.zeros(ncols)
    if sp.issparse(mat):
        return np.asarray(mat.max(axis=0).toarray(), dtype=float).ravel()
    return np.max(mat, axis=0)


def _row_max(mat, nrows: int) -> np.ndarray:
    if mat.shape[1] == 0:
        return np.zeros(nrows)
    if sp.issparse(mat):
        return np.asarray(mat.max(axis=1).toarray(), dtype=float).ravel()
    return np.max(mat, axis=1)


class QPSolver:
    """Solver for quadratic programs.

    Reuse one instance to solve many problems with the same structure; for
    one-off problems see :func:`solve_qp`.
    """

    def __init__(self, pbm: QuadraticProgram | None = None, prm: QPSolverParams | None = None) -> None:
        self._prm = prm if prm is not None else QPSolverParams()
        self._n = -1
        self._m = -1
        self._sol = QPSolution()
        self._c = 1.0
        self._sx = np.zeros(0)
        self._sy = np.zeros(0)
        if pbm is not None:
            self.analyze(pbm)

    def sol(self) -> QPSolution:
        """Most recent solution."""
        return self._sol

    def analyze(self, pbm: QuadraticProgram) -> None:
        """Prepare for solving problems with the structure of ``pbm``."""
        n, m = pbm.num_variables(), pbm.num_constraints()
        self._n, self._m = n, m
        self._sol = QPSolution(primal=np.zeros(n), dual=np.zeros(m))
        self._c = 1.0
        self._sx = np.ones(n)
        self._sy = np.ones(m)

    # ------------------------------------------------------------------ #

    def _scale(self, pbm: QuadraticProgram) -> None:
        """Compute cost scaling c and variable/constraint scalings sx, sy."""
        n, m = self._n, self._m
        sx = np.ones(n)
        sy = np.ones(m)

        sx_inc = _col_max(_abs_scaled(pbm.P, np.ones(n), np.ones(n)), n)
        sx_inc = np.where(sx_inc == 0, 1.0, sx_inc)
        mean = float(np.mean(sx_inc)) if n else 0.0
        c = 1.0 / max(1e-6, mean, _inf_norm(pbm.q))

        iteration = 0
        while True:
            sx_inc = _col_max(_abs_scaled(pbm.P, sx, sx, c), n)
            a_abs = _abs_scaled(pbm.A, sy, sx)
            sx_inc = np.maximum(sx_inc, _col_max(a_abs, n))
            sy_inc = _row_max(a_abs, m)

            sx_inc = np.where(sx_inc == 0, 1.0, sx_inc)
            sy_inc = np.where(sy_inc == 0, 1.0, sy_inc)

            sx = sx / np.sqrt(np.maximum(sx_inc, 1e-8))
            sy = sy / np.sqrt(np.maximum(sy_inc, 1e-8))

            deviation = max(_inf_norm(sx_inc - 1), _inf_norm(sy_inc - 1))
            keep_going = iteration < 10 and deviation > 0.1
            iteration += 1
            if not keep_going:
                break

        self._c, self._sx, self._sy = c, sx, sy

    def _factorize(self, pbm: QuadraticProgram, rho: np.ndarray, sigma: float) -> _SolveFn | None:
        """Build and factorize H = [P + sigma I, A'; A, -1/rho] for the scaled problem."""
        n, m = self._n, self._m
        c, sx, sy = self._c, self._sx, self._sy

        if pbm.is_sparse():
            p_bar = sp.csc_matrix(pbm.P.multiply(sx[:, None]).multiply(sx[None, :]) * c)
            p_sym = sp.triu(p_bar) + sp.triu(p_bar, 1).T + sigma * sp.identity(n)
            if m > 0:
                a_s = sp.csr_matrix(pbm.A.multiply(sy[:, None]).multiply(sx[None, :]))
                h_mat = sp.bmat([[p_sym, a_s.T], [a_s, sp.diags(-1.0 / rho)]], format="csc")
            else:
                h_mat = sp.csc_matrix(p_sym)
            try:
                factor = spla.splu(h_mat)
            except RuntimeError:
                return None
            return factor.solve

        p_bar = c * sx[:, None] * pbm.P * sx[None, :]
        p_sym = np.triu(p_bar) + np.triu(p_bar, 1).T + sigma * np.eye(n)
        if m > 0:
            a_s = sy[:, None] * pbm.A * sx[None, :]
            h_mat = np.block([[p_sym, a_s.T], [a_s, np.diag(-1.0 / rho)]])
        else:
            h_mat = p_sym
        try:
            with warnings.catch_warnings():
                warnings.simplefilter("ignore", sla.LinAlgWarning)
                lu_piv = sla.lu_factor(h_mat)
        except (ValueError, np.linalg.LinAlgError):
            return None
        lu = lu_piv[0]
        if not np.all(np.isfinite(lu)) or np.any(np.diag(lu) == 0):
            return None
        return lambda rhs: sla.lu_solve(lu_piv, rhs)

    def _check_stopping(
        self,
        pbm: QuadraticProgram,
        x_us: np.ndarray,
        y_us: np.ndarray,
        z_us: np.ndarray,
        dx_us: np.ndarray,
        dy_us: np.ndarray,
    ) -> QPSolutionStatus | None:
        prm = self._prm

        # optimality
        ax = pbm.A @ x_us
        ax_norm = _inf_norm(ax)
        if _inf_norm(ax - z_us) <= prm.eps_abs + prm.eps_rel * max(ax_norm, _inf_norm(z_us)):
            px = pbm.P @ x_us
            aty = pbm.A.T @ y_us
            dual_scale = max(_inf_norm(px), _inf_norm(pbm.q), _inf_norm(aty))
            if _inf_norm(px + pbm.q + aty) <= prm.eps_abs + prm.eps_rel * dual_scale:
                return QPSolutionStatus.OPTIMAL

        # primal infeasibility
        aty = pbm.A.T @ dy_us
        edy_norm = _inf_norm(dy_us)
        thresh = prm.eps_primal_inf * edy_norm
        u_inf = pbm.u == np.inf
        l_inf = pbm.l == -np.inf
        if np.any((u_inf & (dy_us > thresh)) | (l_inf & (dy_us < -thresh))):
            support = np.inf
        else:
            upper = np.where(u_inf, 0.0, np.where(u_inf, 0.0, pbm.u) * np.maximum(0.0, dy_us))
            lower = np.where(l_inf, 0.0, np.where(l_inf, 0.0, pbm.l) * np.minimum(0.0, dy_us))
            support = float(np.sum(upper) + np.sum(lower))
        if max(_inf_norm(aty), support) < thresh:
            return QPSolutionStatus.PRIMAL_INFEASIBLE

        # dual infeasibility
        ax = pbm.A @ dx_us
        dx_norm = _inf_norm(dx_us)
        eps = prm.eps_dual_inf * dx_norm
        px = pbm.P @ dx_us
        if _inf_norm(px) <= eps and float(pbm.q @ dx_us) <= eps:
            ok = np.where(
                u_inf,
                ax >= -eps,
                np.where(l_inf, ax <= eps, np.abs(ax) < eps),
            )
            if np.all(ok):
                return QPSolutionStatus.DUAL_INFEASIBLE

        return None

    @staticmethod
    def _report_line(label: str, pbm: QuadraticProgram, x_us, y_us, z_us, t0: float) -> None:
        obj = float((0.5 * (pbm.P @ x_us) + pbm.q) @ x_us)
        pri = _inf_norm(pbm.A @ x_us - z_us)
        dua = _inf_norm(pbm.P @ x_us + pbm.q + pbm.A.T @ y_us)
        micros = int((time.perf_counter() - t0) * 1e6)
        print(f"{label:>8}{obj:>14.6e}{pri:>14.6e}{dua:>14.6e}{micros:>10}")

    # ------------------------------------------------------------------ #

    def solve(self, pbm: QuadraticProgram, warmstart: QPSolution | None = None) -> QPSolution:
        """Solve ``pbm``, optionally starting from the solution ``warmstart``."""
        prm = self._prm
        if prm.stop_check_iter <= 0:
            raise ValueError("stop_check_iter must be positive")

        n, m = pbm.num_variables(), pbm.num_constraints()
        if (n, m) != (self._n, self._m):
            self.analyze(pbm)

        if prm.scaling:
            self._scale(pbm)
        c, sx, sy = self._c, self._sx, self._sy

        rho_bar = float(prm.rho)
        alpha = float(prm.alpha)
        alpha_comp = 1.0 - alpha
        sigma = float(prm.sigma)

        ret_code: QPSolutionStatus | None = None
        with np.errstate(invalid="ignore"):
            if np.any((pbm.l == np.inf) | (pbm.u == -np.inf) | (pbm.u - pbm.l < 0)):
                ret_code = QPSolutionStatus.PRIMAL_INFEASIBLE
            unbounded = (pbm.l == -np.inf) & (pbm.u == np.inf)
            equality = sy * np.abs(pbm.l - pbm.u) < 1e-5
        rho = np.where(unbounded, 1e-6, np.where(equality, 1e3 * rho_bar, rho_bar))

        t0 = time.perf_counter()
        solve_fn = self._factorize(pbm, rho, sigma)
        t_fill = t_factor = time.perf_counter()

        if prm.verbose:
            print("========================= QP Solver =========================")
            print(f"Solving {'sparse' if pbm.is_sparse() else 'dense'} QP with n={n}, m={m}")
            print(f"{'ITER':>8}{'OBJ':>14}{'PRI_RES':>14}{'DUA_RES':>14}{'TIME':>10}")

        if solve_fn is None:
            ret_code = QPSolutionStatus.UNKNOWN

        if warmstart is not None:
            w_primal = np.asarray(warmstart.primal, dtype=float)
            w_dual = np.asarray(warmstart.dual, dtype=float)
            x = w_primal / sx
            y = c * w_dual / sy
            z = sy * (pbm.A @ w_primal)
        else:
            x = np.zeros(n)
            y = np.zeros(m)
            z = np.zeros(m)

        dx_prev = np.zeros(n)
        dy_prev = np.zeros(m)
        iteration = 0
        while (prm.max_iter is None or iteration != prm.max_iter) and ret_code is None:
            rhs = np.concatenate([sigma * x - c * sx * pbm.q, z - y / rho])
            p = solve_fn(rhs)
            p_n, p_m = p[:n], p[n:]

            check = iteration % prm.stop_check_iter == 1
            if check:
                dx_prev, dy_prev = x.copy(), y.copy()

            x = alpha * p_n + alpha_comp * x
            z_next = np.minimum(
                np.maximum(alpha * p_m / rho + alpha_comp * y / rho + z, sy * pbm.l),
                sy * pbm.u,
            )
            y = alpha_comp * y + alpha * p_m + rho * z - rho * z_next
            z = z_next

            if check:
                x_us = sx * x
                y_us = sy * y / c
                z_us = z / sy
                dx_us = sx * (x - dx_prev)
                dy_us = sy * (y - dy_prev) / c

                ret_code = self._check_stopping(pbm, x_us, y_us, z_us, dx_us, dy_us)

                if prm.verbose:
                    self._report_line(f"{iteration:>7}:", pbm, x_us, y_us, z_us, t0)

                if ret_code is None and prm.max_time is not None:
                    if time.perf_counter() - t0 > prm.max_time:
                        ret_code = QPSolutionStatus.MAX_TIME
            iteration += 1

        t_iter = time.perf_counter()

        code = ret_code if ret_code is not None else QPSolutionStatus.MAX_ITERATIONS
        if ret_code == QPSolutionStatus.OPTIMAL and prm.polish:
            polished = polish_qp(pbm, QPSolution(primal=x, dual=y), prm, c, sx, sy)
            if polished is not None:
                x, y = polished.primal, polished.dual
                if prm.verbose:
                    self._report_line("polish:", pbm, sx * x, sy * y / c, z / sy, t0)
            else:
                if prm.verbose:
                    print("Polish failed")
                code = QPSolutionStatus.POLISH_FAILED

        t_polish = time.perf_counter()

        primal = sx * x
        dual = sy * y / c
        objective = float(primal @ (0.5 * (pbm.P @ primal) + pbm.q))
        self._sol = QPSolution(code=code, iterations=iteration, primal=primal, dual=dual, objective=objective)

        if prm.verbose:

            def us(a: float, b: float) -> int:
                return int((b - a) * 1e6)

            print("QP solver summary:")
            print(f"Result {int(code)}")
            print(f"{'Iterations':<25}{iteration - 1:>10}")
            print(f"{'Total time (µs)':<25}{us(t0, t_polish):>10}")
            print(f"{'  Matrix filling':<25}{us(t0, t_fill):>10}")
            print(f"{'  Factorization':<25}{us(t_fill, t_factor):>10}")
            print(f"{'  Iteration':<25}{us(t_factor, t_iter):>10}")
            print(f"{'  Polish':<25}{us(t_iter, t_polish):>10}")
            print("=============================================================")

        return self._sol


def solve_qp(
    pbm: QuadraticProgram,
    prm: QPSolverParams | None = None,
    warmstart: QPSolution | None = None,
) -> QPSolution:
    """Solve a quadratic program with the operator splitting method."""
    return QPSolver(pbm, prm).solve(pbm, warmstart)