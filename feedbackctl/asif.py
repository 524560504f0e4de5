"""Active set invariance filtering on Lie groups, posed as a quadratic program.

The filter modifies a desired input ``u_des`` as little as possible so that
a safe set ``{x : h(t, x) >= 0}`` stays forward invariant along the
trajectory of a backup controller. Derivatives are taken numerically with
central differences in the tangent spaces.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable

import numpy as np

from .bounds import ManifoldBounds
from .qp import QuadraticProgram

__all__ = [
    "ASIFProblem",
    "ASIFtoQPParams",
    "asif_to_qp_allocate",
    "asif_to_qp_update",
    "asif_to_qp",
]

_DIFF_STEP = 1e-6


def _vec(value: Any) -> np.ndarray:
    return np.asarray(value, dtype=float).reshape(-1)


def _vector_rplus(x: Any, a: Any) -> np.ndarray:
    return _vec(x) + _vec(a)


def _vector_ad(a: Any) -> np.ndarray:
    dim = _vec(a).size
    return np.zeros((dim, dim))


@dataclass
class ASIFProblem:
    """Active set invariance problem.

    Minimizes ``(u ⊖ u_des)' diag(W_u) (u ⊖ u_des)`` subject to ``u in ulim``
    and ``h(x(t)) >= 0`` over the horizon ``[0, T]`` from ``x(0) = x0``.

    ``x_rplus``/``u_rplus`` are the right-plus operations of the state and
    input spaces and ``x_ad`` the adjoint of the state group algebra; the
    defaults describe vector spaces. ``nx``/``nu`` are inferred from the
    sizes of ``x0`` and ``u_des`` when not given.
    """

    x0: Any
    u_des: Any
    T: float = 1.0
    W_u: Any = None
    ulim: ManifoldBounds | None = None
    nx: int | None = None
    nu: int | None = None
    x_rplus: Callable[[Any, np.ndarray], Any] = _vector_rplus
    x_ad: Callable[[np.ndarray], np.ndarray] = _vector_ad
    u_rplus: Callable[[Any, np.ndarray], Any] = _vector_rplus

    def __post_init__(self) -> None:
        if self.nx is None:
            self.nx = int(np.size(self.x0))
        if self.nu is None:
            self.nu = int(np.size(self.u_des))
        if self.nx <= 0 or self.nu <= 0:
            raise ValueError("state and input dimensions must be positive")
        self.W_u = np.ones(self.nu) if self.W_u is None else _vec(self.W_u)
        if self.W_u.shape != (self.nu,):
            raise ValueError(f"W_u must have length {self.nu}, got {self.W_u.shape[0]}")
        if self.ulim is None:
            self.ulim = ManifoldBounds(dof=self.nu)
        if self.ulim.dof != self.nu:
            raise ValueError(f"input bounds must have dof {self.nu}, got {self.ulim.dof}")


@dataclass
class ASIFtoQPParams:
    """Parameters for asif_to_qp."""

    K: int = 10
    """Number of constraint instances, equally spaced over the horizon."""
    alpha: float = 1.0
    """Barrier time constant: dh/dt + alpha h >= 0."""
    dt: float = 0.1
    """Maximal integration time step."""
    relax_cost: float = 100.0
    """Cost of relaxing the barrier constraints."""


def _tangent_jacobian(fun: Callable[[Any], Any], point: Any, rplus: Callable, dof: int) -> np.ndarray:
    """Right jacobian of ``fun`` at ``point`` by central differences."""
    columns = [
        (_vec(fun(rplus(point, step))) - _vec(fun(rplus(point, -step)))) / (2 * _DIFF_STEP)
        for step in np.eye(dof) * _DIFF_STEP
    ]
    return np.column_stack(columns)


def asif_to_qp_allocate(nu: int, K: int, nu_ineq: int, nh: int) -> QuadraticProgram:
    """Allocate a zero QP sized for ``K`` instances of ``nh`` barrier constraints.

    The QP has ``nu + 1`` variables (input deviation and relaxation) and
    ``K * nh + nu_ineq + 1`` constraints.
    """
    if nu <= 0:
        raise ValueError("input dimension must be positive")
    if K < 0 or nu_ineq < 0 or nh < 0:
        raise ValueError("sizes must be non-negative")
    rows = K * nh + nu_ineq + 1
    cols = nu + 1
    return QuadraticProgram(
        P=np.zeros((cols, cols)),
        q=np.zeros(cols),
        A=np.zeros((rows, cols)),
        l=np.zeros(rows),
        u=np.zeros(rows),
    )


def asif_to_qp_update(
    qp: QuadraticProgram,
    pbm: ASIFProblem,
    prm: ASIFtoQPParams,
    f: Callable[[Any, Any], Any],
    h: Callable[[float, Any], Any],
    bu: Callable[[float, Any], Any],
) -> None:
    """Fill the pre-allocated, zeroed QP ``qp`` in place.

    ``f(x, u)`` is the body velocity of the system, ``h(t, x)`` the safe set
    function and ``bu(t, x)`` the backup controller.
    """
    if prm.K < 1:
        raise ValueError("K must be at least 1")
    if prm.dt <= 0:
        raise ValueError("dt must be positive")

    nx, nu, K = pbm.nx, pbm.nu, prm.K
    nu_ineq = pbm.ulim.A.shape[0]
    nh = _vec(h(0.0, pbm.x0)).size
    rows = K * nh + nu_ineq + 1
    cols = nu + 1

    if qp.A.shape != (rows, cols) or qp.P.shape != (cols, cols):
        raise ValueError(
            f"QP must have {rows} constraints and {cols} variables, got A with shape {qp.A.shape}"
        )

    tau = pbm.T / K
    dt = min(prm.dt, tau)
    t = 0.0
    x = pbm.x0
    dx_dx0 = np.eye(nx)

    def closed_loop(tt: float, xx: Any) -> np.ndarray:
        return _vec(f(xx, bu(tt, xx)))

    f0 = _vec(f(x, pbm.u_des))
    d_f0_du = _tangent_jacobian(lambda vu: f(x, vu), pbm.u_des, pbm.u_rplus, nu)

    for k in range(K):
        block = slice(k * nh, (k + 1) * nh)
        hval = _vec(h(t, x))
        dh_dt = (_vec(h(t + _DIFF_STEP, x)) - _vec(h(t - _DIFF_STEP, x))) / (2 * _DIFF_STEP)
        dh_dx = _tangent_jacobian(lambda vx: h(t, vx), x, pbm.x_rplus, nx)

        dh_dx0 = dh_dx @ dx_dx0
        qp.A[block, :nu] = dh_dx0 @ d_f0_du
        qp.l[block] = -dh_dt - prm.alpha * hval - dh_dx0 @ f0
        qp.u[block] = np.inf

        # integrate state and sensitivity forward until the next constraint
        t_next = tau * (k + 1)
        dt_act = min(dt, t_next - t)
        while t < t_next:
            x = pbm.x_rplus(x, dt_act * closed_loop(t, x))
            fcl = closed_loop(t, x)
            dfcl_dx = _tangent_jacobian(lambda vx: closed_loop(t, vx), x, pbm.x_rplus, nx)
            dx_dx0 = dx_dx0 + dt_act * ((-pbm.x_ad(fcl) + dfcl_dx) @ dx_dx0)
            t += dt_act

    # relaxation of barrier constraints
    qp.A[: K * nh, nu] = 1.0

    # input bounds
    offset = pbm.ulim.A @ _vec(pbm.ulim.rminus(pbm.u_des, pbm.ulim.c))
    bounds = slice(K * nh, K * nh + nu_ineq)
    qp.A[bounds, :nu] = pbm.ulim.A
    qp.l[bounds] = pbm.ulim.l - offset
    qp.u[bounds] = pbm.ulim.u - offset

    # relaxation variable is non-negative
    last = K * nh + nu_ineq
    qp.A[last, nu] = 1.0
    qp.l[last] = 0.0
    qp.u[last] = np.inf

    qp.P[:nu, :nu] = np.diag(pbm.W_u)
    qp.P[nu, nu] = prm.relax_cost
    qp.q[nu] = 0.0


def asif_to_qp(
    pbm: ASIFProblem,
    prm: ASIFtoQPParams,
    f: Callable[[Any, Any], Any],
    h: Callable[[float, Any], Any],
    bu: Callable[[float, Any], Any],
) -> QuadraticProgram:
    """Encode an ASIF problem as a QP in the input deviation ``mu`` and a relaxation.

    A solution ``(mu, delta)`` corresponds to the input ``u_des ⊕ mu``.
    """
    nh = _vec(h(0.0, pbm.x0)).size
    if nh <= 0:
        raise ValueError("safe set function must have a positive output dimension")
    qp = asif_to_qp_allocate(pbm.nu, prm.K, pbm.ulim.A.shape[0], nh)
    asif_to_qp_update(qp, pbm, prm, f, h, bu)
    return qp