"""Quadratic program definitions.

The quadratic program is on the form::

    min  0.5 x' P x + q' x
    s.t. l <= A x <= u
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any

import numpy as np
import scipy.sparse as sp


def _as_vector(value: Any, name: str) -> np.ndarray:
    vec = np.asarray(value, dtype=float)
    if vec.ndim == 0:
        vec = vec.reshape(1)
    if vec.ndim != 1:
        raise ValueError(f"{name} must be one-dimensional, got shape {vec.shape}")
    return vec


def _as_dense_matrix(value: Any, name: str) -> np.ndarray:
    mat = np.asarray(value.toarray() if sp.issparse(value) else value, dtype=float)
    if mat.ndim == 1:
        mat = mat.reshape(1, -1)
    if mat.ndim != 2:
        raise ValueError(f"{name} must be two-dimensional, got shape {mat.shape}")
    return mat


@dataclass
class QuadraticProgram:
    """Quadratic program ``min 0.5 x'Px + q'x  s.t.  l <= Ax <= u``.

    The problem is sparse when ``A`` is a scipy sparse matrix; ``P`` is then
    stored column-major and ``A`` row-major. Only the upper triangular part
    of ``P`` is used by the solvers.
    """

    P: Any
    q: Any
    A: Any
    l: Any
    u: Any

    def __post_init__(self) -> None:
        if sp.issparse(self.A):
            self.A = sp.csr_matrix(self.A, dtype=float)
            self.P = sp.csc_matrix(self.P, dtype=float)
        else:
            self.A = _as_dense_matrix(self.A, "A")
            self.P = _as_dense_matrix(self.P, "P")
        self.q = _as_vector(self.q, "q")
        self.l = _as_vector(self.l, "l")
        self.u = _as_vector(self.u, "u")

        m, n = self.A.shape
        if self.P.shape != (n, n):
            raise ValueError(f"P must have shape {(n, n)}, got {self.P.shape}")
        if self.q.shape != (n,):
            raise ValueError(f"q must have length {n}, got {self.q.shape[0]}")
        if self.l.shape != (m,):
            raise ValueError(f"l must have length {m}, got {self.l.shape[0]}")
        if self.u.shape != (m,):
            raise ValueError(f"u must have length {m}, got {self.u.shape[0]}")

    def is_sparse(self) -> bool:
        """True if the constraint matrix is stored as a sparse matrix."""
        return sp.issparse(self.A)

    def num_variables(self) -> int:
        """Number of decision variables n."""
        return int(self.A.shape[1])

    def num_constraints(self) -> int:
        """Number of inequality constraints m."""
        return int(self.A.shape[0])


class QPSolutionStatus(enum.IntEnum):
    """Solver exit codes."""

    OPTIMAL = 0
    POLISH_FAILED = 1
    PRIMAL_INFEASIBLE = 2
    DUAL_INFEASIBLE = 3
    MAX_ITERATIONS = 4
    MAX_TIME = 5
    UNKNOWN = 6


def _empty() -> np.ndarray:
    return np.zeros(0)


@dataclass
class QPSolution:
    """Solution of a quadratic program."""

    code: QPSolutionStatus = QPSolutionStatus.UNKNOWN
    iterations: int = 0
    primal: np.ndarray = field(default_factory=_empty)
    dual: np.ndarray = field(default_factory=_empty)
    objective: float = 0.0

    def __post_init__(self) -> None:
        self.primal = np.asarray(self.primal, dtype=float)
        self.dual = np.asarray(self.dual, dtype=float)