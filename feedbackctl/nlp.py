"""Nonlinear program definition.

A nonlinear program is::

    min  f(x)
    s.t. xl <= x <= xu
         gl <= g(x) <= gu
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

import numpy as np


@runtime_checkable
class NLP(Protocol):
    """Interface of a nonlinear programming problem."""

    def n(self) -> int:
        """Number of variables."""
        ...

    def m(self) -> int:
        """Number of constraints."""
        ...

    def xl(self) -> np.ndarray:
        """Variable lower bounds."""
        ...

    def xu(self) -> np.ndarray:
        """Variable upper bounds."""
        ...

    def f(self, x: np.ndarray) -> float:
        """Objective value."""
        ...

    def df_dx(self, x: np.ndarray) -> Any:
        """Objective gradient as a 1 x n matrix."""
        ...

    def g(self, x: np.ndarray) -> np.ndarray:
        """Constraint values."""
        ...

    def gl(self) -> np.ndarray:
        """Constraint lower bounds."""
        ...

    def gu(self) -> np.ndarray:
        """Constraint upper bounds."""
        ...

    def dg_dx(self, x: np.ndarray) -> Any:
        """Constraint jacobian as an m x n matrix."""
        ...


@runtime_checkable
class HessianNLP(NLP, Protocol):
    """Nonlinear programming problem that also supplies second derivatives."""

    def d2f_dx2(self, x: np.ndarray) -> Any:
        """Objective hessian (upper triangular part)."""
        ...

    def d2g_dx2(self, x: np.ndarray, lam: np.ndarray) -> Any:
        """Hessian of lam' g(x) (upper triangular part)."""
        ...


def is_hessian_nlp(nlp: Any) -> bool:
    """True if ``nlp`` provides the full interface including hessians."""
    return isinstance(nlp, HessianNLP)


class NLPStatus(enum.IntEnum):
    """Solver status of a nonlinear program."""

    OPTIMAL = 0
    PRIMAL_INFEASIBLE = 1
    DUAL_INFEASIBLE = 2
    MAX_ITERATIONS = 3
    MAX_TIME = 4
    UNKNOWN = 5


def _empty() -> np.ndarray:
    return np.zeros(0)


@dataclass
class NLPSolution:
    """Solution to a nonlinear program."""

    status: NLPStatus = NLPStatus.UNKNOWN
    iterations: int = 0
    x: np.ndarray = field(default_factory=_empty)
    zl: np.ndarray = field(default_factory=_empty)
    zu: np.ndarray = field(default_factory=_empty)
    lambda_: np.ndarray = field(default_factory=_empty)
    objective: float = 0.0

    def __post_init__(self) -> None:
        self.x = np.asarray(self.x, dtype=float)
        self.zl = np.asarray(self.zl, dtype=float)
        self.zu = np.asarray(self.zu, dtype=float)
        self.lambda_ = np.asarray(self.lambda_, dtype=float)