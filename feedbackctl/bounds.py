"""Constraint sets on manifolds."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable

import numpy as np


def _vector_rminus(a: Any, b: Any) -> np.ndarray:
    return np.asarray(a, dtype=float) - np.asarray(b, dtype=float)


@dataclass
class ManifoldBounds:
    """Manifold constraint set ``{m : l <= A (m ⊖ c) <= u}``.

    ``dof`` is the dimension of the tangent space, ``c`` the nominal point and
    ``rminus`` the right-minus operation of the manifold (vector difference
    by default). Missing bounds are unbounded.
    """

    dof: int
    A: Any = None
    c: Any = None
    l: Any = None
    u: Any = None
    rminus: Callable[[Any, Any], Any] = _vector_rminus

    def __post_init__(self) -> None:
        if self.dof <= 0:
            raise ValueError("dynamic size not supported: dof must be positive")

        if self.A is None:
            self.A = np.zeros((0, self.dof))
        else:
            self.A = np.asarray(self.A, dtype=float)
            if self.A.ndim == 1:
                self.A = self.A.reshape(1, -1)
        if self.A.ndim != 2 or self.A.shape[1] != self.dof:
            raise ValueError(f"A must have {self.dof} columns, got shape {self.A.shape}")
        rows = self.A.shape[0]

        if self.c is None:
            self.c = np.zeros(self.dof)

        self.l = np.full(rows, -np.inf) if self.l is None else np.asarray(self.l, dtype=float).reshape(-1)
        self.u = np.full(rows, np.inf) if self.u is None else np.asarray(self.u, dtype=float).reshape(-1)
        if self.l.shape != (rows,):
            raise ValueError(f"l must have length {rows}, got {self.l.shape[0]}")
        if self.u.shape != (rows,):
            raise ValueError(f"u must have length {rows}, got {self.u.shape[0]}")

    def contains(self, m: Any) -> bool:
        """True if ``m`` lies in the constraint set (bounds inclusive)."""
        delta = np.asarray(self.rminus(m, self.c), dtype=float).reshape(-1)
        if delta.shape != (self.dof,):
            raise ValueError(f"m ⊖ c must have dimension {self.dof}, got {delta.shape[0]}")
        value = self.A @ delta
        return bool(np.all(self.l <= value) and np.all(value <= self.u))