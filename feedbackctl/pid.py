"""Proportional-Integral-Derivative control on Lie groups.

The controlled system is a double integrator on a group ``G``::

    d^r x_t = v,    dv/dt = u

so the computed input is a desired body acceleration. States may be any
objects for which ``a - b`` returns the tangent-space difference ``a ⊖ b``
as a vector of length ``dim``. Plain numpy vectors work as-is.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Callable, Tuple

import numpy as np

TrajectoryReturn = Tuple[Any, np.ndarray, np.ndarray]


@dataclass
class PIDParams:
    """Parameters for the PID controller."""

    windup_limit: float = float("inf")
    """Maximal absolute value of the integral states."""


def _elapsed(t: Any, t0: Any) -> float:
    """Seconds from ``t0`` to ``t`` for numeric, timedelta or datetime times."""
    diff = t - t0
    if isinstance(diff, timedelta):
        return diff.total_seconds()
    return float(diff)


class PID:
    """PID controller for a double integrator on a Lie group of dimension ``dim``.

    Proportional and derivative gains start at 1, integral gains at 0. The
    desired trajectory defaults to the constant zero element of a vector
    space; for other groups set it with :meth:`set_xdes`.
    """

    def __init__(self, dim: int, prm: PIDParams | None = None) -> None:
        if dim <= 0:
            raise ValueError("dim must be positive")
        self._dim = int(dim)
        self._prm = prm if prm is not None else PIDParams()
        self._kp = np.ones(self._dim)
        self._kd = np.ones(self._dim)
        self._ki = np.zeros(self._dim)
        self._t_last: Any = None
        self._i_err = np.zeros(self._dim)
        self._x_des: Callable[[Any], TrajectoryReturn] = self._default_trajectory

    def _default_trajectory(self, _t: Any) -> TrajectoryReturn:
        zero = np.zeros(self._dim)
        return zero, zero.copy(), zero.copy()

    def _tangent(self, value: Any, name: str) -> np.ndarray:
        vec = np.asarray(value, dtype=float).reshape(-1)
        if vec.shape != (self._dim,):
            raise ValueError(f"{name} must have dimension {self._dim}, got {vec.shape[0]}")
        return vec

    def _gain(self, value: Any, name: str) -> np.ndarray:
        arr = np.asarray(value, dtype=float)
        if arr.ndim == 0:
            return np.full(self._dim, float(arr))
        return self._tangent(arr, name)

    def __call__(self, t: Any, x: Any, v: Any) -> np.ndarray:
        """Control input (desired body acceleration) at time ``t`` for state ``x``, velocity ``v``."""
        g_des, v_des, a_des = self._x_des(t)
        g_err = self._tangent(g_des - x, "position error")
        v_des = self._tangent(v_des, "desired velocity")
        a_des = self._tangent(a_des, "desired acceleration")
        v = self._tangent(v, "velocity")

        if self._t_last is not None and t > self._t_last:
            self._i_err = self._i_err + _elapsed(t, self._t_last) * g_err
            limit = self._prm.windup_limit
            self._i_err = np.clip(self._i_err, -limit, limit)
        self._t_last = t

        return a_des + self._kp * g_err + self._kd * (v_des - v) + self._ki * self._i_err

    def set_kp(self, kp: Any) -> None:
        """Set proportional gains (a scalar sets all of them)."""
        self._kp = self._gain(kp, "kp")

    def set_kd(self, kd: Any) -> None:
        """Set derivative gains (a scalar sets all of them)."""
        self._kd = self._gain(kd, "kd")

    def set_ki(self, ki: Any) -> None:
        """Set integral gains (a scalar sets all of them)."""
        self._ki = self._gain(ki, "ki")

    def reset_integral(self) -> None:
        """Reset the integral state to zero."""
        self._i_err = np.zeros(self._dim)

    def set_xdes(self, f: Callable[[Any], TrajectoryReturn]) -> None:
        """Set the desired trajectory: a map from time to (position, velocity, acceleration).

        For a constant target the velocity and acceleration should be zero.
        """
        if not callable(f):
            raise TypeError("desired trajectory must be callable")
        self._x_des = f