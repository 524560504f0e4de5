import math

import numpy as np
import pytest

from feedbackctl.bounds import ManifoldBounds


def _box():
    return ManifoldBounds(dof=2, A=np.eye(2), l=[-1.0, -1.0], u=[1.0, 1.0])


def test_default_set_is_unconstrained():
    bounds = ManifoldBounds(dof=3)
    assert bounds.A.shape == (0, 3)
    assert np.array_equal(bounds.c, np.zeros(3))
    assert bounds.contains(np.array([1e6, -1e6, 0.0])) is True


def test_box_membership():
    bounds = _box()
    assert bounds.contains([0.5, -0.5]) is True
    assert bounds.contains([2.0, 0.0]) is False
    assert bounds.contains([0.0, -1.5]) is False


def test_box_boundary_is_included():
    assert _box().contains([1.0, -1.0]) is True


def test_nominal_point_shifts_set():
    bounds = ManifoldBounds(dof=2, A=np.eye(2), c=[10.0, 10.0], l=[-1.0, -1.0], u=[1.0, 1.0])
    assert bounds.contains([10.5, 9.5]) is True
    assert bounds.contains([0.0, 0.0]) is False


def test_missing_bounds_are_unbounded():
    bounds = ManifoldBounds(dof=2, A=[[1.0, 0.0]], u=[0.0])
    assert bounds.l.shape == (1,)
    assert bounds.contains([-100.0, 5.0]) is True
    assert bounds.contains([0.1, 5.0]) is False


def test_custom_rminus_wraps_angles():
    def wrap_minus(a, b):
        return np.array([(a[0] - b[0] + math.pi) % (2 * math.pi) - math.pi])

    bounds = ManifoldBounds(dof=1, A=[[1.0]], c=[math.pi], l=[-0.5], u=[0.5], rminus=wrap_minus)
    assert bounds.contains([-math.pi + 0.1]) is True
    assert bounds.contains([0.0]) is False


def test_zero_dof_raises():
    with pytest.raises(ValueError):
        ManifoldBounds(dof=0)


def test_wrong_column_count_raises():
    with pytest.raises(ValueError):
        ManifoldBounds(dof=2, A=np.eye(3))


def test_wrong_bound_length_raises():
    with pytest.raises(ValueError):
        ManifoldBounds(dof=2, A=np.eye(2), l=[0.0])


def test_wrong_point_dimension_raises():
    with pytest.raises(ValueError):
        _box().contains([0.0, 0.0, 0.0])