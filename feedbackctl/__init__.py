"""Quadratic programming, PID control, safety filtering and nonlinear program interfaces."""

__version__ = "0.1.0"

__all__ = ["asif", "bounds", "nlp", "pid", "qp", "qp_polish", "qp_solver"]