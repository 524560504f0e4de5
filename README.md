# feedbackctl

Building blocks for feedback control, built on numpy and scipy:

- **Quadratic programs** (`feedbackctl.qp.QuadraticProgram`) with dense or scipy sparse
  matrices. They are solved by an operator-splitting (ADMM) solver,
  `feedbackctl.qp_solver.QPSolver` / `solve_qp`. The solver scales the problem,
  detects primal and dual infeasibility, and can polish the result
  (`feedbackctl.qp_polish.polish_qp`).
- **PID control** (`feedbackctl.pid.PID`) for a double integrator on a tangent space.
  It has proportional, derivative and integral gains, an integral windup limit and a
  desired trajectory.
- **Active set invariance filtering** (`feedbackctl.asif.asif_to_qp`): a safety filter
  written as a quadratic program. The filter keeps a system inside a safe set along
  the trajectory of a backup controller.
- **Nonlinear program** interfaces (`feedbackctl.nlp.NLP`, `HessianNLP`,
  `is_hessian_nlp`, `NLPSolution`, `NLPStatus`) and constraint sets
  (`feedbackctl.bounds.ManifoldBounds`).

## Installation

```
pip install .
```

The tests need pytest:

```
pip install ".[test]"
pytest
```

## Solving a quadratic program

The problem is

    minimize    0.5 x' P x + q' x
    subject to  l <= A x <= u

```python
import numpy as np
from feedbackctl.qp import QuadraticProgram, QPSolutionStatus
from feedbackctl.qp_polish import QPSolverParams
from feedbackctl.qp_solver import solve_qp

qp = QuadraticProgram(
    P=np.array([[4.0, 1.0], [1.0, 2.0]]),
    q=np.array([1.0, 1.0]),
    A=np.array([[1.0, 1.0], [1.0, 0.0], [0.0, 1.0]]),
    l=np.array([1.0, 0.0, 0.0]),
    u=np.array([1.0, 0.7, 0.7]),
)

sol = solve_qp(qp, QPSolverParams())
assert sol.code == QPSolutionStatus.OPTIMAL
print(sol.primal, sol.dual, sol.objective, sol.iterations)
```

The problem is sparse when `A` is a scipy sparse matrix. Only the upper triangular part
of `P` is used. Infinite entries in `l` and `u` mean that the bound is absent.

`QPSolverParams` holds the solver options:

- `alpha`, `rho`, `sigma`: relaxation and step parameters.
- `scaling`: scale the problem before solving.
- `eps_abs`, `eps_rel`: convergence tolerances.
- `eps_primal_inf`, `eps_dual_inf`: infeasibility tolerances.
- `max_iter`, and `max_time` in seconds. Both are unlimited when `None`.
- `stop_check_iter`: the number of iterations between stopping checks.
- `polish`, `polish_iter`, `delta`: solution polishing.
- `verbose`: print progress and a timing summary to stdout.

The result code is a `QPSolutionStatus`:

- `OPTIMAL`
- `POLISH_FAILED`
- `PRIMAL_INFEASIBLE`
- `DUAL_INFEASIBLE`
- `MAX_ITERATIONS`
- `MAX_TIME`
- `UNKNOWN`

To solve many problems with the same structure, keep one `QPSolver(pbm, prm)` and call
`solve(pbm, warmstart)` on it. A previous `QPSolution` can serve as the warm start.
`sol()` returns the most recent solution.

## PID control

```python
import numpy as np
from feedbackctl.pid import PID, PIDParams

pid = PID(3, PIDParams(windup_limit=1.0))
pid.set_kp(2.0)
pid.set_kd(np.array([1.0, 1.0, 3.0]))
pid.set_xdes(lambda t: (np.zeros(3), np.zeros(3), np.zeros(3)))

u = pid(0.5, np.array([0.1, 0.0, 0.0]), np.zeros(3))
```

The controller returns the desired acceleration
`a_des + kp * (x_des - x) + kd * (v_des - v) + ki * integral`.

- Gains start at `kp = kd = 1` and `ki = 0`. A scalar gain sets every component.
- The integral state grows with the time elapsed since the previous call, and is
  clipped to `windup_limit`. `reset_integral()` clears it.
- Times may be numbers, `datetime` or `timedelta` values.
- States may be any objects for which `x_des - x` gives the tangent-space difference.

## Safety filtering

`asif_to_qp(pbm, prm, f, h, bu)` takes the following arguments:

- `pbm`: an `ASIFProblem`, holding the initial state `x0`, the desired input `u_des`,
  the horizon `T`, the weights `W_u` and the input bounds `ulim` as a `ManifoldBounds`.
  It can also hold the right-plus operations and the algebra adjoint of non-vector
  spaces.
- `prm`: an `ASIFtoQPParams`, holding `K`, `alpha`, `dt` and `relax_cost`.
- `f(x, u)`: the dynamics.
- `h(t, x)`: the safe set function.
- `bu(t, x)`: the backup controller.

The function returns a dense `QuadraticProgram`. Its first `nu` variables are the change
`mu` to the desired input. Its last variable relaxes the barrier constraints. Solve it
with `solve_qp`; the filtered input is `u_des ⊕ mu`. Derivatives are computed by
central finite differences.

`asif_to_qp_allocate` and `asif_to_qp_update` split this into two steps: allocating the
problem, then filling it in place.

## What is not included

The `NLP` and `HessianNLP` protocols and `NLPSolution` describe nonlinear programs.
The package contains no nonlinear program solver, optimal control transcription or
model predictive controller.