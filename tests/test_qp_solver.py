import numpy as np
import pytest
import scipy.sparse as sp

from feedbackctl.qp import QPSolutionStatus, QuadraticProgram
from feedbackctl.qp_polish import QPSolverParams
from feedbackctl.qp_solver import QPSolver, solve_qp


def _box_problem(sparse=False):
    q = np.array([-2.0, 0.3, -0.1])
    P = np.eye(3)
    A = np.eye(3)
    l = -np.ones(3)
    u = np.ones(3)
    if sparse:
        P, A = sp.csc_matrix(P), sp.csr_matrix(A)
    return QuadraticProgram(P=P, q=q, A=A, l=l, u=u)


def _equality_problem(sparse=False):
    P = np.array([[4.0, 1.0], [1.0, 2.0]])
    q = np.array([1.0, 1.0])
    A = np.array([[1.0, 1.0]])
    if sparse:
        P, A = sp.csc_matrix(P), sp.csr_matrix(A)
    return QuadraticProgram(P=P, q=q, A=A, l=[1.0], u=[1.0])


@pytest.mark.parametrize("sparse", [False, True])
def test_box_qp_is_projection_of_unconstrained_minimizer(sparse):
    pbm = _box_problem(sparse)
    sol = solve_qp(pbm, QPSolverParams())
    assert sol.code == QPSolutionStatus.OPTIMAL
    expected = np.clip(-pbm.q, pbm.l, pbm.u)
    np.testing.assert_allclose(sol.primal, expected, atol=1e-6)


@pytest.mark.parametrize("sparse", [False, True])
def test_equality_qp_matches_kkt_solution(sparse):
    pbm = _equality_problem(sparse)
    sol = solve_qp(pbm, QPSolverParams())
    P = np.array([[4.0, 1.0], [1.0, 2.0]])
    A = np.array([[1.0, 1.0]])
    kkt = np.block([[P, A.T], [A, np.zeros((1, 1))]])
    ref = np.linalg.solve(kkt, np.array([-1.0, -1.0, 1.0]))
    assert sol.code == QPSolutionStatus.OPTIMAL
    np.testing.assert_allclose(sol.primal, ref[:2], atol=1e-5)
    np.testing.assert_allclose(sol.dual, ref[2:], atol=1e-4)


def test_dense_and_sparse_agree():
    dense = solve_qp(_equality_problem(False), QPSolverParams())
    sparse = solve_qp(_equality_problem(True), QPSolverParams())
    np.testing.assert_allclose(dense.primal, sparse.primal, atol=1e-6)
    np.testing.assert_allclose(dense.objective, sparse.objective, atol=1e-6)


def test_objective_is_consistent_with_primal():
    pbm = _box_problem()
    sol = solve_qp(pbm, QPSolverParams())
    x = sol.primal
    assert sol.objective == pytest.approx(0.5 * x @ pbm.P @ x + pbm.q @ x)


def test_trivially_infeasible_bounds():
    pbm = QuadraticProgram(P=np.eye(1), q=[0.0], A=np.eye(1), l=[1.0], u=[0.0])
    sol = solve_qp(pbm, QPSolverParams())
    assert sol.code == QPSolutionStatus.PRIMAL_INFEASIBLE
    assert sol.iterations == 0


def test_primal_infeasible_detected():
    pbm = QuadraticProgram(
        P=np.eye(1),
        q=[0.0],
        A=np.array([[1.0], [1.0]]),
        l=[1.0, -np.inf],
        u=[np.inf, 0.0],
    )
    sol = solve_qp(pbm, QPSolverParams(max_iter=10000))
    assert sol.code == QPSolutionStatus.PRIMAL_INFEASIBLE


def test_dual_infeasible_detected():
    pbm = QuadraticProgram(P=np.zeros((1, 1)), q=[1.0], A=np.eye(1), l=[-np.inf], u=[0.0])
    sol = solve_qp(pbm, QPSolverParams(max_iter=10000))
    assert sol.code == QPSolutionStatus.DUAL_INFEASIBLE


def test_max_iterations():
    pbm = _box_problem()
    sol = solve_qp(pbm, QPSolverParams(max_iter=1))
    assert sol.code == QPSolutionStatus.MAX_ITERATIONS
    assert sol.iterations == 1


def test_warmstart_reaches_same_solution_faster():
    pbm = _box_problem()
    solver = QPSolver(pbm, QPSolverParams())
    cold = solver.solve(pbm)
    warm = solver.solve(pbm, cold)
    assert warm.code == QPSolutionStatus.OPTIMAL
    assert warm.iterations <= cold.iterations
    np.testing.assert_allclose(warm.primal, cold.primal, atol=1e-6)


def test_sol_returns_latest_solution():
    pbm = _equality_problem()
    solver = QPSolver(pbm, QPSolverParams())
    result = solver.solve(pbm)
    assert solver.sol() is result
    assert solver.sol().code == QPSolutionStatus.OPTIMAL


def test_without_scaling_and_polish_is_near_optimal():
    pbm = _box_problem()
    sol = solve_qp(pbm, QPSolverParams(scaling=False, polish=False))
    assert sol.code == QPSolutionStatus.OPTIMAL
    np.testing.assert_allclose(sol.primal, np.clip(-pbm.q, pbm.l, pbm.u), atol=1e-2)


def test_solution_satisfies_constraints():
    rng = np.random.default_rng(3)
    n, m = 4, 6
    M = rng.standard_normal((n, n))
    P = M @ M.T + np.eye(n)
    q = rng.standard_normal(n)
    A = rng.standard_normal((m, n))
    l = -rng.random(m) - 0.1
    u = rng.random(m) + 0.1
    sol = solve_qp(QuadraticProgram(P=P, q=q, A=A, l=l, u=u), QPSolverParams())
    assert sol.code == QPSolutionStatus.OPTIMAL
    ax = A @ sol.primal
    assert np.all(ax >= l - 1e-5)
    assert np.all(ax <= u + 1e-5)
    np.testing.assert_allclose(P @ sol.primal + q + A.T @ sol.dual, 0.0, atol=1e-5)


def test_invalid_stop_check_iter():
    with pytest.raises(ValueError):
        solve_qp(_box_problem(), QPSolverParams(stop_check_iter=0))


def test_verbose_prints_summary(capsys):
    solve_qp(_box_problem(), QPSolverParams(verbose=True))
    out = capsys.readouterr().out
    assert "QP Solver" in out
    assert "QP solver summary:" in out