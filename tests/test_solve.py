# tests/test_solve.py
"""Tests for the outer solve loop and the one-shot cg_solve interface."""

import logging
import math

import pytest
import torch

from torch_krylov.core import (
    ConjugateGradientAlgorithm,
    DiagonalInnerProduct,
    DiagonalPreconditioner,
    InvalidConfiguration,
    SolveStatus,
    cg_solve,
    functional_operator,
)


def _diffusion_2d(out, u, coeff):
    """out = u - coeff * laplacian(u) on a grid with zero Dirichlet boundary."""
    out.copy_(u).mul_(1.0 + 4.0 * coeff)
    out[1:, :].sub_(u[:-1, :], alpha=coeff)
    out[:-1, :].sub_(u[1:, :], alpha=coeff)
    out[:, 1:].sub_(u[:, :-1], alpha=coeff)
    out[:, :-1].sub_(u[:, 1:], alpha=coeff)


class TestSolve:
    """Tests for IterativeSolver.solve."""

    def test_converges(self, diag_4_9):
        A, b = diag_4_9
        Q = torch.zeros(2, dtype=torch.float64)
        solver = ConjugateGradientAlgorithm().build(Q, A, b)

        result = solver.solve(Q, A, b)

        assert result.converged
        assert result.status is SolveStatus.CONVERGED
        assert 1 <= result.iterations <= 2
        assert result.solution is Q
        assert result.initial_residual_norm == pytest.approx(math.sqrt(97.0))
        assert torch.allclose(Q, torch.ones(2, dtype=torch.float64), atol=1e-12)

    def test_zero_budget_leaves_solution_untouched(self, diag_4_9):
        A, b = diag_4_9
        Q = torch.tensor([0.5, 0.5], dtype=torch.float64)
        solver = ConjugateGradientAlgorithm().build(Q, A, b)

        result = solver.solve(Q, A, b, maxiters=0)

        assert result.iterations == 0
        assert not result.converged
        assert result.status is SolveStatus.EXHAUSTED_ITERATIONS
        assert torch.equal(Q, torch.tensor([0.5, 0.5], dtype=torch.float64))

    def test_budget_override_is_restored(self, diag_4_9):
        A, b = diag_4_9
        Q = torch.zeros(2, dtype=torch.float64)
        solver = ConjugateGradientAlgorithm(maxiters=5).build(Q, A, b)

        solver.solve(Q, A, b, maxiters=1)

        assert solver.maxiters == 5

    def test_negative_budget_rejected(self, diag_4_9):
        A, b = diag_4_9
        Q = torch.zeros(2, dtype=torch.float64)
        solver = ConjugateGradientAlgorithm().build(Q, A, b)

        with pytest.raises(InvalidConfiguration):
            solver.solve(Q, A, b, maxiters=-1)

    def test_exhausted_budget_is_not_an_error(self):
        A = torch.diag(torch.tensor([1.0, 1000.0], dtype=torch.float64))
        b = torch.ones(2, dtype=torch.float64)
        Q = torch.zeros(2, dtype=torch.float64)
        solver = ConjugateGradientAlgorithm(maxiters=1).build(Q, A, b)

        result = solver.solve(Q, A, b)

        assert result.iterations == 1
        assert not result.converged
        assert result.status is SolveStatus.EXHAUSTED_ITERATIONS
        assert result.residual_norm > 0.0

    def test_exhaustion_logs_warning(self, caplog):
        A = torch.diag(torch.tensor([1.0, 1000.0], dtype=torch.float64))
        b = torch.ones(2, dtype=torch.float64)
        Q = torch.zeros(2, dtype=torch.float64)
        solver = ConjugateGradientAlgorithm(maxiters=1).build(Q, A, b)

        with caplog.at_level(logging.WARNING, logger="torch_krylov.core.solvers.krylov"):
            solver.solve(Q, A, b)

        assert "exhausted 1 iterations" in caplog.text

    def test_exact_guess_needs_no_iteration(self, diag_4_9):
        A, b = diag_4_9
        Q = torch.ones(2, dtype=torch.float64)
        solver = ConjugateGradientAlgorithm().build(Q, A, b)

        result = solver.solve(Q, A, b)

        assert result.converged
        assert result.iterations == 0
        assert result.residual_norm == 0.0

    def test_callback_records(self, spd_matrix, random_vector):
        n = 8
        A = spd_matrix(n)
        b = random_vector(n)
        Q = torch.zeros(n, dtype=torch.float64)
        solver = ConjugateGradientAlgorithm(atol=1e-10, rtol=1e-14).build(Q, A, b)
        records = []

        result = solver.solve(Q, A, b, callback=records.append)

        assert [rec.index for rec in records] == list(range(result.iterations + 1))
        assert records[0].residual_norm == pytest.approx(result.initial_residual_norm)
        assert records[-1].converged
        assert not any(rec.converged for rec in records[:-1])
        assert records[-1].residual_norm == result.residual_norm

    def test_solver_is_reusable(self, spd_matrix, random_vector):
        """One solver serves several right-hand sides of the same shape."""
        n = 6
        A = spd_matrix(n)
        solver = ConjugateGradientAlgorithm(atol=1e-12, rtol=1e-14, maxiters=100).build(
            torch.zeros(n, dtype=torch.float64), A, torch.zeros(n, dtype=torch.float64)
        )

        for seed in (1, 2):
            b = random_vector(n, seed=seed)
            Q = torch.zeros(n, dtype=torch.float64)
            result = solver.solve(Q, A, b)
            assert result.converged
            assert result.initial_residual_norm == pytest.approx(float(b.norm()))
            assert torch.allclose(A @ Q, b, atol=1e-10)

    def test_extra_args_forwarded_to_operator(self):
        calls = []

        def scaled(out, x, scale):
            calls.append(scale)
            out.copy_(x).mul_(scale)

        b = torch.tensor([2.0, 4.0, 6.0], dtype=torch.float64)
        Q = torch.zeros(3, dtype=torch.float64)
        solver = ConjugateGradientAlgorithm().build(Q, scaled, b)

        result = solver.solve(Q, scaled, b, 2.0)

        assert result.converged
        assert calls and all(scale == 2.0 for scale in calls)
        assert torch.allclose(Q, b / 2.0, atol=1e-14)

    def test_weighted_residual_norm(self):
        ip = DiagonalInnerProduct(torch.tensor([4.0, 1.0], dtype=torch.float64))
        A = torch.eye(2, dtype=torch.float64)
        b = torch.tensor([1.0, 2.0], dtype=torch.float64)
        Q = torch.zeros(2, dtype=torch.float64)
        solver = ConjugateGradientAlgorithm().build(Q, A, b, inner_product=ip)

        result = solver.solve(Q, A, b)

        assert result.initial_residual_norm == pytest.approx(math.sqrt(8.0))
        assert torch.allclose(Q, b, atol=1e-14)

    def test_implicit_diffusion_field(self):
        """A 2D implicit diffusion step solved matrix-free with Jacobi."""
        coeff = 0.5
        u_old = torch.zeros(6, 5, dtype=torch.float64)
        u_old[2:4, 1:3] = 1.0
        Q = u_old.clone()
        precond = DiagonalPreconditioner(torch.full_like(u_old, 1.0 + 4.0 * coeff))
        algorithm = ConjugateGradientAlgorithm(
            preconditioner=precond, atol=1e-12, rtol=1e-14, maxiters=100
        )
        solver = algorithm.build(Q, _diffusion_2d, u_old)

        result = solver.solve(Q, _diffusion_2d, u_old, coeff)

        assert result.converged
        assert result.iterations > 0
        check = torch.empty_like(Q)
        _diffusion_2d(check, Q, coeff)
        assert torch.allclose(check, u_old, atol=1e-10)
        assert float(Q.max()) < 1.0


class TestCGSolve:
    """Tests for the one-shot cg_solve interface."""

    def test_dense_matrix(self, spd_matrix, random_vector):
        n = 10
        A = spd_matrix(n)
        b = random_vector(n)

        x, info = cg_solve(A, b, atol=1e-12, rtol=1e-14, maxiters=100)

        assert info["converged"]
        assert info["status"] is SolveStatus.CONVERGED
        assert torch.allclose(A @ x, b, atol=1e-10)

    def test_torch_sparse_coo(self, diffusion_matrix):
        A = diffusion_matrix(12, 0.25)
        b = torch.ones(12, dtype=torch.float64)

        x, info = cg_solve(A.to_sparse(), b, atol=1e-12, rtol=1e-14, maxiters=100)

        assert info["converged"]
        assert torch.allclose(A @ x, b, atol=1e-10)

    def test_torch_sparse_tensor(self, diffusion_matrix):
        torch_sparse = pytest.importorskip("torch_sparse")
        A = diffusion_matrix(12, 0.25)
        b = torch.ones(12, dtype=torch.float64)

        sparse = torch_sparse.SparseTensor.from_dense(A)
        x, info = cg_solve(sparse, b, atol=1e-12, rtol=1e-14, maxiters=100)

        assert info["converged"]
        assert torch.allclose(A @ x, b, atol=1e-10)

    def test_out_of_place_operator(self, diag_4_9):
        A, b = diag_4_9

        x, info = cg_solve(functional_operator(lambda v: A @ v), b)

        assert info["converged"]
        assert torch.allclose(x, torch.ones(2, dtype=torch.float64), atol=1e-12)

    def test_initial_guess_not_modified(self, diag_4_9):
        A, b = diag_4_9
        x0 = torch.tensor([0.3, -0.2], dtype=torch.float64)

        x, _ = cg_solve(A, b, x0=x0)

        assert torch.equal(x0, torch.tensor([0.3, -0.2], dtype=torch.float64))
        assert x.data_ptr() != x0.data_ptr()
        assert torch.allclose(x, torch.ones(2, dtype=torch.float64), atol=1e-12)

    def test_zero_maxiters_rejected(self, diag_4_9):
        A, b = diag_4_9

        with pytest.raises(InvalidConfiguration):
            cg_solve(A, b, maxiters=0)

    def test_exhaustion_reported(self):
        A = torch.diag(torch.tensor([1.0, 1000.0], dtype=torch.float64))
        b = torch.ones(2, dtype=torch.float64)

        _, info = cg_solve(A, b, maxiters=1)

        assert not info["converged"]
        assert info["status"] is SolveStatus.EXHAUSTED_ITERATIONS
        assert info["iterations"] == 1
