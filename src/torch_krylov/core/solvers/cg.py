"""Conjugate Gradient solver for symmetric positive definite systems.

This module implements the Preconditioned Conjugate Gradient (PCG) algorithm
on top of the generic framework in krylov.py. All work buffers are allocated
once, when the solver is built, and updated in place on every iteration, so
a solver can be reused for any number of systems of the same shape.

It has no knowledge of the physics producing the operator: the operator is
an opaque in-place callable (see operators.py).
"""
# pylint: disable=invalid-name

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Optional

import torch
from torch import Tensor

from ..errors import DivergedResidual
from ..metric.inner_product import InnerProduct
from .krylov import IterativeSolver, KrylovAlgorithm, check_krylov_args
from .operators import LinearOperator, as_linear_operator
from .preconditioners import Preconditioner, resolve_preconditioner

logger = logging.getLogger(__name__)


def _dot(x: Tensor, y: Tensor) -> float:
    """Euclidean inner product of two fields, as a Python float."""
    return float(torch.dot(x.reshape(-1), y.reshape(-1)))


@dataclass(frozen=True)
class ConjugateGradientAlgorithm(KrylovAlgorithm):
    """Recipe for a Conjugate Gradient solve of f(Q) = rhs.

    f must be a linear function of Q representable by a symmetric positive
    definite matrix with real coefficients.

    Args:
        preconditioner (Preconditioner | None): defaults to no
            preconditioning.
        atol (float | None): absolute tolerance; defaults to eps(dtype of Q).
        rtol (float | None): relative tolerance; defaults to sqrt(eps).
        maxiters (int | None): iteration budget; defaults to Q.numel().
    """

    def build(
        self,
        Q: Tensor,
        f: LinearOperator,
        rhs: Tensor,
        inner_product: Optional[InnerProduct] = None,
    ) -> ConjugateGradientSolver:
        return ConjugateGradientSolver(self, Q, f, rhs, inner_product=inner_product)


class ConjugateGradientSolver(IterativeSolver):
    """Working state of one Conjugate Gradient solve.

    Buffers (same shape, dtype and device as Q):
        residual: r = rhs - f(Q)
        z: preconditioner applied to r
        p: search direction
        Ap: operator applied to p

    Scalars:
        alpha: step length of the last iteration
        omega_prev: r^T z of the previous iteration (numerator of alpha)
        omega_new: r^T z of the current iteration (numerator of beta)

    A step breaks down when p^T A p <= n * eps * c * p^T p, where c is the
    largest Rayleigh quotient p^T A p / p^T p met since initialize(). This
    catches singular operators with the right-hand side outside their range
    as well as indefinite ones.

    Args:
        algorithm (ConjugateGradientAlgorithm): recipe to resolve.
        Q (Tensor): solution vector.
        f (LinearOperator): operator of the system.
        rhs (Tensor): right-hand side, same shape as Q.
        inner_product (InnerProduct | None): norm used for residuals.

    Raises:
        ShapeMismatch: if Q and rhs shapes differ.
        TypeError: if Q and rhs are not of one floating dtype.
    """

    def __init__(
        self,
        algorithm: ConjugateGradientAlgorithm,
        Q: Tensor,
        f: LinearOperator,  # pylint: disable=unused-argument
        rhs: Tensor,
        inner_product: Optional[InnerProduct] = None,
    ):
        check_krylov_args(Q, rhs)
        eps = torch.finfo(Q.dtype).eps

        atol = eps if algorithm.atol is None else float(algorithm.atol)
        rtol = math.sqrt(eps) if algorithm.rtol is None else float(algorithm.rtol)
        maxiters = Q.numel() if algorithm.maxiters is None else int(algorithm.maxiters)
        super().__init__(torch.empty_like(Q), atol, rtol, maxiters, inner_product)

        self.preconditioner: Preconditioner = resolve_preconditioner(algorithm.preconditioner)
        self.z = torch.empty_like(Q)
        self.p = torch.empty_like(Q)
        self.Ap = torch.empty_like(Q)
        self.alpha = 0.0
        self.omega_prev = 0.0
        self.omega_new = 0.0
        self._breakdown_tol = Q.numel() * eps
        self._curvature_scale = 0.0

    def initialize(
        self, Q: Tensor, f: LinearOperator, rhs: Tensor, *args
    ) -> tuple[float, bool]:
        """Compute the initial residual and search direction.

        Sets r = rhs - f(Q). If Q already satisfies the tolerances the
        search direction is left untouched; otherwise z = M^{-1} r and p = z.

        Returns:
            residual_norm (float): norm of the initial residual.
            converged (bool): True if Q already solves the system.
        """
        self._check_system(Q, rhs)
        f = as_linear_operator(f)
        r = self.residual

        f(r, Q, *args)
        r.neg_().add_(rhs)

        self.alpha = 0.0
        self.omega_prev = 0.0
        self.omega_new = 0.0
        self._curvature_scale = 0.0
        self.initial_residual_norm = self.inner_product.norm(r)
        residual_norm, converged = self.check_residual(0)
        self.residual_norm = residual_norm
        if converged:
            logger.debug(f"initial residual norm {residual_norm:.3e} needs no iteration")
            return residual_norm, converged

        self.preconditioner.apply(self.z, r)
        self.p.copy_(self.z)
        self.omega_prev = _dot(r, self.z)
        return residual_norm, converged

    def iterate(
        self, Q: Tensor, f: LinearOperator, rhs: Tensor, iteration: int, *args
    ) -> bool:
        """Perform one CG step, updating Q and the residual in place.

        Args:
            Q (Tensor): current solution, updated in place.
            f (LinearOperator): operator of the system.
            rhs (Tensor): right-hand side (unused by the recurrence).
            iteration (int): 1-based index of this iteration.
            *args: extra arguments forwarded to f.

        Returns:
            True if converged or the budget is reached; in that case the
            search direction is not updated.

        Raises:
            DivergedResidual: if r^T z vanishes while the residual does not,
                or if the curvature p^T A p is not positive relative to the
                largest Rayleigh quotient seen so far. Q is not modified.
        """
        f = as_linear_operator(f)
        r, z, p, Ap = self.residual, self.z, self.p, self.Ap
        omega_prev = self.omega_prev

        f(Ap, p, *args)
        pAp = _dot(p, Ap)
        if omega_prev == 0.0:
            raise DivergedResidual(iteration, omega_prev, pAp)
        pp = _dot(p, p)
        if pp > 0.0:
            self._curvature_scale = max(self._curvature_scale, pAp / pp)
        if pAp <= self._breakdown_tol * self._curvature_scale * pp:
            raise DivergedResidual(iteration, omega_prev, pAp)

        alpha = omega_prev / pAp
        self.alpha = alpha

        Q.add_(p, alpha=alpha)
        r.add_(Ap, alpha=-alpha)

        residual_norm, converged = self.check_residual(iteration)
        self.residual_norm = residual_norm
        if converged:
            return True

        self.preconditioner.apply(z, r)
        omega_new = _dot(r, z)
        beta = omega_new / omega_prev
        p.mul_(beta).add_(z)

        self.omega_new = omega_new
        self.omega_prev = omega_new
        return False


# ------------------------------------------------------------------
# One-shot interface
# ------------------------------------------------------------------


def cg_solve(
    A: LinearOperator,
    b: Tensor,
    x0: Optional[Tensor] = None,
    preconditioner: Optional[Preconditioner] = None,
    atol: Optional[float] = None,
    rtol: Optional[float] = None,
    maxiters: Optional[int] = None,
    inner_product: Optional[InnerProduct] = None,
) -> tuple[Tensor, dict]:
    """Solve the SPD linear system A x = b via Preconditioned Conjugate Gradient.

    Builds a throwaway solver; use ConjugateGradientAlgorithm.build directly
    to reuse buffers across repeated solves.

    Args:
        A (LinearOperator): symmetric positive definite operator, either a
            dense/sparse (n, n) matrix or an in-place callable f(out, x).
        b (Tensor): right-hand side, any shape with n entries.
        x0 (Tensor | None): initial guess, defaults to zero. Not modified.
        preconditioner (Preconditioner | None): optional preconditioner M.
            When None, CG runs without preconditioning (M = I).
        atol (float | None): absolute tolerance on the residual norm.
        rtol (float | None): tolerance relative to the initial residual norm.
        maxiters (int | None): maximum number of iterations. Defaults to n.
        inner_product (InnerProduct | None): norm used for residuals.

    Returns:
        x (Tensor): approximate solution, same shape as b.
        info (dict): convergence info with keys:
            - "converged" (bool)
            - "iterations" (int)
            - "residual_norm" (float)
            - "status" (SolveStatus)
    """
    x = torch.zeros_like(b) if x0 is None else x0.clone()
    algorithm = ConjugateGradientAlgorithm(
        preconditioner=preconditioner, atol=atol, rtol=rtol, maxiters=maxiters
    )
    f = as_linear_operator(A)
    solver = algorithm.build(x, f, b, inner_product=inner_product)
    result = solver.solve(x, f, b)

    info = {
        "converged": result.converged,
        "iterations": result.iterations,
        "residual_norm": result.residual_norm,
        "status": result.status,
    }

    return x, info
