"""Generic Krylov-subspace solver framework.

This module provides:
- KrylovAlgorithm: immutable recipe (preconditioner, tolerances, budget).
- IterativeSolver: per-solve working state with the initialize / iterate /
  check_residual lifecycle and the outer solve loop.
- IterationRecord, SolveStatus, SolveResult: what a solve reports.

Concrete algorithms (see cg.py) subclass both KrylovAlgorithm and
IterativeSolver. A solver is single-threaded: its buffers are mutated in
place on every iteration, so one solver must never be iterated from two
threads at once. Independent solvers share nothing.
"""

from __future__ import annotations

import enum
import logging
import numbers
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, NamedTuple, Optional

from torch import Tensor

from ..errors import InvalidConfiguration, ShapeMismatch
from ..metric.inner_product import EuclideanInnerProduct, InnerProduct
from .operators import LinearOperator, as_linear_operator
from .preconditioners import Preconditioner

logger = logging.getLogger(__name__)


# ------------------------------------------------------------------
# Algorithm configuration
# ------------------------------------------------------------------


@dataclass(frozen=True)
class KrylovAlgorithm:
    """Immutable recipe for an iterative linear solver.

    Unset values are resolved when a solver is built, relative to the
    solution vector: atol = machine epsilon of its dtype, rtol = sqrt of
    that epsilon, maxiters = its number of entries.

    The base class only validates the configuration. Concrete algorithms
    (e.g. ConjugateGradientAlgorithm) override build() to return their
    solver; calling build() on the base class raises NotImplementedError.

    Args:
        preconditioner (Preconditioner | None): defaults to no
            preconditioning.
        atol (float | None): absolute tolerance on the residual norm.
        rtol (float | None): tolerance relative to the initial residual norm.
        maxiters (int | None): iteration budget.

    Raises:
        InvalidConfiguration: if any supplied value is not strictly positive.
    """

    preconditioner: Optional[Preconditioner] = None
    atol: Optional[float] = None
    rtol: Optional[float] = None
    maxiters: Optional[int] = None

    def __post_init__(self):
        for name in ("atol", "rtol"):
            value = getattr(self, name)
            if value is None:
                continue
            if not isinstance(value, numbers.Real) or not value > 0:
                raise InvalidConfiguration(f"{name} must be positive, got {value!r}")
        if self.maxiters is not None:
            if isinstance(self.maxiters, bool) or not isinstance(self.maxiters, numbers.Integral):
                raise InvalidConfiguration(
                    f"maxiters must be an integer, got {self.maxiters!r}"
                )
            if self.maxiters <= 0:
                raise InvalidConfiguration(
                    f"maxiters must be positive, got {self.maxiters!r}"
                )

    def build(
        self,
        Q: Tensor,
        f: LinearOperator,
        rhs: Tensor,
        inner_product: Optional[InnerProduct] = None,
    ) -> IterativeSolver:
        """Build the solver state for the system f(Q) = rhs.

        Args:
            Q (Tensor): solution vector; fixes shape, dtype and device of
                every work buffer.
            f (LinearOperator): operator of the system.
            rhs (Tensor): right-hand side, same shape as Q.
            inner_product (InnerProduct | None): inner product whose norm
                measures residuals. Defaults to the Euclidean one.

        Returns:
            A fresh solver bound to one linear system.

        Raises:
            NotImplementedError: on the base class, which has no solver.
        """
        raise NotImplementedError(
            f"{type(self).__name__} does not provide a solver"
        )


def build_solver(
    algorithm: KrylovAlgorithm,
    Q: Tensor,
    f: LinearOperator,
    rhs: Tensor,
    inner_product: Optional[InnerProduct] = None,
) -> IterativeSolver:
    """Build the solver state for ``algorithm``; see KrylovAlgorithm.build."""
    return algorithm.build(Q, f, rhs, inner_product=inner_product)


def check_krylov_args(Q: Tensor, rhs: Tensor) -> None:
    """Check that Q and rhs can form a linear system.

    Raises:
        ShapeMismatch: if the shapes differ.
        TypeError: if the dtypes differ or are not floating point.
    """
    if Q.shape != rhs.shape:
        raise ShapeMismatch(
            f"solution shape {tuple(Q.shape)} does not match "
            f"right-hand side shape {tuple(rhs.shape)}"
        )
    if not Q.is_floating_point():
        raise TypeError(f"solution must be floating point, got dtype {Q.dtype}")
    if Q.dtype != rhs.dtype:
        raise TypeError(
            f"solution dtype {Q.dtype} does not match right-hand side dtype {rhs.dtype}"
        )


# ------------------------------------------------------------------
# Solve outcome
# ------------------------------------------------------------------


class IterationRecord(NamedTuple):
    """Snapshot of one iteration, handed to solve callbacks."""

    index: int
    residual_norm: float
    converged: bool


class SolveStatus(enum.Enum):
    """Why a solve stopped."""

    CONVERGED = "converged"
    EXHAUSTED_ITERATIONS = "exhausted_iterations"


@dataclass(frozen=True)
class SolveResult:
    """Outcome of IterativeSolver.solve.

    ``converged`` is numerical convergence only; reaching the iteration
    budget gives ``converged=False`` and ``status=EXHAUSTED_ITERATIONS``.
    """

    solution: Tensor
    converged: bool
    iterations: int
    residual_norm: float
    status: SolveStatus
    initial_residual_norm: float


# ------------------------------------------------------------------
# Solver state
# ------------------------------------------------------------------


class IterativeSolver(ABC):
    """Per-solve working state of an iterative linear solver.

    Subclasses allocate their work buffers in __init__ and implement
    initialize() and iterate(). The residual buffer is shared with this
    base class, which owns the convergence test and the outer loop.

    Args:
        residual (Tensor): residual buffer, same shape as the solution.
        atol (float): resolved absolute tolerance.
        rtol (float): resolved relative tolerance.
        maxiters (int): resolved iteration budget.
        inner_product (InnerProduct | None): norm used for residuals.
    """

    def __init__(
        self,
        residual: Tensor,
        atol: float,
        rtol: float,
        maxiters: int,
        inner_product: Optional[InnerProduct] = None,
    ):
        self.residual = residual
        self.atol = atol
        self.rtol = rtol
        self.maxiters = maxiters
        self.inner_product = (
            inner_product if inner_product is not None else EuclideanInnerProduct()
        )
        self.initial_residual_norm = 0.0
        self.residual_norm = 0.0

    def within_tolerance(self, residual_norm: float) -> bool:
        """Numerical part of the convergence test (no iteration budget)."""
        return (
            residual_norm <= self.atol
            or residual_norm <= self.rtol * self.initial_residual_norm
        )

    def check_residual(self, iteration: int) -> tuple[float, bool]:
        """Measure the current residual and test for convergence.

        The test passes when the residual norm is below atol, or below
        rtol times the norm recorded by initialize(), or when ``iteration``
        has reached the budget. Has no side effects.

        Args:
            iteration (int): number of iterations completed so far.

        Returns:
            residual_norm (float): weighted norm of the residual buffer.
            converged (bool): whether iteration should stop.
        """
        residual_norm = self.inner_product.norm(self.residual)
        converged = self.within_tolerance(residual_norm) or iteration >= self.maxiters
        return residual_norm, converged

    def _check_system(self, Q: Tensor, rhs: Tensor) -> None:
        if Q.shape != self.residual.shape or rhs.shape != self.residual.shape:
            raise ShapeMismatch(
                f"solver was built for shape {tuple(self.residual.shape)}, "
                f"got solution {tuple(Q.shape)} and right-hand side {tuple(rhs.shape)}"
            )

    @abstractmethod
    def initialize(
        self, Q: Tensor, f: LinearOperator, rhs: Tensor, *args
    ) -> tuple[float, bool]:
        """Reset the solver for the system f(Q) = rhs.

        Must run exactly once per solve, before any iterate() call. Fully
        overwrites the state left by a previous solve.

        Returns:
            residual_norm (float): norm of the initial residual.
            converged (bool): True if Q already solves the system.
        """

    @abstractmethod
    def iterate(
        self, Q: Tensor, f: LinearOperator, rhs: Tensor, iteration: int, *args
    ) -> bool:
        """Perform one iteration, updating Q in place.

        Args:
            iteration (int): 1-based index of this iteration.

        Returns:
            True if the solver has converged (or reached its budget).
        """

    def solve(
        self,
        Q: Tensor,
        f: LinearOperator,
        rhs: Tensor,
        *args,
        maxiters: Optional[int] = None,
        callback: Optional[Callable[[IterationRecord], None]] = None,
    ) -> SolveResult:
        """Solve f(Q) = rhs, updating Q in place.

        Calls initialize() once, then iterate() until converged or the
        iteration budget is spent.

        Args:
            Q (Tensor): initial guess, overwritten with the solution.
            f (LinearOperator): operator of the system.
            rhs (Tensor): right-hand side.
            *args: extra arguments forwarded to every call of f.
            maxiters (int | None): budget for this call only; may be 0.
                Defaults to the solver's resolved budget.
            callback (Callable | None): called with an IterationRecord
                after initialization and after each iteration.

        Returns:
            SolveResult describing the outcome.

        Raises:
            InvalidConfiguration: if maxiters is negative.
            DivergedResidual: if the iteration breaks down.
        """
        budget = self.maxiters if maxiters is None else maxiters
        if budget < 0:
            raise InvalidConfiguration(f"maxiters must be non-negative, got {budget}")
        f = as_linear_operator(f)

        resolved = self.maxiters
        self.maxiters = budget
        try:
            iterations = 0
            residual_norm, converged = self.initialize(Q, f, rhs, *args)
            if callback is not None:
                callback(IterationRecord(0, residual_norm, converged))

            while not converged and iterations < budget:
                iterations += 1
                converged = self.iterate(Q, f, rhs, iterations, *args)
                residual_norm = self.residual_norm
                logger.debug(f"iteration {iterations}: residual norm {residual_norm:.6e}")
                if callback is not None:
                    callback(IterationRecord(iterations, residual_norm, converged))
        finally:
            self.maxiters = resolved

        if self.within_tolerance(residual_norm):
            status = SolveStatus.CONVERGED
            logger.info(
                f"{type(self).__name__} converged in {iterations} iterations "
                f"(residual norm {residual_norm:.3e})"
            )
        else:
            status = SolveStatus.EXHAUSTED_ITERATIONS
            logger.warning(
                f"{type(self).__name__} exhausted {budget} iterations "
                f"(residual norm {residual_norm:.3e}, "
                f"initial {self.initial_residual_norm:.3e})"
            )

        return SolveResult(
            solution=Q,
            converged=status is SolveStatus.CONVERGED,
            iterations=iterations,
            residual_norm=residual_norm,
            status=status,
            initial_residual_norm=self.initial_residual_norm,
        )
