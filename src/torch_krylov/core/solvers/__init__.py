"""Iterative linear solvers for implicit substeps.

This module provides:
- KrylovAlgorithm / IterativeSolver: generic solver configuration and lifecycle.
- ConjugateGradientAlgorithm / ConjugateGradientSolver: CG for SPD systems.
- cg_solve: one-shot Preconditioned Conjugate Gradient solve.
- Preconditioner: abstract base class for preconditioners.
- IdentityPreconditioner: no preconditioning.
- DiagonalPreconditioner: Jacobi (diagonal) preconditioner.
- as_linear_operator / functional_operator: operator adapters.
"""

from .cg import ConjugateGradientAlgorithm, ConjugateGradientSolver, cg_solve
from .krylov import (
    IterationRecord,
    IterativeSolver,
    KrylovAlgorithm,
    SolveResult,
    SolveStatus,
    build_solver,
    check_krylov_args,
)
from .operators import LinearOperator, as_linear_operator, functional_operator
from .preconditioners import (
    DiagonalPreconditioner,
    IdentityPreconditioner,
    Preconditioner,
    resolve_preconditioner,
)

__all__ = [
    "ConjugateGradientAlgorithm",
    "ConjugateGradientSolver",
    "DiagonalPreconditioner",
    "IdentityPreconditioner",
    "IterationRecord",
    "IterativeSolver",
    "KrylovAlgorithm",
    "LinearOperator",
    "Preconditioner",
    "SolveResult",
    "SolveStatus",
    "as_linear_operator",
    "build_solver",
    "cg_solve",
    "check_krylov_args",
    "functional_operator",
    "resolve_preconditioner",
]
