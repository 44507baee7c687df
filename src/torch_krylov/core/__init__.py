""" Core modules """

from .errors import DivergedResidual, InvalidConfiguration, KrylovError, ShapeMismatch
from .metric import DiagonalInnerProduct, EuclideanInnerProduct, InnerProduct
from .solvers import (
    ConjugateGradientAlgorithm,
    ConjugateGradientSolver,
    DiagonalPreconditioner,
    IdentityPreconditioner,
    IterationRecord,
    IterativeSolver,
    KrylovAlgorithm,
    Preconditioner,
    SolveResult,
    SolveStatus,
    as_linear_operator,
    build_solver,
    cg_solve,
    functional_operator,
)

__all__ = [
    "ConjugateGradientAlgorithm",
    "ConjugateGradientSolver",
    "DiagonalInnerProduct",
    "DiagonalPreconditioner",
    "DivergedResidual",
    "EuclideanInnerProduct",
    "IdentityPreconditioner",
    "InnerProduct",
    "InvalidConfiguration",
    "IterationRecord",
    "IterativeSolver",
    "KrylovAlgorithm",
    "KrylovError",
    "Preconditioner",
    "ShapeMismatch",
    "SolveResult",
    "SolveStatus",
    "as_linear_operator",
    "build_solver",
    "cg_solve",
    "functional_operator",
]
