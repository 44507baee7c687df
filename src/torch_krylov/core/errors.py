"""Exceptions raised by the Krylov solvers.

Every error derives from KrylovError and from the builtin it refines, so
callers may catch either ``KrylovError`` or e.g. ``ValueError``.

Running out of iterations is not an error: it is reported through
``SolveStatus.EXHAUSTED_ITERATIONS`` and the caller decides whether it is
fatal.
"""

from __future__ import annotations


class KrylovError(Exception):
    """Base class for all solver errors."""


class InvalidConfiguration(KrylovError, ValueError):
    """A tolerance or iteration budget was supplied with a non-positive value."""


class ShapeMismatch(KrylovError, ValueError):
    """Solution and right-hand side tensors do not share a shape."""


class DivergedResidual(KrylovError, ArithmeticError):
    """A CG step broke down before updating the solution.

    Raised when the curvature p^T A p is not positive on the scale of the
    operator (singular with the right-hand side outside its range, or
    indefinite), or when r^T z vanished while the residual did not (a
    degenerate preconditioner). The solution vector is left at its last
    valid value.

    Args:
        iteration (int): index of the iteration that failed.
        numerator (float): r^T z carried from the previous step.
        denominator (float): p^T A p of the current step.
    """

    def __init__(self, iteration: int, numerator: float, denominator: float):
        self.iteration = iteration
        self.numerator = numerator
        self.denominator = denominator
        super().__init__(
            f"CG diverged at iteration {iteration}: p^T A p = {denominator:.3e}, "
            f"r^T z = {numerator:.3e}; "
            "the operator or preconditioner is not SPD"
        )
