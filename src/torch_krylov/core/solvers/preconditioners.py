"""Preconditioner abstractions for the Krylov solvers.

A preconditioner is a capability with a single in-place method,
``apply(out, r)``. The solver resolves its preconditioner once, at
construction time; the iteration loop only ever calls ``apply``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from torch import Tensor


class Preconditioner(ABC):
    """Abstract base class for preconditioners.

    A preconditioner M approximates A^{-1}. Given a residual r,
    apply(out, r) writes an approximation of A^{-1} r into out, which
    improves the conditioning of the Krylov iteration.

    Implementations must not mutate r and must not rely on previous calls:
    the solver may pass any residual at any time. For CG, M must be SPD so
    that the preconditioned operator stays SPD; this is not checked.
    """

    @abstractmethod
    def apply(self, out: Tensor, r: Tensor) -> None:
        """Apply preconditioner to residual r.

        Args:
            out (Tensor): buffer receiving M^{-1} r, same shape as r.
            r (Tensor): residual tensor, same shape as x and b.
        """


class IdentityPreconditioner(Preconditioner):
    """No-op preconditioner, M = I: copies r into out."""

    def apply(self, out: Tensor, r: Tensor) -> None:
        out.copy_(r)


class DiagonalPreconditioner(Preconditioner):
    """Preconditioner based on the diagonal of A.

    Applies M^{-1} r = r / diag, which corresponds to Jacobi
    preconditioning. Effective when the diagonal captures most
    of the conditioning of A.

    Args:
        diag (Tensor): diagonal entries of A, same shape as the fields
            (or broadcastable to it). Must be non-zero.
    """

    def __init__(self, diag: Tensor):
        self._diag = diag

    def apply(self, out: Tensor, r: Tensor) -> None:
        """Apply diagonal preconditioning.

        Args:
            out (Tensor): buffer receiving r / diag.
            r (Tensor): residual tensor.
        """
        out.copy_(r).div_(self._diag)


def resolve_preconditioner(preconditioner: Optional[Preconditioner]) -> Preconditioner:
    """Resolve an optional preconditioner into a concrete one.

    Args:
        preconditioner (Preconditioner | None): user choice; None means no
            preconditioning.

    Returns:
        The given preconditioner, or an IdentityPreconditioner.

    Raises:
        TypeError: if preconditioner is neither None nor a Preconditioner.
    """
    if preconditioner is None:
        return IdentityPreconditioner()
    if not isinstance(preconditioner, Preconditioner):
        raise TypeError(
            "preconditioner must be a Preconditioner instance or None, "
            f"got {type(preconditioner)}"
        )
    return preconditioner
