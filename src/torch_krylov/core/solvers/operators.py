"""Linear operator conventions shared by the Krylov solvers.

The solvers never inspect an operator: they only call it as

    f(out, x, *args)

which must write A @ x into ``out`` without reading ``out`` or mutating
``x``. Matrices (dense, ``torch.sparse`` or ``torch_sparse.SparseTensor``)
are adapted to that convention by :func:`as_linear_operator`.
"""
# pylint: disable=invalid-name

from __future__ import annotations

from typing import TYPE_CHECKING, Callable, Union

from torch import Tensor

if TYPE_CHECKING:
    from torch_sparse import SparseTensor


# ------------------------------------------------------------------
# Type aliases for linear operators
# ------------------------------------------------------------------

OperatorFunction = Callable[..., None]
LinearOperator = Union[Tensor, "SparseTensor", OperatorFunction]


def _matvec(A, x: Tensor) -> Tensor:
    """Apply matrix A to field x viewed as a column vector.

    Args:
        A (Tensor | SparseTensor): (n, n) dense or sparse matrix.
        x (Tensor): field with n entries, any shape.

    Returns:
        A @ x with the shape of x.
    """
    return (A @ x.reshape(-1, 1)).reshape(x.shape)


def as_linear_operator(A: LinearOperator) -> OperatorFunction:
    """Adapt A to the in-place operator convention f(out, x, *args).

    Args:
        A (LinearOperator): dense/sparse matrix or in-place callable.

    Returns:
        Callable writing A @ x into out. Callables are returned unchanged;
        extra positional arguments are ignored for matrices.
    """
    if callable(A):
        return A

    def apply(out: Tensor, x: Tensor, *args) -> None:  # pylint: disable=unused-argument
        out.copy_(_matvec(A, x))

    return apply


def functional_operator(fn: Callable[..., Tensor]) -> OperatorFunction:
    """Wrap an out-of-place operator fn(x, *args) -> Tensor.

    Args:
        fn (Callable): function returning A @ x as a new tensor.

    Returns:
        In-place callable f(out, x, *args).
    """

    def apply(out: Tensor, x: Tensor, *args) -> None:
        out.copy_(fn(x, *args))

    return apply
