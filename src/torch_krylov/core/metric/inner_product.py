"""Inner product abstraction for solver vectors.

An inner product on fields defines <x,y> = x^T M y where M is a symmetric
positive definite operator. The Krylov solvers measure residuals with the
norm induced by such an inner product, which lets discretisations supply
volume-weighted norms without the solver knowing about the grid.
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod

import torch
from torch import Tensor


class InnerProduct(ABC):
    """Abstract base class for inner products on solver vectors.

    An inner product defines:
        <x, y> = x^T M y

    where M is a symmetric positive definite operator and x, y are fields of
    any shape, treated as flat vectors of ``numel()`` entries.

    Implementations must provide:
    - apply(x): compute M @ x

    dot() and norm() are derived from apply() and return Python floats, so
    a distributed implementation only has to reduce inside apply()/dot().
    """

    @abstractmethod
    def apply(self, x: Tensor) -> Tensor:
        """Apply inner product operator M to field x.

        Args:
            x (Tensor): field values of any shape.

        Returns:
            M @ x, same shape as x.
        """

    def dot(self, x: Tensor, y: Tensor) -> float:
        """Compute <x, y> = x^T M y."""
        return float(torch.sum(x * self.apply(y)))

    def norm(self, x: Tensor) -> float:
        """Compute the induced norm sqrt(<x, x>)."""
        return math.sqrt(max(self.dot(x, x), 0.0))


class EuclideanInnerProduct(InnerProduct):
    """Unweighted inner product, M = I."""

    def apply(self, x: Tensor) -> Tensor:
        return x

    def dot(self, x: Tensor, y: Tensor) -> float:
        return float(torch.sum(x * y))

    def norm(self, x: Tensor) -> float:
        return float(torch.linalg.vector_norm(x))


class DiagonalInnerProduct(InnerProduct):
    """Diagonal inner product from per-entry weights.

    The mass matrix is diagonal:

        M[i] = weights[i]

    where weights[i] is typically the volume (or quadrature weight) of the
    cell holding entry i. The weighted norm is then the discrete L2 norm of
    the field rather than the Euclidean norm of its coefficients.

    Args:
        weights (Tensor): strictly positive weights, broadcastable to the
            shape of the fields the inner product is applied to.

    Raises:
        ValueError: if any weight is not strictly positive.
    """

    def __init__(self, weights: Tensor):
        if not bool(torch.all(weights > 0)):
            raise ValueError("DiagonalInnerProduct weights must be strictly positive")
        self._weights = weights

    @property
    def weights(self) -> Tensor:
        """Diagonal entries of M."""
        return self._weights

    def apply(self, x: Tensor) -> Tensor:
        """Apply M @ x = weights * x.

        Args:
            x (Tensor): field values, broadcast-compatible with weights.

        Returns:
            weights * x, same shape as x.
        """
        return self._weights * x

    # ------------------------------------------------------------------
    # Device movement
    # ------------------------------------------------------------------

    def to(self, *args, **kwargs) -> DiagonalInnerProduct:
        """Move the weights to the specified device/dtype."""
        self._weights = self._weights.to(*args, **kwargs)
        return self

    def cpu(self) -> DiagonalInnerProduct:
        """Move the weights to CPU."""
        return self.to("cpu")

    def cuda(self) -> DiagonalInnerProduct:
        """Move the weights to CUDA."""
        return self.to("cuda")
