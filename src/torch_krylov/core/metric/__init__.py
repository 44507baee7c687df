"""Metric structures for solver vectors.

This module provides:
- InnerProduct: abstract base class for inner products on fields.
- EuclideanInnerProduct: the unweighted inner product.
- DiagonalInnerProduct: volume-weighted inner product from per-entry weights.
"""

from .inner_product import DiagonalInnerProduct, EuclideanInnerProduct, InnerProduct

__all__ = [
    "DiagonalInnerProduct",
    "EuclideanInnerProduct",
    "InnerProduct",
]
