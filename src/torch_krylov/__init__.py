"""Krylov-subspace linear solvers with in-place PyTorch buffers."""

from . import core

__all__ = ["core"]
