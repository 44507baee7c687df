"""Shared fixtures for solver tests."""
import pytest
import torch


@pytest.fixture
def spd_matrix():
    """Returns a factory for well-conditioned random SPD matrices."""
    def make(n: int, seed: int = 0) -> torch.Tensor:
        g = torch.Generator().manual_seed(seed)
        B = torch.randn(n, n, generator=g, dtype=torch.float64)
        return B @ B.T + n * torch.eye(n, dtype=torch.float64)
    return make


@pytest.fixture
def random_vector():
    """Returns a factory for reproducible random float64 vectors."""
    def make(n: int, seed: int = 1) -> torch.Tensor:
        g = torch.Generator().manual_seed(seed)
        return torch.randn(n, generator=g, dtype=torch.float64)
    return make


@pytest.fixture
def diag_4_9():
    """A = diag(4, 9), b = (4, 9); the solution is (1, 1)."""
    A = torch.diag(torch.tensor([4.0, 9.0], dtype=torch.float64))
    b = torch.tensor([4.0, 9.0], dtype=torch.float64)
    return A, b


@pytest.fixture
def diffusion_matrix():
    """Returns a factory for dense I + coeff * tridiag(-1, 2, -1).

    The matrix is SPD with eigenvalues in (1, 1 + 4*coeff).
    """
    def make(n: int, coeff: float) -> torch.Tensor:
        L = 2.0 * torch.eye(n, dtype=torch.float64)
        L -= torch.diag(torch.ones(n - 1, dtype=torch.float64), 1)
        L -= torch.diag(torch.ones(n - 1, dtype=torch.float64), -1)
        return torch.eye(n, dtype=torch.float64) + coeff * L
    return make
