"""Pytest configuration and shared fixtures for spd_centering tests.

This module provides common fixtures and configuration for testing SPD operations,
including seeded SPD matrix and observation generation and numerical tolerances.
"""

import pytest
import torch


# =============================================================================
# Pytest Configuration
# =============================================================================


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers",
        "integration: marks tests as integration tests (deselect with '-m \"not integration\"')",
    )


def pytest_addoption(parser):
    """Add custom command-line options."""
    parser.addoption(
        "--run-slow",
        action="store_true",
        default=False,
        help="Run slow tests",
    )


def pytest_collection_modifyitems(config, items):
    """Skip slow tests unless requested."""
    if not config.getoption("--run-slow"):
        skip_slow = pytest.mark.skip(reason="need --run-slow option to run")
        for item in items:
            if "slow" in item.keywords:
                item.add_marker(skip_slow)


# =============================================================================
# Random Seed Fixtures
# =============================================================================


@pytest.fixture
def rng():
    """Return a seeded random number generator."""
    return torch.Generator().manual_seed(42)


# =============================================================================
# SPD Matrix Generation Fixtures
# =============================================================================


@pytest.fixture
def random_spd_matrix(rng):
    """Factory fixture that generates seeded random SPD matrices.

    Example
    -------
    >>> def test_something(random_spd_matrix):
    ...     X = random_spd_matrix(batch_size=4, n_channels=5)
    ...     assert X.shape == (4, 5, 5)
    """

    def _make_spd(
        batch_size: int = 1,
        n_channels: int = 4,
        dtype: torch.dtype = torch.float64,
        eps: float = 0.1,
    ) -> torch.Tensor:
        """Generate random SPD matrices ``A A^T + eps I``.

        Returns
        -------
        torch.Tensor
            Shape (batch_size, n_channels, n_channels).
        """
        A = torch.randn(batch_size, n_channels, n_channels, generator=rng, dtype=dtype)
        return A @ A.transpose(-1, -2) + eps * torch.eye(n_channels, dtype=dtype)

    return _make_spd


@pytest.fixture
def random_symmetric_matrix(rng):
    """Factory fixture that generates seeded random symmetric matrices."""

    def _make_sym(batch_size=1, n_channels=4, dtype=torch.float64):
        A = torch.randn(batch_size, n_channels, n_channels, generator=rng, dtype=dtype)
        return (A + A.transpose(-1, -2)) / 2

    return _make_sym


@pytest.fixture
def observations(rng):
    """Factory fixture that generates seeded time series.

    Returns a function ``(n_samples, n_features, batch_size=None)`` producing
    observations of shape ``(n_samples, n_features)`` or
    ``(batch_size, n_samples, n_features)``.
    """

    def _make_observations(n_samples=20, n_features=4, batch_size=None, dtype=torch.float64):
        shape = (n_samples, n_features)
        if batch_size is not None:
            shape = (batch_size,) + shape
        return torch.randn(*shape, generator=rng, dtype=dtype)

    return _make_observations


# =============================================================================
# Numerical Tolerance Fixtures
# =============================================================================


@pytest.fixture
def tolerance():
    """Return default numerical tolerances for comparisons."""
    return {"atol": 1e-8, "rtol": 1e-7}


@pytest.fixture
def relaxed_tolerance():
    """Return relaxed numerical tolerances for approximate comparisons."""
    return {"atol": 1e-6, "rtol": 1e-5}


# =============================================================================
# Gradient Checking Fixtures
# =============================================================================


@pytest.fixture
def gradcheck_config():
    """Return configuration for torch.autograd.gradcheck."""
    return {
        "eps": 1e-6,
        "atol": 1e-4,
        "rtol": 1e-3,
        "raise_exception": True,
    }
