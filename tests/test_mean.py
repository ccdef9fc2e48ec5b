"""Tests for the Karcher mean under the affine-invariant metric."""

import logging

import pytest
import torch

from spd_centering.errors import ConvergenceFailure, InvalidInput, NotSPD
from spd_centering.functional import (
    airm_distance,
    airm_geodesic,
    airm_mean,
    karcher_mean_iteration,
    log_map_airm,
    tangent_space_variance,
)


def frechet_cost(matrices, mean):
    return airm_distance(matrices, mean).square().sum()


def test_single_matrix_is_returned_unchanged(random_spd_matrix):
    X = random_spd_matrix(batch_size=1)
    mean, info = airm_mean(X, return_info=True)
    assert torch.equal(mean, X[0])
    assert mean.data_ptr() != X.data_ptr()
    assert info["n_iter"] == 0


def test_empty_set_raises():
    with pytest.raises(InvalidInput, match="empty"):
        airm_mean(torch.empty(0, 3, 3, dtype=torch.float64))


def test_non_spd_input_raises(random_spd_matrix):
    X = random_spd_matrix(batch_size=3)
    X[1] = -X[1]
    with pytest.raises(NotSPD):
        airm_mean(X)


def test_requires_a_stack():
    with pytest.raises(InvalidInput):
        airm_mean(torch.eye(3, dtype=torch.float64))


def test_commuting_matrices_give_geometric_mean():
    A = torch.diag(torch.tensor([1.0, 4.0, 9.0], dtype=torch.float64))
    B = torch.diag(torch.tensor([4.0, 1.0, 1.0], dtype=torch.float64))
    expected = torch.diag(torch.tensor([2.0, 2.0, 3.0], dtype=torch.float64))
    assert torch.allclose(airm_mean(torch.stack([A, B])), expected)


def test_two_matrices_give_geodesic_midpoint(random_spd_matrix):
    A, B = random_spd_matrix(batch_size=2)
    assert torch.allclose(airm_mean(torch.stack([A, B])), airm_geodesic(A, B, 0.5), atol=1e-8)


def test_mean_is_a_critical_point(random_spd_matrix):
    X = random_spd_matrix(batch_size=6)
    mean = airm_mean(X)
    assert log_map_airm(X, mean).sum(dim=0).abs().max() < 1e-8


def test_mean_minimizes_frechet_cost(random_spd_matrix):
    X = random_spd_matrix(batch_size=5)
    mean = airm_mean(X)
    cost = frechet_cost(X, mean)
    for other in (X.mean(dim=0), X[0], airm_geodesic(mean, X[1], 0.05)):
        assert cost <= frechet_cost(X, other)


def test_affine_equivariance(random_spd_matrix, rng):
    X = random_spd_matrix(batch_size=4, n_channels=3)
    W = torch.randn(3, 3, generator=rng, dtype=torch.float64) + 2 * torch.eye(3, dtype=torch.float64)
    transformed = airm_mean(W @ X @ W.T)
    assert torch.allclose(transformed, W @ airm_mean(X) @ W.T, atol=1e-8)


def test_zero_weight_is_ignored(random_spd_matrix):
    X = random_spd_matrix(batch_size=3)
    weights = torch.tensor([1.0, 1.0, 0.0])
    assert torch.allclose(airm_mean(X, weights=weights), airm_mean(X[:2]), atol=1e-8)


def test_duplicates_count_in_the_multiset(random_spd_matrix):
    A, B = random_spd_matrix(batch_size=2)
    duplicated = airm_mean(torch.stack([A, A, B]))
    weighted = airm_mean(torch.stack([A, B]), weights=torch.tensor([2.0, 1.0]))
    assert torch.allclose(duplicated, weighted, atol=1e-8)
    assert torch.allclose(duplicated, airm_geodesic(A, B, 1.0 / 3.0), atol=1e-8)


@pytest.mark.parametrize("init", ["arithmetic", "log_euclidean", "first"])
def test_initialization_does_not_change_the_result(init, random_spd_matrix):
    X = random_spd_matrix(batch_size=4)
    start = X[0] if init == "first" else init
    assert torch.allclose(airm_mean(X, init=start), airm_mean(X), atol=1e-8)


def test_unknown_init():
    X = torch.eye(2, dtype=torch.float64).expand(2, 2, 2)
    with pytest.raises(InvalidInput, match="init"):
        airm_mean(X, init="median")


def test_return_info(random_spd_matrix):
    X = random_spd_matrix(batch_size=4)
    _, info = airm_mean(X, return_info=True, tol=1e-9)
    assert info["converged"]
    assert 1 <= info["n_iter"] <= 100
    assert info["criterion"] <= 1e-9


def make_dispersed(n_matrices, n_channels, scale=1.0, seed=5):
    """``exp(scale * (A + A^T))``: pairwise distances around 10, conditioning ~1e4."""
    generator = torch.Generator().manual_seed(seed)
    A = torch.randn(n_matrices, n_channels, n_channels, generator=generator, dtype=torch.float64)
    return torch.linalg.matrix_exp(scale * (A + A.mT))


def test_dispersed_set_converges_with_defaults():
    X = make_dispersed(10, 4)
    mean, info = airm_mean(X, return_info=True)
    assert info["converged"]
    assert info["criterion"] <= 1e-10
    # dispersed inputs take a shorter step than the classic fixed point
    assert info["step_size"] < 1.0
    tangent_mean = log_map_airm(X, mean).mean(dim=0)
    assert tangent_mean.abs().max() < 1e-7 * mean.abs().max()


def test_dispersed_set_converges_from_arithmetic_start():
    X = make_dispersed(10, 4)
    mean = airm_mean(X, init="arithmetic", max_iter=300)
    assert airm_distance(mean, airm_mean(X)) < 1e-8


def test_default_start_is_log_euclidean(random_spd_matrix):
    X = random_spd_matrix(batch_size=5)
    _, info_default = airm_mean(X, return_info=True)
    _, info_log_euclidean = airm_mean(X, init="log_euclidean", return_info=True)
    assert info_default["n_iter"] == info_log_euclidean["n_iter"]
    assert info_default["criterion"] == info_log_euclidean["criterion"]


def test_convergence_failure_after_budget(random_spd_matrix):
    X = random_spd_matrix(batch_size=4)
    with pytest.raises(ConvergenceFailure) as excinfo:
        airm_mean(X, max_iter=1)
    assert excinfo.value.n_iter == 1
    assert excinfo.value.criterion > 0
    assert isinstance(excinfo.value, RuntimeError)


def test_iterations_are_logged(random_spd_matrix, caplog):
    X = random_spd_matrix(batch_size=3)
    with caplog.at_level(logging.DEBUG, logger="spd_centering"):
        airm_mean(X)
    assert any("Karcher iteration" in record.getMessage() for record in caplog.records)


def test_karcher_step_decreases_cost(random_spd_matrix):
    X = random_spd_matrix(batch_size=5)
    start = X.mean(dim=0)
    updated = karcher_mean_iteration(X, start)
    assert frechet_cost(X, updated) < frechet_cost(X, start)


def test_karcher_step_at_the_mean_is_stationary(random_spd_matrix):
    X = random_spd_matrix(batch_size=5)
    mean = airm_mean(X)
    assert torch.allclose(karcher_mean_iteration(X, mean), mean, atol=1e-8)


def test_tangent_space_variance(random_symmetric_matrix):
    V = random_symmetric_matrix(batch_size=6)
    expected = ((V - V.mean(dim=0)) ** 2).sum(dim=(-2, -1)).mean()
    assert torch.allclose(tangent_space_variance(V), expected)
    assert torch.allclose(
        tangent_space_variance(V, torch.zeros(4, 4, dtype=V.dtype)),
        (V**2).sum(dim=(-2, -1)).mean(),
    )
