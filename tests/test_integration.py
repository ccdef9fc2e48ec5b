import inspect

import pytest
import torch

import spd_centering

from spd_centering.modules import CovarianceEstimator, SubjectRecentering
from spd_centering.modules import __all__ as module_list


SUBJECTS = ["a", "a", "b", "b"]


def test_package_exports():
    for name in spd_centering.__all__:
        assert hasattr(spd_centering, name)
    for name in spd_centering.functional.__all__:
        assert hasattr(spd_centering.functional, name)


@pytest.mark.parametrize("module_name", module_list)
def test_module_expose_device_dtype(module_name):
    module_class = getattr(spd_centering.modules, module_name)
    parameters = inspect.signature(module_class.__init__).parameters
    assert "device" in parameters
    assert "dtype" in parameters


@pytest.mark.parametrize("module_name", module_list)
def test_module_repr(module_name):
    module = getattr(spd_centering.modules, module_name)()
    assert module_name in repr(module)


def test_estimator_then_recentering(rng):
    observations = torch.randn(4, 30, 5, generator=rng, dtype=torch.float64)
    covariances = CovarianceEstimator(method="oas")(observations)
    recentering = SubjectRecentering()
    tangents = recentering.tangent_space(recentering.fit_transform(covariances, SUBJECTS))
    assert tangents.shape == (4, 5, 5)
    assert torch.isfinite(tangents).all()


def test_gradient_flows_to_observations(rng):
    observations = torch.randn(4, 30, 5, generator=rng, dtype=torch.float64)
    observations.requires_grad_(True)

    covariances = CovarianceEstimator(method="oas")(observations)
    recentering = SubjectRecentering().fit(covariances.detach(), SUBJECTS)
    tangents = recentering.tangent_space(recentering(covariances, SUBJECTS))
    tangents.pow(2).sum().backward()

    assert observations.grad is not None
    assert torch.isfinite(observations.grad).all()
    assert observations.grad.abs().sum() > 0


def test_fitted_means_do_not_track_gradients(random_spd_matrix):
    covariances = random_spd_matrix(batch_size=4, n_channels=3).requires_grad_(True)
    recentering = SubjectRecentering().fit(covariances, SUBJECTS)
    assert not recentering.grand_mean.requires_grad
    assert not recentering.subject_means.requires_grad


def test_state_dict_round_trip(random_spd_matrix):
    covariances = random_spd_matrix(batch_size=4, n_channels=3)
    fitted = SubjectRecentering().fit(covariances, SUBJECTS)
    state = fitted.state_dict()
    assert set(state) == {"subject_means", "grand_mean"}
    assert torch.equal(state["grand_mean"], fitted.grand_mean)
