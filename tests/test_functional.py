import pytest
import torch

from torch.autograd import gradcheck

from spd_centering.functional import (
    ensure_sym,
    matrix_exp,
    matrix_inv_sqrt,
    matrix_log,
    matrix_power,
    matrix_sqrt,
    matrix_sqrt_inv,
    sym_to_upper,
    vec_to_sym,
)


def make_spd_with_spectrum(eigenvalues, seed=0):
    """SPD matrix with the given eigenvalues and a random eigenbasis."""
    g = torch.Generator().manual_seed(seed)
    eigenvalues = torch.as_tensor(eigenvalues, dtype=torch.float64)
    n = eigenvalues.shape[-1]
    Q, _ = torch.linalg.qr(torch.randn(n, n, generator=g, dtype=torch.float64))
    return Q @ torch.diag_embed(eigenvalues) @ Q.mT, Q


def test_matrix_log():
    X, Q = make_spd_with_spectrum([0.5, 1.0, 2.0, 4.0])
    expected = Q @ torch.diag(torch.tensor([0.5, 1.0, 2.0, 4.0], dtype=torch.float64).log()) @ Q.mT
    assert matrix_log.apply(X).allclose(expected)

    def safe_matrix_log(matrix):
        return matrix_log.apply(ensure_sym(matrix))

    assert gradcheck(safe_matrix_log, X.unsqueeze(0).requires_grad_())


def test_matrix_exp():
    X, Q = make_spd_with_spectrum([-1.0, 0.0, 0.5, 2.0])
    expected = Q @ torch.diag(torch.tensor([-1.0, 0.0, 0.5, 2.0], dtype=torch.float64).exp()) @ Q.mT
    assert matrix_exp.apply(X).allclose(expected)

    def safe_matrix_exp(matrix):
        return matrix_exp.apply(ensure_sym(matrix))

    assert gradcheck(safe_matrix_exp, X.unsqueeze(0).requires_grad_())


def test_exp_inverts_log(random_spd_matrix, tolerance):
    X = random_spd_matrix(batch_size=3, n_channels=5)
    assert torch.allclose(matrix_exp.apply(matrix_log.apply(X)), X, **tolerance)


def test_matrix_sqrt_squares_back(random_spd_matrix, tolerance):
    X = random_spd_matrix(batch_size=3, n_channels=5)
    X_sqrt = matrix_sqrt.apply(X)
    assert torch.allclose(X_sqrt @ X_sqrt, X, **tolerance)
    assert torch.allclose(X_sqrt, X_sqrt.mT)


def test_matrix_sqrt_inv_matches_separate_functions(random_spd_matrix, tolerance):
    X = random_spd_matrix(batch_size=2, n_channels=4)
    X_sqrt, X_invsqrt = matrix_sqrt_inv.apply(X)
    assert torch.allclose(X_sqrt, matrix_sqrt.apply(X), **tolerance)
    assert torch.allclose(X_invsqrt, matrix_inv_sqrt.apply(X), **tolerance)
    eye = torch.eye(4, dtype=X.dtype).expand_as(X)
    assert torch.allclose(X_sqrt @ X_invsqrt, eye, **tolerance)


@pytest.mark.parametrize("exponent", [-1.0, 0.5, 2.0])
def test_matrix_power(exponent, random_spd_matrix, relaxed_tolerance):
    X = random_spd_matrix(batch_size=2, n_channels=4)
    if exponent == -1.0:
        expected = torch.linalg.inv(X)
    elif exponent == 2.0:
        expected = X @ X
    else:
        expected = matrix_sqrt.apply(X)
    assert torch.allclose(matrix_power.apply(X, exponent), expected, **relaxed_tolerance)


@pytest.mark.parametrize(
    "fn",
    [matrix_sqrt, matrix_inv_sqrt],
    ids=["sqrt", "inv_sqrt"],
)
def test_square_root_gradients(fn, gradcheck_config):
    X, _ = make_spd_with_spectrum([0.5, 1.0, 3.0], seed=1)

    def safe_fn(matrix):
        return fn.apply(ensure_sym(matrix))

    assert gradcheck(safe_fn, X.unsqueeze(0).requires_grad_(), **gradcheck_config)


def test_matrix_power_gradient(gradcheck_config):
    X, _ = make_spd_with_spectrum([0.5, 1.0, 3.0], seed=2)

    def safe_power(matrix):
        return matrix_power.apply(ensure_sym(matrix), 0.3)

    assert gradcheck(safe_power, X.unsqueeze(0).requires_grad_(), **gradcheck_config)


def test_matrix_sqrt_inv_gradient(gradcheck_config):
    X, _ = make_spd_with_spectrum([0.5, 1.0, 3.0], seed=3)

    def safe_sqrt_inv(matrix):
        return matrix_sqrt_inv.apply(ensure_sym(matrix))

    assert gradcheck(safe_sqrt_inv, X.unsqueeze(0).requires_grad_(), **gradcheck_config)


def test_repeated_eigenvalues_gradient_is_finite():
    X = (2.0 * torch.eye(3, dtype=torch.float64)).requires_grad_()
    torch.trace(matrix_log.apply(X)).backward()
    assert torch.isfinite(X.grad).all()
    assert torch.allclose(X.grad, 0.5 * torch.eye(3, dtype=torch.float64))


def test_matrix_log_warns_on_singular_input():
    X = torch.diag(torch.tensor([1.0, 0.0], dtype=torch.float64))
    with pytest.warns(UserWarning, match="clamped eigenvalue"):
        matrix_log.apply(X)


def test_sym_to_upper_preserves_norm(random_symmetric_matrix):
    V = random_symmetric_matrix(batch_size=3, n_channels=4)
    vec = sym_to_upper(V)
    assert vec.shape == (3, 10)
    assert torch.allclose(vec.norm(dim=-1), torch.linalg.norm(V, dim=(-2, -1)))
    assert torch.allclose(vec_to_sym(vec), V)


def test_sym_to_upper_without_weights():
    V = torch.tensor([[1.0, 2.0], [2.0, 3.0]])
    assert torch.equal(sym_to_upper(V, preserve_norm=False), torch.tensor([1.0, 2.0, 3.0]))
    assert torch.equal(vec_to_sym(torch.tensor([1.0, 2.0, 3.0]), preserve_norm=False), V)


def test_vec_to_sym_rejects_bad_length():
    with pytest.raises(ValueError, match="half-vectorized"):
        vec_to_sym(torch.zeros(4))
