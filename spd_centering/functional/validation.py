# Copyright (c) 2024-now SPD Learn Developers
# SPDX-License-Identifier: BSD-3-Clause
"""Input checks for SPD matrices and tangent vectors."""

import torch

from ..errors import DimensionMismatch, InvalidInput, NotSPD
from .numerical import get_epsilon, numerical_config


def as_matrix_tensor(X, name="X"):
    """Convert ``X`` to a floating point tensor of shape ``(..., n, n)``.

    Integer input is promoted to float64. Raises :class:`InvalidInput` for
    anything that is not a non-empty batch of square matrices.
    """
    X = torch.as_tensor(X)
    if not X.is_floating_point():
        X = X.to(torch.float64)
    if X.ndim < 2:
        raise InvalidInput(f"{name} must have at least 2 dimensions, got {X.ndim}")
    if X.shape[-1] != X.shape[-2]:
        raise InvalidInput(
            f"{name} must be square in its last two dimensions, got {tuple(X.shape)}"
        )
    if X.shape[-1] == 0:
        raise InvalidInput(f"{name} is empty")
    return X


def is_symmetric(X):
    """True when every matrix in ``X`` is symmetric up to the dtype tolerance."""
    tol = get_epsilon(X.dtype, "symmetry")
    scale = X.abs().amax(dim=(-2, -1)).clamp(min=1.0)
    asym = (X - X.mT).abs().amax(dim=(-2, -1))
    return bool((asym <= tol * scale).all())


def is_spd(X):
    """True when every matrix in ``X`` is finite, symmetric and positive-definite."""
    if not torch.isfinite(X).all() or not is_symmetric(X):
        return False
    eigvals = torch.linalg.eigvalsh(X)
    threshold = get_epsilon(X.dtype, "spd_check") * eigvals.abs().amax(dim=-1)
    return bool((eigvals[..., 0] > threshold).all())


def check_spd(X, name="X"):
    """Raise :class:`NotSPD` unless every matrix in ``X`` is SPD.

    Parameters
    ----------
    X : torch.Tensor
        Matrices of shape ``(..., n, n)``.
    name : str
        Argument name used in the error message.

    Returns
    -------
    torch.Tensor
        ``X`` unchanged, so the call can be used inline.
    """
    X = as_matrix_tensor(X, name)
    if not torch.isfinite(X).all():
        raise NotSPD(f"{name} contains non-finite entries")
    if not is_symmetric(X):
        raise NotSPD(f"{name} is not symmetric")
    eigvals = torch.linalg.eigvalsh(X)
    threshold = get_epsilon(X.dtype, "spd_check") * eigvals.abs().amax(dim=-1)
    bad = eigvals[..., 0] <= threshold
    if bad.any():
        raise NotSPD(
            f"{name} is not positive-definite: {int(bad.sum())} matrix(es) with "
            f"smallest eigenvalue {eigvals[..., 0].min().item():.3e}"
        )
    return X


def check_tangent(V, name="V"):
    """Raise :class:`InvalidInput` unless ``V`` holds finite symmetric matrices."""
    V = as_matrix_tensor(V, name)
    if not torch.isfinite(V).all():
        raise InvalidInput(f"{name} contains non-finite entries")
    if not is_symmetric(V):
        raise InvalidInput(f"{name} is not symmetric, so it is not a tangent vector")
    return V


def check_same_size(*named):
    """Raise :class:`DimensionMismatch` unless all matrices share ``n``.

    Parameters
    ----------
    *named : tuple of (str, torch.Tensor)
        Pairs of argument name and matrix tensor.
    """
    sizes = {name: X.shape[-1] for name, X in named}
    if len(set(sizes.values())) > 1:
        detail = ", ".join(f"{name}: {n}x{n}" for name, n in sizes.items())
        raise DimensionMismatch(f"matrix sizes disagree ({detail})")


def validate_spd_args(*named):
    """Check the SPD arguments of a public geometry function.

    Parameters
    ----------
    *named : tuple of (str, array-like)
        Pairs of argument name and value.

    Returns
    -------
    list of torch.Tensor
        The arguments as tensors, in order. The SPD and size checks are
        skipped when ``numerical_config.validate_inputs`` is False.
    """
    tensors = [(name, as_matrix_tensor(X, name)) for name, X in named]
    if numerical_config.validate_inputs:
        check_same_size(*tensors)
        for name, X in tensors:
            check_spd(X, name)
    return [X for _, X in tensors]


def normalize_weights(weights, n_matrices, like):
    """Return weights of length ``n_matrices`` that sum to one.

    ``None`` gives uniform weights. Negative, non-finite or all-zero weights
    raise :class:`InvalidInput`.
    """
    if weights is None:
        return torch.full((n_matrices,), 1.0 / n_matrices, dtype=like.dtype, device=like.device)
    weights = torch.as_tensor(weights, dtype=like.dtype, device=like.device)
    if weights.shape != (n_matrices,):
        raise InvalidInput(
            f"weights must have shape ({n_matrices},), got {tuple(weights.shape)}"
        )
    if not torch.isfinite(weights).all() or (weights < 0).any():
        raise InvalidInput("weights must be finite and non-negative")
    total = weights.sum()
    if total <= 0:
        raise InvalidInput("weights sum to zero")
    return weights / total
