# Copyright (c) 2024-now SPD Learn Developers
# SPDX-License-Identifier: BSD-3-Clause
from math import sqrt

import torch


def ensure_sym(matrix):
    """Return the symmetric part ``(X + X^T) / 2`` of a batch of matrices."""
    return (matrix + matrix.mT) / 2


def sym_to_upper(X, preserve_norm=True):
    r"""Half-vectorize symmetric matrices.

    Keeps the upper triangle (diagonal included) in row-major order. With
    ``preserve_norm=True`` the off-diagonal entries are multiplied by
    :math:`\sqrt{2}` so that :math:`\|\mathrm{vec}(V)\|_2 = \|V\|_F`, which is
    what Euclidean tools (PCA, MDS, clustering) applied to tangent vectors
    expect.

    Parameters
    ----------
    X : torch.Tensor
        Symmetric matrices of shape `(..., n, n)`.
    preserve_norm : bool, default=True
        Apply the :math:`\sqrt{2}` weighting.

    Returns
    -------
    torch.Tensor
        Vectors of shape `(..., n(n+1)/2)`.

    Examples
    --------
    >>> import torch
    >>> sym_to_upper(torch.tensor([[1.0, 2.0], [2.0, 3.0]]), preserve_norm=False)
    tensor([1., 2., 3.])
    """
    n = X.shape[-1]
    rows, cols = torch.triu_indices(n, n, device=X.device)
    vec = X[..., rows, cols]
    if preserve_norm:
        weights = torch.where(
            rows == cols,
            torch.ones((), dtype=X.dtype, device=X.device),
            torch.full((), sqrt(2), dtype=X.dtype, device=X.device),
        )
        vec = vec * weights
    return vec


def vec_to_sym(vec, preserve_norm=True):
    """Inverse of :func:`sym_to_upper`."""
    n_float = (sqrt(1 + 8 * vec.shape[-1]) - 1) / 2
    n = int(round(n_float))
    if n * (n + 1) // 2 != vec.shape[-1]:
        raise ValueError(
            f"a vector of length {vec.shape[-1]} is not a half-vectorized "
            "symmetric matrix"
        )
    rows, cols = torch.triu_indices(n, n, device=vec.device)
    if preserve_norm:
        weights = torch.where(
            rows == cols,
            torch.ones((), dtype=vec.dtype, device=vec.device),
            torch.full((), sqrt(2), dtype=vec.dtype, device=vec.device),
        )
        vec = vec / weights
    X = vec.new_zeros(*vec.shape[:-1], n, n)
    X[..., rows, cols] = vec
    X[..., cols, rows] = vec
    return X
