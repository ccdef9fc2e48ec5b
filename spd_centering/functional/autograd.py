# Copyright (c) 2024-now SPD Learn Developers
# SPDX-License-Identifier: BSD-3-Clause
r"""Forward and backward passes shared by spectral matrix functions.

A spectral function applies a scalar function :math:`f` to the eigenvalues of
a symmetric matrix, :math:`F(X) = U f(\Lambda) U^\top`. Its derivative is
given by the Daleckii-Krein formula

.. math::

    dF = U \left(L \odot (U^\top \, \mathrm{sym}(dX) \, U)\right) U^\top

where the Loewner matrix :math:`L` holds the divided differences of
:math:`f` off the diagonal and :math:`f'` on it.
"""

import torch

from .numerical import get_loewner_threshold
from .utils import ensure_sym


def spectral_forward(X, fn, *args):
    """Apply ``fn`` to the eigenvalues of the symmetric matrices ``X``.

    Returns
    -------
    output : torch.Tensor
        ``U diag(fn(s)) U^T``.
    s : torch.Tensor
        Eigenvalues of ``X`` (ascending).
    U : torch.Tensor
        Eigenvectors of ``X``.
    fs : torch.Tensor
        ``fn(s, *args)``.
    """
    s, U = torch.linalg.eigh(X)
    fs = fn(s, *args)
    output = (U * fs.unsqueeze(-2).to(dtype=X.dtype)) @ U.mT
    return output, s, U, fs


def spectral_backward(grad_output, s, U, fs, derivative, *args):
    """Gradient of a spectral function, given the cached decomposition."""
    diff = s.unsqueeze(-1) - s.unsqueeze(-2)
    same = diff.abs() < get_loewner_threshold(s)
    diff = diff.masked_fill(same, 1.0)

    loewner = (fs.unsqueeze(-1) - fs.unsqueeze(-2)) / diff
    ds = derivative(s, *args)
    on_diagonal = 0.5 * (ds.unsqueeze(-1) + ds.unsqueeze(-2))
    loewner = torch.where(same, on_diagonal, loewner)

    inner = U.mT @ ensure_sym(grad_output) @ U
    return U @ (loewner * inner) @ U.mT
