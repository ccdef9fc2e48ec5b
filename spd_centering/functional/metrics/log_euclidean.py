# Copyright (c) 2024-now SPD Learn Developers
# SPDX-License-Identifier: BSD-3-Clause
import torch

from ...errors import InvalidInput
from ..core import matrix_exp, matrix_log
from ..utils import ensure_sym
from ..validation import normalize_weights, validate_spd_args


def log_euclidean_mean(matrices, weights=None):
    r"""Weighted Log-Euclidean mean of a set of SPD matrices.

    .. math::

       \bar{X} = \exp\left(\sum_i w_i \log(X_i)\right)

    A closed form, so it is used as the starting point of the Karcher
    iteration (``airm_mean(..., init="log_euclidean")``). It coincides with
    the affine-invariant mean when the matrices commute.

    Parameters
    ----------
    matrices : torch.Tensor
        SPD matrices with shape `(m, n, n)`.
    weights : torch.Tensor, optional
        Non-negative weights of shape `(m,)`. Uniform when None.

    Returns
    -------
    torch.Tensor
        Shape `(n, n)`.
    """
    (matrices,) = validate_spd_args(("matrices", matrices))
    if matrices.ndim != 3 or matrices.shape[0] == 0:
        raise InvalidInput(
            f"matrices must be a non-empty stack of shape (m, n, n), got {tuple(matrices.shape)}"
        )
    weights = normalize_weights(weights, matrices.shape[0], matrices)
    log_mean = torch.einsum("m,mij->ij", weights, matrix_log.apply(matrices))
    return ensure_sym(matrix_exp.apply(ensure_sym(log_mean)))
