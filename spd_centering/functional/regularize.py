# Copyright (c) 2024-now SPD Learn Developers
# SPDX-License-Identifier: BSD-3-Clause
r"""Linear shrinkage toward a scaled identity.

All estimators here blend the empirical covariance :math:`S` with the target
:math:`\mu I`, :math:`\mu = \mathrm{tr}(S) / p`:

.. math::

    \hat{\Sigma} = (1 - \alpha) S + \alpha \mu I

and differ only in how the intensity :math:`\alpha` is chosen. The
data-driven rules reproduce :func:`sklearn.covariance.ledoit_wolf_shrinkage`
and :func:`sklearn.covariance.oas` on batched tensors.
"""

from typing import Union

import torch

from torch import Tensor


def shrinkage_covariance(X: Tensor, alpha: Union[Tensor, float]) -> Tensor:
    r"""Apply shrinkage regularization to covariance matrices.

    Computes :math:`(1 - \alpha) C + \alpha \frac{\mathrm{tr}(C)}{n} I_n`.

    Parameters
    ----------
    X : Tensor
        Batch of covariance matrices with shape `(..., n, n)`.
    alpha : Tensor or float
        Shrinkage intensity in `[0, 1]`, a scalar or one value per matrix
        (shape `(...)`).

    Returns
    -------
    Tensor
        Regularized covariance matrices with shape `(..., n, n)`.

    Notes
    -----
    For :math:`\alpha = 0` the covariance is returned unchanged, for
    :math:`\alpha = 1` a scaled identity with the same trace.

    Examples
    --------
    >>> import torch
    >>> from spd_centering.functional import shrinkage_covariance
    >>> X = torch.randn(4, 8, 8, dtype=torch.float64)
    >>> X = X @ X.mT
    >>> X_shrunk = shrinkage_covariance(X, 0.5)
    """
    n = X.shape[-1]
    alpha = torch.as_tensor(alpha, dtype=X.dtype, device=X.device)
    alpha = alpha[..., None, None]
    mu = X.diagonal(dim1=-2, dim2=-1).sum(-1)[..., None, None] / n
    identity = torch.eye(n, dtype=X.dtype, device=X.device)
    return (1 - alpha) * X + alpha * mu * identity


def ledoit_wolf_shrinkage(observations: Tensor, assume_centered: bool = False) -> Tensor:
    r"""Ledoit-Wolf (2004) shrinkage intensity.

    Parameters
    ----------
    observations : Tensor
        Observations with shape `(..., n_samples, n_features)`.
    assume_centered : bool, default=False
        Skip removing the per-feature mean.

    Returns
    -------
    Tensor
        Intensities in `[0, 1]`, shape `(...)`.

    Notes
    -----
    The intensity is the ratio :math:`\min(\beta, \delta) / \delta` with

    .. math::

        \delta = \frac{1}{p} \|S - \mu I\|_F^2, \qquad
        \beta = \frac{1}{p n} \left(\frac{1}{n} \sum_k \|x_k\|^4 - \|S\|_F^2\right)

    It is exactly zero for degenerate samples (for instance two centered
    observations), so it does not by itself guarantee a positive-definite
    estimate when ``n_samples < n_features``.
    """
    X = observations
    if not assume_centered:
        X = X - X.mean(dim=-2, keepdim=True)
    n_samples, n_features = X.shape[-2], X.shape[-1]
    if n_features == 1:
        return X.new_zeros(X.shape[:-2])

    X2 = X**2
    emp_cov_trace = X2.sum(dim=-2) / n_samples
    mu = emp_cov_trace.sum(dim=-1) / n_features

    delta_ = ((X.mT @ X) ** 2).sum(dim=(-2, -1)) / n_samples**2
    beta_ = (X2.sum(dim=-1) ** 2).sum(dim=-1)

    beta = (beta_ / n_samples - delta_) / (n_features * n_samples)
    delta = (delta_ - 2.0 * mu * emp_cov_trace.sum(dim=-1) + n_features * mu**2) / (
        n_features
    )
    beta = torch.minimum(beta, delta)

    safe_delta = torch.where(delta > 0, delta, torch.ones_like(delta))
    shrinkage = torch.where(
        (beta > 0) & (delta > 0), beta / safe_delta, torch.zeros_like(beta)
    )
    return shrinkage.clamp(0.0, 1.0)


def oas_shrinkage(emp_cov: Tensor, n_samples: int) -> Tensor:
    r"""Oracle Approximating Shrinkage intensity (Chen et al., 2010).

    Parameters
    ----------
    emp_cov : Tensor
        Empirical covariances (normalized by ``n_samples``), shape `(..., p, p)`.
    n_samples : int
        Number of observations each covariance was estimated from.

    Returns
    -------
    Tensor
        Intensities in `(0, 1]`, shape `(...)`.

    Notes
    -----
    With :math:`a` the mean of the squared entries of :math:`S` and
    :math:`\mu = \mathrm{tr}(S) / p`:

    .. math::

        \alpha = \min\left(\frac{a + \mu^2}{(n + 1)(a - \mu^2 / p)}, 1\right)

    and :math:`\alpha = 1` when the denominator vanishes. The numerator is
    positive as soon as :math:`\mathrm{tr}(S) > 0`, so the shrunk estimate is
    positive-definite for any number of samples.
    """
    n_features = emp_cov.shape[-1]
    if n_features == 1:
        return emp_cov.new_zeros(emp_cov.shape[:-2])

    alpha = (emp_cov**2).mean(dim=(-2, -1))
    mu = emp_cov.diagonal(dim1=-2, dim2=-1).sum(-1) / n_features
    mu_squared = mu**2
    num = alpha + mu_squared
    den = (n_samples + 1) * (alpha - mu_squared / n_features)

    safe_den = torch.where(den > 0, den, torch.ones_like(den))
    shrinkage = torch.where(den > 0, num / safe_den, torch.ones_like(den))
    return shrinkage.clamp(max=1.0)
