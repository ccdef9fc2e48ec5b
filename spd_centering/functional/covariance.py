# Copyright (c) 2024-now SPD Learn Developers
# SPDX-License-Identifier: BSD-3-Clause
"""Covariance estimation from multivariate observations.

Observations are laid out as ``(..., n_samples, n_features)``: one row per
time point, one column per region.

The bias of every estimator in this module depends on the number of samples
``n``. Matrices that are later compared or averaged on the manifold should be
estimated from the same number of rows; see
:func:`spd_centering.pipeline.equalize_sample_counts`.
"""

import torch

from ..errors import InvalidInput
from ..logging import get_logger
from .regularize import ledoit_wolf_shrinkage, oas_shrinkage, shrinkage_covariance
from .validation import check_spd


logger = get_logger(__name__)

METHODS = ("scm", "lwf", "oas", "shrunk")


def _as_observations(observations):
    X = torch.as_tensor(observations)
    if not X.is_floating_point():
        X = X.to(torch.float64)
    if X.ndim < 2:
        raise InvalidInput(
            f"observations must have shape (..., n_samples, n_features), got {tuple(X.shape)}"
        )
    n_samples, n_features = X.shape[-2], X.shape[-1]
    if n_samples == 0:
        raise InvalidInput("observations have no samples (n = 0)")
    if n_features == 0:
        raise InvalidInput("observations have no features (p = 0)")
    if not torch.isfinite(X).all():
        raise InvalidInput("observations contain non-finite values")
    return X


def covariance(observations, assume_centered=False):
    """Empirical covariance normalized by ``n_samples``.

    Parameters
    ----------
    observations : torch.Tensor
        Shape `(..., n_samples, n_features)`.
    assume_centered : bool, default=False
        Skip removing the per-feature mean.

    Returns
    -------
    torch.Tensor
        Shape `(..., n_features, n_features)`. Singular whenever
        ``n_samples <= n_features`` (or ``n_samples < n_features`` with
        ``assume_centered=True``).
    """
    X = _as_observations(observations)
    if not assume_centered:
        X = X - X.mean(dim=-2, keepdim=True)
    cov = X.mT @ X / X.shape[-2]
    return (cov + cov.mT) / 2


def shrinkage_intensity(observations, method="oas", assume_centered=False):
    """Data-driven shrinkage intensity chosen by ``method``.

    Parameters
    ----------
    observations : torch.Tensor
        Shape `(..., n_samples, n_features)`.
    method : {"oas", "lwf"}
        Oracle Approximating Shrinkage or Ledoit-Wolf.
    assume_centered : bool, default=False
        Skip removing the per-feature mean.

    Returns
    -------
    torch.Tensor
        Intensities in `[0, 1]`, shape `(...)`.
    """
    X = _as_observations(observations)
    if method == "lwf":
        return ledoit_wolf_shrinkage(X, assume_centered=assume_centered)
    if method == "oas":
        emp_cov = covariance(X, assume_centered=assume_centered)
        return oas_shrinkage(emp_cov, X.shape[-2])
    raise InvalidInput(
        f"method must be 'oas' or 'lwf' for a data-driven intensity, got {method!r}"
    )


def estimate_covariance(observations, method="oas", assume_centered=False, shrinkage=None):
    r"""Estimate a covariance matrix from observations.

    Parameters
    ----------
    observations : torch.Tensor or array-like
        Shape `(..., n_samples, n_features)` with ``n_samples >= 1`` and
        ``n_features >= 1``. Integer input is promoted to float64.
    method : {"oas", "lwf", "scm", "shrunk"}, default="oas"
        - ``"oas"``: Oracle Approximating Shrinkage toward
          :math:`\mathrm{tr}(S)/p \cdot I`. Positive-definite for any
          number of samples.
        - ``"lwf"``: Ledoit-Wolf shrinkage toward the same target. Not
          guaranteed positive-definite when ``n_samples < n_features``: the
          intensity is exactly zero for degenerate samples (for instance two
          observations), and the estimate then raises :class:`NotSPD`.
        - ``"scm"``: sample covariance normalized by ``n``, unregularized.
        - ``"shrunk"``: shrinkage with the fixed intensity ``shrinkage``.
    assume_centered : bool, default=False
        Skip removing the per-feature mean.
    shrinkage : float, optional
        Intensity in `[0, 1]`. Required by ``"shrunk"``, rejected otherwise.

    Returns
    -------
    torch.Tensor
        Covariances with shape `(..., n_features, n_features)`.

    Raises
    ------
    InvalidInput
        Empty or non-finite observations, unknown method, a bad
        ``shrinkage`` value, or zero total variance with a shrinkage method.
    NotSPD
        A shrinkage estimate that is not positive-definite (Ledoit-Wolf on a
        degenerate sample, or ``"shrunk"`` with a too small intensity).

    Notes
    -----
    Every estimator here is biased and the bias depends on ``n_samples``.
    Estimate all matrices of an analysis from the same number of samples.
    No estimator is silently substituted for another: a failing shrinkage
    estimate raises instead of falling back to ``"scm"``.

    Examples
    --------
    >>> import torch
    >>> X = torch.randn(8, 20, dtype=torch.float64)  # fewer samples than features
    >>> C = estimate_covariance(X, method="oas")
    >>> bool(torch.linalg.eigvalsh(C).min() > 0)
    True
    """
    if method not in METHODS:
        raise InvalidInput(f"unknown method {method!r}; expected one of {METHODS}")
    if method == "shrunk":
        if shrinkage is None:
            raise InvalidInput("method='shrunk' requires a shrinkage value")
        if not 0.0 <= float(shrinkage) <= 1.0:
            raise InvalidInput(f"shrinkage must lie in [0, 1], got {shrinkage}")
    elif shrinkage is not None:
        raise InvalidInput(f"shrinkage is only used with method='shrunk', not {method!r}")

    X = _as_observations(observations)
    emp_cov = covariance(X, assume_centered=assume_centered)
    if method == "scm":
        return emp_cov

    trace = emp_cov.diagonal(dim1=-2, dim2=-1).sum(-1)
    if (trace <= 0).any():
        raise InvalidInput(
            "observations have zero total variance (all features constant); "
            "a shrinkage target cannot be formed"
        )

    if method == "lwf":
        alpha = ledoit_wolf_shrinkage(X, assume_centered=assume_centered)
    elif method == "oas":
        alpha = oas_shrinkage(emp_cov, X.shape[-2])
    else:
        alpha = torch.full(
            emp_cov.shape[:-2], float(shrinkage), dtype=emp_cov.dtype, device=emp_cov.device
        )
    logger.debug(
        "%s shrinkage over %d estimate(s): intensity in [%.4g, %.4g]",
        method,
        alpha.numel(),
        alpha.min().item(),
        alpha.max().item(),
    )
    return check_spd(shrinkage_covariance(emp_cov, alpha), name=f"{method} estimate")
