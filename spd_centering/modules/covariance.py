# Copyright (c) 2024-now SPD Learn Developers
# SPDX-License-Identifier: BSD-3-Clause
r"""Covariance estimation layer.

Wraps :func:`~spd_centering.functional.estimate_covariance` so that an
estimator configuration can be built once and applied to many scans.
"""

from torch import nn

from ..errors import InvalidInput
from ..functional.covariance import METHODS, estimate_covariance


class CovarianceEstimator(nn.Module):
    r"""Regularized covariance estimation from observations.

    Maps observations of shape `(..., n_samples, n_features)` to SPD matrices of
    shape `(..., n_features, n_features)`.

    Parameters
    ----------
    method : {"oas", "lwf", "scm", "shrunk"}, default="oas"
        Estimator family. ``"oas"`` and ``"lwf"`` blend the sample covariance
        with :math:`\mathrm{tr}(S)/p \cdot I` using a data-driven intensity;
        ``"shrunk"`` uses the fixed ``shrinkage``; ``"scm"`` is the
        unregularized sample covariance.
    assume_centered : bool, default=False
        Skip removing the per-feature mean.
    shrinkage : float, optional
        Fixed intensity for ``method="shrunk"``.
    device : torch.device, optional
        Device the estimates are moved to.
    dtype : torch.dtype, optional
        Data type the observations are cast to before estimation.

    Notes
    -----
    The bias of every estimator depends on ``n_samples``; feed it
    observations with the same number of rows when the estimates are to be
    compared.

    Examples
    --------
    >>> import torch
    >>> from spd_centering.modules import CovarianceEstimator
    >>> x = torch.randn(10, 8, 20, dtype=torch.float64)
    >>> CovarianceEstimator(method="oas")(x).shape
    torch.Size([10, 20, 20])
    """

    def __init__(
        self,
        method="oas",
        assume_centered=False,
        shrinkage=None,
        device=None,
        dtype=None,
    ):
        super().__init__()
        if method not in METHODS:
            raise InvalidInput(f"unknown method {method!r}; expected one of {METHODS}")
        self.method = method
        self.assume_centered = assume_centered
        self.shrinkage = shrinkage
        self.device = device
        self.dtype = dtype

    def forward(self, observations):
        if self.dtype is not None or self.device is not None:
            observations = observations.to(device=self.device, dtype=self.dtype)
        return estimate_covariance(
            observations,
            method=self.method,
            assume_centered=self.assume_centered,
            shrinkage=self.shrinkage,
        )

    def extra_repr(self) -> str:
        extra = f"method={self.method!r}, assume_centered={self.assume_centered}"
        if self.shrinkage is not None:
            extra += f", shrinkage={self.shrinkage}"
        return extra
