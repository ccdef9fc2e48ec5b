# Copyright (c) 2024-now SPD Learn Developers
# SPDX-License-Identifier: BSD-3-Clause
"""Matrix functions of symmetric matrices.

Each function is a :class:`torch.autograd.Function` computed from a single
eigendecomposition, so it works on batches ``(..., n, n)`` and supports
backpropagation. Call them through ``.apply``::

    L = matrix_log.apply(X)

Eigenvalues are clamped to a dtype-aware floor before log, square root,
inverse square root and real powers (see
:mod:`spd_centering.functional.numerical`). The floor only matters for
matrices that are numerically singular; inputs that passed the SPD check are
never affected.
"""

import warnings

import torch

from torch.autograd import Function

from .autograd import spectral_backward, spectral_forward
from .numerical import get_epsilon, numerical_config


class matrix_log(Function):
    r"""Matrix logarithm :math:`\log(X) = U \log(\Lambda) U^\top` of an SPD matrix.

    Maps SPD matrices onto the space of symmetric matrices. It is the
    building block of the AIRM logarithmic map and of the Log-Euclidean mean.

    See Also
    --------
    :class:`matrix_exp` : Inverse function.
    """

    @staticmethod
    def applied_fct(s):
        return s.clamp(min=get_epsilon(s.dtype, "eigval_log")).log()

    @staticmethod
    def derivative(s):
        threshold = get_epsilon(s.dtype, "eigval_log")
        return torch.where(s > threshold, s.reciprocal(), torch.zeros_like(s))

    @staticmethod
    def forward(ctx, X):
        output, s, U, fs = spectral_forward(X, matrix_log.applied_fct)
        threshold = get_epsilon(s.dtype, "eigval_log")
        smallest = s.min()
        if numerical_config.warn_on_clamp and smallest < threshold:
            warnings.warn(
                f"matrix_log clamped eigenvalue {smallest.item():.2e} to "
                f"{threshold:.2e}; the input is numerically singular.",
                UserWarning,
            )
        ctx.save_for_backward(s, U, fs)
        return output

    @staticmethod
    def backward(ctx, grad_output):
        s, U, fs = ctx.saved_tensors
        return spectral_backward(grad_output, s, U, fs, matrix_log.derivative)


class matrix_exp(Function):
    r"""Matrix exponential :math:`\exp(S) = U \exp(\Lambda) U^\top` of a symmetric matrix.

    The result is always SPD.
    """

    @staticmethod
    def applied_fct(s):
        return s.exp()

    @staticmethod
    def derivative(s):
        return s.exp()

    @staticmethod
    def forward(ctx, X):
        output, s, U, fs = spectral_forward(X, matrix_exp.applied_fct)
        ctx.save_for_backward(s, U, fs)
        return output

    @staticmethod
    def backward(ctx, grad_output):
        s, U, fs = ctx.saved_tensors
        return spectral_backward(grad_output, s, U, fs, matrix_exp.derivative)


class matrix_power(Function):
    r"""Real power :math:`X^t = U \Lambda^t U^\top` of an SPD matrix.

    Parameters
    ----------
    X : torch.Tensor
        SPD matrices of shape `(..., n, n)`.
    exponent : float
        The power ``t``.
    """

    @staticmethod
    def applied_fct(s, exponent):
        return s.clamp(min=get_epsilon(s.dtype, "eigval_power")).pow(exponent)

    @staticmethod
    def derivative(s, exponent):
        threshold = get_epsilon(s.dtype, "eigval_power")
        clamped = s.clamp(min=threshold)
        ds = exponent * clamped.pow(exponent - 1.0)
        return torch.where(s > threshold, ds, torch.zeros_like(ds))

    @staticmethod
    def forward(ctx, X, exponent):
        exponent = float(exponent)
        output, s, U, fs = spectral_forward(X, matrix_power.applied_fct, exponent)
        ctx.save_for_backward(s, U, fs)
        ctx.exponent = exponent
        return output

    @staticmethod
    def backward(ctx, grad_output):
        s, U, fs = ctx.saved_tensors
        grad = spectral_backward(
            grad_output, s, U, fs, matrix_power.derivative, ctx.exponent
        )
        return grad, None


class matrix_sqrt(Function):
    """Principal square root of an SPD matrix."""

    @staticmethod
    def applied_fct(s):
        return s.clamp(min=get_epsilon(s.dtype, "eigval_sqrt")).sqrt()

    @staticmethod
    def derivative(s):
        threshold = get_epsilon(s.dtype, "eigval_sqrt")
        ds = 0.5 * s.clamp(min=threshold).rsqrt()
        return torch.where(s > threshold, ds, torch.zeros_like(ds))

    @staticmethod
    def forward(ctx, X):
        output, s, U, fs = spectral_forward(X, matrix_sqrt.applied_fct)
        ctx.save_for_backward(s, U, fs)
        return output

    @staticmethod
    def backward(ctx, grad_output):
        s, U, fs = ctx.saved_tensors
        return spectral_backward(grad_output, s, U, fs, matrix_sqrt.derivative)


class matrix_inv_sqrt(Function):
    """Inverse principal square root of an SPD matrix."""

    @staticmethod
    def applied_fct(s):
        return s.clamp(min=get_epsilon(s.dtype, "eigval_inv_sqrt")).rsqrt()

    @staticmethod
    def derivative(s):
        threshold = get_epsilon(s.dtype, "eigval_inv_sqrt")
        ds = -0.5 * s.clamp(min=threshold).pow(-1.5)
        return torch.where(s > threshold, ds, torch.zeros_like(ds))

    @staticmethod
    def forward(ctx, X):
        output, s, U, fs = spectral_forward(X, matrix_inv_sqrt.applied_fct)
        ctx.save_for_backward(s, U, fs)
        return output

    @staticmethod
    def backward(ctx, grad_output):
        s, U, fs = ctx.saved_tensors
        return spectral_backward(grad_output, s, U, fs, matrix_inv_sqrt.derivative)


class matrix_sqrt_inv(Function):
    """Square root and inverse square root from one eigendecomposition.

    Returns
    -------
    torch.Tensor
        :math:`X^{1/2}`.
    torch.Tensor
        :math:`X^{-1/2}`.
    """

    @staticmethod
    def forward(ctx, X):
        X_sqrt, s, U, s_sqrt = spectral_forward(X, matrix_sqrt.applied_fct)
        s_invsqrt = matrix_inv_sqrt.applied_fct(s)
        X_invsqrt = (U * s_invsqrt.unsqueeze(-2).to(dtype=X.dtype)) @ U.mT
        ctx.save_for_backward(s, U, s_sqrt, s_invsqrt)
        return X_sqrt, X_invsqrt

    @staticmethod
    def backward(ctx, grad_sqrt, grad_invsqrt):
        s, U, s_sqrt, s_invsqrt = ctx.saved_tensors
        return spectral_backward(
            grad_sqrt, s, U, s_sqrt, matrix_sqrt.derivative
        ) + spectral_backward(grad_invsqrt, s, U, s_invsqrt, matrix_inv_sqrt.derivative)
