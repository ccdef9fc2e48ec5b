# Copyright (c) 2024-now SPD Learn Developers
# SPDX-License-Identifier: BSD-3-Clause
r"""Affine-Invariant Riemannian Metric (AIRM) for SPD matrices.

Geometric Foundation
--------------------
The AIRM endows the SPD manifold :math:`\mathcal{S}_{++}^n` with a Riemannian
structure that is invariant under congruence: :math:`d(WAW^\top, WBW^\top) = d(A, B)`
for any invertible :math:`W`. At a base point :math:`P` the inner product of
two tangent vectors (symmetric matrices) is

.. math::

    g_P(U, V) = \mathrm{tr}(P^{-1} U P^{-1} V)

and the logarithmic and exponential maps are

.. math::

    \mathrm{Log}_P(X) = P^{1/2} \log(P^{-1/2} X P^{-1/2}) P^{1/2}, \qquad
    \mathrm{Exp}_P(V) = P^{1/2} \exp(P^{-1/2} V P^{-1/2}) P^{1/2}

Argument order follows pyRiemann: the point (or tangent vector) comes first,
the base point second.

Every public function checks its SPD arguments unless
``numerical_config.validate_inputs`` is False. The underscore variants skip
the checks and are used inside loops that already validated their inputs.
"""

import torch

from ...errors import InvalidInput
from ..core import matrix_exp, matrix_inv_sqrt, matrix_log, matrix_power, matrix_sqrt_inv
from ..numerical import get_epsilon, numerical_config
from ..utils import ensure_sym
from ..validation import check_same_size, check_tangent, validate_spd_args


def _distance(A, B):
    A_invsqrt = matrix_inv_sqrt.apply(A)
    eigenvalues = torch.linalg.eigvalsh(ensure_sym(A_invsqrt @ B @ A_invsqrt))
    threshold = get_epsilon(eigenvalues.dtype, "eigval_log")
    return eigenvalues.clamp(min=threshold).log().square().sum(dim=-1).sqrt()


def _log_map(X, base):
    base_sqrt, base_invsqrt = matrix_sqrt_inv.apply(base)
    inner = ensure_sym(base_invsqrt @ X @ base_invsqrt)
    return ensure_sym(base_sqrt @ matrix_log.apply(inner) @ base_sqrt)


def _exp_map(V, base):
    base_sqrt, base_invsqrt = matrix_sqrt_inv.apply(base)
    inner = ensure_sym(base_invsqrt @ V @ base_invsqrt)
    return ensure_sym(base_sqrt @ matrix_exp.apply(inner) @ base_sqrt)


def airm_distance(A, B):
    r"""Geodesic distance under the affine-invariant metric.

    .. math::

        d(A, B) = \|\log(A^{-1/2} B A^{-1/2})\|_F = \sqrt{\sum_i \log^2 \lambda_i}

    where :math:`\lambda_i` are the generalized eigenvalues of the pencil
    :math:`(A, B)`.

    Parameters
    ----------
    A : torch.Tensor
        SPD matrices with shape `(..., n, n)`.
    B : torch.Tensor
        SPD matrices with shape `(..., n, n)`, broadcastable with `A`.

    Returns
    -------
    torch.Tensor
        Distances with shape `(...)`.

    Raises
    ------
    NotSPD
        If `A` or `B` is not SPD.
    DimensionMismatch
        If `A` and `B` differ in `n`.

    Notes
    -----
    One eigendecomposition per pair, so the cost is cubic in `n`. A full
    pairwise matrix over `m` items costs :math:`O(m^2 n^3)`; see
    :func:`airm_pairwise_distances`.

    Examples
    --------
    >>> import torch
    >>> A = torch.eye(3, dtype=torch.float64)
    >>> d = airm_distance(A, 2 * A)
    >>> print(f"{d.item():.4f}")
    1.2006
    """
    A, B = validate_spd_args(("A", A), ("B", B))
    return _distance(A, B)


def airm_geodesic(A, B, t):
    r"""Point at parameter ``t`` on the geodesic from `A` to `B`.

    .. math::

        \gamma(t) = A^{1/2} (A^{-1/2} B A^{-1/2})^t A^{1/2}

    ``t = 0`` gives `A`, ``t = 1`` gives `B`, ``t = 0.5`` the geometric mean.
    """
    A, B = validate_spd_args(("A", A), ("B", B))
    A_sqrt, A_invsqrt = matrix_sqrt_inv.apply(A)
    inner = ensure_sym(A_invsqrt @ B @ A_invsqrt)
    return ensure_sym(A_sqrt @ matrix_power.apply(inner, float(t)) @ A_sqrt)


def log_map_airm(X, base):
    r"""Riemannian logarithmic map of `X` at `base`.

    Parameters
    ----------
    X : torch.Tensor
        SPD matrices with shape `(..., n, n)`.
    base : torch.Tensor
        SPD base points with shape `(..., n, n)`, broadcastable with `X`.

    Returns
    -------
    torch.Tensor
        Symmetric tangent vectors at `base`, shape `(..., n, n)`.
        ``log_map_airm(base, base)`` is the zero matrix.

    See Also
    --------
    :func:`exp_map_airm` : Inverse map.
    """
    X, base = validate_spd_args(("X", X), ("base", base))
    return _log_map(X, base)


def exp_map_airm(V, base):
    r"""Riemannian exponential map of the tangent vector `V` at `base`.

    Parameters
    ----------
    V : torch.Tensor
        Symmetric tangent vectors at `base`, shape `(..., n, n)`.
    base : torch.Tensor
        SPD base points with shape `(..., n, n)`.

    Returns
    -------
    torch.Tensor
        SPD matrices, shape `(..., n, n)`. Inverse of :func:`log_map_airm`:
        ``exp_map_airm(log_map_airm(X, base), base)`` recovers `X`.
    """
    (base,) = validate_spd_args(("base", base))
    if numerical_config.validate_inputs:
        V = check_tangent(V, "V")
        check_same_size(("V", V), ("base", base))
    else:
        V = torch.as_tensor(V)
    return _exp_map(V, base)


def airm_inner_product(U, V, base):
    r"""Riemannian inner product :math:`\mathrm{tr}(P^{-1} U P^{-1} V)` at `base`."""
    (base,) = validate_spd_args(("base", base))
    base_invsqrt = matrix_inv_sqrt.apply(base)
    U_white = base_invsqrt @ torch.as_tensor(U) @ base_invsqrt
    V_white = base_invsqrt @ torch.as_tensor(V) @ base_invsqrt
    return (U_white * V_white).sum(dim=(-2, -1))


def airm_norm(V, base):
    """Riemannian norm of the tangent vector `V` at `base`.

    Equals ``airm_distance(base, exp_map_airm(V, base))``.
    """
    return airm_inner_product(V, V, base).clamp(min=0).sqrt()


def airm_pairwise_distances(matrices):
    """Full matrix of geodesic distances between `m` SPD matrices.

    Parameters
    ----------
    matrices : torch.Tensor
        Shape `(m, n, n)`.

    Returns
    -------
    torch.Tensor
        Symmetric `(m, m)` matrix with a zero diagonal. Costs `m^2`
        eigendecompositions of size `n`.
    """
    (matrices,) = validate_spd_args(("matrices", matrices))
    if matrices.ndim != 3:
        raise InvalidInput(
            f"matrices must have shape (m, n, n), got {tuple(matrices.shape)}"
        )
    distances = _distance(matrices.unsqueeze(1), matrices.unsqueeze(0))
    distances = (distances + distances.mT) / 2
    return distances.fill_diagonal_(0.0)
