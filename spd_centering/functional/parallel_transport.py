# Copyright (c) 2024-now SPD Learn Developers
# SPDX-License-Identifier: BSD-3-Clause
r"""Parallel transport and translation under the affine-invariant metric.

Parallel transport moves a tangent vector :math:`v` at :math:`P` to the
tangent space at :math:`Q` along the connecting geodesic. Under AIRM it is a
congruence :math:`v \mapsto E v E^\top` with

.. math::

    E = (Q P^{-1})^{1/2} = Q^{1/2} (Q^{-1/2} P Q^{-1/2})^{-1/2} Q^{-1/2}

The second form only takes square roots of symmetric matrices. The map is a
linear isometry between tangent spaces:
:math:`g_Q(E u E^\top, E v E^\top) = g_P(u, v)`.

Translating an SPD matrix :math:`X` from :math:`P` to :math:`Q` means
projecting it to the tangent space at :math:`P`, transporting the tangent
vector to :math:`Q` and mapping it back to the manifold:

.. math::

    \mathrm{Exp}_Q\left(\Gamma_{P \to Q} \, \mathrm{Log}_P(X)\right) = E X E^\top

This is how recordings are re-centered from a subject mean to the grand mean
:cite:p:`rodrigues2019riemannian`.
"""

from .core import matrix_inv_sqrt, matrix_sqrt_inv
from .metrics.affine_invariant import _exp_map, _log_map
from .numerical import numerical_config
from .utils import ensure_sym
from .validation import check_same_size, check_tangent, validate_spd_args


def _transport(v, p, q):
    q_sqrt, q_invsqrt = matrix_sqrt_inv.apply(q)
    inner = ensure_sym(q_invsqrt @ p @ q_invsqrt)
    E = q_sqrt @ matrix_inv_sqrt.apply(inner) @ q_invsqrt
    return ensure_sym(E @ v @ E.mT)


def _translate(X, p, q):
    """Return the translated matrices and the two intermediate tangent vectors."""
    tangent = _log_map(X, p)
    transported = _transport(tangent, p, q)
    return _exp_map(transported, q), tangent, transported


def parallel_transport_airm(v, p, q):
    r"""Parallel transport of the tangent vector `v` from `p` to `q`.

    Parameters
    ----------
    v : torch.Tensor
        Symmetric tangent vectors at `p`, shape `(..., n, n)`.
    p : torch.Tensor
        Source SPD points, shape `(..., n, n)`.
    q : torch.Tensor
        Target SPD points, shape `(..., n, n)`.

    Returns
    -------
    torch.Tensor
        Tangent vectors at `q`, shape `(..., n, n)`. Equals `v` when
        ``p == q``.

    Raises
    ------
    NotSPD
        If `p` or `q` is not SPD.
    InvalidInput
        If `v` is not symmetric.
    DimensionMismatch
        If the matrix sizes disagree.

    Examples
    --------
    >>> import torch
    >>> p = torch.eye(3, dtype=torch.float64)
    >>> q = 2 * p
    >>> v = torch.diag(torch.tensor([1.0, 0.0, -1.0], dtype=torch.float64))
    >>> parallel_transport_airm(v, p, q).diagonal()
    tensor([ 2.,  0., -2.], dtype=torch.float64)
    """
    p, q = validate_spd_args(("p", p), ("q", q))
    if numerical_config.validate_inputs:
        v = check_tangent(v, "v")
        check_same_size(("v", v), ("p", p))
    return _transport(v, p, q)


def translate_airm(X, p, q, return_steps=False):
    r"""Move SPD matrices `X` from reference point `p` to reference point `q`.

    Computed as three steps, in order:

    1. ``tangent = log_map_airm(X, p)``
    2. ``transported = parallel_transport_airm(tangent, p, q)``
    3. ``exp_map_airm(transported, q)``

    Parameters
    ----------
    X : torch.Tensor
        SPD matrices, shape `(..., n, n)`.
    p : torch.Tensor
        Current reference point (e.g. a subject mean), broadcastable with `X`.
    q : torch.Tensor
        New reference point (e.g. the grand mean), broadcastable with `X`.
    return_steps : bool, default=False
        Also return the intermediate tangent vectors.

    Returns
    -------
    translated : torch.Tensor
        SPD matrices, shape `(..., n, n)`. Equals `X` when ``p == q``, and
        ``translate_airm(p, p, q)`` equals `q`.
    tangent : torch.Tensor
        Only with ``return_steps=True``: ``Log_p(X)``.
    transported : torch.Tensor
        Only with ``return_steps=True``: ``tangent`` transported to `q`.

    Notes
    -----
    The composite equals the congruence :math:`E X E^\top` with the transport
    operator :math:`E` above, so geodesic distances between matrices that
    share a reference point are preserved.
    """
    X, p, q = validate_spd_args(("X", X), ("p", p), ("q", q))
    translated, tangent, transported = _translate(X, p, q)
    if return_steps:
        return translated, tangent, transported
    return translated
