# Copyright (c) 2024-now SPD Learn Developers
# SPDX-License-Identifier: BSD-3-Clause
r"""Re-centering of SPD matrices from subject means to a grand mean.

Covariance matrices of different subjects sit around different points of the
manifold, so raw comparisons across subjects are dominated by each subject's
baseline. :class:`SubjectRecentering` estimates one Fréchet mean per subject
and one over every matrix, then translates each matrix from its subject mean
to the grand mean :cite:p:`rodrigues2019riemannian`. After that, all tangent
vectors live at the same base point: a positive entry :math:`(i, j)` means
larger than grand-average covariance between variables :math:`i` and
:math:`j`, for every record.
"""

import torch

from torch import nn

from ..errors import InvalidInput
from ..functional.mean import airm_mean
from ..functional.metrics import log_map_airm
from ..functional.parallel_transport import translate_airm
from ..logging import get_logger
from ..records import group_positions


logger = get_logger(__name__)


class SubjectRecentering(nn.Module):
    r"""Translate SPD matrices from their subject mean to the grand mean.

    Parameters
    ----------
    max_iter : int, default=100
        Iteration budget of each Karcher mean.
    tol : float, optional
        Karcher stopping tolerance; see
        :func:`~spd_centering.functional.airm_mean`.
    device : torch.device, optional
        Device of the stored means.
    dtype : torch.dtype, optional
        Data type of the stored means and of the processed matrices.

    Attributes
    ----------
    subjects_ : tuple
        Subject identifiers seen by :meth:`fit`, in first-seen order.
    subject_means : torch.Tensor
        Buffer of shape `(n_subjects, n, n)`, aligned with ``subjects_``.
    grand_mean : torch.Tensor
        Buffer of shape `(n, n)`: the Fréchet mean of all fitted matrices
        (not the mean of the subject means).

    Examples
    --------
    >>> import torch
    >>> from spd_centering.modules import SubjectRecentering
    >>> A = torch.randn(4, 3, 3, dtype=torch.float64)
    >>> covs = A @ A.mT + torch.eye(3, dtype=torch.float64)
    >>> recentering = SubjectRecentering()
    >>> centered = recentering.fit_transform(covs, ["s1", "s1", "s2", "s2"])
    >>> tangents = recentering.tangent_space(centered)
    """

    def __init__(self, max_iter=100, tol=None, device=None, dtype=None):
        super().__init__()
        self.max_iter = max_iter
        self.tol = tol
        self.device = device
        self.dtype = dtype
        self.subjects_ = ()
        self.register_buffer("subject_means", None)
        self.register_buffer("grand_mean", None)

    def _prepare(self, covariances):
        covariances = torch.as_tensor(covariances)
        if self.dtype is not None or self.device is not None:
            covariances = covariances.to(device=self.device, dtype=self.dtype)
        return covariances

    def _check_subjects(self, covariances, subjects):
        subjects = tuple(subjects)
        if covariances.ndim != 3:
            raise InvalidInput(
                f"covariances must have shape (m, n, n), got {tuple(covariances.shape)}"
            )
        if len(subjects) != covariances.shape[0]:
            raise InvalidInput(
                f"got {len(subjects)} subject labels for {covariances.shape[0]} matrices"
            )
        return subjects

    @torch.no_grad()
    def fit(self, covariances, subjects):
        """Compute the subject means and the grand mean.

        Parameters
        ----------
        covariances : torch.Tensor
            SPD matrices of shape `(m, n, n)`.
        subjects : sequence
            One hashable subject identifier per matrix.

        Returns
        -------
        SubjectRecentering
            ``self``.
        """
        covariances = self._prepare(covariances)
        subjects = self._check_subjects(covariances, subjects)
        if not subjects:
            raise InvalidInput("cannot fit on an empty set of matrices")

        index = group_positions(subjects)
        means = []
        for subject, positions in index.items():
            if not positions:
                raise InvalidInput(f"subject {subject!r} has no matrices")
            means.append(
                airm_mean(covariances[list(positions)], max_iter=self.max_iter, tol=self.tol)
            )
            logger.debug("Subject %r: mean of %d matrices", subject, len(positions))

        self.subjects_ = tuple(index)
        self.subject_means = torch.stack(means)
        self.grand_mean = airm_mean(covariances, max_iter=self.max_iter, tol=self.tol)
        logger.info(
            "Fitted %d subject means and a grand mean over %d matrices",
            len(self.subjects_),
            covariances.shape[0],
        )
        return self

    def forward(self, covariances, subjects):
        """Translate each matrix from its subject mean to the grand mean.

        Raises
        ------
        InvalidInput
            Before :meth:`fit`, or for a subject that was not fitted.
        DimensionMismatch
            If the matrix size differs from the fitted one.
        """
        if self.grand_mean is None:
            raise InvalidInput("SubjectRecentering must be fitted before use")
        covariances = self._prepare(covariances)
        subjects = self._check_subjects(covariances, subjects)

        lookup = {subject: i for i, subject in enumerate(self.subjects_)}
        unknown = [s for s in dict.fromkeys(subjects) if s not in lookup]
        if unknown:
            raise InvalidInput(f"unknown subject(s): {unknown}")

        positions = torch.tensor(
            [lookup[s] for s in subjects], dtype=torch.long, device=self.subject_means.device
        )
        return translate_airm(covariances, self.subject_means[positions], self.grand_mean)

    def tangent_space(self, centered):
        """Tangent vectors of re-centered matrices at the grand mean."""
        if self.grand_mean is None:
            raise InvalidInput("SubjectRecentering must be fitted before use")
        return log_map_airm(self._prepare(centered), self.grand_mean)

    def fit_transform(self, covariances, subjects):
        subjects = tuple(subjects)
        return self.fit(covariances, subjects)(covariances, subjects)

    def extra_repr(self) -> str:
        return f"max_iter={self.max_iter}, tol={self.tol}, n_subjects={len(self.subjects_)}"
