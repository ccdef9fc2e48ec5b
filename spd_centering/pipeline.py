# Copyright (c) 2024-now SPD Learn Developers
# SPDX-License-Identifier: BSD-3-Clause
"""Record-level centering pipeline.

The stages run in order, each returning new records:

1. :func:`equalize_sample_counts` truncates every scan to a common number
   of samples, because the bias of the covariance estimators depends on it.
2. :func:`estimate_records` attaches a regularized covariance (``spd``).
3. :func:`center_records` computes one Fréchet mean per subject and one over
   all matrices, translates each ``spd`` from its subject mean to the grand
   mean (``centered``) and maps it to the tangent space at the grand mean
   (``tangent``).

:func:`run_pipeline` chains the three. Every error propagates to the caller;
no stage skips a record or substitutes another estimator.

Examples
--------
>>> import torch
>>> from spd_centering.records import Record
>>> from spd_centering.pipeline import run_pipeline
>>> g = torch.Generator().manual_seed(0)
>>> records = [
...     Record(subject=s, condition=c, observations=torch.randn(8, 3, generator=g, dtype=torch.float64))
...     for s in ("s1", "s2") for c in ("rest", "task")
... ]
>>> result = run_pipeline(records)
>>> result.tangents.shape
torch.Size([4, 3, 3])
"""

from __future__ import annotations

import itertools

from dataclasses import dataclass
from types import MappingProxyType
from typing import Hashable, Mapping, Optional, Sequence, Tuple

import torch

from .errors import DimensionMismatch, InvalidInput
from .functional.covariance import estimate_covariance
from .functional.metrics.affine_invariant import airm_distance
from .logging import get_logger
from .modules.centering import SubjectRecentering
from .records import Record, group_by_subject, stack_field


logger = get_logger(__name__)


@dataclass(frozen=True, eq=False)
class CenteringResult:
    """Output of :func:`center_records`.

    Attributes
    ----------
    records : tuple of Record
        Input records, in input order, with ``centered`` and ``tangent`` set.
    subject_means : Mapping
        Read-only mapping from subject identifier to its Fréchet mean.
    grand_mean : torch.Tensor
        Fréchet mean over every record's ``spd``.
    """

    records: Tuple[Record, ...]
    subject_means: Mapping[Hashable, torch.Tensor]
    grand_mean: torch.Tensor

    @property
    def centered(self) -> torch.Tensor:
        return stack_field(self.records, "centered")

    @property
    def tangents(self) -> torch.Tensor:
        return stack_field(self.records, "tangent")


def _observations(records):
    if not records:
        raise InvalidInput("no records")
    for position, record in enumerate(records):
        if record.observations is None:
            raise InvalidInput(
                f"record {position} (subject={record.subject!r}) has no observations"
            )
        if torch.as_tensor(record.observations).ndim != 2:
            raise InvalidInput(
                f"record {position} observations must be 2-D (n_samples, n_features)"
            )
    observations = [torch.as_tensor(record.observations) for record in records]
    n_features = {obs.shape[-1] for obs in observations}
    if len(n_features) > 1:
        raise DimensionMismatch(
            f"records disagree on the number of features: {sorted(n_features)}"
        )
    return observations


def equalize_sample_counts(records: Sequence[Record], n_samples: Optional[int] = None):
    """Truncate every record's observations to ``n_samples`` rows.

    Parameters
    ----------
    records : sequence of Record
        Records carrying ``observations``.
    n_samples : int, optional
        Common row count. Defaults to the smallest count across records.

    Returns
    -------
    list of Record
        New records; the first ``n_samples`` rows of each scan are kept.

    Raises
    ------
    InvalidInput
        If a record has fewer than ``n_samples`` rows, or ``n_samples < 1``.
    """
    observations = _observations(records)
    counts = [obs.shape[0] for obs in observations]
    if n_samples is None:
        n_samples = min(counts)
    if n_samples < 1:
        raise InvalidInput(f"n_samples must be at least 1, got {n_samples}")
    short = [i for i, count in enumerate(counts) if count < n_samples]
    if short:
        raise InvalidInput(
            f"{len(short)} record(s) have fewer than {n_samples} samples "
            f"(first: record {short[0]} with {counts[short[0]]})"
        )
    if min(counts) != max(counts):
        logger.info(
            "Truncating %d records from %d-%d to %d samples",
            len(records),
            min(counts),
            max(counts),
            n_samples,
        )
    return [
        record.with_fields(observations=obs[:n_samples])
        for record, obs in zip(records, observations)
    ]


def estimate_records(
    records: Sequence[Record],
    method: str = "oas",
    assume_centered: bool = False,
    shrinkage: Optional[float] = None,
):
    """Attach a covariance estimate (``spd``) to every record.

    Records whose observations share a shape are estimated as one batch.
    See :func:`~spd_centering.functional.estimate_covariance` for the
    parameters and errors.

    Returns
    -------
    list of Record
    """
    observations = _observations(records)
    kwargs = dict(method=method, assume_centered=assume_centered, shrinkage=shrinkage)
    if len({tuple(obs.shape) for obs in observations}) == 1:
        estimates = list(estimate_covariance(torch.stack(observations), **kwargs))
    else:
        logger.warning(
            "Records have different sample counts; estimator bias will differ "
            "between them (see equalize_sample_counts)"
        )
        estimates = [estimate_covariance(obs, **kwargs) for obs in observations]
    logger.info(
        "Estimated %d %dx%d covariance matrices with method=%r",
        len(estimates),
        estimates[0].shape[-1],
        estimates[0].shape[-1],
        method,
    )
    return [record.with_fields(spd=spd) for record, spd in zip(records, estimates)]


def center_records(records: Sequence[Record], max_iter: int = 100, tol: Optional[float] = None):
    """Translate every record from its subject mean to the grand mean.

    Parameters
    ----------
    records : sequence of Record
        Records carrying ``spd``, all of the same size.
    max_iter : int, default=100
        Iteration budget of each Karcher mean.
    tol : float, optional
        Karcher stopping tolerance.

    Returns
    -------
    CenteringResult

    Raises
    ------
    InvalidInput
        No records, or a record without ``spd``.
    DimensionMismatch
        Records disagree on the matrix size.
    NotSPD
        A record's ``spd`` is not SPD.
    ConvergenceFailure
        A Karcher mean did not converge.
    """
    records = list(records)
    spds = stack_field(records, "spd")
    index = group_by_subject(records)
    subjects = [record.subject for record in records]
    logger.info(
        "Centering %d records from %d subjects onto the grand mean",
        len(records),
        len(index),
    )

    recentering = SubjectRecentering(max_iter=max_iter, tol=tol)
    centered = recentering.fit_transform(spds, subjects)
    tangents = recentering.tangent_space(centered)

    subject_means = MappingProxyType(
        {
            subject: recentering.subject_means[i]
            for i, subject in enumerate(recentering.subjects_)
        }
    )
    out = tuple(
        record.with_fields(centered=c, tangent=t)
        for record, c, t in zip(records, centered, tangents)
    )
    return CenteringResult(
        records=out, subject_means=subject_means, grand_mean=recentering.grand_mean
    )


def run_pipeline(
    records: Sequence[Record],
    method: str = "oas",
    equalize: bool = True,
    n_samples: Optional[int] = None,
    assume_centered: bool = False,
    shrinkage: Optional[float] = None,
    max_iter: int = 100,
    tol: Optional[float] = None,
):
    """Equalize, estimate and center ``records``.

    Parameters
    ----------
    records : sequence of Record
        Records carrying ``observations``.
    method : str, default="oas"
        Covariance estimator, see :func:`estimate_records`.
    equalize : bool, default=True
        Truncate scans to a common number of samples first.
    n_samples : int, optional
        Common number of samples; the smallest one when None.
    assume_centered, shrinkage
        Passed to the estimator.
    max_iter, tol
        Passed to the Karcher means.

    Returns
    -------
    CenteringResult
    """
    if equalize:
        records = equalize_sample_counts(records, n_samples=n_samples)
    elif n_samples is not None:
        raise InvalidInput("n_samples is only used with equalize=True")
    records = estimate_records(
        records, method=method, assume_centered=assume_centered, shrinkage=shrinkage
    )
    return center_records(records, max_iter=max_iter, tol=tol)


def same_condition_dispersion(matrices, subjects, conditions):
    """Sum of squared geodesic distances between same-condition matrices.

    Only pairs from different subjects are counted. Centering should lower
    this value when subjects differ by a fixed offset.

    Parameters
    ----------
    matrices : torch.Tensor
        SPD matrices of shape `(m, n, n)`.
    subjects, conditions : sequence
        One label of each kind per matrix.

    Returns
    -------
    torch.Tensor
        Scalar.
    """
    matrices = torch.as_tensor(matrices)
    subjects = list(subjects)
    conditions = list(conditions)
    if not (len(subjects) == len(conditions) == matrices.shape[0]):
        raise InvalidInput("need one subject and one condition label per matrix")
    pairs = [
        (i, j)
        for i, j in itertools.combinations(range(len(subjects)), 2)
        if conditions[i] == conditions[j] and subjects[i] != subjects[j]
    ]
    if not pairs:
        return matrices.new_zeros(())
    first, second = zip(*pairs)
    distances = airm_distance(matrices[list(first)], matrices[list(second)])
    return distances.square().sum()
