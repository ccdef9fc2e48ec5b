# Copyright (c) 2024-now SPD Learn Developers
# SPDX-License-Identifier: BSD-3-Clause
"""Records flowing through the centering pipeline.

A :class:`Record` starts as a (subject, condition, observations) triple. Each
pipeline stage returns new records with one more field filled in; records are
never modified in place, so the estimated SPD matrix stays available next to
its centered version.
"""

from __future__ import annotations

import dataclasses

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Hashable, Iterable, Mapping, Optional, Sequence, Tuple

import torch

from .errors import DimensionMismatch, InvalidInput


FIELDS = ("observations", "spd", "centered", "tangent")


@dataclass(frozen=True, eq=False)
class Record:
    """One scan of one subject in one condition.

    Parameters
    ----------
    subject : Hashable
        Subject identifier.
    condition : Hashable
        Condition label.
    observations : torch.Tensor, optional
        Time series of shape `(n_samples, n_features)`.
    spd : torch.Tensor, optional
        Estimated covariance, `(n_features, n_features)`.
    centered : torch.Tensor, optional
        ``spd`` translated from the subject mean to the grand mean.
    tangent : torch.Tensor, optional
        ``centered`` mapped to the tangent space at the grand mean.
    """

    subject: Hashable
    condition: Hashable
    observations: Optional[torch.Tensor] = None
    spd: Optional[torch.Tensor] = None
    centered: Optional[torch.Tensor] = None
    tangent: Optional[torch.Tensor] = None

    def with_fields(self, **changes: Any) -> "Record":
        """Return a copy of the record with ``changes`` applied."""
        return dataclasses.replace(self, **changes)


def group_positions(keys: Iterable[Hashable]) -> Mapping[Hashable, Tuple[int, ...]]:
    """Read-only mapping from each key to the positions where it occurs.

    Keys keep their first-seen order.

    Examples
    --------
    >>> dict(group_positions(["a", "b", "a"]))
    {'a': (0, 2), 'b': (1,)}
    """
    groups = {}
    for position, key in enumerate(keys):
        groups.setdefault(key, []).append(position)
    return MappingProxyType({key: tuple(positions) for key, positions in groups.items()})


def group_by_subject(records: Sequence[Record]) -> Mapping[Hashable, Tuple[int, ...]]:
    """Subject index of ``records``: subject -> positions in ``records``."""
    return group_positions(record.subject for record in records)


def stack_field(records: Sequence[Record], field: str) -> torch.Tensor:
    """Stack one tensor field of every record into a single batch.

    Raises
    ------
    InvalidInput
        If ``records`` is empty, ``field`` is unknown or a record lacks it.
    DimensionMismatch
        If the tensors do not all have the same shape.
    """
    if field not in FIELDS:
        raise InvalidInput(f"unknown record field {field!r}; expected one of {FIELDS}")
    if not records:
        raise InvalidInput("no records")
    values = []
    for position, record in enumerate(records):
        value = getattr(record, field)
        if value is None:
            raise InvalidInput(
                f"record {position} (subject={record.subject!r}, "
                f"condition={record.condition!r}) has no {field!r}"
            )
        values.append(torch.as_tensor(value))
    shapes = {tuple(value.shape) for value in values}
    if len(shapes) > 1:
        raise DimensionMismatch(f"records disagree on the shape of {field!r}: {sorted(shapes)}")
    return torch.stack(values)
