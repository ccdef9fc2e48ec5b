# Copyright (c) 2024-now SPD Learn Developers
# SPDX-License-Identifier: BSD-3-Clause
"""Exceptions raised by spd_centering.

Every error derives from :class:`SPDCenteringError` and from the builtin
exception a caller would expect (``ValueError`` for bad data,
``RuntimeError`` for an iteration that did not converge), so existing
``except ValueError`` handlers keep working.
"""

from __future__ import annotations


class SPDCenteringError(Exception):
    """Base class for all spd_centering errors."""


class InvalidInput(SPDCenteringError, ValueError):
    """Malformed or empty input (no samples, empty matrix set, bad option)."""


class NotSPD(SPDCenteringError, ValueError):
    """A matrix required to be symmetric positive-definite is not."""


class DimensionMismatch(SPDCenteringError, ValueError):
    """Matrices that must share a dimension do not."""


class ConvergenceFailure(SPDCenteringError, RuntimeError):
    """An iterative estimate did not reach its tolerance.

    Parameters
    ----------
    message : str
        Human readable description.
    n_iter : int
        Number of iterations performed before giving up.
    criterion : float
        Value of the stopping criterion at the last iteration.
    """

    def __init__(self, message: str, n_iter: int, criterion: float):
        super().__init__(message)
        self.n_iter = n_iter
        self.criterion = criterion


__all__ = [
    "SPDCenteringError",
    "InvalidInput",
    "NotSPD",
    "DimensionMismatch",
    "ConvergenceFailure",
]
