# Copyright (c) 2024-now SPD Learn Developers
# SPDX-License-Identifier: BSD-3-Clause
from .centering import SubjectRecentering
from .covariance import CovarianceEstimator


__all__ = [
    "CovarianceEstimator",
    "SubjectRecentering",
]
