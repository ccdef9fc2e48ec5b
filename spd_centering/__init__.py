# Copyright (c) 2024-now SPD Learn Developers
# SPDX-License-Identifier: BSD-3-Clause
"""SPD Centering: re-centering covariance matrices on the SPD manifold.

Estimates regularized covariance matrices from multivariate time series,
computes Fréchet means under the affine-invariant metric and translates each
subject's matrices onto a shared grand mean.
"""

from . import functional

# Errors
from .errors import (
    ConvergenceFailure,
    DimensionMismatch,
    InvalidInput,
    NotSPD,
    SPDCenteringError,
)

# Modules (layers)
from .modules import CovarianceEstimator, SubjectRecentering

# Pipeline
from .pipeline import (
    CenteringResult,
    center_records,
    equalize_sample_counts,
    estimate_records,
    run_pipeline,
    same_condition_dispersion,
)
from .records import Record, group_by_subject, stack_field
from .version import __version__


__all__ = [
    # Version
    "__version__",
    # Functional API
    "functional",
    # Errors
    "SPDCenteringError",
    "InvalidInput",
    "NotSPD",
    "DimensionMismatch",
    "ConvergenceFailure",
    # Modules
    "CovarianceEstimator",
    "SubjectRecentering",
    # Records
    "Record",
    "group_by_subject",
    "stack_field",
    # Pipeline
    "CenteringResult",
    "center_records",
    "equalize_sample_counts",
    "estimate_records",
    "run_pipeline",
    "same_condition_dispersion",
]
