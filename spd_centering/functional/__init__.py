# Copyright (c) 2024-now SPD Learn Developers
# SPDX-License-Identifier: BSD-3-Clause
"""Functional API for SPD matrix operations.

This module provides differentiable operations for Symmetric Positive Definite (SPD)
matrices, organized into:

- **Core operations**: Matrix logarithm, exponential, power, square root
- **Metrics**: Affine-invariant distance, geodesic, log and exp maps
- **Transport**: Parallel transport and translation between reference points
- **Mean**: Karcher mean under the affine-invariant metric
- **Covariance**: Covariance estimation with data-driven shrinkage
- **Validation**: SPD, symmetry and size checks
- **Numerical**: Numerical stability configuration
"""

from .autograd import spectral_backward, spectral_forward
from .core import (
    matrix_exp,
    matrix_inv_sqrt,
    matrix_log,
    matrix_power,
    matrix_sqrt,
    matrix_sqrt_inv,
)
from .covariance import covariance, estimate_covariance, shrinkage_intensity
from .mean import airm_mean, karcher_mean_iteration, tangent_space_variance
from .metrics import (
    airm_distance,
    airm_geodesic,
    airm_inner_product,
    airm_norm,
    airm_pairwise_distances,
    exp_map_airm,
    log_euclidean_mean,
    log_map_airm,
)
from .numerical import (
    NumericalConfig,
    NumericalContext,
    get_epsilon,
    get_loewner_threshold,
    numerical_config,
)
from .parallel_transport import parallel_transport_airm, translate_airm
from .regularize import ledoit_wolf_shrinkage, oas_shrinkage, shrinkage_covariance
from .utils import ensure_sym, sym_to_upper, vec_to_sym
from .validation import check_spd, check_tangent, is_spd, is_symmetric


__all__ = [
    # Core operations
    "matrix_log",
    "matrix_exp",
    "matrix_power",
    "matrix_sqrt",
    "matrix_inv_sqrt",
    "matrix_sqrt_inv",
    "spectral_forward",
    "spectral_backward",
    # Metrics
    "airm_distance",
    "airm_geodesic",
    "airm_inner_product",
    "airm_norm",
    "airm_pairwise_distances",
    "exp_map_airm",
    "log_map_airm",
    "log_euclidean_mean",
    # Transport
    "parallel_transport_airm",
    "translate_airm",
    # Mean
    "airm_mean",
    "karcher_mean_iteration",
    "tangent_space_variance",
    # Covariance
    "covariance",
    "estimate_covariance",
    "shrinkage_intensity",
    "shrinkage_covariance",
    "ledoit_wolf_shrinkage",
    "oas_shrinkage",
    # Vectorization
    "ensure_sym",
    "sym_to_upper",
    "vec_to_sym",
    # Validation
    "check_spd",
    "check_tangent",
    "is_spd",
    "is_symmetric",
    # Numerical
    "NumericalConfig",
    "NumericalContext",
    "numerical_config",
    "get_epsilon",
    "get_loewner_threshold",
]
