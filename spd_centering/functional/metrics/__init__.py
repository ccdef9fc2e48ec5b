# Copyright (c) 2024-now SPD Learn Developers
# SPDX-License-Identifier: BSD-3-Clause
"""Riemannian metrics on the SPD manifold.

- **AIRM** (affine-invariant): distance, geodesic, logarithmic and
  exponential maps, inner product and pairwise distances.
- **Log-Euclidean**: the closed-form mean used to initialize the AIRM
  Karcher iteration.
"""

from .affine_invariant import (
    airm_distance,
    airm_geodesic,
    airm_inner_product,
    airm_norm,
    airm_pairwise_distances,
    exp_map_airm,
    log_map_airm,
)
from .log_euclidean import log_euclidean_mean


__all__ = [
    # AIRM metric
    "airm_distance",
    "airm_geodesic",
    "airm_inner_product",
    "airm_norm",
    "airm_pairwise_distances",
    "exp_map_airm",
    "log_map_airm",
    # Log-Euclidean metric
    "log_euclidean_mean",
]
