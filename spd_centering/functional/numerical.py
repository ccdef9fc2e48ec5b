# Copyright (c) 2024-now SPD Learn Developers
# SPDX-License-Identifier: BSD-3-Clause
"""Numerical tolerances shared by every SPD operation.

Thresholds are expressed as multiples of the machine epsilon of the dtype in
use, so the same configuration behaves sensibly for float32 and float64::

    threshold = scale * torch.finfo(dtype).eps

Examples
--------
>>> import torch
>>> from spd_centering.functional.numerical import get_epsilon, numerical_config
>>> eps = get_epsilon(torch.float64, "eigval_log")
>>> numerical_config.validate_inputs = False  # skip SPD checks in a hot loop
"""

from dataclasses import dataclass, field
from typing import Dict, Literal, Optional

import torch


ThresholdName = Literal[
    "eigval_log",
    "eigval_sqrt",
    "eigval_inv_sqrt",
    "eigval_power",
    "loewner_equal",
    "spd_check",
    "symmetry",
]


@dataclass
class NumericalConfig:
    r"""Global numerical configuration.

    Parameters
    ----------
    eigval_log_scale : float
        Eigenvalues are clamped to ``scale * eps`` before a logarithm.
    eigval_sqrt_scale : float
        Same, before a square root.
    eigval_inv_sqrt_scale : float
        Same, before an inverse square root.
    eigval_power_scale : float
        Same, before a real power.
    loewner_equal_scale : float
        Two eigenvalues closer than ``scale * eps * max(1, |lambda|_max)`` are
        treated as equal when building the Loewner matrix of a backward pass.
    spd_check_scale : float
        A matrix passes the SPD check when its smallest eigenvalue exceeds
        ``scale * eps * |lambda|_max``. This bounds the condition number that
        is still accepted as positive-definite.
    symmetry_scale : float
        A matrix is symmetric when ``max|X - X^T| <= scale * eps * max|X|``.
    validate_inputs : bool
        Run SPD, symmetry and shape checks at the public entry points.
        Default: True.
    warn_on_clamp : bool
        Warn when ``matrix_log`` has to clamp an eigenvalue. Default: True.
    """

    eigval_log_scale: float = 1e2
    eigval_sqrt_scale: float = 1e2
    eigval_inv_sqrt_scale: float = 1e3
    eigval_power_scale: float = 1e3
    loewner_equal_scale: float = 1e2
    spd_check_scale: float = 1e1
    symmetry_scale: float = 1e4

    validate_inputs: bool = True
    warn_on_clamp: bool = True

    _threshold_cache: Dict[tuple, float] = field(default_factory=dict, repr=False)

    def clear_cache(self) -> None:
        """Forget thresholds computed with the previous scales."""
        self._threshold_cache.clear()

    def get_scale(self, name: ThresholdName) -> float:
        scales = {
            "eigval_log": self.eigval_log_scale,
            "eigval_sqrt": self.eigval_sqrt_scale,
            "eigval_inv_sqrt": self.eigval_inv_sqrt_scale,
            "eigval_power": self.eigval_power_scale,
            "loewner_equal": self.loewner_equal_scale,
            "spd_check": self.spd_check_scale,
            "symmetry": self.symmetry_scale,
        }
        if name not in scales:
            raise ValueError(
                f"Unknown threshold name: '{name}'. "
                f"Valid names are: {list(scales.keys())}"
            )
        return scales[name]

    def summary(self, dtype: torch.dtype = torch.float64) -> str:
        """Return the thresholds that apply to ``dtype`` as a printable table."""
        machine_eps = torch.finfo(dtype).eps
        lines = [f"Numerical configuration (dtype={dtype})", "=" * 50]
        lines.append(f"machine epsilon: {machine_eps:.2e}")
        for name in ThresholdName.__args__:
            scale = self.get_scale(name)
            lines.append(f"  {name:16s}: {scale * machine_eps:.2e} (scale={scale:.0e})")
        lines.append(f"  validate_inputs : {self.validate_inputs}")
        lines.append(f"  warn_on_clamp   : {self.warn_on_clamp}")
        return "\n".join(lines)


numerical_config = NumericalConfig()


def get_epsilon(
    dtype: torch.dtype,
    name: ThresholdName = "eigval_log",
    *,
    config: Optional[NumericalConfig] = None,
) -> float:
    """Return ``scale * eps`` for ``dtype`` and the named threshold.

    Parameters
    ----------
    dtype : torch.dtype
        Floating point dtype the threshold is used with.
    name : ThresholdName
        Which threshold to compute.
    config : NumericalConfig, optional
        Defaults to the global ``numerical_config``.

    Returns
    -------
    float
    """
    if config is None:
        config = numerical_config

    key = (dtype, name)
    if key not in config._threshold_cache:
        config._threshold_cache[key] = config.get_scale(name) * torch.finfo(dtype).eps
    return config._threshold_cache[key]


def get_loewner_threshold(
    eigenvalues: torch.Tensor,
    *,
    config: Optional[NumericalConfig] = None,
) -> float:
    """Equality threshold for eigenvalues, scaled by their magnitude."""
    base = get_epsilon(eigenvalues.dtype, "loewner_equal", config=config)
    return base * max(1.0, eigenvalues.abs().max().item())


class NumericalContext:
    """Override fields of ``numerical_config`` inside a ``with`` block.

    Examples
    --------
    >>> with NumericalContext(validate_inputs=False):
    ...     pass
    """

    def __init__(self, **overrides):
        self.overrides = overrides
        self.saved = {}

    def __enter__(self):
        for key, value in self.overrides.items():
            if not hasattr(numerical_config, key) or key.startswith("_"):
                raise ValueError(f"Unknown configuration parameter: {key}")
            self.saved[key] = getattr(numerical_config, key)
            setattr(numerical_config, key, value)
        numerical_config.clear_cache()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        for key, value in self.saved.items():
            setattr(numerical_config, key, value)
        numerical_config.clear_cache()
        return False
