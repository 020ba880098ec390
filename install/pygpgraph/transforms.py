"""
Hyperparameter transformations for the alpha=2 metric-graph model.

These functions define the mapping between the internal (theta) scale used
by the optimizer and the interpretable quantities consumed by the
precision kernel:

- theta[0] = log(sigma), sigma the marginal standard deviation
- theta[1] = log(range) under the "matern" parameterization, log(kappa)
  otherwise
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional, Sequence

__all__ = [
    "N_THETA",
    "MATERN_LOG_KAPPA_OFFSET",
    "Hyperparameters",
    "is_matern",
    "transform_theta",
    "log_kappa_from_theta",
    "theta_from_log_kappa",
]

N_THETA = 2

# kappa = sqrt(8 * nu) / range with nu = 3/2
MATERN_LOG_KAPPA_OFFSET = 0.5 * math.log(12.0)


@dataclass(frozen=True)
class Hyperparameters:
    lkappa: float
    lsigma: float
    kappa: float
    sigma: float
    tau: float

    @classmethod
    def missing(cls) -> "Hyperparameters":
        nan = float("nan")
        return cls(lkappa=nan, lsigma=nan, kappa=nan, sigma=nan, tau=nan)

    @property
    def is_missing(self) -> bool:
        return math.isnan(self.kappa) and math.isnan(self.sigma)


def is_matern(parameterization: Optional[str]) -> bool:
    """Case-insensitive test for the "matern" parameterization."""
    return parameterization is not None and str(parameterization).lower() == "matern"


def log_kappa_from_theta(theta1: float, parameterization: Optional[str]) -> float:
    """log(kappa) for the second internal hyperparameter."""
    if is_matern(parameterization):
        # log(2) - theta1 was used by an earlier revision of this model
        return MATERN_LOG_KAPPA_OFFSET - theta1
    return theta1


def theta_from_log_kappa(lkappa: float, parameterization: Optional[str]) -> float:
    """Inverse of :func:`log_kappa_from_theta`."""
    if is_matern(parameterization):
        return MATERN_LOG_KAPPA_OFFSET - lkappa
    return lkappa


def transform_theta(theta: Optional[Sequence[float]], parameterization: Optional[str]) -> Hyperparameters:
    """
    Map ``theta`` to ``(lkappa, lsigma, kappa, sigma, tau)``.

    ``theta=None`` marks a metadata-only call; every field is then NaN.
    """
    if theta is None:
        return Hyperparameters.missing()
    if len(theta) != N_THETA:
        raise ValueError(f"theta must have length {N_THETA}; got {len(theta)}")

    lsigma = float(theta[0])
    lkappa = log_kappa_from_theta(float(theta[1]), parameterization)
    kappa = math.exp(lkappa)
    sigma = math.exp(lsigma)
    return Hyperparameters(lkappa=lkappa, lsigma=lsigma, kappa=kappa, sigma=sigma, tau=1.0 / sigma)
