# priors.py
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Sequence

__all__ = [
    "normal_logpdf",
    "GaussianLogPrior",
]

_HALF_LOG_2PI = 0.5 * math.log(2.0 * math.pi)


def normal_logpdf(x: float, mean: float, sd: float) -> float:
    """Gaussian log-density of ``x`` with the given mean and standard deviation."""
    return -0.5 * (x - mean) ** 2 / (sd ** 2) - math.log(sd) - _HALF_LOG_2PI


@dataclass(frozen=True)
class GaussianLogPrior:
    """
    Independent Gaussian priors on the internal hyperparameters.

    Both act on the log scale directly: ``theta[1] ~ N(theta_meanlog,
    theta_sdlog^2)`` and ``log(sigma) = theta[0] ~ N(sigma_meanlog,
    sigma_sdlog^2)``. No Jacobian is added, so these are not lognormal
    densities on kappa or sigma.
    """
    theta_meanlog: float
    theta_sdlog: float
    sigma_meanlog: float
    sigma_sdlog: float

    def __call__(self, theta: Sequence[float]) -> float:
        return self.log_density(theta[1], theta[0])

    def log_density(self, theta1: float, lsigma: float) -> float:
        lp = 0.0
        lp += normal_logpdf(theta1, self.theta_meanlog, self.theta_sdlog)
        lp += normal_logpdf(lsigma, self.sigma_meanlog, self.sigma_sdlog)
        return lp
