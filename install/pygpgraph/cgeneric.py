# -*- coding: utf-8 -*-
"""
Command interface of the alpha=2 metric-graph model.

The inference engine drives the model through a single entry point,
``(command, theta, data) -> result``. Setup (bundle extraction and the
theta transform) runs once per call, then exactly one command branch
executes.

Each command returns a tagged result whose ``to_array()`` gives the flat
layout the engine expects:

  GRAPH       [N, M, i_0..i_{M-1}, j_0..j_{M-1}]
  Q           [-1, M, q_0..q_{M-1}]
  MU          [0.0]
  INITIAL     [2, start_lsigma, start_theta]
  LOG_PRIOR   [log prior]

LOG_NORM_CONST, QUIT and unknown commands return ``None``.
"""

from __future__ import annotations

import enum
import logging
import numbers
from dataclasses import dataclass
from typing import Callable, Optional, Sequence, Union

import numpy as np
import scipy.sparse as sp

from .bundle import NamedDataBundle
from .config import Alpha2Data, extract_alpha2_data
from .exceptions import CommandError
from .kernel import VERTEX_WEIGHT, compute_q_alpha2, precision_matrix
from .priors import GaussianLogPrior
from .transforms import N_THETA, Hyperparameters, transform_theta

log = logging.getLogger(__name__)
log.addHandler(logging.NullHandler())

__all__ = [
    "Command",
    "GraphResult",
    "PrecisionResult",
    "MeanResult",
    "InitialResult",
    "LogPriorResult",
    "PrecisionKernel",
    "alpha2_kernel",
    "GPGraphAlpha2Model",
    "gpgraph_alpha2_model",
    "cgeneric_call",
]


class Command(enum.IntEnum):
    VOID = 0
    Q = 1
    GRAPH = 2
    MU = 3
    INITIAL = 4
    LOG_NORM_CONST = 5
    LOG_PRIOR = 6
    QUIT = 7


def _as_command(cmd: Union[Command, int, str]) -> Optional[Command]:
    """Coerce ``cmd``; unknown values map to ``None`` (treated as QUIT)."""
    if isinstance(cmd, Command):
        return cmd
    if isinstance(cmd, str):
        key = cmd.strip().upper()
        if key.startswith("INLA_CGENERIC_"):
            key = key[len("INLA_CGENERIC_"):]
        return Command.__members__.get(key)
    if not isinstance(cmd, numbers.Integral):
        return None
    try:
        return Command(int(cmd))
    except ValueError:
        return None


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class GraphResult:
    dimension: int
    nonzero_count: int
    row_indices: np.ndarray
    col_indices: np.ndarray

    def to_array(self) -> np.ndarray:
        ret = np.empty(2 + 2 * self.nonzero_count, dtype=np.float64)
        ret[0] = self.dimension
        ret[1] = self.nonzero_count
        ret[2:2 + self.nonzero_count] = self.row_indices
        ret[2 + self.nonzero_count:] = self.col_indices
        return ret


@dataclass(frozen=True)
class PrecisionResult:
    nonzero_count: int
    values: np.ndarray

    def to_array(self) -> np.ndarray:
        ret = np.empty(2 + self.nonzero_count, dtype=np.float64)
        ret[0] = -1.0
        ret[1] = self.nonzero_count
        ret[2:] = self.values
        return ret


@dataclass(frozen=True)
class MeanResult:
    mean: float = 0.0

    def to_array(self) -> np.ndarray:
        return np.array([self.mean], dtype=np.float64)


@dataclass(frozen=True)
class InitialResult:
    start_lsigma: float
    start_theta: float

    @property
    def initial(self) -> np.ndarray:
        return np.array([self.start_lsigma, self.start_theta], dtype=np.float64)

    def to_array(self) -> np.ndarray:
        return np.array([N_THETA, self.start_lsigma, self.start_theta], dtype=np.float64)


@dataclass(frozen=True)
class LogPriorResult:
    value: float

    def to_array(self) -> np.ndarray:
        return np.array([self.value], dtype=np.float64)


Result = Union[GraphResult, PrecisionResult, MeanResult, InitialResult, LogPriorResult]


# ---------------------------------------------------------------------------
# Precision kernel strategy
# ---------------------------------------------------------------------------

PrecisionKernel = Callable[[Alpha2Data, Hyperparameters, np.ndarray], np.ndarray]


def alpha2_kernel(data: Alpha2Data, hyper: Hyperparameters, out: np.ndarray) -> np.ndarray:
    """Default kernel: fills ``out`` with the precision values in graph order."""
    return compute_q_alpha2(
        data.Tc,
        hyper.kappa,
        hyper.tau,
        data.El,
        data.graph_i,
        data.graph_j,
        lower_edges=data.lower_edges,
        upper_edges=data.upper_edges,
        w=VERTEX_WEIGHT,
        out=out,
    )


# ---------------------------------------------------------------------------
# Model
# ---------------------------------------------------------------------------

class GPGraphAlpha2Model:
    """
    Alpha=2 Whittle-Matern model on a metric graph.

    The data bundle is validated once, at construction. Instances hold no
    state between calls.

    Parameters
    ----------
    data : NamedDataBundle or Alpha2Data
    kernel : callable, optional
        ``kernel(data, hyper, out)`` filling ``out`` with the ``M``
        precision values; defaults to :func:`alpha2_kernel`.
    """

    def __init__(self, data: Union[NamedDataBundle, Alpha2Data], kernel: Optional[PrecisionKernel] = None):
        self.data = data if isinstance(data, Alpha2Data) else extract_alpha2_data(data)
        self.kernel = kernel or alpha2_kernel
        self.prior = GaussianLogPrior(
            theta_meanlog=self.data.prior_theta_meanlog,
            theta_sdlog=self.data.prior_theta_sdlog,
            sigma_meanlog=self.data.prior_sigma_meanlog,
            sigma_sdlog=self.data.prior_sigma_sdlog,
        )

    @property
    def debug(self) -> bool:
        return self.data.debug == 1

    def hyperparameters(self, theta: Optional[Sequence[float]]) -> Hyperparameters:
        return transform_theta(theta, self.data.parameterization)

    # -- commands -----------------------------------------------------------

    def graph(self) -> GraphResult:
        d = self.data
        return GraphResult(
            dimension=d.n,
            nonzero_count=d.M,
            row_indices=d.graph_i.copy(),
            col_indices=d.graph_j.copy(),
        )

    def Q(self, theta: Optional[Sequence[float]], hyper: Optional[Hyperparameters] = None) -> PrecisionResult:
        if theta is None:
            raise CommandError("Command Q requires theta.")
        hyper = hyper or self.hyperparameters(theta)
        out = np.zeros(self.data.M, dtype=np.float64)
        values = np.asarray(self.kernel(self.data, hyper, out), dtype=np.float64)
        if values.shape != (self.data.M,):
            raise ValueError(
                f"Precision kernel returned shape {values.shape}; expected ({self.data.M},)"
            )
        return PrecisionResult(nonzero_count=self.data.M, values=values)

    def mu(self) -> MeanResult:
        return MeanResult(0.0)

    def initial(self) -> InitialResult:
        return InitialResult(start_lsigma=self.data.start_lsigma, start_theta=self.data.start_theta)

    def log_norm_const(self) -> None:
        return None

    def log_prior(self, theta: Optional[Sequence[float]], hyper: Optional[Hyperparameters] = None) -> LogPriorResult:
        if theta is None:
            raise CommandError("Command LOG_PRIOR requires theta.")
        hyper = hyper or self.hyperparameters(theta)
        return LogPriorResult(self.prior.log_density(float(theta[1]), hyper.lsigma))

    def precision(self, theta: Sequence[float]) -> sp.csr_matrix:
        """Full ``n x n`` precision matrix (both triangles)."""
        if theta is None:
            raise CommandError("The precision matrix requires theta.")
        hyper = self.hyperparameters(theta)
        d = self.data
        return precision_matrix(d.Tc, d.El, hyper.kappa, hyper.tau, d.lower_edges, d.upper_edges, VERTEX_WEIGHT)

    # -- dispatch -----------------------------------------------------------

    def __call__(self, cmd: Union[Command, int, str], theta: Optional[Sequence[float]] = None) -> Optional[Result]:
        command = _as_command(cmd)
        hyper = self.hyperparameters(theta)
        if self.debug:
            log.debug(
                "cmd=%s lkappa=%g lsigma=%g kappa=%g sigma=%g tau=%g",
                command.name if command is not None else cmd,
                hyper.lkappa, hyper.lsigma, hyper.kappa, hyper.sigma, hyper.tau,
            )

        if command is Command.VOID:
            raise CommandError("Command VOID must never be dispatched.")
        elif command is Command.GRAPH:
            ret: Optional[Result] = self.graph()
        elif command is Command.Q:
            ret = self.Q(theta, hyper)
        elif command is Command.MU:
            ret = self.mu()
        elif command is Command.INITIAL:
            ret = self.initial()
        elif command is Command.LOG_NORM_CONST:
            ret = self.log_norm_const()
        elif command is Command.LOG_PRIOR:
            ret = self.log_prior(theta, hyper)
        else:
            ret = None

        if self.debug and ret is not None:
            log.debug("cmd=%s returned %s", command.name, type(ret).__name__)
        return ret


def gpgraph_alpha2_model(
    cmd: Union[Command, int, str],
    theta: Optional[Sequence[float]],
    data: Union[NamedDataBundle, Alpha2Data],
    kernel: Optional[PrecisionKernel] = None,
) -> Optional[Result]:
    """Functional entry point: validate ``data`` and run one command."""
    return GPGraphAlpha2Model(data, kernel=kernel)(cmd, theta)


def cgeneric_call(
    cmd: Union[Command, int, str],
    theta: Optional[Sequence[float]],
    data: Union[NamedDataBundle, Alpha2Data],
    kernel: Optional[PrecisionKernel] = None,
) -> Optional[np.ndarray]:
    """Like :func:`gpgraph_alpha2_model` but returns the flat engine layout."""
    ret = gpgraph_alpha2_model(cmd, theta, data, kernel=kernel)
    return None if ret is None else ret.to_array()
