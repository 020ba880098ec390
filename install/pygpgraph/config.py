# config.py
"""
Typed configuration for the alpha=2 metric-graph model.

:func:`extract_alpha2_data` checks a :class:`~pygpgraph.bundle.NamedDataBundle`
against the positional schema below and unpacks it into a frozen
:class:`Alpha2Data`. Every violation raises :class:`ConfigurationError`
before any model quantity is computed.

Schema (names compared case-insensitively, ``None`` = not checked):

ints       n, debug, prec_graph_i, prec_graph_j, stationary_endpoints,
           upper_edges, lower_edges, upper_edges_len (lower edge count),
           upper_edges_len
doubles    <any>, El, start_theta, start_lsigma, prior_theta_meanlog,
           prior_theta_sdlog, prior_sigma_meanlog, prior_sigma_sdlog
characters <any>, <any>, parameterization
smatrices  Tc
"""

from __future__ import annotations

import logging
import math
import warnings
from dataclasses import dataclass
from typing import Any, Optional, Sequence, Tuple

import numpy as np
import scipy.sparse as sp

from .bundle import NamedDataBundle
from .exceptions import ConfigurationError

log = logging.getLogger(__name__)
log.addHandler(logging.NullHandler())

__all__ = [
    "INT_SCHEMA",
    "DOUBLE_SCHEMA",
    "CHARACTER_SCHEMA",
    "SMATRIX_SCHEMA",
    "Alpha2Data",
    "extract_alpha2_data",
]

INT_SCHEMA: Tuple[Tuple[str, ...], ...] = (
    ("n",),
    ("debug",),
    ("prec_graph_i",),
    ("prec_graph_j",),
    ("stationary_endpoints",),
    ("upper_edges",),
    ("lower_edges",),
    # lower edge count; the wire name is "upper_edges_len"
    ("upper_edges_len", "lower_edges_len"),
    ("upper_edges_len",),
)

DOUBLE_SCHEMA: Tuple[Optional[str], ...] = (
    None,
    "El",
    "start_theta",
    "start_lsigma",
    "prior_theta_meanlog",
    "prior_theta_sdlog",
    "prior_sigma_meanlog",
    "prior_sigma_sdlog",
)

# the first two are the model name and the shared library
CHARACTER_SCHEMA: Tuple[Optional[str], ...] = (None, None, "parameterization")

SMATRIX_SCHEMA: Tuple[str, ...] = ("Tc",)


def _strcasecmp(a: Optional[str], b: Optional[str]) -> bool:
    if a is None or b is None:
        return False
    return str(a).lower() == str(b).lower()


@dataclass(frozen=True)
class Alpha2Data:
    """Validated inputs of the alpha=2 metric-graph model."""

    n: int
    debug: int
    graph_i: np.ndarray
    graph_j: np.ndarray
    stationary_endpoints: np.ndarray
    upper_edges: np.ndarray
    lower_edges: np.ndarray
    lower_edges_len: int
    upper_edges_len: int
    Tc: sp.coo_matrix
    El: np.ndarray
    start_theta: float
    start_lsigma: float
    prior_theta_meanlog: float
    prior_theta_sdlog: float
    prior_sigma_meanlog: float
    prior_sigma_sdlog: float
    parameterization: str

    @property
    def M(self) -> int:
        """Number of (i <= j) precision entries."""
        return int(self.graph_i.size)

    @property
    def nE(self) -> int:
        """Number of edges."""
        return int(self.El.size)

    @classmethod
    def from_bundle(cls, bundle: NamedDataBundle) -> "Alpha2Data":
        return extract_alpha2_data(bundle)


# ---------------------------------------------------------------------------
# Schema checks
# ---------------------------------------------------------------------------

def _check_count(group: str, records: Sequence[Any], expected: int, exact: bool = True) -> None:
    n = len(records)
    if (exact and n != expected) or (not exact and n < expected):
        want = f"{expected}" if exact else f"at least {expected}"
        raise ConfigurationError(f"Bundle has {n} {group} records; expected {want}.")


def _check_name(group: str, index: int, actual: str, allowed: Sequence[Optional[str]]) -> None:
    if any(a is None for a in allowed):
        return
    if not any(_strcasecmp(actual, a) for a in allowed):
        raise ConfigurationError(
            f"{group}[{index}] is named '{actual}'; expected '{' or '.join(str(a) for a in allowed)}'."
        )


def _scalar(group: str, name: str, value: np.ndarray) -> Any:
    if np.asarray(value).size < 1:
        raise ConfigurationError(f"{group} record '{name}' is empty; a scalar is required.")
    return np.asarray(value).ravel()[0]


def _check_schema(bundle: NamedDataBundle) -> None:
    _check_count("ints", bundle.ints, len(INT_SCHEMA))
    _check_count("doubles", bundle.doubles, len(DOUBLE_SCHEMA))
    _check_count("characters", bundle.characters, len(CHARACTER_SCHEMA), exact=False)
    _check_count("smatrices", bundle.smatrices, len(SMATRIX_SCHEMA), exact=False)

    for k, allowed in enumerate(INT_SCHEMA):
        _check_name("ints", k, bundle.ints[k].name, allowed)
    for k, expected in enumerate(DOUBLE_SCHEMA):
        _check_name("doubles", k, bundle.doubles[k].name, (expected,))
    for k, expected in enumerate(CHARACTER_SCHEMA):
        _check_name("characters", k, bundle.characters[k].name, (expected,))
    for k, expected in enumerate(SMATRIX_SCHEMA):
        _check_name("smatrices", k, bundle.smatrices[k].name, (expected,))


def _edge_index(name: str, values: np.ndarray, declared: int, nE: int) -> np.ndarray:
    if declared < 0:
        raise ConfigurationError(f"Declared length of '{name}' is negative: {declared}")
    if declared > values.size:
        raise ConfigurationError(
            f"Declared length of '{name}' ({declared}) exceeds its {values.size} entries."
        )
    if declared < values.size:
        warnings.warn(
            f"'{name}' has {values.size} entries but declares {declared}; "
            f"only the first {declared} are used."
        )
    idx = values[:declared].astype(np.int64)
    if idx.size and (idx.min() < 0 or idx.max() >= nE):
        raise ConfigurationError(f"'{name}' holds edge indices outside [0, {nE}).")
    return idx


def extract_alpha2_data(bundle: NamedDataBundle) -> Alpha2Data:
    """
    Validate ``bundle`` and unpack it.

    Raises
    ------
    ConfigurationError
        If record counts, record names or record contents do not match the
        alpha=2 model schema.
    """
    _check_schema(bundle)
    ints = [np.asarray(r.value, dtype=np.int64).ravel() for r in bundle.ints]
    dbls = [np.asarray(r.value, dtype=np.float64).ravel() for r in bundle.doubles]

    N = int(_scalar("ints", "n", ints[0]))
    if N <= 0:
        raise ConfigurationError(f"Model size n must be positive; got {N}.")
    debug = int(_scalar("ints", "debug", ints[1]))

    graph_i, graph_j = ints[2], ints[3]
    if graph_i.size != graph_j.size:
        raise ConfigurationError(
            f"prec_graph_i and prec_graph_j differ in length: {graph_i.size} != {graph_j.size}"
        )
    if graph_i.size:
        if min(graph_i.min(), graph_j.min()) < 0 or max(graph_i.max(), graph_j.max()) >= N:
            raise ConfigurationError(f"Precision graph indices must lie in [0, {N}).")
        if np.any(graph_i > graph_j):
            raise ConfigurationError("Precision graph must list (i, j) pairs with i <= j.")

    El = dbls[1]
    nE = int(El.size)
    if nE == 0:
        raise ConfigurationError("El is empty; at least one edge is required.")
    if np.any(~np.isfinite(El)) or np.any(El <= 0):
        raise ConfigurationError("Edge lengths El must be finite and positive.")

    Tc = sp.coo_matrix(bundle.smatrices[0].value)
    if Tc.shape[1] != 4 * nE:
        raise ConfigurationError(
            f"Tc has {Tc.shape[1]} columns; expected 4 * nE = {4 * nE}."
        )
    if Tc.shape[0] != N:
        raise ConfigurationError(f"Tc has {Tc.shape[0]} rows; expected n = {N}.")

    lower_len = int(_scalar("ints", "lower_edges_len", ints[7]))
    upper_len = int(_scalar("ints", "upper_edges_len", ints[8]))
    upper_edges = _edge_index("upper_edges", ints[5], upper_len, nE)
    lower_edges = _edge_index("lower_edges", ints[6], lower_len, nE)

    prior_theta_sdlog = float(_scalar("doubles", "prior_theta_sdlog", dbls[5]))
    prior_sigma_sdlog = float(_scalar("doubles", "prior_sigma_sdlog", dbls[7]))
    for name, sd in (("prior_theta_sdlog", prior_theta_sdlog), ("prior_sigma_sdlog", prior_sigma_sdlog)):
        if not (math.isfinite(sd) and sd > 0):
            raise ConfigurationError(f"{name} must be finite and positive; got {sd}.")

    data = Alpha2Data(
        n=N,
        debug=debug,
        graph_i=graph_i,
        graph_j=graph_j,
        stationary_endpoints=ints[4],
        upper_edges=upper_edges,
        lower_edges=lower_edges,
        lower_edges_len=lower_len,
        upper_edges_len=upper_len,
        Tc=Tc,
        El=El,
        start_theta=float(_scalar("doubles", "start_theta", dbls[2])),
        start_lsigma=float(_scalar("doubles", "start_lsigma", dbls[3])),
        prior_theta_meanlog=float(_scalar("doubles", "prior_theta_meanlog", dbls[4])),
        prior_theta_sdlog=prior_theta_sdlog,
        prior_sigma_meanlog=float(_scalar("doubles", "prior_sigma_meanlog", dbls[6])),
        prior_sigma_sdlog=prior_sigma_sdlog,
        parameterization=str(bundle.characters[2].value),
    )
    if debug == 1:
        log.debug(
            "extracted alpha2 data: n=%d M=%d nE=%d lower=%d upper=%d parameterization=%s",
            data.n, data.M, data.nE, lower_len, upper_len, data.parameterization,
        )
    return data
