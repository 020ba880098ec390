# graph.py
"""
Metric graphs and the data bundle of the alpha=2 model.

Graph object:
- E            : (nE, 2) int array, 0-based start/end vertex of each edge
- edge_lengths : (nE,) float array
- V            : optional (nV, d) vertex coordinates

Edge-end variables are numbered per edge ``e`` as

  4e + 0 : u(0)    at vertex E[e, 0]
  4e + 1 : u'(0)
  4e + 2 : u(l_e)  at vertex E[e, 1]
  4e + 3 : u'(l_e)

with derivatives taken along the edge direction. ``Tc`` maps the free
variables left after imposing the Kirchhoff vertex conditions to these
edge-end variables: ``x = Tc^T z``.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, Tuple, Union

import numpy as np
import scipy.sparse as sp

from .bundle import NamedDataBundle
from .transforms import theta_from_log_kappa, MATERN_LOG_KAPPA_OFFSET, is_matern

log = logging.getLogger(__name__)
log.addHandler(logging.NullHandler())

__all__ = [
    "MODEL_NAME",
    "MetricGraph",
    "alpha2_constraint_basis",
    "precision_pattern",
    "stationary_edges",
    "graph_spde_alpha2",
]

MODEL_NAME = "inla_cgeneric_gpgraph_alpha2_model"


# -----------------------------------------------------------------------------
# Data model
# -----------------------------------------------------------------------------

@dataclass
class MetricGraph:
    E: np.ndarray
    edge_lengths: np.ndarray
    V: Optional[np.ndarray] = None
    nV: int = field(init=False)

    def __post_init__(self) -> None:
        self.E = np.asarray(self.E, dtype=np.int64).reshape(-1, 2)
        self.edge_lengths = np.asarray(self.edge_lengths, dtype=np.float64).ravel()
        if self.E.shape[0] == 0:
            raise ValueError("A metric graph needs at least one edge.")
        if self.edge_lengths.size != self.E.shape[0]:
            raise ValueError(
                f"Got {self.edge_lengths.size} edge lengths for {self.E.shape[0]} edges."
            )
        if np.any(~np.isfinite(self.edge_lengths)) or np.any(self.edge_lengths <= 0):
            raise ValueError("Edge lengths must be finite and positive.")
        if self.E.min() < 0:
            raise ValueError("Vertex indices must be 0-based and non-negative.")
        if self.V is not None:
            self.V = np.asarray(self.V, dtype=np.float64)
            self.nV = int(self.V.shape[0])
            if self.E.max() >= self.nV:
                raise ValueError(f"Edge list refers to vertex {self.E.max()} but only {self.nV} vertices exist.")
        else:
            self.nV = int(self.E.max()) + 1

    @classmethod
    def from_coordinates(cls, V, E) -> "MetricGraph":
        """Straight-line graph; edge lengths are the Euclidean vertex distances."""
        V = np.asarray(V, dtype=np.float64)
        E = np.asarray(E, dtype=np.int64).reshape(-1, 2)
        lengths = np.linalg.norm(V[E[:, 1]] - V[E[:, 0]], axis=1)
        return cls(E=E, edge_lengths=lengths, V=V)

    @property
    def nE(self) -> int:
        return int(self.E.shape[0])

    @property
    def degrees(self) -> np.ndarray:
        return np.bincount(self.E.ravel(), minlength=self.nV)

    def vertices_of_degree(self, d: int) -> np.ndarray:
        return np.flatnonzero(self.degrees == d)

    def incident_ends(self, v: int) -> List[Tuple[int, int]]:
        """``(edge, side)`` pairs meeting at ``v``; side 0 = start, 1 = end."""
        ends = [(int(e), 0) for e in np.flatnonzero(self.E[:, 0] == v)]
        ends += [(int(e), 1) for e in np.flatnonzero(self.E[:, 1] == v)]
        return sorted(ends)


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------

def _resolve_stationary(graph: MetricGraph, stationary_endpoints: Union[str, Iterable[int], None]) -> np.ndarray:
    if stationary_endpoints is None:
        return np.empty((0,), dtype=np.int64)
    if isinstance(stationary_endpoints, str):
        if stationary_endpoints.lower() == "all":
            return graph.vertices_of_degree(1).astype(np.int64)
        if stationary_endpoints.lower() == "none":
            return np.empty((0,), dtype=np.int64)
        raise ValueError(f"stationary_endpoints must be 'all', 'none' or vertex indices; got '{stationary_endpoints}'")
    idx = np.unique(np.asarray(list(stationary_endpoints), dtype=np.int64))
    deg = graph.degrees
    if idx.size and (idx.min() < 0 or idx.max() >= graph.nV):
        raise ValueError("stationary_endpoints refers to vertices outside the graph.")
    bad = idx[deg[idx] != 1]
    if bad.size:
        raise ValueError(f"Stationary endpoints must have degree 1; got vertices {bad.tolist()}")
    return idx


def stationary_edges(graph: MetricGraph, stationary_endpoints: Union[str, Iterable[int], None] = "all") -> Tuple[np.ndarray, np.ndarray]:
    """
    ``(lower_edges, upper_edges)``: edges whose start (lower) or end
    (upper) vertex is a stationary endpoint.
    """
    st = _resolve_stationary(graph, stationary_endpoints)
    lower = np.flatnonzero(np.isin(graph.E[:, 0], st))
    upper = np.flatnonzero(np.isin(graph.E[:, 1], st))
    return lower.astype(np.int64), upper.astype(np.int64)


def alpha2_constraint_basis(graph: MetricGraph, stationary_endpoints: Union[str, Iterable[int], None] = "all") -> sp.coo_matrix:
    """
    Sparse basis ``Tc`` (n x 4 nE) of the edge-end variables satisfying the
    Kirchhoff conditions:

    - u is continuous at every vertex;
    - the outward derivatives at a vertex sum to zero, except at
      stationary endpoints where the derivative is left free. At a
      non-stationary vertex of degree 1 this pins u' to zero.
    """
    st = set(_resolve_stationary(graph, stationary_endpoints).tolist())
    rows: List[int] = []
    cols: List[int] = []
    vals: List[float] = []
    n = 0

    for v in range(graph.nV):
        ends = graph.incident_ends(v)
        if not ends:
            continue

        for e, side in ends:
            rows.append(n)
            cols.append(4 * e + 2 * side)
            vals.append(1.0)
        n += 1

        # outward derivative of end (e, side) is sign * x[4e + 2 side + 1]
        signs = [1.0 if side == 0 else -1.0 for _, side in ends]
        dcols = [4 * e + 2 * side + 1 for e, side in ends]
        if v in st:
            for c in dcols:
                rows.append(n)
                cols.append(c)
                vals.append(1.0)
                n += 1
            continue

        s0 = signs[0]
        for c, s in zip(dcols[1:], signs[1:]):
            rows.extend([n, n])
            cols.extend([c, dcols[0]])
            vals.extend([1.0, -s0 * s])
            n += 1

    Tc = sp.coo_matrix((vals, (rows, cols)), shape=(n, 4 * graph.nE))
    log.debug("constraint basis: %d free variables for %d edges", n, graph.nE)
    return Tc


def precision_pattern(Tc) -> Tuple[np.ndarray, np.ndarray]:
    """
    Upper-triangular ``(i, j)`` pattern of ``Tc Q_E Tc^T`` for a
    4x4-block-diagonal ``Q_E``, sorted by row then column.
    """
    T = sp.csr_matrix(Tc, dtype=np.float64, copy=True)
    T.data = np.ones_like(T.data)
    nE = T.shape[1] // 4
    B = sp.kron(sp.identity(nE, format="csr"), np.ones((4, 4)), format="csr")
    P = sp.triu(T @ B @ T.T, format="csr")
    P.sum_duplicates()
    P.sort_indices()
    P = P.tocoo()
    return P.row.astype(np.int64), P.col.astype(np.int64)


def _start_theta(start_range: float, parameterization: str) -> float:
    if is_matern(parameterization):
        return math.log(start_range)
    return theta_from_log_kappa(MATERN_LOG_KAPPA_OFFSET - math.log(start_range), parameterization)


# -----------------------------------------------------------------------------
# Bundle builder
# -----------------------------------------------------------------------------

def graph_spde_alpha2(
    graph: MetricGraph,
    stationary_endpoints: Union[str, Sequence[int], None] = "all",
    parameterization: str = "matern",
    start_range: Optional[float] = None,
    start_sigma: float = 1.0,
    prior_theta_meanlog: Optional[float] = None,
    prior_theta_sdlog: float = 10.0,
    prior_sigma_meanlog: Optional[float] = None,
    prior_sigma_sdlog: float = 10.0,
    debug: bool = False,
    shlib: str = "",
) -> NamedDataBundle:
    """
    Build the named data bundle of the alpha=2 model on ``graph``.

    Parameters
    ----------
    graph : MetricGraph
    stationary_endpoints : 'all', 'none', None or sequence of int
        Degree-1 vertices with stationary boundary behaviour.
    parameterization : str
        'matern' (theta[1] = log range) or anything else
        (theta[1] = log kappa).
    start_range, start_sigma : float
        Starting values; ``start_range`` defaults to the longest edge.
    prior_*_meanlog, prior_*_sdlog : float
        Gaussian priors on theta[1] and log(sigma). The means default to
        the starting values.
    debug : bool
        Turn on per-call debug logging in the model.
    shlib : str
        Shared library path recorded for the cgeneric loader.
    """
    lower, upper = stationary_edges(graph, stationary_endpoints)
    st = _resolve_stationary(graph, stationary_endpoints)
    Tc = alpha2_constraint_basis(graph, st)
    gi, gj = precision_pattern(Tc)

    if start_range is None:
        start_range = float(graph.edge_lengths.max())
    if start_range <= 0 or start_sigma <= 0:
        raise ValueError("start_range and start_sigma must be positive.")
    start_theta = _start_theta(float(start_range), parameterization)
    start_lsigma = math.log(start_sigma)

    bundle = NamedDataBundle()
    bundle.add_int("n", Tc.shape[0])
    bundle.add_int("debug", 1 if debug else 0)
    bundle.add_int("prec_graph_i", gi)
    bundle.add_int("prec_graph_j", gj)
    bundle.add_int("stationary_endpoints", st)
    bundle.add_int("upper_edges", upper)
    bundle.add_int("lower_edges", lower)
    # the lower edge count travels under the name "upper_edges_len"
    bundle.add_int("upper_edges_len", lower.size)
    bundle.add_int("upper_edges_len", upper.size)

    bundle.add_double("graph_length", float(graph.edge_lengths.sum()))
    bundle.add_double("El", graph.edge_lengths)
    bundle.add_double("start_theta", start_theta)
    bundle.add_double("start_lsigma", start_lsigma)
    bundle.add_double("prior_theta_meanlog", start_theta if prior_theta_meanlog is None else prior_theta_meanlog)
    bundle.add_double("prior_theta_sdlog", prior_theta_sdlog)
    bundle.add_double("prior_sigma_meanlog", start_lsigma if prior_sigma_meanlog is None else prior_sigma_meanlog)
    bundle.add_double("prior_sigma_sdlog", prior_sigma_sdlog)

    bundle.add_character("model", MODEL_NAME)
    bundle.add_character("shlib", shlib)
    bundle.add_character("parameterization", parameterization)

    bundle.add_smatrix("Tc", Tc)

    log.debug(
        "built alpha2 bundle: n=%d M=%d nE=%d stationary=%s",
        Tc.shape[0], gi.size, graph.nE, st.tolist(),
    )
    return bundle
