"""Precision assembly for the alpha=2 Whittle-Matern field on a metric graph.

Each edge ``e`` of length ``l_e`` carries the state
``(u(0), u'(0), u(l_e), u'(l_e))`` of a Matern process with smoothness
nu = 3/2 (alpha = 2 in one dimension),

    r(h) = tau^{-2} (1 + kappa |h|) exp(-kappa |h|),

so that ``1/tau`` is the marginal standard deviation. The joint
covariance ``R_e`` of the four edge-end variables is

    R_e = [[R_00,    R_01],
           [R_01^T,  R_00]],
    R_00 = diag(r(0), -r''(0)),
    R_01 = [[ r(l),  r'(l)],
            [-r'(l), -r''(l)]].

The edge precision is ``R_e^{-1}`` minus ``w * R_00^{-1}`` at both ends
(vertex correction, ``w = 0.5``). For edges in ``lower_edges`` the
correction at the start vertex is dropped, for ``upper_edges`` the one at
the end vertex, which keeps the field stationary at those endpoints.

The edge precisions form a 4x4-block-diagonal matrix ``Q_E``; the model
precision is ``Q = Tc Q_E Tc^T`` where ``Tc`` encodes the Kirchhoff
vertex conditions.
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

import numpy as np
import scipy.sparse as sp

from .sm import sparse_entries

log = logging.getLogger(__name__)
log.addHandler(logging.NullHandler())

__all__ = [
    "VERTEX_WEIGHT",
    "matern32_covariance",
    "edge_covariances",
    "edge_precisions",
    "edge_precision_matrix",
    "precision_matrix",
    "compute_q_alpha2",
]

VERTEX_WEIGHT = 0.5


def matern32_covariance(h, kappa: float, tau: float, deriv: int = 0) -> np.ndarray:
    """
    Matern (nu = 3/2) covariance ``r(h)`` or its first/second derivative
    in ``h``.
    """
    h = np.asarray(h, dtype=np.float64)
    ah = np.abs(h)
    c = 1.0 / (tau * tau)
    e = np.exp(-kappa * ah)
    if deriv == 0:
        return c * (1.0 + kappa * ah) * e
    if deriv == 1:
        return -c * kappa * kappa * h * e
    if deriv == 2:
        return c * kappa * kappa * (kappa * ah - 1.0) * e
    raise ValueError(f"deriv must be 0, 1 or 2; got {deriv}")


def _stationary_block(kappa: float, tau: float) -> np.ndarray:
    r0 = float(matern32_covariance(0.0, kappa, tau, 0))
    d0 = -float(matern32_covariance(0.0, kappa, tau, 2))
    return np.array([[r0, 0.0], [0.0, d0]])


def edge_covariances(El, kappa: float, tau: float) -> np.ndarray:
    """Stack of 4x4 covariances of ``(u(0), u'(0), u(l), u'(l))``, one per edge."""
    l = np.asarray(El, dtype=np.float64).ravel()
    nE = l.size
    r = matern32_covariance(l, kappa, tau, 0)
    d1 = matern32_covariance(l, kappa, tau, 1)
    d2 = matern32_covariance(l, kappa, tau, 2)

    R = np.zeros((nE, 4, 4), dtype=np.float64)
    R[:, 0:2, 0:2] = _stationary_block(kappa, tau)
    R[:, 2:4, 2:4] = _stationary_block(kappa, tau)
    R[:, 0, 2] = r
    R[:, 0, 3] = d1
    R[:, 1, 2] = -d1
    R[:, 1, 3] = -d2
    R[:, 2:4, 0:2] = np.transpose(R[:, 0:2, 2:4], (0, 2, 1))
    return R


def edge_precisions(
    El,
    kappa: float,
    tau: float,
    lower_edges: Sequence[int] = (),
    upper_edges: Sequence[int] = (),
    w: float = VERTEX_WEIGHT,
) -> np.ndarray:
    """Stack of corrected 4x4 edge precisions (see module docstring)."""
    R = edge_covariances(El, kappa, tau)
    Q = np.linalg.inv(R)
    Q = 0.5 * (Q + np.transpose(Q, (0, 2, 1)))

    corr = w * np.linalg.inv(_stationary_block(kappa, tau))
    start = np.ones(R.shape[0], dtype=bool)
    end = np.ones(R.shape[0], dtype=bool)
    start[np.asarray(lower_edges, dtype=np.int64)] = False
    end[np.asarray(upper_edges, dtype=np.int64)] = False
    Q[start, 0:2, 0:2] -= corr
    Q[end, 2:4, 2:4] -= corr
    return Q


def edge_precision_matrix(blocks: np.ndarray) -> sp.csr_matrix:
    """Block-diagonal sparse matrix from a ``(nE, 4, 4)`` stack."""
    nE = blocks.shape[0]
    base = 4 * np.arange(nE, dtype=np.int64)
    a, b = np.meshgrid(np.arange(4), np.arange(4), indexing="ij")
    rows = (base[:, None, None] + a[None, :, :]).ravel()
    cols = (base[:, None, None] + b[None, :, :]).ravel()
    return sp.csr_matrix((blocks.ravel(), (rows, cols)), shape=(4 * nE, 4 * nE))


def precision_matrix(
    Tc,
    El,
    kappa: float,
    tau: float,
    lower_edges: Sequence[int] = (),
    upper_edges: Sequence[int] = (),
    w: float = VERTEX_WEIGHT,
) -> sp.csr_matrix:
    """Full model precision ``Tc Q_E Tc^T``."""
    T = sp.csr_matrix(Tc)
    nE = int(np.asarray(El).size)
    if T.shape[1] != 4 * nE:
        raise ValueError(f"Tc has {T.shape[1]} columns; expected 4 * nE = {4 * nE}")
    QE = edge_precision_matrix(edge_precisions(El, kappa, tau, lower_edges, upper_edges, w))
    Q = (T @ QE @ T.T).tocsr()
    Q.sum_duplicates()
    return Q


def compute_q_alpha2(
    Tc,
    kappa: float,
    tau: float,
    El,
    graph_i,
    graph_j,
    lower_edges: Sequence[int] = (),
    upper_edges: Sequence[int] = (),
    w: float = VERTEX_WEIGHT,
    out: Optional[np.ndarray] = None,
) -> np.ndarray:
    """
    Precision values at the ``(graph_i[k], graph_j[k])`` positions.

    Parameters
    ----------
    Tc : sparse matrix, shape (n, 4 * nE)
        Kirchhoff constraint basis.
    kappa, tau : float
        Rate and inverse marginal standard deviation.
    El : array of float
        Edge lengths.
    graph_i, graph_j : array of int
        0-based positions of the reported entries (i <= j).
    lower_edges, upper_edges : array of int
        0-based edges with a stationary start / end vertex.
    w : float
        Vertex correction weight.
    out : ndarray, optional
        Buffer of length ``len(graph_i)`` to fill in place.

    Returns
    -------
    ndarray
        ``out`` (or a new array) holding one value per position. Positions
        without a structural entry are zero.
    """
    gi = np.asarray(graph_i, dtype=np.int64).ravel()
    gj = np.asarray(graph_j, dtype=np.int64).ravel()
    if gi.size != gj.size:
        raise ValueError(f"graph_i and graph_j differ in length: {gi.size} != {gj.size}")
    if out is None:
        out = np.empty(gi.size, dtype=np.float64)
    elif out.shape != (gi.size,):
        raise ValueError(f"Output buffer has shape {out.shape}; expected ({gi.size},)")

    Q = precision_matrix(Tc, El, kappa, tau, lower_edges, upper_edges, w)
    out[:] = sparse_entries(Q, gi, gj)
    log.debug("assembled %d precision values (kappa=%g, tau=%g)", gi.size, kappa, tau)
    return out
