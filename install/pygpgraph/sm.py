# sm.py
"""
Sparse-matrix utilities for the triplet ("Tc") records of a data bundle.

SciPy COO (coordinate) format plays the role of the cgeneric ``smat``
record: ``nrow``, ``ncol``, ``n`` and the three equal-length sequences
``i``, ``j``, ``x`` (0-based in memory).
"""

from __future__ import annotations

from typing import Union

import numpy as np
import scipy.sparse as sp


__all__ = [
    "as_sparse",
    "sparse_from_triplet",
    "sparse_entries",
]


ArrayLike = Union[np.ndarray, "sp.spmatrix", list]


def _to_coo(A: ArrayLike) -> "sp.coo_matrix":
    """Convert dense/sparse array-likes to COO with float64 dtype."""
    if sp.issparse(A):
        M = sp.coo_matrix(A)
        if M.dtype != np.float64:
            M = M.astype(np.float64)
        return M
    arr = np.asarray(A, dtype=np.float64)
    if arr.ndim != 2:
        raise ValueError(f"Expected a 2-D array; got shape {arr.shape}.")
    return sp.coo_matrix(arr)


def as_sparse(
    A: ArrayLike,
    unique: bool = True,
) -> "sp.coo_matrix":
    """
    Convert a dense/sparse matrix into SciPy COO.

    Parameters
    ----------
    A : array-like or scipy.sparse.spmatrix
        The matrix to convert.
    unique : bool
        If True, coalesce duplicate (i, j) entries (sum them).

    Returns
    -------
    coo_matrix
    """
    M = _to_coo(A)

    if unique:
        M.sum_duplicates()

    return M


def sparse_from_triplet(nrow: int, ncol: int, i, j, x) -> "sp.coo_matrix":
    """
    Build a COO matrix from 0-based triplets, keeping duplicates and
    explicit zeros exactly as given.
    """
    ii = np.asarray(i, dtype=np.int64).ravel()
    jj = np.asarray(j, dtype=np.int64).ravel()
    xx = np.asarray(x, dtype=np.float64).ravel()
    if not (ii.size == jj.size == xx.size):
        raise ValueError(
            f"Triplet lengths differ: len(i)={ii.size}, len(j)={jj.size}, len(x)={xx.size}"
        )
    if ii.size:
        if ii.min() < 0 or ii.max() >= nrow:
            raise IndexError(f"Row index out of range for {nrow} rows")
        if jj.min() < 0 or jj.max() >= ncol:
            raise IndexError(f"Column index out of range for {ncol} columns")
    return sp.coo_matrix((xx, (ii, jj)), shape=(int(nrow), int(ncol)))


def sparse_entries(A: ArrayLike, i, j) -> np.ndarray:
    """
    Values of A at the 0-based positions ``(i[k], j[k])``, in the given
    order. Positions without a stored entry give 0.0.
    """
    ii = np.asarray(i, dtype=np.int64).ravel()
    jj = np.asarray(j, dtype=np.int64).ravel()
    if ii.size != jj.size:
        raise ValueError(f"Index lengths differ: {ii.size} != {jj.size}")
    if ii.size == 0:
        return np.empty((0,), dtype=np.float64)
    M = sp.csr_matrix(A)
    M.sum_duplicates()
    return np.asarray(M[ii, jj], dtype=np.float64).ravel()
