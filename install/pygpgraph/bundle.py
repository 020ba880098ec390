# bundle.py
"""
Named data bundles for cgeneric-style models.

A bundle is the ordered, schema-fixed collection of named records handed
to a model on every call:

- ints       : list of (name, int32 vector)
- doubles    : list of (name, float64 vector)
- characters : list of (name, string)
- matrices   : list of (name, dense float64 matrix)
- smatrices  : list of (name, sparse matrix, scipy COO in memory)

Records are kept as ordered lists rather than dicts because the wire
contract is positional and names may repeat.

Binary layout (little-endian, as read by the INLA cgeneric loader):

  for each group in (ints, doubles, characters, matrices, smatrices):
    int32 number of records
    repeat:
      int32 len(name), name bytes (UTF-8)
      ints/doubles : int32 len, payload
      characters   : int32 len, bytes
      matrices     : int32 nrow, int32 ncol, float64[nrow*ncol] row-major
      smatrices    : int32 nrow, int32 ncol, int32 nnz,
                     int32 (i+1)[nnz], int32 (j+1)[nnz], float64 x[nnz]
"""

from __future__ import annotations

import logging
import struct
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Mapping, Optional, Tuple, Union

import numpy as np
import scipy.sparse as sp

from .exceptions import BundleFormatError
from .sm import as_sparse, sparse_from_triplet

log = logging.getLogger(__name__)
log.addHandler(logging.NullHandler())

__all__ = [
    "Record",
    "NamedDataBundle",
    "write_bundle",
    "read_bundle",
]

_GROUPS = ("ints", "doubles", "characters", "matrices", "smatrices")


@dataclass(frozen=True)
class Record:
    name: str
    value: Any


def _np_to_int32(x: Any) -> np.ndarray:
    return np.atleast_1d(np.asarray(x, dtype=np.int32)).ravel()


def _np_to_float64(x: Any) -> np.ndarray:
    return np.atleast_1d(np.asarray(x, dtype=np.float64)).ravel()


def _ensure_matrix(x: Any) -> np.ndarray:
    """Coerce to a 2D numpy array of dtype float."""
    if x is None:
        raise ValueError("matrix is None")
    if sp.issparse(x):
        return x.toarray().astype(float)
    arr = np.asarray(x)
    if arr.ndim == 1:
        arr = arr.reshape(-1, 1)
    if arr.ndim != 2:
        raise ValueError("Expected matrix-like (2D).")
    return arr.astype(float)


def _as_records(items: Union[None, Mapping[str, Any], Iterable[Tuple[str, Any]]]) -> List[Tuple[str, Any]]:
    if items is None:
        return []
    if isinstance(items, Mapping):
        return list(items.items())
    return [(str(name), value) for name, value in items]


@dataclass
class NamedDataBundle:
    """Ordered collection of named records, grouped by payload type."""

    ints: List[Record] = field(default_factory=list)
    doubles: List[Record] = field(default_factory=list)
    characters: List[Record] = field(default_factory=list)
    matrices: List[Record] = field(default_factory=list)
    smatrices: List[Record] = field(default_factory=list)

    def add_int(self, name: str, value: Any) -> "NamedDataBundle":
        self.ints.append(Record(name, _np_to_int32(value)))
        return self

    def add_double(self, name: str, value: Any) -> "NamedDataBundle":
        self.doubles.append(Record(name, _np_to_float64(value)))
        return self

    def add_character(self, name: str, value: str) -> "NamedDataBundle":
        self.characters.append(Record(name, str(value)))
        return self

    def add_matrix(self, name: str, value: Any) -> "NamedDataBundle":
        self.matrices.append(Record(name, _ensure_matrix(value)))
        return self

    def add_smatrix(self, name: str, value: Any) -> "NamedDataBundle":
        self.smatrices.append(Record(name, as_sparse(value, unique=False)))
        return self

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "NamedDataBundle":
        """
        Build a bundle from ``{"ints": ..., "doubles": ..., "characters": ...,
        "matrices": ..., "smatrices": ...}``, each group a mapping or an
        ordered sequence of ``(name, value)`` pairs.
        """
        unknown = set(data) - set(_GROUPS)
        if unknown:
            raise KeyError(f"Unknown bundle groups: {sorted(unknown)}")
        bundle = cls()
        for name, value in _as_records(data.get("ints")):
            bundle.add_int(name, value)
        for name, value in _as_records(data.get("doubles")):
            bundle.add_double(name, value)
        for name, value in _as_records(data.get("characters")):
            bundle.add_character(name, value)
        for name, value in _as_records(data.get("matrices")):
            bundle.add_matrix(name, value)
        for name, value in _as_records(data.get("smatrices")):
            bundle.add_smatrix(name, value)
        return bundle

    def names(self, group: str) -> List[str]:
        return [r.name for r in getattr(self, group)]

    def counts(self) -> Tuple[int, int, int, int, int]:
        return tuple(len(getattr(self, g)) for g in _GROUPS)  # type: ignore[return-value]


# ---------------------------------------------------------------------------
# Binary writer / reader
# ---------------------------------------------------------------------------

def _write_name(fd, name: str) -> None:
    raw = name.encode("utf-8")
    fd.write(struct.pack("<i", len(raw)))
    fd.write(raw)


def write_bundle(bundle: NamedDataBundle, path: str) -> str:
    """Write ``bundle`` to ``path`` in the cgeneric binary data layout."""
    with open(path, "wb") as fd:
        fd.write(struct.pack("<i", len(bundle.ints)))
        for rec in bundle.ints:
            arr = _np_to_int32(rec.value)
            _write_name(fd, rec.name)
            fd.write(struct.pack("<i", len(arr)))
            fd.write(arr.astype("<i4").tobytes(order="C"))

        fd.write(struct.pack("<i", len(bundle.doubles)))
        for rec in bundle.doubles:
            arr = _np_to_float64(rec.value)
            _write_name(fd, rec.name)
            fd.write(struct.pack("<i", len(arr)))
            fd.write(arr.astype("<f8").tobytes(order="C"))

        fd.write(struct.pack("<i", len(bundle.characters)))
        for rec in bundle.characters:
            raw = str(rec.value).encode("utf-8")
            _write_name(fd, rec.name)
            fd.write(struct.pack("<i", len(raw)))
            fd.write(raw)

        fd.write(struct.pack("<i", len(bundle.matrices)))
        for rec in bundle.matrices:
            M = _ensure_matrix(rec.value)
            _write_name(fd, rec.name)
            fd.write(struct.pack("<i", int(M.shape[0])))
            fd.write(struct.pack("<i", int(M.shape[1])))
            fd.write(M.astype("<f8").ravel(order="C").tobytes(order="C"))

        fd.write(struct.pack("<i", len(bundle.smatrices)))
        for rec in bundle.smatrices:
            if not sp.issparse(rec.value):
                raise ValueError("smatrices require scipy.sparse inputs.")
            sm = sp.coo_matrix(rec.value)
            r, c = sm.shape
            _write_name(fd, rec.name)
            fd.write(struct.pack("<i", int(r)))
            fd.write(struct.pack("<i", int(c)))
            fd.write(struct.pack("<i", int(sm.nnz)))
            fd.write(_np_to_int32(sm.row + 1).astype("<i4").tobytes(order="C"))
            fd.write(_np_to_int32(sm.col + 1).astype("<i4").tobytes(order="C"))
            fd.write(sm.data.astype("<f8").tobytes(order="C"))

    log.debug("wrote bundle %s (counts=%s)", path, bundle.counts())
    return path


class _Reader:
    def __init__(self, buf: bytes, path: Optional[str] = None):
        self.buf = buf
        self.pos = 0
        self.path = path

    def take(self, nbytes: int) -> bytes:
        if nbytes < 0 or self.pos + nbytes > len(self.buf):
            raise BundleFormatError(f"Unexpected end of bundle data in {self.path or '<bytes>'}")
        b = self.buf[self.pos:self.pos + nbytes]
        self.pos += nbytes
        return b

    def int32(self) -> int:
        return struct.unpack("<i", self.take(4))[0]

    def int32s(self, count: int) -> np.ndarray:
        return np.frombuffer(self.take(4 * count), dtype="<i4").astype(np.int32)

    def float64s(self, count: int) -> np.ndarray:
        return np.frombuffer(self.take(8 * count), dtype="<f8").astype(np.float64)

    def count(self) -> int:
        n = self.int32()
        if n < 0:
            raise BundleFormatError(f"Negative record count {n} in {self.path or '<bytes>'}")
        return n

    def name(self) -> str:
        return self.take(self.count()).decode("utf-8")


def read_bundle(path: str) -> NamedDataBundle:
    """Read a bundle written by :func:`write_bundle`."""
    with open(path, "rb") as fd:
        rd = _Reader(fd.read(), path)

    bundle = NamedDataBundle()
    for _ in range(rd.count()):
        name = rd.name()
        bundle.ints.append(Record(name, rd.int32s(rd.count())))
    for _ in range(rd.count()):
        name = rd.name()
        bundle.doubles.append(Record(name, rd.float64s(rd.count())))
    for _ in range(rd.count()):
        name = rd.name()
        bundle.characters.append(Record(name, rd.take(rd.count()).decode("utf-8")))
    for _ in range(rd.count()):
        name = rd.name()
        nrow, ncol = rd.count(), rd.count()
        data = rd.float64s(nrow * ncol)
        bundle.matrices.append(Record(name, data.reshape((nrow, ncol), order="C")))
    for _ in range(rd.count()):
        name = rd.name()
        nrow, ncol, nnz = rd.count(), rd.count(), rd.count()
        ii = rd.int32s(nnz).astype(np.int64) - 1
        jj = rd.int32s(nnz).astype(np.int64) - 1
        xx = rd.float64s(nnz)
        try:
            M = sparse_from_triplet(nrow, ncol, ii, jj, xx)
        except (IndexError, ValueError) as e:
            raise BundleFormatError(f"Invalid sparse record '{name}' in {path}: {e}") from e
        bundle.smatrices.append(Record(name, M))

    if rd.pos != len(rd.buf):
        raise BundleFormatError(f"Trailing bytes after bundle data in {path}")
    log.debug("read bundle %s (counts=%s)", path, bundle.counts())
    return bundle
