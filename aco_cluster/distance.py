"""
aco_cluster/distance.py
───────────────────────
Points and pairwise Euclidean distances: the shared, read-only geometry.

Coordinate
───────────
An ordered tuple of real values (one point in feature space). Backed by a
float64 numpy array with the WRITEABLE flag cleared, so a Coordinate
handed to several worker threads can never be mutated by one of them.

    a = Coordinate([0.0, 0.0])
    b = Coordinate([3.0, 4.0])
    a.distance(b)            # 5.0

Comparing points of different dimensionality is a caller bug, not a
"zero-pad and carry on" situation. distance() raises
DimensionMismatchError instead of truncating the longer point.

DistanceMatrix
───────────────
Square matrix of pairwise distances, built once and then frozen.

    DistanceMatrix.from_coordinates([a, b, c])   # computes all pairs
    DistanceMatrix.from_matrix([[0, 5], [5, 0]]) # validates a given one

Rows of from_coordinates() are computed through aco_parallel.parallel_for.
Each task fills exactly one row, so workers never share a write target.

Read access:
    dm.matrix / dm.get_matrix()  → read-only view (no copy).
    dm.copy()                    → independent writable clone.
There is no mutable accessor: a caller that wants to edit distances edits
its own clone.
"""

from __future__ import annotations

from typing import Iterable, Iterator, List, Optional, Sequence

import numpy as np
from numpy.typing import ArrayLike, NDArray

from aco_parallel import Executor, parallel_for


class DimensionMismatchError(ValueError):
    """
    Raised when points of different dimensionality are combined.

    Attributes:
        expected: Dimensionality of the reference point / first row.
        actual:   Dimensionality of the offending point / row.
    """

    def __init__(self, expected: int, actual: int, message: str = "") -> None:
        self.expected = expected
        self.actual = actual
        default_msg = (
            f"Dimension mismatch: expected {expected} dimension(s), got {actual}."
        )
        super().__init__(message or default_msg)


def _read_only(array: NDArray) -> NDArray:
    array.flags.writeable = False
    return array


# ── Coordinate ─────────────────────────────────────────────────────────────────

class Coordinate:
    """
    Immutable point in an n-dimensional real space.

    Args:
        values: Iterable of numbers. A zero-dimensional point is allowed
                (it is at distance 0 from any other zero-dimensional point).

    Raises:
        ValueError: if values is not one-dimensional.
    """

    __slots__ = ("_values",)

    def __init__(self, values: Iterable[float]) -> None:
        if not isinstance(values, np.ndarray):
            values = list(values)
        array = np.array(values, dtype=np.float64)
        if array.ndim != 1:
            raise ValueError(f"Coordinate requires a flat sequence, got shape {array.shape}")
        self._values: NDArray[np.float64] = _read_only(array)

    @property
    def values(self) -> NDArray[np.float64]:
        """Read-only float64 view of the coordinate values."""
        return self._values

    @property
    def dimension(self) -> int:
        return int(self._values.shape[0])

    def get_dimension(self) -> int:
        return self.dimension

    def distance(self, other: "Coordinate") -> float:
        """
        Euclidean distance to another point: ‖self − other‖₂.

        Raises:
            DimensionMismatchError: if the two points differ in dimension.
        """
        if other.dimension != self.dimension:
            raise DimensionMismatchError(self.dimension, other.dimension)
        return float(np.linalg.norm(self._values - other._values))

    def __len__(self) -> int:
        return self.dimension

    def __iter__(self) -> Iterator[float]:
        return (float(v) for v in self._values)

    def __getitem__(self, idx: int) -> float:
        return float(self._values[idx])

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Coordinate):
            return NotImplemented
        return self.dimension == other.dimension and bool(
            np.array_equal(self._values, other._values)
        )

    def __hash__(self) -> int:
        return hash(self._values.tobytes())

    def __repr__(self) -> str:
        return f"Coordinate({self._values.tolist()})"


# ── DistanceMatrix ─────────────────────────────────────────────────────────────

class DistanceMatrix:
    """
    Square matrix of pairwise distances, read-only after construction.

    Build through the factories, not the constructor:
        from_matrix(matrix)                     → validate a precomputed matrix
        from_coordinates(coords, executor=None) → compute all pairs once
    """

    def __init__(self, matrix: NDArray[np.float64]) -> None:
        self._matrix: NDArray[np.float64] = _read_only(matrix)

    # ── Factories ──────────────────────────────────────────────────────────────

    @classmethod
    def from_matrix(cls, matrix: ArrayLike) -> "DistanceMatrix":
        """
        Wrap a precomputed distance matrix after validating it.

        The input is copied, so later edits to the caller's array do not
        leak into the DistanceMatrix.

        Raises:
            DimensionMismatchError: if a row's length differs from the row
                                    count (matrix is not square).
            ValueError:             if values are negative or not finite.
        """
        rows = matrix if isinstance(matrix, np.ndarray) else list(matrix)
        n_rows = len(rows)
        for row in rows:
            if np.ndim(row) != 1 or len(row) != n_rows:
                raise DimensionMismatchError(
                    n_rows,
                    len(row) if np.ndim(row) == 1 else -1,
                    f"Distance matrix must be square: {n_rows} row(s) but a row "
                    f"of shape {np.shape(row)}.",
                )

        array = np.array(rows, dtype=np.float64).reshape(n_rows, n_rows)
        if not np.all(np.isfinite(array)):
            raise ValueError("Distance matrix contains non-finite values.")
        if np.any(array < 0.0):
            raise ValueError("Distance matrix contains negative distances.")
        return cls(array)

    @classmethod
    def from_coordinates(
        cls,
        coordinates: Sequence[Coordinate],
        executor: Optional[Executor] = None,
    ) -> "DistanceMatrix":
        """
        Compute the distance between every pair of coordinates.

        Dimensionality is checked for every point up front, before any
        row is dispatched, so a mismatch surfaces as DimensionMismatchError
        and never as a WorkerFailureError from inside a partition.

        Args:
            coordinates: Points, all of the same dimension.
            executor:    Passed to parallel_for. None → default executor.

        Raises:
            DimensionMismatchError: if any point differs in dimension from
                                    the first one.
        """
        points: List[Coordinate] = [
            c if isinstance(c, Coordinate) else Coordinate(c) for c in coordinates
        ]
        n = len(points)
        if n:
            expected = points[0].dimension
            for point in points[1:]:
                if point.dimension != expected:
                    raise DimensionMismatchError(expected, point.dimension)

        stacked = (
            np.stack([p.values for p in points]) if n else np.zeros((0, 0))
        )
        matrix = np.zeros((n, n), dtype=np.float64)

        def fill_row(i: int) -> None:
            diff = stacked - stacked[i]
            matrix[i] = np.sqrt(np.einsum("ij,ij->i", diff, diff))

        parallel_for(0, n, fill_row, executor=executor)
        return cls(matrix)

    # ── Read access ────────────────────────────────────────────────────────────

    @property
    def matrix(self) -> NDArray[np.float64]:
        """Read-only view of the distances. Writing to it raises ValueError."""
        return self._matrix

    def get_matrix(self) -> NDArray[np.float64]:
        return self._matrix

    def copy(self) -> NDArray[np.float64]:
        """Independent, writable copy of the distances."""
        return self._matrix.copy()

    @property
    def size(self) -> int:
        """Number of points (rows)."""
        return int(self._matrix.shape[0])

    @property
    def shape(self) -> tuple[int, int]:
        return (self.size, self.size)

    def __len__(self) -> int:
        return self.size

    def __getitem__(self, key):
        return self._matrix[key]

    def __repr__(self) -> str:
        if self.size == 0:
            return "DistanceMatrix(size=0)"
        return (
            f"DistanceMatrix(size={self.size}, "
            f"max={self._matrix.max():.4f}, mean={self._matrix.mean():.4f})"
        )
