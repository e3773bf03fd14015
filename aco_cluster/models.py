"""
aco_cluster/models.py
─────────────────────
Data structures that cross the engine boundary.

Reading guide
-------------
Read top-to-bottom. Each model builds on the ones above it.

  InvalidParameterError → the one error every model and the engine share.
  ClusteringParams      → the four tuning knobs (pydantic, frozen).
  ParameterSupplier     → the read-only interface the engine consumes.
                          ClusteringParams satisfies it; so does any
                          caller object exposing the four get_* methods.
  ClusteringData        → objects × features input, read-only to the engine.
  ClusteringResult      → best clustering found, frozen once produced.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Protocol, Sequence, runtime_checkable

import numpy as np
from numpy.typing import ArrayLike, NDArray
from pydantic import BaseModel, ConfigDict, Field

from aco_cluster.distance import Coordinate, DimensionMismatchError


class InvalidParameterError(ValueError):
    """
    Raised when a run is requested with parameters that cannot work.

    Detected eagerly, before any iteration starts:
        • cluster_count outside [1, object_count]
        • negative iterations, non-positive ant count
        • evaporation rate outside (0, 1), negative pheromone init
        • empty or non-finite input data

    Attributes:
        name:  Name of the offending parameter.
        value: The rejected value.
    """

    def __init__(self, name: str, value: object, message: str = "") -> None:
        self.name = name
        self.value = value
        default_msg = f"Invalid parameter {name}={value!r}."
        super().__init__(message or default_msg)


# ─────────────────────────────────────────────────────────────────────────────
# SECTION 1: PARAMETERS
# ─────────────────────────────────────────────────────────────────────────────

DEFAULT_EVAPORATION_RATE: float = 0.9
"""ρ (rho): fraction of pheromone removed each iteration.

τ_new = τ_old × (1 − ρ) + reinforcement

A high ρ means each iteration's ants dominate the next iteration's
distribution; the colony follows its most recent good ants closely.
"""

DEFAULT_PHEROMONE_INIT: float = 0.1
"""Starting pheromone on every (object, cluster) cell. Equal everywhere,
so iteration 0 samples every object's cluster uniformly."""

DEFAULT_ITERATIONS: int = 50
"""Number of construct → evaluate → update rounds."""

DEFAULT_ANT_COUNT: int = 20
"""Number of ants (candidate clusterings) built per iteration."""


class ClusteringParams(BaseModel):
    """
    Tuning parameters for one clustering run.

    Frozen: the engine only ever reads parameters. Constraints are checked
    at construction (pydantic.ValidationError); the engine re-checks them
    through the ParameterSupplier interface, because callers may supply
    their own parameter object instead of this one.

    Fields:
        evaporation_rate → ρ in (0, 1).
        pheromone_init   → initial τ on every cell, ≥ 0.
        iterations       → rounds to run, ≥ 0. Zero means "sample once from
                           the initial pheromone and return the best ant".
        ant_count        → ants per round, ≥ 1.
        stagnation_limit → optional early stop: end the run after this many
                           consecutive rounds without strict improvement.
                           None (default) always runs every round.
    """

    model_config = ConfigDict(frozen=True)

    evaporation_rate: float = Field(
        DEFAULT_EVAPORATION_RATE, gt=0.0, lt=1.0,
        description="Fraction of pheromone removed each iteration",
    )
    pheromone_init: float = Field(
        DEFAULT_PHEROMONE_INIT, ge=0.0, allow_inf_nan=False,
        description="Initial pheromone on every (object, cluster) cell",
    )
    iterations: int = Field(
        DEFAULT_ITERATIONS, ge=0,
        description="Number of construct/evaluate/update rounds",
    )
    ant_count: int = Field(
        DEFAULT_ANT_COUNT, ge=1,
        description="Ants built per iteration",
    )
    stagnation_limit: Optional[int] = Field(
        None, ge=1,
        description="Stop after this many rounds without improvement",
    )

    def get_evaporation_rate(self) -> float:
        return self.evaporation_rate

    def get_pheromone_init(self) -> float:
        return self.pheromone_init

    def get_iterations(self) -> int:
        return self.iterations

    def get_ant_count(self) -> int:
        return self.ant_count


@runtime_checkable
class ParameterSupplier(Protocol):
    """Read-only parameter interface consumed by AntClusteringMean."""

    def get_evaporation_rate(self) -> float: ...

    def get_pheromone_init(self) -> float: ...

    def get_iterations(self) -> int: ...

    def get_ant_count(self) -> int: ...


# ─────────────────────────────────────────────────────────────────────────────
# SECTION 2: INPUT DATA
# ─────────────────────────────────────────────────────────────────────────────

class ClusteringData:
    """
    Objects × features matrix handed to the engine.

    The engine reads this from several worker threads at once, so the
    stored array is a private float64 copy with WRITEABLE cleared. The
    caller's own array is never modified or aliased.

    Construction:
        ClusteringData([[0, 0], [0, 1], [5, 5]])
        ClusteringData.from_coordinates([Coordinate([0, 0]), ...])
        ClusteringData.zeros(count_data=3, dimension=2)

    Raises:
        DimensionMismatchError: ragged rows (rows of differing length).
        InvalidParameterError:  no rows, or non-finite values.
    """

    def __init__(self, data: ArrayLike) -> None:
        if isinstance(data, ClusteringData):
            array = data.data.copy()
        else:
            rows = data if isinstance(data, np.ndarray) else list(data)
            if not isinstance(rows, np.ndarray) and rows:
                rows = [r.values if isinstance(r, Coordinate) else r for r in rows]
                expected = np.size(rows[0])
                for row in rows[1:]:
                    if np.size(row) != expected:
                        raise DimensionMismatchError(expected, int(np.size(row)))
            array = np.array(rows, dtype=np.float64)

        if array.ndim == 1 and array.size:
            array = array.reshape(-1, 1)
        if array.ndim != 2 or array.shape[0] == 0:
            raise InvalidParameterError(
                "input_data", f"shape {array.shape}",
                f"Clustering data must be a non-empty 2-D matrix, got shape {array.shape}.",
            )
        if not np.all(np.isfinite(array)):
            raise InvalidParameterError(
                "input_data", "non-finite",
                "Clustering data contains NaN or infinite values.",
            )
        array.flags.writeable = False
        self._data: NDArray[np.float64] = array

    @classmethod
    def from_coordinates(cls, coordinates: Sequence[Coordinate]) -> "ClusteringData":
        """
        Stack points into a data matrix.

        Raises:
            DimensionMismatchError: if the points differ in dimension.
        """
        points = [c if isinstance(c, Coordinate) else Coordinate(c) for c in coordinates]
        if points:
            expected = points[0].dimension
            for point in points[1:]:
                if point.dimension != expected:
                    raise DimensionMismatchError(expected, point.dimension)
        return cls([p.values for p in points])

    @classmethod
    def zeros(cls, count_data: int, dimension: int) -> "ClusteringData":
        """All-zero data set of the given size (mainly for tests and fixtures)."""
        return cls(np.zeros((count_data, dimension), dtype=np.float64))

    @property
    def data(self) -> NDArray[np.float64]:
        """Read-only float64 view, shape (count_data, dimension)."""
        return self._data

    @property
    def count_data(self) -> int:
        return int(self._data.shape[0])

    @property
    def dimension(self) -> int:
        return int(self._data.shape[1])

    def coordinates(self) -> List[Coordinate]:
        """Each row as a Coordinate."""
        return [Coordinate(row) for row in self._data]

    def __len__(self) -> int:
        return self.count_data

    def __repr__(self) -> str:
        return f"ClusteringData(count_data={self.count_data}, dimension={self.dimension})"


# ─────────────────────────────────────────────────────────────────────────────
# SECTION 3: RESULT
# ─────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ClusteringResult:
    """
    Best clustering found by one run. Immutable once produced.

    Fields:
        clusters        → bool array (count_data, cluster_count); row i has
                          exactly one True, in the column of object i's
                          cluster. Read-only.
        fitness         → fitness F of that clustering (higher is better).
        iterations_run  → rounds actually executed (≤ configured iterations
                          when early stopping is enabled).
        fitness_history → best-so-far fitness after each executed round.
    """

    clusters: NDArray[np.bool_]
    fitness: float
    iterations_run: int
    fitness_history: tuple = field(default_factory=tuple)

    def __post_init__(self) -> None:
        membership = np.array(self.clusters, dtype=bool)
        membership.flags.writeable = False
        object.__setattr__(self, "clusters", membership)
        object.__setattr__(self, "fitness_history", tuple(self.fitness_history))

    @property
    def labels(self) -> NDArray[np.int64]:
        """Cluster index of each object, shape (count_data,)."""
        return np.argmax(self.clusters, axis=1).astype(np.int64)

    @property
    def cluster_count(self) -> int:
        return int(self.clusters.shape[1])

    def get_clusters(self) -> List[List[int]]:
        """
        Object indices grouped by cluster.

        Only non-empty clusters are returned, in cluster order, each list
        ascending. E.g. labels [1, 1, 0] → [[2], [0, 1]].
        """
        groups: List[List[int]] = []
        for column in range(self.cluster_count):
            members = np.flatnonzero(self.clusters[:, column])
            if members.size:
                groups.append([int(i) for i in members])
        return groups

    def __repr__(self) -> str:
        return (
            f"ClusteringResult(count_data={self.clusters.shape[0]}, "
            f"clusters={self.cluster_count}, fitness={self.fitness:.6f}, "
            f"iterations_run={self.iterations_run})"
        )
