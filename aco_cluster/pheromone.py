"""
aco_cluster/pheromone.py
────────────────────────
The pheromone matrix: the colony's shared, persistent memory.

What is pheromone here?
────────────────────────
  • "Path"   = putting object i into cluster c.
  • "Better" = a clustering with lower intra-cluster dispersion, i.e. a
               higher fitness F.
  • τ[i][c]  = learned affinity between object i and cluster c.

Two forces balance each other every iteration:
  1. Evaporation — τ ← τ × (1 − ρ). Old evidence fades, so an early
                   lucky clustering cannot lock the colony in.
  2. Reinforcement — for every ant, τ[i][c_i] += Q × F_ant, where c_i is
                   the cluster that ant chose for object i. Fitter ants
                   leave stronger trails.

Matrix layout
─────────────
  Shape : (n_objects, n_clusters)
  Row i is the (unnormalised) categorical distribution an ant samples
  from when it picks object i's cluster.

Invariants
───────────
  • every entry ≥ 0           (negative results are clamped to 0)
  • every entry finite         (checked after each update; a NaN or inf
                                would silently bias every later draw, so
                                it raises PheromoneInvariantError instead)
  • mutated only between parallel phases, by the orchestrating thread.
    Ants read rows concurrently; nothing writes while they do.

NumPy design choices
────────────────────
  • float64 throughout.
  • In-place updates (*=, +=, np.maximum(..., out=)) on the hot path.
  • .copy() only in snapshot().
"""

from __future__ import annotations

import numpy as np
from numpy.typing import NDArray

# ── Pheromone constants ────────────────────────────────────────────────────────

Q: float = 1.0
"""Reinforcement scale: one ant adds Q × F to each cell it used."""

TAU_FLOOR: float = 0.0
"""Lower bound after evaporation. Pheromone is never negative."""


class PheromoneInvariantError(RuntimeError):
    """
    Raised when the matrix would hold a non-finite value.

    Typically caused by a non-finite fitness or reinforcement amount.
    The run is aborted rather than continuing with a corrupted
    distribution.
    """


class PheromoneMatrix:
    """
    A 2D numpy array τ[n_objects][n_clusters] of pheromone levels.

    Used by:
        AntAgent.construct()    → reads get_row() / rows to sample clusters.
        AntClusteringMean       → calls evaporate() and reinforce() each
                                  iteration, between parallel phases.
        Tests                   → snapshot() to inspect state.

    Thread safety:
        Reads from many threads are safe while no update is running.
        evaporate(), deposit() and reinforce() are NOT thread-safe and are
        only called by the orchestrating thread.
    """

    def __init__(self, n_objects: int, n_clusters: int, initial: float) -> None:
        """
        Initialise every cell to `initial`.

        Args:
            n_objects:  Rows. Must be ≥ 1.
            n_clusters: Columns. Must be ≥ 1.
            initial:    Starting τ, finite and ≥ 0. With initial = 0 every
                        row is degenerate and ants fall back to uniform
                        sampling until the first reinforcement.

        Raises:
            ValueError: bad dimensions or a negative / non-finite initial.
        """
        if n_objects < 1 or n_clusters < 1:
            raise ValueError(
                f"PheromoneMatrix requires n_objects≥1 and n_clusters≥1, "
                f"got n_objects={n_objects}, n_clusters={n_clusters}"
            )
        if not np.isfinite(initial) or initial < 0.0:
            raise ValueError(
                f"PheromoneMatrix requires a finite initial≥0, got {initial}"
            )
        self._n_objects = n_objects
        self._n_clusters = n_clusters
        self._matrix: NDArray[np.float64] = np.full(
            (n_objects, n_clusters), float(initial), dtype=np.float64
        )

    # ── Core operations ────────────────────────────────────────────────────────

    def evaporate(self, rate: float) -> None:
        """
        τ ← max(τ × (1 − rate), 0), in place.

        Args:
            rate: ρ in (0, 1).

        Raises:
            ValueError: rate outside (0, 1).
        """
        if not 0.0 < rate < 1.0:
            raise ValueError(f"Evaporation rate must be in (0, 1), got {rate}")
        self._matrix *= (1.0 - rate)
        np.maximum(self._matrix, TAU_FLOOR, out=self._matrix)

    def deposit(self, object_idx: int, cluster_idx: int, amount: float) -> None:
        """
        Add `amount` to a single cell.

        A negative amount is clamped so the cell never drops below
        TAU_FLOOR.

        Raises:
            PheromoneInvariantError: amount is not finite.
        """
        if not np.isfinite(amount):
            raise PheromoneInvariantError(
                f"Non-finite deposit {amount!r} at cell [{object_idx}, {cluster_idx}]"
            )
        value = self._matrix[object_idx, cluster_idx] + amount
        self._matrix[object_idx, cluster_idx] = max(value, TAU_FLOOR)

    def reinforce(self, assignment: NDArray[np.bool_], fitness: float) -> None:
        """
        Add Q × fitness to every cell an ant used.

        Vectorised equivalent of calling deposit(i, c_i, Q × fitness) for
        each object i and the cluster c_i the ant assigned it to.

        Args:
            assignment: Bool array (n_objects, n_clusters), one True per row.
            fitness:    The ant's F, finite and ≥ 0.

        Raises:
            ValueError:              assignment has the wrong shape.
            PheromoneInvariantError: fitness is negative or not finite.
        """
        if assignment.shape != self.shape:
            raise ValueError(
                f"Assignment shape {assignment.shape} does not match "
                f"pheromone shape {self.shape}"
            )
        if not np.isfinite(fitness) or fitness < 0.0:
            raise PheromoneInvariantError(
                f"Reinforcement requires a finite fitness≥0, got {fitness!r}"
            )
        self._matrix += assignment * (Q * fitness)

    def check_invariants(self) -> None:
        """
        Raise PheromoneInvariantError unless every entry is finite and ≥ 0.
        """
        if not np.all(np.isfinite(self._matrix)):
            raise PheromoneInvariantError("Pheromone matrix contains NaN or inf")
        if np.any(self._matrix < TAU_FLOOR):
            raise PheromoneInvariantError(
                f"Pheromone matrix contains negative values (min={self._matrix.min()})"
            )

    def get_row(self, object_idx: int) -> NDArray[np.float64]:
        """
        Pheromone row for one object across all clusters.

        ⚠️ Returns a VIEW, not a copy. Callers must not modify it.
        """
        return self._matrix[object_idx]

    @property
    def rows(self) -> NDArray[np.float64]:
        """Whole matrix as a read-only view (for vectorised row access)."""
        view = self._matrix.view()
        view.flags.writeable = False
        return view

    # ── Inspection & testing ───────────────────────────────────────────────────

    def snapshot(self) -> NDArray[np.float64]:
        """Deep copy of the current state; safe to mutate."""
        return self._matrix.copy()

    # ── Properties ────────────────────────────────────────────────────────────

    @property
    def shape(self) -> tuple[int, int]:
        return (self._n_objects, self._n_clusters)

    @property
    def n_objects(self) -> int:
        return self._n_objects

    @property
    def n_clusters(self) -> int:
        return self._n_clusters

    def __repr__(self) -> str:
        return (
            f"PheromoneMatrix(n_objects={self._n_objects}, n_clusters={self._n_clusters}, "
            f"min={self._matrix.min():.4f}, max={self._matrix.max():.4f}, "
            f"mean={self._matrix.mean():.4f})"
        )
