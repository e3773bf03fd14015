"""
aco_cluster/ant.py
──────────────────
One ant: builds one complete candidate clustering and scores it.

What does an ant do?
─────────────────────
An ant walks over every object and drops it into a cluster, picking the
cluster at random with probability proportional to the pheromone row of
that object:

    P(object i → cluster c) = τ[i][c] / Σ_k τ[i][k]

It is not always the most popular cluster. That stochasticity is what
lets 20 ants explore 20 slightly different clusterings per iteration.

Randomness without a shared generator
──────────────────────────────────────
An ant never touches a random generator. The colony draws one uniform
number u ∈ [0, 1) per (ant, object) on the orchestrating thread and hands
the ant its row of draws. Selection is then a pure function of
(pheromone row, u), so objects can be dispatched to any number of worker
threads and the outcome is identical to a sequential run.

Fitness
────────
Given its assignment, an ant computes:
    centers[c]  = mean of the objects it put into cluster c
    D           = Σ_i ‖x_i − centers[c_i]‖²     (intra-cluster dispersion)
    F           = 1 / (D + FITNESS_SMOOTHING)

Lower dispersion → higher F. With D = 0 (every object sits exactly on its
center) F reaches its maximum, 1 / FITNESS_SMOOTHING. Clusters the ant
left empty have no center and contribute nothing.
"""

from __future__ import annotations

from typing import Optional

import numpy as np
from numpy.typing import NDArray

from aco_cluster.pheromone import PheromoneInvariantError, PheromoneMatrix
from aco_parallel import Executor, parallel_for

# ── Sampling & fitness constants ───────────────────────────────────────────────

WEIGHT_FLOOR: float = 0.0
"""A pheromone row whose total is ≤ this is degenerate (all zero) and
sampling from it falls back to a uniform choice across clusters. Any
positive total, however small, is sampled proportionally: deposits scale
as 1 / (D + 1), so on large-valued data every deposit is tiny."""

FITNESS_SMOOTHING: float = 1.0
"""Additive term in the fitness denominator. Keeps F finite when the
dispersion is exactly 0 and fixes the maximum fitness at 1.0."""

MAX_FITNESS: float = 1.0 / FITNESS_SMOOTHING
"""Fitness of a clustering with zero dispersion."""


# ── Weighted categorical sampling ──────────────────────────────────────────────

def select_by_uniform(weights: NDArray[np.float64], u: float) -> int:
    """
    Pick an index with probability proportional to `weights`, given u.

    Roulette-wheel over the cumulative sum:

        weights = [0.1, 0.3, 0.0, 0.6]
        cumsum  = [0.1, 0.4, 0.4, 1.0]
        u = 0.42 → target = 0.42 × 1.0 → first cumsum > 0.42 → index 3

    searchsorted(side="right") skips zero-weight cells, so an index with
    zero weight is never returned while any weight is positive.

    Args:
        weights: 1-D non-negative, finite weights (need not sum to 1).
        u:       Uniform draw in [0, 1).

    Returns:
        Chosen index in [0, len(weights)).

    Raises:
        ValueError:              empty weights or u outside [0, 1).
        PheromoneInvariantError: negative or non-finite weights.
    """
    n = len(weights)
    if n == 0:
        raise ValueError("Cannot select from an empty weight vector")
    if not 0.0 <= u < 1.0:
        raise ValueError(f"Uniform draw must be in [0, 1), got {u}")

    total = float(np.sum(weights))
    if not np.isfinite(total) or np.any(weights < 0.0):
        raise PheromoneInvariantError(f"Invalid sampling weights: {weights!r}")

    if total <= WEIGHT_FLOOR:
        # Degenerate row: every cluster equally likely.
        return min(int(u * n), n - 1)

    cumsum = np.cumsum(weights)
    chosen = int(np.searchsorted(cumsum, u * total, side="right"))
    # Rounding can leave cumsum[-1] a hair below u × total.
    if chosen >= n:
        chosen = int(np.flatnonzero(weights > 0.0)[-1])
    return chosen


def weighted_choice(weights: NDArray[np.float64], rng) -> int:
    """
    Weighted categorical draw using a random source.

    Args:
        weights: See select_by_uniform().
        rng:     Anything with a .random() → float in [0, 1), e.g.
                 numpy.random.Generator or random.Random.
    """
    return select_by_uniform(weights, float(rng.random()))


# ── Ant agent ──────────────────────────────────────────────────────────────────

class AntAgent:
    """
    One candidate clustering plus its fitness.

    Lifecycle (one iteration):
        1. construct(matrix, uniforms)  → sample a cluster for every object.
        2. evaluate(data)               → compute centers, dispersion, F.
        3. Colony reads assignment / fitness, then discards or clear()s.

    Attributes:
        assignment : bool ndarray (n_objects, n_clusters). After
                     construct(), exactly one True per row.
        labels     : int ndarray (n_objects,). Cluster index per object,
                     -1 before construct().
        fitness    : float. F after evaluate(), 0.0 before.
        dispersion : float. D after evaluate(), inf before.
    """

    def __init__(self, n_objects: int, n_clusters: int) -> None:
        if n_objects < 1 or n_clusters < 1:
            raise ValueError(
                f"AntAgent requires n_objects≥1 and n_clusters≥1, "
                f"got n_objects={n_objects}, n_clusters={n_clusters}"
            )
        self._n_objects = n_objects
        self._n_clusters = n_clusters
        self.assignment: NDArray[np.bool_] = np.zeros((n_objects, n_clusters), dtype=bool)
        self.labels: NDArray[np.int64] = np.full(n_objects, -1, dtype=np.int64)
        self.fitness: float = 0.0
        self.dispersion: float = float("inf")

    def clear(self) -> None:
        """Reset to the unconstructed state so the ant can be reused."""
        self.assignment[:] = False
        self.labels[:] = -1
        self.fitness = 0.0
        self.dispersion = float("inf")

    # ── Construction ───────────────────────────────────────────────────────────

    def construct(
        self,
        matrix: PheromoneMatrix,
        uniforms: NDArray[np.float64],
        executor: Optional[Executor] = None,
    ) -> None:
        """
        Assign every object to one cluster by sampling its pheromone row.

        The object loop goes through parallel_for. Task i writes only row i
        of assignment and labels[i], so partitions never collide.

        Args:
            matrix:   Pheromone matrix (read-only during this call).
            uniforms: One draw in [0, 1) per object, shape (n_objects,).
            executor: Passed to parallel_for. None → default executor.

        Raises:
            ValueError: shape mismatch between ant, matrix and uniforms.
        """
        if matrix.shape != (self._n_objects, self._n_clusters):
            raise ValueError(
                f"Pheromone shape {matrix.shape} does not match ant shape "
                f"{(self._n_objects, self._n_clusters)}"
            )
        if len(uniforms) != self._n_objects:
            raise ValueError(
                f"Expected {self._n_objects} uniform draws, got {len(uniforms)}"
            )

        self.clear()
        rows = matrix.rows

        def place(i: int) -> None:
            cluster = select_by_uniform(rows[i], float(uniforms[i]))
            self.assignment[i, cluster] = True
            self.labels[i] = cluster

        parallel_for(0, self._n_objects, place, executor=executor)

    # ── Fitness ────────────────────────────────────────────────────────────────

    def evaluate(self, data: NDArray[np.float64]) -> float:
        """
        Compute cluster centers, dispersion D and fitness F.

        Args:
            data: Float array (n_objects, dimension).

        Returns:
            The fitness F (also stored on self.fitness).
        """
        if data.shape[0] != self._n_objects:
            raise ValueError(
                f"Data has {data.shape[0]} object(s), ant has {self._n_objects}"
            )
        if np.any(self.labels < 0):
            raise ValueError("AntAgent.evaluate() called before construct()")

        centers = self.cluster_centers(data)
        residual = data - centers[self.labels]
        self.dispersion = float(np.einsum("ij,ij->", residual, residual))
        self.fitness = 1.0 / (self.dispersion + FITNESS_SMOOTHING)
        return self.fitness

    def cluster_centers(self, data: NDArray[np.float64]) -> NDArray[np.float64]:
        """
        Mean of each cluster's members, shape (n_clusters, dimension).

        Empty clusters get a zero row; no object refers to them, so the
        value never enters the dispersion.
        """
        members = self.assignment.astype(np.float64)
        counts = members.sum(axis=0)
        sums = members.T @ data
        centers = np.zeros_like(sums)
        occupied = counts > 0
        centers[occupied] = sums[occupied] / counts[occupied, None]
        return centers

    def __repr__(self) -> str:
        return (
            f"AntAgent(objects={self._n_objects}, clusters={self._n_clusters}, "
            f"fitness={self.fitness:.6f})"
        )
