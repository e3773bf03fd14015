"""
aco_cluster/colony.py
─────────────────────
The engine: ant-colony mean clustering over all iterations.

How a run works
────────────────
  INIT
    • Validate everything up front (InvalidParameterError before any work).
    • PheromoneMatrix(n_objects, n_clusters) filled with pheromone_init.
    • Best clustering: none yet.

  ITERATE (× iterations)
    a. Draw uniforms[ant, object] on this thread from the run's generator.
    b. Each ant samples a full assignment from the pheromone rows
       (object loop dispatched through aco_parallel.parallel_for).
    c. Fitness for all ants (ant loop dispatched through
       aco_parallel.parallel_for_each). Each ant writes only its own fields.
    d. Back on this thread: keep the fittest ant if it STRICTLY beats the
       stored best. Ties keep the earlier clustering, so a seeded run is
       reproducible to the bit.
    e. Evaporate τ ← max(τ × (1 − ρ), 0), then every ant reinforces the
       cells it used by Q × F.

  FINALIZE
    • Wrap the best assignment in a ClusteringResult.
    • Pheromone and ants go out of scope with the run.

iterations = 0
───────────────
One round of (a)–(d) from the untouched initial pheromone, with no update
in (e). The result is the best of `ant_count` draws from the initial
distribution, and iterations_run is 0.

Why all randomness lives on this thread
────────────────────────────────────────
numpy Generators are not safe to share between threads. Steps (b) and (c)
run on worker threads, so they consume pre-drawn numbers only. The draw
order is fixed (ants × objects, row-major per iteration), which makes the
result independent of the executor and of the pool size.
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from typing import List, Optional, Union

import numpy as np
from numpy.typing import ArrayLike, NDArray

from aco_cluster.ant import WEIGHT_FLOOR, AntAgent
from aco_cluster.models import (
    ClusteringData,
    ClusteringResult,
    InvalidParameterError,
    ParameterSupplier,
)
from aco_cluster.pheromone import PheromoneMatrix
from aco_parallel import Executor, parallel_for_each, resolve_executor

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _RunSettings:
    """Validated, plain-typed copy of the parameters for one run."""

    evaporation_rate: float
    pheromone_init: float
    iterations: int
    ant_count: int
    stagnation_limit: Optional[int]
    cluster_count: int


class AntClusteringMean:
    """
    Ant-colony mean clustering engine.

    Usage:
        engine = AntClusteringMean(ClusteringParams(iterations=30), seed=7)
        result = engine.process(data, cluster_count=3)
        result.get_clusters()       # [[0, 4, 5], [1, 2], [3, 6, 7]]

    After process():
        engine.last_run_ms → wall-clock duration of the last run.

    Randomness:
        seed → every process() call starts a fresh
               numpy.random.default_rng(seed), so the same engine returns
               the same result for the same input every time.
        rng  → an injected numpy.random.Generator, used as-is and advanced
               by each run (two engines given generators in the same state
               produce the same result).
        neither → fresh OS entropy per run.
    """

    def __init__(
        self,
        params: ParameterSupplier,
        *,
        executor: Optional[Executor] = None,
        n_workers: Optional[int] = None,
        rng: Optional[np.random.Generator] = None,
        seed: Optional[int] = None,
    ) -> None:
        """
        Args:
            params:    Read-only parameter supplier (e.g. ClusteringParams).
            executor:  Where parallel phases run. None → the engine builds
                       and owns a thread backend of `n_workers` workers.
            n_workers: Pool size for the owned backend. None → computed
                       once here from available_parallelism(). Ignored
                       when an executor is passed.
            rng:       Optional injected generator.
            seed:      Optional seed. Mutually exclusive with rng.

        Raises:
            ValueError: both rng and seed given, or n_workers < 0.
        """
        if rng is not None and seed is not None:
            raise ValueError("Pass either rng or seed, not both.")
        self._params = params
        self._owns_executor = executor is None
        self._executor: Executor = (
            executor if executor is not None else resolve_executor("threads", n_workers)
        )
        self._rng = rng
        self._seed = seed

        # Populated after process()
        self.last_run_ms: float = 0.0

    # ── Validation ─────────────────────────────────────────────────────────────

    def _validate(self, data: ClusteringData, cluster_count: int) -> _RunSettings:
        """
        Check every parameter before the run allocates anything.

        Raises:
            InvalidParameterError: the first violation found.
        """
        if isinstance(cluster_count, bool) or not isinstance(cluster_count, (int, np.integer)):
            raise InvalidParameterError(
                "cluster_count", cluster_count,
                f"cluster_count must be an integer, got {type(cluster_count).__name__}.",
            )
        if not 1 <= cluster_count <= data.count_data:
            raise InvalidParameterError(
                "cluster_count", cluster_count,
                f"cluster_count must be in [1, {data.count_data}] for "
                f"{data.count_data} object(s), got {cluster_count}.",
            )

        iterations = self._params.get_iterations()
        if isinstance(iterations, bool) or not isinstance(iterations, (int, np.integer)) or iterations < 0:
            raise InvalidParameterError(
                "iterations", iterations, f"iterations must be an integer ≥ 0, got {iterations!r}."
            )

        ant_count = self._params.get_ant_count()
        if isinstance(ant_count, bool) or not isinstance(ant_count, (int, np.integer)) or ant_count < 1:
            raise InvalidParameterError(
                "ant_count", ant_count, f"ant_count must be an integer ≥ 1, got {ant_count!r}."
            )

        rho = float(self._params.get_evaporation_rate())
        if not 0.0 < rho < 1.0:
            raise InvalidParameterError(
                "evaporation_rate", rho, f"evaporation_rate must be in (0, 1), got {rho}."
            )

        tau0 = float(self._params.get_pheromone_init())
        if not math.isfinite(tau0) or tau0 < 0.0:
            raise InvalidParameterError(
                "pheromone_init", tau0, f"pheromone_init must be finite and ≥ 0, got {tau0}."
            )

        stagnation_limit = getattr(self._params, "stagnation_limit", None)
        if stagnation_limit is not None and stagnation_limit < 1:
            raise InvalidParameterError(
                "stagnation_limit", stagnation_limit,
                f"stagnation_limit must be ≥ 1 or None, got {stagnation_limit}.",
            )

        return _RunSettings(
            evaporation_rate=rho,
            pheromone_init=tau0,
            iterations=int(iterations),
            ant_count=int(ant_count),
            stagnation_limit=stagnation_limit,
            cluster_count=int(cluster_count),
        )

    def _run_rng(self) -> np.random.Generator:
        if self._rng is not None:
            return self._rng
        return np.random.default_rng(self._seed)

    # ── One round ──────────────────────────────────────────────────────────────

    def _build_ants(
        self,
        ants: List[AntAgent],
        matrix: PheromoneMatrix,
        data: NDArray[np.float64],
        rng: np.random.Generator,
    ) -> None:
        """Steps (a)–(c): draw, construct and score every ant."""
        uniforms = rng.random((len(ants), matrix.n_objects))

        for ant, draws in zip(ants, uniforms):
            ant.construct(matrix, draws, executor=self._executor)

        parallel_for_each(ants, lambda ant: ant.evaluate(data), executor=self._executor)

    # ── Main loop ──────────────────────────────────────────────────────────────

    def process(
        self,
        input_data: Union[ClusteringData, ArrayLike],
        cluster_count: int,
    ) -> ClusteringResult:
        """
        Cluster `input_data` into `cluster_count` groups.

        Args:
            input_data:    ClusteringData, or anything ClusteringData()
                           accepts (nested lists, 2-D ndarray, Coordinates).
            cluster_count: K, with 1 ≤ K ≤ number of objects.

        Returns:
            ClusteringResult holding the fittest clustering seen in any round.

        Raises:
            InvalidParameterError:   bad K, iterations, ant count, ρ, τ₀, or data.
            DimensionMismatchError:  ragged input rows.
            WorkerFailureError:      a parallel phase failed.
            PheromoneInvariantError: pheromone became non-finite.
        """
        data = input_data if isinstance(input_data, ClusteringData) else ClusteringData(input_data)
        settings = self._validate(data, cluster_count)

        start = time.perf_counter()
        n_objects = data.count_data
        rng = self._run_rng()

        matrix = PheromoneMatrix(n_objects, settings.cluster_count, settings.pheromone_init)
        ants = [AntAgent(n_objects, settings.cluster_count) for _ in range(settings.ant_count)]

        # Track the globally best clustering across all rounds
        best_assignment: Optional[NDArray[np.bool_]] = None
        best_fitness: float = -math.inf
        history: List[float] = []
        stagnation = 0
        iterations_run = 0

        for iteration in range(max(settings.iterations, 1)):
            degenerate_rows = int(
                np.count_nonzero(matrix.rows.sum(axis=1) <= WEIGHT_FLOOR)
            )

            self._build_ants(ants, matrix, data.data, rng)

            # Merge: strict improvement only, earliest ant wins ties
            improved = False
            for ant in ants:
                if ant.fitness > best_fitness:
                    best_fitness = ant.fitness
                    best_assignment = ant.assignment.copy()
                    improved = True

            if settings.iterations == 0:
                break

            # Evaporate BEFORE reinforcement (decay always precedes deposit)
            matrix.evaporate(settings.evaporation_rate)
            for ant in ants:
                matrix.reinforce(ant.assignment, ant.fitness)
            matrix.check_invariants()

            iterations_run += 1
            history.append(best_fitness)
            stagnation = 0 if improved else stagnation + 1

            logger.debug(
                "Iteration %d/%d: best F=%.6g, round best F=%.6g, degenerate rows=%d",
                iteration + 1, settings.iterations, best_fitness,
                max(a.fitness for a in ants), degenerate_rows,
            )

            if settings.stagnation_limit is not None and stagnation >= settings.stagnation_limit:
                logger.debug(
                    "Stopping after %d iteration(s): no improvement for %d round(s)",
                    iterations_run, stagnation,
                )
                break

        self.last_run_ms = (time.perf_counter() - start) * 1000.0

        # ant_count ≥ 1 and every round scores every ant, so this holds.
        assert best_assignment is not None

        result = ClusteringResult(
            clusters=best_assignment,
            fitness=best_fitness,
            iterations_run=iterations_run,
            fitness_history=tuple(history),
        )
        logger.info(
            "Clustered %d object(s) into %d cluster(s): %d iteration(s), "
            "best F=%.6g, %.2f ms",
            n_objects, settings.cluster_count, iterations_run, best_fitness,
            self.last_run_ms,
        )
        return result

    # ── Lifecycle ──────────────────────────────────────────────────────────────

    @property
    def executor(self) -> Executor:
        return self._executor

    def close(self) -> None:
        """Shut down the executor if this engine built it. Injected ones are left alone."""
        if self._owns_executor:
            self._executor.shutdown()

    def __enter__(self) -> "AntClusteringMean":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def __repr__(self) -> str:
        return (
            f"AntClusteringMean(executor={self._executor!r}, "
            f"last_run_ms={self.last_run_ms:.2f})"
        )
