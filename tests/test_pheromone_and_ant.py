"""
tests/test_pheromone_and_ant.py
───────────────────────────────
Pheromone matrix, weighted sampling and the ant agent in isolation.

Reading guide
─────────────
Group 1 — PheromoneMatrix unit tests
    Initial state, evaporation, reinforcement, invariants.

Group 2 — Weighted categorical sampling
    select_by_uniform() / weighted_choice() as pure functions.

Group 3 — AntAgent construction and fitness
    One True per row, parallel-safe construction, fitness formula.
"""

from __future__ import annotations

import random

import numpy as np
import pytest

from aco_cluster.ant import (
    FITNESS_SMOOTHING,
    MAX_FITNESS,
    AntAgent,
    select_by_uniform,
    weighted_choice,
)
from aco_cluster.pheromone import (
    Q,
    PheromoneInvariantError,
    PheromoneMatrix,
)
from aco_parallel import SequentialExecutor, ThreadPoolExecutorBackend


# ─────────────────────────────────────────────────────────────────────────────
# HELPERS
# ─────────────────────────────────────────────────────────────────────────────

def _assignment(labels, n_clusters: int) -> np.ndarray:
    """Bool membership matrix from a label list."""
    out = np.zeros((len(labels), n_clusters), dtype=bool)
    out[np.arange(len(labels)), labels] = True
    return out


def _constructed_ant(matrix: PheromoneMatrix, seed: int = 0, executor=None) -> AntAgent:
    ant = AntAgent(*matrix.shape)
    draws = np.random.default_rng(seed).random(matrix.n_objects)
    ant.construct(matrix, draws, executor=executor or SequentialExecutor())
    return ant


# ─────────────────────────────────────────────────────────────────────────────
# GROUP 1 — PheromoneMatrix
# ─────────────────────────────────────────────────────────────────────────────

class TestPheromoneMatrix:
    """Verify the shared memory layer in complete isolation."""

    def test_initial_state(self):
        m = PheromoneMatrix(3, 5, initial=0.1)
        assert m.shape == (3, 5)
        assert m.n_objects == 3 and m.n_clusters == 5
        assert np.allclose(m.snapshot(), 0.1)

    def test_snapshot_is_deep_copy(self):
        m = PheromoneMatrix(2, 2, initial=1.0)
        snap = m.snapshot()
        snap[0, 0] = 999.0
        assert np.isclose(m.snapshot()[0, 0], 1.0)

    def test_rows_view_is_read_only(self):
        m = PheromoneMatrix(2, 2, initial=1.0)
        with pytest.raises(ValueError):
            m.rows[0, 0] = 5.0

    def test_evaporation_multiplies(self):
        m = PheromoneMatrix(3, 3, initial=2.0)
        m.evaporate(0.25)
        assert np.allclose(m.snapshot(), 1.5)

    @pytest.mark.parametrize("rate", [0.0, 1.0, -0.1, 1.5])
    def test_evaporation_rate_bounds(self, rate):
        with pytest.raises(ValueError):
            PheromoneMatrix(2, 2, initial=1.0).evaporate(rate)

    def test_reinforce_adds_q_times_fitness_to_used_cells(self):
        m = PheromoneMatrix(3, 2, initial=0.0)
        m.reinforce(_assignment([0, 1, 1], 2), fitness=0.5)
        expected = np.array([[0.5, 0.0], [0.0, 0.5], [0.0, 0.5]]) * Q
        assert np.allclose(m.snapshot(), expected)

    def test_reinforce_shape_mismatch(self):
        m = PheromoneMatrix(3, 2, initial=0.0)
        with pytest.raises(ValueError):
            m.reinforce(_assignment([0, 1], 2), fitness=0.5)

    @pytest.mark.parametrize("fitness", [float("nan"), float("inf"), -1.0])
    def test_reinforce_rejects_bad_fitness(self, fitness):
        m = PheromoneMatrix(2, 2, initial=1.0)
        with pytest.raises(PheromoneInvariantError):
            m.reinforce(_assignment([0, 1], 2), fitness=fitness)

    def test_deposit_single_cell_and_clamp(self):
        m = PheromoneMatrix(2, 3, initial=1.0)
        m.deposit(1, 2, 0.75)
        assert np.isclose(m.snapshot()[1, 2], 1.75)
        m.deposit(0, 0, -10.0)
        assert m.snapshot()[0, 0] == 0.0

    def test_deposit_rejects_nan(self):
        with pytest.raises(PheromoneInvariantError):
            PheromoneMatrix(1, 1, initial=1.0).deposit(0, 0, float("nan"))

    @pytest.mark.parametrize("rate", [0.01, 0.5, 0.99])
    def test_entries_stay_non_negative_over_many_cycles(self, rate):
        """Evaporate + reinforce cycles never produce a negative or NaN cell."""
        rng = np.random.default_rng(3)
        m = PheromoneMatrix(6, 3, initial=0.1)
        for _ in range(500):
            m.evaporate(rate)
            for _ in range(4):
                labels = rng.integers(0, 3, size=6)
                m.reinforce(_assignment(labels, 3), fitness=float(rng.random()))
            m.check_invariants()
        assert np.all(m.snapshot() >= 0.0)

    def test_invalid_construction(self):
        with pytest.raises(ValueError):
            PheromoneMatrix(0, 2, initial=1.0)
        with pytest.raises(ValueError):
            PheromoneMatrix(2, 0, initial=1.0)
        with pytest.raises(ValueError):
            PheromoneMatrix(2, 2, initial=-1.0)
        with pytest.raises(ValueError):
            PheromoneMatrix(2, 2, initial=float("inf"))

    def test_repr_contains_shape(self):
        r = repr(PheromoneMatrix(2, 3, initial=1.0))
        assert "n_objects=2" in r and "n_clusters=3" in r


# ─────────────────────────────────────────────────────────────────────────────
# GROUP 2 — Weighted sampling
# ─────────────────────────────────────────────────────────────────────────────

class TestWeightedSampling:
    """select_by_uniform(weights, u) is a pure roulette wheel."""

    def test_documented_example(self):
        assert select_by_uniform(np.array([0.1, 0.3, 0.0, 0.6]), 0.42) == 3

    def test_boundaries(self):
        w = np.array([1.0, 1.0])
        assert select_by_uniform(w, 0.0) == 0
        assert select_by_uniform(w, 0.4999) == 0
        assert select_by_uniform(w, 0.5) == 1
        assert select_by_uniform(w, 0.9999999) == 1

    def test_zero_weight_never_selected(self):
        w = np.array([0.0, 2.0, 0.0])
        for u in np.linspace(0.0, 0.999999, 101):
            assert select_by_uniform(w, float(u)) == 1

    def test_degenerate_row_falls_back_to_uniform(self):
        w = np.zeros(4)
        picks = [select_by_uniform(w, u) for u in (0.0, 0.26, 0.51, 0.76, 0.999)]
        assert picks == [0, 1, 2, 3, 3]

    def test_tiny_positive_total_still_proportional(self):
        """Only an all-zero row is degenerate; a small total is still a weight."""
        assert select_by_uniform(np.array([5e-13, 0.0]), 0.9) == 0
        assert select_by_uniform(np.array([1e-300, 0.0, 3e-300]), 0.5) == 2

    def test_tiny_deposits_keep_steering_sampling(self):
        """Large-valued data gives F ≈ 1e-15; those deposits must still guide picks."""
        matrix = PheromoneMatrix(3, 2, 0.0)
        assignment = np.zeros((3, 2), dtype=bool)
        assignment[:, 0] = True
        for _ in range(15):
            matrix.evaporate(0.9)
            matrix.reinforce(assignment, 1e-15)

        for row in matrix.rows:
            assert 0.0 < row.sum() < 1e-12
            for u in np.linspace(0.0, 0.999999, 51):
                assert select_by_uniform(row, float(u)) == 0

    def test_empirical_frequencies_follow_weights(self):
        w = np.array([1.0, 3.0, 6.0])
        rng = np.random.default_rng(11)
        picks = np.array([weighted_choice(w, rng) for _ in range(20_000)])
        freq = np.bincount(picks, minlength=3) / picks.size
        assert np.allclose(freq, w / w.sum(), atol=0.02)

    def test_weighted_choice_accepts_stdlib_random(self):
        assert weighted_choice(np.array([0.0, 1.0]), random.Random(1)) == 1

    @pytest.mark.parametrize("u", [-0.1, 1.0, 2.0])
    def test_uniform_out_of_range(self, u):
        with pytest.raises(ValueError):
            select_by_uniform(np.array([1.0]), u)

    def test_empty_weights(self):
        with pytest.raises(ValueError):
            select_by_uniform(np.array([]), 0.5)

    def test_negative_or_nan_weights(self):
        with pytest.raises(PheromoneInvariantError):
            select_by_uniform(np.array([1.0, -1.0]), 0.5)
        with pytest.raises(PheromoneInvariantError):
            select_by_uniform(np.array([1.0, np.nan]), 0.5)


# ─────────────────────────────────────────────────────────────────────────────
# GROUP 3 — AntAgent
# ─────────────────────────────────────────────────────────────────────────────

class TestAntAgent:
    """One candidate clustering: construction and fitness."""

    @pytest.mark.parametrize("workers", [0, 1, 4])
    def test_exactly_one_true_per_row(self, workers):
        m = PheromoneMatrix(200, 5, initial=0.1)
        with ThreadPoolExecutorBackend(workers) as pool:
            ant = _constructed_ant(m, seed=workers, executor=pool)
        assert np.all(ant.assignment.sum(axis=1) == 1)
        assert np.array_equal(np.argmax(ant.assignment, axis=1), ant.labels)

    def test_construction_independent_of_pool_size(self):
        m = PheromoneMatrix(300, 4, initial=0.1)
        m.reinforce(_assignment(np.arange(300) % 4, 4), fitness=0.3)
        sequential = _constructed_ant(m, seed=5)
        with ThreadPoolExecutorBackend(6) as pool:
            threaded = _constructed_ant(m, seed=5, executor=pool)
        assert np.array_equal(sequential.assignment, threaded.assignment)

    def test_reconstruct_clears_previous_assignment(self):
        m = PheromoneMatrix(10, 3, initial=0.1)
        ant = _constructed_ant(m, seed=1)
        ant.construct(m, np.random.default_rng(2).random(10), executor=SequentialExecutor())
        assert np.all(ant.assignment.sum(axis=1) == 1)

    def test_clear(self):
        ant = _constructed_ant(PheromoneMatrix(4, 2, initial=0.1))
        ant.evaluate(np.zeros((4, 1)))
        ant.clear()
        assert not ant.assignment.any()
        assert np.all(ant.labels == -1)
        assert ant.fitness == 0.0

    def test_strong_pheromone_dominates(self):
        m = PheromoneMatrix(50, 3, initial=0.0)
        m.reinforce(_assignment([2] * 50, 3), fitness=1.0)
        ant = _constructed_ant(m, seed=9)
        assert np.all(ant.labels == 2)

    def test_single_cluster_assigns_everything(self):
        ant = _constructed_ant(PheromoneMatrix(7, 1, initial=0.1))
        assert np.all(ant.assignment[:, 0])

    def test_construct_shape_checks(self):
        ant = AntAgent(3, 2)
        with pytest.raises(ValueError):
            ant.construct(PheromoneMatrix(4, 2, initial=1.0), np.zeros(4))
        with pytest.raises(ValueError):
            ant.construct(PheromoneMatrix(3, 2, initial=1.0), np.zeros(2))

    def test_fitness_formula(self):
        """Two clusters: {(0,0), (2,0)} center (1,0), {(10,10)} alone → D = 2."""
        data = np.array([[0.0, 0.0], [2.0, 0.0], [10.0, 10.0]])
        ant = AntAgent(3, 2)
        ant.assignment[:] = _assignment([0, 0, 1], 2)
        ant.labels[:] = [0, 0, 1]
        f = ant.evaluate(data)
        assert np.isclose(ant.dispersion, 2.0)
        assert np.isclose(f, 1.0 / (2.0 + FITNESS_SMOOTHING))

    def test_zero_dispersion_gives_max_fitness(self):
        data = np.array([[1.0, 1.0], [1.0, 1.0], [5.0, 5.0]])
        ant = AntAgent(3, 2)
        ant.assignment[:] = _assignment([1, 1, 0], 2)
        ant.labels[:] = [1, 1, 0]
        assert ant.evaluate(data) == MAX_FITNESS

    def test_empty_cluster_center_is_ignored(self):
        data = np.array([[0.0], [4.0]])
        ant = AntAgent(2, 3)
        ant.assignment[:] = _assignment([2, 2], 3)
        ant.labels[:] = [2, 2]
        centers = ant.cluster_centers(data)
        assert np.allclose(centers, [[0.0], [0.0], [2.0]])
        assert np.isclose(ant.evaluate(data), 1.0 / (8.0 + FITNESS_SMOOTHING))

    def test_evaluate_before_construct_raises(self):
        with pytest.raises(ValueError):
            AntAgent(2, 2).evaluate(np.zeros((2, 2)))

    def test_invalid_shape(self):
        with pytest.raises(ValueError):
            AntAgent(0, 2)
