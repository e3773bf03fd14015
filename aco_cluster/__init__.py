"""
aco_cluster — ant-colony mean clustering.

Public API:
    AntClusteringMean       — the engine: process(data, cluster_count)
    ClusteringParams        — evaporation rate, pheromone init, iterations, ants
    ClusteringData          — objects × features input
    ClusteringResult        — best clustering found (bool membership rows)
    Coordinate              — immutable point
    DistanceMatrix          — read-only pairwise distances
    InvalidParameterError   — bad cluster count / parameters / data
    DimensionMismatchError  — points of different dimensionality combined
    PheromoneInvariantError — pheromone became non-finite

Usage:
    from aco_cluster import AntClusteringMean, ClusteringParams

    engine = AntClusteringMean(ClusteringParams(iterations=40), seed=1)
    result = engine.process([[0, 0], [0, 0], [10, 10]], cluster_count=2)
    result.get_clusters()    # [[0, 1], [2]] or [[2], [0, 1]]
"""

from aco_cluster.ant import AntAgent, select_by_uniform, weighted_choice
from aco_cluster.colony import AntClusteringMean
from aco_cluster.distance import Coordinate, DimensionMismatchError, DistanceMatrix
from aco_cluster.models import (
    ClusteringData,
    ClusteringParams,
    ClusteringResult,
    InvalidParameterError,
    ParameterSupplier,
)
from aco_cluster.pheromone import PheromoneInvariantError, PheromoneMatrix

__all__ = [
    "AntAgent",
    "AntClusteringMean",
    "ClusteringData",
    "ClusteringParams",
    "ClusteringResult",
    "Coordinate",
    "DimensionMismatchError",
    "DistanceMatrix",
    "InvalidParameterError",
    "ParameterSupplier",
    "PheromoneInvariantError",
    "PheromoneMatrix",
    "select_by_uniform",
    "weighted_choice",
]
