"""
aco_parallel — fork-join parallel loops over a bounded worker pool.

Public API:
    parallel_for              — task(i) for i in range(start, end, step)
    parallel_for_each         — task(item) for item in items[begin:end]
    WorkerFailureError        — raised after the join when a task failed
    SequentialExecutor        — zero-worker executor (pure sequential)
    ThreadPoolExecutorBackend — bounded thread-pool executor
    resolve_executor          — build an executor from a config name
    available_parallelism     — hardware threads usable by this process
    default_worker_count      — parallelism − 1, floored at 0

Usage:
    from aco_parallel import ThreadPoolExecutorBackend, parallel_for

    out = [0.0] * n
    with ThreadPoolExecutorBackend(3) as pool:
        parallel_for(0, n, lambda i: out.__setitem__(i, f(i)), executor=pool)
"""

from aco_parallel.executor import (
    Executor,
    SequentialExecutor,
    ThreadPoolExecutorBackend,
    available_parallelism,
    default_worker_count,
    get_default_executor,
    resolve_executor,
)
from aco_parallel.loops import (
    WorkerFailureError,
    parallel_for,
    parallel_for_each,
    partition,
)

__all__ = [
    "Executor",
    "SequentialExecutor",
    "ThreadPoolExecutorBackend",
    "WorkerFailureError",
    "available_parallelism",
    "default_worker_count",
    "get_default_executor",
    "parallel_for",
    "parallel_for_each",
    "partition",
    "resolve_executor",
]
