"""
Scatter-gather query latency simulation
=======================================

Predicts how long a single nearest-neighbour query takes against a sharded
vector index.  The query is scattered to every shard, each shard scans its
vectors (optionally split across worker threads) and the partial results are
gathered back.

Cost model
----------
For every shard of the queried index::

    per_vector    = cost_per_element * vector_length + cost_per_vector
    shard_search  = per_vector * num_vectors
    threaded      = shard_search / thread_count + thread_overhead * thread_count

The shards are searched in parallel, so the search phase lasts as long as the
slowest shard.  Scatter and gather are paid once per shard::

    latency = max(threaded) + shard_count * (cost_per_scatter + cost_per_gather)

All coefficients are normalised to seconds when the simulation is built; the
result is a :class:`~vss_timing.Duration` in seconds.

Reference coefficients
----------------------
- 0.171326754 ns per element: 2.85 million 2048-dimensional vectors scored
  per second per core with AVX2 (``1 / (2.85e6 * 2048)`` s).
- 200 µs scatter / gather: ballpark for a unary gRPC call on a single host.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping

from loguru import logger

from vss_index import ShardedIndex
from vss_timing import ZERO, Duration, as_duration, nanoseconds


# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

DEFAULT_THREAD_COUNT = 1
MIN_THREAD_COUNT = 1

BENCHMARK_COST_PER_ELEMENT = nanoseconds(0.171326754)


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class IndexNotFoundError(LookupError):
    """The simulation has no index registered under the requested id."""

    def __init__(self, index_id: int) -> None:
        super().__init__(f"index {index_id} is not part of the simulation")
        self.index_id = index_id


# ---------------------------------------------------------------------------
# Result
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class QueryLatency:
    """Breakdown of one simulated query, all durations in seconds."""
    index_id: int
    shard_count: int
    search: Duration
    scatter: Duration
    gather: Duration
    critical_shard_id: int

    @property
    def total(self) -> Duration:
        return self.search + self.scatter + self.gather


# ---------------------------------------------------------------------------
# Simulation
# ---------------------------------------------------------------------------

def _validate_thread_count(thread_count: int) -> None:
    if isinstance(thread_count, bool) or not isinstance(thread_count, int):
        raise TypeError(
            f"thread_count must be an int, got {type(thread_count).__name__}"
        )
    if thread_count < MIN_THREAD_COUNT:
        raise ValueError(
            f"thread_count must be at least {MIN_THREAD_COUNT}, "
            f"got {thread_count}"
        )


@dataclass(frozen=True)
class Simulation:
    """An immutable set of indices and the cost coefficients to query them.

    Build instances with :class:`SimulationBuilder`.  Every index is copied on
    construction, so a simulation never shares a registry with the caller or
    with another simulation.  Changes made through :meth:`index` only affect
    this simulation.
    """
    indexes: Mapping[int, ShardedIndex]
    cost_per_element: Duration = ZERO
    cost_per_vector: Duration = ZERO
    cost_per_scatter: Duration = ZERO
    cost_per_gather: Duration = ZERO
    thread_count: int = DEFAULT_THREAD_COUNT
    thread_overhead: Duration = ZERO

    def __post_init__(self) -> None:
        _validate_thread_count(self.thread_count)
        object.__setattr__(
            self, "indexes", MappingProxyType({
                index_id: copy.deepcopy(index)
                for index_id, index in self.indexes.items()
            }),
        )
        for name in (
            "cost_per_element",
            "cost_per_vector",
            "cost_per_scatter",
            "cost_per_gather",
            "thread_overhead",
        ):
            object.__setattr__(
                self, name, as_duration(getattr(self, name)).as_seconds(),
            )

    def index_ids(self) -> list[int]:
        """Identifiers of all registered indices in ascending order."""
        return sorted(self.indexes)

    def index(self, index_id: int) -> ShardedIndex:
        try:
            return self.indexes[index_id]
        except KeyError:
            raise IndexNotFoundError(index_id) from None

    def explain_find(self, index_id: int) -> QueryLatency:
        """Simulate a query against *index_id* and return the full breakdown.

        Raises
        ------
        IndexNotFoundError
            If no index with this id was registered.
        """
        index = self.index(index_id)

        search_time = ZERO
        scatter_time = ZERO
        gather_time = ZERO
        critical_shard_id = 0
        threading_cost = self.thread_overhead * self.thread_count

        for shard in index:
            scatter_time += self.cost_per_scatter
            gather_time += self.cost_per_gather

            per_vector = (
                self.cost_per_element * shard.vector_length
                + self.cost_per_vector
            )
            base_search_time = per_vector * shard.num_vectors
            threaded_search_time = (
                base_search_time / self.thread_count + threading_cost
            )

            # Ties go to the lowest shard id.
            if threaded_search_time > search_time or (
                threaded_search_time == search_time
                and (critical_shard_id == 0 or shard.shard_id < critical_shard_id)
            ):
                search_time = threaded_search_time
                critical_shard_id = shard.shard_id

        result = QueryLatency(
            index_id=index_id,
            shard_count=index.shard_count(),
            search=search_time,
            scatter=scatter_time,
            gather=gather_time,
            critical_shard_id=critical_shard_id,
        )
        logger.debug(
            f"Simulated find on index {index_id}: {result.shard_count} shards, "
            f"search {search_time}, scatter {scatter_time}, "
            f"gather {gather_time}"
        )
        return result

    def simulate_find(self, index_id: int) -> Duration:
        """Predicted latency of one query against *index_id*, in seconds.

        Raises
        ------
        IndexNotFoundError
            If no index with this id was registered.
        """
        return self.explain_find(index_id).total


# ---------------------------------------------------------------------------
# Builder
# ---------------------------------------------------------------------------

@dataclass
class SimulationBuilder:
    """Accumulates indices and cost coefficients for a :class:`Simulation`.

    Every ``with_*`` method returns the builder so calls can be chained::

        simulation = (
            SimulationBuilder()
            .with_index(ShardedIndex.from_shards(0, [10_000_000] * 2, 768))
            .with_search_cost(nanoseconds(0.17), nanoseconds(10))
            .with_scatter_gather_cost(microseconds(200), microseconds(200))
            .with_threads(4, microseconds(10))
            .build()
        )

    Costs may be given as a :class:`~vss_timing.Duration` in any unit or as a
    plain number of seconds.
    """
    indexes: dict[int, ShardedIndex] = field(default_factory=dict)
    cost_per_element: Duration = ZERO
    cost_per_vector: Duration = ZERO
    cost_per_scatter: Duration = ZERO
    cost_per_gather: Duration = ZERO
    thread_count: int = DEFAULT_THREAD_COUNT
    thread_overhead: Duration = ZERO

    def with_index(self, index: ShardedIndex) -> SimulationBuilder:
        """Register *index*, replacing any index with the same id."""
        if index.index_id in self.indexes:
            logger.warning(
                f"Replacing previously registered index {index.index_id}"
            )
        self.indexes[index.index_id] = index
        return self

    def with_search_cost(
        self,
        per_element: Duration | float,
        per_vector: Duration | float,
    ) -> SimulationBuilder:
        self.cost_per_element = as_duration(per_element).as_seconds()
        self.cost_per_vector = as_duration(per_vector).as_seconds()
        return self

    def with_scatter_gather_cost(
        self,
        scatter: Duration | float,
        gather: Duration | float,
    ) -> SimulationBuilder:
        self.cost_per_scatter = as_duration(scatter).as_seconds()
        self.cost_per_gather = as_duration(gather).as_seconds()
        return self

    def with_threads(
        self,
        thread_count: int,
        overhead: Duration | float,
    ) -> SimulationBuilder:
        """Split each shard scan across *thread_count* workers.

        Raises
        ------
        TypeError
            If *thread_count* is not an int.
        ValueError
            If *thread_count* is below 1.
        """
        _validate_thread_count(thread_count)
        self.thread_count = thread_count
        self.thread_overhead = as_duration(overhead).as_seconds()
        return self

    def build(self) -> Simulation:
        return Simulation(
            indexes=self.indexes,
            cost_per_element=self.cost_per_element,
            cost_per_vector=self.cost_per_vector,
            cost_per_scatter=self.cost_per_scatter,
            cost_per_gather=self.cost_per_gather,
            thread_count=self.thread_count,
            thread_overhead=self.thread_overhead,
        )
