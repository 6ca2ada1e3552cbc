#!/usr/bin/env python3
"""
Random parameter sweep over sharded index layouts
=================================================

Simulates a fixed catalogue of index layouts under randomly sampled cost
coefficients and writes one CSV row per (run, index).  Within each
dimension group (784, 1536 and 384) the catalogue splits one total workload
evenly into 1 to 40 shards; the 784-dimension group adds a skewed layout of
19 million vectors.  A handful of tiny indices cover the case where
scatter/gather dominates.

Usage::

    python3 latency_sweep.py --runs 1000 --seed 7 --output sweep.csv

Sampled parameters (per run)
----------------------------
- **thread_count** - uniform integer in ``[1, 32)``.
- **cost_per_vector** - uniform in ``[0, 50)`` ns.
- **cost_per_scatter** / **cost_per_gather** - uniform in ``[0, 100)`` ms.
- **thread_overhead** - uniform in ``[0, 100)`` µs.

The per-element cost is fixed for the whole sweep (default 0.171326754 ns).

CSV columns
-----------
``row, run, num_shards, num_threads, num_dims, num_vectors, weight,
cost_per_vector, cost_per_scatter, cost_per_gather, thread_overhead,
duration, total_duration``

Costs are written in the unit they were sampled in (ns, ms, ms, µs).
``duration`` is the simulated latency of the row's index in seconds and
``total_duration`` the running sum of ``duration`` within the run.
"""

from __future__ import annotations

import argparse
import csv
import random
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Iterator, Sequence, TextIO

from loguru import logger

from vss_index import ShardedIndex
from vss_latency import BENCHMARK_COST_PER_ELEMENT, Simulation, SimulationBuilder
from vss_logging import DEFAULT_LOG_LEVEL, LOG_LEVELS, configure_logging
from vss_timing import (
    ZERO,
    Duration,
    microseconds,
    milliseconds,
    nanoseconds,
    parse_duration,
)


# ---------------------------------------------------------------------------
# Sweep bounds
# ---------------------------------------------------------------------------

DEFAULT_RUNS = 1_000
MIN_THREADS = 1
MAX_THREADS = 32  # exclusive
MAX_COST_PER_VECTOR_NS = 50.0
MAX_COST_PER_SCATTER_MS = 100.0
MAX_COST_PER_GATHER_MS = 100.0
MAX_THREAD_OVERHEAD_US = 100.0

CSV_COLUMNS = (
    "row",
    "run",
    "num_shards",
    "num_threads",
    "num_dims",
    "num_vectors",
    "weight",
    "cost_per_vector",
    "cost_per_scatter",
    "cost_per_gather",
    "thread_overhead",
    "duration",
    "total_duration",
)


# ---------------------------------------------------------------------------
# Index layouts
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class IndexLayout:
    """Shard sizes and dimensionality of one index in the catalogue."""
    index_id: int
    vector_counts: tuple[int, ...]
    vector_length: int

    def build(self) -> ShardedIndex:
        return ShardedIndex.from_shards(
            self.index_id, self.vector_counts, self.vector_length,
        )


DEFAULT_LAYOUTS: tuple[IndexLayout, ...] = (
    IndexLayout(0, (20_000_000,), 784),
    IndexLayout(1, (10_000_000,) * 2, 784),
    IndexLayout(2, (5_000_000,) * 4, 784),
    IndexLayout(3, (2_000_000,) * 10, 784),
    IndexLayout(4, (1_000_000,) * 20, 784),
    IndexLayout(5, (15_000_000, 2_500_000, 1_000_000, 500_000), 784),
    # Double the vector, half the elements
    IndexLayout(6, (10_000_000,), 1536),
    IndexLayout(7, (5_000_000,) * 2, 1536),
    IndexLayout(8, (2_000_000,) * 5, 1536),
    IndexLayout(9, (1_000_000,) * 10, 1536),
    # Half the vector, double the elements
    IndexLayout(10, (40_000_000,), 384),
    IndexLayout(11, (20_000_000,) * 2, 384),
    IndexLayout(12, (10_000_000,) * 4, 384),
    IndexLayout(13, (2_000_000,) * 20, 384),
    IndexLayout(14, (1_000_000,) * 40, 384),
    # Small workload
    IndexLayout(15, (100,), 786),
    IndexLayout(16, (50,) * 2, 786),
    IndexLayout(17, (20,) * 5, 786),
    IndexLayout(18, (10,) * 10, 786),
)


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

@dataclass
class SweepConfig:
    """Parameters of one sweep.

    Parameters
    ----------
    runs : int
        Number of random cost samples.  Min: 1, Default: 1 000.
    seed : int | None
        Seed for the random generator; ``None`` draws a fresh seed.
    cost_per_element : Duration
        Fixed per-element scan cost.  Default: 0.171326754 ns.
    layouts : tuple[IndexLayout, ...]
        Index catalogue to simulate.  Must not be empty and index ids must be
        unique.
    """
    runs: int = DEFAULT_RUNS
    seed: int | None = None
    cost_per_element: Duration = BENCHMARK_COST_PER_ELEMENT
    layouts: tuple[IndexLayout, ...] = DEFAULT_LAYOUTS

    def __post_init__(self) -> None:
        if self.runs < 1:
            raise ValueError(f"runs must be at least 1, got {self.runs}")
        if self.cost_per_element < ZERO:
            raise ValueError("cost_per_element must not be negative")
        if not self.layouts:
            raise ValueError("at least one index layout is required")
        ids = [layout.index_id for layout in self.layouts]
        if len(set(ids)) != len(ids):
            raise ValueError("index layouts must have unique index ids")


@dataclass(frozen=True)
class SweepCosts:
    """Cost coefficients sampled for one run, in their sampling units."""
    thread_count: int
    cost_per_vector: Duration
    cost_per_scatter: Duration
    cost_per_gather: Duration
    thread_overhead: Duration


@dataclass(frozen=True)
class SweepRow:
    """One CSV row: the simulated latency of one index in one run."""
    row: int
    run: int
    num_shards: int
    num_threads: int
    num_dims: int
    num_vectors: int
    weight: int
    cost_per_vector: float
    cost_per_scatter: float
    cost_per_gather: float
    thread_overhead: float
    duration: float
    total_duration: float

    def as_csv_row(self) -> list:
        return [getattr(self, column) for column in CSV_COLUMNS]


# ---------------------------------------------------------------------------
# Sweep
# ---------------------------------------------------------------------------

def sample_costs(rng: random.Random) -> SweepCosts:
    """Draw one set of cost coefficients within the sweep bounds."""
    return SweepCosts(
        thread_count=rng.randrange(MIN_THREADS, MAX_THREADS),
        cost_per_vector=nanoseconds(rng.random() * MAX_COST_PER_VECTOR_NS),
        cost_per_scatter=milliseconds(rng.random() * MAX_COST_PER_SCATTER_MS),
        cost_per_gather=milliseconds(rng.random() * MAX_COST_PER_GATHER_MS),
        thread_overhead=microseconds(rng.random() * MAX_THREAD_OVERHEAD_US),
    )


def build_simulation(
    layouts: Iterable[IndexLayout],
    costs: SweepCosts,
    cost_per_element: Duration = BENCHMARK_COST_PER_ELEMENT,
) -> Simulation:
    builder = SimulationBuilder()
    for layout in layouts:
        builder.with_index(layout.build())
    return (
        builder
        .with_search_cost(cost_per_element, costs.cost_per_vector)
        .with_scatter_gather_cost(costs.cost_per_scatter, costs.cost_per_gather)
        .with_threads(costs.thread_count, costs.thread_overhead)
        .build()
    )


def run_sweep(config: SweepConfig) -> Iterator[SweepRow]:
    """Simulate every layout for ``config.runs`` random cost samples."""
    rng = random.Random(config.seed)
    row_id = 0
    for run in range(config.runs):
        costs = sample_costs(rng)
        simulation = build_simulation(
            config.layouts, costs, config.cost_per_element,
        )
        logger.info(
            f"Run {run}: {costs.thread_count} threads, "
            f"{costs.cost_per_vector}/vector, "
            f"scatter {costs.cost_per_scatter}, gather {costs.cost_per_gather}, "
            f"overhead {costs.thread_overhead}"
        )

        total_duration = 0.0
        for index_id in simulation.index_ids():
            row_id += 1
            index = simulation.index(index_id)
            duration = simulation.simulate_find(index_id).total_seconds()
            total_duration += duration
            yield SweepRow(
                row=row_id,
                run=run,
                num_shards=index.shard_count(),
                num_threads=simulation.thread_count,
                num_dims=index.vector_length,
                num_vectors=index.num_vectors,
                weight=index.weight(),
                cost_per_vector=costs.cost_per_vector.value,
                cost_per_scatter=costs.cost_per_scatter.value,
                cost_per_gather=costs.cost_per_gather.value,
                thread_overhead=costs.thread_overhead.value,
                duration=duration,
                total_duration=total_duration,
            )


def write_report(rows: Iterable[SweepRow], stream: TextIO) -> int:
    """Write *rows* as CSV (with header) to *stream*; return the row count."""
    writer = csv.writer(stream, lineterminator="\n")
    writer.writerow(CSV_COLUMNS)
    count = 0
    for row in rows:
        writer.writerow(row.as_csv_row())
        count += 1
    return count


# ---------------------------------------------------------------------------
# Command line
# ---------------------------------------------------------------------------

def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Sweep random cost coefficients over sharded index "
                    "layouts and report simulated query latency as CSV.",
    )
    parser.add_argument(
        "--runs", type=int, default=DEFAULT_RUNS,
        help=f"number of random cost samples (default: {DEFAULT_RUNS})",
    )
    parser.add_argument(
        "--seed", type=int, default=None,
        help="random seed for a reproducible sweep",
    )
    parser.add_argument(
        "--per-element-cost", type=parse_duration,
        default=BENCHMARK_COST_PER_ELEMENT,
        help="scan cost per vector element, e.g. 0.17ns "
             f"(default: {BENCHMARK_COST_PER_ELEMENT})",
    )
    parser.add_argument(
        "--output", type=Path, default=None,
        help="CSV file to write (default: stdout)",
    )
    parser.add_argument(
        "--log-level", default=DEFAULT_LOG_LEVEL, type=str.upper,
        choices=LOG_LEVELS,
        help=f"stderr log level (default: {DEFAULT_LOG_LEVEL})",
    )
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    configure_logging(args.log_level)

    try:
        config = SweepConfig(
            runs=args.runs,
            seed=args.seed,
            cost_per_element=args.per_element_cost,
        )
    except ValueError as exc:
        logger.error(str(exc))
        return 2

    rows = run_sweep(config)
    if args.output is None:
        count = write_report(rows, sys.stdout)
    else:
        with args.output.open("w", newline="", encoding="utf-8") as handle:
            count = write_report(rows, handle)
    logger.info(f"Wrote {count} rows")
    return 0


if __name__ == "__main__":
    sys.exit(main())
