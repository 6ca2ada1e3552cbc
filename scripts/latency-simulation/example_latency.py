#!/usr/bin/env python3
"""Print simulated query latency for the reference index layouts.

Uses the benchmark scan cost (0.171326754 ns per element, 10 ns per vector)
and a 200 µs scatter / gather round trip on a single thread.

Usage::

    python3 example_latency.py
"""

from latency_sweep import DEFAULT_LAYOUTS
from vss_latency import BENCHMARK_COST_PER_ELEMENT, SimulationBuilder
from vss_logging import configure_logging
from vss_timing import TimeUnit, microseconds, nanoseconds


def main() -> None:
    configure_logging()

    builder = SimulationBuilder()
    for layout in DEFAULT_LAYOUTS:
        builder.with_index(layout.build())
    simulation = (
        builder
        .with_search_cost(BENCHMARK_COST_PER_ELEMENT, nanoseconds(10.0))
        .with_scatter_gather_cost(microseconds(200.0), microseconds(200.0))
        .build()
    )

    print("=" * 72)
    print("  Sharded Vector Search — Simulated Query Latency")
    print("=" * 72)
    print()
    print(f"  {'Index':>5}  {'Shards':>6}  {'Dims':>5}  {'Vectors':>12}"
          f"  {'Weight':>15}  {'Latency':>12}")
    for index_id in simulation.index_ids():
        index = simulation.index(index_id)
        latency = simulation.simulate_find(index_id).to(TimeUnit.MILLISECONDS)
        print(f"  {index_id:>5}  {index.shard_count():>6}  "
              f"{index.vector_length:>5}  {index.num_vectors:>12,}  "
              f"{index.weight():>15,}  {latency.value:>9.3f} ms")
    print()


if __name__ == "__main__":
    main()
