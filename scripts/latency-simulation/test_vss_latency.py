"""
Unit tests for the scatter-gather latency simulation.

Tests cover:
- Builder defaults, validation and cost normalisation
- The closed-form cost model (serial, threaded, max over shards)
- Latency breakdowns and determinism
- Reference layouts used in benchmarks
"""

from __future__ import annotations

import unittest

import vss_latency as vl
from vss_index import ShardedIndex
from vss_timing import TimeUnit, microseconds, milliseconds, nanoseconds


def _serial_latency(counts, dims, element, vector, scatter, gather) -> float:
    """Reference formula for a single-threaded simulation, in seconds."""
    per_vector = element * dims + vector
    search = max(per_vector * count for count in counts)
    return search + scatter * len(counts) + gather * len(counts)


class TestSimulationBuilder(unittest.TestCase):
    """Tests for vl.SimulationBuilder."""

    def test_defaults(self) -> None:
        simulation = vl.SimulationBuilder().build()
        self.assertEqual(simulation.thread_count, vl.DEFAULT_THREAD_COUNT)
        self.assertEqual(simulation.thread_overhead.total_seconds(), 0.0)
        self.assertEqual(simulation.cost_per_scatter.total_seconds(), 0.0)
        self.assertEqual(simulation.index_ids(), [])

    def test_costs_normalised_to_seconds(self) -> None:
        simulation = (
            vl.SimulationBuilder()
            .with_search_cost(nanoseconds(0.5), microseconds(2.0))
            .with_scatter_gather_cost(milliseconds(3.0), 0.004)
            .with_threads(2, microseconds(10.0))
            .build()
        )
        for cost, expected in (
            (simulation.cost_per_element, 0.5e-9),
            (simulation.cost_per_vector, 2e-6),
            (simulation.cost_per_scatter, 3e-3),
            (simulation.cost_per_gather, 4e-3),
            (simulation.thread_overhead, 10e-6),
        ):
            self.assertIs(cost.unit, TimeUnit.SECONDS)
            self.assertAlmostEqual(cost.value, expected, places=15)

    def test_zero_threads_rejected(self) -> None:
        with self.assertRaises(ValueError):
            vl.SimulationBuilder().with_threads(0, microseconds(1.0))

    def test_zero_threads_rejected_on_direct_construction(self) -> None:
        with self.assertRaises(ValueError):
            vl.Simulation(indexes={}, thread_count=0)

    def test_duplicate_index_overwrites(self) -> None:
        simulation = (
            vl.SimulationBuilder()
            .with_index(ShardedIndex.from_shards(0, [1], 4))
            .with_index(ShardedIndex.from_shards(0, [5, 5], 4))
            .build()
        )
        self.assertEqual(simulation.index_ids(), [0])
        self.assertEqual(simulation.index(0).shard_count(), 2)

    def test_index_ids_sorted(self) -> None:
        builder = vl.SimulationBuilder()
        for index_id in (5, 1, 3):
            builder.with_index(ShardedIndex(index_id, 10, 8))
        self.assertEqual(builder.build().index_ids(), [1, 3, 5])

    def test_indexes_read_only(self) -> None:
        simulation = vl.SimulationBuilder().with_index(ShardedIndex(0, 1, 1)).build()
        with self.assertRaises(TypeError):
            simulation.indexes[1] = ShardedIndex(1, 1, 1)

    def test_builder_changes_do_not_leak_into_simulation(self) -> None:
        builder = vl.SimulationBuilder().with_index(ShardedIndex(0, 1, 1))
        simulation = builder.build()
        builder.with_index(ShardedIndex(1, 1, 1))
        self.assertEqual(simulation.index_ids(), [0])

    def test_simulations_do_not_share_indexes(self) -> None:
        builder = (
            vl.SimulationBuilder()
            .with_index(ShardedIndex(0, 100, 1))
            .with_search_cost(0.0, 1.0)
        )
        first = builder.build()
        second = builder.build()
        new_id = first.index(0).create_empty_shard()
        first.index(0).move_vectors(1, new_id, 60)
        self.assertAlmostEqual(first.simulate_find(0).total_seconds(), 60.0)
        self.assertAlmostEqual(second.simulate_find(0).total_seconds(), 100.0)

    def test_caller_index_is_copied(self) -> None:
        index = ShardedIndex(0, 100, 1)
        simulation = (
            vl.SimulationBuilder()
            .with_index(index)
            .with_search_cost(0.0, 1.0)
            .build()
        )
        index.move_vectors(1, index.create_empty_shard(), 100)
        self.assertIsNot(simulation.index(0), index)
        self.assertEqual(simulation.index(0).shard_count(), 1)
        self.assertAlmostEqual(simulation.simulate_find(0).total_seconds(), 100.0)

    def test_non_integer_threads_rejected(self) -> None:
        for thread_count in (True, 2.5, "4"):
            with self.subTest(thread_count=thread_count):
                with self.assertRaises(TypeError):
                    vl.SimulationBuilder().with_threads(thread_count, 0.0)
                with self.assertRaises(TypeError):
                    vl.Simulation(indexes={}, thread_count=thread_count)


class TestSimulateFind(unittest.TestCase):
    """Tests for vl.Simulation.simulate_find."""

    def test_single_shard_fixed_cost(self) -> None:
        simulation = (
            vl.SimulationBuilder()
            .with_index(ShardedIndex.from_shards(0, [100], 512))
            .with_search_cost(nanoseconds(0.0), nanoseconds(1.0))
            .with_scatter_gather_cost(0.0, 0.0)
            .with_threads(1, 0.0)
            .build()
        )
        duration = simulation.simulate_find(0)
        self.assertIs(duration.unit, TimeUnit.SECONDS)
        self.assertAlmostEqual(duration.total_seconds(), 100e-9, places=18)

    def test_serial_formula(self) -> None:
        counts, dims = [50, 75, 20], 512
        simulation = (
            vl.SimulationBuilder()
            .with_index(ShardedIndex.from_shards(0, counts, dims))
            .with_search_cost(nanoseconds(1.0), nanoseconds(2.0))
            .with_scatter_gather_cost(milliseconds(1.0), milliseconds(2.0))
            .build()
        )
        expected = _serial_latency(counts, dims, 1e-9, 2e-9, 1e-3, 2e-3)
        self.assertAlmostEqual(
            simulation.simulate_find(0).total_seconds(), expected, places=12,
        )

    def test_threads_divide_work_and_add_overhead(self) -> None:
        simulation = (
            vl.SimulationBuilder()
            .with_index(ShardedIndex.from_shards(0, [1_000], 1))
            .with_search_cost(0.0, microseconds(1.0))
            .with_threads(4, microseconds(10.0))
            .build()
        )
        # 1000 µs / 4 threads + 4 * 10 µs
        self.assertAlmostEqual(
            simulation.simulate_find(0).total_seconds(), 290e-6, places=12,
        )

    def test_search_is_slowest_shard_not_sum(self) -> None:
        simulation = (
            vl.SimulationBuilder()
            .with_index(ShardedIndex.from_shards(0, [10, 30, 20], 1))
            .with_search_cost(0.0, 1.0)
            .build()
        )
        self.assertAlmostEqual(simulation.simulate_find(0).total_seconds(), 30.0)

    def test_scatter_gather_scale_with_shards(self) -> None:
        one = ShardedIndex.from_shards(0, [0], 8)
        four = ShardedIndex.from_shards(1, [0] * 4, 8)
        simulation = (
            vl.SimulationBuilder()
            .with_index(one)
            .with_index(four)
            .with_scatter_gather_cost(milliseconds(5.0), milliseconds(1.0))
            .build()
        )
        self.assertAlmostEqual(simulation.simulate_find(0).total_seconds(), 6e-3)
        self.assertAlmostEqual(simulation.simulate_find(1).total_seconds(), 24e-3)

    def test_empty_index_pays_only_overheads(self) -> None:
        simulation = (
            vl.SimulationBuilder()
            .with_index(ShardedIndex.from_shards(0, [], 128))
            .with_search_cost(nanoseconds(1.0), nanoseconds(1.0))
            .with_scatter_gather_cost(microseconds(1.0), microseconds(2.0))
            .with_threads(2, microseconds(5.0))
            .build()
        )
        # One root shard: 2 threads * 5 µs overhead + 1 µs + 2 µs.
        self.assertAlmostEqual(
            simulation.simulate_find(0).total_seconds(), 13e-6, places=12,
        )

    def test_deterministic(self) -> None:
        simulation = (
            vl.SimulationBuilder()
            .with_index(ShardedIndex.from_shards(0, [15_000_000, 2_500_000, 1_000_000], 784))
            .with_search_cost(vl.BENCHMARK_COST_PER_ELEMENT, nanoseconds(10.0))
            .with_scatter_gather_cost(microseconds(200.0), microseconds(200.0))
            .with_threads(8, microseconds(3.0))
            .build()
        )
        first = simulation.simulate_find(0)
        second = simulation.simulate_find(0)
        self.assertEqual(first.total_seconds(), second.total_seconds())

    def test_reflects_current_shard_contents(self) -> None:
        index = ShardedIndex(0, 100, 1)
        simulation = (
            vl.SimulationBuilder()
            .with_index(index)
            .with_search_cost(0.0, 1.0)
            .build()
        )
        self.assertAlmostEqual(simulation.simulate_find(0).total_seconds(), 100.0)
        new_id = simulation.index(0).create_empty_shard()
        simulation.index(0).move_vectors(1, new_id, 40)
        self.assertAlmostEqual(simulation.simulate_find(0).total_seconds(), 60.0)

    def test_missing_index(self) -> None:
        simulation = vl.SimulationBuilder().with_index(ShardedIndex(0, 1, 1)).build()
        with self.assertRaises(vl.IndexNotFoundError) as ctx:
            simulation.simulate_find(1)
        self.assertEqual(ctx.exception.index_id, 1)
        with self.assertRaises(LookupError):
            simulation.index(1)


class TestExplainFind(unittest.TestCase):
    """Tests for vl.Simulation.explain_find."""

    def setUp(self) -> None:
        self.simulation = (
            vl.SimulationBuilder()
            .with_index(ShardedIndex.from_shards(0, [50, 75], 512))
            .with_index(ShardedIndex.from_shards(1, [10, 10], 512))
            .with_search_cost(nanoseconds(0.2), nanoseconds(10.0))
            .with_scatter_gather_cost(microseconds(200.0), microseconds(100.0))
            .build()
        )

    def test_breakdown(self) -> None:
        result = self.simulation.explain_find(0)
        self.assertEqual(result.index_id, 0)
        self.assertEqual(result.shard_count, 2)
        self.assertEqual(result.critical_shard_id, 2)
        self.assertAlmostEqual(result.scatter.total_seconds(), 400e-6, places=12)
        self.assertAlmostEqual(result.gather.total_seconds(), 200e-6, places=12)
        self.assertAlmostEqual(
            result.search.total_seconds(), 75 * (0.2e-9 * 512 + 10e-9), places=15,
        )

    def test_total_matches_simulate_find(self) -> None:
        for index_id in self.simulation.index_ids():
            self.assertEqual(
                self.simulation.explain_find(index_id).total.total_seconds(),
                self.simulation.simulate_find(index_id).total_seconds(),
            )

    def test_ties_go_to_lowest_shard(self) -> None:
        self.assertEqual(self.simulation.explain_find(1).critical_shard_id, 1)


class TestReferenceLayouts(unittest.TestCase):
    """Same workload split into more shards at benchmark costs."""

    def test_more_shards_faster_search_slower_overheads(self) -> None:
        layouts = [[20_000_000], [10_000_000] * 2, [5_000_000] * 4, [1_000_000] * 20]
        builder = (
            vl.SimulationBuilder()
            .with_search_cost(vl.BENCHMARK_COST_PER_ELEMENT, nanoseconds(10.0))
            .with_scatter_gather_cost(milliseconds(20.0), milliseconds(0.0))
        )
        for index_id, counts in enumerate(layouts):
            builder.with_index(ShardedIndex.from_shards(index_id, counts, 768))
        simulation = builder.build()

        results = [simulation.explain_find(i) for i in simulation.index_ids()]
        for before, after in zip(results, results[1:]):
            self.assertGreater(before.search, after.search)
            self.assertLess(before.scatter, after.scatter)


if __name__ == "__main__":
    unittest.main()
