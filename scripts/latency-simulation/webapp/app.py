"""
Flask web application for the sharded vector search latency simulator.

Exposes a ``/api/simulate`` endpoint that builds a single-index simulation
from the request body and delegates to ``vss_latency.Simulation.explain_find``.
"""

from __future__ import annotations

import sys
from pathlib import Path

# Allow importing the simulator modules from the parent directory.
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from flask import Flask, jsonify, request
from loguru import logger

import vss_timing as vt
from vss_index import ShardedIndex
from vss_latency import (
    BENCHMARK_COST_PER_ELEMENT,
    DEFAULT_THREAD_COUNT,
    SimulationBuilder,
)

app = Flask(__name__)

# Index id used for the single index built per request.
REQUEST_INDEX_ID = 0


def _duration(data: dict, key: str, default: vt.Duration) -> vt.Duration:
    """Read a cost from the request: a string like "200us" or seconds."""
    value = data.get(key)
    if value is None:
        return default
    if isinstance(value, str):
        return vt.parse_duration(value)
    return vt.as_duration(value)


@app.route("/api/units")
def units():
    """List the time unit suffixes accepted by ``/api/simulate``."""
    return jsonify({
        "units": [
            {"name": unit.name.lower(), "suffix": unit.suffix, "seconds": unit.scale}
            for unit in vt.TimeUnit
        ],
    })


@app.route("/api/simulate", methods=["POST"])
def simulate():
    """Simulate one query and return the latency breakdown as JSON."""
    data = request.get_json(force=True)

    try:
        shards = data["shards"]
        if not isinstance(shards, list):
            raise TypeError(
                "shards must be a list of vector counts, "
                f"got {type(shards).__name__}"
            )
        index = ShardedIndex.from_shards(
            REQUEST_INDEX_ID,
            [int(count) for count in shards],
            int(data["dimensions"]),
        )
        simulation = (
            SimulationBuilder()
            .with_index(index)
            .with_search_cost(
                _duration(data, "cost_per_element", BENCHMARK_COST_PER_ELEMENT),
                _duration(data, "cost_per_vector", vt.ZERO),
            )
            .with_scatter_gather_cost(
                _duration(data, "cost_per_scatter", vt.ZERO),
                _duration(data, "cost_per_gather", vt.ZERO),
            )
            .with_threads(
                int(data.get("threads", DEFAULT_THREAD_COUNT)),
                _duration(data, "thread_overhead", vt.ZERO),
            )
            .build()
        )
    except (ValueError, TypeError, KeyError) as exc:
        logger.info(f"Rejected simulation request: {exc!r}")
        return jsonify({"error": str(exc)}), 400

    index = simulation.index(REQUEST_INDEX_ID)
    result = simulation.explain_find(REQUEST_INDEX_ID)
    total = result.total

    return jsonify({
        "index": {
            "num_shards": index.shard_count(),
            "num_vectors": index.num_vectors,
            "dimensions": index.vector_length,
            "weight": index.weight(),
        },
        "threads": simulation.thread_count,
        "latency": {
            "search_seconds": result.search.total_seconds(),
            "scatter_seconds": result.scatter.total_seconds(),
            "gather_seconds": result.gather.total_seconds(),
            "total_seconds": total.total_seconds(),
            "total_ms": round(total.to(vt.TimeUnit.MILLISECONDS).value, 6),
            "critical_shard_id": result.critical_shard_id,
        },
        "summary": f"{total.to(vt.TimeUnit.MILLISECONDS).value:.3f} ms "
                   f"across {result.shard_count} shards",
    })


if __name__ == "__main__":
    app.run(host="127.0.0.1", port=5050)
