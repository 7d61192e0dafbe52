#!/usr/bin/env python3
"""Benchmark Board visibility and path finding.

Usage (from the repository root):
    python scripts/bench_board.py              # default: 3 iterations, 8x8 grid
    python scripts/bench_board.py -n 5         # 5 iterations
    python scripts/bench_board.py -g 12        # 12x12 obstacle grid
    python scripts/bench_board.py -q 200 -v    # 200 queries, debug logging
"""

import argparse
import logging
import math
import statistics
import sys
import time
from pathlib import Path

import numpy as np

# Add the repository root to path
SCRIPT_DIR = Path(__file__).resolve().parent
ROOT_DIR = SCRIPT_DIR.parent
sys.path.insert(0, str(ROOT_DIR))

from pathboard import Board, BoardParams, Polygon  # noqa: E402

CELL = 10.0


def make_obstacles(rng, grid):
    """One randomly rotated, randomly sized convex polygon per grid cell."""
    polygons = []
    for i in range(grid):
        for j in range(grid):
            sides = int(rng.integers(3, 8))
            radius = rng.uniform(0.15, 0.4) * CELL
            cx = (i + 0.5) * CELL + rng.uniform(-0.05, 0.05) * CELL
            cy = (j + 0.5) * CELL + rng.uniform(-0.05, 0.05) * CELL
            phase = rng.uniform(0, 2 * math.pi)
            polygons.append(
                Polygon(
                    [
                        (
                            cx + radius * math.cos(phase + 2 * math.pi * k / sides),
                            cy + radius * math.sin(phase + 2 * math.pi * k / sides),
                        )
                        for k in range(sides)
                    ]
                )
            )
    return polygons


def make_queries(rng, grid, count):
    # Query points on the grid lines, which never fall inside an obstacle
    size = grid * CELL
    pts = []
    for _ in range(count * 2):
        if rng.random() < 0.5:
            pts.append((float(rng.integers(0, grid + 1)) * CELL, rng.uniform(0, size)))
        else:
            pts.append((rng.uniform(0, size), float(rng.integers(0, grid + 1)) * CELL))
    return list(zip(pts[::2], pts[1::2]))


def run(polygons, queries, cache_size):
    board = Board(polygons, params=BoardParams(unowned_cache_size=cache_size))
    start = time.perf_counter()
    visible = sum(board.is_visible(a, b) for a, b in queries)
    vis_ms = (time.perf_counter() - start) * 1000

    start = time.perf_counter()
    found = sum(board.shortest_path(a, b) is not None for a, b in queries)
    path_ms = (time.perf_counter() - start) * 1000
    return vis_ms, path_ms, visible, found


def report(label, times_ms):
    print(f"{label}:")
    print(f"  Median: {statistics.median(times_ms):.1f} ms")
    print(f"  Mean:   {statistics.mean(times_ms):.1f} ms")
    if len(times_ms) > 1:
        print(f"  Stdev:  {statistics.stdev(times_ms):.1f} ms")


def main():
    parser = argparse.ArgumentParser(description="Benchmark Board queries")
    parser.add_argument(
        "-n",
        "--iterations",
        type=int,
        default=3,
        help="Number of iterations (default: 3)",
    )
    parser.add_argument(
        "-g",
        "--grid",
        type=int,
        default=8,
        help="Obstacles per side of the grid (default: 8)",
    )
    parser.add_argument(
        "-q",
        "--queries",
        type=int,
        default=50,
        help="Number of point pairs to query (default: 50)",
    )
    parser.add_argument(
        "--cache-size",
        type=int,
        default=BoardParams().unowned_cache_size,
        help="Unowned visibility cache size (default: %(default)s)",
    )
    parser.add_argument("--seed", type=int, default=42)
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable debug logging"
    )
    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s %(name)s %(levelname)s %(message)s",
        )

    rng = np.random.default_rng(args.seed)
    polygons = make_obstacles(rng, args.grid)
    queries = make_queries(rng, args.grid, args.queries)
    nodes = sum(len(p.nodes) for p in polygons)

    print(
        f"Benchmark: {len(polygons)} obstacles, {nodes} nodes, "
        f"{len(queries)} queries, seed={args.seed}"
    )
    print(f"Iterations: {args.iterations}")
    print()

    # Warmup (also fills each polygon's triangulation cache)
    print("Warmup...", end=" ", flush=True)
    run(polygons, queries, args.cache_size)
    print("done")

    vis_times = []
    path_times = []
    for i in range(args.iterations):
        vis_ms, path_ms, visible, found = run(polygons, queries, args.cache_size)
        vis_times.append(vis_ms)
        path_times.append(path_ms)
        print(
            f"  Run {i + 1}: visibility {vis_ms:.1f} ms, paths {path_ms:.1f} ms "
            f"({visible} visible, {found} paths)"
        )

    print()
    report("Visibility", vis_times)
    report("Paths", path_times)


if __name__ == "__main__":
    main()
