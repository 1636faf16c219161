#!/usr/bin/env python3
"""
Threaded matmul kernel benchmark.

Times the column-tiled kernel across worker counts and tile widths, and
checks every configuration against numpy.

Usage:
    python benchmarks/matmul_kernel.py

Output:
    - Average time per call for each configuration
    - Throughput in GFLOP/s
    - Speedup relative to a single worker
"""

import sys
import time
from pathlib import Path

import numpy as np

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from gradflow.kernels import KernelConfig, matmul  # noqa: E402


# =============================================================================
# Configuration
# =============================================================================

M, K, N = 128, 128, 256
WARMUP_ITERS = 2
BENCH_ITERS = 10

WORKER_COUNTS = (1, 2, 4, 8)
TILE_WIDTHS = (16, 64)


def benchmark_config(config: KernelConfig, a: np.ndarray, b: np.ndarray, iters: int) -> float:
    """
    Benchmark one kernel configuration.

    Returns:
        Average seconds per call
    """
    for _ in range(WARMUP_ITERS):
        matmul(a, b, config)

    start = time.perf_counter()
    for _ in range(iters):
        matmul(a, b, config)
    return (time.perf_counter() - start) / iters


def verify_correctness(a: np.ndarray, b: np.ndarray) -> bool:
    """Every configuration must agree bit for bit; all must match numpy closely."""
    print("Verifying kernel correctness...")
    baseline = matmul(a, b, KernelConfig(max_workers=1, tile_n=N))
    ok = np.allclose(baseline, a @ b, rtol=1e-10, atol=1e-10)
    for workers in WORKER_COUNTS:
        for tile_n in TILE_WIDTHS:
            out = matmul(a, b, KernelConfig(max_workers=workers, tile_n=tile_n))
            ok = ok and np.array_equal(out, baseline)
    print("  ✓ Results match" if ok else "  ✗ Results differ")
    return ok


def main():
    """Run the benchmark suite."""
    print("=" * 60)
    print(f"Threaded Matmul Kernel Benchmark ({M}x{K} @ {K}x{N})")
    print("=" * 60)

    rng = np.random.default_rng(0)
    a = rng.normal(size=(M, K))
    b = rng.normal(size=(K, N))

    print()
    if not verify_correctness(a, b):
        print("\nAborting benchmark due to correctness failure.")
        sys.exit(1)

    flops = 2 * M * K * N
    print(f"\n{'workers':>8} {'tile_n':>8} {'ms/call':>10} {'GFLOP/s':>10} {'speedup':>8}")
    for tile_n in TILE_WIDTHS:
        single = None
        for workers in WORKER_COUNTS:
            seconds = benchmark_config(KernelConfig(max_workers=workers, tile_n=tile_n), a, b, BENCH_ITERS)
            single = single or seconds
            print(
                f"{workers:>8} {tile_n:>8} {seconds * 1000:>10.2f} "
                f"{flops / seconds / 1e9:>10.3f} {single / seconds:>7.2f}x"
            )

    print("\n" + "=" * 60)


if __name__ == "__main__":
    main()
