"""Column-tiled, thread-pooled matrix multiplication.

``Y = A @ B`` is split along the output columns into tiles of at most
``tile_n`` columns. Each tile is one task on a bounded thread pool; a task
owns its column slice of ``Y`` exclusively and only reads ``A`` and ``B``,
so tasks never race.

Every element is accumulated left to right over the reduction dimension,
starting from zero. The result therefore does not depend on the tiling or
on the number of workers.
"""

from __future__ import annotations

import logging
import os
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

import numpy as np

logger = logging.getLogger(__name__)


# =============================================================================
# Configuration
# =============================================================================


@dataclass(frozen=True, slots=True)
class KernelConfig:
    """Configuration for the matmul kernel.

    Attributes:
        max_workers: Upper bound on pool threads. 1 runs every tile inline.
        tile_n: Output columns per task.
    """

    max_workers: int = 4
    tile_n: int = 32

    def __post_init__(self) -> None:
        if self.max_workers <= 0:
            raise ValueError(f"max_workers must be positive, got {self.max_workers}")
        if self.tile_n <= 0:
            raise ValueError(f"tile_n must be positive, got {self.tile_n}")

    @classmethod
    def from_env(cls) -> KernelConfig:
        """Build a config from ``GRADFLOW_MATMUL_WORKERS`` / ``GRADFLOW_MATMUL_TILE_N``.

        Unset variables fall back to the defaults.
        """
        defaults = cls()
        return cls(
            max_workers=_env_int("GRADFLOW_MATMUL_WORKERS", defaults.max_workers),
            tile_n=_env_int("GRADFLOW_MATMUL_TILE_N", defaults.tile_n),
        )


DEFAULT_CONFIG = KernelConfig()


def _env_int(var: str, default: int) -> int:
    raw = os.environ.get(var, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{var} must be an integer, got {raw!r}") from None


# =============================================================================
# Tiling
# =============================================================================


def _ceil_div(a: int, b: int) -> int:
    return (a + b - 1) // b


def column_tiles(n: int, tile_n: int) -> list[tuple[int, int]]:
    """Half-open ``(start, stop)`` column ranges covering ``[0, n)``."""
    return [(t * tile_n, min((t + 1) * tile_n, n)) for t in range(_ceil_div(n, tile_n))]


# =============================================================================
# Kernel
# =============================================================================


def _tile_kernel(a: np.ndarray, b: np.ndarray, out: np.ndarray, start: int, stop: int) -> None:
    acc = out[:, start:stop]
    for j in range(a.shape[1]):
        acc += np.multiply.outer(a[:, j], b[j, start:stop])


def matmul(a: np.ndarray, b: np.ndarray, config: KernelConfig = DEFAULT_CONFIG) -> np.ndarray:
    """Multiply two rank-2 arrays.

    Args:
        a: Left operand, shape (M, K).
        b: Right operand, shape (K, N).
        config: Worker and tile limits.

    Returns:
        A new (M, N) array.

    Raises:
        ValueError: If the operands are not rank-2 or K differs.
    """
    if a.ndim != 2 or b.ndim != 2:
        raise ValueError(f"matmul expects rank-2 operands, got {a.shape} and {b.shape}")
    m, k1 = a.shape
    k2, n = b.shape
    if k1 != k2:
        raise ValueError(f"matmul K mismatch: {k1} != {k2}")

    out = np.zeros((m, n), dtype=np.result_type(a, b))
    tiles = column_tiles(n, config.tile_n)
    workers = min(config.max_workers, len(tiles))
    logger.debug("matmul (%d,%d)x(%d,%d): %d tiles on %d workers", m, k1, k2, n, len(tiles), workers)

    if workers <= 1:
        for start, stop in tiles:
            _tile_kernel(a, b, out, start, stop)
        return out

    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="gradflow-matmul") as pool:
        futures = [pool.submit(_tile_kernel, a, b, out, start, stop) for start, stop in tiles]
        for future in futures:
            future.result()
    return out
