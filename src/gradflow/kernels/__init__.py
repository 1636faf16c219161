"""Numeric kernels used by the built-in ops."""

from gradflow.kernels.tiled import DEFAULT_CONFIG, KernelConfig, column_tiles, matmul

__all__ = ["DEFAULT_CONFIG", "KernelConfig", "column_tiles", "matmul"]
