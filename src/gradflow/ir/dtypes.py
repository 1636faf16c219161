from __future__ import annotations

from dataclasses import dataclass

import numpy as np


@dataclass(frozen=True, slots=True)
class DType:
	"""Scalar dtype for graph tensors.

	Gradients are accumulated in the same dtype as the data, so float64 is the
	default; float32 is available for memory-bound experiments.
	"""

	name: str
	itemsize: int

	@property
	def numpy(self) -> np.dtype:
		return np.dtype(self.name)

	def __str__(self) -> str:  # pragma: no cover
		return self.name


float32 = DType("float32", 4)
float64 = DType("float64", 8)
