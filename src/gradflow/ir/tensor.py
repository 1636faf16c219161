from __future__ import annotations

from typing import Iterable, Sequence, Union

import numpy as np

from .dtypes import DType, float64
from .errors import InvalidArgumentError, OutOfRangeError


Shape = tuple[int, ...]
Index = Union[int, Sequence[int]]


class Tensor:
	"""A dense, row-major numeric buffer tagged with a shape.

	The graph only relies on a small contract: ``shape``, ``at``/``set``,
	``capacity`` and ``transpose``. Ops do their arithmetic on ``array`` (the
	backing ndarray) and hand the graph fresh tensors.

	Flat indices follow row-major strides: the stride of dimension ``i`` is the
	product of every dimension after ``i``.
	"""

	__slots__ = ("array", "dtype")

	def __init__(self, data: object, dtype: DType = float64, *, copy: bool = True) -> None:
		if copy:
			arr = np.array(data, dtype=dtype.numpy)
		else:
			arr = np.asarray(data, dtype=dtype.numpy)
		self.array: np.ndarray = arr
		self.dtype = dtype

	@classmethod
	def full(cls, shape: Iterable[int], value: float, dtype: DType = float64) -> Tensor:
		return cls(np.full(as_shape(shape), value, dtype=dtype.numpy), dtype, copy=False)

	@classmethod
	def zeros(cls, shape: Iterable[int], dtype: DType = float64) -> Tensor:
		return cls.full(shape, 0.0, dtype)

	@classmethod
	def ones(cls, shape: Iterable[int], dtype: DType = float64) -> Tensor:
		return cls.full(shape, 1.0, dtype)

	@property
	def shape(self) -> Shape:
		return tuple(int(d) for d in self.array.shape)

	@property
	def rank(self) -> int:
		return self.array.ndim

	@property
	def capacity(self) -> int:
		n = 1
		for dim in self.shape:
			n *= dim
		return n

	@property
	def strides(self) -> Shape:
		return strides_of(self.shape)

	def same_shape(self, other: Tensor) -> bool:
		return self.shape == other.shape

	def at(self, index: Index) -> float:
		return self.array[self._resolve(index)].item()

	def set(self, index: Index, value: float) -> None:
		self.array[self._resolve(index)] = value

	def transpose(self) -> Tensor:
		if self.rank != 2:
			raise InvalidArgumentError(f"transpose requires a rank-2 tensor, got shape {self.shape}")
		return Tensor(self.array.T, self.dtype)

	def reshape(self, shape: Iterable[int]) -> Tensor:
		new_shape = as_shape(shape)
		n = 1
		for dim in new_shape:
			n *= dim
		if n != self.capacity:
			raise InvalidArgumentError(
				f"cannot reshape {self.shape} (capacity {self.capacity}) into {new_shape} (capacity {n})"
			)
		return Tensor(self.array.reshape(new_shape), self.dtype)

	def copy(self) -> Tensor:
		return Tensor(self.array, self.dtype)

	def tolist(self) -> list:
		return self.array.tolist()

	def __array__(self, dtype=None, copy=None) -> np.ndarray:
		if dtype is None:
			return self.array.copy() if copy else self.array
		return self.array.astype(dtype, copy=bool(copy))

	def _resolve(self, index: Index) -> Shape:
		"""Turn a flat or multi-index into a validated multi-index."""
		if _is_integral(index):
			flat = int(index)  # type: ignore[arg-type]
			if flat < 0 or flat >= self.capacity:
				raise OutOfRangeError(f"flat index {flat} outside capacity {self.capacity}")
			multi = []
			for stride in self.strides:
				q, flat = divmod(flat, stride)
				multi.append(q)
			return tuple(multi)

		try:
			idx = tuple(index)  # type: ignore[arg-type]
		except TypeError:
			raise InvalidArgumentError(f"malformed index {index!r}") from None
		if len(idx) != self.rank:
			raise InvalidArgumentError(f"index {idx} has {len(idx)} components, tensor has rank {self.rank}")
		for axis, (i, dim) in enumerate(zip(idx, self.shape)):
			if not _is_integral(i):
				raise InvalidArgumentError(f"index component {i!r} on axis {axis} is not an integer")
			if i < 0 or i >= dim:
				raise OutOfRangeError(f"index {i} out of range for axis {axis} of size {dim}")
		return tuple(int(i) for i in idx)

	def __repr__(self) -> str:  # pragma: no cover
		return f"Tensor(shape={self.shape}, dtype={self.dtype})"


def as_shape(dims: Iterable[int]) -> Shape:
	return tuple(int(d) for d in dims)


def strides_of(shape: Shape) -> Shape:
	"""Row-major element strides for ``shape``."""
	strides = [1] * len(shape)
	for i in range(len(shape) - 2, -1, -1):
		strides[i] = strides[i + 1] * shape[i + 1]
	return tuple(strides)


def _is_integral(value: object) -> bool:
	return isinstance(value, (int, np.integer)) and not isinstance(value, (bool, np.bool_))
