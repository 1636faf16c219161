from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Sequence

import numpy as np

from gradflow.ir.errors import InvalidArgumentError, UnsupportedError
from gradflow.ir.tensor import Tensor
from gradflow.ops.base import Op, require_rank

if TYPE_CHECKING:
    from gradflow.ir.variable import Variable


@dataclass(slots=True, eq=False)
class Padding(Op):
    """Prepend ``width`` constant columns to a rank-2 input.

    With the default single column of ones, ``pad(x) @ W`` folds the bias into
    row 0 of ``W``.
    """

    width: int = 1
    value: float = 1.0

    def __post_init__(self) -> None:
        if self.width < 0:
            raise InvalidArgumentError(f"Padding width must be >= 0, got {self.width}")

    def forward(self, inputs: Sequence[Variable]) -> None:
        self._check_arity(inputs)
        x = self._data(inputs[0])
        require_rank(self, x, 2, "input")
        rows = x.shape[0]
        pad = np.full((rows, self.width), self.value, dtype=x.array.dtype)
        self._emit(Tensor(np.concatenate([pad, x.array], axis=1), x.dtype, copy=False))

    def backward(self, inputs: Sequence[Variable], focus: Variable, gradient: Tensor) -> Tensor:
        self._check_arity(inputs)
        self._slots(inputs, focus)
        x = self._data(inputs[0])
        self._check_upstream(gradient, (x.shape[0], x.shape[1] + self.width))
        return Tensor(gradient.array[:, self.width:], gradient.dtype)


@dataclass(slots=True, eq=False)
class OneHot(Op):
    """Encode an (N, 1) column of class indices as an (N, size) matrix.

    Pre-processing only: there is no gradient through the encoding.
    """

    size: int = 2
    on_value: float = 1.0
    off_value: float = 0.0

    def __post_init__(self) -> None:
        if self.size <= 0:
            raise InvalidArgumentError(f"OneHot size must be positive, got {self.size}")

    def forward(self, inputs: Sequence[Variable]) -> None:
        self._check_arity(inputs)
        x = self._data(inputs[0])
        require_rank(self, x, 2, "input")
        if x.shape[1] != 1:
            raise InvalidArgumentError(f"OneHot expects a single column of indices, got shape {x.shape}")

        labels = x.array[:, 0]
        if not np.all(np.equal(np.floor(labels), labels)):
            raise InvalidArgumentError("OneHot: class indices must be integral")
        if labels.size and (labels.min() < 0 or labels.max() >= self.size):
            raise InvalidArgumentError(
                f"OneHot: class index outside [0, {self.size}): min={labels.min()}, max={labels.max()}"
            )

        out = np.full((x.shape[0], self.size), self.off_value, dtype=x.array.dtype)
        out[np.arange(x.shape[0]), labels.astype(np.intp)] = self.on_value
        self._emit(Tensor(out, x.dtype, copy=False))

    def backward(self, inputs: Sequence[Variable], focus: Variable, gradient: Tensor) -> Tensor:
        raise UnsupportedError("OneHot has no gradient; it is a forward-only encoding")
