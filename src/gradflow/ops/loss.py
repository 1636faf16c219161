"""Loss functions: reduce (prediction, target) to a ``(1,)`` tensor.

The gradient is defined w.r.t. the prediction only. Asking for the gradient
of the target raises ``UnsupportedError``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, ClassVar, Sequence

import numpy as np

from gradflow.ir.errors import InvalidArgumentError, UnsupportedError
from gradflow.ir.tensor import Tensor
from gradflow.ops.base import Op

if TYPE_CHECKING:
    from gradflow.ir.variable import Variable


@dataclass(slots=True, eq=False)
class LossFunction(Op):
    arity: ClassVar[int] = 2

    def loss(self, prediction: np.ndarray, target: np.ndarray) -> float:
        raise NotImplementedError

    def loss_gradient(self, prediction: np.ndarray, target: np.ndarray) -> np.ndarray:
        raise NotImplementedError

    def _pair(self, inputs: Sequence[Variable]) -> tuple[Tensor, Tensor]:
        self._check_arity(inputs)
        prediction = self._data(inputs[0])
        target = self._data(inputs[1])
        if prediction.shape != target.shape:
            raise InvalidArgumentError(
                f"{self.kind}: prediction shape {prediction.shape} != target shape {target.shape}"
            )
        if prediction.rank == 0:
            raise InvalidArgumentError(f"{self.kind}: inputs must have at least one axis")
        return prediction, target

    def forward(self, inputs: Sequence[Variable]) -> None:
        prediction, target = self._pair(inputs)
        self._emit(Tensor([self.loss(prediction.array, target.array)], prediction.dtype))

    def backward(self, inputs: Sequence[Variable], focus: Variable, gradient: Tensor) -> Tensor:
        prediction, target = self._pair(inputs)
        if 0 not in self._slots(inputs, focus):
            raise UnsupportedError(f"{self.kind} has no gradient w.r.t. its target")
        self._check_upstream(gradient, (1,))
        grad = self.loss_gradient(prediction.array, target.array) * gradient.array[0]
        return Tensor(grad, prediction.dtype, copy=False)


@dataclass(slots=True, eq=False)
class MeanSquaredError(LossFunction):
    """``0.5 * sum((p - t)**2) / n`` with ``n`` the number of rows."""

    def loss(self, prediction: np.ndarray, target: np.ndarray) -> float:
        diff = prediction - target
        return float(0.5 * np.sum(diff * diff) / prediction.shape[0])

    def loss_gradient(self, prediction: np.ndarray, target: np.ndarray) -> np.ndarray:
        return (prediction - target) / prediction.shape[0]


@dataclass(slots=True, eq=False)
class CrossEntropy(LossFunction):
    """``-sum(t * log(p + eps)) / n`` for probability predictions."""

    eps: float = 1e-12

    def loss(self, prediction: np.ndarray, target: np.ndarray) -> float:
        return float(-np.sum(target * np.log(prediction + self.eps)) / prediction.shape[0])

    def loss_gradient(self, prediction: np.ndarray, target: np.ndarray) -> np.ndarray:
        return -target / (prediction + self.eps) / prediction.shape[0]
