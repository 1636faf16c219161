"""Parameter norm penalties.

Both penalties reduce a rank-2 weight matrix to a ``(1,)`` tensor and skip
the bias row, row 0, which multiplies the constant column prepended by
``Padding``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Sequence

import numpy as np

from gradflow.ir.errors import InvalidArgumentError
from gradflow.ir.tensor import Tensor
from gradflow.ops.base import Op, require_rank

if TYPE_CHECKING:
    from gradflow.ir.variable import Variable


BIAS_ROW = 0


@dataclass(slots=True, eq=False)
class ParameterNormPenalty(Op):
    lam: float = 0.0

    def __post_init__(self) -> None:
        if self.lam < 0:
            raise InvalidArgumentError(f"{self.kind}: lambda must be >= 0, got {self.lam}")

    def penalty(self, weights: np.ndarray) -> float:
        raise NotImplementedError

    def penalty_gradient(self, weights: np.ndarray) -> np.ndarray:
        raise NotImplementedError

    def _weights(self, inputs: Sequence[Variable]) -> Tensor:
        self._check_arity(inputs)
        w = self._data(inputs[0])
        require_rank(self, w, 2, "weight matrix")
        return w

    def forward(self, inputs: Sequence[Variable]) -> None:
        w = self._weights(inputs)
        masked = _without_bias(w.array)
        self._emit(Tensor([self.penalty(masked)], w.dtype))

    def backward(self, inputs: Sequence[Variable], focus: Variable, gradient: Tensor) -> Tensor:
        w = self._weights(inputs)
        self._slots(inputs, focus)
        self._check_upstream(gradient, (1,))
        grad = self.penalty_gradient(_without_bias(w.array)) * gradient.array[0]
        return Tensor(grad, w.dtype, copy=False)


@dataclass(slots=True, eq=False)
class L1Norm(ParameterNormPenalty):
    """``lam * sum(|w|)``; subgradient ``lam * sign(w)``."""

    def penalty(self, weights: np.ndarray) -> float:
        return float(self.lam * np.sum(np.abs(weights)))

    def penalty_gradient(self, weights: np.ndarray) -> np.ndarray:
        return self.lam * np.sign(weights)


@dataclass(slots=True, eq=False)
class L2Norm(ParameterNormPenalty):
    """``0.5 * lam * sum(w**2)``; gradient ``lam * w``."""

    def penalty(self, weights: np.ndarray) -> float:
        return float(0.5 * self.lam * np.sum(weights * weights))

    def penalty_gradient(self, weights: np.ndarray) -> np.ndarray:
        return self.lam * weights


def _without_bias(weights: np.ndarray) -> np.ndarray:
    masked = weights.copy()
    if masked.shape[0] > BIAS_ROW:
        masked[BIAS_ROW, :] = 0.0
    return masked
