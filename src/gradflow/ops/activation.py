"""Elementwise activation functions.

``Activation`` applies a scalar function to every element independently and
multiplies the upstream gradient by the function's derivative evaluated at
the input. ``Softmax`` couples the elements of a row and has its own
Jacobian-vector product.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, Sequence

import numpy as np

from gradflow.ir.errors import InvalidArgumentError
from gradflow.ir.tensor import Tensor
from gradflow.ops.base import Op

if TYPE_CHECKING:
    from gradflow.ir.variable import Variable


ArrayFn = Callable[[np.ndarray], np.ndarray]


@dataclass(slots=True, eq=False)
class Activation(Op):
    """Configurable elementwise activation.

    Attributes:
        fn: Vectorised scalar function.
        derivative: Vectorised derivative of ``fn``, evaluated at the input.
    """

    fn: ArrayFn | None = field(default=None, repr=False)
    derivative: ArrayFn | None = field(default=None, repr=False)

    def __post_init__(self) -> None:
        cls = type(self)
        if self.fn is None and cls.activation is Activation.activation:
            raise InvalidArgumentError(f"{self.kind} needs fn or an activation() override")
        if self.derivative is None and cls.activation_derivative is Activation.activation_derivative:
            raise InvalidArgumentError(f"{self.kind} needs derivative or an activation_derivative() override")

    def activation(self, x: np.ndarray) -> np.ndarray:
        return self.fn(x)

    def activation_derivative(self, x: np.ndarray) -> np.ndarray:
        return self.derivative(x)

    def forward(self, inputs: Sequence[Variable]) -> None:
        self._check_arity(inputs)
        x = self._data(inputs[0])
        self._emit(Tensor(self.activation(x.array), x.dtype, copy=False))

    def backward(self, inputs: Sequence[Variable], focus: Variable, gradient: Tensor) -> Tensor:
        self._check_arity(inputs)
        self._slots(inputs, focus)
        x = self._data(inputs[0])
        self._check_upstream(gradient, x.shape)
        return Tensor(gradient.array * self.activation_derivative(x.array), x.dtype, copy=False)


@dataclass(slots=True, eq=False)
class ReLU(Activation):
    def activation(self, x: np.ndarray) -> np.ndarray:
        return np.maximum(x, 0.0)

    def activation_derivative(self, x: np.ndarray) -> np.ndarray:
        return (x > 0).astype(x.dtype)


@dataclass(slots=True, eq=False)
class Sigmoid(Activation):
    def activation(self, x: np.ndarray) -> np.ndarray:
        # Split by sign so exp never overflows.
        out = np.empty_like(x)
        pos = x >= 0
        out[pos] = 1.0 / (1.0 + np.exp(-x[pos]))
        ex = np.exp(x[~pos])
        out[~pos] = ex / (1.0 + ex)
        return out

    def activation_derivative(self, x: np.ndarray) -> np.ndarray:
        s = self.activation(x)
        return s * (1.0 - s)


@dataclass(slots=True, eq=False)
class Tanh(Activation):
    def activation(self, x: np.ndarray) -> np.ndarray:
        return np.tanh(x)

    def activation_derivative(self, x: np.ndarray) -> np.ndarray:
        return 1.0 - np.tanh(x) ** 2


@dataclass(slots=True, eq=False)
class Linear(Activation):
    """Identity activation."""

    def activation(self, x: np.ndarray) -> np.ndarray:
        return x.copy()

    def activation_derivative(self, x: np.ndarray) -> np.ndarray:
        return np.ones_like(x)


@dataclass(slots=True, eq=False)
class HeavisideStep(Activation):
    """Step function: 1 where x > 0, else 0. Its derivative is zero everywhere."""

    def activation(self, x: np.ndarray) -> np.ndarray:
        return (x > 0).astype(x.dtype)

    def activation_derivative(self, x: np.ndarray) -> np.ndarray:
        return np.zeros_like(x)


@dataclass(slots=True, eq=False)
class Softmax(Op):
    """Row-wise softmax over the last axis."""

    def forward(self, inputs: Sequence[Variable]) -> None:
        self._check_arity(inputs)
        x = self._data(inputs[0])
        self._emit(Tensor(softmax(x.array), x.dtype, copy=False))

    def backward(self, inputs: Sequence[Variable], focus: Variable, gradient: Tensor) -> Tensor:
        self._check_arity(inputs)
        self._slots(inputs, focus)
        x = self._data(inputs[0])
        self._check_upstream(gradient, x.shape)
        s = softmax(x.array)
        g = gradient.array
        return Tensor(s * (g - np.sum(g * s, axis=-1, keepdims=True)), x.dtype, copy=False)


def softmax(x: np.ndarray) -> np.ndarray:
    shifted = x - np.max(x, axis=-1, keepdims=True)
    ex = np.exp(shifted)
    return ex / np.sum(ex, axis=-1, keepdims=True)
