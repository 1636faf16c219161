from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, ClassVar, Sequence

import numpy as np

from gradflow.ir.errors import InvalidArgumentError
from gradflow.ir.tensor import Tensor
from gradflow.kernels.tiled import DEFAULT_CONFIG, KernelConfig, matmul
from gradflow.ops.base import Op, require_rank

if TYPE_CHECKING:
    from gradflow.ir.variable import Variable


@dataclass(slots=True, eq=False)
class MatMul(Op):
    """Matrix multiplication: (M,K) @ (K,N) -> (M,N).

    Gradient w.r.t. the left operand is ``g @ B.T``, w.r.t. the right operand
    ``A.T @ g``. Both products run on the threaded kernel.
    """

    arity: ClassVar[int] = 2

    config: KernelConfig = field(default=DEFAULT_CONFIG)

    def _operands(self, inputs: Sequence[Variable]) -> tuple[Tensor, Tensor]:
        self._check_arity(inputs)
        a = self._data(inputs[0])
        b = self._data(inputs[1])
        require_rank(self, a, 2, "left operand")
        require_rank(self, b, 2, "right operand")
        if a.shape[1] != b.shape[0]:
            raise InvalidArgumentError(f"MatMul K mismatch: {a.shape} @ {b.shape}")
        return a, b

    def forward(self, inputs: Sequence[Variable]) -> None:
        a, b = self._operands(inputs)
        self._emit(Tensor(matmul(a.array, b.array, self.config), a.dtype, copy=False))

    def backward(self, inputs: Sequence[Variable], focus: Variable, gradient: Tensor) -> Tensor:
        a, b = self._operands(inputs)
        self._check_upstream(gradient, (a.shape[0], b.shape[1]))
        slots = self._slots(inputs, focus)

        total: np.ndarray | None = None
        for slot in slots:
            if slot == 0:
                part = matmul(gradient.array, b.array.T, self.config)
            else:
                part = matmul(a.array.T, gradient.array, self.config)
            total = part if total is None else total + part
        return Tensor(total, focus.data.dtype, copy=False)


@dataclass(slots=True, eq=False)
class Add(Op):
    """Elementwise add: same-shape tensors only (no broadcasting)."""

    arity: ClassVar[int] = 2

    def forward(self, inputs: Sequence[Variable]) -> None:
        self._check_arity(inputs)
        a = self._data(inputs[0])
        b = self._data(inputs[1])
        if a.shape != b.shape:
            raise InvalidArgumentError(f"Add requires identical shapes, got {a.shape} and {b.shape}")
        self._emit(Tensor(a.array + b.array, a.dtype, copy=False))

    def backward(self, inputs: Sequence[Variable], focus: Variable, gradient: Tensor) -> Tensor:
        self._check_arity(inputs)
        self._check_upstream(gradient, self._data(inputs[0]).shape)
        slots = self._slots(inputs, focus)
        return Tensor(gradient.array * len(slots), gradient.dtype)
