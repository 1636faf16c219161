from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, ClassVar, Sequence

import numpy as np

from gradflow.ir.errors import InvalidArgumentError
from gradflow.ir.tensor import Tensor
from gradflow.ops.base import Op, require_rank

if TYPE_CHECKING:
    from gradflow.ir.variable import Variable

logger = logging.getLogger(__name__)


@dataclass(slots=True, eq=False)
class ErrorRate(Op):
    """Fraction of rows whose argmax differs from the target class.

    Inputs are a (N, C) prediction and an (N, 1) column of class indices.
    This is a terminal metric: ``backward`` returns zeros rather than raising,
    so a graph that reports it can still be differentiated elsewhere.
    """

    arity: ClassVar[int] = 2

    def forward(self, inputs: Sequence[Variable]) -> None:
        self._check_arity(inputs)
        prediction = self._data(inputs[0])
        target = self._data(inputs[1])
        require_rank(self, prediction, 2, "prediction")
        require_rank(self, target, 2, "target")
        if target.shape[1] != 1:
            raise InvalidArgumentError(f"ErrorRate: target must be a single column, got shape {target.shape}")
        if prediction.shape[1] == 0:
            raise InvalidArgumentError(f"ErrorRate: prediction has no classes, got shape {prediction.shape}")
        if prediction.shape[0] != target.shape[0]:
            raise InvalidArgumentError(
                f"ErrorRate: {prediction.shape[0]} predictions but {target.shape[0]} targets"
            )

        rows = prediction.shape[0]
        if rows == 0:
            rate = 0.0
        else:
            predicted = np.argmax(prediction.array, axis=1)
            rate = float(np.mean(predicted != target.array[:, 0]))
        logger.info("%s error rate: %.4f over %d samples", self.name or self.kind, rate, rows)
        self._emit(Tensor([rate], prediction.dtype))

    def backward(self, inputs: Sequence[Variable], focus: Variable, gradient: Tensor) -> Tensor:
        self._slots(inputs, focus)
        return Tensor.zeros(self._data(focus).shape, self._data(focus).dtype)
