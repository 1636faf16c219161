from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, ClassVar, Sequence

from gradflow.ir.errors import InvalidArgumentError, MissingDataError, StructuralError

if TYPE_CHECKING:
    from gradflow.ir.tensor import Shape, Tensor
    from gradflow.ir.variable import Variable


@dataclass(slots=True, eq=False)
class Op:
    """Base class for graph operations.

    An op is owned by exactly one variable, ``output``; ``Graph.add_variable``
    binds it. The parents of that variable are handed to ``forward`` and
    ``backward`` on every call, so an op carries no state beyond the immutable
    coefficients declared by its subclass.

    ``forward`` writes a fresh tensor into ``output.data``. ``backward``
    returns the gradient of ``output`` with respect to ``focus`` given the
    gradient already accumulated for ``output``; its shape must match
    ``focus.data`` (the graph checks this).
    """

    arity: ClassVar[int] = 1

    name: str | None = field(default=None, kw_only=True)
    output: Variable | None = field(default=None, kw_only=True, repr=False)

    @property
    def kind(self) -> str:
        return self.__class__.__name__

    def forward(self, inputs: Sequence[Variable]) -> None:
        raise NotImplementedError

    def backward(self, inputs: Sequence[Variable], focus: Variable, gradient: Tensor) -> Tensor:
        raise NotImplementedError

    # -------------------------------------------------------------------------
    # Helpers shared by the built-in ops
    # -------------------------------------------------------------------------

    def _check_arity(self, inputs: Sequence[Variable]) -> None:
        if len(inputs) != self.arity:
            raise InvalidArgumentError(f"{self.kind} expects exactly {self.arity} inputs, got {len(inputs)}")

    def _data(self, variable: Variable) -> Tensor:
        if variable.data is None:
            raise MissingDataError(f"{self.kind}: input {variable.name!r} has no data")
        return variable.data

    def _emit(self, result: Tensor) -> None:
        if self.output is None:
            raise StructuralError(f"{self.kind} is not bound to a variable; register it through Graph.add_variable")
        self.output.data = result

    def _slots(self, inputs: Sequence[Variable], focus: Variable) -> list[int]:
        """Positions of ``focus`` among ``inputs``; an input may appear twice."""
        slots = [i for i, v in enumerate(inputs) if v is focus]
        if not slots:
            raise InvalidArgumentError(f"{self.kind}: focus {focus.name!r} is not an input of this op")
        return slots

    def _check_upstream(self, gradient: Tensor, expected: Shape) -> None:
        if gradient.shape != expected:
            raise InvalidArgumentError(
                f"{self.kind}: upstream gradient shape {gradient.shape} does not match output shape {expected}"
            )


def require_rank(op: Op, tensor: Tensor, rank: int, what: str) -> None:
    if tensor.rank != rank:
        raise InvalidArgumentError(f"{op.kind}: {what} must be rank-{rank}, got shape {tensor.shape}")
