from __future__ import annotations

import itertools
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .errors import InvalidArgumentError

if TYPE_CHECKING:
	from gradflow.ops.base import Op

	from .tensor import Shape, Tensor


_uids = itertools.count()


@dataclass(slots=True, eq=False)
class Variable:
	"""A node of the computation graph.

	Edges are stored as ids into the owning graph's arena rather than as
	object references: ``inputs`` is the ordered parent list consumed by
	``op``, ``consumers`` holds one entry per outgoing edge. A variable without
	an op is a leaf whose data is supplied from outside.

	``id`` is assigned by ``Graph.add_variable`` and is the variable's slot in
	the arena; ``uid`` is unique for the whole process.
	"""

	op: Op | None = None
	inputs: list[int] = field(default_factory=list)
	data: Tensor | None = None
	name: str | None = None
	consumers: list[int] = field(default_factory=list)
	id: int | None = None
	uid: int = field(default_factory=lambda: next(_uids))

	def __post_init__(self) -> None:
		if self.op is None and self.inputs:
			raise InvalidArgumentError("a leaf variable cannot have inputs")

	@property
	def is_leaf(self) -> bool:
		return self.op is None

	@property
	def shape(self) -> Shape | None:
		return None if self.data is None else self.data.shape

	def add_input(self, parent_id: int) -> None:
		if self.op is None:
			raise InvalidArgumentError(f"leaf variable {self.name!r} cannot take inputs")
		self.inputs.append(parent_id)

	def add_consumer(self, child_id: int) -> None:
		self.consumers.append(child_id)

	def __repr__(self) -> str:  # pragma: no cover
		kind = "leaf" if self.op is None else self.op.kind
		return f"Variable(id={self.id}, name={self.name!r}, kind={kind}, shape={self.shape})"
