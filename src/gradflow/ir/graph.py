from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Sequence, Union

from gradflow.kernels.tiled import DEFAULT_CONFIG, KernelConfig
from gradflow.ops import (
	Add,
	CrossEntropy,
	ErrorRate,
	HeavisideStep,
	L1Norm,
	L2Norm,
	Linear,
	MatMul,
	MeanSquaredError,
	OneHot,
	Op,
	Padding,
	ReLU,
	Sigmoid,
	Softmax,
	Tanh,
)

from .dtypes import DType, float64
from .errors import InvalidArgumentError, MissingDataError, OutOfRangeError, StructuralError
from .tensor import Tensor
from .variable import Variable

logger = logging.getLogger(__name__)

VarRef = Union[Variable, int]


@dataclass
class Graph:
	"""A dynamic computation graph with reverse-mode differentiation.

	Design choices (on purpose):
	- The graph is an arena: it owns every variable, and variables refer to
	  each other by id (their slot in ``variables``), never by reference.
	- Variables are only wired through the graph, so ids and the two sides of
	  every edge (parent ``consumers``, child ``inputs``) stay consistent.
	- There is no deletion API; ids are never reused.
	"""

	name: str = "graph"
	config: KernelConfig = DEFAULT_CONFIG
	variables: list[Variable] = field(default_factory=list)
	outputs: list[int] = field(default_factory=list)
	_name_counters: dict[str, int] = field(default_factory=dict)

	def _fresh_name(self, prefix: str) -> str:
		n = self._name_counters.get(prefix, 0) + 1
		self._name_counters[prefix] = n
		return f"{prefix}{n}"

	# -------------------------------------------------------------------------
	# Bookkeeping
	# -------------------------------------------------------------------------

	def add_variable(self, variable: Variable) -> Variable:
		"""Register ``variable``, assign its id and bind its op to it.

		Parent ids already listed in ``variable.inputs`` are linked on both
		sides. Returns the stored variable.
		"""
		if variable.id is not None:
			raise InvalidArgumentError(f"variable {variable.name!r} is already registered (id={variable.id})")
		if variable.consumers:
			raise InvalidArgumentError("consumers are wired by the graph; register the variable before connecting it")
		op = variable.op
		if op is not None and op.output is not None:
			raise InvalidArgumentError(f"{op.kind} is already bound to variable {op.output.name!r}")
		for parent_id in variable.inputs:
			self._check_id(parent_id)

		variable.id = len(self.variables)
		if variable.name is None:
			variable.name = self._fresh_name("v" if op is None else op.kind.lower())
		self.variables.append(variable)

		for parent_id in variable.inputs:
			self.variables[parent_id].add_consumer(variable.id)
		if op is not None:
			op.output = variable
			if op.name is None:
				op.name = variable.name
		return variable

	def connect(self, parent: VarRef, child: VarRef) -> None:
		"""Append the edge parent -> child to both endpoints."""
		p = self.variable(parent)
		c = self.variable(child)
		if p is c:
			raise InvalidArgumentError(f"variable {p.name!r} cannot consume itself")
		c.add_input(p.id)
		p.add_consumer(c.id)

	def add_output(self, variable: VarRef) -> int:
		"""Mark ``variable`` as a gradient root; returns its output index."""
		v = self.variable(variable)
		if v.id in self.outputs:
			return self.outputs.index(v.id)
		self.outputs.append(v.id)
		return len(self.outputs) - 1

	def get_output(self, index: int) -> Tensor:
		if index < 0 or index >= len(self.outputs):
			raise OutOfRangeError(f"output index {index} out of range ({len(self.outputs)} outputs)")
		v = self.variables[self.outputs[index]]
		if v.data is None:
			raise MissingDataError(f"output {v.name!r} has no data; run forward() first")
		return v.data

	def get_variables(self) -> list[Variable]:
		return list(self.variables)

	def variable(self, ref: VarRef) -> Variable:
		"""Resolve an id or a variable of this graph."""
		if isinstance(ref, Variable):
			if ref.id is None or ref.id >= len(self.variables) or self.variables[ref.id] is not ref:
				raise InvalidArgumentError(f"variable {ref.name!r} does not belong to graph {self.name!r}")
			return ref
		self._check_id(ref)
		return self.variables[ref]

	def inputs_of(self, variable: VarRef) -> list[Variable]:
		return [self.variables[i] for i in self.variable(variable).inputs]

	def consumers_of(self, variable: VarRef) -> list[Variable]:
		return [self.variables[i] for i in self.variable(variable).consumers]

	def _check_id(self, vid: int) -> None:
		if isinstance(vid, bool) or not isinstance(vid, int):
			raise InvalidArgumentError(f"variable id must be an int, got {vid!r}")
		if vid < 0 or vid >= len(self.variables):
			raise OutOfRangeError(f"variable id {vid} out of range ({len(self.variables)} variables)")

	# -------------------------------------------------------------------------
	# Builders
	# -------------------------------------------------------------------------

	def input(self, name: str, data: object = None, *, dtype: DType = float64) -> Variable:
		"""A leaf whose data is fed from outside (may be set later)."""
		tensor = None if data is None else Tensor(data, dtype)
		return self.add_variable(Variable(data=tensor, name=name))

	def param(self, name: str, data: object, *, dtype: DType = float64) -> Variable:
		"""A learnable leaf; its data persists across forward passes."""
		return self.add_variable(Variable(data=Tensor(data, dtype), name=name))

	def apply(self, op: Op, *inputs: VarRef, name: str | None = None) -> Variable:
		parents = [self.variable(v) for v in inputs]
		return self.add_variable(Variable(op=op, inputs=[p.id for p in parents], name=name))

	def matmul(self, a: VarRef, b: VarRef, *, name: str | None = None) -> Variable:
		return self.apply(MatMul(config=self.config), a, b, name=name)

	def add(self, a: VarRef, b: VarRef, *, name: str | None = None) -> Variable:
		return self.apply(Add(), a, b, name=name)

	def relu(self, x: VarRef, *, name: str | None = None) -> Variable:
		return self.apply(ReLU(), x, name=name)

	def sigmoid(self, x: VarRef, *, name: str | None = None) -> Variable:
		return self.apply(Sigmoid(), x, name=name)

	def tanh(self, x: VarRef, *, name: str | None = None) -> Variable:
		return self.apply(Tanh(), x, name=name)

	def linear(self, x: VarRef, *, name: str | None = None) -> Variable:
		return self.apply(Linear(), x, name=name)

	def step(self, x: VarRef, *, name: str | None = None) -> Variable:
		return self.apply(HeavisideStep(), x, name=name)

	def softmax(self, x: VarRef, *, name: str | None = None) -> Variable:
		return self.apply(Softmax(), x, name=name)

	def pad(self, x: VarRef, *, width: int = 1, value: float = 1.0, name: str | None = None) -> Variable:
		return self.apply(Padding(width=width, value=value), x, name=name)

	def l1_penalty(self, w: VarRef, lam: float, *, name: str | None = None) -> Variable:
		return self.apply(L1Norm(lam=lam), w, name=name)

	def l2_penalty(self, w: VarRef, lam: float, *, name: str | None = None) -> Variable:
		return self.apply(L2Norm(lam=lam), w, name=name)

	def mse(self, prediction: VarRef, target: VarRef, *, name: str | None = None) -> Variable:
		return self.apply(MeanSquaredError(), prediction, target, name=name)

	def cross_entropy(self, prediction: VarRef, target: VarRef, *, name: str | None = None) -> Variable:
		return self.apply(CrossEntropy(), prediction, target, name=name)

	def one_hot(
		self, x: VarRef, size: int, *, on_value: float = 1.0, off_value: float = 0.0, name: str | None = None
	) -> Variable:
		return self.apply(OneHot(size=size, on_value=on_value, off_value=off_value), x, name=name)

	def error_rate(self, prediction: VarRef, target: VarRef, *, name: str | None = None) -> Variable:
		return self.apply(ErrorRate(), prediction, target, name=name)

	# -------------------------------------------------------------------------
	# Execution
	# -------------------------------------------------------------------------

	def topo_sort(self) -> list[Variable]:
		"""Order variables so that every parent precedes its consumers.

		Depth-first over consumer edges from each unvisited variable (in id
		order), appending a variable once all its consumers are done, then
		reversing. Recomputed on every call.
		"""
		visited = [False] * len(self.variables)
		order: list[int] = []
		for root in range(len(self.variables)):
			if visited[root]:
				continue
			visited[root] = True
			stack = [(root, iter(self.variables[root].consumers))]
			while stack:
				vid, children = stack[-1]
				for child in children:
					if not visited[child]:
						visited[child] = True
						stack.append((child, iter(self.variables[child].consumers)))
						break
				else:
					stack.pop()
					order.append(vid)
		order.reverse()
		return [self.variables[i] for i in order]

	def forward(self) -> None:
		"""Run every op in topological order. Leaves keep their current data."""
		executed = 0
		for v in self.topo_sort():
			if v.op is None:
				continue
			v.op.forward(self.inputs_of(v))
			executed += 1
		logger.debug("graph %r: forward ran %d ops over %d variables", self.name, executed, len(self.variables))

	def backprop(self, targets: Sequence[VarRef]) -> list[Tensor]:
		"""Gradients of the registered outputs w.r.t. each target.

		Every output is seeded with ones shaped like its data. Gradients are
		memoized per variable for the duration of the call, so each variable's
		gradient is built once regardless of fan-in or fan-out.

		Raises:
			StructuralError: A required variable has no consumers and is not an
				output, or gradient shapes disagree.
			MissingDataError: A required variable has no data.
		"""
		focus_vars = [self.variable(t) for t in targets]

		table: dict[int, Tensor] = {}
		for oid in self.outputs:
			out = self.variables[oid]
			if out.data is None:
				raise MissingDataError(f"output {out.name!r} has no data; run forward() first")
			table[oid] = Tensor.ones(out.data.shape, out.data.dtype)

		for v in focus_vars:
			self._build_grad(v, table)

		logger.debug(
			"graph %r: backprop built %d gradients for %d targets", self.name, len(table), len(focus_vars)
		)
		return [table[v.id] for v in focus_vars]

	def _build_grad(self, focus: Variable, table: dict[int, Tensor]) -> None:
		"""Fill ``table`` for ``focus`` and everything downstream of it.

		Iterative post-order over consumer edges: a variable is reduced only
		once every distinct consumer has a table entry.
		"""
		stack = [focus]
		expanded: set[int] = set()
		while stack:
			v = stack[-1]
			if v.id in table:
				stack.pop()
				continue

			if v.id not in expanded:
				if not v.consumers:
					raise StructuralError(f"variable {v.name!r} has no consumers and is not a registered output")
				if v.data is None:
					raise MissingDataError(f"variable {v.name!r} has no data; run forward() first")
				expanded.add(v.id)
				pending = []
				for cid in dict.fromkeys(v.consumers):
					consumer = self.variables[cid]
					if consumer.op is None:
						raise StructuralError(f"consumer {consumer.name!r} of {v.name!r} has no op")
					if cid in table:
						continue
					if cid in expanded:
						raise StructuralError(f"cycle through {consumer.name!r} while differentiating {v.name!r}")
					pending.append(consumer)
				if pending:
					# First consumer on top, so gradients build in consumer order.
					stack.extend(reversed(pending))
					continue

			table[v.id] = self._reduce_grad(v, table)
			stack.pop()

	def _reduce_grad(self, focus: Variable, table: dict[int, Tensor]) -> Tensor:
		total: Tensor | None = None
		# A consumer that reads focus through several slots is asked once; its op sums the slots.
		for cid in dict.fromkeys(focus.consumers):
			consumer = self.variables[cid]
			part = consumer.op.backward(self.inputs_of(consumer), focus, table[cid])

			if part.shape != focus.data.shape:
				raise StructuralError(
					f"{consumer.op.kind} returned a gradient of shape {part.shape} for "
					f"{focus.name!r} with data shape {focus.data.shape}"
				)
			if total is None:
				total = part.copy()
			elif total.shape != part.shape:
				raise StructuralError(f"gradient shapes disagree for {focus.name!r}: {total.shape} vs {part.shape}")
			else:
				total.array += part.array
		return total

	def summary(self) -> str:
		lines: list[str] = [f"Graph(name={self.name!r}, variables={len(self.variables)}, outputs={len(self.outputs)})"]
		for v in self.variables:
			shape = v.shape if v.data is not None else "?"
			if v.op is None:
				lines.append(f"- {v.name}: leaf -> {shape}")
				continue
			ins = ", ".join(f"{p.name}" for p in self.inputs_of(v))
			lines.append(f"- {v.name}: {v.op.kind}({ins}) -> {shape}")
		return "\n".join(lines)
