"""Error taxonomy for graph construction, execution and differentiation.

None of these are recovered inside the library: a failing ``forward`` or
``backprop`` aborts and the exception reaches whoever drove the pass.
"""

from __future__ import annotations


class GraphError(Exception):
	"""Base class for every error raised by gradflow."""


class InvalidArgumentError(GraphError, ValueError):
	"""Arity or shape mismatch at an op boundary, malformed index, bad wiring."""


class OutOfRangeError(GraphError, IndexError):
	"""Index exceeds a tensor dimension, its capacity, or a registry size."""


class MissingDataError(GraphError, RuntimeError):
	"""A variable's data is required but was never computed or supplied."""


class StructuralError(GraphError, RuntimeError):
	"""The graph cannot be differentiated as assembled."""


class UnsupportedError(GraphError, NotImplementedError):
	"""The op has no defined gradient."""
