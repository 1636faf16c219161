"""gradflow: a dynamic computation graph with reverse-mode autodiff.

Build variables and ops through a ``Graph``, run ``forward()`` to populate
every computed variable, then ``backprop(targets)`` for the gradients of the
registered outputs w.r.t. each target.
"""

import logging

from .ir import (
	DType,
	Graph,
	GraphError,
	InvalidArgumentError,
	MissingDataError,
	OutOfRangeError,
	StructuralError,
	Tensor,
	UnsupportedError,
	Variable,
	float32,
	float64,
)
from .kernels import KernelConfig

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
	"DType",
	"float32",
	"float64",
	"Graph",
	"Tensor",
	"Variable",
	"KernelConfig",
	"GraphError",
	"InvalidArgumentError",
	"OutOfRangeError",
	"MissingDataError",
	"StructuralError",
	"UnsupportedError",
]
