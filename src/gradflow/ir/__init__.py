from .dtypes import DType, float32, float64
from .errors import (
	GraphError,
	InvalidArgumentError,
	MissingDataError,
	OutOfRangeError,
	StructuralError,
	UnsupportedError,
)
from .tensor import Tensor
from .variable import Variable
from .graph import Graph

__all__ = [
	"DType",
	"float32",
	"float64",
	"Graph",
	"Tensor",
	"Variable",
	"GraphError",
	"InvalidArgumentError",
	"OutOfRangeError",
	"MissingDataError",
	"StructuralError",
	"UnsupportedError",
]
