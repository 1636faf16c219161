from .activation import Activation, HeavisideStep, Linear, ReLU, Sigmoid, Softmax, Tanh
from .base import Op
from .linalg import Add, MatMul
from .loss import CrossEntropy, LossFunction, MeanSquaredError
from .penalty import L1Norm, L2Norm, ParameterNormPenalty
from .performance import ErrorRate
from .processing import OneHot, Padding

__all__ = [
    "Op",
    "MatMul",
    "Add",
    "Activation",
    "ReLU",
    "Sigmoid",
    "Tanh",
    "Linear",
    "HeavisideStep",
    "Softmax",
    "Padding",
    "OneHot",
    "ParameterNormPenalty",
    "L1Norm",
    "L2Norm",
    "LossFunction",
    "MeanSquaredError",
    "CrossEntropy",
    "ErrorRate",
]
