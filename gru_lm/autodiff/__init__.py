"""
Reverse-mode automatic differentiation over torch tensors.
"""

from .graph import Graph, Node, gradients
from .init import glorot_normal
from .ops import (add, hadamard, log, log_softmax, matmul, negate, sigmoid,
                  slice, softmax, subtract, tanh)

__all__ = [
    'Graph',
    'Node',
    'gradients',
    'glorot_normal',
    'add',
    'hadamard',
    'log',
    'log_softmax',
    'matmul',
    'negate',
    'sigmoid',
    'slice',
    'softmax',
    'subtract',
    'tanh',
]
