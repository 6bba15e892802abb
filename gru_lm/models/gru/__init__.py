"""
Single-layer GRU language model built on gru_lm.autodiff.
"""

from .cell import GRUCell
from .model import GRUOut, ParameterSet, SequenceNetwork

__all__ = ['GRUCell', 'GRUOut', 'ParameterSet', 'SequenceNetwork']
