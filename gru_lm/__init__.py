"""
gru_lm: a single-layer GRU next-word model trained with a hand-written
reverse-mode autodiff graph.
"""

from .errors import (EmptyInputError, GRULMError, HashConversionError,
                     MissingCostError, OptimizerStepError, ShapeError,
                     StaleNodeError, TrainingError, TypeMismatchError,
                     UnknownTokenError)
from .tokenizer import VocabularyEncoder, build_vocab_index

__all__ = [
    'EmptyInputError',
    'GRULMError',
    'HashConversionError',
    'MissingCostError',
    'OptimizerStepError',
    'ShapeError',
    'StaleNodeError',
    'TrainingError',
    'TypeMismatchError',
    'UnknownTokenError',
    'VocabularyEncoder',
    'build_vocab_index',
]

__version__ = "1.0.0"
