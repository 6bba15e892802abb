"""
Error kinds raised by the gru_lm package.

Every component raises the most specific kind it can; nothing in the package
retries. A shape or type error is a configuration defect, not a transient
condition.
"""

from typing import Optional


class GRULMError(Exception):
    """Base class for all errors raised by gru_lm."""


class EmptyInputError(GRULMError, ValueError):
    """Raised when text or a token prefix is empty."""


class HashConversionError(GRULMError, ValueError):
    """Raised when a hash digest cannot be converted to an integer."""


class ShapeError(GRULMError, ValueError):
    """Raised when an operator is applied to incompatible tensor shapes."""


class StaleNodeError(GRULMError):
    """Raised when a node is used after its graph was closed, or across graphs."""


class TypeMismatchError(GRULMError, TypeError):
    """Raised when a token sequence is not a sequence of integers."""


class MissingCostError(GRULMError):
    """Raised when a cost is requested but no forward pass produced one."""


class OptimizerStepError(GRULMError):
    """Raised when parameters and gradients do not pair up during an update."""


class UnknownTokenError(GRULMError, KeyError):
    """Raised when a token id has no position in the vocabulary index."""


class TrainingError(GRULMError):
    """
    Raised by the trainer when an epoch fails.

    The original error is chained as ``__cause__``; ``phase`` is one of
    ``'forward'``, ``'backward'`` or ``'update'``.
    """

    def __init__(self, phase: str, epoch: int, message: Optional[str] = None):
        self.phase = phase
        self.epoch = epoch
        if message is None:
            message = f"Training failed in {phase} phase at epoch {epoch}"
        super().__init__(message)
