"""
Next-token prediction with a trained GRU language model.
"""

from .sampler import Predictor, create_predictor
from .config import DEFAULT_PREDICTION_CONFIG, TEST_PREFIXES

__all__ = [
    'Predictor',
    'create_predictor',
    'DEFAULT_PREDICTION_CONFIG',
    'TEST_PREFIXES'
]
