"""
Training loop and optimizer for the GRU language model.
"""

from .optimizer import init_rmsprop_state, rmsprop_step
from .trainer import Trainer, create_trainer

__all__ = ['Trainer', 'create_trainer', 'init_rmsprop_state', 'rmsprop_step']
