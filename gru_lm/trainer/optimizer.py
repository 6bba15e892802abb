"""
RMSProp update rule as a pure function.

The optimizer never mutates what it is given: it returns new parameter
tensors and a new state, and the caller decides where to store them.
"""

from collections import OrderedDict
from typing import Dict, Mapping, Optional, Tuple

import torch

from gru_lm.errors import OptimizerStepError

RMSPropState = Dict[str, torch.Tensor]


def init_rmsprop_state(params: Mapping[str, torch.Tensor]) -> RMSPropState:
    """Zero moving average of squared gradients for every parameter."""
    return OrderedDict((name, torch.zeros_like(p)) for name, p in params.items())


def rmsprop_step(params: Mapping[str, torch.Tensor],
                 grads: Mapping[str, torch.Tensor],
                 state: Optional[Mapping[str, torch.Tensor]],
                 learning_rate: float,
                 decay: float = 0.9,
                 eps: float = 1e-8,
                 clip: Optional[float] = None
                 ) -> Tuple[Dict[str, torch.Tensor], RMSPropState]:
    """
    Apply one RMSProp step.

        avg = decay * avg + (1 - decay) * grad ** 2
        param = param - learning_rate * grad / (sqrt(avg) + eps)

    Args:
        params: Current parameter tensors by name
        grads: Gradient for every parameter, same names and shapes
        state: Moving averages from the previous step, or None to start fresh
        learning_rate: Step size
        decay: Decay of the squared-gradient moving average
        eps: Added to the denominator
        clip: If set, gradients are clamped element-wise to [-clip, clip]

    Returns:
        Tuple of (new_params, new_state)

    Raises:
        OptimizerStepError: If names or shapes of params, grads and state
            do not line up
    """
    if set(params) != set(grads):
        missing = sorted(set(params) - set(grads))
        extra = sorted(set(grads) - set(params))
        raise OptimizerStepError(
            f"Gradients do not match parameters (missing: {missing}, unexpected: {extra})")
    if state is None:
        state = init_rmsprop_state(params)
    elif set(state) != set(params):
        raise OptimizerStepError("Optimizer state does not match parameters")

    new_params: Dict[str, torch.Tensor] = OrderedDict()
    new_state: RMSPropState = OrderedDict()
    for name, param in params.items():
        grad = grads[name]
        avg = state[name]
        if grad.shape != param.shape or avg.shape != param.shape:
            raise OptimizerStepError(
                f"Shape mismatch for {name}: parameter {tuple(param.shape)}, "
                f"gradient {tuple(grad.shape)}, state {tuple(avg.shape)}")
        if clip is not None:
            grad = grad.clamp(-clip, clip)

        avg = decay * avg + (1 - decay) * grad * grad
        new_state[name] = avg
        new_params[name] = param - learning_rate * grad / (torch.sqrt(avg) + eps)

    return new_params, new_state
