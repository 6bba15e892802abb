"""Weight initializers for parameter tensors."""

import math
from typing import Optional, Sequence

import torch


def glorot_normal(shape: Sequence[int],
                  gain: float = 1.0,
                  generator: Optional[torch.Generator] = None,
                  dtype: torch.dtype = torch.float32) -> torch.Tensor:
    """
    Zero-mean normal initialisation scaled by fan-in and fan-out.

    std = gain * sqrt(2 / (fan_in + fan_out)). A vector of length n is
    treated as fan_in = 1, fan_out = n.

    Args:
        shape: Shape of the tensor to allocate
        gain: Scale factor applied to the standard deviation
        generator: Optional torch generator for reproducible draws
        dtype: Floating point dtype of the result
    """
    shape = tuple(shape)
    if len(shape) == 0:
        raise ValueError("glorot_normal needs a shape with at least one axis")
    if len(shape) == 1:
        fan_in, fan_out = 1, shape[0]
    else:
        receptive = math.prod(shape[2:])
        fan_in, fan_out = shape[0] * receptive, shape[1] * receptive
    std = gain * math.sqrt(2.0 / (fan_in + fan_out))
    return torch.randn(shape, generator=generator, dtype=dtype) * std


def zeros(shape: Sequence[int], dtype: torch.dtype = torch.float32) -> torch.Tensor:
    return torch.zeros(tuple(shape), dtype=dtype)


def ones(shape: Sequence[int], dtype: torch.dtype = torch.float32) -> torch.Tensor:
    return torch.ones(tuple(shape), dtype=dtype)
