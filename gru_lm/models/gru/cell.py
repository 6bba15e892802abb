from collections import OrderedDict
from typing import Dict, Optional

import torch

from gru_lm.autodiff import (Node, add, glorot_normal, hadamard, matmul,
                             sigmoid, subtract, tanh)
from gru_lm.autodiff.graph import graph_of
from gru_lm.autodiff.init import ones, zeros
from . import config


class GRUCell:
    """
    A Gated Recurrent Unit cell.

    The cell owns its nine weight tensors and computes one step of the
    recurrence. It keeps no state between calls: the caller threads the
    previous hidden state through ``activate``.

        z = sigmoid(Uz·h + Wz·x + bz)
        r = sigmoid(Ur·h + Wr·x + br)
        candidate = tanh((r ⊙ h)·U + W·x + b)
        hidden = (1 - z) ⊙ h + z ⊙ candidate
    """

    PARAMETER_NAMES = ('u', 'w', 'b', 'uz', 'wz', 'bz', 'ur', 'wr', 'br')

    def __init__(self,
                 input_size: int,
                 hidden_size: int,
                 gain: float = config.gru_gain,
                 dtype: torch.dtype = config.dtype,
                 generator: Optional[torch.Generator] = None):
        """
        Initializes the GRU cell.

        Args:
            input_size (int): Width of the input (embedding) vector.
            hidden_size (int): Width of the hidden state.
            gain (float): Glorot gain for the weight matrices.
            dtype (torch.dtype): Floating point type of the parameters.
            generator (torch.Generator, optional): Source of randomness.
        """
        self.input_size = input_size
        self.hidden_size = hidden_size

        def square():
            return glorot_normal((hidden_size, hidden_size), gain, generator, dtype)

        def rect():
            return glorot_normal((hidden_size, input_size), gain, generator, dtype)

        # weights for memory
        self.u = square()
        self.w = rect()
        self.b = zeros((hidden_size,), dtype)

        # update gate
        self.uz = square()
        self.wz = rect()
        self.bz = zeros((hidden_size,), dtype)

        # reset gate
        self.ur = square()
        self.wr = rect()
        self.br = zeros((hidden_size,), dtype)

        # complement of the update gate is computed as one - z
        self.one = ones((hidden_size,), dtype)

    def learnables(self) -> Dict[str, torch.Tensor]:
        return OrderedDict((name, getattr(self, name)) for name in self.PARAMETER_NAMES)

    def gates(self, input: Node, prev: Node) -> Dict[str, Node]:
        """
        Build one step of the recurrence and return every intermediate gate.

        Returns:
            Dictionary with the 'z', 'r', 'candidate' and 'hidden' nodes.
        """
        graph = graph_of(input, prev)

        def param(name):
            return graph.parameter(getattr(self, name), name=f"{name}_")

        # update gate
        z = add(matmul(param('uz'), prev), matmul(param('wz'), input))
        z = sigmoid(add(z, param('bz')), name="z")

        # reset gate
        r = add(matmul(param('ur'), prev), matmul(param('wr'), input))
        r = sigmoid(add(r, param('br')), name="r")

        # candidate memory
        filtered = matmul(hadamard(r, prev), param('u'))
        candidate = add(filtered, matmul(param('w'), input))
        candidate = tanh(add(candidate, param('b')), name="candidate")

        one = graph.constant(self.one, name="one_")
        keep = hadamard(subtract(one, z), prev)
        update = hadamard(z, candidate)
        hidden = add(keep, update, name="hidden")

        return {'z': z, 'r': r, 'candidate': candidate, 'hidden': hidden}

    def activate(self, input: Node, prev: Node) -> Node:
        """
        Compute the next hidden state.

        Args:
            input: Node of shape (input_size,)
            prev: Node of shape (hidden_size,) holding the previous hidden state

        Returns:
            Node of shape (hidden_size,)
        """
        return self.gates(input, prev)['hidden']
