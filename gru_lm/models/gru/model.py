import numbers
from collections import OrderedDict
from collections.abc import Mapping
from typing import Dict, Iterator, List, NamedTuple, Optional

import torch

from gru_lm.autodiff import (Graph, Node, add, glorot_normal, log_softmax,
                             matmul, negate, slice, softmax)
from gru_lm.autodiff.init import zeros
from gru_lm.errors import (EmptyInputError, MissingCostError,
                           OptimizerStepError, TypeMismatchError,
                           UnknownTokenError)
from . import config
from .cell import GRUCell

_INTEGER_DTYPES = (torch.uint8, torch.int8, torch.int16, torch.int32, torch.int64)


class GRUOut(NamedTuple):
    hidden: Node
    prob: Node
    log_prob: Node


class ParameterSet(Mapping):
    """
    Ordered name -> tensor mapping of every learnable tensor of a network.

    Tensors are held by reference: the cell and the network keep pointing at
    the same objects, and ``assign`` writes new values into them in place.
    """

    def __init__(self, tensors=()):
        self._tensors: Dict[str, torch.Tensor] = OrderedDict(tensors)

    def __getitem__(self, name: str) -> torch.Tensor:
        return self._tensors[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._tensors)

    def __len__(self):
        return len(self._tensors)

    def num_elements(self) -> int:
        return sum(t.numel() for t in self._tensors.values())

    def assign(self, updates: Mapping):
        """Copy every tensor in ``updates`` into the parameter of the same name."""
        for name, value in updates.items():
            if name not in self._tensors:
                raise OptimizerStepError(f"Unknown parameter: {name}")
            target = self._tensors[name]
            if target.shape != value.shape:
                raise OptimizerStepError(
                    f"Shape mismatch for {name}: parameter {tuple(target.shape)}, "
                    f"update {tuple(value.shape)}")
            target.copy_(value)


class SequenceNetwork:
    """
    Embedding lookup, one GRU cell and a softmax decoder, unrolled over a
    token sequence.

    Token ids fed to the network are positions from a vocabulary index, so
    ``input_size`` is the length of the training sequence the index was
    built from.
    """

    def __init__(self,
                 input_size: int,
                 embedding_size: int = config.embedding_dim,
                 output_size: Optional[int] = None,
                 hidden_size: int = config.hidden_dim,
                 dtype: torch.dtype = config.dtype,
                 seed: Optional[int] = config.seed):
        """
        Initializes the network.

        Args:
            input_size (int): Number of embedding rows.
            embedding_size (int): Width of each embedding row.
            output_size (int, optional): Width of the decoder output.
                Defaults to ``input_size``.
            hidden_size (int): Width of the GRU hidden state.
            dtype (torch.dtype): Floating point type of the parameters.
            seed (int, optional): Seed for the initialisation generator.
        """
        if output_size is None:
            output_size = input_size
        self.input_size = input_size
        self.embedding_size = embedding_size
        self.output_size = output_size
        self.hidden_size = hidden_size
        self.dtype = dtype

        generator = torch.Generator()
        if seed is not None:
            generator.manual_seed(seed)
        else:
            generator.seed()

        self.gru = GRUCell(embedding_size, hidden_size, dtype=dtype, generator=generator)

        # --- Layers ---
        self.embedding = glorot_normal((input_size, embedding_size),
                                       config.embedding_gain, generator, dtype)

        # decoder
        self.whd = glorot_normal((output_size, hidden_size),
                                 config.decoder_gain, generator, dtype)
        self.bias_d = glorot_normal((output_size,), config.decoder_bias_gain,
                                    generator, dtype)

        # initial previous state for the first step of every sequence
        self.prev = zeros((hidden_size,), dtype)

        self.cost: Optional[Node] = None

        tensors = [(f"gru.{name}", t) for name, t in self.gru.learnables().items()]
        tensors += [("embedding", self.embedding), ("whd", self.whd),
                    ("bias_d", self.bias_d)]
        self._parameters = ParameterSet(tensors)

    def parameters(self) -> ParameterSet:
        return self._parameters

    def num_parameters(self) -> int:
        return self._parameters.num_elements()

    def parameter_nodes(self, graph: Graph) -> Dict[str, Node]:
        """Return the node wrapping each learnable tensor in ``graph``."""
        return OrderedDict(
            (name, graph.parameter(tensor, name=f"{name}_"))
            for name, tensor in self._parameters.items())

    def forward_step(self,
                     graph: Graph,
                     token_id: int,
                     previous: Optional[GRUOut] = None) -> GRUOut:
        """
        Run one time step.

        Args:
            graph: Graph the step is built in
            token_id: Row of the embedding matrix to feed
            previous: Output of the previous step, or None at the first step

        Returns:
            GRUOut with the new hidden state and the output probabilities
        """
        if previous is None:
            prev_state = graph.parameter(self.prev, name="prev_", trainable=False)
        else:
            prev_state = previous.hidden

        embedding = graph.parameter(self.embedding, name="embedding_")
        input_vector = slice(embedding, token_id)
        hidden = self.gru.activate(input_vector, prev_state)

        output = matmul(graph.parameter(self.whd, name="whd_"), hidden)
        output = add(output, graph.parameter(self.bias_d, name="bias_d_"))
        prob = softmax(output, name="prob")
        log_prob = log_softmax(output, name="log_prob")

        return GRUOut(hidden=hidden, prob=prob, log_prob=log_prob)

    def forward_sequence(self,
                         graph: Graph,
                         token_ids,
                         vocab_index: Dict[int, int]) -> Node:
        """
        Unroll the network over ``token_ids`` and sum the next-token losses.

        At each step ``i`` the network reads ``token_ids[i]`` and is scored on
        ``token_ids[i + 1]``; both are mapped through ``vocab_index`` first.
        The loss is the unnormalised sum of ``-log p(target)`` over all steps.

        Raises:
            TypeMismatchError: If ``token_ids`` is not a sequence of integers
            MissingCostError: If the sequence has fewer than two tokens
        """
        sentence = _as_token_ids(token_ids)
        self.cost = None

        prev: Optional[GRUOut] = None
        cost: Optional[Node] = None
        for source, target in zip(sentence, sentence[1:]):
            source_id = _position(vocab_index, source)
            target_id = _position(vocab_index, target)
            prev = self.forward_step(graph, source_id, prev)
            cost = _accumulate_cost(prev.log_prob, cost, target_id)

        if cost is None:
            raise MissingCostError(
                f"Cost node is nil: need at least 2 tokens, got {len(sentence)}")
        self.cost = cost
        return cost

    def get_cost(self) -> Node:
        if self.cost is None:
            raise MissingCostError("Cost node is nil")
        return self.cost

    def predict_distribution(self,
                             token_ids,
                             vocab_index: Dict[int, int],
                             graph: Optional[Graph] = None) -> torch.Tensor:
        """
        Feed a prefix through the network and return the final step's
        probability vector.
        """
        sentence = _as_token_ids(token_ids)
        if not sentence:
            raise EmptyInputError("Cannot predict from an empty prefix")

        own_graph = graph is None
        if own_graph:
            graph = Graph(self.dtype)
        try:
            prev: Optional[GRUOut] = None
            for token in sentence:
                prev = self.forward_step(graph, _position(vocab_index, token), prev)
            return prev.prob.value.clone()
        finally:
            if own_graph:
                graph.close()

    def predict_next(self,
                     token_ids,
                     vocab_index: Dict[int, int],
                     graph: Optional[Graph] = None) -> int:
        """
        Arg-max decode the token following ``token_ids``.

        Returns:
            Index of the most probable output; ties go to the first index.
        """
        prob = self.predict_distribution(token_ids, vocab_index, graph)
        return int(torch.argmax(prob).item())


def _accumulate_cost(log_prob: Node, cost: Optional[Node], target_id: int) -> Node:
    loss = negate(slice(log_prob, target_id))
    if cost is None:
        return loss
    return add(cost, loss)


def _position(vocab_index: Dict[int, int], token_id: int) -> int:
    try:
        return vocab_index[token_id]
    except KeyError:
        raise UnknownTokenError(
            f"Token id {token_id} is not in the vocabulary index") from None


def _as_token_ids(token_ids) -> List[int]:
    """Validate ``token_ids`` and return it as a list of Python ints."""
    if torch.is_tensor(token_ids):
        if token_ids.dtype not in _INTEGER_DTYPES or token_ids.dim() != 1:
            raise TypeMismatchError(
                f"Input vector is not 'Int': got {token_ids.dtype} "
                f"tensor of shape {tuple(token_ids.shape)}")
        return token_ids.tolist()

    if isinstance(token_ids, (str, bytes)):
        raise TypeMismatchError("Input vector is not 'Int': got a string")
    try:
        sentence = list(token_ids)
    except TypeError:
        raise TypeMismatchError(
            f"Input vector is not 'Int': got {type(token_ids).__name__}") from None

    for token in sentence:
        if isinstance(token, bool) or not isinstance(token, numbers.Integral):
            raise TypeMismatchError(
                f"Input vector is not 'Int': found {type(token).__name__}")
    return [int(token) for token in sentence]
