"""
Reverse-mode differentiable computation graph.

A Graph is an arena of nodes addressed by integer handles. Leaves wrap
parameter or constant tensors; every other node is the output of an operator
applied to parent nodes and carries the vector-Jacobian product rule for that
operator. Values are computed eagerly when a node is created, so each node is
evaluated exactly once per pass. Handles are assigned in creation order,
which makes the arena itself a topological order for the backward sweep.

torch is used purely as an array backend here; no tensor ever has
``requires_grad`` set.
"""

import logging
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

import torch

from gru_lm.errors import ShapeError, StaleNodeError

logger = logging.getLogger(__name__)

BackwardFn = Callable[[torch.Tensor], Tuple[Optional[torch.Tensor], ...]]


class Node:
    """
    A vertex of a Graph.

    Args:
        graph: The owning graph
        handle: Position of the node in the graph's arena
        op: Operator name, or 'parameter' / 'constant' for leaves
        parents: Handles of the parent nodes
        value: The forward value computed for this node
        backward: Maps the upstream gradient to one contribution per parent
        name: Optional label used in error messages and reprs
        trainable: Whether the node is a learnable parameter
    """

    __slots__ = ('graph', 'handle', 'op', 'parents', 'name', 'trainable',
                 '_value', '_backward')

    def __init__(self,
                 graph: 'Graph',
                 handle: int,
                 op: str,
                 parents: Tuple[int, ...],
                 value: torch.Tensor,
                 backward: Optional[BackwardFn] = None,
                 name: Optional[str] = None,
                 trainable: bool = False):
        self.graph = graph
        self.handle = handle
        self.op = op
        self.parents = parents
        self.name = name
        self.trainable = trainable
        self._value = value
        self._backward = backward

    @property
    def value(self) -> torch.Tensor:
        if self.graph.closed:
            raise StaleNodeError(
                f"Node {self.label} belongs to a closed graph")
        return self._value

    @property
    def shape(self) -> torch.Size:
        return self.value.shape

    @property
    def label(self) -> str:
        return self.name if self.name else f"{self.op}#{self.handle}"

    @property
    def is_leaf(self) -> bool:
        return self._backward is None

    def item(self) -> float:
        """Return the value of a scalar node as a Python float."""
        return self.value.item()

    def __repr__(self):
        shape = tuple(self._value.shape)
        return f"Node({self.label}, shape={shape})"


class Graph:
    """
    Arena owning every node built during one forward/backward pass.

    Closing the graph releases the nodes; any later use of them raises
    StaleNodeError. Parameter tensors are not owned by the graph and survive
    it, which is what lets the next pass reuse the updated weights.

    Example:
        with Graph() as g:
            w = g.parameter(weight, name="w")
            x = g.constant(torch.ones(3))
            y = matmul(w, x)
    """

    def __init__(self, dtype: torch.dtype = torch.float32):
        self.dtype = dtype
        self.closed = False
        self._nodes: List[Node] = []
        # id(tensor) -> handle, so a weight reused at every step is one node
        self._parameter_handles: Dict[int, int] = {}

    def __enter__(self) -> 'Graph':
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    def __len__(self):
        return len(self._nodes)

    def close(self):
        """Release every node of this graph."""
        if self.closed:
            return
        logger.debug(f"Closing graph with {len(self._nodes)} nodes")
        self.closed = True
        self._nodes.clear()
        self._parameter_handles.clear()

    def node(self, handle: int) -> Node:
        self._check_open()
        return self._nodes[handle]

    def constant(self, value, name: Optional[str] = None) -> Node:
        """Create a non-learnable leaf from a tensor or nested sequence."""
        self._check_open()
        if not torch.is_tensor(value):
            value = torch.as_tensor(value, dtype=self.dtype)
        elif value.is_floating_point():
            value = value.to(self.dtype)
        return self._append('constant', (), value, None, name, False)

    def parameter(self,
                  tensor: torch.Tensor,
                  name: Optional[str] = None,
                  trainable: bool = True) -> Node:
        """
        Create (or return the existing) leaf node wrapping a parameter tensor.

        The tensor is wrapped by reference so in-place updates made after the
        pass are visible to the next graph built over it.
        """
        self._check_open()
        handle = self._parameter_handles.get(id(tensor))
        if handle is not None:
            return self._nodes[handle]
        node = self._append('parameter', (), tensor, None, name, trainable)
        self._parameter_handles[id(tensor)] = node.handle
        return node

    def learnables(self) -> List[Node]:
        """Return every trainable parameter node created so far."""
        self._check_open()
        return [self._nodes[h] for h in self._parameter_handles.values()
                if self._nodes[h].trainable]

    def record(self,
               op: str,
               parents: Sequence[Node],
               value: torch.Tensor,
               backward: BackwardFn,
               name: Optional[str] = None) -> Node:
        """Append the output node of an operator applied to ``parents``."""
        self._check_open()
        handles = tuple(p.handle for p in parents)
        return self._append(op, handles, value, backward, name, False)

    def _append(self, op, parents, value, backward, name, trainable) -> Node:
        node = Node(self, len(self._nodes), op, parents, value, backward,
                    name, trainable)
        self._nodes.append(node)
        return node

    def _check_open(self):
        if self.closed:
            raise StaleNodeError("Graph has been closed")


def graph_of(*nodes: Node) -> Graph:
    """Return the single open graph shared by ``nodes``."""
    graph = nodes[0].graph
    for node in nodes:
        if node.graph is not graph:
            raise StaleNodeError(
                f"Node {node.label} belongs to a different graph")
    graph._check_open()
    return graph


def gradients(loss: Node, params: Iterable[Node]) -> Dict[Node, torch.Tensor]:
    """
    Compute d(loss)/d(param) for every node in ``params`` in one reverse sweep.

    Args:
        loss: A scalar node
        params: Nodes to differentiate with respect to

    Returns:
        Dictionary mapping each requested node to its gradient tensor. Nodes
        the loss does not depend on get a zero gradient.
    """
    params = list(params)
    graph = graph_of(loss, *params)
    if loss.value.dim() != 0:
        raise ShapeError(
            f"Loss must be a scalar, got shape {tuple(loss.value.shape)}")

    reachable = set()
    stack = [loss.handle]
    while stack:
        handle = stack.pop()
        if handle in reachable:
            continue
        reachable.add(handle)
        stack.extend(graph._nodes[handle].parents)

    # Accumulators start empty (zero) and sum contributions over all paths.
    grads: Dict[int, torch.Tensor] = {loss.handle: torch.ones_like(loss.value)}
    for handle in sorted(reachable, reverse=True):
        node = graph._nodes[handle]
        upstream = grads.get(handle)
        if upstream is None or node.is_leaf:
            continue
        for parent, contribution in zip(node.parents, node._backward(upstream)):
            if contribution is None:
                continue
            if parent in grads:
                grads[parent] = grads[parent] + contribution
            else:
                grads[parent] = contribution

    logger.debug(f"Backward sweep visited {len(reachable)} of {len(graph)} nodes")
    return {
        p: grads[p.handle] if p.handle in grads else torch.zeros_like(p.value)
        for p in params
    }
