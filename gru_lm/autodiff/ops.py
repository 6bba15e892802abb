"""
Operators over graph nodes.

Each operator checks shapes, computes its value eagerly and records the
vector-Jacobian product used by the backward sweep.
"""

from typing import Optional

import torch

from gru_lm.autodiff.graph import Node, graph_of
from gru_lm.errors import ShapeError


def _broadcast_shape(op: str, a: Node, b: Node) -> torch.Size:
    try:
        return torch.broadcast_shapes(a.shape, b.shape)
    except RuntimeError as e:
        raise ShapeError(
            f"{op}: cannot broadcast {tuple(a.shape)} with {tuple(b.shape)}"
        ) from e


def _unbroadcast(grad: torch.Tensor, shape: torch.Size) -> torch.Tensor:
    """Sum ``grad`` back down to ``shape`` after a broadcasting op."""
    while grad.dim() > len(shape):
        grad = grad.sum(dim=0)
    for axis, size in enumerate(shape):
        if size == 1 and grad.shape[axis] != 1:
            grad = grad.sum(dim=axis, keepdim=True)
    return grad


def matmul(a: Node, b: Node, name: Optional[str] = None) -> Node:
    """
    Matrix product of two rank-1 or rank-2 nodes.

    Supports matrix x vector, vector x matrix, matrix x matrix and the
    vector dot product.
    """
    graph = graph_of(a, b)
    x, y = a.value, b.value
    if x.dim() not in (1, 2) or y.dim() not in (1, 2):
        raise ShapeError(
            f"matmul expects rank 1 or 2 operands, got {tuple(x.shape)} "
            f"and {tuple(y.shape)}")
    if x.shape[-1] != y.shape[0]:
        raise ShapeError(
            f"matmul inner dimensions differ: {tuple(x.shape)} @ {tuple(y.shape)}")

    def backward(g):
        if x.dim() == 2 and y.dim() == 2:
            return g @ y.T, x.T @ g
        if x.dim() == 2:
            return torch.outer(g, y), x.T @ g
        if y.dim() == 2:
            return y @ g, torch.outer(x, g)
        return g * y, g * x

    return graph.record('matmul', (a, b), torch.matmul(x, y), backward, name)


def add(a: Node, b: Node, name: Optional[str] = None) -> Node:
    graph = graph_of(a, b)
    _broadcast_shape('add', a, b)
    sa, sb = a.shape, b.shape

    def backward(g):
        return _unbroadcast(g, sa), _unbroadcast(g, sb)

    return graph.record('add', (a, b), a.value + b.value, backward, name)


def subtract(a: Node, b: Node, name: Optional[str] = None) -> Node:
    graph = graph_of(a, b)
    _broadcast_shape('subtract', a, b)
    sa, sb = a.shape, b.shape

    def backward(g):
        return _unbroadcast(g, sa), -_unbroadcast(g, sb)

    return graph.record('subtract', (a, b), a.value - b.value, backward, name)


def hadamard(a: Node, b: Node, name: Optional[str] = None) -> Node:
    """Elementwise product."""
    graph = graph_of(a, b)
    _broadcast_shape('hadamard', a, b)
    x, y = a.value, b.value

    def backward(g):
        return _unbroadcast(g * y, x.shape), _unbroadcast(g * x, y.shape)

    return graph.record('hadamard', (a, b), x * y, backward, name)


def sigmoid(a: Node, name: Optional[str] = None) -> Node:
    graph = graph_of(a)
    out = torch.sigmoid(a.value)

    def backward(g):
        return (g * out * (1 - out),)

    return graph.record('sigmoid', (a,), out, backward, name)


def tanh(a: Node, name: Optional[str] = None) -> Node:
    graph = graph_of(a)
    out = torch.tanh(a.value)

    def backward(g):
        return (g * (1 - out * out),)

    return graph.record('tanh', (a,), out, backward, name)


def negate(a: Node, name: Optional[str] = None) -> Node:
    graph = graph_of(a)

    def backward(g):
        return (-g,)

    return graph.record('negate', (a,), -a.value, backward, name)


def log(a: Node, name: Optional[str] = None) -> Node:
    graph = graph_of(a)
    x = a.value

    def backward(g):
        return (g / x,)

    return graph.record('log', (a,), torch.log(x), backward, name)


def softmax(a: Node, name: Optional[str] = None) -> Node:
    """
    Softmax over the last axis.

    The maximum is subtracted before exponentiating so large logits cannot
    overflow.
    """
    graph = graph_of(a)
    x = a.value
    if x.dim() == 0:
        raise ShapeError("softmax needs at least one axis, got a scalar")
    shifted = x - x.max(dim=-1, keepdim=True).values
    exp = torch.exp(shifted)
    out = exp / exp.sum(dim=-1, keepdim=True)

    def backward(g):
        return (out * (g - (g * out).sum(dim=-1, keepdim=True)),)

    return graph.record('softmax', (a,), out, backward, name)


def log_softmax(a: Node, name: Optional[str] = None) -> Node:
    """
    Log of the softmax over the last axis, computed from the logits.

    ``x - max - log(sum(exp(x - max)))`` stays finite for any logit gap,
    where ``log(softmax(x))`` underflows to ``-inf``.
    """
    graph = graph_of(a)
    x = a.value
    if x.dim() == 0:
        raise ShapeError("log_softmax needs at least one axis, got a scalar")
    shifted = x - x.max(dim=-1, keepdim=True).values
    out = shifted - torch.log(torch.exp(shifted).sum(dim=-1, keepdim=True))
    prob = torch.exp(out)

    def backward(g):
        return (g - prob * g.sum(dim=-1, keepdim=True),)

    return graph.record('log_softmax', (a,), out, backward, name)


def slice(a: Node, index: int, name: Optional[str] = None) -> Node:
    """Select row ``index`` of a matrix or element ``index`` of a vector."""
    graph = graph_of(a)
    x = a.value
    if x.dim() == 0:
        raise ShapeError("Cannot slice a scalar")
    if not 0 <= index < x.shape[0]:
        raise ShapeError(
            f"Slice index {index} out of range for shape {tuple(x.shape)}")

    def backward(g):
        grad = torch.zeros_like(x)
        grad[index] = g
        return (grad,)

    return graph.record('slice', (a,), x[index].clone(), backward, name)
