#!/usr/bin/env python3
"""
Tests for the GRU cell: shapes, gate ranges and gradients.
"""

import os
import sys

import pytest
import torch

# Add project root to Python path
current_dir = os.path.dirname(os.path.abspath(__file__))
project_root = os.path.dirname(current_dir)
sys.path.insert(0, project_root)

from gru_lm.autodiff import Graph, gradients, matmul
from gru_lm.errors import ShapeError
from gru_lm.models.gru import GRUCell


def numeric_gradient(loss_fn, tensor, eps=1e-6):
    grad = torch.zeros_like(tensor)
    flat = tensor.view(-1)
    flat_grad = grad.view(-1)
    for i in range(flat.numel()):
        original = flat[i].item()
        flat[i] = original + eps
        plus = loss_fn()
        flat[i] = original - eps
        minus = loss_fn()
        flat[i] = original
        flat_grad[i] = (plus - minus) / (2 * eps)
    return grad


class TestGRUCell:
    @pytest.fixture(autouse=True)
    def setup(self):
        self.generator = torch.Generator().manual_seed(1234)
        self.input_size = 5
        self.hidden_size = 4
        self.cell = GRUCell(self.input_size, self.hidden_size,
                            dtype=torch.float64, generator=self.generator)
        self.x = torch.randn(self.input_size, generator=self.generator, dtype=torch.float64)
        self.h = torch.tanh(torch.randn(self.hidden_size, generator=self.generator,
                                        dtype=torch.float64))

    @pytest.mark.parametrize("input_size,hidden_size", [(1, 1), (3, 7), (30, 25)])
    def test_output_has_hidden_shape(self, input_size, hidden_size):
        cell = GRUCell(input_size, hidden_size)
        with Graph() as graph:
            x = graph.constant(torch.ones(input_size))
            h = graph.constant(torch.zeros(hidden_size))
            out = cell.activate(x, h)
            assert out.shape == (hidden_size,)

    def test_wrong_input_size_raises(self):
        with Graph(torch.float64) as graph:
            x = graph.constant(torch.ones(self.input_size + 1))
            h = graph.constant(torch.zeros(self.hidden_size))
            with pytest.raises(ShapeError):
                self.cell.activate(x, h)

    def test_wrong_state_size_raises(self):
        with Graph(torch.float64) as graph:
            x = graph.constant(self.x)
            h = graph.constant(torch.zeros(self.hidden_size + 2))
            with pytest.raises(ShapeError):
                self.cell.activate(x, h)

    def test_gates_are_in_range(self):
        with Graph(torch.float64) as graph:
            gates = self.cell.gates(graph.constant(self.x), graph.constant(self.h))
            z = gates['z'].value
            r = gates['r'].value
            candidate = gates['candidate'].value

        assert ((z > 0) & (z < 1)).all()
        assert ((r > 0) & (r < 1)).all()
        assert ((candidate > -1) & (candidate < 1)).all()

    def test_hidden_is_convex_combination(self):
        with Graph(torch.float64) as graph:
            gates = self.cell.gates(graph.constant(self.x), graph.constant(self.h))
            candidate = gates['candidate'].value
            hidden = gates['hidden'].value

        low = torch.minimum(self.h, candidate)
        high = torch.maximum(self.h, candidate)
        assert ((hidden >= low - 1e-12) & (hidden <= high + 1e-12)).all()

    def test_no_state_between_calls(self):
        with Graph(torch.float64) as graph:
            x = graph.constant(self.x)
            h = graph.constant(self.h)
            first = self.cell.activate(x, h).value
            second = self.cell.activate(x, h).value
        assert torch.equal(first, second)

    def test_biases_start_at_zero(self):
        for name in ('b', 'bz', 'br'):
            assert torch.equal(getattr(self.cell, name), torch.zeros(self.hidden_size, dtype=torch.float64))

    def test_learnables_lists_nine_tensors(self):
        learnables = self.cell.learnables()
        assert list(learnables) == list(GRUCell.PARAMETER_NAMES)
        assert learnables['u'].shape == (self.hidden_size, self.hidden_size)
        assert learnables['wz'].shape == (self.hidden_size, self.input_size)
        assert learnables['br'].shape == (self.hidden_size,)


class TestGRUCellGradients:
    @pytest.fixture(autouse=True)
    def setup(self):
        generator = torch.Generator().manual_seed(42)
        self.cell = GRUCell(2, 2, dtype=torch.float64, generator=generator)
        # non-zero biases so their gradients are exercised from a generic point
        for name in ('b', 'bz', 'br'):
            getattr(self.cell, name).copy_(
                0.1 * torch.randn(2, generator=generator, dtype=torch.float64))
        self.x = torch.randn(2, generator=generator, dtype=torch.float64)
        self.h = 0.5 * torch.randn(2, generator=generator, dtype=torch.float64)
        self.readout = torch.randn(2, generator=generator, dtype=torch.float64)

    def _build(self, graph):
        x = graph.parameter(self.x, name="x")
        h = graph.parameter(self.h, name="h")
        hidden = self.cell.activate(x, h)
        return matmul(hidden, graph.constant(self.readout))

    def _loss(self):
        with Graph(torch.float64) as graph:
            return self._build(graph).item()

    def test_matches_finite_differences(self):
        targets = dict(self.cell.learnables())
        targets['x'] = self.x
        targets['h'] = self.h

        with Graph(torch.float64) as graph:
            loss = self._build(graph)
            nodes = {name: graph.parameter(t) for name, t in targets.items()}
            grads = gradients(loss, nodes.values())
            analytic = {name: grads[node].clone() for name, node in nodes.items()}

        for name, tensor in targets.items():
            numeric = numeric_gradient(self._loss, tensor)
            assert torch.allclose(analytic[name], numeric, rtol=1e-3, atol=1e-7), name
