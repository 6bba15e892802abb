#!/usr/bin/env python3
"""
Tests for the Trainer: loss behaviour, history, logging and phase errors.
"""

import os
import sys

import pytest
import torch

# Add project root to Python path
current_dir = os.path.dirname(os.path.abspath(__file__))
project_root = os.path.dirname(current_dir)
sys.path.insert(0, project_root)

import gru_lm.trainer.trainer as trainer_module
from gru_lm.errors import (MissingCostError, OptimizerStepError, ShapeError,
                           TrainingError)
from gru_lm.models.gru import SequenceNetwork
from gru_lm.trainer import Trainer, create_trainer


class TestTrainer:
    @pytest.fixture(autouse=True)
    def setup(self):
        self.trainer = create_trainer(seed=0, progress_bar=False)

    def test_network_is_sized_to_sentence(self):
        assert len(self.trainer.words) == 16
        assert self.trainer.network.input_size == 16
        assert self.trainer.network.output_size == 16
        assert self.trainer.network.embedding.shape == (16, 30)
        assert self.trainer.network.hidden_size == 25

    def test_loss_decreases_on_default_sentence(self):
        history = self.trainer.train(epochs=500)

        assert history['initial_loss'] > 0
        assert history['final_loss'] < history['initial_loss']
        assert len(history['losses']) == 500
        reported = [loss for _, loss in history['reported']]
        assert sum(reported[5:]) / len(reported[5:]) < sum(reported[:5]) / 5

    def test_reporting_interval(self):
        self.trainer.training_config['report_every'] = 4
        history = self.trainer.train(epochs=10)
        assert [epoch for epoch, _ in history['reported']] == [0, 4, 8, 9]
        assert history['reported'][0][1] == history['losses'][0]

    def test_train_epoch_returns_pre_update_loss(self):
        before = self.trainer.evaluate()
        loss = self.trainer.train_epoch()
        after = self.trainer.evaluate()
        assert loss == pytest.approx(before)
        assert after != before

    def test_parameters_are_updated_in_place(self):
        whd = self.trainer.network.whd
        snapshot = whd.clone()
        self.trainer.train_epoch()
        assert self.trainer.network.whd is whd
        assert not torch.equal(whd, snapshot)

    def test_zero_epochs(self):
        history = self.trainer.train(epochs=0)
        assert history['losses'] == []
        assert history['initial_loss'] is None
        assert history['final_loss'] > 0

    def test_explicit_token_ids_build_their_own_index(self):
        ids = self.trainer.token_ids[:4]
        loss = self.trainer.train_epoch(token_ids=ids)
        assert loss > 0

    def test_log_file(self, tmp_path):
        log_file = tmp_path / "logs" / "train.log"
        trainer = create_trainer(text="a b a b", vocab_size=4, seed=0,
                                 progress_bar=False, log_file=str(log_file))
        trainer.train(epochs=3)
        for handler in trainer.logger.handlers:
            handler.flush()
        content = log_file.read_text()
        assert "STARTING TRAINING SESSION" in content
        assert "Epoch 0" in content


class TestTrainingErrors:
    @pytest.fixture(autouse=True)
    def setup(self):
        self.trainer = create_trainer(text="a b a b", vocab_size=4, seed=0,
                                      progress_bar=False)

    def test_single_token_sentence_fails_in_forward(self):
        trainer = create_trainer(text="hello", seed=0, progress_bar=False)
        with pytest.raises(TrainingError) as excinfo:
            trainer.train(epochs=1)
        assert excinfo.value.phase == 'forward'
        assert excinfo.value.epoch == 0
        assert isinstance(excinfo.value.__cause__, MissingCostError)

    def test_index_outside_network_fails_in_forward(self):
        network = SequenceNetwork(input_size=2, embedding_size=3, hidden_size=2, seed=0)
        trainer = Trainer(network, training_config={'progress_bar': False})
        with pytest.raises(TrainingError) as excinfo:
            trainer.train_epoch(token_ids=[1, 2, 3])
        assert excinfo.value.phase == 'forward'
        assert isinstance(excinfo.value.__cause__, ShapeError)

    def test_backward_failure(self, monkeypatch):
        def broken_gradients(loss, params):
            raise ShapeError("broken")

        monkeypatch.setattr(trainer_module, "gradients", broken_gradients)
        with pytest.raises(TrainingError) as excinfo:
            self.trainer.train(epochs=2)
        assert excinfo.value.phase == 'backward'
        assert isinstance(excinfo.value.__cause__, ShapeError)

    def test_update_failure(self, monkeypatch):
        def broken_step(*args, **kwargs):
            raise OptimizerStepError("mismatch")

        monkeypatch.setattr(trainer_module, "rmsprop_step", broken_step)
        with pytest.raises(TrainingError) as excinfo:
            self.trainer.train(epochs=2)
        assert excinfo.value.phase == 'update'
        assert isinstance(excinfo.value.__cause__, OptimizerStepError)

    def test_failure_reports_epoch(self, monkeypatch):
        calls = []
        original = trainer_module.rmsprop_step

        def fail_on_third(*args, **kwargs):
            calls.append(1)
            if len(calls) == 3:
                raise OptimizerStepError("mismatch")
            return original(*args, **kwargs)

        monkeypatch.setattr(trainer_module, "rmsprop_step", fail_on_third)
        with pytest.raises(TrainingError) as excinfo:
            self.trainer.train(epochs=5)
        assert excinfo.value.epoch == 2


class TestEndToEnd:
    def test_learns_alternating_sequence(self):
        trainer = create_trainer(text="a b a b", vocab_size=4, seed=0,
                                 epochs=500, progress_bar=False)
        assert trainer.token_ids == [3, 1, 3, 1]
        assert trainer.vocab_index == {3: 2, 1: 3}

        history = trainer.train()
        assert history['final_loss'] < history['initial_loss']

        network = trainer.network
        position = network.predict_next([3], trainer.vocab_index)
        prob = network.predict_distribution([3], trainer.vocab_index)
        assert position == trainer.vocab_index[1]
        assert trainer.words[position] == "b"
        assert prob[position].item() > 0.5
