"""
Trainer for the GRU language model.

Every epoch runs three phases over the one training sentence:

    forward   build a fresh graph and compute the summed next-token loss
    backward  differentiate the loss with respect to every learnable tensor
    update    apply RMSProp and write the new values into the parameters

Parameter tensors are the only thing that survives from one epoch to the
next; the graph and all its nodes are released at the end of each epoch.
"""

import logging
import os
import sys
import time
from collections import OrderedDict
from contextlib import contextmanager
from typing import Any, Dict, List, Optional

import torch
from tqdm import tqdm

from gru_lm.autodiff import Graph, gradients
from gru_lm.errors import TrainingError
from gru_lm.models.gru import SequenceNetwork
from gru_lm.models.gru import config as model_defaults
from gru_lm.tokenizer import VocabularyEncoder, build_vocab_index
from gru_lm.trainer.config import DATA_CONFIG, TRAINING_CONFIG
from gru_lm.trainer.optimizer import rmsprop_step


class Trainer:
    """
    Drives forward, backward and update phases for a fixed number of epochs.
    """

    def __init__(self,
                 network: SequenceNetwork,
                 training_config: Optional[Dict[str, Any]] = None,
                 model_config: Optional[Dict[str, Any]] = None,
                 data_config: Optional[Dict[str, Any]] = None,
                 encoder: Optional[VocabularyEncoder] = None,
                 log_file: Optional[str] = None):
        """
        Initialize the trainer.

        Args:
            network: The network to train
            training_config: Training parameters (learning_rate, epochs, ...)
            model_config: Model description, used for logging only
            data_config: Optional training text and vocabulary size
            encoder: Encoder used to turn the training text into token ids
            log_file: Optional path of a detailed log file
        """
        self.network = network
        self.training_config = {**TRAINING_CONFIG, **(training_config or {})}
        self.model_config = model_config or {}
        self.data_config = data_config
        self.log_file = log_file

        self._setup_logging()

        # Training state
        self.current_epoch = 0
        self.optimizer_state = None

        self._setup_optimizer()

        self.encoder = encoder
        self.words: List[str] = []
        self.token_ids: List[int] = []
        self.vocab_index: Dict[int, int] = {}
        if data_config is not None:
            self._setup_data()

    def _setup_logging(self):
        """
        Setup logging for the trainer.
        Console output goes to stdout; a detailed file log is added when
        ``log_file`` is set.
        """
        model_type = self.model_config.get('model_type', 'gru')
        self.logger = logging.getLogger(f"trainer_{model_type}")
        self.logger.setLevel(logging.DEBUG if self.log_file else logging.INFO)
        self.logger.propagate = False

        # Clear any existing handlers to avoid duplicates
        for handler in list(self.logger.handlers):
            handler.close()
        self.logger.handlers.clear()

        simple_formatter = logging.Formatter(
            '%(asctime)s - %(levelname)s - %(message)s', datefmt='%H:%M:%S')
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(logging.INFO)
        console_handler.setFormatter(simple_formatter)
        self.logger.addHandler(console_handler)

        if self.log_file:
            log_dir = os.path.dirname(self.log_file)
            if log_dir:
                os.makedirs(log_dir, exist_ok=True)
            detailed_formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S')
            file_handler = logging.FileHandler(self.log_file, mode='w')
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(detailed_formatter)
            self.logger.addHandler(file_handler)
            self.logger.info(f"Log file: {self.log_file}")

        self.logger.debug(f"Training config: {self.training_config}")
        self.logger.debug(f"Model config: {self.model_config}")

    def _setup_optimizer(self):
        """Read RMSProp settings from the training config."""
        cfg = self.training_config
        self.learning_rate = float(cfg.get('learning_rate', 0.01))
        self.decay = float(cfg.get('rmsprop_decay', 0.9))
        self.eps = float(cfg.get('rmsprop_eps', 1e-8))
        clip = cfg.get('grad_clip')
        self.grad_clip = float(clip) if clip is not None else None

        self.logger.info(
            f"Optimizer configured: rmsprop with lr={self.learning_rate}, "
            f"decay={self.decay}, eps={self.eps}, clip={self.grad_clip}")

    def _setup_data(self):
        """Tokenize and hash the training text from the data config."""
        if self.encoder is None:
            self.encoder = VocabularyEncoder(
                self.data_config.get('vocab_size', DATA_CONFIG['vocab_size']))
        self.words = self.encoder.tokenize(self.data_config['text'])
        self.token_ids = self.encoder.hash(self.words)
        self.vocab_index = build_vocab_index(self.token_ids)

        self.logger.info(f"Training sentence: {len(self.words)} tokens")
        collisions = self.encoder.collisions()
        if collisions:
            self.logger.debug(f"Hash slots hit more than once: {collisions}")

    @contextmanager
    def _phase(self, phase: str):
        try:
            yield
        except Exception as e:
            message = f"{phase} phase failed at epoch {self.current_epoch}: {e}"
            self.logger.error(message)
            raise TrainingError(phase, self.current_epoch, message) from e

    def _resolve_data(self, token_ids, vocab_index):
        if token_ids is None:
            token_ids, default_index = self.token_ids, self.vocab_index
        else:
            default_index = None
        if vocab_index is None:
            vocab_index = default_index or build_vocab_index(token_ids)
        return token_ids, vocab_index

    def train_epoch(self, token_ids=None, vocab_index=None) -> float:
        """
        Run one forward/backward/update cycle.

        Returns:
            The loss computed in the forward phase, before the update
        """
        token_ids, vocab_index = self._resolve_data(token_ids, vocab_index)
        params = self.network.parameters()

        with Graph(self.network.dtype) as graph:
            with self._phase('forward'):
                loss = self.network.forward_sequence(graph, token_ids, vocab_index)
                loss_value = loss.item()

            with self._phase('backward'):
                nodes = self.network.parameter_nodes(graph)
                grads = gradients(loss, nodes.values())
                named_grads = OrderedDict(
                    (name, grads[node]) for name, node in nodes.items())

        with self._phase('update'):
            new_params, self.optimizer_state = rmsprop_step(
                params, named_grads, self.optimizer_state,
                learning_rate=self.learning_rate,
                decay=self.decay,
                eps=self.eps,
                clip=self.grad_clip)
            params.assign(new_params)

        return loss_value

    def evaluate(self, token_ids=None, vocab_index=None) -> float:
        """Compute the loss with the current parameters without updating them."""
        token_ids, vocab_index = self._resolve_data(token_ids, vocab_index)
        with Graph(self.network.dtype) as graph:
            with self._phase('forward'):
                return self.network.forward_sequence(graph, token_ids, vocab_index).item()

    def train(self,
              epochs: Optional[int] = None,
              token_ids=None,
              vocab_index=None) -> Dict[str, Any]:
        """
        Main training loop.

        Args:
            epochs: Number of epochs to train (overrides config if provided)
            token_ids: Training sequence (defaults to the data config text)
            vocab_index: Token id -> position map for ``token_ids``

        Returns:
            Training history dictionary
        """
        if epochs is None:
            epochs = self.training_config.get('epochs', 500)
        epochs = int(epochs)
        report_every = max(1, int(self.training_config.get('report_every', 50)))
        token_ids, vocab_index = self._resolve_data(token_ids, vocab_index)

        history: Dict[str, Any] = {'losses': [], 'reported': []}

        self.logger.info("=" * 60)
        self.logger.info("STARTING TRAINING SESSION")
        self.logger.info("=" * 60)
        self.logger.info(f"Training for {epochs} epochs")
        self.logger.info(f"Model parameters: {self.network.num_parameters():,}")
        self.logger.info(f"Sequence length: {len(token_ids)}")

        training_start_time = time.time()

        progress_bar = tqdm(range(epochs),
                            desc="Training",
                            disable=not self.training_config.get('progress_bar', True))
        for epoch in progress_bar:
            self.current_epoch = epoch
            loss = self.train_epoch(token_ids, vocab_index)
            history['losses'].append(loss)
            progress_bar.set_postfix({'loss': loss})

            if epoch % report_every == 0 or epoch == epochs - 1:
                history['reported'].append((epoch, loss))
                self.logger.info(f"Epoch {epoch}: loss {loss:.3f}")

        total_training_time = time.time() - training_start_time

        history['initial_loss'] = history['losses'][0] if history['losses'] else None
        history['final_loss'] = self.evaluate(token_ids, vocab_index)
        history['total_training_time'] = total_training_time

        self.logger.info("=" * 60)
        self.logger.info("TRAINING COMPLETED")
        self.logger.info(f"Total training time: {total_training_time:.2f}s")
        self.logger.info(f"Final loss: {history['final_loss']:.4f}")
        self.logger.info("=" * 60)
        return history


def create_trainer(text: Optional[str] = None,
                   vocab_size: int = model_defaults.vocab_size,
                   embedding_dim: int = model_defaults.embedding_dim,
                   hidden_dim: int = model_defaults.hidden_dim,
                   seed: Optional[int] = model_defaults.seed,
                   dtype: torch.dtype = model_defaults.dtype,
                   **kwargs) -> Trainer:
    """
    Factory function to build the encoder, network and trainer for one text.

    The network gets one embedding row and one output per position of the
    hashed training sentence.

    Args:
        text: Training sentence (defaults to the data config text)
        vocab_size: Number of hash slots
        embedding_dim: Width of the embeddings
        hidden_dim: Width of the GRU hidden state
        seed: Seed for parameter initialisation
        dtype: Floating point type of the parameters
        **kwargs: Training config overrides, plus optional ``log_file``

    Returns:
        Configured trainer instance
    """
    data_config = {
        'text': text if text is not None else DATA_CONFIG['text'],
        'vocab_size': vocab_size,
    }
    encoder = VocabularyEncoder(vocab_size)
    sentence_length = len(encoder.hash(encoder.tokenize(data_config['text'])))

    network = SequenceNetwork(input_size=sentence_length,
                              embedding_size=embedding_dim,
                              output_size=sentence_length,
                              hidden_size=hidden_dim,
                              dtype=dtype,
                              seed=seed)
    model_config = {
        'model_type': 'gru',
        'vocab_size': vocab_size,
        'input_size': sentence_length,
        'embedding_dim': embedding_dim,
        'hidden_dim': hidden_dim,
    }

    log_file = kwargs.pop('log_file', None)
    training_config = {key: kwargs[key] for key in TRAINING_CONFIG if key in kwargs}
    training_config.update(kwargs.get('training_config', {}))

    return Trainer(network=network,
                   training_config=training_config,
                   model_config=model_config,
                   data_config=data_config,
                   encoder=encoder,
                   log_file=log_file)
