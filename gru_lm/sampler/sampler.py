"""
Predictor that completes text prefixes with a trained network.

Predictions are positions in the training sentence, so the predicted word is
read back from the training words rather than from the hash slot (which may
be shared by several words).
"""

import logging
import time
from typing import Any, Dict, List, Optional, Sequence

import torch

from gru_lm.errors import EmptyInputError, UnknownTokenError
from gru_lm.models.gru import SequenceNetwork
from gru_lm.sampler.config import DEFAULT_PREDICTION_CONFIG
from gru_lm.tokenizer import VocabularyEncoder, build_vocab_index

logger = logging.getLogger(__name__)


class Predictor:
    """
    Arg-max next-token predictor over a trained SequenceNetwork.
    """

    def __init__(self,
                 network: SequenceNetwork,
                 encoder: VocabularyEncoder,
                 words: Sequence[str],
                 token_ids: Optional[Sequence[int]] = None,
                 vocab_index: Optional[Dict[int, int]] = None,
                 prediction_config: Optional[Dict[str, Any]] = None):
        """
        Initialize the predictor.

        Args:
            network: Trained network
            encoder: Encoder the training sentence was hashed with
            words: Tokens of the training sentence
            token_ids: Hashed training sentence (recomputed from ``words``
                when omitted)
            vocab_index: Token id -> position map of the training sentence
            prediction_config: Overrides for DEFAULT_PREDICTION_CONFIG
        """
        self.network = network
        self.encoder = encoder
        self.words = list(words)
        self.token_ids = list(token_ids) if token_ids is not None else encoder.hash(self.words)
        self.vocab_index = vocab_index if vocab_index is not None else build_vocab_index(self.token_ids)

        self.prediction_config = DEFAULT_PREDICTION_CONFIG.copy()
        if prediction_config:
            self.prediction_config.update(prediction_config)
        if self.prediction_config['decoding_strategy'] != 'greedy':
            raise ValueError(
                f"Unsupported decoding strategy: {self.prediction_config['decoding_strategy']}")

    def predict_ids(self, token_ids: Sequence[int]) -> int:
        """Return the predicted position following an already hashed prefix."""
        return self.network.predict_next(token_ids, self.vocab_index)

    def predict(self, prefix: str, num_tokens: Optional[int] = None) -> Dict[str, Any]:
        """
        Extend ``prefix`` by greedily predicted words.

        Args:
            prefix: Raw prefix text
            num_tokens: Number of words to append (defaults to the config)

        Returns:
            Dictionary with the prediction and its metadata
        """
        if num_tokens is None:
            num_tokens = self.prediction_config['num_tokens']

        start_time = time.time()
        prefix_ids = self.encoder.encode(prefix)

        ids = list(prefix_ids)
        positions: List[int] = []
        probabilities: List[float] = []
        for _ in range(num_tokens):
            prob = self.network.predict_distribution(ids, self.vocab_index)
            position = int(torch.argmax(prob).item())
            positions.append(position)
            probabilities.append(prob[position].item())
            # feed the predicted word back in as its hashed id
            ids.append(self.token_ids[position])

        completion = [self.words[p] for p in positions]
        result = {
            'prefix': prefix,
            'prefix_ids': prefix_ids,
            'predicted_position': positions[0] if positions else None,
            'predicted_word': completion[0] if completion else None,
            'probability': probabilities[0] if probabilities else None,
            'positions': positions,
            'probabilities': probabilities,
            'completion': completion,
            'generation_time': time.time() - start_time,
            'error': None,
        }

        if self.prediction_config.get('log_predictions', True):
            logger.info(f"Sentence: {prefix} ... {' '.join(completion)}")
        return result

    def predict_batch(self,
                      prefixes: Sequence[str],
                      num_tokens: Optional[int] = None) -> List[Dict[str, Any]]:
        """
        Predict every prefix in turn.

        A prefix with no words, or with a word the training sentence never
        produced, is logged and returned with an ``error`` entry; the
        remaining prefixes are still predicted.
        """
        results = []
        for prefix in prefixes:
            try:
                results.append(self.predict(prefix, num_tokens))
            except (EmptyInputError, UnknownTokenError) as e:
                logger.error(f"Prediction failed for '{prefix}': {e}")
                results.append({'prefix': prefix, 'error': str(e), 'completion': []})
        return results


def create_predictor(trainer, prediction_config: Optional[Dict[str, Any]] = None) -> Predictor:
    """
    Build a Predictor from a trainer that was set up with a data config.

    Args:
        trainer: Trainer holding the network, encoder and training sentence
        prediction_config: Overrides for DEFAULT_PREDICTION_CONFIG
    """
    if trainer.encoder is None or not trainer.words:
        raise ValueError("Trainer has no training sentence to predict from")
    return Predictor(network=trainer.network,
                     encoder=trainer.encoder,
                     words=trainer.words,
                     token_ids=trainer.token_ids,
                     vocab_index=trainer.vocab_index,
                     prediction_config=prediction_config)
