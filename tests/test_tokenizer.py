#!/usr/bin/env python3
"""
Tests for tokenization, feature hashing and the vocabulary index.
"""

import os
import sys

import pytest

# Add project root to Python path
current_dir = os.path.dirname(os.path.abspath(__file__))
project_root = os.path.dirname(current_dir)
sys.path.insert(0, project_root)

import gru_lm.tokenizer as tokenizer_module
from gru_lm.errors import EmptyInputError, HashConversionError
from gru_lm.tokenizer import VocabularyEncoder, build_vocab_index
from gru_lm.trainer.config import DATA_CONFIG


class TestVocabularyEncoder:
    @pytest.fixture(autouse=True)
    def setup(self):
        self.encoder = VocabularyEncoder(31)

    def test_tokenize_lowercases_and_drops_punctuation(self):
        words = self.encoder.tokenize(DATA_CONFIG['text'])
        assert words == ['what', 'did', 'the', 'bartender', 'say', 'to', 'the',
                         'jumper', 'cables', 'you', 'better', 'not', 'try', 'to',
                         'start', 'anything']

    def test_tokenize_splits_on_any_non_alphanumeric(self):
        assert self.encoder.tokenize("Hello,World--foo_bar 42") == ['hello', 'world', 'foo', 'bar', '42']

    def test_tokenize_empty_string(self):
        with pytest.raises(EmptyInputError):
            self.encoder.tokenize("")

    def test_tokenize_whitespace_only(self):
        assert self.encoder.tokenize("  ?! ") == []

    def test_hash_is_deterministic_and_in_range(self):
        words = self.encoder.tokenize(DATA_CONFIG['text'])
        first = self.encoder.hash(words)
        second = VocabularyEncoder(31).hash(words)
        assert first == second
        assert len(first) == len(words)
        assert all(0 <= i < 31 for i in first)

    def test_repeated_word_gets_same_id(self):
        ids = self.encoder.encode("the cat the")
        assert ids[0] == ids[2]

    def test_known_slots_for_small_vocabulary(self):
        encoder = VocabularyEncoder(4)
        assert encoder.encode("a b a b") == [3, 1, 3, 1]

    def test_collisions_are_kept(self):
        encoder = VocabularyEncoder(1)
        ids = encoder.encode("alpha beta gamma")
        assert ids == [0, 0, 0]
        assert encoder.collisions() == {0: 3}

    def test_collisions_reset_per_call(self):
        encoder = VocabularyEncoder(1)
        encoder.encode("alpha beta")
        encoder.encode("gamma")
        assert encoder.collisions() == {}

    def test_hash_conversion_failure(self, monkeypatch):
        class BadDigest:
            def hexdigest(self):
                return "not-hex"

        monkeypatch.setattr(tokenizer_module.hashlib, "sha256", lambda data: BadDigest())
        with pytest.raises(HashConversionError):
            self.encoder.hash(["word"])

    def test_vocab_size_must_be_positive(self):
        with pytest.raises(ValueError):
            VocabularyEncoder(0)


class TestVocabIndex:
    def test_last_position_wins(self):
        assert build_vocab_index([5, 3, 5]) == {5: 2, 3: 1}

    def test_small_vocabulary_index(self):
        assert build_vocab_index([3, 1, 3, 1]) == {3: 2, 1: 3}

    def test_accepts_tensors(self):
        import torch
        index = build_vocab_index(torch.tensor([4, 4, 2]))
        assert index == {4: 1, 2: 2}
        assert all(isinstance(k, int) for k in index)

    def test_empty(self):
        assert build_vocab_index([]) == {}
