import hashlib
import re
from collections import Counter
from typing import Dict, List, Sequence

from gru_lm.errors import EmptyInputError, HashConversionError

# letters and digits only; underscore is a word character but not a token one
_TOKEN_RE = re.compile(r"[^\W_]+")


class VocabularyEncoder:
    """
    Word-level tokenizer with sha256 feature hashing.

    Tokens are hashed into ``vocab_size`` slots. Distinct words that land in
    the same slot share an id; collisions are counted in ``slot_counts`` but
    never resolved.
    """

    def __init__(self, vocab_size: int = 31):
        if vocab_size <= 0:
            raise ValueError(f"vocab_size must be positive, got {vocab_size}")
        self.vocab_size = vocab_size
        self.slot_counts: Counter = Counter()

    def tokenize(self, text: str) -> List[str]:
        """Lowercase ``text`` and split it on anything that is not a letter or digit."""
        if text == "":
            raise EmptyInputError("String is empty")
        return _TOKEN_RE.findall(text.lower())

    def hash(self, tokens: Sequence[str]) -> List[int]:
        """Map each token to ``int(sha256(token)) % vocab_size``."""
        self.slot_counts = Counter()
        ids = []
        for token in tokens:
            digest = hashlib.sha256(token.encode("utf-8")).hexdigest()
            try:
                value = int(digest, 16)
            except ValueError as e:
                raise HashConversionError(
                    f"Can't create integer from hex digest {digest!r}") from e
            slot = value % self.vocab_size
            self.slot_counts[slot] += 1
            ids.append(slot)
        return ids

    def encode(self, text: str) -> List[int]:
        return self.hash(self.tokenize(text))

    def collisions(self) -> Dict[int, int]:
        """Slots hit more than once by the last ``hash`` call, with their counts."""
        return {slot: n for slot, n in self.slot_counts.items() if n > 1}


def build_vocab_index(token_ids: Sequence[int]) -> Dict[int, int]:
    """
    Map each token id to its position in ``token_ids``.

    When an id occurs more than once, its last position wins.
    """
    if hasattr(token_ids, "tolist"):
        token_ids = token_ids.tolist()
    return {token_id: position for position, token_id in enumerate(token_ids)}
