import logging
from collections import Counter
from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, List, Optional

import numpy as np

from wordspace.errors import EmptyCorpus, UnknownToken

# Vocabulary: one counting pass, then frozen id assignment in descending
# frequency order (ties keep first-seen order). Id 0 is the most frequent token.

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Token:
    """A surviving vocabulary entry.

    Attributes:
        text (str): The token string.
        index (int): Dense id; 0 is the most frequent token.
        count (int): Raw corpus frequency.
    """

    text: str
    index: int
    count: int


class Vocabulary:
    """Frozen, frequency-ordered token table.

    Attributes:
        tokens (List[Token]): Entries ordered by id.
        total_count (int): Corpus length including discarded tokens; the
            denominator of subsampling frequencies.
    """

    def __init__(self, tokens: List[Token], total_count: int):
        self.tokens = list(tokens)
        self.total_count = int(total_count)
        self._index: Dict[str, int] = {t.text: t.index for t in self.tokens}
        self.counts = np.array([t.count for t in self.tokens], dtype=np.int64)
        self.counts.setflags(write=False)

    def __len__(self) -> int:
        return len(self.tokens)

    def __contains__(self, text: str) -> bool:
        return text in self._index

    def __iter__(self) -> Iterator[Token]:
        return iter(self.tokens)

    def __getitem__(self, text: str) -> Token:
        try:
            return self.tokens[self._index[text]]
        except KeyError:
            raise UnknownToken(text) from None

    def index_of(self, text: str) -> int:
        return self[text].index

    def get_index(self, text: str, default: int = -1) -> int:
        return self._index.get(text, default)

    @property
    def words(self) -> List[str]:
        return [t.text for t in self.tokens]

    @property
    def retained_count(self) -> int:
        """Number of corpus tokens that map to a vocabulary entry."""
        return int(self.counts.sum())

    def keep_probabilities(self, threshold: float) -> np.ndarray:
        """Per-id probability of keeping a token as a training center.

        P(keep) = sqrt(t / f) capped at 1, with f = count / total_count; the
        skip probability 1 - P(keep) therefore rises for very frequent tokens.

        Args:
            threshold: Subsampling threshold t; 0 disables subsampling.

        Returns:
            float64 array of shape (V,).
        """
        if threshold <= 0 or self.total_count <= 0:
            return np.ones(len(self), dtype=np.float64)
        freqs = self.counts / float(self.total_count)
        keep_prob = np.sqrt(threshold / np.clip(freqs, 1e-12, None))
        return np.clip(keep_prob, 0.0, 1.0)

    def save(self, path: str) -> None:
        """Write "token count" lines preceded by a total-count header."""
        with open(path, "w", encoding="utf-8") as f:
            f.write(f"{self.total_count}\n")
            for t in self.tokens:
                f.write(f"{t.text} {t.count}\n")

    @classmethod
    def load(cls, path: str) -> "Vocabulary":
        """Read a file written by save(); ids follow line order."""
        with open(path, encoding="utf-8") as f:
            header = f.readline().strip()
            try:
                total = int(header)
            except ValueError:
                raise ValueError(f"invalid vocabulary header in {path}: {header!r}") from None
            tokens = []
            for line_no, line in enumerate(f, start=2):
                parts = line.rstrip("\n").split(" ")
                if len(parts) != 2:
                    raise ValueError(f"invalid vocabulary entry on line {line_no} of {path}")
                tokens.append(Token(parts[0], len(tokens), int(parts[1])))
        return cls(tokens, total)

    def __repr__(self) -> str:
        return f"Vocabulary(size={len(self)}, total_count={self.total_count})"


def build_vocab(
    tokens: Iterable[str],
    min_count: int = 5,
    max_size: Optional[int] = None,
) -> Vocabulary:
    """Count a token stream once and freeze it into a Vocabulary.

    Keeps tokens with count >= min_count; optionally caps the vocabulary at
    max_size by frequency. Sorting is stable, so equal counts keep the order
    in which the tokens were first seen.

    Args:
        tokens: Finite stream of token strings; consumed, not retained.
        min_count: Minimum count to include a token. Defaults to 5.
        max_size: Maximum vocabulary size. Defaults to None (no cap).

    Returns:
        Frozen Vocabulary.

    Raises:
        EmptyCorpus: If no token reaches min_count.
    """
    cnt: Counter = Counter()
    total = 0
    for tok in tokens:
        cnt[tok] += 1
        total += 1

    kept = sorted(((w, c) for w, c in cnt.items() if c >= min_count), key=lambda wc: -wc[1])
    if max_size is not None:
        kept = kept[:max_size]
    if not kept:
        raise EmptyCorpus(min_count, total)

    vocab = Vocabulary([Token(w, i, c) for i, (w, c) in enumerate(kept)], total)
    logger.info(
        "collected %d unique tokens from %d; kept %d with min_count=%d (%.1f%% of corpus)",
        len(cnt), total, len(vocab), min_count,
        100.0 * vocab.retained_count / max(total, 1),
    )
    return vocab
