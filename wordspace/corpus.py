import logging
from typing import Iterable, Iterator

import numpy as np

from wordspace.vocab import Vocabulary

# Token streams: a re-iterable whitespace-token file reader, and the mapping
# from token strings to vocabulary ids used by the training engine.

logger = logging.getLogger(__name__)

DEFAULT_BLOCK_SIZE = 1 << 20


class TokenFile:
    """Re-iterable stream of whitespace-separated tokens from a UTF-8 file.

    The file is read in fixed-size blocks, so a single-line corpus such as
    text8 is never held in memory as one string. A token cut by a block
    boundary is carried over to the next block.
    """

    def __init__(self, path: str, block_size: int = DEFAULT_BLOCK_SIZE):
        if block_size < 1:
            raise ValueError(f"block_size must be >= 1, got {block_size}")
        self.path = path
        self.block_size = block_size

    def __iter__(self) -> Iterator[str]:
        carry = ""
        with open(self.path, encoding="utf-8") as f:
            while True:
                block = f.read(self.block_size)
                if not block:
                    break
                block = carry + block
                parts = block.split()
                if parts and not block[-1].isspace():
                    carry = parts.pop()
                else:
                    carry = ""
                yield from parts
        if carry:
            yield carry

    def __repr__(self) -> str:
        return f"TokenFile({self.path!r})"


def encode(tokens: Iterable[str], vocabulary: Vocabulary) -> np.ndarray:
    """Map token strings to vocabulary ids, dropping out-of-vocabulary tokens.

    Args:
        tokens: Token strings.
        vocabulary: Frozen vocabulary.

    Returns:
        One-dimensional int32 array of ids, in stream order.
    """
    ids = []
    dropped = 0
    for tok in tokens:
        idx = vocabulary.get_index(tok)
        if idx < 0:
            dropped += 1
            continue
        ids.append(idx)
    logger.debug("encoded %d tokens, dropped %d out-of-vocabulary", len(ids), dropped)
    return np.array(ids, dtype=np.int32)
