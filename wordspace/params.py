import logging
import threading
from typing import Optional

import numpy as np

# Parameter matrices shared by all training workers. Workers update rows in
# place without any row lock; two workers touching one row at once may lose
# part of an update, as in the C word2vec tool. Guarantees:
# - an update writes at most one input row (skip-gram) or the context rows of
#   one window (CBOW), plus the output rows of one target;
# - an update whose result would hold NaN or inf is dropped before it is
#   written, so a race can lose precision but cannot poison a row;
# - the word counter only grows and reaches the exact total once every
#   worker has finished.

logger = logging.getLogger(__name__)

REAL = np.float32


class ProgressCounter:
    """Monotonic counter of processed tokens shared across workers."""

    def __init__(self, start: int = 0):
        self._value = int(start)
        self._lock = threading.Lock()

    def add(self, n: int) -> int:
        with self._lock:
            self._value += int(n)
            return self._value

    @property
    def value(self) -> int:
        return self._value


class SharedParameters:
    """Input matrix plus the output matrices each objective needs.

    Attributes:
        input (np.ndarray): (V, D) token vectors; becomes the vector store.
        output_hs (Optional[np.ndarray]): (V-1, D) Huffman inner-node vectors.
        output_ns (Optional[np.ndarray]): (V, D) negative-sampling context vectors.
    """

    def __init__(
        self,
        vocab_size: int,
        dim: int,
        hierarchical_softmax: bool,
        negative_sampling: bool,
        rng: Optional[np.random.Generator] = None,
        initial: Optional[np.ndarray] = None,
    ):
        if rng is None:
            rng = np.random.default_rng()
        self.vocab_size = vocab_size
        self.dim = dim
        if initial is not None:
            self.input = np.array(initial, dtype=REAL, copy=True)
        else:
            # Uniform in [-0.5, 0.5) / D, output layers start at zero.
            self.input = ((rng.random((vocab_size, dim)) - 0.5) / dim).astype(REAL)
        self.output_hs = np.zeros((max(vocab_size - 1, 0), dim), dtype=REAL) if hierarchical_softmax else None
        self.output_ns = np.zeros((vocab_size, dim), dtype=REAL) if negative_sampling else None

    def non_finite_rows(self) -> np.ndarray:
        """Ids of input rows holding NaN or inf."""
        return np.where(~np.all(np.isfinite(self.input), axis=1))[0]

    def repair(self) -> np.ndarray:
        """Reset non-finite input rows to zero; return the ids that were reset."""
        bad = self.non_finite_rows()
        if len(bad):
            self.input[bad] = 0.0
            logger.warning("reset %d non-finite rows to zero", len(bad))
        return bad

    def freeze(self) -> np.ndarray:
        """Return the input matrix and release the output layers."""
        self.output_hs = None
        self.output_ns = None
        return self.input
