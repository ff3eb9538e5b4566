from typing import NamedTuple, Optional, Tuple

import numpy as np

from wordspace.params import REAL, SharedParameters
from wordspace.tables import HuffmanTree, NegativeSamplingTable

# Per-position SGD kernels for skip-gram and CBOW with hierarchical softmax
# and/or negative sampling. Rows are updated in place on the shared matrices.
# Stability: sigmoid/log_sigmoid clip their input and work in float64.


def _sigmoid(x: np.ndarray) -> np.ndarray:
    """Numerically stable sigmoid; clips input to avoid overflow in exp.

    Args:
        x: Input array (any shape).

    Returns:
        Sigmoid of x, same shape; values in (0, 1).
    """
    x = np.clip(np.asarray(x, dtype=np.float64), -500.0, 500.0)
    return 1.0 / (1.0 + np.exp(-x))


def _log_sigmoid(x: np.ndarray) -> np.ndarray:
    """Log of sigmoid: -softplus(-x), computed in a numerically stable way.

    Args:
        x: Input array (any shape).

    Returns:
        log(sigmoid(x)), same shape as x.
    """
    x = np.clip(np.asarray(x, dtype=np.float64), -500.0, 500.0)
    return -np.maximum(-x, 0) - np.log(1.0 + np.exp(-np.abs(x)))


class ChunkResult(NamedTuple):
    words: int
    loss: float
    skipped: int


class Objective:
    """Output-layer configuration shared by every update of one training run.

    Attributes:
        params: Shared parameter matrices.
        tree: Huffman tree, required when params.output_hs is set.
        table: Negative sampling table, required when params.output_ns is set.
        negative: Negatives drawn per positive.
        compute_loss: Whether updates also return their objective value.
    """

    def __init__(
        self,
        params: SharedParameters,
        tree: Optional[HuffmanTree] = None,
        table: Optional[NegativeSamplingTable] = None,
        negative: int = 0,
        compute_loss: bool = False,
    ):
        if params.output_hs is not None and tree is None:
            raise ValueError("hierarchical softmax needs a Huffman tree")
        if params.output_ns is not None and (table is None or negative < 1):
            raise ValueError("negative sampling needs a sampling table and negative >= 1")
        self.params = params
        self.tree = tree
        self.table = table
        self.negative = negative
        self.compute_loss = compute_loss

    def update(
        self,
        hidden: np.ndarray,
        target: int,
        alpha: float,
        rng: np.random.Generator,
    ) -> Optional[Tuple[np.ndarray, float]]:
        """Apply one logistic update of the output rows for (hidden -> target).

        Gradients for every output row are computed first; nothing is written
        if any of them is non-finite. Negatives that collide with the target
        are dropped, not redrawn.

        Args:
            hidden: Input-side vector (one input row, or the CBOW context mean).
            target: Token id to predict.
            alpha: Current learning rate.
            rng: Worker-local random generator.

        Returns:
            (neu1e, loss): the error to add to the input row(s) and the
            objective value (0.0 unless compute_loss), or None if the update
            was dropped.
        """
        params = self.params
        neu1e = np.zeros(hidden.shape, dtype=np.float64)
        loss = 0.0
        writes = []

        with np.errstate(over="ignore", invalid="ignore"):
            if params.output_hs is not None:
                point = self.tree.points[target]
                if len(point):
                    code = self.tree.codes[target]
                    l2a = params.output_hs[point]  # codelen x D
                    prod = l2a @ hidden
                    fa = _sigmoid(prod)
                    ga = (1.0 - code - fa) * alpha
                    writes.append((params.output_hs, point, np.outer(ga, hidden).astype(REAL)))
                    neu1e += ga @ l2a
                    if self.compute_loss:
                        sgn = 1.0 - 2.0 * code
                        loss -= float(_log_sigmoid(sgn * prod).sum())

            if params.output_ns is not None:
                negs = self.table.sample(rng, self.negative)
                indices = np.concatenate(([target], negs[negs != target])).astype(np.int64)
                labels = np.zeros(len(indices), dtype=np.float64)
                labels[0] = 1.0
                l2b = params.output_ns[indices]  # (1 + k') x D
                prod = l2b @ hidden
                fb = _sigmoid(prod)
                gb = (labels - fb) * alpha
                writes.append((params.output_ns, indices, np.outer(gb, hidden).astype(REAL)))
                neu1e += gb @ l2b
                if self.compute_loss:
                    loss -= float(_log_sigmoid(prod[0]) + _log_sigmoid(-prod[1:]).sum())

            if not np.all(np.isfinite(neu1e)):
                return None
            for _, _, delta in writes:
                if not np.all(np.isfinite(delta)):
                    return None

        for matrix, rows, delta in writes:
            np.add.at(matrix, rows, delta)
        return neu1e, loss


def _finite_as_real(v: np.ndarray) -> Optional[np.ndarray]:
    with np.errstate(over="ignore"):
        out = v.astype(REAL)
    return out if np.all(np.isfinite(out)) else None


def train_chunk_skipgram(
    objective: Objective,
    ids: np.ndarray,
    keep_prob: np.ndarray,
    window: int,
    alpha: float,
    rng: np.random.Generator,
) -> ChunkResult:
    """Skip-gram over one chunk: each kept center predicts every token in its window.

    Args:
        objective: Output-layer configuration.
        ids: Token ids of the chunk.
        keep_prob: Per-id probability of keeping a token as a center.
        window: Maximum half-width; the effective one is drawn from [1, window].
        alpha: Learning rate for the whole chunk.
        rng: Worker-local random generator.

    Returns:
        ChunkResult with the number of tokens read, summed loss and dropped updates.
    """
    syn0 = objective.params.input
    n = len(ids)
    draws = rng.random(n)
    spans = rng.integers(1, window + 1, size=n)
    loss = 0.0
    skipped = 0
    for pos in range(n):
        center = ids[pos]
        if draws[pos] >= keep_prob[center]:
            continue
        b = spans[pos]
        for pos2 in range(max(0, pos - b), min(n, pos + b + 1)):
            if pos2 == pos:
                continue
            result = objective.update(syn0[center], int(ids[pos2]), alpha, rng)
            if result is None:
                skipped += 1
                continue
            delta = _finite_as_real(result[0])
            if delta is None:
                skipped += 1
                continue
            syn0[center] += delta
            loss += result[1]
    return ChunkResult(n, loss, skipped)


def train_chunk_cbow(
    objective: Objective,
    ids: np.ndarray,
    keep_prob: np.ndarray,
    window: int,
    alpha: float,
    rng: np.random.Generator,
    cbow_mean: bool = True,
) -> ChunkResult:
    """CBOW over one chunk: the window's input rows jointly predict the center.

    The error is added back, unscaled, to every context row.
    """
    syn0 = objective.params.input
    n = len(ids)
    draws = rng.random(n)
    spans = rng.integers(1, window + 1, size=n)
    loss = 0.0
    skipped = 0
    for pos in range(n):
        center = ids[pos]
        if draws[pos] >= keep_prob[center]:
            continue
        b = spans[pos]
        context = np.concatenate((ids[max(0, pos - b):pos], ids[pos + 1:min(n, pos + b + 1)]))
        if not len(context):
            continue
        hidden = syn0[context].astype(np.float64).sum(axis=0)
        if cbow_mean:
            hidden /= len(context)
        result = objective.update(hidden, int(center), alpha, rng)
        if result is None:
            skipped += 1
            continue
        delta = _finite_as_real(result[0])
        if delta is None:
            skipped += 1
            continue
        np.add.at(syn0, context, delta)
        loss += result[1]
    return ChunkResult(n, loss, skipped)
