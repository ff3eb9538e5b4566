from typing import Iterable, List, Optional, Sequence, Tuple

import numpy as np

from wordspace.errors import ZeroVector
from wordspace.store import VectorStore

# Query engine: cosine similarity, exact nearest neighbours, vector composition
# and analogy over a finished VectorStore. Nothing here mutates the store.

Result = List[Tuple[str, float]]


def l2_normalize(X: np.ndarray, axis: int = -1) -> np.ndarray:
    """L2-normalize array along the given axis (zero vectors get divisor 1).

    Args:
        X: Input array.
        axis: Axis along which to normalize. Defaults to -1.

    Returns:
        Normalized array, same shape as X.
    """
    norm = np.linalg.norm(X, axis=axis, keepdims=True)
    norm = np.where(norm > 0, norm, 1.0)
    return X / norm


def cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
    """Cosine similarity between two vectors (flattened).

    Args:
        a: First vector.
        b: Second vector.

    Returns:
        dot(a, b) / (|a| |b|), clipped to [-1, 1].

    Raises:
        ZeroVector: If either vector has zero norm.
    """
    a = np.asarray(a, dtype=np.float64).ravel()
    b = np.asarray(b, dtype=np.float64).ravel()
    na = np.linalg.norm(a)
    nb = np.linalg.norm(b)
    if na == 0:
        raise ZeroVector("first vector")
    if nb == 0:
        raise ZeroVector("second vector")
    return float(np.clip(np.dot(a, b) / (na * nb), -1.0, 1.0))


def rank(scores: np.ndarray, n: int) -> np.ndarray:
    """Positions of the n highest scores; ties go to the lower position."""
    if n <= 0 or not len(scores):
        return np.zeros(0, dtype=np.int64)
    positions = np.arange(len(scores))
    if n < len(scores):
        # Keep every row tied with the n-th best so the tie-break sees all of them.
        cutoff = np.partition(scores, len(scores) - n)[len(scores) - n]
        candidates = positions[scores >= cutoff]
    else:
        candidates = positions
    order = np.lexsort((candidates, -scores[candidates]))
    return candidates[order][:n]


class QueryEngine:
    """Similarity queries over one VectorStore.

    Row norms are computed once on first use. Rows with zero norm have no
    defined cosine and never appear in ranked results.
    """

    def __init__(self, store: VectorStore):
        self.store = store
        self._unit: Optional[np.ndarray] = None
        self._norms: Optional[np.ndarray] = None

    def _normalized(self) -> Tuple[np.ndarray, np.ndarray]:
        if self._unit is None:
            matrix = self.store.vectors.astype(np.float64)
            norms = np.linalg.norm(matrix, axis=1)
            self._unit = l2_normalize(matrix, axis=1)
            self._norms = norms
        return self._unit, self._norms

    def vector_of(self, token: str) -> np.ndarray:
        return self.store[token]

    def compose(
        self,
        tokens: Sequence[str],
        weights: Optional[Sequence[float]] = None,
        normalize: bool = False,
        unit_inputs: bool = False,
    ) -> np.ndarray:
        """Weighted sum of the tokens' vectors.

        Negative weights subtract; weights of 1/len(tokens) average.

        Args:
            tokens: Tokens to combine.
            weights: One weight per token. Defaults to all ones.
            normalize: Scale the result to unit length.
            unit_inputs: Normalize each constituent before summing.

        Returns:
            float64 vector of length D.

        Raises:
            UnknownToken: If a token is not in the store.
            ZeroVector: If normalize is set and the sum is the zero vector.
        """
        if not len(tokens):
            raise ValueError("compose needs at least one token")
        if weights is None:
            weights = np.ones(len(tokens))
        weights = np.asarray(weights, dtype=np.float64)
        if weights.shape != (len(tokens),):
            raise ValueError(f"expected {len(tokens)} weights, got {weights.shape}")
        rows = self.store.indices(tokens)
        if unit_inputs:
            matrix = self._normalized()[0][rows]
        else:
            matrix = self.store.vectors[rows].astype(np.float64)
        probe = weights @ matrix
        if normalize:
            norm = np.linalg.norm(probe)
            if norm == 0:
                raise ZeroVector("composed vector")
            probe = probe / norm
        return probe

    def similarity(self, token1: str, token2: str) -> float:
        return cosine_similarity(self.vector_of(token1), self.vector_of(token2))

    def nearest_to(
        self,
        query_vector: np.ndarray,
        n: int = 10,
        exclude_self: bool = True,
        restrict: Optional[Iterable[str]] = None,
        exclude: Iterable[str] = (),
    ) -> Result:
        """Top-n tokens by cosine similarity to a vector, exact scan.

        Args:
            query_vector: Probe vector of length D.
            n: Maximum number of results.
            exclude_self: Drop rows exactly equal to the probe.
            restrict: Only rank these tokens. Defaults to the whole store.
            exclude: Tokens never returned.

        Returns:
            (token, score) pairs sorted by descending score; equal scores are
            ordered by ascending id.

        Raises:
            ZeroVector: If the probe has zero norm.
            UnknownToken: If restrict or exclude names an unknown token.
        """
        query = np.asarray(query_vector, dtype=np.float64).ravel()
        if query.shape[0] != self.store.dim:
            raise ValueError(f"query has length {query.shape[0]}, store dimension is {self.store.dim}")
        qnorm = np.linalg.norm(query)
        if qnorm == 0:
            raise ZeroVector("query vector")
        unit, norms = self._normalized()
        if restrict is None:
            rows = np.arange(len(self.store))
        else:
            rows = np.unique(self.store.indices(restrict))
        scores = np.clip(unit[rows] @ (query / qnorm), -1.0, 1.0)
        keep = norms[rows] > 0
        if exclude_self:
            keep &= ~np.all(self.store.vectors[rows] == query.astype(np.float32), axis=1)
        banned = self.store.indices(exclude)
        if len(banned):
            keep &= ~np.isin(rows, banned)
        rows, scores = rows[keep], scores[keep]
        top = rank(scores, n)
        return [(self.store.words[rows[i]], float(scores[i])) for i in top]

    def nearest_to_token(self, token: str, n: int = 10) -> Result:
        """Neighbours of a stored token, the token itself excluded."""
        return self.nearest_to(self.vector_of(token), n, exclude_self=False, exclude=[token])

    def most_similar(
        self,
        positive: Sequence[str] = (),
        negative: Sequence[str] = (),
        n: int = 10,
    ) -> Result:
        """Neighbours of sum(unit(positive)) - sum(unit(negative)); inputs are excluded."""
        positive, negative = list(positive), list(negative)
        if not positive and not negative:
            raise ValueError("most_similar needs at least one positive or negative token")
        weights = [1.0] * len(positive) + [-1.0] * len(negative)
        probe = self.compose(positive + negative, weights, normalize=True, unit_inputs=True)
        return self.nearest_to(probe, n, exclude_self=False, exclude=positive + negative)

    def analogy(self, a: str, b: str, c: str, n: int = 1) -> Result:
        """Solve "a is to b as c is to ?" via b - a + c, excluding a, b and c."""
        return self.most_similar(positive=[b, c], negative=[a], n=n)

    def doesnt_match(self, tokens: Sequence[str]) -> str:
        """The token least similar to the mean of the group."""
        tokens = list(tokens)
        if not tokens:
            raise ValueError("doesnt_match needs at least one token")
        unit, norms = self._normalized()
        rows = self.store.indices(tokens)
        for t, r in zip(tokens, rows):
            if norms[r] == 0:
                raise ZeroVector(f"vector of {t!r}")
        mean = l2_normalize(unit[rows].mean(axis=0))
        scores = unit[rows] @ mean
        return tokens[int(np.argmin(scores))]

    def similarity_matrix(
        self,
        rows: Optional[Sequence[str]] = None,
        cols: Optional[Sequence[str]] = None,
    ) -> np.ndarray:
        """Dense (len(rows), len(cols)) matrix of pairwise cosine similarities.

        Raises:
            ZeroVector: If a selected token has a zero vector.
        """
        unit, norms = self._normalized()
        r = np.arange(len(self.store)) if rows is None else self.store.indices(rows)
        c = r if cols is None else self.store.indices(cols)
        for idx in np.concatenate((r, c)):
            if norms[idx] == 0:
                raise ZeroVector(f"vector of {self.store.words[idx]!r}")
        return np.clip(unit[r] @ unit[c].T, -1.0, 1.0)

    def __contains__(self, token: str) -> bool:
        return token in self.store

