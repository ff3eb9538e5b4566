import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Union

import numpy as np

from wordspace.query import l2_normalize
from wordspace.store import VectorStore, as_matrix

# k-means over store rows: random distinct rows as initial centroids, then
# reassignment and centroid update until labels stop changing.

logger = logging.getLogger(__name__)


@dataclass
class ClusterResult:
    """Outcome of one k-means run.

    Attributes:
        labels: Cluster id per input row, 0..centers-1.
        centroids: (centers, D) final centroids.
        iterations: Reassignment rounds performed.
        converged: True if labels stopped changing before max_iterations.
        inertia: Sum of squared distances to the assigned centroid.
        words: Row tokens when clustering a store, else None.
    """
    labels: np.ndarray
    centroids: np.ndarray
    iterations: int
    converged: bool
    inertia: float
    words: Optional[List[str]] = None

    def assignment(self) -> Dict[str, int]:
        """token -> cluster id; only available for store input."""
        if self.words is None:
            raise ValueError("rows have no tokens; cluster a VectorStore to get an assignment")
        return {w: int(label) for w, label in zip(self.words, self.labels)}

    def members(self, cluster: int) -> List[str]:
        return [w for w, label in self.assignment().items() if label == cluster]


def _squared_distances(X: np.ndarray, centroids: np.ndarray) -> np.ndarray:
    d = (X * X).sum(axis=1)[:, None] - 2.0 * X @ centroids.T + (centroids * centroids).sum(axis=1)[None, :]
    return np.maximum(d, 0.0)


def kmeans(
    data: Union[VectorStore, np.ndarray],
    centers: int,
    max_iterations: int = 100,
    seed: Optional[int] = None,
    tokens: Optional[Sequence[str]] = None,
    normalize: bool = False,
) -> ClusterResult:
    """Lloyd's k-means.

    Args:
        data: VectorStore or (N, D) matrix.
        centers: Number of clusters, 1 <= centers <= N.
        max_iterations: Upper bound on reassignment rounds.
        seed: Seed for the initial row choice; runs are reproducible when set.
        tokens: Cluster only these tokens of a store.
        normalize: Cluster unit-length rows (cosine geometry).

    Returns:
        ClusterResult. An emptied cluster keeps its previous centroid.
    """
    words = None
    if isinstance(data, VectorStore):
        if tokens is not None:
            data = data.subset(tokens)
        words = data.words
    elif tokens is not None:
        raise ValueError("tokens can only select rows of a VectorStore")
    X = as_matrix(data).astype(np.float64)
    if normalize:
        X = l2_normalize(X, axis=1)
    N = X.shape[0]
    if not 1 <= centers <= N:
        raise ValueError(f"centers must be in [1, {N}], got {centers}")
    if max_iterations < 1:
        raise ValueError(f"max_iterations must be >= 1, got {max_iterations}")

    rng = np.random.default_rng(seed)
    centroids = X[rng.choice(N, size=centers, replace=False)].copy()
    labels = np.full(N, -1, dtype=np.int64)
    converged = False
    iterations = 0
    for iterations in range(1, max_iterations + 1):
        new_labels = np.argmin(_squared_distances(X, centroids), axis=1)
        if np.array_equal(new_labels, labels):
            converged = True
            break
        labels = new_labels
        for k in range(centers):
            members = X[labels == k]
            if len(members):
                centroids[k] = members.mean(axis=0)

    inertia = float(_squared_distances(X, centroids)[np.arange(N), labels].sum())
    logger.info(
        "k-means with %d centers on %d rows: %d iterations, converged=%s, inertia %.4f",
        centers, N, iterations, converged, inertia,
    )
    return ClusterResult(labels, centroids, iterations, converged, inertia, words)
