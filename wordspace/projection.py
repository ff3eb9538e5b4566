import logging
from typing import Dict, Optional, Sequence, Tuple

import numpy as np
from sklearn.manifold import TSNE

from wordspace.query import l2_normalize
from wordspace.store import VectorStore

# 2-D projections of store rows for inspection: t-SNE (stochastic unless
# seeded) or PCA (deterministic). Rendering is left to the caller.

logger = logging.getLogger(__name__)

METHODS = ("tsne", "pca")


def _pca2(X: np.ndarray) -> np.ndarray:
    """Project rows of X onto first 2 principal components (pure NumPy SVD).

    Args:
        X: Array of shape (n_samples, n_features).

    Returns:
        Array of shape (n_samples, 2).
    """
    X_centered = X - X.mean(axis=0)
    U, s, Vt = np.linalg.svd(X_centered, full_matrices=False)
    coords = (X_centered @ Vt[:2].T).astype(np.float64)
    if coords.shape[1] < 2:
        coords = np.hstack([coords, np.zeros((coords.shape[0], 2 - coords.shape[1]))])
    return coords


def _tsne2(X: np.ndarray, perplexity: float, iterations: int, seed: Optional[int]) -> np.ndarray:
    n = X.shape[0]
    # TSNE requires perplexity < n_samples
    effective = min(float(perplexity), max(1.0, (n - 1) / 3.0))
    if effective != perplexity:
        logger.info("perplexity %.1f too large for %d points, using %.1f", perplexity, n, effective)
    tsne = TSNE(
        n_components=2,
        perplexity=effective,
        max_iter=iterations,
        init="pca",
        learning_rate="auto",
        random_state=seed,
    )
    return tsne.fit_transform(X)


def project(
    store: VectorStore,
    tokens: Optional[Sequence[str]] = None,
    method: str = "tsne",
    perplexity: float = 50.0,
    iterations: int = 1000,
    seed: Optional[int] = None,
) -> Dict[str, Tuple[float, float]]:
    """Map each selected token to a 2-D coordinate.

    Rows are L2-normalized first so the layout reflects cosine structure.

    Args:
        store: Source vectors.
        tokens: Rows to project. Defaults to the whole store.
        method: "tsne" or "pca".
        perplexity: t-SNE effective neighbour count; clamped for small inputs.
        iterations: t-SNE optimization steps (at least 250).
        seed: t-SNE random state; unseeded runs differ.

    Returns:
        token -> (x, y).
    """
    if method not in METHODS:
        raise ValueError(f"method must be one of {METHODS}, got {method!r}")
    if tokens is not None:
        store = store.subset(tokens)
    if len(store) < 2:
        raise ValueError(f"need at least 2 vectors to project, got {len(store)}")
    X = l2_normalize(store.vectors.astype(np.float64), axis=1)
    if method == "pca":
        coords = _pca2(X)
    else:
        coords = _tsne2(X, perplexity, iterations, seed)
    return {w: (float(x), float(y)) for w, (x, y) in zip(store.words, coords)}
