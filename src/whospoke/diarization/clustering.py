from __future__ import annotations

import numpy as np
import scipy.linalg
from scipy.spatial.distance import cdist

_NORM_EPS = 1e-10


def build_affinity(embeddings: np.ndarray) -> np.ndarray:
    """Cosine affinity of L2-normalised embeddings, min-max scaled to [0, 1].

    A matrix whose entries are all equal collapses to all ones.
    """
    X = np.asarray(embeddings, dtype=np.float64)
    n = int(X.shape[0]) if X.ndim == 2 else 0
    if n == 0:
        return np.zeros((0, 0), dtype=np.float64)
    if n == 1:
        return np.ones((1, 1), dtype=np.float64)
    normed = X / (np.linalg.norm(X, axis=1, keepdims=True) + _NORM_EPS)
    mat = normed @ normed.T
    np.fill_diagonal(mat, 1.0)
    lo = float(mat.min())
    hi = float(mat.max())
    if hi - lo < 1e-12:
        return np.ones((n, n), dtype=np.float64)
    return (mat - lo) / (hi - lo)


def laplacian(affinity: np.ndarray) -> np.ndarray:
    """Unnormalised graph Laplacian ``D - A`` with the diagonal of ``A`` ignored."""
    A = np.array(affinity, dtype=np.float64, copy=True)
    np.fill_diagonal(A, 0.0)
    return np.diag(A.sum(axis=1)) - A


class KMeans:
    """Lloyd's k-means seeded with ``k`` distinct random points.

    Results are deterministic for a fixed ``seed``; clusters that lose all
    their points keep their previous centroid.
    """

    def __init__(self, n_clusters: int, max_iter: int = 100, seed: int = 0) -> None:
        self.n_clusters = int(n_clusters)
        self.max_iter = int(max_iter)
        self.seed = seed
        self.cluster_centers_: np.ndarray | None = None
        self.n_iter_ = 0

    def fit_predict(self, points: np.ndarray) -> np.ndarray:
        X = np.asarray(points, dtype=np.float64)
        if X.ndim == 1:
            X = X.reshape(-1, 1)
        n = int(X.shape[0])
        if n == 0:
            return np.zeros(0, dtype=np.int64)
        k = min(max(1, self.n_clusters), n)
        rng = np.random.default_rng(self.seed)
        centroids = X[rng.choice(n, size=k, replace=False)].copy()
        labels = np.zeros(n, dtype=np.int64)
        self.n_iter_ = 0
        for _ in range(self.max_iter):
            self.n_iter_ += 1
            best = np.argmin(cdist(X, centroids), axis=1)
            changed = bool(np.any(best != labels))
            labels = best
            if not changed:
                break
            for c in range(k):
                members = labels == c
                if members.any():
                    centroids[c] = X[members].mean(axis=0)
        self.cluster_centers_ = centroids
        return labels


class SpectralClusterer:
    """Spectral clustering of a (sparsified) affinity graph.

    The ``k`` eigenvectors of the Laplacian with the smallest eigenvalues form
    the embedding that k-means partitions.
    """

    def __init__(self, seed: int = 0, max_iter: int = 100) -> None:
        self.seed = seed
        self.max_iter = max_iter

    def spectral_embedding(self, affinity: np.ndarray, k: int) -> np.ndarray:
        lap = laplacian(affinity)
        eigvals, eigvecs = scipy.linalg.eigh(lap)
        order = np.argsort(eigvals, kind="stable")
        return eigvecs[:, order[:k]]

    def cluster(self, affinity: np.ndarray, k: int) -> np.ndarray:
        A = np.asarray(affinity, dtype=np.float64)
        n = int(A.shape[0]) if A.ndim == 2 else 0
        if n == 0:
            return np.zeros(0, dtype=np.int64)
        k = min(max(1, int(k)), n)
        embedding = self.spectral_embedding(A, k)
        return KMeans(k, max_iter=self.max_iter, seed=self.seed).fit_predict(embedding)


__all__ = ["KMeans", "SpectralClusterer", "build_affinity", "laplacian"]
