from __future__ import annotations

import numpy as np
from sklearn.metrics.pairwise import cosine_distances

from ..errors import ConfigurationError
from .logger import logger


def _as_matrix(embeddings: np.ndarray) -> np.ndarray:
    X = np.asarray(embeddings, dtype=np.float64)
    if X.ndim == 1:
        X = X.reshape(1, -1) if X.size else X.reshape(0, 0)
    return X


def cluster(embeddings: np.ndarray, merge_threshold: float = 0.3) -> np.ndarray:
    """Centroid-linkage agglomerative clustering on cosine distance.

    Starting from singletons, the two clusters whose centroids are closest are
    merged (the later into the earlier) until the closest pair is farther
    apart than ``merge_threshold``.  Labels follow cluster-list order.
    """
    X = _as_matrix(embeddings)
    n = int(X.shape[0])
    if n == 0:
        return np.zeros(0, dtype=np.int64)
    if n == 1:
        return np.zeros(1, dtype=np.int64)

    clusters: list[list[int]] = [[i] for i in range(n)]
    centroids = X.copy()
    while len(clusters) > 1:
        dist = cosine_distances(centroids)
        # Only pairs (a, b) with a < b compete; argmin scans row-major.
        dist[np.tril_indices(len(clusters))] = np.inf
        flat = int(np.argmin(dist))
        a, b = divmod(flat, len(clusters))
        if dist[a, b] > merge_threshold:
            break
        clusters[a].extend(clusters[b])
        del clusters[b]
        centroids = np.delete(centroids, b, axis=0)
        centroids[a] = X[clusters[a]].mean(axis=0)

    labels = np.zeros(n, dtype=np.int64)
    for label, members in enumerate(clusters):
        labels[members] = label
    return labels


def silhouette_score(embeddings: np.ndarray, labels: np.ndarray) -> float:
    """Mean silhouette on cosine distance; a single cluster scores -1.

    Singletons have zero intra-cluster distance.  Points whose intra and
    nearest-cluster distances are both zero contribute 0.
    """
    X = _as_matrix(embeddings)
    labels = np.asarray(labels, dtype=np.int64)
    n = int(X.shape[0])
    uniq, inverse = np.unique(labels, return_inverse=True)
    k = int(uniq.size)
    if n == 0 or k <= 1:
        return -1.0

    D = cosine_distances(X)
    np.fill_diagonal(D, 0.0)
    onehot = np.zeros((n, k), dtype=np.float64)
    onehot[np.arange(n), inverse] = 1.0
    counts = onehot.sum(axis=0)
    sums = D @ onehot

    own = inverse
    own_counts = counts[own]
    a = np.where(own_counts > 1, sums[np.arange(n), own] / np.maximum(own_counts - 1, 1), 0.0)
    means = sums / counts[np.newaxis, :]
    means[np.arange(n), own] = np.inf
    b = means.min(axis=1)

    denom = np.maximum(a, b)
    s = np.zeros(n, dtype=np.float64)
    ok = denom > 0
    s[ok] = (b[ok] - a[ok]) / denom[ok]
    return float(s.mean())


def search_best_threshold(
    embeddings: np.ndarray,
    min_threshold: float = 0.10,
    max_threshold: float = 0.50,
    step: float = 0.02,
    cluster_count_penalty: float = 0.05,
) -> tuple[np.ndarray, float, float]:
    """Scan merge thresholds and keep the best penalised silhouette.

    Returns ``(labels, threshold, score)``.  Ties keep the lowest threshold.
    """
    if step <= 0:
        raise ConfigurationError(
            "Threshold search step must be positive",
            stage="clustering",
            context={"step": step},
        )
    X = _as_matrix(embeddings)
    if X.shape[0] <= 1:
        return cluster(X, max_threshold), float(max_threshold), 0.0

    best_labels: np.ndarray | None = None
    best_threshold = float(min_threshold)
    best_score = -np.inf
    i = 0
    t = float(min_threshold)
    while t <= max_threshold + 1e-6:
        labels = cluster(X, t)
        n_clusters = int(np.unique(labels).size)
        score = silhouette_score(X, labels) - cluster_count_penalty * n_clusters
        logger.debug("AHC threshold %.3f -> %d clusters, score %.4f", t, n_clusters, score)
        if score > best_score:
            best_score = score
            best_threshold = t
            best_labels = labels
        i += 1
        t = float(min_threshold) + i * step

    if best_labels is None:
        return cluster(X, max_threshold), float(max_threshold), 0.0
    return best_labels, best_threshold, float(best_score)


__all__ = ["cluster", "search_best_threshold", "silhouette_score"]
