"""Normalized maximum eigengap based spectral clustering (NME-SC).

Estimates the pruning parameter ``p`` of the top-p affinity graph together
with the number of speakers, following Park et al., "Auto-Tuning Spectral
Clustering for Speaker Diarization Using Normalized Maximum Eigengap".
"""

from __future__ import annotations

from collections import Counter

import numpy as np
import scipy.linalg
from scipy.sparse import csr_matrix
from scipy.sparse.csgraph import connected_components

from .clustering import laplacian
from .logger import logger
from .utils import evaluate_candidates

_EPS = 1e-10


def affinity_graph(affinity: np.ndarray, p: int) -> np.ndarray:
    """Binarise each row to its ``p`` strongest entries and symmetrise."""
    mat = np.asarray(affinity, dtype=np.float64)
    n = int(mat.shape[0]) if mat.ndim == 2 else 0
    if n == 0:
        return np.zeros((0, 0), dtype=np.float64)
    p = max(1, min(int(p), n))
    top = np.argsort(-mat, axis=1, kind="stable")[:, :p]
    graph = np.zeros((n, n), dtype=np.float64)
    graph[np.arange(n)[:, None], top] = 1.0
    return 0.5 * (graph + graph.T)


def is_fully_connected(graph: np.ndarray) -> bool:
    n = int(graph.shape[0]) if graph.ndim == 2 else 0
    if n == 0:
        return True
    n_components, _ = connected_components(csr_matrix(graph > 0), directed=False)
    return int(n_components) == 1


def eig_decompose_laplacian(graph: np.ndarray) -> np.ndarray:
    lap = laplacian(graph)
    return np.sort(scipy.linalg.eigvalsh(lap), kind="stable")


def estimate_num_speakers(graph: np.ndarray, max_num_speakers: int) -> tuple[int, np.ndarray, np.ndarray]:
    """Count speakers from the largest eigengap among the first ``max_num_speakers`` gaps."""
    eigvals = eig_decompose_laplacian(graph)
    gaps = np.diff(eigvals)
    limit = min(int(max_num_speakers), gaps.size)
    if limit <= 0:
        return 1, eigvals, gaps
    return int(np.argmax(gaps[:limit])) + 1, eigvals, gaps


class NMESC:
    """Search the sparsity ``p`` that best separates the affinity graph.

    Each candidate ``p`` is scored with the ratio ``g_p = (p / n) / NME``
    where ``NME`` is the maximum eigengap normalised by the largest
    eigenvalue; the smallest ratio wins.  Candidates are independent and can
    be scored on a thread pool; the reduction always runs in candidate order.
    """

    def __init__(
        self,
        affinity: np.ndarray,
        max_num_speakers: int = 10,
        max_rp_threshold: float = 0.25,
        sparse_search_volume: int = 30,
        nme_mat_size: int = 512,
        use_subsampling: bool = True,
        fixed_threshold: float = -1.0,
        majority_vote: bool = False,
        workers: int = 1,
    ) -> None:
        self.affinity = np.asarray(affinity, dtype=np.float64)
        self.max_num_speakers = int(max_num_speakers)
        self.max_rp_threshold = float(max_rp_threshold)
        self.sparse_search_volume = int(sparse_search_volume)
        self.nme_mat_size = int(nme_mat_size)
        self.use_subsampling = bool(use_subsampling)
        self.fixed_threshold = float(fixed_threshold)
        self.majority_vote = bool(majority_vote)
        self.workers = max(1, int(workers))
        self.p_list: list[int] = []
        self.est_num_of_spk_list: list[int] = []
        self.eig_ratio_list: list[float] = []

    def subsample(self) -> tuple[np.ndarray, int]:
        mat = self.affinity
        n = int(mat.shape[0])
        if not self.use_subsampling or n <= self.nme_mat_size:
            return mat, 1
        stride = max(1, n // self.nme_mat_size)
        idx = np.arange(0, n, stride)
        return mat[np.ix_(idx, idx)], stride

    def candidate_p_values(self, n: int) -> list[int]:
        ratio = self.fixed_threshold if self.fixed_threshold > 0 else self.max_rp_threshold
        max_p = max(2, int(np.floor(n * ratio)))
        if self.fixed_threshold > 0:
            return [max_p]
        if max_p <= self.sparse_search_volume:
            return list(range(2, max_p + 1))
        steps = min(max_p, self.sparse_search_volume)
        denom = max(1, steps - 1)
        p_list: list[int] = []
        for i in range(steps):
            p = max(2, 1 + round(i * (max_p - 1) / denom))
            if p not in p_list:
                p_list.append(p)
        return p_list

    def get_eig_ratio(self, mat: np.ndarray, p: int) -> tuple[float, int]:
        n = int(mat.shape[0])
        graph = affinity_graph(mat, p)
        est_spk, eigvals, gaps = estimate_num_speakers(graph, self.max_num_speakers)
        limit = min(self.max_num_speakers, gaps.size)
        max_gap = float(np.max(gaps[:limit])) if limit > 0 else 0.0
        max_lambda = float(np.max(eigvals)) if eigvals.size else 0.0
        nme = max_gap / (max_lambda + _EPS)
        return (p / n) / (nme + _EPS), est_spk

    def minimum_connection(self, mat: np.ndarray, p_list: list[int]) -> int:
        p_value = 2
        graph = affinity_graph(mat, 2)
        for p in p_list:
            connected = is_fully_connected(graph)
            graph = affinity_graph(mat, p)
            if connected:
                p_value = p
                break
        return p_value

    def estimate(self) -> tuple[int, int]:
        """Return ``(p_value, n_speakers)`` for the full-size affinity matrix."""
        n_full = int(self.affinity.shape[0]) if self.affinity.ndim == 2 else 0
        if n_full == 0:
            return 2, 1
        mat, stride = self.subsample()
        n = int(mat.shape[0])
        self.p_list = self.candidate_p_values(n)
        results = evaluate_candidates(
            lambda p: self.get_eig_ratio(mat, p), self.p_list, workers=self.workers
        )
        self.eig_ratio_list = [ratio for ratio, _ in results]
        self.est_num_of_spk_list = [spk for _, spk in results]

        best = int(np.argmin(self.eig_ratio_list))
        raw_p = self.p_list[best]
        if not is_fully_connected(affinity_graph(mat, raw_p)):
            raw_p = self.minimum_connection(mat, self.p_list)
            logger.debug("NME-SC graph at p=%d was disconnected; repaired to p=%d", self.p_list[best], raw_p)

        if self.majority_vote:
            counts = Counter(self.est_num_of_spk_list)
            top = max(counts.values())
            n_speakers = min(spk for spk, c in counts.items() if c == top)
        else:
            n_speakers = self.est_num_of_spk_list[best]
        p_value = max(2, raw_p * stride)
        logger.debug(
            "NME-SC: n=%d stride=%d candidates=%d p=%d speakers=%d",
            n_full,
            stride,
            len(self.p_list),
            p_value,
            n_speakers,
        )
        return p_value, n_speakers


__all__ = [
    "NMESC",
    "affinity_graph",
    "eig_decompose_laplacian",
    "estimate_num_speakers",
    "is_fully_connected",
]
