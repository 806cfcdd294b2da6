from __future__ import annotations

from .agglomerative import cluster as agglomerative_cluster
from .agglomerative import search_best_threshold, silhouette_score
from .clustering import KMeans, SpectralClusterer, build_affinity, laplacian
from .config import DiarizationConfig, DiarizationResult, DiarizedSegment, Interval
from .embeddings import EmbeddingScale, MultiScaleEmbeddingFuser, OnnxSpeakerEmbedder
from .nmesc import NMESC, affinity_graph
from .pipeline import SpeakerDiarizer
from .segments import drop_short, label_subsegments, merge_adjacent, split_subsegments
from .vad import OnnxFrameClassifier, build_segments, run_sliding

__all__ = [
    "DiarizationConfig",
    "DiarizationResult",
    "DiarizedSegment",
    "Interval",
    "SpeakerDiarizer",
    "OnnxFrameClassifier",
    "OnnxSpeakerEmbedder",
    "MultiScaleEmbeddingFuser",
    "EmbeddingScale",
    "KMeans",
    "NMESC",
    "SpectralClusterer",
    "affinity_graph",
    "agglomerative_cluster",
    "build_affinity",
    "build_segments",
    "drop_short",
    "label_subsegments",
    "laplacian",
    "merge_adjacent",
    "run_sliding",
    "search_best_threshold",
    "silhouette_score",
    "split_subsegments",
]
