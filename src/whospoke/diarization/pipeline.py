from __future__ import annotations

import time
from typing import Any

import numpy as np

from ..errors import ConfigurationError, ModelContractError, attach_context
from . import agglomerative
from .clustering import SpectralClusterer, build_affinity
from .config import DiarizationConfig, DiarizationResult, DiarizedSegment, Interval
from .embeddings import EmbeddingModel, MultiScaleEmbeddingFuser, OnnxSpeakerEmbedder
from .logger import logger
from .nmesc import NMESC, affinity_graph
from .segments import drop_short, label_subsegments, merge_adjacent, split_subsegments
from .vad import FrameClassifier, OnnxFrameClassifier, build_segments, run_sliding


class SpeakerDiarizer:
    """VAD, subsegmentation, multi-scale embeddings and clustering in one pass.

    The frame classifier and embedding model are plain callables so tests (and
    alternative backends) can be injected; ``from_config`` wires the ONNX
    adapters.
    """

    def __init__(
        self,
        config: DiarizationConfig | None = None,
        frame_classifier: FrameClassifier | None = None,
        embedder: EmbeddingModel | None = None,
    ) -> None:
        self.config = (config or DiarizationConfig()).validate()
        self.frame_classifier = frame_classifier
        self.embedder = embedder
        self._last_diagnostics: dict[str, Any] = {}

    @classmethod
    def from_config(cls, config: DiarizationConfig, *, threads: int = 1) -> SpeakerDiarizer:
        config.validate()
        if not config.vad_model_path:
            raise ConfigurationError(
                "No VAD model given (pass --vad or set WHOSPOKE_VAD_ONNX)", stage="config"
            )
        if not config.spk_model_path:
            raise ConfigurationError(
                "No speaker model given (pass --spk or set WHOSPOKE_SPK_ONNX)", stage="config"
            )
        logger.info("Loading ONNX models...")
        classifier = OnnxFrameClassifier(config.vad_model_path, threads=threads)
        embedder = OnnxSpeakerEmbedder(config.spk_model_path, threads=threads)
        return cls(config, classifier, embedder)

    def get_diagnostics(self) -> dict[str, Any]:
        return dict(self._last_diagnostics)

    # ------------------------------------------------------------------
    def detect_speech(self, vad_frames: np.ndarray) -> tuple[list[Interval], np.ndarray]:
        if self.frame_classifier is None:
            raise ConfigurationError("No frame classifier configured", stage="vad")
        cfg = self.config
        probs = run_sliding(
            vad_frames,
            self.frame_classifier,
            frame_hop_sec=cfg.frame_hop_sec,
            window_sec=cfg.vad_window_sec,
            shift_sec=cfg.vad_shift_sec,
            smoothing=cfg.vad_smoothing,
            overlap=cfg.vad_overlap,
        )
        intervals = build_segments(
            probs,
            frame_hop_sec=cfg.frame_hop_sec,
            onset=cfg.vad_onset,
            offset=cfg.vad_offset,
            pad_onset_sec=cfg.vad_pad_onset_sec,
            pad_offset_sec=cfg.vad_pad_offset_sec,
            min_speech_sec=cfg.vad_min_speech_sec,
            min_silence_sec=cfg.vad_min_silence_sec,
        )
        return intervals, probs

    def embed(
        self, spk_frames: np.ndarray, subsegments: list[Interval]
    ) -> tuple[list[Interval], np.ndarray]:
        if self.embedder is None:
            raise ConfigurationError("No speaker embedding model configured", stage="embeddings")
        cfg = self.config
        fuser = MultiScaleEmbeddingFuser.from_lists(
            self.embedder,
            cfg.embed_windows_sec,
            cfg.embed_shifts_sec,
            cfg.embed_weights,
            frame_hop_sec=cfg.frame_hop_sec,
        )
        try:
            return fuser.extract(spk_frames, subsegments)
        except ModelContractError as exc:
            attach_context(exc, {"subsegments": len(subsegments)})
            raise

    def cluster(self, embeddings: np.ndarray) -> tuple[np.ndarray, dict[str, Any]]:
        """Label ``embeddings`` with the configured backend.  Needs at least two rows."""
        cfg = self.config
        backend = cfg.clustering_backend
        info: dict[str, Any] = {"backend": backend}
        if backend == "nmesc":
            aff = build_affinity(embeddings)
            p_value, n_spk = NMESC(
                aff,
                max_num_speakers=cfg.max_speakers,
                max_rp_threshold=cfg.nme_max_rp_threshold,
                sparse_search_volume=cfg.nme_sparse_search_volume,
                nme_mat_size=cfg.nme_mat_size,
                use_subsampling=cfg.nme_use_subsampling,
                fixed_threshold=cfg.nme_fixed_threshold,
                majority_vote=cfg.nme_majority_vote,
                workers=cfg.nme_workers,
            ).estimate()
            graph = affinity_graph(aff, p_value)
            labels = SpectralClusterer(seed=cfg.seed).cluster(graph, n_spk)
            info.update(p_value=p_value, n_speakers=n_spk)
        elif backend == "ahc_search":
            labels, threshold, score = agglomerative.search_best_threshold(
                embeddings,
                min_threshold=cfg.ahc_search_min,
                max_threshold=cfg.ahc_search_max,
                step=cfg.ahc_search_step,
                cluster_count_penalty=cfg.ahc_cluster_penalty,
            )
            info.update(threshold=threshold, score=score)
        else:
            labels = agglomerative.cluster(embeddings, cfg.ahc_threshold)
            info.update(threshold=cfg.ahc_threshold)
        return np.asarray(labels, dtype=np.int64), info

    # ------------------------------------------------------------------
    def diarize_features(self, vad_frames: np.ndarray, spk_frames: np.ndarray) -> DiarizationResult:
        cfg = self.config
        intervals, probs = self.detect_speech(vad_frames)
        if probs.size:
            logger.info(
                "SpeechProb: min=%.4f max=%.4f mean=%.4f",
                float(probs.min()),
                float(probs.max()),
                float(probs.mean()),
            )
        logger.info("VAD segments: %d", len(intervals))

        subsegments = split_subsegments(intervals, cfg.subseg_window_sec, cfg.subseg_shift_sec)
        logger.info(
            "Subsegments: %d (win=%.2fs shift=%.2fs)",
            len(subsegments),
            cfg.subseg_window_sec,
            cfg.subseg_shift_sec,
        )

        kept, embeddings = self.embed(spk_frames, subsegments)
        diagnostics: dict[str, Any] = {
            "vad_segments": len(intervals),
            "subsegments": len(subsegments),
            "embeddings": len(kept),
        }

        if len(kept) == 0:
            segments: list[DiarizedSegment] = []
            diagnostics["clusters"] = 0
        elif len(kept) == 1:
            segments = label_subsegments(kept, [0])
            diagnostics["clusters"] = 1
        else:
            t0 = time.perf_counter()
            labels, info = self.cluster(embeddings)
            diagnostics.update(info)
            diagnostics["clusters"] = int(np.unique(labels).size)
            diagnostics["cluster_sec"] = time.perf_counter() - t0
            if cfg.clustering_backend == "nmesc":
                logger.info(
                    "Clusters: %d (p=%d, nSpk=%d)",
                    diagnostics["clusters"],
                    info["p_value"],
                    info["n_speakers"],
                )
            else:
                logger.info(
                    "Clusters: %d (threshold=%.2f)", diagnostics["clusters"], info["threshold"]
                )
            segments = label_subsegments(kept, labels)

        segments = merge_adjacent(segments, cfg.merge_gap_sec)
        segments = drop_short(segments, cfg.min_segment_sec)
        diagnostics["segments"] = len(segments)
        self._last_diagnostics = diagnostics
        return DiarizationResult(segments=segments, diagnostics=diagnostics)

    def diarize_audio(self, wav: np.ndarray, sr: int) -> DiarizationResult:
        from ..preprocess.features import extract_spk_features, extract_vad_features

        vad_frames = extract_vad_features(wav, sr)
        spk_frames = extract_spk_features(wav, sr)
        logger.info(
            "Mel frames: %d x %d bins (%.2fs of audio)",
            vad_frames.shape[0],
            vad_frames.shape[1],
            np.asarray(wav).size / float(sr),
        )
        return self.diarize_features(vad_frames, spk_frames)


__all__ = ["SpeakerDiarizer"]
