from __future__ import annotations

import math
import threading
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from pathlib import Path

import numpy as np

from ..errors import ModelContractError
from ..io.onnx_utils import create_onnx_session
from .config import Interval
from .logger import logger

# frames (T, bins) -> embedding (D,)
EmbeddingModel = Callable[[np.ndarray], np.ndarray]


@dataclass(frozen=True)
class EmbeddingScale:
    window_sec: float
    shift_sec: float
    weight: float = 1.0


class MultiScaleEmbeddingFuser:
    """Average speaker embeddings over several window scales.

    Each scale slides its own window across a subsegment and averages the
    resulting embeddings; the per-scale means are then combined by weight.
    The embedding dimension is fixed by the first call and checked on every
    later one.
    """

    def __init__(
        self,
        model: EmbeddingModel,
        scales: Sequence[EmbeddingScale],
        frame_hop_sec: float = 0.010,
    ) -> None:
        self.model = model
        self.scales = list(scales)
        self.frame_hop_sec = float(frame_hop_sec)
        self._dim: int | None = None

    @classmethod
    def from_lists(
        cls,
        model: EmbeddingModel,
        windows_sec: Sequence[float],
        shifts_sec: Sequence[float],
        weights: Sequence[float] | None = None,
        frame_hop_sec: float = 0.010,
    ) -> MultiScaleEmbeddingFuser:
        if weights is None or len(weights) != len(windows_sec):
            weights = [1.0] * len(windows_sec)
        scales = [
            EmbeddingScale(float(w), float(s), float(wt))
            for w, s, wt in zip(windows_sec, shifts_sec, weights)
        ]
        return cls(model, scales, frame_hop_sec=frame_hop_sec)

    @property
    def dim(self) -> int | None:
        return self._dim

    def _embed(self, frames: np.ndarray) -> np.ndarray:
        vec = np.asarray(self.model(frames), dtype=np.float64).reshape(-1)
        if vec.size == 0:
            raise ModelContractError("Embedding model returned an empty vector", stage="embeddings")
        if self._dim is None:
            self._dim = int(vec.size)
        elif vec.size != self._dim:
            raise ModelContractError(
                f"Embedding dimension changed from {self._dim} to {vec.size}",
                stage="embeddings",
                context={"expected": self._dim, "got": int(vec.size)},
            )
        return vec

    def _scale_mean(self, frames: np.ndarray, scale: EmbeddingScale) -> np.ndarray | None:
        win = max(1, round(scale.window_sec / self.frame_hop_sec))
        shift = max(1, round(scale.shift_sec / self.frame_hop_sec))
        n = frames.shape[0]
        if n < win:
            pad = np.repeat(frames[-1:], win - n, axis=0)
            return self._embed(np.concatenate([frames, pad], axis=0))
        embeds = [self._embed(frames[i : i + win]) for i in range(0, n - win + 1, shift)]
        if not embeds:
            return None
        return np.mean(np.vstack(embeds), axis=0)

    def fuse(self, segment_frames: np.ndarray) -> np.ndarray | None:
        """Return the fused embedding for one subsegment, or ``None`` if nothing was produced."""
        frames = np.asarray(segment_frames)
        if frames.ndim != 2 or frames.shape[0] == 0:
            return None
        combined: np.ndarray | None = None
        weight_sum = 0.0
        for scale in self.scales:
            mean = self._scale_mean(frames, scale)
            if mean is None:
                continue
            contribution = mean * scale.weight
            combined = contribution if combined is None else combined + contribution
            weight_sum += scale.weight
        if combined is None:
            return None
        if weight_sum > 0:
            combined = combined / weight_sum
        return combined.astype(np.float32)

    def extract(
        self, mel_frames: np.ndarray, subsegments: Sequence[Interval]
    ) -> tuple[list[Interval], np.ndarray]:
        """Fuse every subsegment; returns the kept subsegments and an ``(n, D)`` matrix."""
        frames = np.asarray(mel_frames)
        total = int(frames.shape[0]) if frames.ndim else 0
        kept: list[Interval] = []
        vectors: list[np.ndarray] = []
        for seg in subsegments:
            start = max(0, int(math.floor(seg.start / self.frame_hop_sec)))
            end = min(total, int(math.ceil(seg.end / self.frame_hop_sec)))
            if end <= start:
                continue
            vec = self.fuse(frames[start:end])
            if vec is None:
                continue
            kept.append(seg)
            vectors.append(vec)
        if len(kept) < len(subsegments):
            logger.info(
                "Dropped %d subsegments without usable embeddings", len(subsegments) - len(kept)
            )
        if not vectors:
            return kept, np.zeros((0, self._dim or 0), dtype=np.float32)
        return kept, np.vstack(vectors)


class OnnxSpeakerEmbedder:
    """Speaker embedding model backed by an ONNX export (TitaNet style).

    Inputs are ``audio_signal`` ``(1, bins, T)`` and ``length`` ``(1,)``; the
    last graph output holds the ``(1, D)`` embedding.  The session is created
    once and calls are serialized.
    """

    def __init__(self, model_path: str | Path, *, threads: int = 1) -> None:
        self.model_path = Path(model_path)
        self.session = create_onnx_session(self.model_path, threads=threads)
        inputs = self.session.get_inputs()
        self.signal_name = inputs[0].name
        self.length_name = inputs[1].name if len(inputs) > 1 else None
        self._lock = threading.Lock()
        logger.info("Speaker embedding ONNX model loaded: %s", self.model_path)

    def __call__(self, mel_frames: np.ndarray) -> np.ndarray:
        frames = np.asarray(mel_frames, dtype=np.float32)
        if frames.ndim != 2 or frames.shape[0] == 0:
            return np.zeros(0, dtype=np.float32)
        feeds = {self.signal_name: frames.T[np.newaxis, :, :].copy()}
        if self.length_name:
            feeds[self.length_name] = np.array([frames.shape[0]], dtype=np.int64)
        with self._lock:
            outputs = self.session.run(None, feeds)
        embs = np.asarray(outputs[-1], dtype=np.float32)
        if embs.ndim != 2:
            raise ModelContractError(
                f"Unexpected embedding dims: {','.join(str(d) for d in embs.shape)}",
                stage="embeddings",
            )
        return embs[0]


__all__ = [
    "EmbeddingModel",
    "EmbeddingScale",
    "MultiScaleEmbeddingFuser",
    "OnnxSpeakerEmbedder",
]
