from __future__ import annotations

import threading
from collections.abc import Callable
from pathlib import Path

import numpy as np

from ..errors import ConfigurationError, ModelContractError
from ..io.onnx_utils import create_onnx_session
from .config import SMOOTHING_METHODS, Interval
from .logger import logger

# frames (T, bins) -> one probability, or one per frame
FrameClassifier = Callable[[np.ndarray], np.ndarray]


def build_segments(
    speech_prob: np.ndarray,
    frame_hop_sec: float = 0.010,
    onset: float = 0.9,
    offset: float = 0.5,
    pad_onset_sec: float = 0.0,
    pad_offset_sec: float = 0.0,
    min_speech_sec: float = 0.0,
    min_silence_sec: float = 0.6,
) -> list[Interval]:
    """Turn per-frame speech probabilities into speech intervals.

    Speech starts when a frame reaches ``onset`` and continues while frames stay
    at or above ``offset``.  A run of lower frames closes the interval at the
    last speech frame once it lasts ``min_silence_sec``.
    """
    probs = np.asarray(speech_prob).reshape(-1)
    if not np.issubdtype(probs.dtype, np.floating):
        probs = probs.astype(np.float64)
    segments: list[Interval] = []
    if probs.size == 0:
        return segments
    # Thresholds are compared at the precision of the probabilities.
    onset = probs.dtype.type(onset)
    offset = probs.dtype.type(offset)

    in_speech = False
    start_idx = 0
    last_speech_idx = 0
    for i, p in enumerate(probs):
        if not in_speech:
            if p >= onset:
                in_speech = True
                start_idx = i
                last_speech_idx = i
        elif p >= offset:
            last_speech_idx = i
        elif (i - last_speech_idx) * frame_hop_sec >= min_silence_sec:
            _add_if_long_enough(
                segments,
                start_idx,
                last_speech_idx,
                frame_hop_sec,
                pad_onset_sec,
                pad_offset_sec,
                min_speech_sec,
            )
            in_speech = False

    if in_speech:
        _add_if_long_enough(
            segments,
            start_idx,
            last_speech_idx,
            frame_hop_sec,
            pad_onset_sec,
            pad_offset_sec,
            min_speech_sec,
        )
    return segments


def _add_if_long_enough(
    segments: list[Interval],
    start_idx: int,
    end_idx: int,
    hop: float,
    pad_onset_sec: float,
    pad_offset_sec: float,
    min_speech_sec: float,
) -> None:
    start = max(0.0, start_idx * hop - pad_onset_sec)
    end = (end_idx + 1) * hop + pad_offset_sec
    if end <= start or end - start < min_speech_sec:
        return
    if segments and start <= segments[-1].end:
        # Padding made two intervals touch; keep the timeline non-overlapping.
        prev = segments[-1]
        segments[-1] = Interval(prev.start, max(prev.end, end))
        return
    segments.append(Interval(start, end))


def run_sliding(
    mel_frames: np.ndarray,
    classifier: FrameClassifier,
    frame_hop_sec: float = 0.010,
    window_sec: float = 0.63,
    shift_sec: float = 0.01,
    smoothing: str = "none",
    overlap: float = 0.5,
) -> np.ndarray:
    """Run ``classifier`` over overlapping windows and average per frame."""
    method = (smoothing or "none").strip().lower()
    if method not in SMOOTHING_METHODS:
        raise ConfigurationError(
            "smoothing should be 'none', 'mean', or 'median'",
            stage="vad",
            context={"smoothing": smoothing},
        )
    frames = np.asarray(mel_frames)
    total = int(frames.shape[0]) if frames.ndim else 0
    if total == 0:
        return np.zeros(0, dtype=np.float32)

    win_frames = max(1, round(window_sec / frame_hop_sec))
    shift_frames = max(1, round(shift_sec / frame_hop_sec))

    sums = np.zeros(total, dtype=np.float64)
    counts = np.zeros(total, dtype=np.int64)
    window_means: list[float] = []
    for i in range(0, total - win_frames + 1, shift_frames):
        p = np.asarray(classifier(frames[i : i + win_frames]), dtype=np.float64).reshape(-1)
        if p.size == 0:
            continue
        if p.size == 1:
            sums[i : i + win_frames] += p[0]
            counts[i : i + win_frames] += 1
            window_means.append(float(p[0]))
        else:
            limit = min(p.size, win_frames)
            sums[i : i + limit] += p[:limit]
            counts[i : i + limit] += 1
            window_means.append(float(p[:limit].mean()))

    probs = np.zeros(total, dtype=np.float64)
    covered = counts > 0
    probs[covered] = sums[covered] / counts[covered]
    logger.debug(
        "VAD sliding pass: %d windows (win=%d, shift=%d frames)",
        len(window_means),
        win_frames,
        shift_frames,
    )
    if method == "none":
        return probs.astype(np.float32)
    return _overlap_smoothing(
        np.asarray(window_means, dtype=np.float64),
        total,
        win_frames,
        shift_frames,
        overlap,
        method,
    ).astype(np.float32)


def _overlap_smoothing(
    window_means: np.ndarray,
    target_frames: int,
    win_frames: int,
    shift_frames: int,
    overlap: float,
    method: str,
) -> np.ndarray:
    preds = np.zeros(target_frames, dtype=np.float64)
    if window_means.size == 0:
        return preds
    seg = win_frames + 1
    jump_on_target = round(seg * (1.0 - overlap))
    jump_on_frame = max(1, round(jump_on_target / shift_frames))

    buckets: list[list[float]] = [[] for _ in range(target_frames)]
    for i in range(0, window_means.size, jump_on_frame):
        start = i * shift_frames
        end = min(start + seg, target_frames)
        for j in range(start, end):
            buckets[j].append(float(window_means[i]))

    last = 0.0
    for i, bucket in enumerate(buckets):
        if bucket:
            if method == "mean":
                last = sum(bucket) / len(bucket)
            else:
                last = sorted(bucket)[len(bucket) // 2]
        preds[i] = last
    return preds


class OnnxFrameClassifier:
    """Frame-level speech classifier backed by an ONNX export.

    Expects a MarbleNet style graph: ``audio_signal`` of shape ``(1, bins, T)``
    and ``length`` of shape ``(1,)``, returning logits ``(T, 2)`` or
    ``(1, T, 2)``.  One session is shared by all calls; access is serialized.
    """

    def __init__(self, model_path: str | Path, *, threads: int = 1) -> None:
        self.model_path = Path(model_path)
        self.session = create_onnx_session(self.model_path, threads=threads)
        inputs = self.session.get_inputs()
        self.signal_name = inputs[0].name
        self.length_name = inputs[1].name if len(inputs) > 1 else None
        self._lock = threading.Lock()
        logger.info("VAD ONNX model loaded: %s", self.model_path)

    def __call__(self, mel_frames: np.ndarray) -> np.ndarray:
        frames = np.asarray(mel_frames, dtype=np.float32)
        if frames.ndim != 2 or frames.shape[0] == 0:
            return np.zeros(0, dtype=np.float32)
        feeds = {self.signal_name: frames.T[np.newaxis, :, :].copy()}
        if self.length_name:
            feeds[self.length_name] = np.array([frames.shape[0]], dtype=np.int64)
        with self._lock:
            outputs = self.session.run(None, feeds)
        return speech_probabilities(np.asarray(outputs[0], dtype=np.float32))


def speech_probabilities(logits: np.ndarray) -> np.ndarray:
    """Softmax probability of the speech class from ``(T, 2)``/``(1, T, 2)`` logits."""
    if logits.ndim == 3:
        logits = logits[0]
    elif logits.ndim != 2:
        raise ModelContractError(
            f"Unexpected VAD logits dims: {','.join(str(d) for d in logits.shape)}",
            stage="vad",
        )
    if logits.shape[1] != 2:
        raise ModelContractError(f"Expected 2 classes, got {logits.shape[1]}", stage="vad")
    shifted = logits - logits.max(axis=1, keepdims=True)
    exps = np.exp(shifted.astype(np.float64))
    return (exps[:, 1] / exps.sum(axis=1)).astype(np.float32)


__all__ = [
    "FrameClassifier",
    "OnnxFrameClassifier",
    "build_segments",
    "run_sliding",
    "speech_probabilities",
]
