"""Mono audio loading via libsndfile."""

from __future__ import annotations

import logging
from pathlib import Path

import numpy as np
import soundfile as sf
import soxr

from ..errors import DiarizationError

logger = logging.getLogger(__name__)


def load_audio(path: str | Path, target_sr: int = 16000) -> tuple[np.ndarray, int]:
    """Read ``path`` as mono float32 at ``target_sr``.

    Channels are averaged; other sample rates are resampled with soxr.
    """
    source = Path(path)
    if not source.exists():
        raise DiarizationError(
            f"Audio file not found: {source}", stage="audio", context={"path": str(source)}
        )
    try:
        y, sr = sf.read(source, always_2d=False, dtype="float32")
    except RuntimeError as exc:
        raise DiarizationError(
            f"Cannot decode audio file {source}: {exc}",
            stage="audio",
            context={"path": str(source)},
            cause=exc,
        ) from exc
    if y.ndim > 1:
        y = np.mean(y, axis=1)
    if sr != target_sr and y.size:
        logger.debug("Resampling %s from %d Hz to %d Hz", source, sr, target_sr)
        y = soxr.resample(y, sr, target_sr)
    logger.debug("Loaded %s: %.2fs of audio", source, y.size / float(target_sr))
    return np.asarray(y, dtype=np.float32), int(target_sr)


__all__ = ["load_audio"]
