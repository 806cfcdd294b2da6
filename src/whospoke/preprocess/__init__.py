"""Audio loading and mel feature extraction."""

from __future__ import annotations

from .audio import load_audio
from .features import extract_spk_features, extract_vad_features, log_mel_frames

__all__ = ["extract_spk_features", "extract_vad_features", "load_audio", "log_mel_frames"]
