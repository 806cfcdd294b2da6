"""Log-mel filterbank frames for the VAD and speaker models.

Both models consume 80-bin log10 power mel frames (25 ms Hann window, 10 ms
hop) laid out as ``(T, 80)``.  The speaker model additionally expects each
mel bin normalised to zero mean and unit variance over the utterance.
"""

from __future__ import annotations

import librosa
import numpy as np

N_MELS = 80
N_FFT = 512
LOG_FLOOR = 1e-9
DITHER = 1e-5


def log_mel_frames(
    wav: np.ndarray,
    sr: int = 16000,
    *,
    dither: float = DITHER,
    seed: int = 0,
) -> np.ndarray:
    y = np.asarray(wav, dtype=np.float32).reshape(-1)
    win_length = int(round(0.025 * sr))
    hop_length = int(round(0.010 * sr))
    if y.size < win_length:
        return np.zeros((0, N_MELS), dtype=np.float32)
    y = y.copy()
    if dither > 0:
        rng = np.random.default_rng(seed)
        y += (rng.uniform(-1.0, 1.0, size=y.size) * dither).astype(np.float32)
    n_fft = max(N_FFT, win_length)
    # Frames start at sample 0 and span exactly one analysis window.
    side = (n_fft - win_length) // 2
    y = np.pad(y, (side, n_fft - win_length - side))
    power = librosa.feature.melspectrogram(
        y=y,
        sr=sr,
        n_fft=n_fft,
        hop_length=hop_length,
        win_length=win_length,
        window="hann",
        center=False,
        power=2.0,
        n_mels=N_MELS,
        htk=True,
        norm=None,
    )
    return np.log10(np.maximum(power, LOG_FLOOR)).T.astype(np.float32)


def normalize_per_feature(frames: np.ndarray) -> np.ndarray:
    feats = np.asarray(frames, dtype=np.float64)
    if feats.shape[0] == 0:
        return feats.astype(np.float32)
    mean = feats.mean(axis=0)
    std = np.sqrt(((feats - mean) ** 2).mean(axis=0) + 1e-12)
    return ((feats - mean) / std).astype(np.float32)


def extract_vad_features(wav: np.ndarray, sr: int = 16000) -> np.ndarray:
    return log_mel_frames(wav, sr)


def extract_spk_features(wav: np.ndarray, sr: int = 16000) -> np.ndarray:
    return normalize_per_feature(log_mel_frames(wav, sr))


__all__ = [
    "extract_spk_features",
    "extract_vad_features",
    "log_mel_frames",
    "normalize_per_feature",
]
