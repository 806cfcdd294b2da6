from __future__ import annotations

import numpy as np
import pytest
import soundfile as sf

from whospoke.errors import DiarizationError
from whospoke.preprocess.audio import load_audio
from whospoke.preprocess.features import (
    N_MELS,
    extract_spk_features,
    extract_vad_features,
    log_mel_frames,
)


def _tone(seconds: float = 1.0, sr: int = 16000) -> np.ndarray:
    t = np.arange(int(seconds * sr)) / sr
    return (0.3 * np.sin(2 * np.pi * 440.0 * t)).astype(np.float32)


def test_log_mel_frame_layout() -> None:
    frames = log_mel_frames(_tone())

    # 25 ms windows every 10 ms without centring.
    assert frames.shape == (98, N_MELS)
    assert frames.dtype == np.float32
    assert np.all(frames >= -9.0 - 1e-6)


def test_dither_is_deterministic() -> None:
    silence = np.zeros(16000, dtype=np.float32)

    np.testing.assert_array_equal(extract_vad_features(silence), extract_vad_features(silence))


def test_too_short_input_has_no_frames() -> None:
    assert log_mel_frames(np.zeros(200, dtype=np.float32)).shape == (0, N_MELS)


def test_speaker_features_are_normalised_per_bin() -> None:
    feats = extract_spk_features(_tone() + 0.01 * np.random.default_rng(1).standard_normal(16000).astype(np.float32))

    np.testing.assert_allclose(feats.mean(axis=0), 0.0, atol=1e-4)
    np.testing.assert_allclose(feats.std(axis=0), 1.0, atol=1e-3)


def test_load_audio_downmixes_and_resamples(tmp_path) -> None:
    stereo = np.stack([_tone(0.5, 8000), _tone(0.5, 8000)], axis=1)
    path = tmp_path / "stereo.wav"
    sf.write(path, stereo, 8000)

    wav, sr = load_audio(path, target_sr=16000)

    assert sr == 16000
    assert wav.ndim == 1
    assert wav.dtype == np.float32
    assert abs(wav.size - 8000) <= 2


def test_load_audio_errors_are_tagged(tmp_path) -> None:
    with pytest.raises(DiarizationError) as missing:
        load_audio(tmp_path / "absent.wav")
    assert missing.value.stage == "audio"

    bogus = tmp_path / "bogus.wav"
    bogus.write_bytes(b"not audio")
    with pytest.raises(DiarizationError) as undecodable:
        load_audio(bogus)
    assert undecodable.value.stage == "audio"
