"""Tests for the multi-scale embedding fuser using stub speaker models."""

from __future__ import annotations

import numpy as np
import pytest

from whospoke.diarization.config import Interval
from whospoke.diarization.embeddings import EmbeddingScale, MultiScaleEmbeddingFuser
from whospoke.errors import ModelContractError


class _RecordingModel:
    """Returns the frame mean and remembers every window it saw."""

    def __init__(self) -> None:
        self.windows: list[np.ndarray] = []

    def __call__(self, frames: np.ndarray) -> np.ndarray:
        self.windows.append(np.array(frames, copy=True))
        return frames.mean(axis=0)


def test_short_slice_is_padded_with_last_frame() -> None:
    model = _RecordingModel()
    fuser = MultiScaleEmbeddingFuser(model, [EmbeddingScale(0.05, 0.01)])
    frames = np.array([[0.0, 1.0], [1.0, 1.0], [2.0, 5.0]], dtype=np.float32)

    vec = fuser.fuse(frames)

    assert len(model.windows) == 1
    window = model.windows[0]
    assert window.shape == (5, 2)
    np.testing.assert_allclose(window[3], frames[-1])
    np.testing.assert_allclose(window[4], frames[-1])
    assert vec.dtype == np.float32
    np.testing.assert_allclose(vec, [7.0 / 5.0, 17.0 / 5.0], rtol=1e-6)


def test_scales_are_combined_by_weight() -> None:
    model = lambda frames: np.full(2, float(frames.shape[0]))  # noqa: E731
    fuser = MultiScaleEmbeddingFuser.from_lists(
        model, windows_sec=[0.02, 0.04], shifts_sec=[0.01, 0.01], weights=[1.0, 3.0]
    )

    vec = fuser.fuse(np.zeros((4, 3), dtype=np.float32))

    # Scale one averages three 2-frame windows, scale two sees one 4-frame window.
    np.testing.assert_allclose(vec, [3.5, 3.5])


def test_mismatched_weights_fall_back_to_equal() -> None:
    fuser = MultiScaleEmbeddingFuser.from_lists(
        lambda f: np.ones(2), windows_sec=[1.0, 0.5], shifts_sec=[0.5, 0.25], weights=[1.0]
    )

    assert [s.weight for s in fuser.scales] == [1.0, 1.0]


def test_dimension_change_is_a_contract_violation() -> None:
    model = lambda frames: np.zeros(frames.shape[0])  # noqa: E731
    fuser = MultiScaleEmbeddingFuser.from_lists(model, [0.02, 0.03], [0.01, 0.01])

    with pytest.raises(ModelContractError):
        fuser.fuse(np.zeros((3, 2), dtype=np.float32))


def test_empty_model_output_is_a_contract_violation() -> None:
    fuser = MultiScaleEmbeddingFuser.from_lists(lambda f: np.zeros(0), [0.02], [0.01])

    with pytest.raises(ModelContractError):
        fuser.fuse(np.zeros((3, 2), dtype=np.float32))


def test_extract_keeps_intervals_aligned_with_vectors() -> None:
    frames = np.zeros((100, 2), dtype=np.float32)
    frames[:50, 0] = 1.0
    frames[50:, 1] = 1.0
    fuser = MultiScaleEmbeddingFuser.from_lists(lambda f: f.mean(axis=0), [0.1], [0.05])
    subsegments = [Interval(0.0, 0.4), Interval(5.0, 6.0), Interval(0.6, 1.0)]

    kept, embeddings = fuser.extract(frames, subsegments)

    # The middle subsegment lies past the last frame and is dropped.
    assert kept == [subsegments[0], subsegments[2]]
    assert embeddings.shape == (2, 2)
    np.testing.assert_allclose(embeddings[0], [1.0, 0.0])
    np.testing.assert_allclose(embeddings[1], [0.0, 1.0])
    assert fuser.dim == 2


def test_extract_with_nothing_to_embed() -> None:
    fuser = MultiScaleEmbeddingFuser.from_lists(lambda f: f.mean(axis=0), [0.1], [0.05])

    kept, embeddings = fuser.extract(np.zeros((10, 2), dtype=np.float32), [])

    assert kept == []
    assert embeddings.shape[0] == 0
