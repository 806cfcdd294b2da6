"""Regression tests for the whospoke Typer CLI."""

from __future__ import annotations

import json

import numpy as np
from typer.testing import CliRunner

from whospoke import cli
from whospoke.diarization.config import DiarizationResult, DiarizedSegment
from whospoke.errors import DependencyError


class _StubDiarizer:
    def __init__(self) -> None:
        self.calls: list[tuple[int, int]] = []

    def diarize_audio(self, wav, sr):
        self.calls.append((len(wav), sr))
        return DiarizationResult(
            segments=[
                DiarizedSegment(0.0, 1.5, "speaker_0"),
                DiarizedSegment(1.5, 3.0, "speaker_1"),
            ],
            diagnostics={"vad_segments": 1, "clusters": 2},
        )


def _patch_core(monkeypatch, captured: dict[str, object]) -> _StubDiarizer:
    stub = _StubDiarizer()

    def _fake_build(config, threads=1):
        captured["config"] = config
        captured["threads"] = threads
        return stub

    def _fake_load(path, target_sr):
        captured["audio"] = path
        return np.zeros(target_sr, dtype=np.float32), target_sr

    monkeypatch.setattr(cli, "core_build_diarizer", _fake_build)
    monkeypatch.setattr(cli, "core_load_audio", _fake_load)
    return stub


def test_diarize_writes_json_and_reports_summary(monkeypatch, tmp_path):
    audio_file = tmp_path / "meeting.wav"
    audio_file.write_bytes(b"fake")
    out = tmp_path / "result.json"
    captured: dict[str, object] = {}
    stub = _patch_core(monkeypatch, captured)

    runner = CliRunner()
    result = runner.invoke(
        cli.app,
        [
            "diarize",
            str(audio_file),
            "--vad",
            "vad.onnx",
            "--spk",
            "spk.onnx",
            "--out",
            str(out),
            "--cluster-backend",
            "nmesc",
            "--emb-win",
            "1.5,1.0",
            "--emb-shift",
            "0.75",
            "--vad-onset",
            "0.8",
            "--threads",
            "2",
        ],
    )

    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout.strip())
    assert payload["output"] == str(out)
    assert payload["segments"] == 2
    assert payload["speakers"] == 2

    written = json.loads(out.read_text(encoding="utf-8"))
    assert [row["speaker"] for row in written] == ["speaker_0", "speaker_1"]

    config = captured["config"]
    assert config.clustering_backend == "nmesc"
    assert config.vad_model_path == "vad.onnx"
    assert config.embed_windows_sec == [1.5, 1.0]
    assert config.embed_shifts_sec == [0.75, 0.75]
    assert config.vad_onset == 0.8
    assert captured["threads"] == 2
    assert stub.calls == [(16000, 16000)]


def test_directory_output_uses_audio_stem(monkeypatch, tmp_path):
    audio_file = tmp_path / "call.wav"
    audio_file.write_bytes(b"fake")
    outdir = tmp_path / "outs"
    outdir.mkdir()
    _patch_core(monkeypatch, {})

    result = CliRunner().invoke(
        cli.app, ["diarize", str(audio_file), "--out", str(outdir), "--format", "csv"]
    )

    assert result.exit_code == 0, result.output
    target = outdir / "call_segments.csv"
    assert target.exists()
    assert target.read_text(encoding="utf-8").splitlines()[0] == "start,end,speaker"


def test_engine_errors_exit_non_zero(monkeypatch, tmp_path):
    audio_file = tmp_path / "meeting.wav"
    audio_file.write_bytes(b"fake")

    def _broken_build(config, threads=1):
        raise DependencyError("onnxruntime import failed", stage="onnxruntime")

    monkeypatch.setattr(cli, "core_build_diarizer", _broken_build)

    result = CliRunner().invoke(cli.app, ["diarize", str(audio_file)])

    assert result.exit_code == 1
    assert "onnxruntime import failed" in result.output


def test_bad_options_are_rejected(monkeypatch, tmp_path):
    audio_file = tmp_path / "meeting.wav"
    audio_file.write_bytes(b"fake")
    _patch_core(monkeypatch, {})
    runner = CliRunner()

    bad_format = runner.invoke(cli.app, ["diarize", str(audio_file), "--format", "xml"])
    assert bad_format.exit_code != 0

    bad_backend = runner.invoke(
        cli.app, ["diarize", str(audio_file), "--cluster-backend", "kmeans"]
    )
    assert bad_backend.exit_code == 1
    assert "clustering_backend" in bad_backend.output


def test_inspect_prints_model_inputs(monkeypatch, tmp_path):
    model = tmp_path / "vad.onnx"
    model.write_bytes(b"onnx")
    monkeypatch.setattr(
        cli,
        "core_describe_inputs",
        lambda path: [{"name": "audio_signal", "shape": [1, 80, "T"], "type": "tensor(float)"}],
    )

    result = CliRunner().invoke(cli.app, ["inspect", str(model)])

    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    assert payload["inputs"][0]["name"] == "audio_signal"


def test_out_with_trailing_separator_creates_directory(monkeypatch, tmp_path):
    audio_file = tmp_path / "meeting.wav"
    audio_file.write_bytes(b"fake")
    _patch_core(monkeypatch, {})

    result = CliRunner().invoke(
        cli.app, ["diarize", str(audio_file), "--out", str(tmp_path / "newdir") + "/"]
    )

    assert result.exit_code == 0, result.output
    target = tmp_path / "newdir" / "meeting_segments.json"
    assert target.is_file()
    assert json.loads(result.stdout.strip())["output"] == str(target)


def test_local_out_writes_second_json_copy(monkeypatch, tmp_path):
    audio_file = tmp_path / "meeting.wav"
    audio_file.write_bytes(b"fake")
    local_dir = tmp_path / "local"
    _patch_core(monkeypatch, {})

    result = CliRunner().invoke(
        cli.app,
        [
            "diarize",
            str(audio_file),
            "--out",
            str(tmp_path / "main.csv"),
            "--format",
            "csv",
            "--local-out",
            str(local_dir),
            "--name",
            "take1",
        ],
    )

    assert result.exit_code == 0, result.output
    local_copy = local_dir / "take1_segments.json"
    assert json.loads(local_copy.read_text(encoding="utf-8"))[1]["speaker"] == "speaker_1"
    assert (tmp_path / "main.csv").exists()
    assert json.loads(result.stdout.strip())["local_output"] == str(local_copy)


def test_clustering_and_vad_tunables_reach_the_config(monkeypatch, tmp_path):
    audio_file = tmp_path / "meeting.wav"
    audio_file.write_bytes(b"fake")
    captured: dict[str, object] = {}
    _patch_core(monkeypatch, captured)

    result = CliRunner().invoke(
        cli.app,
        [
            "diarize",
            str(audio_file),
            "--cluster-backend",
            "ahc_search",
            "--search-min",
            "0.2",
            "--search-max",
            "0.4",
            "--search-step",
            "0.05",
            "--cluster-penalty",
            "0.1",
            "--nme-max-rp",
            "0.3",
            "--nme-search-volume",
            "12",
            "--nme-no-subsampling",
            "--nme-majority-vote",
            "--seed",
            "7",
            "--vad-window",
            "0.5",
            "--vad-shift",
            "0.02",
        ],
    )

    assert result.exit_code == 0, result.output
    config = captured["config"]
    assert config.ahc_search_min == 0.2
    assert config.ahc_search_max == 0.4
    assert config.ahc_search_step == 0.05
    assert config.ahc_cluster_penalty == 0.1
    assert config.nme_max_rp_threshold == 0.3
    assert config.nme_sparse_search_volume == 12
    assert config.nme_use_subsampling is False
    assert config.nme_majority_vote is True
    assert config.seed == 7
    assert config.vad_window_sec == 0.5
    assert config.vad_shift_sec == 0.02
    assert config.nme_mat_size == 512
