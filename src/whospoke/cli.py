"""Command line interface for the whospoke diarization engine."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Optional

import typer

from .diarization.config import CLUSTERING_BACKENDS, DiarizationConfig
from .diarization.logger import logger
from .errors import DiarizationError
from .io.segments_writer import write_segments

app = typer.Typer(help="Speaker diarization: who spoke when, from a single recording.")

# Ensure Optional is available when annotations are evaluated by inspect on Python 3.11.
globals()["Optional"] = Optional


def core_load_audio(path: Path, target_sr: int) -> tuple[Any, int]:
    from .preprocess.audio import load_audio

    return load_audio(path, target_sr=target_sr)


def core_build_diarizer(config: DiarizationConfig, threads: int = 1) -> Any:
    from .diarization.pipeline import SpeakerDiarizer

    return SpeakerDiarizer.from_config(config, threads=threads)


def core_describe_inputs(model_path: Path) -> list[dict[str, Any]]:
    from .io.onnx_utils import describe_inputs

    return describe_inputs(model_path)


def _resolve_output(audio: Path, out: str | None, fmt: str, name: str | None) -> Path:
    # ``out`` stays a string here: Path() drops the trailing separator that marks a directory.
    stem = name or audio.stem
    if not out:
        return audio.parent / f"{stem}_segments.{fmt}"
    target = Path(out)
    if target.is_dir() or out.endswith(("/", "\\")):
        target.mkdir(parents=True, exist_ok=True)
        return target / f"{stem}_segments.{fmt}"
    return target


def _set_verbose(verbose: bool) -> None:
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)


@app.command()
def diarize(
    audio: Path = typer.Argument(..., exists=True, readable=True, help="Input audio file"),
    vad: Path | None = typer.Option(
        None, "--vad", help="VAD ONNX model (defaults to WHOSPOKE_VAD_ONNX)"
    ),
    spk: Path | None = typer.Option(
        None, "--spk", help="Speaker embedding ONNX model (defaults to WHOSPOKE_SPK_ONNX)"
    ),
    out: str | None = typer.Option(
        None,
        "--out",
        help="Output file, or a directory (existing or ending in '/') for <stem>_segments.<format>",
    ),
    local_out: Path | None = typer.Option(
        None, "--local-out", help="Also write <stem>_segments.json into this directory"
    ),
    fmt: str = typer.Option("json", "--format", help="Output format: json or csv"),
    name: str | None = typer.Option(None, "--name", help="Stem used for directory outputs"),
    cluster_backend: str = typer.Option(
        "ahc", "--cluster-backend", help=f"One of: {', '.join(CLUSTERING_BACKENDS)}"
    ),
    cluster_threshold: float | None = typer.Option(
        None, "--cluster-threshold", help="AHC merge threshold (cosine distance)"
    ),
    search_min: float | None = typer.Option(None, "--search-min", help="Threshold search start"),
    search_max: float | None = typer.Option(None, "--search-max", help="Threshold search end"),
    search_step: float | None = typer.Option(None, "--search-step"),
    cluster_penalty: float | None = typer.Option(
        None, "--cluster-penalty", help="Search score penalty per extra cluster"
    ),
    max_speakers: int | None = typer.Option(None, "--max-speakers", help="NME-SC speaker cap"),
    nme_max_rp: float | None = typer.Option(
        None, "--nme-max-rp", help="Largest p as a fraction of the matrix size"
    ),
    nme_search_volume: int | None = typer.Option(None, "--nme-search-volume"),
    nme_mat_size: int | None = typer.Option(None, "--nme-mat-size"),
    nme_fixed_threshold: float | None = typer.Option(
        None, "--nme-fixed-threshold", help="Use a single p ratio instead of searching"
    ),
    nme_no_subsampling: bool = typer.Option(False, "--nme-no-subsampling", is_flag=True),
    nme_majority_vote: bool = typer.Option(False, "--nme-majority-vote", is_flag=True),
    nme_workers: int | None = typer.Option(None, "--nme-workers"),
    seed: int | None = typer.Option(None, "--seed", help="Spectral k-means seed"),
    vad_onset: float | None = typer.Option(None, "--vad-onset"),
    vad_offset: float | None = typer.Option(None, "--vad-offset"),
    vad_min_speech: float | None = typer.Option(None, "--vad-min-speech"),
    vad_min_silence: float | None = typer.Option(None, "--vad-min-silence"),
    vad_pad_onset: float | None = typer.Option(None, "--vad-pad-onset"),
    vad_pad_offset: float | None = typer.Option(None, "--vad-pad-offset"),
    vad_smoothing: str | None = typer.Option(
        None, "--vad-smoothing", help="Overlap smoothing: none, mean or median"
    ),
    vad_overlap: float | None = typer.Option(None, "--vad-overlap"),
    vad_window: float | None = typer.Option(None, "--vad-window", help="VAD window in seconds"),
    vad_shift: float | None = typer.Option(None, "--vad-shift", help="VAD window shift in seconds"),
    subseg_win: float | None = typer.Option(None, "--subseg-win"),
    subseg_shift: float | None = typer.Option(None, "--subseg-shift"),
    emb_win: str | None = typer.Option(
        None, "--emb-win", help="Embedding window scales in seconds, e.g. '1.5,1.0,0.5'"
    ),
    emb_shift: str | None = typer.Option(None, "--emb-shift", help="Shift per scale"),
    emb_weights: str | None = typer.Option(None, "--emb-weights", help="Weight per scale"),
    merge_gap: float | None = typer.Option(None, "--merge-gap"),
    min_seg: float | None = typer.Option(None, "--min-seg"),
    threads: int = typer.Option(1, "--threads", help="ONNX Runtime threads per model"),
    verbose: bool = typer.Option(False, "--verbose", "-v", is_flag=True),
):
    """Diarize AUDIO and write speaker segments."""
    _set_verbose(verbose)
    fmt = fmt.strip().lower()
    if fmt not in {"json", "csv"}:
        raise typer.BadParameter("format must be 'json' or 'csv'")

    overrides: dict[str, Any] = {
        "vad_model_path": str(vad) if vad else None,
        "spk_model_path": str(spk) if spk else None,
        "clustering_backend": cluster_backend,
        "ahc_threshold": cluster_threshold,
        "ahc_search_min": search_min,
        "ahc_search_max": search_max,
        "ahc_search_step": search_step,
        "ahc_cluster_penalty": cluster_penalty,
        "max_speakers": max_speakers,
        "nme_max_rp_threshold": nme_max_rp,
        "nme_sparse_search_volume": nme_search_volume,
        "nme_mat_size": nme_mat_size,
        "nme_fixed_threshold": nme_fixed_threshold,
        "nme_use_subsampling": False if nme_no_subsampling else None,
        "nme_majority_vote": True if nme_majority_vote else None,
        "nme_workers": nme_workers,
        "seed": seed,
        "vad_onset": vad_onset,
        "vad_offset": vad_offset,
        "vad_min_speech_sec": vad_min_speech,
        "vad_min_silence_sec": vad_min_silence,
        "vad_pad_onset_sec": vad_pad_onset,
        "vad_pad_offset_sec": vad_pad_offset,
        "vad_smoothing": vad_smoothing,
        "vad_overlap": vad_overlap,
        "vad_window_sec": vad_window,
        "vad_shift_sec": vad_shift,
        "subseg_window_sec": subseg_win,
        "subseg_shift_sec": subseg_shift,
        "embed_windows_sec": emb_win,
        "embed_shifts_sec": emb_shift,
        "embed_weights": emb_weights,
        "merge_gap_sec": merge_gap,
        "min_segment_sec": min_seg,
    }

    try:
        config = DiarizationConfig.from_overrides(overrides)
        diarizer = core_build_diarizer(config, threads)
        wav, sr = core_load_audio(audio, config.target_sr)
        result = diarizer.diarize_audio(wav, sr)
        target = _resolve_output(audio, out, fmt, name)
        write_segments(target, result.segments, fmt)
        local_target = None
        if local_out is not None:
            local_target = write_segments(
                local_out / f"{name or audio.stem}_segments.json", result.segments, "json"
            )
    except DiarizationError as exc:
        typer.secho(f"Diarization failed: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1) from exc

    summary = {
        "output": str(target),
        "local_output": str(local_target) if local_target else None,
        "segments": len(result.segments),
        "speakers": len({seg.speaker for seg in result.segments}),
        "diagnostics": result.diagnostics,
    }
    typer.echo(json.dumps(summary, indent=2, default=str))


@app.command()
def inspect(
    model: Path = typer.Argument(..., exists=True, readable=True, help="ONNX model file"),
):
    """Print the graph inputs of an ONNX model."""
    try:
        inputs = core_describe_inputs(model)
    except DiarizationError as exc:
        typer.secho(f"Cannot inspect {model}: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1) from exc
    typer.echo(json.dumps({"model": str(model), "inputs": inputs}, indent=2, default=str))


def main() -> None:
    """Console script entry point for the whospoke CLI (Typer app)."""
    app()


if __name__ == "__main__":  # pragma: no cover
    app()
