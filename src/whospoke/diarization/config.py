from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from typing import Any

from ..errors import ConfigurationError
from .logger import logger
from .utils import env_path, parse_float, parse_float_list

SMOOTHING_METHODS = ("none", "mean", "median")
CLUSTERING_BACKENDS = ("ahc", "ahc_search", "nmesc")

DEFAULT_EMBED_WINDOWS: tuple[float, ...] = (3.0, 2.5, 2.0, 1.5, 1.0, 0.5)
DEFAULT_EMBED_SHIFTS: tuple[float, ...] = (1.5, 1.25, 1.0, 0.75, 0.5, 0.25)


@dataclass(frozen=True)
class Interval:
    start: float
    end: float

    def __post_init__(self) -> None:
        if not self.end > self.start:
            raise ValueError(f"Interval end must exceed start: {self.start} >= {self.end}")

    @property
    def duration(self) -> float:
        return self.end - self.start


@dataclass
class DiarizedSegment:
    start: float
    end: float
    speaker: str

    def to_dict(self) -> dict[str, Any]:
        return {"start": float(self.start), "end": float(self.end), "speaker": self.speaker}


@dataclass
class DiarizationResult:
    segments: list[DiarizedSegment] = field(default_factory=list)
    diagnostics: dict[str, Any] = field(default_factory=dict)

    def records(self) -> list[dict[str, Any]]:
        return [seg.to_dict() for seg in self.segments]


@dataclass
class DiarizationConfig:
    target_sr: int = 16000
    frame_hop_sec: float = 0.010
    # VAD
    vad_model_path: str | None = None
    vad_onset: float = 0.9
    vad_offset: float = 0.5
    vad_min_speech_sec: float = 0.0
    vad_min_silence_sec: float = 0.6
    vad_pad_onset_sec: float = 0.0
    vad_pad_offset_sec: float = 0.0
    vad_window_sec: float = 0.63
    vad_shift_sec: float = 0.01
    vad_smoothing: str = "none"
    vad_overlap: float = 0.5
    # Subsegments and embeddings
    spk_model_path: str | None = None
    subseg_window_sec: float = 1.5
    subseg_shift_sec: float = 0.75
    embed_windows_sec: list[float] = field(default_factory=lambda: list(DEFAULT_EMBED_WINDOWS))
    embed_shifts_sec: list[float] = field(default_factory=lambda: list(DEFAULT_EMBED_SHIFTS))
    embed_weights: list[float] | None = None
    # Clustering
    clustering_backend: str = "ahc"
    ahc_threshold: float = 0.3
    ahc_search_min: float = 0.10
    ahc_search_max: float = 0.50
    ahc_search_step: float = 0.02
    ahc_cluster_penalty: float = 0.05
    max_speakers: int = 8
    nme_max_rp_threshold: float = 0.25
    nme_sparse_search_volume: int = 30
    nme_mat_size: int = 512
    nme_use_subsampling: bool = True
    nme_fixed_threshold: float = -1.0
    nme_majority_vote: bool = False
    nme_workers: int = 1
    seed: int = 0
    # Output
    merge_gap_sec: float = 0.0
    min_segment_sec: float = 0.0

    def __post_init__(self) -> None:
        if self.vad_model_path is None:
            self.vad_model_path = env_path("WHOSPOKE_VAD_ONNX")
        if self.spk_model_path is None:
            self.spk_model_path = env_path("WHOSPOKE_SPK_ONNX")
        self.vad_smoothing = str(self.vad_smoothing or "none").strip().lower()
        self.clustering_backend = str(self.clustering_backend or "ahc").strip().lower()
        self._normalize_scales()

    def _normalize_scales(self) -> None:
        windows = [float(v) for v in self.embed_windows_sec] or list(DEFAULT_EMBED_WINDOWS)
        shifts = [float(v) for v in self.embed_shifts_sec]
        if len(shifts) != len(windows):
            if len(shifts) == 1:
                shifts = shifts * len(windows)
            else:
                logger.warning(
                    "Embedding shift list (%d) does not match window list (%d); using defaults",
                    len(shifts),
                    len(windows),
                )
                shifts = list(DEFAULT_EMBED_SHIFTS)
        weights = self.embed_weights
        if weights is None or len(weights) != len(windows):
            weights = [1.0] * len(windows)
        self.embed_windows_sec = windows
        self.embed_shifts_sec = shifts
        self.embed_weights = [float(w) for w in weights]

    def validate(self) -> DiarizationConfig:
        if self.vad_smoothing not in SMOOTHING_METHODS:
            raise ConfigurationError(
                f"vad_smoothing should be one of {', '.join(SMOOTHING_METHODS)}; "
                f"got {self.vad_smoothing!r}",
                stage="config",
            )
        if self.clustering_backend not in CLUSTERING_BACKENDS:
            raise ConfigurationError(
                f"clustering_backend should be one of {', '.join(CLUSTERING_BACKENDS)}; "
                f"got {self.clustering_backend!r}",
                stage="config",
            )
        if len(self.embed_shifts_sec) != len(self.embed_windows_sec):
            raise ConfigurationError(
                "embed_shifts_sec must match embed_windows_sec in length", stage="config"
            )
        if self.subseg_shift_sec <= 0 or self.ahc_search_step <= 0:
            raise ConfigurationError("Shift and step sizes must be positive", stage="config")
        if self.frame_hop_sec <= 0:
            raise ConfigurationError("frame_hop_sec must be positive", stage="config")
        return self

    @classmethod
    def from_overrides(cls, overrides: Mapping[str, Any] | None = None) -> DiarizationConfig:
        """Build a config from loosely typed overrides (CLI strings, JSON)."""
        defaults = cls()
        kwargs: dict[str, Any] = {}
        known = {f.name: f for f in fields(cls)}
        for key, value in (overrides or {}).items():
            if value is None:
                continue
            if key not in known:
                raise ConfigurationError(f"Unknown option {key!r}", stage="config")
            current = getattr(defaults, key)
            if key in {"embed_windows_sec", "embed_shifts_sec"}:
                kwargs[key] = parse_float_list(value, current, name=key)
            elif key == "embed_weights":
                kwargs[key] = parse_float_list(value, [], name=key) or None
            elif isinstance(current, bool):
                kwargs[key] = _parse_bool(value, current)
            elif isinstance(current, int):
                kwargs[key] = int(round(parse_float(value, current, name=key)))
            elif isinstance(current, float):
                kwargs[key] = parse_float(value, current, name=key)
            else:
                kwargs[key] = str(value)
        return cls(**kwargs).validate()


def _parse_bool(value: Any, fallback: bool) -> bool:
    if isinstance(value, bool):
        return value
    norm = str(value).strip().lower()
    if norm in {"1", "true", "yes", "on"}:
        return True
    if norm in {"0", "false", "no", "off"}:
        return False
    return fallback


__all__ = [
    "CLUSTERING_BACKENDS",
    "DEFAULT_EMBED_SHIFTS",
    "DEFAULT_EMBED_WINDOWS",
    "DiarizationConfig",
    "DiarizationResult",
    "DiarizedSegment",
    "Interval",
    "SMOOTHING_METHODS",
]
