"""whospoke: offline speaker diarization from ONNX VAD and speaker models."""

from __future__ import annotations

__version__ = "0.1.0"

from .diarization import DiarizationConfig, DiarizationResult, DiarizedSegment, SpeakerDiarizer
from .errors import ConfigurationError, DependencyError, DiarizationError, ModelContractError

__all__ = [
    "ConfigurationError",
    "DependencyError",
    "DiarizationConfig",
    "DiarizationError",
    "DiarizationResult",
    "DiarizedSegment",
    "ModelContractError",
    "SpeakerDiarizer",
    "__version__",
]
