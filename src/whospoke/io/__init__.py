"""Model loading and result serialisation helpers."""

from __future__ import annotations

from .onnx_utils import create_onnx_session, describe_inputs
from .segments_writer import write_segments, write_segments_csv, write_segments_json

__all__ = [
    "create_onnx_session",
    "describe_inputs",
    "write_segments",
    "write_segments_csv",
    "write_segments_json",
]
