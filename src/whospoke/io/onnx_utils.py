"""Utilities for loading ONNX Runtime models.

:mod:`onnxruntime` is imported on first use so the numeric engine stays usable
where the native extension is missing; requesting a model then fails with a
:class:`~whospoke.errors.DependencyError`.
"""

from __future__ import annotations

import importlib
import logging
import sys
from pathlib import Path
from types import ModuleType
from typing import TYPE_CHECKING, Any

from ..errors import DependencyError

if TYPE_CHECKING:  # pragma: no cover - typing only
    from onnxruntime import InferenceSession as OrtInferenceSession
else:  # pragma: no cover - runtime safe fallback
    OrtInferenceSession = Any  # type: ignore[misc,assignment]

logger = logging.getLogger(__name__)


def ensure_onnxruntime() -> ModuleType:
    """Return the imported :mod:`onnxruntime` or raise :class:`DependencyError`."""
    try:
        return importlib.import_module("onnxruntime")
    except Exception as exc:  # pragma: no cover - platform/runtime dependent
        hint = "Install the 'onnxruntime' wheel matching your platform."
        if sys.platform.startswith("win"):
            hint += " The Microsoft Visual C++ 2015-2022 Redistributable is also required."
        logger.warning("ONNXRuntime import failed: %s", exc)
        raise DependencyError(f"{exc}. {hint}", stage="onnxruntime", cause=exc) from exc


def create_onnx_session(
    model_path: str | Path, *, cpu_only: bool = True, threads: int = 1
) -> OrtInferenceSession:
    """Create an ONNX Runtime session with consistent CPU behaviour."""
    path = Path(model_path)
    if not path.exists():
        raise DependencyError(f"ONNX model not found: {path}", stage="model")
    ort = ensure_onnxruntime()
    opts = ort.SessionOptions()
    if threads:
        opts.intra_op_num_threads = threads
        opts.inter_op_num_threads = threads
    opts.graph_optimization_level = ort.GraphOptimizationLevel.ORT_ENABLE_ALL
    providers = ["CPUExecutionProvider"] if cpu_only else ort.get_available_providers()
    try:
        return ort.InferenceSession(str(path), providers=providers, sess_options=opts)
    except Exception as exc:  # pragma: no cover - runtime dependent
        raise DependencyError(
            f"Failed to initialize ONNX Runtime session for {path}: {exc}",
            stage="model",
            cause=exc,
        ) from exc


def describe_inputs(model_path: str | Path) -> list[dict[str, Any]]:
    """Return name/shape/type for each graph input of ``model_path``."""
    session = create_onnx_session(model_path)
    return [
        {"name": inp.name, "shape": list(inp.shape), "type": inp.type}
        for inp in session.get_inputs()
    ]


__all__ = ["create_onnx_session", "describe_inputs", "ensure_onnxruntime"]
