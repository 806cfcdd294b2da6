"""Error types shared by the diarization engine and its adapters.

Three families of failures exist.  Configuration problems (unknown enum
values, unreadable lists) and collaborator contract violations (a model that
returns the wrong shape) are fatal and surface immediately.  Degenerate
numeric input is never an error; the engine components define a fallback for
each such case instead.
"""

from __future__ import annotations

from collections.abc import Mapping, MutableMapping
from dataclasses import dataclass, field
from typing import Any

__all__ = [
    "DiarizationError",
    "ConfigurationError",
    "ModelContractError",
    "DependencyError",
    "attach_context",
]


@dataclass(slots=True)
class DiarizationError(RuntimeError):
    """Base class for engine level failures.

    Attributes
    ----------
    message:
        Human readable description of the failure.
    stage:
        Optional stage identifier (``"vad"``, ``"embeddings"``, ``"audio"``...).
    context:
        JSON serialisable dictionary with diagnostics for the caller.
    cause:
        Underlying exception (kept for debugging, not included in ``__str__``).
    """

    message: str
    stage: str | None = None
    context: MutableMapping[str, Any] = field(default_factory=dict)
    cause: Exception | None = None

    def __str__(self) -> str:  # pragma: no cover - trivial
        if self.stage:
            return f"[{self.stage}] {self.message}"
        return self.message


class ConfigurationError(DiarizationError):
    """Raised when a parameter cannot be interpreted."""


class ModelContractError(DiarizationError):
    """Raised when an inference collaborator returns data of the wrong shape."""


class DependencyError(DiarizationError):
    """Raised when a runtime dependency is missing or fails to load."""


def attach_context(
    error: DiarizationError,
    context: Mapping[str, Any] | None,
) -> DiarizationError:
    """Merge ``context`` into ``error.context`` preserving existing keys."""

    if not context:
        return error
    for key, value in context.items():
        error.context.setdefault(key, value)
    return error
