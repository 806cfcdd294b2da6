"""Writers for the diarization hand-off records."""

from __future__ import annotations

import csv
import json
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any

SEGMENT_COLUMNS = ["start", "end", "speaker"]


def _as_record(segment: Any) -> dict[str, Any]:
    if isinstance(segment, Mapping):
        data = segment
    elif hasattr(segment, "to_dict"):
        data = segment.to_dict()
    else:
        raise TypeError(f"Cannot serialise segment of type {type(segment).__name__}")
    return {
        "start": float(data["start"]),
        "end": float(data["end"]),
        "speaker": str(data["speaker"]),
    }


def write_segments_json(path: Path, segments: Iterable[Any]) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = [_as_record(seg) for seg in segments]
    path.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
    return path


def write_segments_csv(path: Path, segments: Iterable[Any]) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", newline="", encoding="utf-8") as handle:
        writer = csv.DictWriter(handle, fieldnames=SEGMENT_COLUMNS)
        writer.writeheader()
        for segment in segments:
            writer.writerow(_as_record(segment))
    return path


def write_segments(path: Path, segments: Iterable[Any], fmt: str | None = None) -> Path:
    """Write ``segments`` as JSON or CSV, inferring the format from the suffix."""
    path = Path(path)
    kind = (fmt or path.suffix.lstrip(".") or "json").lower()
    if kind == "csv":
        return write_segments_csv(path, segments)
    if kind == "json":
        return write_segments_json(path, segments)
    raise ValueError(f"Unsupported segment format: {kind!r}")


__all__ = ["SEGMENT_COLUMNS", "write_segments", "write_segments_csv", "write_segments_json"]
