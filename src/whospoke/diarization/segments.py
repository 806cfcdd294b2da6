from __future__ import annotations

from collections.abc import Iterable, Sequence

import numpy as np

from ..errors import ConfigurationError
from .config import DiarizedSegment, Interval

_EPS = 1e-6


def split_subsegments(
    intervals: Iterable[Interval],
    window_sec: float = 1.5,
    shift_sec: float = 0.75,
) -> list[Interval]:
    """Cut speech intervals into overlapping analysis windows.

    Intervals no longer than ``window_sec`` pass through.  Longer ones are
    covered by windows every ``shift_sec``; a trailing window anchored at the
    interval end is added when the regular grid stops short of it.
    """
    if shift_sec <= 0 or window_sec <= 0:
        raise ConfigurationError(
            "window_sec and shift_sec must be positive",
            stage="subsegments",
            context={"window_sec": window_sec, "shift_sec": shift_sec},
        )
    out: list[Interval] = []
    for seg in intervals:
        if seg.duration <= window_sec:
            out.append(seg)
            continue
        last_end = seg.start
        k = 0
        t = seg.start
        while t + window_sec <= seg.end + _EPS:
            end = min(t + window_sec, seg.end)
            out.append(Interval(t, end))
            last_end = end
            k += 1
            t = seg.start + k * shift_sec
        if last_end < seg.end - _EPS:
            out.append(Interval(max(seg.start, seg.end - window_sec), seg.end))
    return out


def label_subsegments(
    subsegments: Sequence[Interval], labels: Sequence[int] | np.ndarray
) -> list[DiarizedSegment]:
    return [
        DiarizedSegment(start=seg.start, end=seg.end, speaker=f"speaker_{int(label)}")
        for seg, label in zip(subsegments, labels)
    ]


def merge_adjacent(
    segments: Iterable[DiarizedSegment], gap_sec: float = 0.0
) -> list[DiarizedSegment]:
    """Merge consecutive segments of the same speaker separated by at most ``gap_sec``."""
    ordered = sorted(segments, key=lambda s: s.start)
    if not ordered:
        return []
    merged: list[DiarizedSegment] = []
    cur = DiarizedSegment(ordered[0].start, ordered[0].end, ordered[0].speaker)
    for nxt in ordered[1:]:
        if nxt.speaker == cur.speaker and nxt.start <= cur.end + gap_sec + _EPS:
            cur.end = max(cur.end, nxt.end)
        else:
            merged.append(cur)
            cur = DiarizedSegment(nxt.start, nxt.end, nxt.speaker)
    merged.append(cur)
    return merged


def drop_short(segments: Iterable[DiarizedSegment], min_sec: float = 0.0) -> list[DiarizedSegment]:
    segments = list(segments)
    if min_sec <= 0:
        return segments
    return [seg for seg in segments if seg.end - seg.start >= min_sec]


__all__ = ["drop_short", "label_subsegments", "merge_adjacent", "split_subsegments"]
