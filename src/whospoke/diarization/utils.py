from __future__ import annotations

import math
import os
from collections.abc import Callable, Iterable, Sequence
from concurrent.futures import ThreadPoolExecutor
from typing import Any, TypeVar

from ..errors import ConfigurationError
from .logger import logger

T = TypeVar("T")
R = TypeVar("R")


def env_path(name: str) -> str | None:
    val = os.getenv(name)
    if val is None or not val.strip():
        return None
    return val.strip()


def _parse_number(text: str) -> float:
    try:
        return float(text)
    except ValueError:
        # Accept comma decimal separators ("0,3").
        if text.count(",") == 1 and "." not in text:
            return float(text.replace(",", "."))
        raise


def parse_float(value: Any, fallback: float, *, name: str = "value") -> float:
    """Parse an optional numeric parameter, falling back on failure."""
    if value is None:
        return float(fallback)
    if isinstance(value, bool):
        return float(fallback)
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip()
    if not text:
        return float(fallback)
    try:
        parsed = _parse_number(text)
    except ValueError:
        logger.warning("Could not parse %s=%r; using default %s", name, value, fallback)
        return float(fallback)
    if math.isnan(parsed):
        logger.warning("Ignoring NaN for %s; using default %s", name, fallback)
        return float(fallback)
    return parsed


def parse_float_list(
    value: Any, fallback: Sequence[float], *, name: str = "list"
) -> list[float]:
    """Parse a list of numbers given as a sequence or a ``,``/``;`` separated string.

    Empty input yields ``fallback``.  Any entry that cannot be read as a number
    is a configuration error.
    """
    if value is None:
        return [float(v) for v in fallback]
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return [float(v) for v in fallback]
        sep = ";" if ";" in text else ","
        items: Iterable[Any] = [part for chunk in text.split(sep) for part in chunk.split()]
    else:
        items = list(value)
    out: list[float] = []
    for item in items:
        try:
            out.append(_parse_number(item) if isinstance(item, str) else float(item))
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(
                f"Unreadable entry {item!r} in {name}",
                stage="config",
                context={"name": name, "value": value},
                cause=exc,
            ) from exc
    if not out:
        return [float(v) for v in fallback]
    return out


def evaluate_candidates(
    score: Callable[[T], R],
    candidates: Sequence[T],
    *,
    workers: int = 1,
) -> list[R]:
    """Score every candidate independently, returning results in candidate order."""
    if workers <= 1 or len(candidates) <= 1:
        return [score(candidate) for candidate in candidates]
    with ThreadPoolExecutor(max_workers=min(workers, len(candidates))) as pool:
        return list(pool.map(score, candidates))


__all__ = [
    "env_path",
    "parse_float",
    "parse_float_list",
    "evaluate_candidates",
]
