from __future__ import annotations

import csv
import json

import pytest

from whospoke.diarization.config import DiarizedSegment
from whospoke.io.segments_writer import write_segments, write_segments_csv, write_segments_json

SEGMENTS = [DiarizedSegment(0.0, 1.25, "speaker_0"), DiarizedSegment(1.5, 2.0, "speaker_1")]


def test_json_output_is_a_list_of_records(tmp_path) -> None:
    path = write_segments_json(tmp_path / "nested" / "out.json", SEGMENTS)

    payload = json.loads(path.read_text(encoding="utf-8"))
    assert payload == [
        {"start": 0.0, "end": 1.25, "speaker": "speaker_0"},
        {"start": 1.5, "end": 2.0, "speaker": "speaker_1"},
    ]


def test_csv_output_has_header(tmp_path) -> None:
    path = write_segments_csv(tmp_path / "out.csv", SEGMENTS)

    with path.open(newline="", encoding="utf-8") as handle:
        rows = list(csv.DictReader(handle))
    assert list(rows[0].keys()) == ["start", "end", "speaker"]
    assert rows[1] == {"start": "1.5", "end": "2.0", "speaker": "speaker_1"}


def test_format_follows_suffix_and_accepts_mappings(tmp_path) -> None:
    records = [{"start": 0, "end": 1, "speaker": "speaker_0", "extra": True}]

    path = write_segments(tmp_path / "out.csv", records)

    assert path.read_text(encoding="utf-8").splitlines()[0] == "start,end,speaker"
    with pytest.raises(ValueError):
        write_segments(tmp_path / "out.txt", records)
