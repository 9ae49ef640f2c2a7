from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import List

import numpy as np
import pytest

from hstpy.parser.errors import BarNotFoundError, FileTooSmallError
from hstpy.parser.hst_parse import HstReader

from tests.utils_hst import HOUR_MS, HOUR_S, T0_MS, T0_SECONDS, hourly, write_hst_file

# hours 3 and 4 are missing (e.g. a market break)
GAP_HOURS = [0, 1, 2, 5, 6, 7, 8, 9, 10, 11]


def _count_seeks(monkeypatch, reader: HstReader) -> List[int]:
    calls: List[int] = []
    original = reader.seek

    def _seek(index: int):
        calls.append(index)
        return original(index)

    monkeypatch.setattr(reader, "seek", _seek)
    return calls


@pytest.fixture
def uniform_path(tmp_path: Path) -> Path:
    return write_hst_file(tmp_path, "uniform.hst", hourly(5), period=60)


@pytest.fixture
def gap_path(tmp_path: Path) -> Path:
    timestamps = [T0_SECONDS + h * HOUR_S for h in GAP_HOURS]
    return write_hst_file(tmp_path, "gap.hst", timestamps, period=60)


def test_exact_match_on_first_attempt(monkeypatch, uniform_path: Path) -> None:
    with HstReader(uniform_path) as reader:
        calls = _count_seeks(monkeypatch, reader)
        bar = reader.locate(T0_MS + 2 * HOUR_MS)

        assert bar["timestamp"] == T0_MS + 2 * HOUR_MS
        assert reader.index == 2
        assert calls == [2]


@pytest.mark.parametrize(
    "target",
    [
        datetime(2020, 1, 1, 13, tzinfo=timezone.utc),
        datetime(2020, 1, 1, 13),
        "2020-01-01T13:00:00Z",
    ],
)
def test_locate_accepts_datetimes(uniform_path: Path, target) -> None:
    with HstReader(uniform_path) as reader:
        assert reader.locate(target)["timestamp"] == T0_MS + 3 * HOUR_MS


def test_locate_with_explicit_reference(monkeypatch, uniform_path: Path) -> None:
    with HstReader(uniform_path) as reader:
        reader.seek(3)
        calls = _count_seeks(monkeypatch, reader)
        bar = reader.locate(T0_MS + 4 * HOUR_MS, reference=T0_MS + 3 * HOUR_MS)

        assert bar["timestamp"] == T0_MS + 4 * HOUR_MS
        assert calls == [4]


def test_converges_across_gap(monkeypatch, gap_path: Path) -> None:
    with HstReader(gap_path) as reader:
        calls = _count_seeks(monkeypatch, reader)
        bar = reader.locate(T0_MS + 6 * HOUR_MS)

        assert bar["timestamp"] == T0_MS + 6 * HOUR_MS
        assert reader.index == 4
        # lands on 8h past the gap, then steps back onto 6h
        assert calls == [6, 4]


def test_target_inside_gap_is_bounded(monkeypatch, gap_path: Path) -> None:
    with HstReader(gap_path) as reader:
        before = (reader.offset, reader.index)
        calls = _count_seeks(monkeypatch, reader)

        with pytest.raises(BarNotFoundError) as excinfo:
            reader.locate(T0_MS + 3 * HOUR_MS)

        assert len(calls) == 51
        assert excinfo.value.attempts == 51
        assert excinfo.value.target_ms == T0_MS + 3 * HOUR_MS
        assert (reader.offset, reader.index) == before


def test_max_attempts_is_configurable(monkeypatch, gap_path: Path) -> None:
    with HstReader(gap_path, max_attempts=3) as reader:
        calls = _count_seeks(monkeypatch, reader)
        with pytest.raises(LookupError):
            reader.locate(T0_MS + 3 * HOUR_MS)
        assert len(calls) == 4


def test_zero_timestamp_halves_index(monkeypatch, tmp_path: Path) -> None:
    timestamps = hourly(10)
    timestamps[6] = 0
    path = write_hst_file(tmp_path, "holes.hst", timestamps, period=60)

    with HstReader(path) as reader:
        calls = _count_seeks(monkeypatch, reader)
        with pytest.raises(BarNotFoundError):
            reader.locate(T0_MS + 6 * HOUR_MS)

        assert calls[:4] == [6, 3, 6, 3]
        assert reader.index == 0


def test_overshoot_past_end_propagates(uniform_path: Path) -> None:
    with HstReader(uniform_path) as reader:
        reader.seek(1)
        with pytest.raises(FileTooSmallError):
            reader.locate(T0_MS + 50 * HOUR_MS)
        assert reader.index == 1
        assert reader.offset == 148 + 44


def test_non_positive_period(tmp_path: Path) -> None:
    path = write_hst_file(tmp_path, "bad.hst", hourly(3), period=0)
    with HstReader(path) as reader:
        with pytest.raises(ValueError):
            reader.locate(T0_MS)


def test_float_target_is_epoch_ms(uniform_path: Path) -> None:
    with HstReader(uniform_path) as reader:
        bar = reader.locate(float(T0_MS + 2 * HOUR_MS))
        assert bar["timestamp"] == T0_MS + 2 * HOUR_MS
        assert reader.index == 2

        bar = reader.locate(np.float64(T0_MS + 4 * HOUR_MS), reference=np.float64(T0_MS + 2 * HOUR_MS))
        assert reader.index == 4
