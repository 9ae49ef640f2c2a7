from __future__ import annotations

import struct
from pathlib import Path
from typing import Sequence

import numpy as np

from hstpy.parser.hst_format import FORMATS, HEADER_SIZE, VERSION_LEGACY

T0_SECONDS = 1_577_872_800  # 2020-01-01T10:00:00Z
T0_MS = T0_SECONDS * 1000
HOUR_S = 3600
HOUR_MS = HOUR_S * 1000


def make_header(version: int, symbol: str = "EURUSD", period: int = 60) -> bytearray:
    header = bytearray(HEADER_SIZE)
    struct.pack_into("<i", header, 0, version)
    header[4:68] = b"(C)opyright 2003, MetaQuotes Software Corp.".ljust(64, b"\x00")
    header[68:80] = symbol.encode("utf-8").ljust(12, b"\x00")[:12]
    struct.pack_into("<i", header, 80, period)
    return header


def write_hst_file(
    directory: Path,
    name: str,
    timestamps_s: Sequence[int],
    *,
    version: int = VERSION_LEGACY,
    period: int = 60,
    symbol: str = "EURUSD",
    trailing: bytes = b"",
) -> Path:
    fmt = FORMATS[version]
    n = len(timestamps_s)
    arr = np.zeros(n, dtype=fmt.dtype)
    if n:
        opens = np.linspace(1.0, 1.0 + n - 1, n, dtype=np.float64)
        arr["timestamp"] = np.asarray(timestamps_s, dtype=np.int32)
        arr["open"] = opens
        arr["high"] = opens + 0.5
        arr["low"] = opens - 0.5
        arr["close"] = opens + 0.25
        arr["volume"] = np.arange(100, 100 + n)
        if "spread" in arr.dtype.names:
            arr["spread"] = 2
            arr["real_volume"] = np.arange(1000, 1000 + n)

    path = directory / name
    path.write_bytes(bytes(make_header(version, symbol, period)) + arr.tobytes() + trailing)
    return path


def hourly(count: int, start: int = T0_SECONDS) -> list:
    return [start + i * HOUR_S for i in range(count)]
