# hst_parse.py
"""
Random-access reader for trading-terminal history (.hst) files.

Key features
------------
- Memory-mapped I/O (mmap); opening a file only touches the 148-byte header
- Versioned record layouts (400: 44-byte records, 401: 60-byte records)
- Cursor API: next_bar(), prev_bar(), seek(index), locate(timestamp)
- Bulk extractors built on NumPy structured dtypes: to_numpy(), to_pandas(),
  iter_bars(), export_csv()

File layout
-----------
Offset 0 holds the int32 format version, a 64-byte copyright block follows,
the 12-byte symbol sits at offset 68 and the int32 period (minutes) at 80.
Records start at offset 148 regardless of version. All values little-endian.

Timestamps
----------
Bars expose ``timestamp`` as an integer. Legacy (400) files store UNIX
seconds which are scaled to epoch milliseconds. Version 401 timestamps are
returned exactly as stored. The header start time is always the first
record's 32-bit seconds value scaled to milliseconds.
"""
from __future__ import annotations

import gc
import io
import logging
import mmap
import os
import struct
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterator, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from .errors import (
    BarNotFoundError,
    EndOfFileError,
    FileTooSmallError,
    HstFileNotFoundError,
    RecordOutOfRangeError,
    StartOfFileError,
    UnsupportedVersionError,
)
from .hst_format import (
    FORMATS,
    HEADER_SIZE,
    STRUCT_FORMATS,
    FieldKind,
    HstFormat,
    describe,
)

logger = logging.getLogger(__name__)

Bar = Dict[str, Any]
TimeLike = Union[int, float, datetime, "pd.Timestamp", str]

MAX_LOCATE_ATTEMPTS = 50

_VERSION_OFFSET = 0
_SYMBOL_OFFSET = 68  # after the 64-byte copyright block
_SYMBOL_SIZE = 12
_PERIOD_OFFSET = 80
_MS_PER_SECOND = 1000
_MS_PER_MINUTE = 60_000

_DEFAULT_COLUMNS = ("open", "high", "low", "close", "volume")


def _to_epoch_ms(value: TimeLike) -> int:
    """Normalise a number (epoch ms), datetime, Timestamp or ISO string to epoch ms."""
    if isinstance(value, (int, np.integer)) and not isinstance(value, bool):
        return int(value)
    if isinstance(value, (float, np.floating)):
        return int(round(value))
    ts = pd.Timestamp(value)
    if ts.tzinfo is None:
        ts = ts.tz_localize("UTC")
    return int(ts.value // 1_000_000)


@dataclass(frozen=True)
class HstHeader:
    version: int
    symbol: str
    period: int  # minutes
    start_ms: int
    record_size: int

    @property
    def start(self) -> "pd.Timestamp":
        return pd.Timestamp(self.start_ms, unit="ms", tz="UTC")

    @property
    def period_ms(self) -> int:
        return self.period * _MS_PER_MINUTE


def read_header(buf: Any, file_size: int) -> HstHeader:
    """Decode the fixed header from ``buf`` (bytes, mmap or any buffer).

    Raises :class:`FileTooSmallError` below 148 bytes and
    :class:`UnsupportedVersionError` for versions without a registered layout.
    """
    if file_size < HEADER_SIZE:
        raise FileTooSmallError(f"File too small: {file_size} < {HEADER_SIZE} bytes")

    version = struct.unpack_from("<i", buf, _VERSION_OFFSET)[0]
    symbol = bytes(buf[_SYMBOL_OFFSET:_SYMBOL_OFFSET + _SYMBOL_SIZE]).decode("utf-8", errors="replace")
    period = struct.unpack_from("<i", buf, _PERIOD_OFFSET)[0]
    # First record's timestamp doubles as the start time; zero-padded when absent
    probe = bytes(buf[HEADER_SIZE:min(HEADER_SIZE + 4, file_size)]).ljust(4, b"\x00")
    start_ms = struct.unpack("<i", probe)[0] * _MS_PER_SECOND

    fmt = describe(version)
    if fmt is None:
        raise UnsupportedVersionError(version)

    return HstHeader(version, symbol, period, start_ms, fmt.record_size)


def decode_record(fmt: HstFormat, buf: Any, offset: int, limit: int) -> Bar:
    """Decode the record of layout ``fmt`` starting at byte ``offset``.

    ``limit`` is the number of readable bytes in ``buf`` (the file size).
    """
    if offset < HEADER_SIZE or offset + fmt.record_size > limit:
        raise RecordOutOfRangeError(
            f"Record at byte {offset} outside record area [{HEADER_SIZE}, {limit})"
        )

    bar: Bar = {}
    for field in fmt.fields:
        kind = field.kind
        if kind is FieldKind.CONSTANT:
            bar[field.name] = field.value
        elif kind is FieldKind.SKIP:
            continue
        elif kind is FieldKind.DATE:
            raw = struct.unpack_from(STRUCT_FORMATS[kind], buf, offset + field.offset)[0]
            bar[field.name] = raw * _MS_PER_SECOND if fmt.seconds_timestamps else raw
        else:
            bar[field.name] = struct.unpack_from(STRUCT_FORMATS[kind], buf, offset + field.offset)[0]
    return bar


class HstReader:
    """
    Cursor-based reader for .hst history files.

    Parameters
    ----------
    path : str
        Path to the .hst file.
    max_attempts : int
        Refinement cap for :meth:`locate`.

    Example
    -------
    >>> with HstReader("/path/history/EURUSD60.hst") as rdr:
    ...     first = rdr.next_bar()
    ...     bar = rdr.locate("2020-01-02T10:00:00Z")
    """

    def __init__(self, path: Union[str, "os.PathLike[str]"], *, max_attempts: int = MAX_LOCATE_ATTEMPTS):
        self.path = os.fspath(path)
        self.max_attempts = max_attempts

        self._fh: Optional[io.BufferedReader] = None
        self._mm: Optional[mmap.mmap] = None
        self._header: Optional[HstHeader] = None
        self._format: Optional[HstFormat] = None
        self._file_size: int = 0
        self._offset: int = 0
        self._index: int = 0

    # ------------------------------ context manager ------------------------------
    def __enter__(self) -> "HstReader":
        return self.open()

    def __exit__(self, exc_type, exc, tb):
        self.close()

    # -------------------------------- lifecycle ---------------------------------
    def open(self) -> "HstReader":
        """Map the file, decode the header and position the cursor before record 0."""
        if self._mm is not None:
            return self

        if not os.path.isfile(self.path):
            raise HstFileNotFoundError(f"Could not find file: {self.path}")

        size = os.path.getsize(self.path)
        if size < HEADER_SIZE:
            raise FileTooSmallError(f"File too small: {size} < {HEADER_SIZE} bytes")

        try:
            self._fh = open(self.path, "rb", buffering=0)
        except OSError as exc:
            raise HstFileNotFoundError(f"Could not read file: {self.path}") from exc
        try:
            self._mm = mmap.mmap(self._fh.fileno(), length=0, access=mmap.ACCESS_READ)
            header = read_header(self._mm, size)
        except BaseException:
            self.close()
            raise

        self._file_size = size
        self._header = header
        self._format = FORMATS[header.version]
        self.rewind()
        logger.debug(
            "Opened %s: version=%d symbol=%r period=%d records=%d",
            self.path, header.version, header.symbol, header.period, len(self),
        )
        return self

    def close(self) -> None:
        if self._mm is not None:
            try:
                self._mm.close()
            except BufferError as exc:
                # NumPy views handed out by the extractors may still be alive
                gc.collect()
                try:
                    self._mm.close()
                except BufferError:
                    logger.warning("HstReader: mmap for %s still exported, leaving it to GC: %s", self.path, exc)
            finally:
                self._mm = None

        if self._fh is not None:
            try:
                self._fh.close()
            except OSError as exc:
                logger.warning("HstReader: Error closing file handle: %s", exc)
            finally:
                self._fh = None

        self._header = None
        self._format = None
        self._file_size = 0

    @property
    def closed(self) -> bool:
        return self._mm is None

    def _require_open(self) -> HstFormat:
        if self._format is None or self._mm is None:
            raise RuntimeError("Reader not opened")
        return self._format

    # -------------------------------- properties --------------------------------
    @property
    def header(self) -> HstHeader:
        if self._header is None:
            raise RuntimeError("Reader not opened")
        return self._header

    @property
    def format(self) -> HstFormat:
        return self._require_open()

    @property
    def file_size(self) -> int:
        return self._file_size

    @property
    def index(self) -> int:
        return self._index

    @property
    def offset(self) -> int:
        return self._offset

    def tell(self) -> int:
        return self._index

    def __len__(self) -> int:
        if self._format is None:
            return 0
        return (self._file_size - HEADER_SIZE) // self._format.record_size

    @property
    def count(self) -> int:
        """Number of complete records in the file."""
        return len(self)

    # ---------------------------------- cursor ----------------------------------
    def _decode_at(self, offset: int) -> Bar:
        fmt = self._require_open()
        return decode_record(fmt, self._mm, offset, self._file_size)

    def _commit(self, offset: int) -> None:
        self._offset = offset
        self._index = (offset - HEADER_SIZE) // self._require_open().record_size

    def rewind(self) -> None:
        """Position the cursor just before record 0."""
        fmt = self._require_open()
        self._offset = HEADER_SIZE - fmt.record_size
        self._index = 0

    def next_bar(self) -> Bar:
        """Advance one record and return it."""
        size = self._require_open().record_size
        new_offset = self._offset + size
        if new_offset + size > self._file_size:
            raise EndOfFileError("Already at end of file")
        bar = self._decode_at(new_offset)
        self._commit(new_offset)
        return bar

    def prev_bar(self) -> Bar:
        """Step back one record and return it."""
        size = self._require_open().record_size
        new_offset = self._offset - size
        if new_offset < HEADER_SIZE:
            raise StartOfFileError("Already at start of file")
        bar = self._decode_at(new_offset)
        self._commit(new_offset)
        return bar

    def seek(self, index: int) -> Bar:
        """Move to record ``index`` and return it.

        Only the upper bound is checked here; an index below zero reaches the
        decoder, which rejects offsets inside the header with
        :class:`RecordOutOfRangeError`.
        """
        size = self._require_open().record_size
        index = int(index)
        new_offset = HEADER_SIZE + index * size
        if new_offset >= self._file_size:
            raise FileTooSmallError(f"Record {index} lies beyond end of file ({len(self)} records)")
        bar = self._decode_at(new_offset)
        self._offset = new_offset
        self._index = index
        return bar

    def locate(self, target: TimeLike, reference: Optional[TimeLike] = None) -> Bar:
        """Find the bar stamped exactly ``target`` by iterative re-anchoring.

        Starting from the current cursor, the record delta is estimated from
        the period and the gap between ``target`` and ``reference`` (the header
        start time by default). Each miss re-anchors on the bar actually found;
        a bar with a zero timestamp sends the cursor to half its index instead.
        Gives up with :class:`BarNotFoundError` after ``max_attempts``
        refinements. The cursor is restored if the search fails.
        """
        fmt = self._require_open()
        header = self.header
        period_ms = header.period_ms
        if period_ms <= 0:
            raise ValueError(f"Cannot locate bars with non-positive period {header.period}")

        target_ms = _to_epoch_ms(target)
        reference_ms = header.start_ms if reference is None else _to_epoch_ms(reference)
        date_name = fmt.date_field.name

        saved = (self._offset, self._index)
        try:
            attempt = 0
            while True:
                delta = int(round((target_ms - reference_ms) / period_ms))
                bar = self.seek(self._index + delta)
                found = bar[date_name]
                if found == target_ms:
                    logger.debug("Located %d at record %d after %d refinements", target_ms, self._index, attempt)
                    return bar
                if attempt >= self.max_attempts:
                    raise BarNotFoundError(target_ms, attempt + 1)
                if found:
                    reference_ms = found
                else:
                    bar = self.seek(self._index // 2)
                    reference_ms = bar[date_name]
                logger.debug("Locate %d: attempt %d re-anchored at record %d (%d)", target_ms, attempt, self._index, reference_ms)
                attempt += 1
        except Exception:
            self._offset, self._index = saved
            raise

    # ------------------------------ iteration utils -----------------------------
    def read_bar(self, index: int) -> Bar:
        """Decode record ``index`` without moving the cursor. Negative indexes count from the end."""
        fmt = self._require_open()
        n = len(self)
        if index < 0:
            index += n
        if not 0 <= index < n:
            raise IndexError(index)
        return self._decode_at(HEADER_SIZE + index * fmt.record_size)

    def iter_bars(self, start: int = 0, stop: Optional[int] = None) -> Iterator[Bar]:
        """Yield bars in ``[start, stop)`` without touching the cursor."""
        fmt = self._require_open()
        n = len(self)
        stop = n if stop is None else min(stop, n)
        for i in range(max(start, 0), stop):
            yield self._decode_at(HEADER_SIZE + i * fmt.record_size)

    def peek_range(self) -> Tuple[int, Optional[int], Optional[int]]:
        """Return ``(count, first_timestamp, last_timestamp)``; ``(0, None, None)`` when empty."""
        fmt = self._require_open()
        n = len(self)
        if n == 0:
            return 0, None, None
        name = fmt.date_field.name
        return n, self.read_bar(0)[name], self.read_bar(n - 1)[name]

    # ------------------------------ data extractors -----------------------------
    def _view(self, start: int = 0, stop: Optional[int] = None) -> np.ndarray:
        fmt = self._require_open()
        n = len(self)
        stop = n if stop is None else min(stop, n)
        start = max(start, 0)
        if stop <= start:
            return np.empty(0, dtype=fmt.dtype)
        return np.frombuffer(
            self._mm, dtype=fmt.dtype, count=stop - start, offset=HEADER_SIZE + start * fmt.record_size
        )

    def _times(self, view: np.ndarray) -> np.ndarray:
        fmt = self._require_open()
        raw = view[fmt.date_field.name].astype(np.int64)
        return raw * _MS_PER_SECOND if fmt.seconds_timestamps else raw

    def _column(self, view: np.ndarray, name: str) -> np.ndarray:
        fmt = self._require_open()
        if view.dtype.names and name in view.dtype.names:
            return view[name].copy()
        for field in fmt.fields:
            if field.name == name and field.kind is FieldKind.CONSTANT:
                return np.full(len(view), field.value)
        raise KeyError(f"Unknown column {name!r} for format {fmt.version}")

    def times_epoch_ms(self) -> np.ndarray:
        """Timestamps of every record as int64, scaled the same way as bars."""
        return self._times(self._view())

    def to_numpy(self, *, columns: Optional[Sequence[str]] = None) -> Tuple[np.ndarray, np.ndarray]:
        """Return ``(data, times)`` where ``data`` is an ``n x k`` float64 matrix."""
        columns = tuple(columns or _DEFAULT_COLUMNS)
        v = self._view()
        mats = [self._column(v, c).astype(np.float64) for c in columns]
        data = np.stack(mats, axis=1) if mats else np.empty((len(v), 0), dtype=np.float64)
        return data, self._times(v)

    def _frame(
        self,
        start: int = 0,
        stop: Optional[int] = None,
        *,
        columns: Optional[Sequence[str]] = None,
        tz: Optional[str] = None,
    ) -> "pd.DataFrame":
        fmt = self._require_open()
        date_name = fmt.date_field.name
        v = self._view(start, stop)
        idx = pd.to_datetime(self._times(v), unit="ms", utc=True)
        if tz:
            idx = idx.tz_convert(tz)
        names = columns or [n for n in fmt.names if n != date_name]
        frame = pd.DataFrame({name: self._column(v, name) for name in names}, index=idx)
        frame.index.name = "DateTime"
        return frame

    def to_pandas(self, *, columns: Optional[Sequence[str]] = None, tz: Optional[str] = None) -> "pd.DataFrame":
        """All bars as a DataFrame indexed by ``DateTime`` (UTC unless ``tz`` given)."""
        return self._frame(columns=columns, tz=tz)

    def export_csv(
        self,
        out_path: str,
        *,
        columns: Optional[Sequence[str]] = None,
        chunk_records: int = 1_000_000,
    ) -> None:
        """Chunked CSV export; the time column is ISO-8601 UTC."""
        if chunk_records <= 0:
            raise ValueError("chunk_records must be a positive integer")
        n = len(self)
        with open(out_path, "w", newline="") as f:
            first = True
            for chunk_start in range(0, max(n, 1), chunk_records):
                df = self._frame(chunk_start, chunk_start + chunk_records, columns=columns)
                out = df.copy()
                out.index = out.index.strftime("%Y-%m-%dT%H:%M:%SZ")
                out.to_csv(f, header=first, index=True, index_label="DateTime", lineterminator="\n")
                first = False


def open_hst(path: Union[str, "os.PathLike[str]"], **kwargs: Any) -> Tuple[HstHeader, HstReader]:
    """Open ``path`` and return its header together with the positioned reader."""
    reader = HstReader(path, **kwargs).open()
    return reader.header, reader


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Console script entry point for the hstpy-hst command."""
    import argparse

    ap = argparse.ArgumentParser(description="Random-access .hst history reader")
    ap.add_argument("path", help="Path to .hst file")
    ap.add_argument("--info", action="store_true", help="Print header and record count")
    ap.add_argument("--bar", type=int, default=None, help="Print the bar at this record index")
    ap.add_argument("--at", type=str, default=None, help="Print the bar stamped at this ISO time (UTC)")
    ap.add_argument("--export", metavar="CSV", help="Export to CSV path")
    args = ap.parse_args(argv)

    with HstReader(args.path) as rdr:
        hdr = rdr.header
        if args.info:
            print(
                f"Version: {hdr.version}; symbol: {hdr.symbol.rstrip(chr(0))}; period: {hdr.period}; "
                f"records: {len(rdr)}; start: {hdr.start.isoformat()}"
            )
        if args.bar is not None:
            print(rdr.seek(args.bar))
        if args.at:
            print(rdr.locate(args.at))
        if args.export:
            rdr.export_csv(args.export)
            print(f"Exported to {args.export}")
    return 0


# ------------------------------ small CLI helper ------------------------------
if __name__ == "__main__":
    raise SystemExit(main())
