"""
Record layouts for trading-terminal history (.hst) files.

Two on-disk layouts are known, keyed by the version number stored in the
first four bytes of the file:

- 400 (legacy): 44-byte records, 32-bit UNIX seconds timestamp followed by
  five float64 values (open, low, high, close, volume).
- 401: 60-byte records, 64-bit timestamp followed by four float64 prices,
  int64 tick volume, int32 spread and int64 real volume.

Fields that only exist in the newer layout are declared as constants in the
legacy one so both versions decode to the same keys.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple

import numpy as np

HEADER_SIZE = 148

VERSION_LEGACY = 400
VERSION_401 = 401


class FieldKind(Enum):
    DATE = "date"
    DOUBLE = "double"
    INT32 = "i32"
    INT64 = "i64"
    CONSTANT = "constant"
    SKIP = "skip"


# struct format per readable kind; DATE reads only the low 32 bits
STRUCT_FORMATS: Dict[FieldKind, str] = {
    FieldKind.DATE: "<i",
    FieldKind.DOUBLE: "<d",
    FieldKind.INT32: "<i",
    FieldKind.INT64: "<q",
}

_NUMPY_FORMATS: Dict[FieldKind, str] = {
    FieldKind.DATE: "<i4",
    FieldKind.DOUBLE: "<f8",
    FieldKind.INT32: "<i4",
    FieldKind.INT64: "<i8",
}


@dataclass(frozen=True)
class FieldDescriptor:
    name: str
    kind: FieldKind
    size: int = 0
    offset: int = 0
    value: Any = None

    @property
    def reads_disk(self) -> bool:
        return self.kind in STRUCT_FORMATS


@dataclass(frozen=True)
class HstFormat:
    version: int
    record_size: int
    fields: Tuple[FieldDescriptor, ...]
    seconds_timestamps: bool  # DATE fields hold seconds and are scaled to ms
    dtype: np.dtype = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        disk = [f for f in self.fields if f.reads_disk]
        for f in disk:
            if f.offset + f.size > self.record_size:
                raise ValueError(
                    f"Field {f.name!r} overruns {self.record_size}-byte record of version {self.version}"
                )
        dtype = np.dtype({
            "names": [f.name for f in disk],
            "formats": [_NUMPY_FORMATS[f.kind] for f in disk],
            "offsets": [f.offset for f in disk],
            "itemsize": self.record_size,
        })
        object.__setattr__(self, "dtype", dtype)

    @property
    def names(self) -> Tuple[str, ...]:
        return tuple(f.name for f in self.fields if f.kind is not FieldKind.SKIP)

    @property
    def date_field(self) -> FieldDescriptor:
        for f in self.fields:
            if f.kind is FieldKind.DATE:
                return f
        raise LookupError(f"Format {self.version} declares no date field")


def _f(name: str, kind: FieldKind, size: int = 0, offset: int = 0, value: Any = None) -> FieldDescriptor:
    return FieldDescriptor(name, kind, size, offset, value)


FORMAT_400 = HstFormat(
    version=VERSION_LEGACY,
    record_size=44,
    fields=(
        _f("timestamp", FieldKind.DATE, 4, 0),
        _f("open", FieldKind.DOUBLE, 8, 4),
        _f("low", FieldKind.DOUBLE, 8, 12),
        _f("high", FieldKind.DOUBLE, 8, 20),
        _f("close", FieldKind.DOUBLE, 8, 28),
        _f("volume", FieldKind.DOUBLE, 8, 36),
        _f("spread", FieldKind.CONSTANT, value=0),
        _f("real_volume", FieldKind.CONSTANT, value=0),
    ),
    seconds_timestamps=True,
)  # 44 bytes

FORMAT_401 = HstFormat(
    version=VERSION_401,
    record_size=60,
    fields=(
        _f("timestamp", FieldKind.DATE, 8, 0),
        _f("open", FieldKind.DOUBLE, 8, 8),
        _f("high", FieldKind.DOUBLE, 8, 16),
        _f("low", FieldKind.DOUBLE, 8, 24),
        _f("close", FieldKind.DOUBLE, 8, 32),
        _f("volume", FieldKind.INT64, 8, 40),
        _f("spread", FieldKind.INT32, 4, 48),
        _f("real_volume", FieldKind.INT64, 8, 52),
    ),
    seconds_timestamps=False,
)  # 60 bytes

FORMATS: Dict[int, HstFormat] = {
    VERSION_LEGACY: FORMAT_400,
    VERSION_401: FORMAT_401,
}


def describe(version: int) -> Optional[HstFormat]:
    """Return the layout registered for ``version`` or ``None``."""
    return FORMATS.get(version)


def is_supported_version(version: int) -> bool:
    return version in FORMATS


__all__ = [
    "HEADER_SIZE",
    "VERSION_LEGACY",
    "VERSION_401",
    "FieldKind",
    "FieldDescriptor",
    "HstFormat",
    "FORMAT_400",
    "FORMAT_401",
    "FORMATS",
    "describe",
    "is_supported_version",
]
