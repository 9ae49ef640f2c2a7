"""
hstpy - A Python library for reading trading-terminal history (.hst) files.

This package provides random-access tools for .hst price bar files:
- Header decoding and format version validation
- Cursor navigation: next, previous, by index, by timestamp
- Bulk extraction to NumPy and pandas, CSV export
- Awaitable wrappers for use inside asyncio applications
"""

__version__ = "0.1.0"

# Import main classes and functions for easy access
from .parser.hst_format import FieldKind, HstFormat, describe, is_supported_version
from .parser.hst_parse import HstHeader, HstReader, open_hst
from .parser.async_hst_reader import AsyncHstReader, open_hst_async
from .parser.errors import (
    HstError,
    HstFileNotFoundError,
    FileTooSmallError,
    UnsupportedVersionError,
    EndOfFileError,
    StartOfFileError,
    RecordOutOfRangeError,
    BarNotFoundError,
)

__all__ = [
    # Version info
    "__version__",

    # Layouts
    "FieldKind",
    "HstFormat",
    "describe",
    "is_supported_version",

    # Readers
    "HstHeader",
    "HstReader",
    "AsyncHstReader",
    "open_hst",
    "open_hst_async",

    # Errors
    "HstError",
    "HstFileNotFoundError",
    "FileTooSmallError",
    "UnsupportedVersionError",
    "EndOfFileError",
    "StartOfFileError",
    "RecordOutOfRangeError",
    "BarNotFoundError",
]
