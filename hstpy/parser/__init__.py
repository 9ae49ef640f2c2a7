"""
Parser module for trading-terminal history (.hst) files.

This module provides the versioned record layouts, the cursor-based reader and
its asynchronous front-end.
"""

from .errors import (
    HstError,
    HstFileNotFoundError,
    FileTooSmallError,
    UnsupportedVersionError,
    EndOfFileError,
    StartOfFileError,
    RecordOutOfRangeError,
    BarNotFoundError,
)
from .hst_format import (
    HEADER_SIZE,
    FORMATS,
    FieldDescriptor,
    FieldKind,
    HstFormat,
    describe,
    is_supported_version,
)
from .hst_parse import (
    HstHeader,
    HstReader,
    decode_record,
    open_hst,
    read_header,
)
from .async_hst_reader import AsyncHstReader, open_hst_async

__all__ = [
    # Layouts
    "HEADER_SIZE",
    "FORMATS",
    "FieldDescriptor",
    "FieldKind",
    "HstFormat",
    "describe",
    "is_supported_version",

    # Reading
    "HstHeader",
    "HstReader",
    "AsyncHstReader",
    "decode_record",
    "open_hst",
    "open_hst_async",
    "read_header",

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
