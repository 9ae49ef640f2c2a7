"""Exceptions raised by the .hst reader.

Each error also derives from the builtin raised for the same situation by the
rest of the parser package, so ``except IndexError`` and friends keep working.
"""
from __future__ import annotations


class HstError(Exception):
    """Base class for all .hst reader errors."""


class HstFileNotFoundError(HstError, FileNotFoundError):
    pass


class FileTooSmallError(HstError, ValueError):
    pass


class UnsupportedVersionError(HstError, ValueError):
    def __init__(self, version: int) -> None:
        super().__init__(f"Unsupported .hst format version: {version}")
        self.version = version


class EndOfFileError(HstError, IndexError):
    pass


class StartOfFileError(HstError, IndexError):
    pass


class RecordOutOfRangeError(HstError, IndexError):
    pass


class BarNotFoundError(HstError, LookupError):
    def __init__(self, target_ms: int, attempts: int) -> None:
        super().__init__(f"Bar at {target_ms} not found after {attempts} attempts")
        self.target_ms = target_ms
        self.attempts = attempts


__all__ = [
    "HstError",
    "HstFileNotFoundError",
    "FileTooSmallError",
    "UnsupportedVersionError",
    "EndOfFileError",
    "StartOfFileError",
    "RecordOutOfRangeError",
    "BarNotFoundError",
]
