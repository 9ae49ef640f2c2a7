"""Asynchronous front-end for :class:`~hstpy.parser.hst_parse.HstReader`."""

from __future__ import annotations

import asyncio
import functools
import logging
import os
from typing import Any, Callable, Optional, Sequence, Tuple, TypeVar, Union

import pandas as pd

from .hst_parse import MAX_LOCATE_ATTEMPTS, Bar, HstHeader, HstReader, TimeLike

T = TypeVar("T")


class AsyncHstReader:
    """Awaitable wrappers around a single :class:`HstReader`.

    Every call runs the synchronous reader method in a worker thread. Calls
    are serialised because they share one cursor; open separate readers for
    parallel access to the same file.
    """

    def __init__(
        self,
        path: Union[str, "os.PathLike[str]"],
        *,
        max_attempts: int = MAX_LOCATE_ATTEMPTS,
    ) -> None:
        self.reader = HstReader(path, max_attempts=max_attempts)
        self._lock: Optional[asyncio.Lock] = None
        self._logger = logging.getLogger(__name__)

    @property
    def header(self) -> HstHeader:
        return self.reader.header

    async def __aenter__(self) -> "AsyncHstReader":
        return await self.open()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def open(self) -> "AsyncHstReader":
        await self._run_in_executor(self.reader.open)
        self._logger.debug("Async reader ready for %s", self.reader.path)
        return self

    async def close(self) -> None:
        await self._run_in_executor(self.reader.close)

    async def next_bar(self) -> Bar:
        return await self._run_in_executor(self.reader.next_bar)

    async def prev_bar(self) -> Bar:
        return await self._run_in_executor(self.reader.prev_bar)

    async def seek(self, index: int) -> Bar:
        return await self._run_in_executor(functools.partial(self.reader.seek, index))

    async def locate(self, target: TimeLike, reference: Optional[TimeLike] = None) -> Bar:
        return await self._run_in_executor(
            functools.partial(self.reader.locate, target, reference)
        )

    async def peek_range(self) -> Tuple[int, Optional[int], Optional[int]]:
        return await self._run_in_executor(self.reader.peek_range)

    async def to_pandas(
        self,
        *,
        columns: Optional[Sequence[str]] = None,
        tz: Optional[str] = None,
    ) -> "pd.DataFrame":
        return await self._run_in_executor(
            functools.partial(self.reader.to_pandas, columns=columns, tz=tz)
        )

    async def _run_in_executor(self, func: Callable[[], T]) -> T:
        # Created lazily so the lock binds to the loop that awaits it
        if self._lock is None:
            self._lock = asyncio.Lock()
        async with self._lock:
            task = asyncio.ensure_future(self._submit(func))
            try:
                return await asyncio.shield(task)
            except asyncio.CancelledError:
                # Hold the lock until the worker thread is done with the cursor
                await asyncio.wait([task])
                raise

    async def _submit(self, func: Callable[[], T]) -> T:
        return await asyncio.to_thread(func)


async def open_hst_async(path: Union[str, "os.PathLike[str]"], **kwargs: Any) -> Tuple[HstHeader, AsyncHstReader]:
    """Awaitable counterpart of :func:`~hstpy.parser.hst_parse.open_hst`."""
    reader = await AsyncHstReader(path, **kwargs).open()
    return reader.header, reader


__all__ = [
    "AsyncHstReader",
    "open_hst_async",
]
