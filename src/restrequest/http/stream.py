# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Live response body handle used when the server declared a content length."""

from __future__ import annotations

import asyncio
from collections.abc import Coroutine
from contextlib import AsyncExitStack
from typing import Any

import httpx


def close_private_loop(loop: asyncio.AbstractEventLoop) -> None:
    """Shut down a loop created for a blocking send, the way asyncio.run does."""
    if loop.is_closed():
        return
    try:
        loop.run_until_complete(loop.shutdown_asyncgens())
        loop.run_until_complete(loop.shutdown_default_executor())
    finally:
        loop.close()


class ResponseStream:
    """
    Readable byte source tied to an open connection.

    The stream owns the response and its client (via ``resources``) and releases both
    when the body is exhausted or the stream is closed. Raw bytes are returned as sent by
    the server; no content decoding is applied, so the byte count matches the declared
    content length.

    Streams produced by an async send are read with ``aread``/``aclose``. Streams produced
    by a sync send own the private event loop they were opened on, which makes the
    blocking ``read``/``close`` usable too.
    """

    def __init__(
        self,
        response: httpx.Response,
        resources: AsyncExitStack,
        *,
        chunk_size: int,
        content_length: int,
    ):
        self.content_length = content_length
        self._response = response
        self._resources = resources
        self._chunks = response.aiter_raw(chunk_size)
        self._pending = bytearray()
        self._exhausted = False
        self._closed = False
        self._loop: asyncio.AbstractEventLoop | None = None

    def attach_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        """Hand ownership of a private event loop to this stream."""
        self._loop = loop

    @property
    def closed(self) -> bool:
        return self._closed

    def readable(self) -> bool:
        return not self._closed

    async def aread(self, size: int = -1) -> bytes:
        """Read up to ``size`` bytes (everything remaining when negative)."""
        if self._closed:
            raise ValueError("I/O operation on closed stream")
        while not self._exhausted and (size < 0 or len(self._pending) < size):
            try:
                chunk = await self._chunks.__anext__()
            except StopAsyncIteration:
                self._exhausted = True
                await self._resources.aclose()
                break
            self._pending.extend(chunk)
        if size < 0 or size > len(self._pending):
            size = len(self._pending)
        data = bytes(self._pending[:size])
        del self._pending[:size]
        return data

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._pending.clear()
        await self._resources.aclose()

    def read(self, size: int = -1) -> bytes:
        return self._run(self.aread(size))

    def close(self) -> None:
        if self._closed and self._loop is None:
            return
        try:
            self._run(self.aclose())
        finally:
            loop, self._loop = self._loop, None
            if loop is not None:
                close_private_loop(loop)

    def _run(self, coro: Coroutine[Any, Any, Any]) -> Any:
        if self._loop is None:
            coro.close()
            raise RuntimeError("stream belongs to a running event loop; use aread()/aclose()")
        return self._loop.run_until_complete(coro)

    def __enter__(self) -> ResponseStream:
        return self

    def __exit__(self, _exc_type, _exc, _tb) -> None:  # noqa: ANN001
        self.close()

    async def __aenter__(self) -> ResponseStream:
        return self

    async def __aexit__(self, _exc_type, _exc, _tb) -> None:  # noqa: ANN001
        await self.aclose()

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"<ResponseStream {state} content_length={self.content_length}>"


__all__ = ["ResponseStream", "close_private_loop"]
