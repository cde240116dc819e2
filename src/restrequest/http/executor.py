# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Transaction executor: the single routine every send variant funnels into.

One call builds a single-use client, classifies and renders the configured headers,
streams the request body, awaits the response head and materializes a ``RestResponse``.
Only ``ConfigurationError`` escapes, and only before any I/O starts; transport failures
become a ``status_code == 0`` response and observed cancellation becomes ``CANCELLED``.
"""

from __future__ import annotations

import asyncio
import inspect
import io
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import AsyncExitStack
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol, TypeVar

import httpx

from ..errors import (
    BodySourceError,
    ConfigurationError,
    OperationCancelled,
    categorize_exception,
)
from .headers import RequestFields, apply_headers, header_value, join_response_headers
from .models import CANCELLED, Cancelled, Headers, HttpMethod, RestResponse
from .stream import ResponseStream
from .transport import build_ssl_context, create_async_client, transaction_timeout

logger = logging.getLogger(__name__)

T = TypeVar("T")


class BodySource(Protocol):
    """Anything with ``read(n)``; the result may be bytes or an awaitable of bytes."""

    def read(self, size: int = ..., /) -> Any: ...


@dataclass(frozen=True)
class TransactionConfig:
    """Snapshot of a RestRequest taken at send time."""

    url: str | None
    method: HttpMethod = HttpMethod.GET
    headers: Headers = field(default_factory=dict)
    content_type: str | None = None
    buffer_size: int = 65536
    timeout_ms: int = 30000
    user_agent: str = ""
    allow_redirects: bool = True
    ignore_certificate_errors: bool = False
    certificate_filename: str | None = None
    certificate_password: str | None = None


def _now() -> str:
    return datetime.now().isoformat(sep=" ", timespec="seconds")


def _declared_length(headers: Headers) -> int | None:
    value = header_value(headers, "content-length")
    if value is None:
        return None
    try:
        length = int(value.strip())
    except ValueError:
        return None
    return length if length >= 0 else None


def _raise_if_cancelled(cancel: asyncio.Event | None) -> None:
    if cancel is not None and cancel.is_set():
        raise OperationCancelled()


async def _cancellable(awaitable: Awaitable[T], cancel: asyncio.Event | None) -> T:
    """Await ``awaitable``, abandoning it as soon as ``cancel`` is set."""
    if cancel is None:
        return await awaitable
    if cancel.is_set():
        if inspect.iscoroutine(awaitable):
            awaitable.close()
        raise OperationCancelled()

    task = asyncio.ensure_future(awaitable)
    waiter = asyncio.ensure_future(cancel.wait())
    try:
        await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        waiter.cancel()
        if not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
    if task.cancelled():
        raise OperationCancelled()
    return task.result()


async def _next_chunk(chunks: AsyncIterator[bytes]) -> bytes | None:
    return await anext(chunks, None)


class TransactionExecutor:
    """Runs one HTTP transaction for a TransactionConfig snapshot."""

    def __init__(
        self,
        config: TransactionConfig,
        log: Callable[[str], None] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config
        self._log = log or logger.debug
        self._transport = transport

    async def execute(
        self,
        content_length: int,
        body: BodySource | None,
        cancel: asyncio.Event | None = None,
    ) -> RestResponse | Cancelled:
        cfg = self.config
        if not cfg.url:
            raise ConfigurationError("url must not be empty")

        self._log(f"{cfg.method} {cfg.url}")
        try:
            return await self._transact(content_length, body, cancel)
        except ConfigurationError:
            raise
        except OperationCancelled:
            self._log("operation canceled")
            return CANCELLED
        except asyncio.CancelledError:
            self._log("task canceled")
            task = asyncio.current_task()
            if task is not None:
                task.uncancel()
            return CANCELLED
        except Exception as exc:  # noqa: BLE001
            category = categorize_exception(exc)
            self._log(f"web exception ({category.value}): {exc}")
            return RestResponse()
        finally:
            self._log(f"complete ({_now()})")

    async def _transact(
        self,
        content_length: int,
        body: BodySource | None,
        cancel: asyncio.Event | None,
    ) -> RestResponse:
        cfg = self.config
        self._log("setting up web request")
        ssl_context = build_ssl_context(
            ignore_certificate_errors=cfg.ignore_certificate_errors,
            certificate_filename=cfg.certificate_filename,
            certificate_password=cfg.certificate_password,
            log=self._log,
        )
        request = self._build_request(content_length, body, cancel)
        _raise_if_cancelled(cancel)

        async with AsyncExitStack() as resources:
            client = await resources.enter_async_context(
                create_async_client(
                    ssl_context=ssl_context,
                    timeout_ms=cfg.timeout_ms,
                    allow_redirects=cfg.allow_redirects,
                    transport=self._transport,
                )
            )
            self._log(f"submitting ({_now()})")
            response = await _cancellable(client.send(request, stream=True), cancel)
            resources.push_async_callback(response.aclose)
            self._log(f"server returned {response.status_code} ({_now()})")

            try:
                response.raise_for_status()
            except httpx.HTTPStatusError as exc:
                self._log(f"server returned status code {exc.response.status_code}")
                return await self._build_response(exc.response, resources, cancel)
            return await self._build_response(response, resources, cancel)

    def _build_request(
        self,
        content_length: int,
        body: BodySource | None,
        cancel: asyncio.Event | None,
    ) -> httpx.Request:
        cfg = self.config
        request_fields = RequestFields(
            user_agent=cfg.user_agent or None,
            content_type=cfg.content_type,
        )
        pass_through = apply_headers(cfg.headers, request_fields, self._log)

        content: AsyncIterator[bytes] | None = None
        if not cfg.method.sends_body:
            request_fields.content_length = None
        elif content_length > 0 and body is not None:
            self._log(f"reading data ({content_length} bytes), writing to request")
            request_fields.content_length = content_length
            content = self._body_chunks(body, content_length, cancel)
        else:
            request_fields.content_length = 0

        headers = {**request_fields.render(), **pass_through}
        try:
            return httpx.Request(
                cfg.method.value,
                cfg.url,
                headers=headers,
                content=content,
                extensions={"timeout": transaction_timeout(cfg.timeout_ms).as_dict()},
            )
        except (httpx.InvalidURL, UnicodeEncodeError) as exc:
            raise ConfigurationError(f"Invalid request: {exc}") from exc

    async def _body_chunks(
        self,
        body: BodySource,
        content_length: int,
        cancel: asyncio.Event | None,
    ) -> AsyncIterator[bytes]:
        remaining = content_length
        while remaining > 0:
            _raise_if_cancelled(cancel)
            chunk = body.read(min(self.config.buffer_size, remaining))
            if inspect.isawaitable(chunk):
                chunk = await chunk
            if not chunk:
                raise BodySourceError(f"body source ended with {remaining} of {content_length} bytes unread")
            chunk = bytes(chunk[:remaining])
            remaining -= len(chunk)
            yield chunk
            await asyncio.sleep(0)
        self._log(f"added {content_length} bytes to request")

    async def _build_response(
        self,
        response: httpx.Response,
        resources: AsyncExitStack,
        cancel: asyncio.Event | None,
    ) -> RestResponse:
        """Shared materialization for successful and error-status responses."""
        self._log(f"processing response headers ({_now()})")
        headers = join_response_headers(response.headers)
        for name, value in headers.items():
            self._log(f"adding response header {name}: {value}")

        head: dict[str, Any] = {
            "protocol_version": response.http_version,
            "status_code": response.status_code,
            "status_description": response.reason_phrase or None,
            "headers": headers or None,
            "content_type": response.headers.get("content-type"),
            "content_encoding": response.headers.get("content-encoding"),
            "response_uri": str(response.url),
        }

        declared = _declared_length(headers)
        if declared is None:
            self._log("content-length header not supplied")
            data, total = await self._drain(response, cancel)
            return RestResponse(**head, content_length=total, data=data)

        if declared > 0 and self.config.method is not HttpMethod.HEAD:
            self._log(f"attaching response stream with content length {declared} bytes")
            stream = ResponseStream(
                response,
                resources.pop_all(),
                chunk_size=self.config.buffer_size,
                content_length=declared,
            )
            return RestResponse(**head, content_length=declared, data=stream)

        return RestResponse(**head, content_length=0, data=None)

    async def _drain(
        self,
        response: httpx.Response,
        cancel: asyncio.Event | None,
    ) -> tuple[io.BytesIO | None, int]:
        buffer = io.BytesIO()
        total = 0
        chunks = response.aiter_raw(self.config.buffer_size)
        while True:
            chunk = await _cancellable(_next_chunk(chunks), cancel)
            if chunk is None:
                break
            buffer.write(chunk)
            total += len(chunk)
            self._log(f"read {len(chunk)} bytes, {total} total bytes")

        if total == 0:
            return None, 0
        buffer.seek(0)
        return buffer, total


__all__ = ["BodySource", "TransactionConfig", "TransactionExecutor"]
