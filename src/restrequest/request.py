# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Request builder with blocking and cancellable asynchronous send variants."""

from __future__ import annotations

import asyncio
import io
from collections.abc import Callable, Mapping
from urllib.parse import urlencode

import httpx

from .config import RequestSettings, load_request_settings
from .errors import ConfigurationError
from .http.executor import BodySource, TransactionConfig, TransactionExecutor
from .http.models import Cancelled, Headers, HttpMethod, RestResponse
from .http.stream import ResponseStream, close_private_loop
from .log import LogSink

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"

SendResult = RestResponse | Cancelled


def encode_form(form: Mapping[str, str] | None) -> bytes:
    """Percent-encode a form map as ``k=v`` pairs joined by ``&`` (UTF-8)."""
    pairs = [(str(key), "" if value is None else str(value)) for key, value in (form or {}).items()]
    return urlencode(pairs).encode("utf-8")


class RestRequest:
    """
    A single HTTP request and its configuration.

    Every send variant returns either a ``RestResponse`` or ``CANCELLED``. Transport
    failures and error statuses never raise; ``ConfigurationError`` is raised for invalid
    configuration before any I/O takes place.

    Blocking variants run the asynchronous path on a private event loop and therefore
    cannot be called from inside a running loop; use the ``*_async`` variants there.
    """

    def __init__(
        self,
        url: str,
        method: HttpMethod | str = HttpMethod.GET,
        headers: Headers | None = None,
        content_type: str | None = None,
        *,
        settings: RequestSettings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        if not url:
            raise ConfigurationError("url must not be empty")
        settings = settings or load_request_settings()

        self.url = url
        self.method = method
        self.headers = headers
        self.content_type = content_type
        self.buffer_size = settings.buffer_size
        self.timeout = settings.timeout_ms
        self.user_agent = settings.user_agent
        self.allow_redirects = settings.allow_redirects
        self.ignore_certificate_errors = settings.ignore_certificate_errors
        self.certificate_filename: str | None = None
        self.certificate_password: str | None = None
        self.logger: Callable[[str], None] | None = None
        self.log_header = ""
        self._content_length = 0
        self._transport = transport

    @property
    def method(self) -> HttpMethod:
        return self._method

    @method.setter
    def method(self, value: HttpMethod | str) -> None:
        try:
            self._method = HttpMethod.coerce(value)
        except ValueError as exc:
            raise ConfigurationError(f"Unsupported HTTP method: {value!r}") from exc

    @property
    def headers(self) -> Headers:
        return self._headers

    @headers.setter
    def headers(self, value: Headers | None) -> None:
        self._headers = {} if value is None else value

    @property
    def content_length(self) -> int:
        """Length of the body supplied to the most recent send."""
        return self._content_length

    @property
    def buffer_size(self) -> int:
        return self._buffer_size

    @buffer_size.setter
    def buffer_size(self, value: int) -> None:
        if value < 1:
            raise ConfigurationError("buffer_size must be at least one byte in size")
        self._buffer_size = value

    @property
    def timeout(self) -> int:
        """Request timeout in milliseconds."""
        return self._timeout

    @timeout.setter
    def timeout(self, value: int) -> None:
        if value < 1:
            raise ConfigurationError("timeout must be at least 1ms")
        self._timeout = value

    # Blocking variants

    def send(self, data: Mapping[str, str] | str | bytes | None = None) -> SendResult:
        """Send with a body chosen by type: none, form map, text or raw bytes."""
        if data is None:
            return self._run(0, None)
        if isinstance(data, Mapping):
            return self.send_form(data)
        if isinstance(data, str):
            return self.send_text(data)
        if isinstance(data, (bytes, bytearray, memoryview)):
            return self.send_bytes(data)
        raise TypeError(f"Unsupported body type: {type(data).__name__}")

    def send_form(self, form: Mapping[str, str] | None) -> SendResult:
        """Form-encode and send; sets the content type when it is unset."""
        return self.send_bytes(self._prepare_form(form))

    def send_text(self, text: str | None) -> SendResult:
        if not text:
            return self._run(0, None)
        return self.send_bytes(text.encode("utf-8"))

    def send_bytes(self, data: bytes | bytearray | memoryview | None) -> SendResult:
        return self._run(*self._bytes_body(data))

    def send_stream(self, content_length: int, stream: BodySource | None) -> SendResult:
        """Send exactly ``content_length`` bytes read from ``stream``."""
        self._check_length(content_length)
        return self._run(content_length, stream)

    # Asynchronous variants

    async def send_async(
        self,
        data: Mapping[str, str] | str | bytes | None = None,
        *,
        cancel: asyncio.Event | None = None,
    ) -> SendResult:
        if data is None:
            return await self._execute(0, None, cancel)
        if isinstance(data, Mapping):
            return await self.send_form_async(data, cancel=cancel)
        if isinstance(data, str):
            return await self.send_text_async(data, cancel=cancel)
        if isinstance(data, (bytes, bytearray, memoryview)):
            return await self.send_bytes_async(data, cancel=cancel)
        raise TypeError(f"Unsupported body type: {type(data).__name__}")

    async def send_form_async(
        self,
        form: Mapping[str, str] | None,
        *,
        cancel: asyncio.Event | None = None,
    ) -> SendResult:
        return await self.send_bytes_async(self._prepare_form(form), cancel=cancel)

    async def send_text_async(self, text: str | None, *, cancel: asyncio.Event | None = None) -> SendResult:
        if not text:
            return await self._execute(0, None, cancel)
        return await self.send_bytes_async(text.encode("utf-8"), cancel=cancel)

    async def send_bytes_async(
        self,
        data: bytes | bytearray | memoryview | None,
        *,
        cancel: asyncio.Event | None = None,
    ) -> SendResult:
        content_length, body = self._bytes_body(data)
        return await self._execute(content_length, body, cancel)

    async def send_stream_async(
        self,
        content_length: int,
        stream: BodySource | None,
        *,
        cancel: asyncio.Event | None = None,
    ) -> SendResult:
        self._check_length(content_length)
        return await self._execute(content_length, stream, cancel)

    # Internals

    def _prepare_form(self, form: Mapping[str, str] | None) -> bytes:
        encoded = encode_form(form)
        if not self.content_type:
            self.content_type = FORM_CONTENT_TYPE
        return encoded

    @staticmethod
    def _bytes_body(data: bytes | bytearray | memoryview | None) -> tuple[int, io.BytesIO | None]:
        if not data:
            return 0, None
        return len(data), io.BytesIO(bytes(data))

    @staticmethod
    def _check_length(content_length: int) -> None:
        if content_length < 0:
            raise ConfigurationError("content_length must not be negative")

    def snapshot(self) -> TransactionConfig:
        """Freeze the current configuration for one transaction."""
        return TransactionConfig(
            url=self.url,
            method=self.method,
            headers=dict(self.headers),
            content_type=self.content_type,
            buffer_size=self.buffer_size,
            timeout_ms=self.timeout,
            user_agent=self.user_agent,
            allow_redirects=self.allow_redirects,
            ignore_certificate_errors=self.ignore_certificate_errors,
            certificate_filename=self.certificate_filename,
            certificate_password=self.certificate_password,
        )

    async def _execute(
        self,
        content_length: int,
        body: BodySource | None,
        cancel: asyncio.Event | None,
    ) -> SendResult:
        self._content_length = content_length if body is not None else 0
        executor = TransactionExecutor(
            self.snapshot(),
            LogSink(self.logger, self.log_header),
            transport=self._transport,
        )
        return await executor.execute(content_length, body, cancel)

    def _run(self, content_length: int, body: BodySource | None) -> SendResult:
        loop = asyncio.new_event_loop()
        try:
            result = loop.run_until_complete(self._execute(content_length, body, None))
        except BaseException:
            close_private_loop(loop)
            raise
        if isinstance(result, RestResponse) and isinstance(result.data, ResponseStream):
            # The live stream still needs the loop its connection was opened on.
            result.data.attach_loop(loop)
        else:
            close_private_loop(loop)
        return result

    def __repr__(self) -> str:
        return f"<RestRequest {self.method} {self.url}>"


__all__ = ["FORM_CONTENT_TYPE", "RestRequest", "SendResult", "encode_form"]
