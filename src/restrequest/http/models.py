# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""HTTP request/response data models."""

from __future__ import annotations

import io
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Union

if TYPE_CHECKING:
    from .stream import ResponseStream

Headers = dict[str, str]


class HttpMethod(str, Enum):
    GET = "GET"
    HEAD = "HEAD"
    PUT = "PUT"
    POST = "POST"
    DELETE = "DELETE"
    PATCH = "PATCH"
    OPTIONS = "OPTIONS"
    TRACE = "TRACE"
    CONNECT = "CONNECT"

    @classmethod
    def coerce(cls, value: HttpMethod | str) -> HttpMethod:
        """Accept an enum member or a case-insensitive method name."""
        if isinstance(value, cls):
            return value
        return cls(str(value).strip().upper())

    @property
    def sends_body(self) -> bool:
        return self not in (HttpMethod.GET, HttpMethod.HEAD)

    def __str__(self) -> str:
        return self.value


class _Cancelled(Enum):
    CANCELLED = "cancelled"

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "CANCELLED"


CANCELLED = _Cancelled.CANCELLED
"""Result of a send that observed cooperative cancellation."""

Cancelled = _Cancelled

BodyData = Union[io.BytesIO, "ResponseStream"]


@dataclass(frozen=True)
class RestResponse:
    """
    Uniform result of a transaction.

    ``status_code == 0`` means no HTTP response was obtained at all. ``content_length`` is
    always the number of bytes ``data`` yields, whether the server declared a length
    (``data`` is a live ``ResponseStream``) or not (``data`` is a rewound ``BytesIO``).
    The caller owns ``data`` and should close it once consumed.
    """

    protocol_version: str | None = None
    status_code: int = 0
    status_description: str | None = None
    headers: Headers | None = None
    content_type: str | None = None
    content_encoding: str | None = None
    content_length: int = 0
    response_uri: str | None = None
    data: BodyData | None = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def failed_transport(self) -> bool:
        """True when the server never answered."""
        return self.status_code == 0

    def data_as_bytes(self) -> bytes:
        """Consume ``data`` and return its bytes (empty when there is no body)."""
        if self.data is None:
            return b""
        try:
            return self.data.read()
        finally:
            self.close()

    def data_as_string(self, encoding: str = "utf-8") -> str:
        return self.data_as_bytes().decode(encoding, errors="replace")

    async def adata_as_bytes(self) -> bytes:
        """Async counterpart of ``data_as_bytes`` for streams bound to a running loop."""
        if self.data is None:
            return b""
        if isinstance(self.data, io.BytesIO):
            return self.data_as_bytes()
        try:
            return await self.data.aread()
        finally:
            await self.data.aclose()

    def close(self) -> None:
        if self.data is not None:
            self.data.close()

    async def aclose(self) -> None:
        if self.data is None:
            return
        if isinstance(self.data, io.BytesIO):
            self.data.close()
        else:
            await self.data.aclose()


__all__ = ["CANCELLED", "Cancelled", "Headers", "HttpMethod", "RestResponse"]
