# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Request header classification and response header normalization.

HTTP header field names are case-insensitive (RFC 9110). Configured request headers are
routed through a lookup table keyed by the trimmed, lowercased name:

- protocol fields land on ``RequestFields`` and are rendered by the executor, never
  copied through as extra header lines;
- connection-management names are accepted and dropped, the transport owns them;
- everything else is passed through verbatim.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import format_datetime, parsedate_to_datetime
from enum import Enum
from types import MappingProxyType
from typing import Any

import httpx

from ..errors import ConfigurationError
from .models import Headers


def _parse_text(name: str, value: str) -> str:
    return value


def _parse_int(name: str, value: str) -> int:
    try:
        parsed = int(value.strip())
    except ValueError as exc:
        raise ConfigurationError(f"Header {name!r} expects an integer, got {value!r}") from exc
    if parsed < 0:
        raise ConfigurationError(f"Header {name!r} must not be negative, got {value!r}")
    return parsed


def _parse_bool(name: str, value: str) -> bool:
    lowered = value.strip().lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    raise ConfigurationError(f"Header {name!r} expects true or false, got {value!r}")


def _parse_date(name: str, value: str) -> datetime:
    """Accept an RFC 7231 http-date or an ISO 8601 timestamp; naive values are taken as UTC."""
    raw = value.strip()
    parsed: datetime | None = None
    try:
        parsed = parsedate_to_datetime(raw)
    except (TypeError, ValueError, IndexError):
        try:
            parsed = datetime.fromisoformat(raw)
        except ValueError:
            parsed = None
    if parsed is None:
        raise ConfigurationError(f"Header {name!r} expects a date, got {value!r}")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_http_date(value: datetime) -> str:
    return format_datetime(value.astimezone(timezone.utc), usegmt=True)


class HeaderAction(str, Enum):
    FIELD = "field"
    SUPPRESS = "suppress"
    PASS_THROUGH = "pass_through"


@dataclass(frozen=True)
class HeaderRule:
    action: HeaderAction
    field: str | None = None
    parse: Callable[[str, str], Any] = _parse_text


def _field(name: str, parse: Callable[[str, str], Any] = _parse_text) -> HeaderRule:
    return HeaderRule(HeaderAction.FIELD, name, parse)


_SUPPRESS = HeaderRule(HeaderAction.SUPPRESS)
PASS_THROUGH = HeaderRule(HeaderAction.PASS_THROUGH)

HEADER_RULES: Mapping[str, HeaderRule] = MappingProxyType({
    "accept": _field("accept"),
    "content-length": _field("content_length", _parse_int),
    "content-type": _field("content_type"),
    "date": _field("date", _parse_date),
    "expect": _field("expect"),
    "host": _field("host"),
    "if-modified-since": _field("if_modified_since", _parse_date),
    "keep-alive": _field("keep_alive", _parse_bool),
    "referer": _field("referer"),
    "transfer-encoding": _field("transfer_encoding"),
    "user-agent": _field("user_agent"),
    "close": _SUPPRESS,
    "connection": _SUPPRESS,
    "proxy-connection": _SUPPRESS,
})


def rule_for(name: str) -> HeaderRule:
    return HEADER_RULES.get(name.strip().lower(), PASS_THROUGH)


@dataclass
class RequestFields:
    """First-class request fields; rendered into header lines by ``render``."""

    accept: str | None = None
    content_length: int | None = None
    content_type: str | None = None
    date: datetime | None = None
    expect: str | None = None
    host: str | None = None
    if_modified_since: datetime | None = None
    keep_alive: bool = False
    referer: str | None = None
    transfer_encoding: str | None = None
    user_agent: str | None = None

    def render(self) -> Headers:
        rendered: Headers = {}
        if self.host:
            rendered["Host"] = self.host
        if self.user_agent:
            rendered["User-Agent"] = self.user_agent
        if self.accept:
            rendered["Accept"] = self.accept
        rendered["Connection"] = "keep-alive" if self.keep_alive else "close"
        if self.date is not None:
            rendered["Date"] = format_http_date(self.date)
        if self.if_modified_since is not None:
            rendered["If-Modified-Since"] = format_http_date(self.if_modified_since)
        if self.expect:
            rendered["Expect"] = self.expect
        if self.referer:
            rendered["Referer"] = self.referer
        if self.content_type:
            rendered["Content-Type"] = self.content_type
        if self.transfer_encoding:
            rendered["Transfer-Encoding"] = self.transfer_encoding
        elif self.content_length is not None:
            rendered["Content-Length"] = str(self.content_length)
        return rendered


def apply_headers(
    headers: Mapping[str, str] | None,
    request_fields: RequestFields,
    log: Callable[[str], None] | None = None,
) -> Headers:
    """
    Route configured headers onto ``request_fields`` and return the pass-through set.

    Raises ConfigurationError for malformed typed values (integer, boolean, date).
    """
    pass_through: Headers = {}
    for key, value in (headers or {}).items():
        if not key or not value:
            continue
        if log is not None:
            log(f"adding header {key}: {value}")
        rule = rule_for(key)
        if rule.action is HeaderAction.SUPPRESS:
            continue
        if rule.action is HeaderAction.FIELD:
            setattr(request_fields, rule.field, rule.parse(key, value))
            continue
        pass_through[key] = value
    return pass_through


def join_response_headers(headers: httpx.Headers) -> Headers:
    """
    Collapse a response header list into one entry per name.

    Repeated names are comma-joined in receipt order; the first casing seen is kept.
    """
    joined: Headers = {}
    names: dict[str, str] = {}
    encoding = headers.encoding
    for raw_key, raw_value in headers.raw:
        key = raw_key.decode(encoding)
        value = raw_value.decode(encoding)
        name = names.setdefault(key.lower(), key)
        joined[name] = f"{joined[name]},{value}" if name in joined else value
    return joined


def header_value(headers: Mapping[str, str] | None, name: str, default: str | None = None) -> str | None:
    """Return a header value using case-insensitive key matching."""
    if not headers or not name:
        return default
    lower = name.lower()
    for key, value in headers.items():
        if key and key.lower() == lower:
            return value
    return default


__all__ = [
    "HEADER_RULES",
    "HeaderAction",
    "HeaderRule",
    "RequestFields",
    "apply_headers",
    "format_http_date",
    "header_value",
    "join_response_headers",
    "rule_for",
]
