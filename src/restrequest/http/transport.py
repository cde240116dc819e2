# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Transport construction: TLS context, socket options and the per-call httpx client."""

from __future__ import annotations

import contextlib
import socket
import ssl
from collections.abc import Callable

import httpx

from ..errors import ConfigurationError

# High ceiling so a single process never queues its own requests.
CONNECTION_LIMIT = 4096


def transaction_limits() -> httpx.Limits:
    return httpx.Limits(
        max_connections=CONNECTION_LIMIT,
        max_keepalive_connections=0,
        keepalive_expiry=0,
    )


def transaction_timeout(timeout_ms: int) -> httpx.Timeout:
    return httpx.Timeout(timeout_ms / 1000.0)


def get_socket_options() -> list[tuple[int, int, int]]:
    '''
    Socket options for latency-sensitive, single-use connections (Nagle disabled).

    Returns
    -------
    list[tuple[int, int, int]]
    '''
    opts = []
    if hasattr(socket, "TCP_NODELAY"):
        opts.append((socket.IPPROTO_TCP, socket.TCP_NODELAY, 1))
    return opts


def build_ssl_context(
    *,
    ignore_certificate_errors: bool = False,
    certificate_filename: str | None = None,
    certificate_password: str | None = None,
    log: Callable[[str], None] | None = None,
) -> ssl.SSLContext:
    '''
    Create the TLS context for one transaction.

    - TLS 1.2 is the minimum negotiated version
    - only HTTP/1.1 is offered over ALPN
    - an optional PEM client certificate (with an optionally encrypted key) is loaded

    Raises
    ------
    ConfigurationError
        If the client certificate cannot be loaded.
    '''
    ctx = ssl.create_default_context(purpose=ssl.Purpose.SERVER_AUTH)
    ctx.minimum_version = ssl.TLSVersion.TLSv1_2
    ctx.maximum_version = ssl.TLSVersion.MAXIMUM_SUPPORTED

    if ignore_certificate_errors:
        ctx.check_hostname = False
        ctx.verify_mode = ssl.CERT_NONE

    with contextlib.suppress(NotImplementedError):
        ctx.set_alpn_protocols(["http/1.1"])

    if certificate_filename:
        if log is not None:
            if certificate_password:
                log("adding certificate including password")
            else:
                log("adding certificate without password")
        try:
            ctx.load_cert_chain(certificate_filename, password=certificate_password or None)
        except (OSError, ssl.SSLError) as exc:
            raise ConfigurationError(f"Unable to load client certificate {certificate_filename!r}: {exc}") from exc

    return ctx


def create_async_client(
    *,
    ssl_context: ssl.SSLContext,
    timeout_ms: int,
    allow_redirects: bool,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Build a single-use client: no pooling, no keep-alive, no retries, no env proxies."""
    limits = transaction_limits()
    if transport is None:
        transport = httpx.AsyncHTTPTransport(
            verify=ssl_context,
            http1=True,
            http2=False,
            limits=limits,
            trust_env=False,
            retries=0,
            socket_options=get_socket_options(),
        )
    return httpx.AsyncClient(
        transport=transport,
        timeout=transaction_timeout(timeout_ms),
        follow_redirects=allow_redirects,
        trust_env=False,
        limits=limits,
    )


__all__ = [
    "CONNECTION_LIMIT",
    "build_ssl_context",
    "create_async_client",
    "get_socket_options",
    "transaction_limits",
    "transaction_timeout",
]
