# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""HTTP transaction exports."""

from .executor import BodySource, TransactionConfig, TransactionExecutor
from .headers import HEADER_RULES, HeaderAction, RequestFields, apply_headers, header_value, join_response_headers
from .models import CANCELLED, Cancelled, Headers, HttpMethod, RestResponse
from .stream import ResponseStream
from .transport import build_ssl_context, create_async_client

__all__ = [
    "BodySource",
    "CANCELLED",
    "Cancelled",
    "HEADER_RULES",
    "HeaderAction",
    "Headers",
    "HttpMethod",
    "RequestFields",
    "ResponseStream",
    "RestResponse",
    "TransactionConfig",
    "TransactionExecutor",
    "apply_headers",
    "build_ssl_context",
    "create_async_client",
    "header_value",
    "join_response_headers",
]
