# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""
restrequest package entrypoint.

A single-shot HTTP transaction engine: build one request, send it (blocking or as a
cancellable coroutine) and get back a uniform ``RestResponse`` whether the server
answered with success, answered with an error status, or never answered at all.
"""

from .config import RequestSettings, load_request_settings
from .errors import ConfigurationError, ErrorCategory, RestRequestError
from .http import CANCELLED, Cancelled, HttpMethod, ResponseStream, RestResponse
from .log import LogSink, setup_logging
from .request import FORM_CONTENT_TYPE, RestRequest, encode_form
from .version import __version__

__all__ = [
    "CANCELLED",
    "Cancelled",
    "ConfigurationError",
    "ErrorCategory",
    "FORM_CONTENT_TYPE",
    "HttpMethod",
    "LogSink",
    "RequestSettings",
    "ResponseStream",
    "RestRequest",
    "RestRequestError",
    "RestResponse",
    "encode_form",
    "load_request_settings",
    "setup_logging",
    "__version__",
]
