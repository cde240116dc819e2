# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Configuration helpers for restrequest."""

import os
from dataclasses import dataclass

from .version import __version__

DEFAULT_USER_AGENT = f"RestRequest/{__version__}"
DEFAULT_BUFFER_SIZE = 65536
DEFAULT_TIMEOUT_MS = 30000


def _int_env(name: str, default: int) -> int:
    try:
        value = os.getenv(name)
        return int(value) if value is not None else default
    except ValueError:
        return default


def _bool_env(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


@dataclass
class RequestSettings:
    """Defaults applied to every new RestRequest."""

    buffer_size: int = DEFAULT_BUFFER_SIZE
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    user_agent: str = DEFAULT_USER_AGENT
    allow_redirects: bool = True
    ignore_certificate_errors: bool = False

    @classmethod
    def from_env(cls) -> "RequestSettings":
        """Create settings from environment variables (evaluated at call time)."""
        buffer_size = _int_env("RESTREQUEST_BUFFER_SIZE", cls.buffer_size)
        if buffer_size < 1:
            buffer_size = cls.buffer_size
        timeout_ms = _int_env("RESTREQUEST_TIMEOUT_MS", cls.timeout_ms)
        if timeout_ms < 1:
            timeout_ms = cls.timeout_ms
        return cls(
            buffer_size=buffer_size,
            timeout_ms=timeout_ms,
            user_agent=os.getenv("RESTREQUEST_USER_AGENT", cls.user_agent),
            allow_redirects=_bool_env("RESTREQUEST_REDIRECTS", cls.allow_redirects),
            ignore_certificate_errors=_bool_env("RESTREQUEST_IGNORE_CERT_ERRORS", cls.ignore_certificate_errors),
        )


def load_request_settings() -> RequestSettings:
    """Load request defaults from environment with sensible fallbacks."""
    return RequestSettings.from_env()
