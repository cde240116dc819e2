# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Logging helpers for restrequest."""

from __future__ import annotations

import logging
import os
from collections.abc import Callable
from contextlib import suppress

DEFAULT_LOG_LEVEL = os.getenv("RESTREQUEST_LOG_LEVEL", "WARNING").upper()

logger = logging.getLogger("restrequest")


def setup_logging(level: str | None = None) -> None:
    """Configure standard logging for CLI/library use."""
    effective_level = (level or DEFAULT_LOG_LEVEL).upper()
    logging.basicConfig(
        level=getattr(logging, effective_level, logging.WARNING),
        format="%(levelname)s %(name)s: %(message)s",
    )


class LogSink:
    """
    Wraps the optional per-request log callback.

    Every message is mirrored to the ``restrequest`` logger at DEBUG. The callback is
    fire-and-forget: whatever it raises is discarded so it can never change the outcome
    of a transaction.
    """

    def __init__(self, callback: Callable[[str], None] | None = None, header: str = ""):
        self._callback = callback
        self._header = header

    def __call__(self, message: str) -> None:
        line = f"{self._header}{message}"
        logger.debug(line)
        if self._callback is None:
            return
        with suppress(Exception):
            self._callback(line)


__all__ = ["LogSink", "setup_logging"]
