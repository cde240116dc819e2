# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

import httpx
import pytest

from restrequest.config import RequestSettings
from restrequest.request import RestRequest

TEST_URL = "http://example.test/resource"


@pytest.fixture
def settings():
    return RequestSettings(user_agent="UA/1.0")


@pytest.fixture
def make_request(settings):
    """Factory for RestRequest instances wired to an httpx.MockTransport handler."""

    def _make(handler, method="GET", headers=None, content_type=None, url=TEST_URL, **overrides):
        request = RestRequest(
            url,
            method,
            headers,
            content_type,
            settings=settings,
            transport=httpx.MockTransport(handler),
        )
        for name, value in overrides.items():
            setattr(request, name, value)
        return request

    return _make
