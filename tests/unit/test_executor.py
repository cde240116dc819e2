# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

import asyncio
import gzip
import io

import httpx
import pytest

from restrequest.config import RequestSettings
from restrequest.errors import ConfigurationError
from restrequest.http.executor import TransactionConfig, TransactionExecutor
from restrequest.http.models import CANCELLED, HttpMethod, RestResponse
from restrequest.http.stream import ResponseStream
from restrequest.request import RestRequest

TEST_URL = "http://example.test/resource"


async def _chunks(*parts):
    for part in parts:
        yield part


def _refuse(request):
    raise httpx.ConnectError("down", request=request)


class CountingSource:
    def __init__(self, payload: bytes):
        self._inner = io.BytesIO(payload)
        self.reads = 0

    def read(self, size=-1):
        self.reads += 1
        return self._inner.read(size)


def test_streamed_body_when_length_declared(make_request):
    resp = make_request(lambda request: httpx.Response(200, content=b"hello")).send()

    assert resp.status_code == 200
    assert resp.status_description == "OK"
    assert resp.protocol_version == "HTTP/1.1"
    assert resp.response_uri == TEST_URL
    assert resp.content_length == 5
    assert resp.headers == {"Content-Length": "5"}
    assert isinstance(resp.data, ResponseStream)
    assert resp.data_as_bytes() == b"hello"
    assert resp.data.closed


def test_streamed_body_supports_partial_reads(make_request):
    resp = make_request(lambda request: httpx.Response(200, content=b"hello"), buffer_size=2).send()

    with resp.data as stream:
        assert stream.read(2) == b"he"
        assert stream.read(1) == b"l"
        assert stream.read() == b"lo"
        assert stream.read() == b""


def test_error_status_without_body(make_request):
    resp = make_request(lambda request: httpx.Response(404)).send()

    assert isinstance(resp, RestResponse)
    assert resp.status_code == 404
    assert resp.status_description == "Not Found"
    assert resp.content_length == 0
    assert resp.data is None


def test_error_status_with_declared_body_is_streamed(make_request):
    resp = make_request(lambda request: httpx.Response(500, content=b"boom")).send()

    assert resp.status_code == 500
    assert resp.content_length == 4
    assert isinstance(resp.data, ResponseStream)
    assert resp.data_as_bytes() == b"boom"


def test_error_status_with_undeclared_body_is_buffered(make_request):
    resp = make_request(lambda request: httpx.Response(503, content=_chunks(b"try ", b"later"))).send()

    assert resp.status_code == 503
    assert resp.content_length == 9
    assert isinstance(resp.data, io.BytesIO)
    assert resp.data.read() == b"try later"


def test_buffered_body_when_length_undeclared(make_request):
    seen = []
    request = make_request(
        lambda request: httpx.Response(200, content=_chunks(b"ab", b"cd")),
        buffer_size=2,
        logger=seen.append,
    )

    resp = request.send()

    assert "content-length" not in {name.lower() for name in resp.headers}
    assert resp.content_length == 4
    assert isinstance(resp.data, io.BytesIO)
    assert resp.data.tell() == 0
    assert resp.data.getvalue() == b"abcd"
    assert "read 2 bytes, 2 total bytes" in seen
    assert "read 2 bytes, 4 total bytes" in seen


def test_declared_zero_length_has_no_data(make_request):
    resp = make_request(lambda request: httpx.Response(204, headers={"Content-Length": "0"})).send()

    assert resp.status_code == 204
    assert resp.content_length == 0
    assert resp.data is None


def test_head_request_has_no_data(make_request):
    resp = make_request(lambda request: httpx.Response(200, headers={"Content-Length": "10"}), method="HEAD").send()

    assert resp.headers == {"Content-Length": "10"}
    assert resp.content_length == 0
    assert resp.data is None


def test_response_headers_are_joined(make_request):
    headers = [("Set-Cookie", "a=1"), ("X-Multi", "1"), ("Set-Cookie", "b=2"), ("Content-Length", "0")]
    resp = make_request(lambda request: httpx.Response(200, headers=headers)).send()

    assert resp.headers == {"Set-Cookie": "a=1,b=2", "X-Multi": "1", "Content-Length": "0"}


def test_content_type_and_encoding_are_copied_and_body_stays_raw(make_request):
    payload = gzip.compress(b"hello hello hello")
    resp = make_request(
        lambda request: httpx.Response(
            200,
            headers={"Content-Type": "text/plain", "Content-Encoding": "gzip"},
            content=payload,
        )
    ).send()

    assert resp.content_type == "text/plain"
    assert resp.content_encoding == "gzip"
    assert resp.content_length == len(payload)
    assert resp.data_as_bytes() == payload


def test_redirects_are_followed(make_request):
    def handler(request):
        if request.url.path == "/old":
            return httpx.Response(302, headers={"Location": "/new"})
        return httpx.Response(200, content=b"ok")

    resp = make_request(handler, url="http://example.test/old").send()

    assert resp.status_code == 200
    assert resp.response_uri == "http://example.test/new"
    assert resp.data_as_bytes() == b"ok"


def test_redirects_can_be_disabled(make_request):
    resp = make_request(
        lambda request: httpx.Response(302, headers={"Location": "/new"}),
        url="http://example.test/old",
        allow_redirects=False,
    ).send()

    assert resp.status_code == 302
    assert resp.headers["Location"] == "/new"
    assert resp.data is None


def test_transport_failure_yields_status_zero(make_request):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    resp = make_request(handler).send()

    assert resp == RestResponse()
    assert resp.status_code == 0
    assert resp.headers is None
    assert resp.data is None


def test_timeout_yields_status_zero(make_request):
    def handler(request):
        raise httpx.ConnectTimeout("timed out", request=request)

    seen = []
    resp = make_request(handler, logger=seen.append).send()

    assert resp.status_code == 0
    assert any(line.startswith("web exception (TIMEOUT)") for line in seen)


def test_unreachable_host_yields_status_zero():
    request = RestRequest("http://127.0.0.1:1/", settings=RequestSettings(timeout_ms=2000))

    resp = request.send()

    assert resp.status_code == 0
    assert resp.headers is None
    assert resp.data is None


def test_short_body_source_yields_status_zero(make_request):
    resp = make_request(lambda request: httpx.Response(200), method="POST").send_stream(10, io.BytesIO(b"abc"))

    assert resp.status_code == 0


def test_cancellation_mid_upload_returns_sentinel(make_request):
    handled = []

    def handler(request):
        handled.append(request)
        return httpx.Response(200)

    async def run():
        cancel = asyncio.Event()

        class CancellingSource(CountingSource):
            def read(self, size=-1):
                chunk = super().read(size)
                if self.reads == 2:
                    cancel.set()
                return chunk

        source = CancellingSource(b"x" * 1_000_000)
        request = make_request(handler, method="PUT")
        result = await request.send_stream_async(1_000_000, source, cancel=cancel)
        return result, source

    result, source = asyncio.run(run())

    assert result is CANCELLED
    assert handled == []
    assert source.reads < 1_000_000 // 65536


def test_cancellation_mid_download_returns_sentinel(make_request):
    async def run():
        cancel = asyncio.Event()

        async def body():
            yield b"partial"
            cancel.set()
            await asyncio.sleep(10)
            yield b"never"

        request = make_request(lambda request: httpx.Response(200, content=body()), buffer_size=4)
        return await request.send_async(cancel=cancel)

    assert asyncio.run(run()) is CANCELLED


def test_cancellation_before_submission_skips_the_request(make_request):
    handled = []

    async def run():
        cancel = asyncio.Event()
        cancel.set()
        request = make_request(lambda request: handled.append(request) or httpx.Response(200))
        return await request.send_async(cancel=cancel)

    assert asyncio.run(run()) is CANCELLED
    assert handled == []


def test_task_cancellation_returns_sentinel(make_request):
    async def slow(request):
        await asyncio.sleep(10)
        return httpx.Response(200)

    async def run():
        task = asyncio.ensure_future(make_request(slow).send_async())
        await asyncio.sleep(0.05)
        task.cancel()
        return await task

    assert asyncio.run(run()) is CANCELLED


@pytest.mark.parametrize(
    "handler",
    [
        lambda request: httpx.Response(200, content=b"hello"),
        lambda request: httpx.Response(500, content=_chunks(b"err")),
        _refuse,
    ],
    ids=["success", "error-status", "transport-failure"],
)
def test_log_checkpoints_open_and_complete_every_path(make_request, handler):
    seen = []
    resp = make_request(handler, logger=seen.append).send()
    resp.close()

    assert seen[0] == f"GET {TEST_URL}"
    assert seen[1] == "setting up web request"
    assert seen[-1].startswith("complete (")


def test_log_checkpoints_on_cancelled_path(make_request):
    seen = []

    async def run():
        cancel = asyncio.Event()
        cancel.set()
        request = make_request(lambda request: httpx.Response(200), logger=seen.append)
        return await request.send_async(cancel=cancel)

    assert asyncio.run(run()) is CANCELLED
    assert seen[-2] == "operation canceled"
    assert seen[-1].startswith("complete (")


def test_log_sink_failures_do_not_change_the_outcome(make_request):
    def broken_sink(message):
        raise RuntimeError("sink down")

    resp = make_request(lambda request: httpx.Response(200, content=b"ok"), logger=broken_sink).send()

    assert resp.status_code == 200
    assert resp.data_as_bytes() == b"ok"


def test_success_path_logs_status_and_response_headers(make_request):
    seen = []
    resp = make_request(
        lambda request: httpx.Response(200, headers={"X-Id": "7"}, content=b"hi"),
        logger=seen.append,
        log_header="[rest] ",
    ).send()
    resp.close()

    assert seen[0] == f"[rest] GET {TEST_URL}"
    assert any(line.startswith("[rest] server returned 200") for line in seen)
    assert "[rest] adding response header X-Id: 7" in seen
    assert "[rest] attaching response stream with content length 2 bytes" in seen


def test_executor_rejects_missing_url():
    executor = TransactionExecutor(TransactionConfig(url=""))
    with pytest.raises(ConfigurationError):
        asyncio.run(executor.execute(0, None))


def test_executor_can_run_without_a_builder():
    config = TransactionConfig(url=TEST_URL, method=HttpMethod.DELETE, user_agent="UA/1.0")
    transport = httpx.MockTransport(lambda request: httpx.Response(200, headers={"Content-Length": "0"}))

    resp = asyncio.run(TransactionExecutor(config, transport=transport).execute(0, None))

    assert resp.status_code == 200
    assert resp.data is None


def test_concurrent_sends_are_independent(make_request):
    def handler(request):
        return httpx.Response(200, content=request.url.path.encode())

    async def run():
        first = make_request(handler, url="http://example.test/a")
        second = make_request(handler, url="http://example.test/b")
        responses = await asyncio.gather(first.send_async(), second.send_async())
        return [await resp.adata_as_bytes() for resp in responses]

    assert asyncio.run(run()) == [b"/a", b"/b"]
