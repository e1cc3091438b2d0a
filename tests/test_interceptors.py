"""
Tests for request/response interceptors.
"""
import logging

import pytest
import respx

from quester_client import ClientConfig, InterceptorChain, QuesterClient
from quester_client.interceptors import _format_body

BASE_URL = "https://api.example.com"


@pytest.mark.asyncio
async def test_interceptors_run_in_registration_order():
    calls = []
    async with QuesterClient(ClientConfig(base_url=BASE_URL)) as client:
        client.add_request_interceptor(lambda url, request: calls.append(("req1", url)))
        client.add_request_interceptor(lambda url, request: calls.append(("req2", request.method)))
        client.add_response_interceptor(lambda response, url: calls.append(("res1", response.status_code)))
        client.add_response_interceptor(lambda response, url: calls.append(("res2", url)))

        with respx.mock(base_url=BASE_URL) as mock:
            mock.get("/test").respond(200, json={})
            await client.get("/test")

    assert calls == [
        ("req1", f"{BASE_URL}/test"),
        ("req2", "GET"),
        ("res1", 200),
        ("res2", f"{BASE_URL}/test"),
    ]


@pytest.mark.asyncio
async def test_request_interceptor_can_add_headers():
    async with QuesterClient(ClientConfig(base_url=BASE_URL)) as client:
        client.add_request_interceptor(lambda url, request: request.headers.update({"X-Request-Id": "r-1"}))

        with respx.mock(base_url=BASE_URL) as mock:
            route = mock.get("/test").respond(200, json={})
            await client.get("/test")

        assert route.calls.last.request.headers["x-request-id"] == "r-1"


@pytest.mark.asyncio
async def test_response_interceptors_see_error_responses():
    seen = []
    async with QuesterClient(ClientConfig(base_url=BASE_URL)) as client:
        client.add_response_interceptor(lambda response, url: seen.append(response.status_code))

        with respx.mock(base_url=BASE_URL) as mock:
            mock.get("/missing").respond(404)
            with pytest.raises(Exception):
                await client.get("/missing")

    assert seen == [404]


@pytest.mark.asyncio
async def test_disposer_removes_only_its_interceptor():
    calls = []
    async with QuesterClient(ClientConfig(base_url=BASE_URL)) as client:
        dispose_a = client.add_request_interceptor(lambda url, request: calls.append("a"))
        client.add_request_interceptor(lambda url, request: calls.append("b"))

        dispose_a()
        dispose_a()

        with respx.mock(base_url=BASE_URL) as mock:
            mock.get("/test").respond(200, json={})
            await client.get("/test")

    assert calls == ["b"]


@pytest.mark.asyncio
async def test_failing_interceptor_is_isolated(caplog):
    calls = []

    def broken(url, request):
        raise ValueError("boom")

    async with QuesterClient(ClientConfig(base_url=BASE_URL)) as client:
        client.add_request_interceptor(broken)
        client.add_request_interceptor(lambda url, request: calls.append("after"))

        with respx.mock(base_url=BASE_URL) as mock:
            mock.get("/test").respond(200, json={"ok": True})
            with caplog.at_level(logging.ERROR, logger="quester_client.interceptors"):
                result = await client.get("/test")

    assert result == {"ok": True}
    assert calls == ["after"]
    assert "Request interceptor error: boom" in caplog.text


@pytest.mark.asyncio
async def test_async_interceptors_are_awaited():
    calls = []

    async def record(response, url):
        calls.append(response.status_code)

    async with QuesterClient(ClientConfig(base_url=BASE_URL)) as client:
        client.add_response_interceptor(record)

        with respx.mock(base_url=BASE_URL) as mock:
            mock.get("/test").respond(201, json={})
            await client.get("/test")

    assert calls == [201]


@pytest.mark.asyncio
async def test_interceptors_run_on_every_retry_attempt():
    attempts = []
    async with QuesterClient(ClientConfig(base_url=BASE_URL, backoff_base_ms=0)) as client:
        client.add_request_interceptor(lambda url, request: attempts.append(url))

        with respx.mock(base_url=BASE_URL) as mock:
            mock.get("/flaky").respond(500)
            with pytest.raises(Exception):
                await client.get("/flaky", config={"retries": 2})

    assert len(attempts) == 3


@pytest.mark.asyncio
async def test_debug_logging(caplog):
    async with QuesterClient(ClientConfig(base_url=BASE_URL)) as client:
        dispose = client.enable_debug_logging()
        assert len(client.interceptors.request_interceptors) == 1
        assert len(client.interceptors.response_interceptors) == 1

        with respx.mock(base_url=BASE_URL) as mock:
            mock.post("/notes").respond(201, json={"id": "n1"})
            with caplog.at_level(logging.INFO, logger="quester_client.interceptors"):
                await client.post("/notes", {"title": "Draft"})

        assert f"[API] POST {BASE_URL}/notes" in caplog.text
        assert '"title": "Draft"' in caplog.text
        assert f"[API] 201 {BASE_URL}/notes" in caplog.text

        dispose()
        assert client.interceptors.request_interceptors == []
        assert client.interceptors.response_interceptors == []


def test_chains_are_independent():
    first, second = InterceptorChain(), InterceptorChain()
    first.add_request_interceptor(lambda url, request: None)
    assert second.request_interceptors == []


class TestFormatBody:

    def test_empty(self):
        assert _format_body(None) == "<empty>"

    def test_json_is_pretty_printed(self):
        assert _format_body(b'{"a":1}') == '{\n  "a": 1\n}'

    def test_binary(self):
        assert _format_body(b"\xff\xfe\x00") == "<binary data: 3 bytes>"

    def test_long_text_is_truncated(self):
        formatted = _format_body("x" * 6000)
        assert formatted.endswith("... (truncated)")
        assert len(formatted) == 5000 + len("... (truncated)")
