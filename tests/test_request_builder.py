"""
Tests for RequestBuilder.
"""
from quester_client.config import CompactJsonSerializer
from quester_client.core import RequestBuilder


def test_builder_chain():
    options = (
        RequestBuilder("https://api.example.com/a", "POST")
        .header("X-One", "1")
        .headers({"X-Two": "2"})
        .params({"page": 1})
        .json({"title": "Note"}, CompactJsonSerializer())
        .build()
    )

    assert options["method"] == "POST"
    assert options["url"] == "https://api.example.com/a"
    assert options["headers"] == {"x-one": "1", "x-two": "2"}
    assert options["params"] == {"page": 1}
    assert options["content"] == '{"title":"Note"}'


def test_headers_merge_case_insensitively():
    options = (
        RequestBuilder()
        .header("Content-Type", "application/json")
        .accept("text/event-stream")
        .headers({"accept": "application/x-ndjson", "content-type": "text/plain"})
        .build()
    )

    assert options["headers"] == {"content-type": "text/plain", "accept": "application/x-ndjson"}


def test_none_payload_leaves_no_body():
    options = RequestBuilder().json(None, CompactJsonSerializer()).build()
    assert "content" not in options


def test_falsy_payloads_are_still_sent():
    serializer = CompactJsonSerializer()
    assert RequestBuilder().json([], serializer).build()["content"] == "[]"
    assert RequestBuilder().json(0, serializer).build()["content"] == "0"
    assert RequestBuilder().json(False, serializer).build()["content"] == "false"


def test_build_returns_independent_options():
    builder = RequestBuilder().params({"a": 1})
    first = builder.build()
    first["params"]["b"] = 2
    assert builder.build()["params"] == {"a": 1}


def test_url_and_method_override():
    options = RequestBuilder().url("https://x.example.com").method("DELETE").build()
    assert options["url"] == "https://x.example.com"
    assert options["method"] == "DELETE"
