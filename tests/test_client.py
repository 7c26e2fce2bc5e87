"""Tests for the Client in vortex."""

import io
from dataclasses import dataclass

import httpx
import pytest
from pydantic import BaseModel, Field

from vortex.client import Client
from vortex.config import ClientSettings
from vortex.exceptions import (
    ConfigurationError,
    DecodeError,
    FormEncodingError,
    HookError,
    NetworkError,
    RequestConstructionError,
    SerializationError,
    StreamError,
    TimeoutError,
)
from vortex.types import Method, Response

BASE_URL = "https://api.example.com"


@pytest.fixture
def settings():
    """Fixture for ClientSettings isolated from any .env file."""
    return ClientSettings(
        base_url=BASE_URL,
        timeout=5.0,
        retries=0,
        backoff_factor=0,
        user_agent="vortex-tests",
        _env_file=None,
    )


@pytest.fixture
def client(settings):
    """Fixture for a Client against the example API."""
    with Client(settings) as c:
        yield c


# --- Construction and builder state ---


def test_new_client_applies_overrides(settings):
    """Test that explicit constructor arguments override settings."""
    c = Client(settings, base_url="http://example.com", timeout=2.5, retries=3)

    assert c.base_url == "http://example.com"
    assert c.settings.timeout == 2.5
    assert c.settings.retries == 3
    # The settings object handed in is not mutated.
    assert settings.base_url == BASE_URL
    c.close()


def test_builder_methods_return_same_client(client):
    """Test that every setter returns the client itself for chaining."""
    result = (
        client.set_header("Accept", "application/json")
        .set_headers({"X-One": "1"})
        .set_query_param("a", "b")
        .set_query_params({"c": 1})
        .set_form_data({"f": "v"})
        .clear_form()
        .use_interceptor(lambda req, nxt: nxt)
        .use_hook(lambda req, resp: None)
        .stream(None)
        .set_output(dict)
        .insecure()
    )
    assert result is client


def test_set_header_last_write_wins_case_insensitive(client):
    """Test that headers are replaced regardless of key casing."""
    client.set_header("content-type", "text/plain")
    client.set_header("Content-Type", "application/json")

    assert client.headers["CONTENT-TYPE"] == "application/json"
    assert client.headers.get_list("content-type") == ["application/json"]


def test_set_headers(client):
    """Test that all entries of a mapping are applied."""
    headers = {"Content-Type": "application/json", "Accept": "application/json"}
    client.set_headers(headers)

    for key, value in headers.items():
        assert client.headers[key] == value


def test_set_query_param(client):
    client.set_query_param("key", "value")
    client.set_query_param("key", "other")

    assert client.query_params == {"key": "other"}


def test_set_query_params_formats_values(client):
    """Test that non-string values are formatted as compact JSON text."""
    client.set_query_params(
        {"key1": "value1", "key2": 2, "neg": -7, "flag": True, "ratio": 0.5}
    )

    assert client.query_params == {
        "key1": "value1",
        "key2": "2",
        "neg": "-7",
        "flag": "true",
        "ratio": "0.5",
    }


def test_set_query_params_from_model_uses_aliases(client):
    """Test that a pydantic model's JSON field names become parameter keys."""

    class Params(BaseModel):
        key1: str
        key2: int
        page_size: int = Field(serialization_alias="pageSize")

    client.set_query_params_from(Params(key1="value1", key2=2, page_size=50))

    assert client.query_params == {"key1": "value1", "key2": "2", "pageSize": "50"}


def test_set_query_params_from_dataclass_stringifies_nested(client):
    """Test that nested objects and arrays degrade to their JSON text."""

    @dataclass
    class Filter:
        name: str
        tags: list[str]
        range: dict[str, int]

    client.set_query_params_from(Filter(name="x", tags=["a", "b"], range={"lo": 1}))

    assert client.query_params == {
        "name": "x",
        "tags": '["a","b"]',
        "range": '{"lo":1}',
    }


def test_set_query_params_from_non_object_fails(client):
    """Test that an object not serializing to a JSON object is rejected."""
    with pytest.raises(SerializationError):
        client.set_query_params_from(["not", "an", "object"])
    assert client.query_params == {}


def test_set_query_params_from_unserializable_fails(client):
    with pytest.raises(SerializationError):
        client.set_query_params_from(object())


def test_form_setters_accumulate(client, tmp_path):
    """Test that form setters add entries and never drop earlier ones."""
    client.set_form_file_path("file1", "/path/to/file1.txt").set_form_file_path(
        "file2", tmp_path / "file2.txt"
    )
    client.set_form_data({"field1": "value1"}).set_form_data({"field2": "value2"})

    assert client._form_file_paths == {
        "file1": "/path/to/file1.txt",
        "file2": str(tmp_path / "file2.txt"),
    }
    assert client._form_fields == {"field1": "value1", "field2": "value2"}


def test_set_output_rejects_unsupported_target(client):
    with pytest.raises(ConfigurationError):
        client.set_output("not a target")


def test_insecure_flag(client):
    assert client.is_insecure is False
    client.insecure()
    assert client.is_insecure is True


# --- Dispatch ---


def test_get_attaches_query_params(client, httpx_mock):
    """Test that GET requests carry the accumulated query parameters."""
    httpx_mock.add_response(
        url=f"{BASE_URL}/test?key=value", content=b'{"message":"success"}'
    )

    resp = client.set_query_param("key", "value").get("/test")

    assert resp.status_code == 200
    assert resp.body == b'{"message":"success"}'
    assert httpx_mock.get_request().url.params["key"] == "value"


def test_delete_attaches_query_params(client, httpx_mock):
    httpx_mock.add_response(method="DELETE", status_code=204)

    resp = client.set_query_params({"id": 7}).delete("/items")

    assert resp.status_code == 204
    assert httpx_mock.get_request().url.query == b"id=7"


def test_post_does_not_attach_query_params(client, httpx_mock):
    httpx_mock.add_response(method="POST")

    client.set_query_param("key", "value").post("/test", {"a": 1})

    assert httpx_mock.get_request().url.query == b""


def test_post_json_body(client, httpx_mock):
    """Test that a POST body is JSON-encoded with a JSON Content-Type."""
    httpx_mock.add_response(method="POST", json={"message": "success"})

    resp = client.post("/test", {"key": "value"})

    sent = httpx_mock.get_request()
    assert sent.method == "POST"
    assert sent.content == b'{"key":"value"}'
    assert sent.headers["Content-Type"] == "application/json"
    assert resp.request.body == b'{"key":"value"}'


def test_post_pydantic_model_body(client, httpx_mock):
    class Item(BaseModel):
        name: str
        qty: int

    httpx_mock.add_response(method="PUT")

    client.put("/items/1", Item(name="bolt", qty=3))

    assert httpx_mock.get_request().content == b'{"name":"bolt","qty":3}'


def test_explicit_content_type_is_kept(client, httpx_mock):
    httpx_mock.add_response(method="PATCH")

    client.set_header("Content-Type", "application/merge-patch+json").patch(
        "/items/1", {"qty": 4}
    )

    sent = httpx_mock.get_request()
    assert sent.headers.get_list("content-type") == ["application/merge-patch+json"]


def test_get_has_no_default_content_type(client, httpx_mock):
    httpx_mock.add_response()

    client.get("/test")

    assert "content-type" not in httpx_mock.get_request().headers


def test_configured_headers_are_sent(client, httpx_mock):
    httpx_mock.add_response(match_headers={"X-Api-Key": "secret"})

    client.set_header("X-Api-Key", "secret").get("/test")


def test_user_agent_default_and_override(client, httpx_mock):
    httpx_mock.add_response()
    httpx_mock.add_response()

    client.get("/test")
    client.set_header("User-Agent", "custom/1.0").get("/test")

    first, second = httpx_mock.get_requests()
    assert first.headers["User-Agent"] == "vortex-tests"
    assert second.headers.get_list("User-Agent") == ["custom/1.0"]


def test_multipart_wins_over_json_body(client, httpx_mock, tmp_path):
    """Test that form inputs produce a multipart body and the JSON body is ignored."""
    upload = tmp_path / "upload.txt"
    upload.write_bytes(b"file1 content")
    httpx_mock.add_response(method="POST")

    resp = (
        client.set_header("Content-Type", "application/json")
        .set_form_file_path("file1", upload)
        .set_form_data({"field1": "value1"})
        .post("/upload", {"ignored": "json"})
    )

    sent = httpx_mock.get_request()
    content_type = sent.headers["Content-Type"]
    assert content_type.startswith("multipart/form-data; boundary=")
    assert sent.headers.get_list("content-type") == [content_type]
    assert b'name="file1"; filename="upload.txt"' in sent.content
    assert b"file1 content" in sent.content
    assert b'name="field1"\r\n\r\nvalue1' in sent.content
    assert b"ignored" not in sent.content
    assert resp.request.body == b""
    assert resp.request.is_multipart


def test_multipart_with_open_file(client, httpx_mock, tmp_path):
    path = tmp_path / "report.csv"
    path.write_bytes(b"a,b\n1,2\n")
    httpx_mock.add_response(method="POST")

    with open(path, "rb") as fh:
        client.set_form_file("report", fh).post("/upload")
        assert not fh.closed

    sent = httpx_mock.get_request()
    assert b'name="report"; filename="report.csv"' in sent.content
    assert b"a,b\n1,2\n" in sent.content


def test_open_file_is_resent_on_reuse(client, httpx_mock, tmp_path):
    """Test that a form file handle uploads the same content on every request."""
    path = tmp_path / "report.csv"
    path.write_bytes(b"a,b\n1,2\n")
    httpx_mock.add_response(method="POST", is_reusable=True)

    with open(path, "rb") as fh:
        client.set_form_file("report", fh)
        client.post("/upload")
        client.post("/upload")

    first, second = httpx_mock.get_requests()
    assert b"a,b\n1,2\n" in first.content
    assert b"a,b\n1,2\n" in second.content


def test_missing_form_file_aborts_before_network(client, httpx_mock, tmp_path):
    client.set_form_file_path("file1", tmp_path / "missing.txt")

    with pytest.raises(FormEncodingError) as exc_info:
        client.post("/upload")

    assert exc_info.value.field == "file1"
    assert httpx_mock.get_requests() == []


def test_unnamed_form_file_fails(client):
    client.set_form_file("blob", io.BytesIO(b"data"))

    with pytest.raises(FormEncodingError):
        client.post("/upload")


def test_unserializable_body_fails(client):
    with pytest.raises(SerializationError):
        client.post("/test", object())


def test_unknown_method_fails(client, httpx_mock):
    with pytest.raises(ConfigurationError):
        client.request("BREW", "/pot")
    assert httpx_mock.get_requests() == []


def test_method_string_is_case_insensitive(client, httpx_mock):
    httpx_mock.add_response(method="GET")

    resp = client.request("get", "/test")

    assert resp.request.method == Method.GET


@pytest.mark.parametrize("base_url", ["", "not a url", "ftp://example.com"])
def test_malformed_url_fails(settings, base_url):
    c = Client(settings, base_url=base_url)

    with pytest.raises(RequestConstructionError):
        c.get("/test")
    c.close()


def test_path_is_appended_verbatim(client, httpx_mock):
    httpx_mock.add_response(url=f"{BASE_URL}/v1/users/42")

    resp = client.get("/v1/users/42")

    assert resp.request.url == f"{BASE_URL}/v1/users/42"


# --- Output decoding ---


def test_output_model_type(client, httpx_mock):
    class Message(BaseModel):
        message: str

    httpx_mock.add_response(json={"message": "success"})

    resp = client.set_output(Message).get("/test")

    assert isinstance(resp.output, Message)
    assert resp.output.message == "success"


def test_output_generic_list_type(client, httpx_mock):
    class Item(BaseModel):
        id: int

    httpx_mock.add_response(json=[{"id": 1}, {"id": 2}])

    resp = client.set_output(list[Item]).get("/items")

    assert [item.id for item in resp.output] == [1, 2]


def test_output_dict_populated_in_place(client, httpx_mock):
    target: dict = {"kept": True}
    httpx_mock.add_response(json={"message": "success"})

    resp = client.set_output(target).get("/test")

    assert resp.output is target
    assert target == {"kept": True, "message": "success"}


def test_output_list_populated_in_place(client, httpx_mock):
    target: list = []
    httpx_mock.add_response(json=[1, 2, 3])

    resp = client.set_output(target).get("/test")

    assert resp.output is target
    assert target == [1, 2, 3]


def test_output_list_replaced_on_reuse(client, httpx_mock):
    """Test that a reused list target holds only the latest response."""
    target: list = ["stale"]
    httpx_mock.add_response(json=[1, 2], is_reusable=True)
    client.set_output(target)

    client.get("/a")
    resp = client.get("/a")

    assert resp.output is target
    assert target == [1, 2]


def test_no_output_target_leaves_output_none(client, httpx_mock):
    httpx_mock.add_response(text="not json")

    resp = client.get("/test")

    assert resp.output is None
    assert resp.text == "not json"


def test_output_decode_failure_raises(client, httpx_mock):
    httpx_mock.add_response(text="not json")

    with pytest.raises(DecodeError):
        client.set_output(dict).get("/test")


def test_output_shape_mismatch_raises(client, httpx_mock):
    httpx_mock.add_response(json=[1, 2])

    with pytest.raises(DecodeError):
        client.set_output({}).get("/test")


def test_error_status_is_returned_not_raised(client, httpx_mock):
    httpx_mock.add_response(status_code=404, json={"detail": "missing"})

    resp = client.set_output(dict).get("/missing")

    assert resp.status_code == 404
    assert resp.output == {"detail": "missing"}


# --- Interceptors, hooks, streaming ---


def test_interceptor_modifies_request(client, httpx_mock):
    """Test that an interceptor can change the outgoing request."""

    def add_test_header(req, next_handler):
        def handle(r):
            r.headers["X-Test"] = "interceptor"
            return next_handler(r)

        return handle

    httpx_mock.add_response(match_headers={"X-Test": "interceptor"})

    resp = client.use_interceptor(add_test_header).get("/test")

    assert resp.status_code == 200
    assert resp.request.header("X-Test") == "interceptor"


def test_interceptor_ordering(client, httpx_mock):
    """Test that the first registered interceptor runs outermost."""
    events: list[str] = []

    def tracing(name):
        def interceptor(req, next_handler):
            def handle(r):
                events.append(f"{name}-before")
                response = next_handler(r)
                events.append(f"{name}-after")
                return response

            return handle

        return interceptor

    def record_network(request):
        events.append("network")
        return httpx.Response(200)

    httpx_mock.add_callback(record_network)

    client.use_interceptor(tracing("A")).use_interceptor(tracing("B")).get("/test")

    assert events == ["A-before", "B-before", "network", "B-after", "A-after"]


def test_interceptor_short_circuit(client):
    """Test that an interceptor may answer without reaching the transport."""

    def cached(req, next_handler):
        return lambda r: Response(status_code=203, body=b"cached")

    resp = client.use_interceptor(cached).get("/test")

    assert resp.status_code == 203
    assert resp.body == b"cached"
    assert resp.request is not None
    assert resp.request.method is Method.GET
    assert resp.request.url == f"{BASE_URL}/test"


def test_interceptor_exception_propagates(client):
    def failing(req, next_handler):
        def handle(r):
            raise RuntimeError("interceptor failed")

        return handle

    with pytest.raises(RuntimeError, match="interceptor failed"):
        client.use_interceptor(failing).get("/test")


def test_hooks_observe_returned_status(client, httpx_mock):
    """Test that hooks see the raw response, in order, with the final status."""
    seen: list[tuple[str, int]] = []
    httpx_mock.add_response(status_code=201, json={"id": 1})

    client.use_hook(lambda req, resp: seen.append(("first", resp.status_code)))
    client.use_hook(lambda req, resp: seen.append(("second", resp.status_code)))
    resp = client.post("/items", {"name": "x"})

    assert seen == [("first", 201), ("second", 201)]
    assert resp.status_code == 201


def test_hook_cannot_alter_status(client, httpx_mock):
    httpx_mock.add_response(status_code=200)

    def tamper(req, resp):
        resp.status_code = 500

    resp = client.use_hook(tamper).get("/test")

    assert resp.status_code == 200


def test_hook_failure_is_raised(client, httpx_mock):
    httpx_mock.add_response()

    def broken(req, resp):
        raise ValueError("hook exploded")

    with pytest.raises(HookError) as exc_info:
        client.use_hook(broken).get("/test")

    assert isinstance(exc_info.value.__cause__, ValueError)


def test_stream_consumer_reads_live_response(client, httpx_mock):
    lines: list[str] = []
    httpx_mock.add_response(
        content=b"data: 0\n\ndata: 1\n\ndata: 2\n\n",
        headers={"Content-Type": "text/event-stream"},
    )

    def consume(response):
        lines.extend(line for line in response.iter_lines() if line)

    resp = client.stream(consume).get("/events")

    assert lines == ["data: 0", "data: 1", "data: 2"]
    assert resp.status_code == 200


def test_stream_consumer_runs_after_hooks(client, httpx_mock):
    order: list[str] = []
    httpx_mock.add_response()

    client.use_hook(lambda req, resp: order.append("hook"))
    client.stream(lambda resp: order.append("stream")).get("/test")

    assert order == ["hook", "stream"]


def test_stream_consumer_failure_aborts(client, httpx_mock):
    httpx_mock.add_response()

    def consume(response):
        raise OSError("disk full")

    with pytest.raises(StreamError):
        client.stream(consume).get("/events")


def test_stream_consumer_stopping_early_leaves_body_empty(client, httpx_mock):
    """Test that a partially iterated stream yields an empty Response.body."""
    httpx_mock.add_response(content=b"first\nsecond\nthird\n")

    def consume(response):
        for line in response.iter_lines():
            assert line == "first"
            return

    resp = client.stream(consume).get("/events")

    assert resp.status_code == 200
    assert resp.body == b""


def test_stream_consumer_read_keeps_body(client, httpx_mock):
    httpx_mock.add_response(json={"message": "success"})
    seen: list[int] = []

    def consume(response):
        seen.append(len(response.read()))

    resp = client.set_output(dict).stream(consume).get("/test")

    assert seen == [len(resp.body)]
    assert resp.output == {"message": "success"}


# --- Transport errors and retries ---


def test_network_error_is_mapped(client, httpx_mock):
    httpx_mock.add_exception(httpx.ConnectError("Connection refused"))

    with pytest.raises(NetworkError) as exc_info:
        client.get("/test")

    assert isinstance(exc_info.value.__cause__, httpx.ConnectError)


def test_timeout_is_mapped(client, httpx_mock):
    httpx_mock.add_exception(httpx.ReadTimeout("timed out"))

    with pytest.raises(TimeoutError):
        client.get("/test")


def test_no_retry_by_default(client, httpx_mock):
    httpx_mock.add_exception(httpx.ConnectError("Connection refused"))

    with pytest.raises(NetworkError):
        client.get("/test")

    assert len(httpx_mock.get_requests()) == 1


def test_retries_transport_failures(settings, httpx_mock):
    """Test that configured retries re-send after network errors."""
    hook_calls: list[int] = []
    httpx_mock.add_exception(httpx.ConnectError("Connection refused"))
    httpx_mock.add_exception(httpx.ReadTimeout("timed out"))
    httpx_mock.add_response(json={"status": "ok"})

    with Client(settings, retries=2) as c:
        resp = c.use_hook(lambda req, r: hook_calls.append(r.status_code)).get("/test")

    assert resp.status_code == 200
    assert len(httpx_mock.get_requests()) == 3
    assert hook_calls == [200]


def test_retries_exhausted(settings, httpx_mock):
    httpx_mock.add_exception(httpx.ConnectError("Connection refused"), is_reusable=True)

    with Client(settings, retries=1) as c, pytest.raises(NetworkError):
        c.get("/test")

    assert len(httpx_mock.get_requests()) == 2


# --- Request snapshot ---


def test_response_request_snapshot_renders_curl(client, httpx_mock):
    httpx_mock.add_response()

    resp = (
        client.set_header("Accept", "application/json")
        .set_query_param("page", "2")
        .get("/items")
    )

    assert resp.request.query_params == [("page", "2")]
    assert resp.request.to_curl() == (
        f'curl -X GET "{BASE_URL}/items?page=2" '
        '-H "User-Agent: vortex-tests" -H "Accept: application/json"'
    )


def test_insecure_request_snapshot(client, httpx_mock):
    httpx_mock.add_response(method="POST")

    resp = client.insecure().post("/api", {"key": "value"})

    assert resp.request.insecure is True
    assert client._insecure_client is not None
    assert resp.request.to_curl() == (
        f'curl -k -X POST "{BASE_URL}/api" -H "Content-Type: application/json" '
        "-H \"User-Agent: vortex-tests\" --data-raw '{\"key\":\"value\"}'"
    )


def test_close_leaves_caller_client_open(settings):
    http_client = httpx.Client()
    c = Client(settings, http_client=http_client)

    c.close()

    assert not http_client.is_closed
    http_client.close()
