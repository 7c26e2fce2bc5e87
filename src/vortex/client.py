"""Fluent HTTP client implementation for vortex.

This module provides the Client class. Builder calls accumulate headers,
query parameters, form inputs, an output target, interceptors and hooks on the
client; each dispatch (get/post/put/patch/delete) snapshots that state into an
httpx.Request, runs it through the interceptor chain, and returns a Response
carrying the raw body, the decoded output and a RequestDescriptor.

A Client is not safe for concurrent mutation and dispatch from several
threads. Build and fire one logical request at a time, or serialize access.
"""

import os
import ssl
from collections.abc import Mapping
from enum import Enum
from functools import lru_cache
from typing import Any, BinaryIO, NamedTuple, Self, get_origin

import certifi
import httpx
import tenacity
from pydantic import TypeAdapter
from pydantic_core import PydanticSerializationError, from_json, to_json, to_jsonable_python
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from .config import ClientSettings, get_settings
from .exceptions import (
    ConfigurationError,
    DecodeError,
    HookError,
    NetworkError,
    RequestConstructionError,
    SerializationError,
    StreamError,
    TimeoutError,
    TransportError,
)
from .form import encode_multipart, has_form_inputs
from .interceptors import compose
from .log_config import logger
from .types import (
    Handler,
    Hook,
    Interceptor,
    Method,
    RequestDescriptor,
    Response,
    StreamConsumer,
    header_pairs,
)

_QUERY_METHODS = frozenset([Method.GET, Method.DELETE])
_BODY_METHODS = frozenset([Method.POST, Method.PUT, Method.PATCH])

# Set by httpx from the URL and body; not part of the caller's request.
_TRANSPORT_MANAGED_HEADERS = frozenset(["host", "content-length", "transfer-encoding"])


class BodyKind(Enum):
    """Which kind of body a dispatch carries."""

    NONE = "none"
    JSON = "json"
    MULTIPART = "multipart"


class RequestBody(NamedTuple):
    kind: BodyKind
    content: bytes = b""
    content_type: str | None = None


def _format_query_value(value: Any) -> str:
    """Strings pass through; anything else becomes its compact JSON text."""
    if isinstance(value, str):
        return value
    try:
        return to_json(value).decode()
    except PydanticSerializationError as e:
        raise SerializationError(
            f"Query parameter value {value!r} is not JSON serializable: {e}"
        ) from e


@lru_cache(maxsize=128)
def _adapter_for(target: Any) -> TypeAdapter[Any]:
    return TypeAdapter(target)


class Client:
    """Fluent, synchronous HTTP client.

    Every builder method mutates the client in place and returns it, so calls
    can be chained. State is kept across requests: headers, query parameters
    and form inputs set for one request are still set for the next one until
    they are replaced or cleared.

    Example::

        client = Client(base_url="https://api.example.com", timeout=10)
        resp = (
            client.set_header("Authorization", "Bearer token")
            .set_query_param("page", "2")
            .set_output(UserPage)
            .get("/users")
        )
        print(resp.output, resp.request.to_curl())

    Attributes:
        _settings: Scalar options (base URL, timeout, retries, TLS).
        _headers: Case-insensitive header multimap merged into every request.
        _query_params: Query parameters attached to GET and DELETE requests.
        _output: Decode target for response bodies, if any.
        _interceptors: Interceptors in registration order.
        _hooks: Post-response hooks in registration order.
        _stream_consumer: Optional consumer given the live response.
        _form_file_paths: Multipart file parts to read from disk.
        _form_fields: Plain multipart fields.
        _form_files: Multipart parts read from caller-supplied handles.
        _insecure: Whether TLS certificate verification is disabled.
        _http_client: The httpx.Client used for verified requests.
        _insecure_client: Lazily created httpx.Client with verification off.
        _should_close_client: Flag indicating if this instance owns _http_client.
    """

    def __init__(
        self,
        settings: ClientSettings | None = None,
        *,
        base_url: str | None = None,
        timeout: float | None = None,
        retries: int | None = None,
        http_client: httpx.Client | None = None,
    ):
        """Initialize the Client.

        Args:
            settings: Base options. Defaults to the environment-derived
                settings from :func:`vortex.config.get_settings`.
            base_url: Overrides ``settings.base_url``.
            timeout: Overrides ``settings.timeout`` (seconds).
            retries: Overrides ``settings.retries``.
            http_client: Optional pre-configured httpx.Client. It is used for
                every request, including insecure ones, and is never closed
                by this client.
        """
        overrides = {
            key: value
            for key, value in (
                ("base_url", base_url),
                ("timeout", timeout),
                ("retries", retries),
            )
            if value is not None
        }
        base_settings = settings or get_settings()
        self._settings = (
            ClientSettings.model_validate(base_settings.model_dump() | overrides)
            if overrides
            else base_settings
        )

        self._headers = httpx.Headers()
        self._query_params: dict[str, str] = {}
        self._output: Any = None
        self._interceptors: list[Interceptor] = []
        self._hooks: list[Hook] = []
        self._stream_consumer: StreamConsumer | None = None
        self._form_file_paths: dict[str, str] = {}
        self._form_fields: dict[str, str] = {}
        self._form_files: dict[str, BinaryIO] = {}
        self._insecure = self._settings.insecure

        self._should_close_client = http_client is None
        self._http_client = http_client or self._create_http_client(verify_tls=True)
        self._insecure_client: httpx.Client | None = None

        logger.debug(
            f"Client initialized. Base URL: {self._settings.base_url!r}, "
            f"timeout: {self._settings.timeout}s, retries: {self._settings.retries}"
        )

    def _create_http_client(self, verify_tls: bool) -> httpx.Client:
        """Create an httpx.Client with the configured timeout.

        Args:
            verify_tls: Verify server certificates against certifi's bundle
                when True; skip verification entirely when False.

        Returns:
            httpx.Client: The configured transport client.
        """
        verify: ssl.SSLContext | bool = False
        if verify_tls:
            try:
                verify = ssl.create_default_context(cafile=certifi.where())
                logger.debug("Using certifi SSL context.")
            except (OSError, ssl.SSLError):
                verify = True
                logger.warning(
                    "certifi bundle failed to load. Using default SSL verification."
                )
        return httpx.Client(
            timeout=self._settings.timeout,
            verify=verify,
            follow_redirects=True,
        )

    # --- Accessors ---

    @property
    def settings(self) -> ClientSettings:
        return self._settings

    @property
    def base_url(self) -> str:
        return self._settings.base_url

    @property
    def headers(self) -> httpx.Headers:
        """A copy of the configured headers (case-insensitive lookup)."""
        return self._headers.copy()

    @property
    def query_params(self) -> dict[str, str]:
        """A copy of the configured query parameters."""
        return dict(self._query_params)

    @property
    def is_insecure(self) -> bool:
        return self._insecure

    # --- Builder methods ---

    def set_header(self, key: str, value: str) -> Self:
        """Set header *key*, replacing any value already set under any casing of it."""
        self._headers[key] = value
        return self

    def set_headers(self, headers: Mapping[str, str]) -> Self:
        """Set every header in *headers*, as :meth:`set_header` does."""
        for key, value in headers.items():
            self._headers[key] = value
        return self

    def set_query_param(self, key: str, value: str) -> Self:
        """Set query parameter *key*, replacing any previous value."""
        self._query_params[key] = value
        return self

    def set_query_params(self, params: Mapping[str, Any]) -> Self:
        """Set every entry of *params* as a query parameter.

        Strings are used verbatim. Other values are formatted as compact JSON
        text, so ``2`` becomes ``"2"`` and ``True`` becomes ``"true"``.

        Raises:
            SerializationError: If a value is not JSON serializable.
        """
        for key, value in params.items():
            self._query_params[key] = _format_query_value(value)
        return self

    def set_query_params_from(self, obj: Any) -> Self:
        """Set query parameters from the fields of a structured object.

        *obj* (a pydantic model, dataclass, TypedDict or plain mapping) is
        converted to its JSON form, field aliases included, and each
        top-level key becomes a query parameter. Nested objects and arrays
        become their JSON text.

        Args:
            obj: The object to read parameters from.

        Returns:
            Self: This client.

        Raises:
            SerializationError: If *obj* is not JSON serializable or does not
                serialize to a JSON object.
        """
        try:
            data = to_jsonable_python(obj, by_alias=True)
        except PydanticSerializationError as e:
            raise SerializationError(
                f"Cannot serialize {type(obj).__name__} into query parameters: {e}"
            ) from e
        if not isinstance(data, dict):
            raise SerializationError(
                f"{type(obj).__name__} does not serialize to a JSON object; "
                "cannot use it as query parameters"
            )
        for key, value in data.items():
            self._query_params[str(key)] = _format_query_value(value)
        return self

    def set_output(self, target: Any) -> Self:
        """Set the target that successful response bodies are decoded into.

        Args:
            target: Either a type (a pydantic model, ``dict``,
                ``list[Item]``, ...), decoded with a pydantic TypeAdapter and
                returned as ``Response.output``; or a ``dict``/``list``
                instance, which is populated in place and returned as
                ``Response.output``. A list target has its contents
                replaced on every request; a dict target is updated. ``None`` clears the target.

        Returns:
            Self: This client.

        Raises:
            ConfigurationError: If *target* is neither a type nor a dict or
                list instance.
        """
        if not (
            target is None
            or isinstance(target, dict | list | type)
            or get_origin(target) is not None
        ):
            raise ConfigurationError(
                f"Unsupported output target {target!r}: expected a type, dict or list"
            )
        self._output = target
        return self

    def set_form_file_path(self, key: str, path: str | os.PathLike[str]) -> Self:
        """Upload the file at *path* as multipart part *key*."""
        self._form_file_paths[key] = os.fspath(path)
        return self

    def set_form_file(self, key: str, file: BinaryIO) -> Self:
        """Upload an open binary file handle as multipart part *key*.

        The handle must expose a ``name``; its base name is used as the part's
        filename. The client reads it but never closes it.
        """
        self._form_files[key] = file
        return self

    def set_form_data(self, fields: Mapping[str, str]) -> Self:
        """Add plain multipart form fields."""
        self._form_fields.update(fields)
        return self

    def clear_form(self) -> Self:
        """Drop all form inputs so the next request is no longer multipart."""
        self._form_file_paths.clear()
        self._form_fields.clear()
        self._form_files.clear()
        return self

    def use_interceptor(self, *interceptors: Interceptor) -> Self:
        """Append interceptors. The first registered one runs outermost."""
        self._interceptors.extend(interceptors)
        return self

    def use_hook(self, *hooks: Hook) -> Self:
        """Append post-response hooks, run in registration order."""
        self._hooks.extend(hooks)
        return self

    def stream(self, consumer: StreamConsumer | None) -> Self:
        """Hand the live response to *consumer* before the body is read.

        The consumer receives the ``httpx.Response`` while its body is still
        unread. Iterating it (``iter_bytes``, ``iter_lines``, ...) drains the
        stream: bytes the consumer pulled, and any it left unread after
        stopping early, are no longer available afterwards, so
        ``Response.body`` is empty. A consumer that calls ``response.read()``
        instead buffers the whole body, which is then kept as
        ``Response.body``.
        """
        self._stream_consumer = consumer
        return self

    def insecure(self) -> Self:
        """Disable TLS certificate verification for subsequent requests."""
        self._insecure = True
        return self

    # --- Dispatch ---

    def get(self, path: str) -> Response:
        return self.request(Method.GET, path)

    def delete(self, path: str) -> Response:
        return self.request(Method.DELETE, path)

    def post(self, path: str, body: Any = None) -> Response:
        return self.request(Method.POST, path, body)

    def put(self, path: str, body: Any = None) -> Response:
        return self.request(Method.PUT, path, body)

    def patch(self, path: str, body: Any = None) -> Response:
        return self.request(Method.PATCH, path, body)

    def request(self, method: Method | str, path: str, body: Any = None) -> Response:
        """Dispatch a request built from the current client state.

        Args:
            method: The HTTP method.
            path: Appended verbatim to the base URL.
            body: Optional JSON-serializable body. Ignored when any form
                input is configured; the request is then multipart.

        Returns:
            Response: Status code, raw body, decoded output and a snapshot of
                the request.

        Raises:
            ConfigurationError: If *method* is not a supported HTTP method.
            RequestConstructionError: If base URL and path do not form an
                absolute http(s) URL.
            SerializationError: If *body* is not JSON serializable.
            FormEncodingError: If a form file cannot be read.
            TransportError: If the transport fails (after any retries).
            HookError: If a hook raises.
            StreamError: If the streaming consumer raises.
            DecodeError: If the body does not decode into the output target.
        """
        if isinstance(method, str):
            try:
                method = Method(method.upper())
            except ValueError as e:
                raise ConfigurationError(f"Unsupported HTTP method {method!r}") from e
        request_body = self._prepare_body(body)
        request = self._build_request(method, path, request_body)

        json_body = request_body.content if request_body.kind is BodyKind.JSON else b""
        innermost = self._create_innermost_handler(method, json_body)
        if self._interceptors:
            logger.debug(
                f"Running {method} {request.url} through {len(self._interceptors)} interceptor(s)"
            )
        handler = compose(self._interceptors, innermost, request)
        response = handler(request)

        if response.request is None:
            # An interceptor answered without reaching the transport.
            response = response.model_copy(
                update={"request": self._describe(method, request, json_body)}
            )
        return response

    def _prepare_body(self, body: Any) -> RequestBody:
        """Select and encode the request body: multipart, JSON, or none."""
        if has_form_inputs(self._form_file_paths, self._form_fields, self._form_files):
            if body is not None:
                logger.warning(
                    "Form inputs are set; the JSON body argument is ignored for this request."
                )
            multipart = encode_multipart(
                self._form_file_paths, self._form_fields, self._form_files
            )
            return RequestBody(
                BodyKind.MULTIPART, multipart.content, multipart.content_type
            )
        if body is not None:
            try:
                content = to_json(body)
            except PydanticSerializationError as e:
                raise SerializationError(
                    f"Request body of type {type(body).__name__} is not JSON serializable: {e}"
                ) from e
            return RequestBody(BodyKind.JSON, content, "application/json")
        return RequestBody(BodyKind.NONE)

    def _compose_headers(self, method: Method, body: RequestBody) -> httpx.Headers:
        """Merge request defaults with the configured headers.

        Configured headers are added after the defaults, never replacing
        them, except that a multipart Content-Type supersedes any configured
        Content-Type.
        """
        pairs: list[tuple[str, str]] = []
        if body.kind is BodyKind.MULTIPART:
            pairs.append(("Content-Type", body.content_type or ""))
        elif method in _BODY_METHODS and "content-type" not in self._headers:
            pairs.append(("Content-Type", "application/json"))

        if "user-agent" not in self._headers and self._settings.user_agent:
            pairs.append(("User-Agent", self._settings.user_agent))

        for name, value in header_pairs(self._headers):
            if body.kind is BodyKind.MULTIPART and name.lower() == "content-type":
                continue
            pairs.append((name, value))
        return httpx.Headers(pairs)

    def _build_request(
        self, method: Method, path: str, body: RequestBody
    ) -> httpx.Request:
        url = f"{self._settings.base_url}{path}"
        params = (
            self._query_params if method in _QUERY_METHODS and self._query_params else None
        )
        try:
            request = httpx.Request(
                method.value,
                url,
                params=params,
                headers=self._compose_headers(method, body),
                content=body.content or None,
                extensions={"timeout": httpx.Timeout(self._settings.timeout).as_dict()},
            )
        except httpx.InvalidURL as e:
            raise RequestConstructionError(f"Invalid request URL {url!r}: {e}") from e
        if request.url.scheme not in ("http", "https") or not request.url.host:
            raise RequestConstructionError(
                f"Request URL {url!r} is not an absolute http(s) URL"
            )
        return request

    def _create_innermost_handler(self, method: Method, json_body: bytes) -> Handler:
        """Build the handler that performs the network call.

        It sends the request, runs the hooks, hands the live response to the
        streaming consumer, reads the body and decodes it into the output
        target. The returned Response's status code is captured before any
        hook runs.
        """

        def send(request: httpx.Request) -> Response:
            http_response = self._send_with_retry(request)
            try:
                status_code = http_response.status_code
                self._run_hooks(request, http_response)
                if self._stream_consumer is not None:
                    self._run_stream_consumer(request, http_response)
                content = self._read_body(request, http_response)
            finally:
                http_response.close()

            output = self._decode_output(content, request)
            return Response(
                status_code=status_code,
                body=content,
                output=output,
                request=self._describe(method, request, json_body),
            )

        return send

    def _transport_client(self) -> httpx.Client:
        if not self._insecure:
            return self._http_client
        if not self._should_close_client:
            logger.warning(
                "Insecure mode requested but a caller-supplied httpx.Client is in use; "
                "its own TLS settings apply."
            )
            return self._http_client
        if self._insecure_client is None:
            logger.warning("TLS certificate verification is disabled for this client.")
            self._insecure_client = self._create_http_client(verify_tls=False)
        return self._insecure_client

    def _send_once(self, request: httpx.Request) -> httpx.Response:
        """Send *request* once, mapping httpx failures to vortex errors.

        Raises:
            TimeoutError: If the request times out.
            NetworkError: For connection-level failures.
            TransportError: For any other httpx request error.
        """
        client = self._transport_client()
        logger.debug(f"Sending request: {request.method} {request.url}")
        logger.trace(f"Request Headers: {request.headers}")
        try:
            response = client.send(request, stream=True)
        except httpx.TimeoutException as e:
            logger.error(f"Request timed out: {request.url}")
            raise TimeoutError("Request timed out", request=request) from e
        except httpx.NetworkError as e:
            logger.error(f"Network error occurred for {request.url}: {e}")
            raise NetworkError(
                f"Network error for {request.url}: {e}", request=request
            ) from e
        except httpx.RequestError as e:
            logger.error(f"HTTP request error for {request.url}: {e}")
            raise TransportError(
                f"HTTP request error for {request.url}: {e}", request=request
            ) from e
        logger.debug(f"Received response: {response.status_code} for {request.url}")
        logger.trace(f"Response Headers: {response.headers}")
        return response

    def _send_with_retry(self, request: httpx.Request) -> httpx.Response:
        """Send *request*, retrying timeouts and network errors.

        With ``retries`` at 0 (the default) the request is attempted once.
        """
        retrying = Retrying(
            stop=stop_after_attempt(self._settings.retries + 1),
            wait=wait_exponential(multiplier=self._settings.backoff_factor),
            retry=retry_if_exception_type((TimeoutError, NetworkError)),
            reraise=True,
            before_sleep=self._before_retry_sleep,
        )
        return retrying(self._send_once, request)

    def _before_retry_sleep(self, retry_state: tenacity.RetryCallState) -> None:
        """Log details before tenacity sleeps between retries."""
        if not retry_state.outcome:
            return
        exc = retry_state.outcome.exception()
        sleep_time = (
            getattr(retry_state.next_action, "sleep", 0)
            if retry_state.next_action
            else 0
        )
        logger.warning(
            f"Retrying request in {sleep_time:.2f} seconds after "
            f"{retry_state.attempt_number} attempt(s) due to: {type(exc).__name__} - {exc}"
        )

    def _run_hooks(self, request: httpx.Request, response: httpx.Response) -> None:
        for hook in self._hooks:
            try:
                hook(request, response)
            except Exception as e:
                name = getattr(hook, "__name__", str(hook))
                logger.error(f"Error executing hook {name}: {e}")
                raise HookError(f"Hook {name} failed: {e}", request=request) from e

    def _run_stream_consumer(
        self, request: httpx.Request, response: httpx.Response
    ) -> None:
        assert self._stream_consumer is not None
        try:
            self._stream_consumer(response)
        except Exception as e:
            logger.error(f"Streaming consumer failed for {request.url}: {e}")
            raise StreamError(f"Streaming consumer failed: {e}", request=request) from e

    def _read_body(self, request: httpx.Request, response: httpx.Response) -> bytes:
        """Read what is left of the response body.

        If the streaming consumer already iterated the stream, only content it
        buffered with ``response.read()`` is available; otherwise the body is
        empty.
        """
        if response.is_stream_consumed:
            try:
                return response.content
            except httpx.ResponseNotRead:
                return b""
        try:
            return response.read()
        except httpx.TimeoutException as e:
            raise TimeoutError("Timed out reading response body", request=request) from e
        except httpx.RequestError as e:
            raise TransportError(
                f"Error reading response body from {request.url}: {e}", request=request
            ) from e

    def _decode_output(self, content: bytes, request: httpx.Request) -> Any:
        """Decode *content* into the output target, or return None if none is set.

        Raises:
            DecodeError: If the body is not valid JSON for the target.
        """
        target = self._output
        if target is None:
            return None
        try:
            if isinstance(target, dict):
                decoded = from_json(content)
                if not isinstance(decoded, dict):
                    raise DecodeError(
                        f"Expected a JSON object for dict output, got {type(decoded).__name__}",
                        request=request,
                    )
                target.update(decoded)
                return target
            if isinstance(target, list):
                decoded = from_json(content)
                if not isinstance(decoded, list):
                    raise DecodeError(
                        f"Expected a JSON array for list output, got {type(decoded).__name__}",
                        request=request,
                    )
                target[:] = decoded
                return target
            return _adapter_for(target).validate_json(content)
        except ValueError as e:
            # pydantic's ValidationError and from_json's errors are ValueErrors.
            logger.warning(f"Response decoding failed for {request.url}: {e}")
            raise DecodeError(
                f"Could not decode response body into {target!r}: {e}", request=request
            ) from e

    def _describe(
        self, method: Method, request: httpx.Request, json_body: bytes
    ) -> RequestDescriptor:
        return RequestDescriptor(
            method=method,
            url=str(request.url.copy_with(query=None)),
            headers=[
                (name, value)
                for name, value in header_pairs(request.headers)
                if name.lower() not in _TRANSPORT_MANAGED_HEADERS
            ],
            body=json_body,
            query_params=request.url.params.multi_items(),
            form_file_paths=dict(self._form_file_paths),
            form_fields=dict(self._form_fields),
            form_files=dict(self._form_files),
            insecure=self._insecure,
        )

    # --- Lifecycle ---

    def close(self) -> None:
        """Close the httpx clients this instance created."""
        if self._should_close_client and not self._http_client.is_closed:
            self._http_client.close()
            logger.debug("Client internal HTTP client closed.")
        if self._insecure_client is not None and not self._insecure_client.is_closed:
            self._insecure_client.close()

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object | None,
    ) -> None:
        self.close()
